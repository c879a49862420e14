"""Lending Library - Core Application Package

This package contains the core application modules including:
- Library management logic (library.py)
- Entities (book.py, user.py, loan.py)
- Event log (events.py)
- CLI interface (main.py)
"""
