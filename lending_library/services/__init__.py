"""Lending Library - Services Package

This package contains service modules used by the Library:
- Open Library metadata lookup
- HTTP client abstraction
- Cache management service
- JSON persistence and async combinators
"""
