import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


def _as_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # Library settings
    library_name: str = os.getenv("LIBRARY_NAME", "City Library")
    max_books_per_user: int = int(os.getenv("MAX_BOOKS_PER_USER", "5"))
    event_history_size: int = int(os.getenv("EVENT_HISTORY_SIZE", "50"))

    # Persistence settings
    data_dir: str = os.getenv("LIBRARY_DATA_DIR", "./data")
    save_timeout_ms: int = int(os.getenv("SAVE_TIMEOUT_MS", "5000"))

    # Open Library settings
    openlibrary_base_url: str = os.getenv("OPENLIBRARY_BASE_URL", "https://openlibrary.org")
    openlibrary_timeout: float = float(os.getenv("OPENLIBRARY_TIMEOUT", "10"))
    enable_remote_lookup: bool = _as_bool(os.getenv("ENABLE_REMOTE_LOOKUP"), True)

    # Cache settings
    cache_ttl: int = int(os.getenv("CACHE_TTL", "300"))  # 5 minutes

    # Application settings
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    debug: bool = _as_bool(os.getenv("DEBUG"), False)


settings = Settings()
