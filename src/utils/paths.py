"""File path resolution using platformdirs.

SONA_HOME overrides everything (useful for tests and containers).
Otherwise paths use platform-appropriate directories:
  macOS: ~/Library/Application Support/sona/
  Linux: ~/.local/share/sona/
"""

import os
from pathlib import Path

import platformdirs

APP_NAME = "sona"


def get_data_dir() -> Path:
    """Return the directory for persistent data (the SQLite database)."""
    override = os.environ.get("SONA_HOME", "").strip()
    if override:
        return Path(override).expanduser()
    return Path(platformdirs.user_data_dir(APP_NAME, appauthor=False))


def get_default_db_path() -> Path:
    """Return the default SQLite database file path."""
    return get_data_dir() / "sona.db"


def ensure_dirs_exist() -> None:
    """Create the data directory if it doesn't exist."""
    get_data_dir().mkdir(parents=True, exist_ok=True)
