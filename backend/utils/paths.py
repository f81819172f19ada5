"""
Centralised path helpers.

Everything the service persists lives in one data directory:
  - settings.json  → user settings (services/settings.py)
  - managed.json   → optional administrator policy, read-only for the service
  - state.db       → shared check state (cache entries, run lease, last result)

The directory is chosen from UPDATE_SENTINEL_HOME, then %APPDATA%, then the
user's home folder.
"""

import os

from config import MANAGED_FILE, SETTINGS_FILE, STATE_DB


def data_dir() -> str:
    """Return the data directory (not created)."""
    override = os.environ.get("UPDATE_SENTINEL_HOME")
    if override:
        return os.path.abspath(os.path.expanduser(override))
    appdata = os.environ.get("APPDATA")
    if appdata:
        return os.path.join(appdata, "UpdateSentinel")
    return os.path.join(os.path.expanduser("~"), ".update-sentinel")


def resolve_data(*parts: str) -> str:
    """Join *parts* onto the data directory."""
    return os.path.join(data_dir(), *parts)


def settings_path() -> str:
    return resolve_data(SETTINGS_FILE)


def managed_path() -> str:
    return resolve_data(MANAGED_FILE)


def state_db_path() -> str:
    return resolve_data(STATE_DB)


def ensure_dir(path: str) -> str:
    """Create *path* (and parents) if it doesn't exist.  Returns the path."""
    os.makedirs(path, exist_ok=True)
    return path
