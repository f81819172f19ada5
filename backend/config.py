"""
Application-wide constants and configuration.

Path resolution lives in utils/paths.py (resolve_data / ensure_dir).
This module only holds static constants.
"""

# ---------------------------------------------------------------------------
# Service metadata
# ---------------------------------------------------------------------------

MANAGER_VERSION = "1.3.0"
APP_NAME = "Update Sentinel"
GITHUB_REPO = "update-sentinel/update-sentinel"
REPORT_URL = "https://github.com/update-sentinel/update-sentinel/issues"
USER_AGENT = f"UpdateSentinel/{MANAGER_VERSION}"

# ---------------------------------------------------------------------------
# Data files (relative names only, resolved by utils/paths.py)
# ---------------------------------------------------------------------------

SETTINGS_FILE = "settings.json"
MANAGED_FILE = "managed.json"
STATE_DB = "state.db"

# ---------------------------------------------------------------------------
# Check schedule
# ---------------------------------------------------------------------------

ALARM_NAME = "update-sentinel-check"
ALARM_DEFAULT_MINUTES = 480  # 8 hours
ALARM_REPAIR_MINUTES = 720  # written back when the stored schedule is invalid
ALARM_MINIMUM_MINUTES = 240
ALARM_MINIMUM_MINUTES_DEBUG = 1

# ---------------------------------------------------------------------------
# Fetch pipeline
# ---------------------------------------------------------------------------

FETCH_TIMEOUT_SECONDS = 30.0
FETCH_MAX_RETRIES = 2
FETCH_BACKOFF_BASE_SECONDS = 1.0
FETCH_BACKOFF_MAX_JITTER = 1.0
CACHE_TTL_SECONDS = 5 * 60
LEASE_SECONDS = 2 * 60

# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------

ALERT_TYPES = ("both", "tab", "notif", "disabled")
ALERT_DEFAULT_TYPE = "both"
