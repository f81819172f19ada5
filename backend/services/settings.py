"""
Persistent application settings stored in <data dir>/settings.json.

An administrator may also drop a managed.json next to it; keys found there
override the user's values and cannot be changed through the API.

This module only imports config and utils.paths to avoid circular
dependencies (the check engine reads settings through plain functions).
"""

import json
import logging
import os
from typing import Any, Optional

from config import (
    ALARM_MINIMUM_MINUTES,
    ALARM_MINIMUM_MINUTES_DEBUG,
    ALARM_REPAIR_MINUTES,
    ALERT_DEFAULT_TYPE,
    ALERT_TYPES,
)
from utils.paths import ensure_dir, managed_path, settings_path

logger = logging.getLogger(__name__)

MANAGED_KEYS = ("alert_type", "alarm_schedule")
# Set by the unsupported-software escalation; outranks the managed policy
ESCALATED_KEY = "unsupported_escalation"
# Changing any of these lets scheduled checks resume after an escalation
RESUME_KEYS = ("alarm_schedule", "software_name", "software_version", "version_command", "extra_sources")
DEFAULTS = {
    "alert_type": ALERT_DEFAULT_TYPE,
    "alarm_schedule": str(ALARM_REPAIR_MINUTES),
}

_cache: dict | None = None


def _load() -> dict:
    global _cache
    path = settings_path()
    if os.path.isfile(path):
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            logger.warning("Could not read %s (%s), starting from defaults", path, exc)
            data = {}
        _cache = data if isinstance(data, dict) else {}
    else:
        _cache = {}
    return _cache


def _save(data: dict) -> None:
    global _cache
    path = settings_path()
    ensure_dir(os.path.dirname(path))
    tmp = path + ".tmp"
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
    os.replace(tmp, path)
    _cache = data


def load() -> dict:
    if _cache is None:
        return _load()
    return _cache


def reload() -> dict:
    """Drop the in-memory copy and read settings.json again."""
    return _load()


def get_all() -> dict:
    """Return a copy of all settings with managed values applied."""
    data = dict(load())
    data.update(get_managed())
    if is_escalated():
        data["alert_type"] = "both"
        data["alarm_schedule"] = "0"
    return data


def debug_enabled() -> bool:
    return os.environ.get("UPDATE_SENTINEL_DEBUG", "").lower() in ("1", "true", "yes", "on")


def alarm_minimum() -> int:
    return ALARM_MINIMUM_MINUTES_DEBUG if debug_enabled() else ALARM_MINIMUM_MINUTES


# -- Managed policy -----------------------------------------------------------

def get_managed() -> dict:
    """Return administrator-managed values ({} when no policy file exists)."""
    path = managed_path()
    if not os.path.isfile(path):
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable managed policy %s: %s", path, exc)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring managed policy %s: expected an object", path)
        return {}
    return {k: data[k] for k in MANAGED_KEYS if k in data}


def is_managed() -> bool:
    return bool(get_managed())


# -- Validation ---------------------------------------------------------------

def is_valid_alert_type(value: Any) -> bool:
    return value in ALERT_TYPES


def is_valid_alarm_schedule(value: Any) -> bool:
    """Minutes as a digit string; "0" disables the schedule."""
    if not isinstance(value, str) or not value.isdigit():
        return False
    minutes = int(value)
    return minutes == 0 or minutes >= alarm_minimum()


_VALIDATORS = {
    "alert_type": is_valid_alert_type,
    "alarm_schedule": is_valid_alarm_schedule,
}


def repair() -> dict:
    """
    Reset invalid stored values to their defaults, in place.

    Returns {key: default} for every corrected key. Each correction is logged
    as a warning.
    """
    s = load()
    corrections = {}
    for key, default in DEFAULTS.items():
        value = s.get(key)
        if not _VALIDATORS[key](value):
            logger.warning("Setting %s has invalid value %r, resetting to %r", key, value, default)
            corrections[key] = default
    if corrections:
        _save({**s, **corrections})
    return corrections


# -- Alerts and schedule ------------------------------------------------------

def get_alert_type() -> str:
    if is_escalated():
        return "both"
    managed = get_managed()
    if "alert_type" in managed:
        return managed["alert_type"]
    return load().get("alert_type", ALERT_DEFAULT_TYPE)


def get_alarm_schedule() -> Any:
    """Raw stored schedule value; the scheduler clamps values it cannot use."""
    if is_escalated():
        return "0"
    managed = get_managed()
    if "alarm_schedule" in managed:
        return managed["alarm_schedule"]
    return load().get("alarm_schedule")


def update(data: dict) -> dict:
    """
    Validate and store the given keys. Raises ValueError naming the first
    invalid key; nothing is written in that case.
    """
    for key, value in data.items():
        validator = _VALIDATORS.get(key)
        if validator and not validator(value):
            raise ValueError(f"Invalid value for {key}: {value!r}")
    s = dict(load())
    s.update(data)
    if s.get(ESCALATED_KEY) and any(k in data for k in RESUME_KEYS):
        del s[ESCALATED_KEY]
        if "alarm_schedule" not in data:
            s["alarm_schedule"] = DEFAULTS["alarm_schedule"]
        logger.info("Configuration changed, scheduled checks resume")
    _save(s)
    return get_all()


def disable_checks_and_force_alerts() -> None:
    """Escalation for unsupported software: alert everywhere, stop polling."""
    s = dict(load())
    s["alert_type"] = "both"
    s["alarm_schedule"] = "0"
    s[ESCALATED_KEY] = True
    _save(s)


def is_escalated() -> bool:
    return bool(load().get(ESCALATED_KEY))


# -- Software identity --------------------------------------------------------

def get_software_identity() -> tuple[str, str]:
    """Return the configured (name, version), empty strings when unset."""
    s = load()
    return str(s.get("software_name") or ""), str(s.get("software_version") or "")


def get_version_command() -> Optional[list[str]]:
    """Command whose output names the running software, e.g. ["firefox", "--version"]."""
    cmd = load().get("version_command")
    if isinstance(cmd, str) and cmd.strip():
        return cmd.split()
    if isinstance(cmd, list) and cmd and all(isinstance(c, str) for c in cmd):
        return list(cmd)
    return None


# -- Extra sources ------------------------------------------------------------

def get_extra_sources() -> dict:
    """Return {software_name: {url, kind, field?, channel_keys?}} added by the user."""
    extra = load().get("extra_sources", {})
    return dict(extra) if isinstance(extra, dict) else {}
