"""
Check for newer Update Sentinel releases via the GitHub Releases API.
"""

import logging

import requests
from packaging.version import InvalidVersion, Version

from config import GITHUB_REPO, MANAGER_VERSION, USER_AGENT

logger = logging.getLogger(__name__)


def check_manager_update_sync(session=None) -> dict:
    """Synchronous check for the API layer. Failures read as "no update"."""
    http = session or requests
    no_update = {
        "update_available": False,
        "current_version": MANAGER_VERSION,
        "latest_version": MANAGER_VERSION,
        "download_url": "",
    }
    try:
        url = f"https://api.github.com/repos/{GITHUB_REPO}/releases/latest"
        resp = http.get(url, timeout=8, headers={"User-Agent": USER_AGENT})
        resp.raise_for_status()
        data = resp.json()
    except (requests.RequestException, ValueError) as exc:
        logger.info("Self-update check failed: %s", exc)
        return no_update

    if not isinstance(data, dict):
        logger.info("Self-update check got an unexpected %s body", type(data).__name__)
        return no_update
    tag = str(data.get("tag_name") or "").lstrip("v")
    try:
        newer = bool(tag) and Version(tag) > Version(MANAGER_VERSION)
    except InvalidVersion:
        logger.warning("Ignoring release with unparsable tag %r", tag)
        return no_update
    if not newer:
        return no_update
    return {
        "update_available": True,
        "current_version": MANAGER_VERSION,
        "latest_version": tag,
        "download_url": data.get("html_url", ""),
    }
