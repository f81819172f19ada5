"""
Identity of the software being watched: (name, version).

Explicit settings win. Otherwise the configured version command is run and
its output parsed, e.g. "Mozilla Firefox 128.0.3" -> ("Firefox", "128.0.3").
"""

import logging
import re
from typing import Optional

from services import settings
from utils.process import run_capture

logger = logging.getLogger(__name__)

VENDOR_PREFIXES = ("Mozilla", "GNU")
_VERSION_TOKEN = re.compile(r"^v?\d[\w.\-]*$")


def parse_version_output(output: str) -> Optional[tuple[str, str]]:
    """
    Parse "<Vendor> <Name> <version>" style output. The version is the last
    token that starts with a digit; everything before it, minus a known vendor
    prefix, is the name. Returns None when no version token is found.
    """
    lines = (output or "").strip().splitlines()
    if not lines:
        return None
    tokens = lines[0].split()
    for idx in range(len(tokens) - 1, -1, -1):
        if _VERSION_TOKEN.match(tokens[idx]):
            name_tokens = tokens[:idx]
            break
    else:
        return None
    if len(name_tokens) > 1 and name_tokens[0] in VENDOR_PREFIXES:
        name_tokens = name_tokens[1:]
    if not name_tokens:
        return None
    return " ".join(name_tokens), tokens[idx]


def resolve_identity() -> tuple[str, str]:
    name, version = settings.get_software_identity()
    if name and version:
        return name, version

    cmd = settings.get_version_command()
    if not cmd:
        logger.debug("No software identity configured")
        return name, version

    rc, out = run_capture(cmd, timeout=15)
    if rc != 0:
        logger.warning("Version command %s failed (%s): %s", cmd[0], rc, out)
        return name, version
    parsed = parse_version_output(out)
    if parsed is None:
        logger.warning("Could not read a version from %r", out)
        return name, version
    logger.debug("Identified %s %s from %s", parsed[0], parsed[1], cmd[0])
    return name or parsed[0], version or parsed[1]
