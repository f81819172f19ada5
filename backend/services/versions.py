"""
Version parsing and ordering for release checks.

Versions are read as a dotted numeric core plus an optional suffix after the
first "-" (e.g. "140.0-gnu5", "v1.2.3-rc1", "128.5.0esr"). Parsing never fails:
each core component is read by its leading digits and a component without any
becomes -1, so malformed input only ever orders low.
"""

import functools
import logging
import re
from dataclasses import dataclass
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

MALFORMED_COMPONENT = -1
COMMUNITY_MARKER = "gnu"
EXTENDED_SUPPORT_MARKER = "esr"

_LEADING_INT_RE = re.compile(r"\s*\+?(\d+)")


class UnsupportedVersionError(ValueError):
    """The running version falls outside every known release channel."""

    cause = "unsupported"


@dataclass(frozen=True)
class VersionIdentifier:
    numbers: tuple[int, ...]
    suffix: Optional[str] = None


@dataclass(frozen=True)
class SuffixPolicy:
    """Tie-break policy for suffixes on equal numeric cores.

    A suffix starting with ``marker_prefix`` marks a community build (GNU
    IceCat tags its releases "-gnuN"). Such a build is considered at least as
    current as the plain release with the same numbers.
    """

    marker_prefix: Optional[str] = COMMUNITY_MARKER

    def is_marked(self, suffix: Optional[str]) -> bool:
        return bool(self.marker_prefix) and suffix is not None and suffix.startswith(self.marker_prefix)


DEFAULT_SUFFIX_POLICY = SuffixPolicy()


def _leading_int(text: str) -> Optional[int]:
    m = _LEADING_INT_RE.match(text)
    return int(m.group(1)) if m else None


def parse_version(version: str) -> VersionIdentifier:
    version = version.strip()
    base, sep, rest = version.partition("-")
    suffix = rest if sep else None
    if base.startswith("v"):
        base = base[1:]
    numbers = []
    for part in base.split("."):
        n = _leading_int(part)
        numbers.append(MALFORMED_COMPONENT if n is None else n)
    return VersionIdentifier(tuple(numbers), suffix)


def _sign(a, b) -> int:
    return (a > b) - (a < b)


def compare_identifiers(
    a: VersionIdentifier,
    b: VersionIdentifier,
    policy: SuffixPolicy = DEFAULT_SUFFIX_POLICY,
) -> int:
    width = max(len(a.numbers), len(b.numbers))
    a_nums = a.numbers + (0,) * (width - len(a.numbers))
    b_nums = b.numbers + (0,) * (width - len(b.numbers))
    for x, y in zip(a_nums, b_nums):
        if x != y:
            return _sign(x, y)

    if a.suffix is None and b.suffix is None:
        return 0

    a_marked = policy.is_marked(a.suffix)
    b_marked = policy.is_marked(b.suffix)
    if b_marked and not a_marked:
        return -1
    if a_marked and not b_marked:
        return 1

    # Released (no suffix) outranks pre-release
    if a.suffix is None:
        return 1
    if b.suffix is None:
        return -1

    a_num = _leading_int(a.suffix)
    b_num = _leading_int(b.suffix)
    if a_num is None or b_num is None:
        return _sign(b.suffix, a.suffix)
    return _sign(a_num, b_num)


def compare(a, b, policy: SuffixPolicy = DEFAULT_SUFFIX_POLICY) -> Optional[int]:
    """Order two version strings.

    Returns 1 when ``a`` is newer (or ranks as at least as current under the
    suffix policy), -1 when ``a`` is older, 0 when both are exactly equal, and
    None when either input is not a non-empty string.
    """
    if not isinstance(a, str) or not a or not isinstance(b, str) or not b:
        logger.debug("compare(): inputs must be non-empty strings, got %r and %r", a, b)
        return None
    pa = parse_version(a)
    pb = parse_version(b)
    result = compare_identifiers(pa, pb, policy)
    logger.debug("compare(): %s %s vs %s %s -> %d", a, pa, b, pb, result)
    return result


def strip_extended_marker(version: str, marker: str = EXTENDED_SUPPORT_MARKER) -> str:
    return version.split(marker)[0]


def detect_long_term_variant(
    current,
    channels,
    policy: SuffixPolicy = DEFAULT_SUFFIX_POLICY,
    marker: str = EXTENDED_SUPPORT_MARKER,
) -> str:
    """Return the release-channel value the ``current`` version belongs to.

    ``channels`` maps channel names (latest, extended support, older extended
    support...) to version strings, possibly ending in the extended-support
    marker. Channels are walked newest to oldest; the current version belongs
    to the first channel whose floor it has not fallen below. A channel's
    floor is the next-older channel's version, and the oldest channel's floor
    is its major version.

    Raises UnsupportedVersionError when the current version is older than
    every floor or when the inputs leave nothing to compare against.
    """
    if not isinstance(current, str) or not current.strip():
        raise UnsupportedVersionError("current version must be a non-empty string")
    if not isinstance(channels, Mapping) or not channels:
        raise UnsupportedVersionError("no release channels to compare against")

    entries = []
    for name, raw in channels.items():
        if not isinstance(raw, str) or not raw.strip():
            continue
        parsed = parse_version(strip_extended_marker(raw, marker))
        if parsed.numbers[0] < 0:
            logger.debug("detect_long_term_variant(): ignoring malformed channel %s=%r", name, raw)
            continue
        entries.append((name, raw, parsed))
    if not entries:
        raise UnsupportedVersionError("no usable release channels")

    entries.sort(
        key=functools.cmp_to_key(lambda x, y: compare_identifiers(x[2], y[2], policy)),
        reverse=True,
    )
    cur = parse_version(current)

    for idx, (name, raw, parsed) in enumerate(entries):
        if idx + 1 < len(entries):
            newer = compare_identifiers(cur, entries[idx + 1][2], policy) > 0
        else:
            floor = VersionIdentifier((parsed.numbers[0],))
            newer = compare_identifiers(cur, floor, policy) >= 0
        if newer:
            logger.debug("detect_long_term_variant(): %s detected for %s", name, current)
            return raw

    raise UnsupportedVersionError(
        f"cannot detect a supported release channel for version {current}"
    )
