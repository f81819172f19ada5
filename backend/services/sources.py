"""
Per-software version sources and the logic that pulls the comparable
"latest" version out of each source's snapshot.
"""

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from services.versions import detect_long_term_variant

logger = logging.getLogger(__name__)

FLAT = "flat"
LIST = "list"
LONG_TERM = "long_term"
SOURCE_KINDS = (FLAT, LIST, LONG_TERM)


@dataclass(frozen=True)
class SourceSpec:
    """
    Where to fetch a software's release data and how to read it.

    kind:
      flat      → snapshot[field]
      list      → snapshot[0][field]
      long_term → channels = {name: snapshot[key] for key in channel_keys},
                  resolved with detect_long_term_variant
    """

    source_id: str
    url: str
    kind: str = FLAT
    field: str = ""
    channel_keys: tuple[str, ...] = ()


SOURCES: dict[str, SourceSpec] = {
    "Firefox": SourceSpec(
        source_id="Firefox",
        url="https://product-details.mozilla.org/1.0/firefox_versions.json",
        kind=LONG_TERM,
        channel_keys=("LATEST_FIREFOX_VERSION", "FIREFOX_ESR", "FIREFOX_ESR115"),
    ),
    "LibreWolf": SourceSpec(
        source_id="LibreWolf",
        url="https://gitlab.com/api/v4/projects/44042130/releases.json",
        kind=LIST,
        field="name",
    ),
    "IceCat": SourceSpec(
        source_id="IceCat",
        url="https://api.github.com/repos/ryan-steed-usa/gnu-icecat-mirror/releases/latest",
        kind=FLAT,
        field="tag_name",
    ),
}


def source_from_dict(name: str, data: Mapping[str, Any]) -> SourceSpec:
    """Build a SourceSpec from a settings entry. Raises ValueError when invalid."""
    url = data.get("url")
    kind = data.get("kind", FLAT)
    if not isinstance(url, str) or not url.startswith(("http://", "https://")):
        raise ValueError(f"source {name!r}: url must be an http(s) URL")
    if kind not in SOURCE_KINDS:
        raise ValueError(f"source {name!r}: kind must be one of {', '.join(SOURCE_KINDS)}")
    channel_keys = data.get("channel_keys") or ()
    if not isinstance(channel_keys, (list, tuple)):
        raise ValueError(f"source {name!r}: channel_keys must be a list")
    if kind == LONG_TERM and not channel_keys:
        raise ValueError(f"source {name!r}: long_term sources need channel_keys")
    field_name = data.get("field", "")
    if kind != LONG_TERM and not field_name:
        raise ValueError(f"source {name!r}: field is required")
    return SourceSpec(
        source_id=name,
        url=url,
        kind=kind,
        field=str(field_name),
        channel_keys=tuple(str(k) for k in channel_keys),
    )


def build_source_table(extra: Optional[Mapping[str, Any]] = None) -> dict[str, SourceSpec]:
    """Built-in sources plus valid entries from settings; invalid entries are skipped."""
    table = dict(SOURCES)
    for name, data in (extra or {}).items():
        if not isinstance(data, Mapping):
            logger.warning("Ignoring extra source %r: expected an object", name)
            continue
        try:
            table[name] = source_from_dict(name, data)
        except ValueError as exc:
            logger.warning("Ignoring extra source: %s", exc)
    return table


def resolve_source(software_name: str, table: Mapping[str, SourceSpec] = SOURCES) -> Optional[SourceSpec]:
    return table.get(software_name)


def extract_latest(spec: SourceSpec, snapshot: Any, current_version: str) -> Optional[str]:
    """
    Return the version string to compare the running version against.

    Returns None when the snapshot does not have the expected shape. Raises
    UnsupportedVersionError (from long-term detection) when the running
    version belongs to no known channel.
    """
    if spec.kind == LONG_TERM:
        if not isinstance(snapshot, Mapping):
            return None
        channels = {key: snapshot.get(key) for key in spec.channel_keys}
        return detect_long_term_variant(current_version, channels)

    if spec.kind == LIST:
        if not isinstance(snapshot, list) or not snapshot or not isinstance(snapshot[0], Mapping):
            return None
        value = snapshot[0].get(spec.field)
    else:
        if not isinstance(snapshot, Mapping):
            return None
        value = snapshot.get(spec.field)

    return value.strip() if isinstance(value, str) and value.strip() else None
