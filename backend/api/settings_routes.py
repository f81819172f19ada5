"""
Settings API routes – read/write alerting, schedule and identity settings.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from services import engine as engine_svc
from services import settings
from services.sources import build_source_table, source_from_dict

router = APIRouter()
logger = logging.getLogger(__name__)


class UpdateSettingsRequest(BaseModel):
    alert_type: Optional[str] = None
    alarm_schedule: Optional[str] = None
    software_name: Optional[str] = None
    software_version: Optional[str] = None
    version_command: Optional[str] = None
    extra_sources: Optional[dict[str, Any]] = None


@router.get("/settings")
def get_settings():
    data = settings.get_all()
    data["managed"] = sorted(settings.get_managed())
    data["alarm_minimum"] = settings.alarm_minimum()
    data["sources"] = sorted(build_source_table(settings.get_extra_sources()))
    return data


@router.put("/settings")
def update_settings(body: UpdateSettingsRequest):
    changes = body.model_dump(exclude_none=True)
    locked = sorted(set(changes) & set(settings.get_managed()))
    if locked:
        raise HTTPException(409, f"Managed by policy: {', '.join(locked)}")
    try:
        for name, spec in (body.extra_sources or {}).items():
            if not isinstance(spec, dict):
                raise ValueError(f"source {name!r}: expected an object")
            source_from_dict(name, spec)
        data = settings.update(changes)
    except ValueError as exc:
        raise HTTPException(422, str(exc))

    engine = engine_svc.get_engine()
    if "extra_sources" in changes:
        engine_svc.refresh_sources(engine)
    engine_svc.reapply_schedule(engine)
    logger.info("Settings updated: %s", ", ".join(sorted(changes)) or "nothing")
    return data
