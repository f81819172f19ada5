"""
Info API routes – application metadata and self-update check.
"""

from fastapi import APIRouter

from config import APP_NAME, GITHUB_REPO, MANAGER_VERSION, REPORT_URL
from services import github as gh
from services.engine import get_engine
from services.sources import SOURCES

router = APIRouter()


@router.get("/info")
def info():
    engine = get_engine()
    name, version = engine.orchestrator.identity()
    trigger = engine.reconciler.alarms.get(engine.reconciler.name)
    return {
        "app_name": APP_NAME,
        "manager_version": MANAGER_VERSION,
        "github_repo": GITHUB_REPO,
        "report_url": REPORT_URL,
        "software_name": name,
        "software_version": version,
        "supported": name in engine.orchestrator.sources,
        "builtin_sources": sorted(SOURCES),
        "next_check": trigger.scheduled_time if trigger else None,
        "check_interval_minutes": trigger.period_minutes if trigger else 0,
    }


@router.get("/info/manager-update")
def manager_update():
    """Check GitHub for a newer release (synchronous)."""
    return gh.check_manager_update_sync()
