"""
Debug API – recent log lines for troubleshooting.
"""

from typing import Optional

from fastapi import APIRouter

router = APIRouter()


@router.get("/recent-logs")
def recent_logs(limit: Optional[int] = None):
    """Return recent backend logs, newest last."""
    from utils.log_buffer import get_recent
    return {"logs": get_recent(limit)}
