"""
Check API routes – current verdict, manual checks, live result stream.
"""

import asyncio
import json

from fastapi import APIRouter
from fastapi.responses import StreamingResponse

from services.checker import CheckResult
from services.engine import get_engine

router = APIRouter()

PING_SECONDS = 30


@router.get("/check")
def current():
    """Return the stored verdict (no network calls)."""
    engine = get_engine()
    result = engine.orchestrator.persisted()
    if result is None:
        name, version = engine.orchestrator.identity()
        result = CheckResult(software_name=name, current_version=version)
    return result.to_store()


@router.post("/check")
def run(use_cache: bool = False):
    """Run a check now. Manual checks never raise alerts."""
    return get_engine().orchestrator.run_check(use_cache=use_cache).to_store()


@router.get("/check/events")
async def events():
    """SSE stream of "result" and "alert" events, with "ping" keep-alives."""
    broadcaster = get_engine().broadcaster

    async def generate():
        queue: asyncio.Queue = asyncio.Queue()
        loop = asyncio.get_running_loop()

        def on_event(event: str, payload: dict):
            loop.call_soon_threadsafe(queue.put_nowait, (event, payload))

        unsubscribe = broadcaster.subscribe(on_event)
        try:
            latest = broadcaster.latest()
            if latest is not None:
                yield f"event: result\ndata: {json.dumps(latest.to_store())}\n\n"
            while True:
                try:
                    event_type, data = await asyncio.wait_for(queue.get(), timeout=PING_SECONDS)
                    yield f"event: {event_type}\ndata: {json.dumps(data)}\n\n"
                except asyncio.TimeoutError:
                    yield "event: ping\ndata: {}\n\n"
        finally:
            unsubscribe()

    return StreamingResponse(generate(), media_type="text/event-stream")
