"""
Update Sentinel – FastAPI backend.
Watches the installed software for new releases and serves the verdict to UIs.
"""

import argparse
import asyncio
import contextlib
import logging
import os
import socket
import sys

from config import APP_NAME, MANAGER_VERSION

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_logging_configured = False


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description=f"{APP_NAME} Backend")
    parser.add_argument("--port", type=int, default=21480, help="Port to listen on")
    parser.add_argument(
        "--data-dir",
        type=str,
        default=None,
        help="Directory for settings.json, managed.json and state.db",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Verbose logging and a 1 minute minimum check interval",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Auto-reload on file changes (dev only)",
    )
    return parser.parse_args(argv)


def configure_logging(debug: bool | None = None) -> None:
    """Send logs to stderr and to the in-memory buffer behind /api/debug/recent-logs."""
    global _logging_configured
    from services.settings import debug_enabled
    from utils.log_buffer import BufferHandler

    if debug is None:
        debug = debug_enabled()
    level = logging.DEBUG if debug else logging.INFO
    root = logging.getLogger()
    root.setLevel(level)
    if _logging_configured:
        return

    formatter = logging.Formatter(LOG_FORMAT)
    stream = logging.StreamHandler(sys.stderr)
    stream.setFormatter(formatter)
    buffer = BufferHandler()
    buffer.setFormatter(formatter)
    root.addHandler(stream)
    root.addHandler(buffer)
    # Keep third-party request logging out of the buffer unless debugging
    logging.getLogger("urllib3").setLevel(logging.DEBUG if debug else logging.WARNING)
    _logging_configured = True


def find_free_port(start: int) -> int:
    """Find a free TCP port starting from *start*."""
    for port in range(start, start + 100):
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
                s.bind(("127.0.0.1", port))
                return port
        except OSError:
            continue
    raise RuntimeError(f"No free port found in range {start}-{start + 99}")


def create_app():
    configure_logging()

    from fastapi import FastAPI
    from fastapi.middleware.cors import CORSMiddleware

    from api.checker import router as checker_router
    from api.debug_routes import router as debug_router
    from api.info import router as info_router
    from api.settings_routes import router as settings_router

    logger = logging.getLogger(__name__)

    @contextlib.asynccontextmanager
    async def lifespan(app):
        from services import engine as engine_svc
        from services import settings

        engine = engine_svc.get_engine()
        engine.alarms.start()
        settings.repair()
        engine_svc.reapply_schedule(engine, force_recreate=True)

        async def initial_check():
            try:
                await asyncio.to_thread(engine_svc.startup_check, engine)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Startup check failed")

        task = asyncio.create_task(initial_check())
        logger.info("%s %s started", APP_NAME, MANAGER_VERSION)
        yield
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        engine.alarms.stop()

    app = FastAPI(title=f"{APP_NAME} Backend", version=MANAGER_VERSION, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(checker_router, prefix="/api", tags=["check"])
    app.include_router(info_router, prefix="/api", tags=["info"])
    app.include_router(settings_router, prefix="/api", tags=["settings"])
    app.include_router(debug_router, prefix="/api/debug", tags=["debug"])

    @app.get("/api/health")
    async def health():
        return {"ok": True}

    return app


# Module-level app for uvicorn "main:app" (required for --reload)
app = create_app()


def main(argv=None):
    args = parse_args(argv)

    # Passed through the environment so the reload subprocess sees them too
    if args.data_dir:
        os.environ["UPDATE_SENTINEL_HOME"] = os.path.abspath(args.data_dir)
    if args.debug:
        os.environ["UPDATE_SENTINEL_DEBUG"] = "1"
        configure_logging(debug=True)

    port = find_free_port(args.port)

    # Signal to the launching UI that the backend is ready
    print(f"BACKEND_READY:{port}", flush=True)

    import uvicorn

    if args.reload:
        # Uvicorn requires import string for reload to work
        uvicorn.run(
            "main:app",
            host="127.0.0.1",
            port=port,
            log_level="warning",
            reload=True,
        )
    else:
        uvicorn.run(app, host="127.0.0.1", port=port, log_level="warning")


if __name__ == "__main__":
    main()
