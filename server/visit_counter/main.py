"""Visit counter server main entry point.

This is the only file that knows about concrete implementations.
It wires together the core, cache, storage, and API layers, and owns the
process lifecycle.
"""

from __future__ import annotations

import asyncio
import logging
import sys
import time
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI

from visit_counter.api.middleware import install_middleware
from visit_counter.api.monitoring import router as monitoring_router
from visit_counter.api.visits import router as visits_router
from visit_counter.cache.memory_cache import MemoryCountCache
from visit_counter.config import AppConfig, load_config
from visit_counter.core.counter import VisitCounter, ensure_visit_record
from visit_counter.core.ratelimit import RateLimiter
from visit_counter.errors import ConfigError, StoreError
from visit_counter.storage.base import VisitStorage
from visit_counter.storage.memory_storage import MemoryVisitStorage
from visit_counter.storage.mongo_storage import MongoVisitStorage

log = structlog.get_logger()


class FatalError(Exception):
    """An unhandled asynchronous error reported by the event loop."""


def setup_logging(config: AppConfig) -> None:
    """Configure structlog to write to the console and the log file."""
    level = logging.getLevelName(str(config.logging.level).upper())

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if config.logging.file:
        handlers.append(logging.FileHandler(config.logging.file, mode="a", encoding="utf-8"))
    logging.basicConfig(format="%(message)s", level=level, handlers=handlers, force=True)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if config.logging.format == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=False,
    )


def build_storage(config: AppConfig) -> VisitStorage:
    if config.storage.backend == "memory":
        return MemoryVisitStorage()
    return MongoVisitStorage(
        config.storage.mongo_uri,
        collection=config.storage.collection,
        server_selection_timeout_ms=config.storage.server_selection_timeout_ms,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    config: AppConfig = app.state.config

    log.info("server_starting",
             env=config.server.env,
             storage_backend=config.storage.backend,
             cache_ttl_seconds=config.cache.ttl_seconds)

    # Create components
    storage = build_storage(config)
    cache = MemoryCountCache(
        ttl_seconds=config.cache.ttl_seconds,
        check_period_seconds=config.cache.check_period_seconds,
    )
    app.state.storage = storage
    app.state.counter = VisitCounter(storage=storage, cache=cache)

    await storage.connect()
    try:
        await ensure_visit_record(storage)
    except StoreError:
        # Keep serving; readiness reports the store as down.
        log.error("visit_record_init_failed", exc_info=True)

    cleanup_task = asyncio.create_task(cache.run_cleanup())

    log.info("server_started",
             host=config.server.host,
             port=config.server.port)

    yield

    # Shutdown
    log.info("server_stopping")
    cleanup_task.cancel()
    try:
        await cleanup_task
    except asyncio.CancelledError:
        pass
    await storage.close()
    log.info("server_stopped")


def create_app(config: AppConfig | None = None) -> FastAPI:
    """Build the application. Loads and validates config when none is given."""
    if config is None:
        config = load_config()

    app = FastAPI(
        title="Visit Counter",
        description="Persistent visit counter with an in-memory cache",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.started_at = time.monotonic()
    app.state.storage = None
    app.state.counter = None
    app.state.rate_limiter = RateLimiter(
        max_requests=config.limits.rate_limit_max_requests,
        window_seconds=config.limits.rate_limit_window_seconds,
    )

    install_middleware(app)
    app.include_router(monitoring_router)
    app.include_router(visits_router)
    return app


async def serve(server: uvicorn.Server) -> None:
    """Run the server, treating errors the event loop reports as fatal."""
    failures: list[BaseException] = []

    def on_unhandled(loop: asyncio.AbstractEventLoop, context: dict) -> None:
        exc = context.get("exception")
        if exc is None:
            exc = FatalError(context.get("message"))
        log.critical("unhandled_async_error",
                     message=context.get("message"),
                     exc_info=exc)
        failures.append(exc)
        server.should_exit = True
        server.force_exit = True

    asyncio.get_running_loop().set_exception_handler(on_unhandled)
    await server.serve()
    if failures:
        raise FatalError("unhandled asynchronous error") from failures[0]
    if not server.started:
        raise FatalError("server failed to start")


def run() -> None:
    """Console entry point: load config, serve, and map failures to exit codes."""
    try:
        config = load_config()
    except ConfigError as exc:
        log.critical("config_invalid", error=str(exc))
        sys.exit(1)

    setup_logging(config)
    server = uvicorn.Server(uvicorn.Config(
        create_app(config),
        host=config.server.host,
        port=config.server.port,
        log_config=None,
        access_log=False,
    ))

    try:
        asyncio.run(serve(server))
    except KeyboardInterrupt:
        pass
    except Exception:
        log.critical("uncaught_exception", exc_info=True)
        sys.exit(1)
    log.info("shutdown_complete")
    sys.exit(0)


if __name__ == "__main__":
    run()
