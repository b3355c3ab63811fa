"""
Graceful shutdown handling.
Ensures in-flight requests complete and the database pool is released.
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Callable

logger = logging.getLogger("webide.shutdown")


class GracefulShutdownManager:
    """
    Manages graceful shutdown of the application.

    - Tracks in-flight requests
    - Waits (up to a timeout) for them to finish
    - Runs cleanup callbacks such as disposing the database engine
    """

    def __init__(self, timeout: float = 30):
        self._shutdown_requested = False
        self._timeout = timeout
        self._shutdown_callbacks: list[Callable] = []
        self._request_count = 0
        self._lock = asyncio.Lock()

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown_requested

    @property
    def pending_requests(self) -> int:
        return self._request_count

    async def increment_requests(self) -> None:
        async with self._lock:
            self._request_count += 1

    async def decrement_requests(self) -> None:
        async with self._lock:
            self._request_count -= 1

    def add_shutdown_callback(self, callback: Callable) -> None:
        """Register a callback (sync or async) to run during shutdown."""
        self._shutdown_callbacks.append(callback)

    async def shutdown(self) -> None:
        """
        Perform graceful shutdown.
        Waits for in-flight requests and runs cleanup callbacks; safe to call twice.
        """
        if self._shutdown_requested:
            return

        self._shutdown_requested = True
        logger.info("Graceful shutdown initiated...")

        loop = asyncio.get_running_loop()
        start_time = loop.time()
        while self._request_count > 0:
            if loop.time() - start_time > self._timeout:
                logger.warning(f"Shutdown timeout reached with {self._request_count} pending requests")
                break
            logger.info(f"Waiting for {self._request_count} pending requests...")
            await asyncio.sleep(0.1)

        logger.info(f"Running {len(self._shutdown_callbacks)} shutdown callbacks...")
        for callback in self._shutdown_callbacks:
            try:
                result = callback()
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                # One failing callback must not keep the others from releasing their resources
                logger.error(f"Error in shutdown callback: {e}")

        logger.info("Graceful shutdown complete")


@asynccontextmanager
async def lifespan_manager(app):
    """
    FastAPI lifespan for startup/shutdown.

    Expects app.state.settings, app.state.db and app.state.shutdown_manager,
    all set by the application factory.
    """
    settings = app.state.settings
    database = app.state.db
    shutdown_manager: GracefulShutdownManager = app.state.shutdown_manager

    logger.info(f"{settings.PROJECT_NAME} starting up ({settings.ENVIRONMENT})...")

    if settings.AUTO_CREATE_TABLES:
        logger.info("AUTO_CREATE_TABLES is set; creating missing tables")
        await database.create_all()

    async def cleanup_database():
        logger.info("Closing database connections...")
        await database.dispose()
        logger.info("Database connections closed")

    shutdown_manager.add_shutdown_callback(cleanup_database)
    logger.info("Application startup complete")

    try:
        yield
    finally:
        logger.info("Application shutting down...")
        await shutdown_manager.shutdown()


_SHUTTING_DOWN_BODY = json.dumps({
    "error": {"code": "SERVICE_UNAVAILABLE", "message": "Service is shutting down", "details": None},
}).encode()


class RequestTrackingMiddleware:
    """Tracks in-flight requests and refuses new ones with 503 once shutdown starts."""

    def __init__(self, app, shutdown_manager: GracefulShutdownManager):
        self.app = app
        self.shutdown_manager = shutdown_manager

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        if self.shutdown_manager.shutdown_requested:
            await send({
                "type": "http.response.start",
                "status": 503,
                "headers": [
                    (b"content-type", b"application/json"),
                    (b"connection", b"close"),
                    (b"retry-after", b"5"),
                ],
            })
            await send({"type": "http.response.body", "body": _SHUTTING_DOWN_BODY})
            return

        await self.shutdown_manager.increment_requests()
        try:
            await self.app(scope, receive, send)
        finally:
            await self.shutdown_manager.decrement_requests()
