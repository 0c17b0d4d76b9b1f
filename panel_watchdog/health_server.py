"""
Healthcheck endpoint.

GET /health answers 200 "OK" while the reconciliation loop keeps making
progress and 500 "STALE" once it has stalled. Everything else is 404.
Served by uvicorn on a background thread so the tick loop keeps the
main thread.
"""

import threading
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import structlog
import uvicorn

from panel_watchdog.liveness import LivenessReporter

logger = structlog.get_logger(__name__)


def create_health_app(liveness: LivenessReporter, stale_after_seconds: float) -> FastAPI:
    """Build the healthcheck app."""
    app = FastAPI(
        title="Panel Stop Watchdog",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    @app.get("/health", response_class=PlainTextResponse)
    def health():
        if liveness.is_healthy(stale_after_seconds):
            return PlainTextResponse("OK", status_code=200)

        logger.warning(
            "healthcheck_stale",
            seconds_since_progress=round(liveness.seconds_since_progress(), 1),
            stale_after_seconds=stale_after_seconds,
        )
        return PlainTextResponse("STALE", status_code=500)

    @app.exception_handler(StarletteHTTPException)
    async def plain_http_error(request, exc):
        return PlainTextResponse("", status_code=exc.status_code)

    return app


class HealthServer:
    """Runs the healthcheck app in a daemon thread."""

    def __init__(
        self,
        liveness: LivenessReporter,
        stale_after_seconds: float,
        host: str = "0.0.0.0",
        port: int = 3000,
    ):
        self.host = host
        self.port = port
        self.app = create_health_app(liveness, stale_after_seconds)
        self._server: Optional[uvicorn.Server] = None
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        config = uvicorn.Config(
            self.app,
            host=self.host,
            port=self.port,
            log_level="warning",
            access_log=False,
        )
        self._server = uvicorn.Server(config)
        self._thread = threading.Thread(
            target=self._server.run,
            name="healthcheck",
            daemon=True,
        )
        self._thread.start()

        logger.info("healthcheck_listening", host=self.host, port=self.port, path="/health")

    def stop(self, timeout: float = 5.0) -> None:
        if self._server is None:
            return

        self._server.should_exit = True
        if self._thread is not None:
            self._thread.join(timeout=timeout)

        logger.info("healthcheck_stopped")
