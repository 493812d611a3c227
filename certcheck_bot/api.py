"""
FastAPI administrative endpoints for SSL Certificate Checker.
"""

import secrets
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Awaitable, Callable, Dict, Optional

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse

from certcheck_bot import __version__
from certcheck_bot.checker import CertificateMonitor
from certcheck_bot.config import Config
from certcheck_bot.context import RuntimeContext
from certcheck_bot.hot_reload import HotReloadManager
from certcheck_bot.logger import count_lines, get_logger, tail_log
from certcheck_bot.metrics import MetricsCollector

DEFAULT_LOG_LINES = 100


def _unauthorized(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=401,
        content={"error": "Unauthorized", "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def create_app(
    monitor: CertificateMonitor,
    metrics: MetricsCollector,
    config: Config,
    context: RuntimeContext,
    hot_reload: Optional[HotReloadManager] = None,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        monitor: Certificate monitor instance
        metrics: Metrics collector instance
        config: Configuration instance
        context: Runtime context (start time and clock)
        hot_reload: Hot reload manager, reported in health when present

    Returns:
        Configured FastAPI application
    """
    logger = get_logger("api")

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("SSL Certificate Checker API started")
        yield
        logger.info("SSL Certificate Checker API shutting down")

    app = FastAPI(
        title="SSL Certificate Checker",
        description="Administrative API for the SSL certificate expiry checker",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        lifespan=lifespan,
    )

    @app.middleware("http")
    async def bearer_auth_middleware(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        """Middleware to enforce bearer token authentication."""
        auth_header = request.headers.get("Authorization")
        if not auth_header:
            return _unauthorized("Missing Authorization header")

        parts = auth_header.split(" ")
        if len(parts) != 2 or parts[0] != "Bearer":
            return _unauthorized("Invalid Authorization header format")

        expected = config.http_auth_token or ""
        if not expected or not secrets.compare_digest(parts[1], expected):
            client_ip = request.client.host if request.client else "unknown"
            logger.warning(f"Rejected request with invalid token from {client_ip}")
            return _unauthorized("Invalid token")

        return await call_next(request)

    @app.get("/health", response_class=JSONResponse)
    async def get_health() -> JSONResponse:
        evaluator = monitor.evaluator
        status = monitor.get_status()
        health: Dict[str, Any] = {
            "status": "ok",
            "uptime": context.uptime_display(),
            "started_at": context.started_at.isoformat(),
            "checked_at": status["checked_at"],
            "domains": evaluator.domains(),
            "thresholds": evaluator.thresholds(),
            "monitor_status": status["monitor_status"],
            "last_cycle": status["last_cycle"],
            "version": __version__,
        }
        if hot_reload is not None:
            health["hot_reload"] = hot_reload.get_status()
        return JSONResponse(content=health)

    @app.get("/logs", response_class=JSONResponse)
    async def get_logs(lines: Optional[str] = None) -> JSONResponse:
        line_count = DEFAULT_LOG_LINES
        if lines is not None:
            try:
                line_count = int(lines)
            except ValueError as e:
                raise HTTPException(status_code=400, detail="Invalid lines parameter") from e
            if line_count < 1:
                raise HTTPException(status_code=400, detail="Lines parameter must be positive")

        log_path = config.log_file_path
        if log_path is None:
            raise HTTPException(status_code=500, detail="File logging is not configured")

        try:
            total = count_lines(log_path)
            logs = tail_log(log_path, line_count)
        except OSError as e:
            logger.error(f"Failed to read log file: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to read log file: {e}") from e

        return JSONResponse(
            content={
                "lines": line_count,
                "total": total,
                "logs": logs,
                "timestamp": context.now().isoformat(),
            }
        )

    @app.get("/metrics", response_class=PlainTextResponse)
    async def get_metrics() -> PlainTextResponse:
        return PlainTextResponse(content=metrics.get_metrics(), media_type=metrics.get_content_type())

    return app
