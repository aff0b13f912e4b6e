from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from uuid import uuid4

import uvicorn
from fastapi import FastAPI, Request, Response
from structlog.contextvars import bind_contextvars, reset_contextvars

from backend.app.api.routes import router
from backend.app.dependencies import get_settings, get_telemetry
from backend.app.logging_config import configure_application_logging

logger = logging.getLogger("helloworld.app")


@asynccontextmanager
async def app_lifespan(_: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    configure_application_logging(settings)
    logger.info("serving on %s:%s", settings.host, settings.port)
    yield
    logger.info("shutting down")


def create_app() -> FastAPI:
    app = FastAPI(title="Hello World API", version="1.0.0", lifespan=app_lifespan)

    async def request_context_middleware(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        telemetry = get_telemetry()
        incoming_request_id = request.headers.get("X-Request-ID")
        request_id = (
            incoming_request_id.strip()
            if isinstance(incoming_request_id, str) and incoming_request_id.strip()
            else str(uuid4())
        )
        context_tokens = bind_contextvars(
            http_request_id=request_id,
            http_method=request.method,
            http_path=request.url.path,
        )
        try:
            with telemetry.span(
                "http.request",
                request_id=request_id,
                method=request.method,
                path=request.url.path,
            ) as outcome:
                response = await call_next(request)
                outcome["status_code"] = response.status_code
        finally:
            reset_contextvars(**context_tokens)
        response.headers["X-Request-ID"] = request_id
        return response

    app.middleware("http")(request_context_middleware)
    app.include_router(router)
    return app


def serve() -> None:
    """Container entry point: run the service on the configured host and port."""
    settings = get_settings()
    uvicorn.run(
        "backend.app.main:app",
        host=settings.host,
        port=settings.port,
        log_config=None,
    )


app = create_app()
