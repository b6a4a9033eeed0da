"""
FastAPI application factory.

Startup order
-------------
1. Config validated (on import of `luminax.core.config.config`)
2. ServiceContainer.initialize(): database, Redis, identity, services
3. Routers mounted, exception handlers registered

Shutdown runs the container teardown in reverse.
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from luminax.api.errors import register_exception_handlers
from luminax.api.routes import ROUTERS
from luminax.core.config.config import Config
from luminax.core.logging.logger import LogContext, get_logger
from luminax.core.services.container import ServiceContainer

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Build the API around `container` (a fresh one from static config when
    omitted). The container is initialized by the lifespan hook.
    """
    container = container or ServiceContainer()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        start = time.perf_counter()
        logger.info("========== LUMINAX API STARTUP ==========")
        await container.initialize()
        logger.info(
            "API ready",
            extra={
                "config": Config.get_config_summary(),
                "startup_time_seconds": round(time.perf_counter() - start, 3),
            },
        )
        try:
            yield
        finally:
            logger.info("========== LUMINAX API SHUTDOWN ==========")
            await container.shutdown()

    app = FastAPI(
        title=Config.APP_NAME,
        version=Config.APP_VERSION,
        debug=Config.DEBUG,
        lifespan=lifespan,
    )
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=Config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER, "Retry-After"],
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next) -> Response:
        route = f"{request.method} {request.url.path}"
        incoming_id = request.headers.get(REQUEST_ID_HEADER)

        async with LogContext(route=route, component="api", request_id=incoming_id) as ctx:
            start = time.perf_counter()
            response = await call_next(request)
            duration_ms = round((time.perf_counter() - start) * 1000, 2)

            response.headers[REQUEST_ID_HEADER] = ctx.context["request_id"]
            logger.info(
                "Request completed",
                extra={"status_code": response.status_code, "duration_ms": duration_ms},
            )
            return response

    register_exception_handlers(app)
    for router in ROUTERS:
        app.include_router(router)

    return app
