"""
FastAPI application factory with engine lifecycle management.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from assistant_core.config import settings
from assistant_core.container import AssistantServices, build_services
from assistant_core.infrastructure.observability.logging import get_logger, setup_logging
from assistant_core.routes import assistant, health
from assistant_core.services.errors import ErrorCategory, USER_MESSAGES

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


def create_app(services: AssistantServices | None = None) -> FastAPI:
    """Build the HTTP app around one engine instance."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = app.state.services
        logger.info("Application starting", environment=settings.environment, debug=settings.debug)
        await engine.start()

        yield

        logger.info("Application shutting down")
        await engine.close()
        logger.info("All services closed")

    app = FastAPI(
        title="Assistant Core",
        description="Decides when an AI assistant joins a conversation and delivers its replies",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.services = services or build_services(settings)

    app.include_router(health.router)
    app.include_router(assistant.router)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.warning("Invalid request", path=request.url.path, errors=len(exc.errors()))
        return JSONResponse(
            status_code=422,
            content={
                "detail": USER_MESSAGES[ErrorCategory.INVALID_REQUEST],
                "errors": [
                    {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
                    for err in exc.errors()
                ],
            },
        )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log HTTP requests with timing."""
        start_time = time.time()
        response = await call_next(request)
        process_time = (time.time() - start_time) * 1000

        logger.info(
            "HTTP request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(process_time, 2),
        )
        return response

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
