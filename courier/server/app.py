"""FastAPI application factory."""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Mapping, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from courier.config import CourierConfig, load_config_from_env
from courier.dispatch.contracts import Sender
from courier.engine import CourierEngine, build_engine
from courier.errors import CourierError
from courier.server.middleware.logging import RequestLoggingMiddleware
from courier.server.models.responses import ErrorDetail, ErrorResponse
from courier.server.routes.dead_letters import create_dead_letter_router
from courier.server.routes.health import create_health_router
from courier.server.routes.messages import create_message_router
from courier.state.database import DatabaseManager

logger = logging.getLogger(__name__)


def create_app(
    config: Optional[CourierConfig] = None,
    engine: Optional[CourierEngine] = None,
    db: Optional[DatabaseManager] = None,
    senders: Optional[Mapping[str, Sender]] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    When called without arguments (e.g. via uvicorn --factory), loads
    configuration from environment variables and builds its own engine.
    A prebuilt ``engine`` is used as is and left open on shutdown;
    pass its ``db`` to have the schema created on startup.
    """
    if config is None:
        config = load_config_from_env()
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    owns_engine = engine is None
    if engine is None:
        db = db or DatabaseManager(config.db_path)
        if not senders:
            logger.warning("No senders configured; every message will be dead-lettered")
        engine = build_engine(config, db, senders or {})

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if db is not None and not db.is_initialized:
            await db.initialize()
            logger.info("Database initialized at %s", db.db_path)
        yield
        if owns_engine:
            await engine.aclose()
        if db is not None:
            await db.close()

    app = FastAPI(
        title="Courier",
        description="Reliable outbound SMS, WhatsApp and email dispatch",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.engine = engine
    if config.request_logging:
        app.add_middleware(RequestLoggingMiddleware)
    app.add_exception_handler(CourierError, _courier_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.include_router(create_message_router(engine))
    app.include_router(create_health_router(engine))
    app.include_router(create_dead_letter_router(engine))
    return app


async def _courier_error_handler(request: Request, exc: CourierError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    response = ErrorResponse(error=ErrorDetail(code=exc.error_code, message=exc.message, details=exc.details))
    return JSONResponse(status_code=exc.status_code, content=response.model_dump())


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    response = ErrorResponse(error=ErrorDetail(
        code="INVALID_FORMAT", message="Request validation failed",
        details={"validation_errors": _jsonable_errors(exc)},
    ))
    return JSONResponse(status_code=422, content=response.model_dump())


def _jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in exc.errors()]
