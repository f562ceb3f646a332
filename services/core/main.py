"""
AA-OS Governance Core - FastAPI application factory

Run:
    uvicorn main:create_app --factory --host 0.0.0.0 --port 8000

The storage handle is passed in, never module-global: tests hand
create_app() an in-memory session factory.
"""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from api.endpoints.control import router as control_router
from api.endpoints.projections import router as projections_router
from api.endpoints.session import router as session_router
from api.endpoints.system import router as system_router
from api.endpoints.user_context import router as user_context_router
from api.errors import map_exception_to_http
from api.middleware import LoggingMiddleware, cors_options
from clock import Clock, utc_now
from database import close_db_connections, create_engine, create_session_factory, init_models
from exceptions import BaseGovernanceException
from infrastructure.uow import create_uow_provider
from logging_config import get_logger, log_error
from projections import create_projection_executor
from schemas import HealthResponse

logger = get_logger(__name__)


def create_app(
    session_factory: async_sessionmaker[AsyncSession] = None,
    clock: Clock = utc_now,
) -> FastAPI:
    engine = None
    if session_factory is None:
        engine = create_engine()
        session_factory = create_session_factory(engine)

    app = FastAPI(title="AA-OS Governance Core")

    app.state.uow_provider = create_uow_provider(session_factory, clock)
    app.state.projection_executor = create_projection_executor(session_factory, clock)

    # SECURITY: Limit CORS to specific origins
    app.add_middleware(CORSMiddleware, **cors_options())
    app.add_middleware(LoggingMiddleware)

    app.include_router(control_router)
    app.include_router(session_router)
    app.include_router(system_router)
    app.include_router(user_context_router)
    app.include_router(projections_router)

    @app.exception_handler(BaseGovernanceException)
    async def governance_exception_handler(request: Request, exc: BaseGovernanceException):
        http_exc = map_exception_to_http(exc)
        if http_exc.status_code >= 500:
            log_error(exc, {"path": request.url.path})
        return JSONResponse(status_code=http_exc.status_code, content={"detail": http_exc.detail})

    @app.get("/health", response_model=HealthResponse)
    async def health():
        registry = app.state.projection_executor.registry
        return {"status": "ok", "projections": [name.value for name in registry.list()]}

    if engine is not None:
        @app.on_event("startup")
        async def startup():
            # create_all is a no-op for tables that already exist
            await init_models(engine)
            logger.info("governance_core_online")

        @app.on_event("shutdown")
        async def shutdown():
            await close_db_connections(engine)

    return app
