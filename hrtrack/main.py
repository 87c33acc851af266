import os
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from .config import Settings, settings as default_settings
from .container import build_container
from .db import Base, build_engine, build_session_factory
from .logging import setup_logging, RequestIdMiddleware
from .routes.attendance import router as attendance_router
from .routes.checkout_monitoring import router as checkout_monitoring_router
from .routes.cron import router as cron_router
from .routes.jobs import router as jobs_router
from .services.attendance import Clock
from .services.errors import DomainError

logger = structlog.get_logger(__name__)


def error_body(code: str, message: str, **extras) -> dict:
    return {"status": "error", "code": code, "message": message, **extras}


def create_app(
    settings: Optional[Settings] = None,
    session_factory: Optional[sessionmaker] = None,
    clock: Optional[Clock] = None,
    start_scheduler: Optional[bool] = None,
) -> FastAPI:
    settings = settings or default_settings
    setup_logging(settings.log_level, settings.log_json)
    if start_scheduler is None:
        start_scheduler = settings.scheduler_enabled

    if session_factory is None:
        if settings.database_url.startswith("sqlite:///./"):
            os.makedirs("var", exist_ok=True)
        engine = build_engine(settings.database_url, settings.db_pool_timeout, settings.db_busy_timeout)
        session_factory = build_session_factory(engine)
    engine = session_factory.kw["bind"]

    # Jobs read their persisted config while being registered, so tables come first
    if settings.auto_create_db:
        Base.metadata.create_all(bind=engine)

    container = build_container(settings=settings, session_factory=session_factory, clock=clock)

    app = FastAPI(title=settings.app_name)
    app.state.container = container

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    # Errors
    @app.exception_handler(DomainError)
    async def _domain_error(request: Request, exc: DomainError):
        logger.info("domain_error", path=request.url.path, code=exc.code, message=exc.message)
        return JSONResponse(status_code=exc.status_code, content=error_body(exc.code, exc.message, **exc.extras()))

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{field}: {first.get('msg', 'invalid input')}" if field else first.get("msg", "invalid input")
        return JSONResponse(status_code=400, content=error_body("validation_error", message))

    @app.exception_handler(SQLAlchemyError)
    async def _database_error(request: Request, exc: SQLAlchemyError):
        logger.error("database_error", path=request.url.path, error=str(exc), exc_info=exc)
        return JSONResponse(status_code=500, content=error_body("internal_error", "Internal server error"))

    # Routers
    app.include_router(attendance_router)
    app.include_router(jobs_router)
    app.include_router(checkout_monitoring_router)
    app.include_router(cron_router)

    @app.get("/healthz")
    def healthz():
        with session_factory() as db:
            db.execute(text("SELECT 1"))
        return {"status": "ok", "scheduler_running": container.scheduler.running}

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.on_event("startup")
    def _startup():
        if start_scheduler:
            container.scheduler.start()
        logger.info("startup_complete", scheduler=bool(start_scheduler), tz=settings.attendance_tz)

    @app.on_event("shutdown")
    def _shutdown():
        container.scheduler.shutdown()

    return app


app = create_app()
