import logging
import time
import uuid
from contextlib import contextmanager
from typing import Iterator, Optional

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from .config import settings as default_settings

logger = structlog.get_logger("hrtrack.http")


def setup_logging(level: Optional[str] = None, json_output: Optional[bool] = None) -> None:
    level = (level or default_settings.log_level).upper()
    json_output = default_settings.log_json if json_output is None else json_output
    logging.basicConfig(format="%(message)s", level=getattr(logging, level, logging.INFO))

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.dict_tracebacks,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


@contextmanager
def job_context(job_name: str) -> Iterator[str]:
    """Bind ``job`` and a fresh ``run_id`` to every log line emitted by a job run."""
    run_id = uuid.uuid4().hex[:12]
    with structlog.contextvars.bound_contextvars(job=job_name, run_id=run_id):
        yield run_id


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        started = time.perf_counter()
        with structlog.contextvars.bound_contextvars(request_id=request_id):
            response: Response = await call_next(request)
            logger.info(
                "request_completed",
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 1),
            )
        response.headers["X-Request-ID"] = request_id
        return response
