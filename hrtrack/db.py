from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from .config import settings


Base = declarative_base()


def build_engine(database_url: str, pool_timeout: int = 10, busy_timeout: int = 15) -> Engine:
    if database_url.startswith("sqlite"):
        # Requests (threadpool) and scheduled jobs share the file; writers wait up to busy_timeout
        return create_engine(
            database_url,
            future=True,
            connect_args={"check_same_thread": False, "timeout": busy_timeout},
        )
    return create_engine(
        database_url,
        future=True,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
        pool_timeout=pool_timeout,
        pool_recycle=3600,  # Recycle connections after 1 hour
    )


def build_session_factory(engine: Engine) -> sessionmaker:
    # Fresh Session per unit of work; never share one between a request and a job
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True, expire_on_commit=False)


engine = build_engine(settings.database_url, settings.db_pool_timeout, settings.db_busy_timeout)
SessionLocal = build_session_factory(engine)
