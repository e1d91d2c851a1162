from collections.abc import Generator
from contextlib import contextmanager

import structlog
from sqlalchemy import Engine, create_engine, text
from sqlalchemy.orm import Session

_logger = structlog.get_logger()


def create_db_engine(database_url: str) -> Engine:
    if not database_url:
        raise ValueError("Missing database URL")
    engine = create_engine(database_url, pool_pre_ping=True)
    _logger.info("db_engine_created", url=database_url.split("@")[-1])
    return engine


@contextmanager
def session_scope(engine: Engine) -> Generator[Session, None, None]:
    """Yield a session that commits on success and rolls back on error."""
    with Session(engine) as session:
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise


def init_db(engine: Engine) -> None:
    """Enable pgvector and create the chunk table when missing."""
    with engine.connect() as conn:
        conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        conn.commit()

    from requirag.rag.index.models import Base

    Base.metadata.create_all(engine)
    _logger.info("db_initialized")
