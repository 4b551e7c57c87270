"""
FileBox Database Session Management.

Single entry point for database initialisation plus a context manager for
transactional access.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Generator, Optional

import sqlalchemy
from sqlalchemy import text as sa_text
from sqlalchemy.orm import Session, sessionmaker

from filebox.db.base import Base, create_db_engine


def init_db(
    db_url: str,
    schema: Optional[str] = None,
    create_tables: bool = False,
    pool_size: int = 10,
    max_overflow: int = 20,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    pool_pre_ping: bool = True,
) -> sessionmaker:
    """
    Create the engine and return a session factory bound to it.

    What it does
    ────────────
    1. Creates the engine (pool settings ignored for SQLite).
    2. When ``schema`` is given (PostgreSQL), creates it if missing and sets
       ``search_path`` on every new connection.
    3. Optionally runs ``Base.metadata.create_all()`` — dev and tests only.

    Args:
        db_url:        SQLAlchemy URL (postgresql://… or sqlite://).
        schema:        Optional PostgreSQL schema for the FileBox tables.
        create_tables: Create missing tables after connecting.

    Returns:
        A ``sessionmaker`` bound to the initialised engine.
    """
    engine = create_db_engine(
        db_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        pool_pre_ping=pool_pre_ping,
    )

    if schema:
        with engine.connect() as conn:
            conn.execute(sa_text(f'CREATE SCHEMA IF NOT EXISTS "{schema}"'))
            conn.commit()

        @sqlalchemy.event.listens_for(engine, "connect")
        def set_search_path(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute(f'SET search_path TO "{schema}", public')
            cursor.close()

    if create_tables:
        Base.metadata.create_all(engine)

    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Context manager for DB sessions with auto-commit/rollback.

    Usage:
        with session_scope(factory) as session:
            row = session.get(FolderRow, folder_id)
    """
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
