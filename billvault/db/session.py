"""
BillVault Database Session Management.

Single entry point for database initialisation plus the transactional
context manager every store operation runs in.
"""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator, Type

from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from billvault.db.base import Base, build_engine

# Dialects with INSERT ... ON CONFLICT DO UPDATE
_UPSERT_INSERTS = {
    "sqlite": sqlite_insert,
    "postgresql": postgresql_insert,
}


def init_database(url: str, echo: bool = False, create_tables: bool = True) -> sessionmaker:
    """
    Create the engine and (optionally) the tables for a document database.

    For file-backed SQLite the parent directory is created first.

    Returns:
        A ``sessionmaker`` bound to the new engine.
    """
    parsed = make_url(url)
    if parsed.drivername.startswith("sqlite") and parsed.database not in (None, "", ":memory:"):
        Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)

    engine = build_engine(url, echo=echo)
    if create_tables:
        # Import registers the tables on Base.metadata
        from billvault.db import models  # noqa: F401
        Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)


@contextmanager
def session_scope(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Context manager for sessions with auto-commit/rollback.

    Usage:
        with session_scope(factory) as session:
            row = session.get(DocumentRow, "Invoice 1")
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def dispose(session_factory: sessionmaker) -> None:
    """Close the connection pool behind a session factory. Used during shutdown."""
    engine: Engine = session_factory.kw["bind"]
    engine.dispose()


def upsert(session: Session, model: Type[Base], values: Dict[str, Any]) -> None:
    """
    Write one row, inserting it or overwriting every given column if its
    primary key is already taken.

    On SQLite and PostgreSQL this is a single ``INSERT ... ON CONFLICT DO
    UPDATE``, so two writers racing on a new key both succeed and the last
    one wins. Other dialects merge inside a savepoint and retry once as an
    update when the insert loses the race.
    """
    insert = _UPSERT_INSERTS.get(session.get_bind().dialect.name)
    if insert is None:
        try:
            with session.begin_nested():
                session.merge(model(**values))
        except IntegrityError:
            session.merge(model(**values))
        return

    keys = [column.name for column in model.__table__.primary_key.columns]
    stmt = insert(model).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=keys,
        set_={k: stmt.excluded[k] for k in values if k not in keys},
    )
    session.execute(stmt)
