"""
BillVault Database Base — SQLAlchemy declarative base and engine factory.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all BillVault tables."""
    pass


def build_engine(url: str, echo: bool = False, **kwargs: Any) -> Engine:
    """
    Create an engine for the local document database.

    SQLite connections are shared with worker threads (store operations run
    through ``asyncio.to_thread``), so ``check_same_thread`` is disabled.
    An in-memory SQLite URL gets a StaticPool so every session sees the
    same database.
    """
    if url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs.setdefault("poolclass", StaticPool)
        return create_engine(url, echo=echo, connect_args=connect_args, **kwargs)
    return create_engine(url, echo=echo, pool_pre_ping=True, **kwargs)
