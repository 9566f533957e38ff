"""Shared fixtures for BDD feature tests.

Steps are synchronous and drive async code with ``asyncio.run``. The engine
uses ``NullPool`` so no connection outlives the event loop that opened it.
"""

from __future__ import annotations

import asyncio
import typing as typ

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from siteproof.storage import init_storage

if typ.TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncSession


@pytest.fixture
def sync_session_factory(
    tmp_path: Path,
) -> typ.Iterator[async_sessionmaker[AsyncSession]]:
    """Yield a session factory usable from several event loops."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'features.db'}", poolclass=NullPool
    )
    asyncio.run(init_storage(engine))
    try:
        yield async_sessionmaker(engine, expire_on_commit=False)
    finally:
        asyncio.run(engine.dispose())
