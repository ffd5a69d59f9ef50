import sys
from pathlib import Path

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()

from repaircoin_api.app import create_app  # noqa: E402
from repaircoin_api.db.base import Base  # noqa: E402
from repaircoin_api.db.session import get_session  # noqa: E402
from repaircoin_api.services.cleanup import CleanupConfig, CleanupService  # noqa: E402


@pytest_asyncio.fixture
async def session_factory():
    # One shared connection so services that open their own sessions see the same data.
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as db_session:
        yield db_session


@pytest_asyncio.fixture
async def app_with_db(session_factory):
    app = create_app()

    async def override_get_session():
        async with session_factory() as db_session:
            yield db_session

    app.dependency_overrides[get_session] = override_get_session
    app.state.cleanup_service = CleanupService(session_factory, default_config=CleanupConfig())

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()
