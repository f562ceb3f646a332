"""
Pytest Configuration and Fixtures

Every test gets its own in-memory SQLite database (aiosqlite) with the
full schema; nothing is shared between tests.
"""
import os
import sys
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

# Add services/core to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'services', 'core'))
os.environ.setdefault("LOG_LEVEL", "WARNING")

from sqlalchemy import select  # noqa: E402

from database import create_engine, create_session_factory, init_models  # noqa: E402
from infrastructure.uow import UnitOfWork  # noqa: E402
from models import AuditEvent, ModelSet, Session, SessionPhase, User  # noqa: E402

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
T0 = datetime(2026, 2, 1, 10, 0, 0, tzinfo=timezone.utc)


class TickingClock:
    """Deterministic clock: every call advances by one second."""

    def __init__(self, start: datetime = T0, step: timedelta = timedelta(seconds=1)):
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        moment = self.current
        self.current = self.current + self.step
        return moment


@pytest_asyncio.fixture
async def engine():
    engine = create_engine(TEST_DATABASE_URL, echo=False)
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def new_uow(session_factory, clock):
    """
    Usage:
        async with new_uow() as uow:
            ...
    """
    return lambda: UnitOfWork(session_factory, clock)


async def _create_user(new_uow) -> str:
    async with new_uow() as uow:
        user = await uow.users.add(User(created_at=uow.clock()))
        return user.id


@pytest_asyncio.fixture
async def user_id(new_uow) -> str:
    return await _create_user(new_uow)


@pytest_asyncio.fixture
async def other_user_id(new_uow) -> str:
    return await _create_user(new_uow)


@pytest.fixture
def make_session(new_uow):
    """Insert a session directly, bypassing session_service (setup only)."""

    async def _make(user_id: str, phase=SessionPhase.OPENING, closed: bool = False) -> str:
        async with new_uow() as uow:
            now = uow.clock()
            session = await uow.sessions.add(Session(
                user_id=user_id,
                phase=phase,
                created_at=now,
                updated_at=now,
                closed_at=now if closed else None,
            ))
            return session.id

    return _make


@pytest.fixture
def make_model_set(new_uow):
    async def _make(user_id: str) -> str:
        async with new_uow() as uow:
            model_set = await uow.model_sets.add(ModelSet(user_id=user_id, created_at=uow.clock()))
            return model_set.id

    return _make


@pytest.fixture
def fetch_audit(session_factory):
    """All audit rows (optionally filtered by type / user), oldest first."""

    async def _fetch(event_type=None, user_id=None):
        stmt = select(AuditEvent).order_by(AuditEvent.id.asc())
        if event_type is not None:
            stmt = stmt.where(AuditEvent.event_type == event_type)
        if user_id is not None:
            stmt = stmt.where(AuditEvent.user_id == user_id)
        async with session_factory() as session:
            return list((await session.execute(stmt)).scalars().all())

    return _fetch
