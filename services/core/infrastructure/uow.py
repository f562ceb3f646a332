"""
Unit of Work Pattern + Repositories - Infrastructure Layer
=========================================================

One UnitOfWork = one transaction. Services receive the uow and never manage
commits themselves, except for the blocked-mutation path which commits the
MUTATION_BLOCKED audit row before raising.
"""
from typing import Any, Generic, Optional, Sequence, Type, TypeVar

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from audit_logger import AuditSink
from clock import Clock, utc_now
from models import (
    ConfidenceState,
    ControlFlag,
    ControlScope,
    IdentityModelType,
    IdentityModelVersion,
    ModelSet,
    PressureState,
    Session,
    User,
    UserContext,
)

T = TypeVar("T")


class UnitOfWork:
    """
    Тонкий Unit of Work для управления транзакциями.

    Usage:
        async with UnitOfWork(session_factory) as uow:
            ctx = await user_context_service.ensure_user_context(uow, user_id)
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], clock: Clock = utc_now):
        self._session_factory = session_factory
        self._session: AsyncSession | None = None
        self.clock = clock

    async def __aenter__(self) -> "UnitOfWork":
        self._session = self._session_factory()
        self.audit = AuditSink(self._session, self.clock)
        self.users = UserRepository(self._session)
        self.sessions = SessionRepository(self._session)
        self.user_contexts = UserContextRepository(self._session)
        self.model_sets = ModelSetRepository(self._session)
        self.identity_versions = IdentityVersionRepository(self._session)
        self.confidence_states = ConfidenceStateRepository(self._session)
        self.pressure_states = PressureStateRepository(self._session)
        self.control_flags = ControlFlagRepository(self._session)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Commit or rollback, then close"""
        try:
            if self._session:
                if exc_type is None:
                    await self._session.commit()
                else:
                    await self._session.rollback()
        finally:
            if self._session:
                await self._session.close()
                self._session = None

    @property
    def session(self) -> AsyncSession:
        if self._session is None:
            raise RuntimeError(
                "Session not available. Use 'async with UnitOfWork() as uow:' pattern."
            )
        return self._session

    async def commit(self) -> None:
        await self.session.commit()


# =============================================================================
# REPOSITORIES
# =============================================================================

class Repository(Generic[T]):
    """CRUD over one model: add / get / find / count / update"""

    model: Type[Any]

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, entity_id) -> Optional[T]:
        stmt = select(self.model).where(self.model.id == entity_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_for_update(self, entity_id) -> Optional[T]:
        """
        Row with pessimistic lock (SELECT ... FOR UPDATE).
        """
        stmt = (
            select(self.model)
            .where(self.model.id == entity_id)
            .with_for_update()
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_first(self, *criteria, order_by: Sequence = ()) -> Optional[T]:
        stmt = select(self.model).where(*criteria).order_by(*order_by).limit(1)
        result = await self._session.execute(stmt)
        return result.scalars().first()

    async def find_many(self, *criteria, order_by: Sequence = (), limit: int | None = None) -> list[T]:
        stmt = select(self.model).where(*criteria).order_by(*order_by)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def count(self, *criteria) -> int:
        stmt = select(func.count()).select_from(self.model).where(*criteria)
        result = await self._session.execute(stmt)
        return int(result.scalar_one())

    async def add(self, entity: T) -> T:
        """Add + flush so generated ids are available"""
        self._session.add(entity)
        await self._session.flush()
        return entity

    async def update(self, entity: T, **values) -> T:
        for name, value in values.items():
            setattr(entity, name, value)
        await self._session.flush()
        return entity


class AppendOnlyRepository(Repository[T]):
    """
    Insert-only history. "Latest" = newest created_at, id as tiebreak.
    """

    async def update(self, entity: T, **values) -> T:
        raise TypeError(f"{self.model.__name__} rows are append-only and cannot be updated")

    async def latest(self, *criteria) -> Optional[T]:
        return await self.find_first(
            *criteria,
            order_by=(self.model.created_at.desc(), self.model.id.desc()),
        )


class UserRepository(Repository[User]):
    model = User


class SessionRepository(Repository[Session]):
    model = Session


class ModelSetRepository(Repository[ModelSet]):
    model = ModelSet


class UserContextRepository(Repository[UserContext]):
    model = UserContext

    async def get_by_user(self, user_id: str) -> Optional[UserContext]:
        return await self.find_first(UserContext.user_id == user_id)

    async def increment_version(self, context: UserContext, **values) -> UserContext:
        """
        context_version + 1 evaluated in the database, so concurrent resets
        cannot lose an increment.
        """
        stmt = (
            update(UserContext)
            .where(UserContext.id == context.id)
            .values(context_version=UserContext.context_version + 1, **values)
        )
        await self._session.execute(stmt)
        await self._session.refresh(context)
        return context


class IdentityVersionRepository(AppendOnlyRepository[IdentityModelVersion]):
    model = IdentityModelVersion

    async def max_version(self, model_set_id: str, type_: IdentityModelType) -> int:
        stmt = select(func.max(IdentityModelVersion.version)).where(
            IdentityModelVersion.model_set_id == model_set_id,
            IdentityModelVersion.type == type_,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() or 0

    async def latest_version(self, model_set_id: str, type_: IdentityModelType) -> Optional[IdentityModelVersion]:
        return await self.find_first(
            IdentityModelVersion.model_set_id == model_set_id,
            IdentityModelVersion.type == type_,
            order_by=(IdentityModelVersion.version.desc(),),
        )


class ConfidenceStateRepository(AppendOnlyRepository[ConfidenceState]):
    model = ConfidenceState


class PressureStateRepository(AppendOnlyRepository[PressureState]):
    model = PressureState


class ControlFlagRepository(AppendOnlyRepository[ControlFlag]):
    model = ControlFlag

    async def latest_for(self, scope: ControlScope, scope_id: str | None) -> Optional[ControlFlag]:
        scope_clause = (
            ControlFlag.scope_id.is_(None) if scope_id is None else ControlFlag.scope_id == scope_id
        )
        return await self.latest(ControlFlag.scope == scope, scope_clause)


def create_uow_provider(session_factory: async_sessionmaker[AsyncSession], clock: Clock = utc_now) -> "UoWProvider":
    """
    Фабрика для создания UoW провайдера.

    Usage in FastAPI:
        get_uow = create_uow_provider(session_factory)

        async def endpoint(uow: UnitOfWork = Depends(get_uow)):
            ...
    """
    return UoWProvider(session_factory, clock)


class UoWProvider:
    def __init__(self, factory: async_sessionmaker[AsyncSession], clock: Clock = utc_now):
        self._factory = factory
        self.clock = clock

    def __call__(self) -> UnitOfWork:
        return UnitOfWork(self._factory, self.clock)
