"""Repository pattern implementation for the replays feature.

Every method works on the session it was constructed with; callers decide
whether that is a primary (write) session or a read-replica session.
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional, Sequence

import structlog
from sqlalchemy import ARRAY, Select, String, any_, cast, select, text, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import DatabaseError

from .orm_models import FINGERPRINT_CONSTRAINT, GameMapORM, HeroORM, ReplayORM
from .queries import detail_load_options

logger = structlog.get_logger(__name__)


class DuplicateFingerprintError(Exception):
    """A concurrent upload already stored this fingerprint."""

    def __init__(self, fingerprint: str):
        super().__init__(f"Fingerprint already stored: {fingerprint}")
        self.fingerprint = fingerprint


def is_fingerprint_violation(error: IntegrityError) -> bool:
    """Whether an integrity error comes from the fingerprint uniqueness constraint."""
    return FINGERPRINT_CONSTRAINT in str(error.orig)


class ReplayRepositoryInterface(ABC):
    """Interface for replay repository following Repository pattern."""

    @abstractmethod
    async def find_by_column(self, column: str, value: str) -> Optional[ReplayORM]:
        """Get the replay whose ``column`` equals ``value``.

        Args:
            column: ``fingerprint`` or ``fingerprint_old``
            value: Exact value to match

        Returns:
            ReplayORM if found, None otherwise
        """
        pass

    @abstractmethod
    async def find_existing_fingerprints(self, fingerprints: Iterable[str]) -> set[str]:
        """Return the subset of ``fingerprints`` that are stored."""
        pass

    @abstractmethod
    async def get_detail(self, replay_id: int) -> Optional[ReplayORM]:
        """Get a replay with map, bans and players fully loaded."""
        pass

    @abstractmethod
    async def list_replays(self, stmt: Select) -> list[ReplayORM]:
        """Execute a catalog query under the read-only execution limits."""
        pass

    @abstractmethod
    async def create(self, replay: ReplayORM) -> ReplayORM:
        """Persist a new replay and its sub-records in one transaction.

        Raises:
            DuplicateFingerprintError: The fingerprint was stored concurrently
            DatabaseError: Any other storage failure
        """
        pass

    @abstractmethod
    async def get_or_create_map(self, name: str) -> GameMapORM:
        pass

    @abstractmethod
    async def get_or_create_heroes(self, names: Iterable[str]) -> Dict[str, HeroORM]:
        pass

    @abstractmethod
    async def set_relay_status(self, replay_id: int, status: str) -> None:
        pass


class SQLAlchemyReplayRepository(ReplayRepositoryInterface):
    """SQLAlchemy implementation of replay repository."""

    def __init__(self, db: AsyncSession, query_timeout_ms: Optional[int] = None):
        """Initialize repository with database session.

        Args:
            db: SQLAlchemy async session
            query_timeout_ms: Statement timeout applied to catalog queries
        """
        self.db = db
        self.query_timeout_ms = query_timeout_ms

    async def find_by_column(self, column: str, value: str) -> Optional[ReplayORM]:
        """Get the replay whose ``column`` equals ``value``."""
        stmt = select(ReplayORM).where(getattr(ReplayORM, column) == value).limit(1)
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise DatabaseError(
                str(e),
                service="ReplayRepository",
                operation="find_by_column",
                context={"column": column},
                original_error=e,
            ) from e
        return result.scalars().first()

    async def find_existing_fingerprints(self, fingerprints: Iterable[str]) -> set[str]:
        """Single indexed lookup over the canonical fingerprint column."""
        values = list(fingerprints)
        if not values:
            return set()

        # One array parameter regardless of list size
        stmt = select(ReplayORM.fingerprint).where(
            ReplayORM.fingerprint == any_(cast(values, ARRAY(String)))
        )
        result = await self.db.execute(stmt)
        existing = set(result.scalars().all())

        logger.debug(
            "existing_fingerprints_filtered",
            total=len(values),
            existing=len(existing),
        )
        return existing

    async def get_detail(self, replay_id: int) -> Optional[ReplayORM]:
        """Get a replay with map, bans and players fully loaded."""
        await self._apply_query_limits()
        stmt = (
            select(ReplayORM)
            .options(*detail_load_options())
            .where(ReplayORM.id == replay_id)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_replays(self, stmt: Select) -> list[ReplayORM]:
        """Execute a catalog query under the read-only execution limits."""
        await self._apply_query_limits()
        result = await self.db.execute(stmt)
        replays = list(result.scalars().all())

        logger.debug("replays_listed", count=len(replays))
        return replays

    async def _apply_query_limits(self) -> None:
        # SET LOCAL lasts until the end of the current transaction
        if self.query_timeout_ms:
            await self.db.execute(
                text(f"SET LOCAL statement_timeout = {int(self.query_timeout_ms)}")
            )

    async def create(self, replay: ReplayORM) -> ReplayORM:
        """Persist a new replay and its sub-records in one transaction."""
        self.db.add(replay)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            if is_fingerprint_violation(e):
                raise DuplicateFingerprintError(replay.fingerprint) from e
            raise DatabaseError(
                "integrity error while storing replay",
                service="ReplayRepository",
                operation="create",
                context={"fingerprint": replay.fingerprint},
                original_error=e,
            ) from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseError(
                str(e),
                service="ReplayRepository",
                operation="create",
                context={"fingerprint": replay.fingerprint},
                original_error=e,
            ) from e

        logger.info("replay_created", replay_id=replay.id, fingerprint=replay.fingerprint)
        return replay

    async def get_or_create_map(self, name: str) -> GameMapORM:
        """Upsert a map by name and return it."""
        try:
            await self.db.execute(
                insert(GameMapORM)
                .values(name=name)
                .on_conflict_do_nothing(index_elements=["name"])
            )
            result = await self.db.execute(
                select(GameMapORM).where(GameMapORM.name == name)
            )
            return result.scalar_one()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseError(
                str(e),
                service="ReplayRepository",
                operation="get_or_create_map",
                context={"name": name},
                original_error=e,
            ) from e

    async def get_or_create_heroes(self, names: Iterable[str]) -> Dict[str, HeroORM]:
        """Upsert heroes by name and return them keyed by name."""
        unique_names: Sequence[str] = sorted(set(names))
        if not unique_names:
            return {}

        try:
            await self.db.execute(
                insert(HeroORM)
                .values([{"name": name} for name in unique_names])
                .on_conflict_do_nothing(index_elements=["name"])
            )
            result = await self.db.execute(
                select(HeroORM).where(HeroORM.name.in_(unique_names))
            )
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseError(
                str(e),
                service="ReplayRepository",
                operation="get_or_create_heroes",
                context={"names": list(unique_names)},
                original_error=e,
            ) from e
        return {hero.name: hero for hero in result.scalars().all()}

    async def set_relay_status(self, replay_id: int, status: str) -> None:
        """Record the relay outcome for a replay."""
        stmt = (
            update(ReplayORM)
            .where(ReplayORM.id == replay_id)
            .values(relay_status=status)
        )
        await self.db.execute(stmt)
        await self.db.commit()

        logger.debug("relay_status_updated", replay_id=replay_id, status=status)
