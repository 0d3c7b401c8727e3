"""Dependencies for the replays feature.

Wires the primary and read-replica sessions, the external collaborators and
the relay hand-off into ``ReplayService``.
"""

from datetime import datetime
from typing import Annotated, Optional

from fastapi import Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_global_settings
from app.core.database import get_db, get_read_db
from app.features.relay.service import RelayUploader

from .gateway import LocalReplayStorage, ReplayParser, ReplayStorage, SubprocessReplayParser
from .queries import ReplayCriteria
from .repository import ReplayRepositoryInterface, SQLAlchemyReplayRepository
from .service import ReplayService

DatabaseDep = Annotated[AsyncSession, Depends(get_db)]
ReadDatabaseDep = Annotated[AsyncSession, Depends(get_read_db)]


async def get_replay_repository(db: DatabaseDep) -> ReplayRepositoryInterface:
    """Repository bound to the primary."""
    return SQLAlchemyReplayRepository(db)


async def get_read_replay_repository(db: ReadDatabaseDep) -> ReplayRepositoryInterface:
    """Repository bound to the read replica, with the query time limit."""
    return SQLAlchemyReplayRepository(
        db, query_timeout_ms=get_global_settings().query_timeout_ms
    )


def get_replay_parser() -> ReplayParser:
    settings = get_global_settings()
    return SubprocessReplayParser(
        settings.parser_command, timeout_seconds=settings.parser_timeout_seconds
    )


def get_replay_storage() -> ReplayStorage:
    settings = get_global_settings()
    return LocalReplayStorage(settings.replay_storage_dir, settings.replay_base_url)


def get_relay_uploader(request: Request) -> RelayUploader:
    """Relay hand-off backed by the queue started in the app lifespan."""
    queue = getattr(request.app.state, "relay_queue", None)
    return RelayUploader(queue, enabled=get_global_settings().relay_enabled)


async def get_replay_service(
    repository: Annotated[ReplayRepositoryInterface, Depends(get_replay_repository)],
    read_repository: Annotated[
        ReplayRepositoryInterface, Depends(get_read_replay_repository)
    ],
    parser: Annotated[ReplayParser, Depends(get_replay_parser)],
    storage: Annotated[ReplayStorage, Depends(get_replay_storage)],
    relay: Annotated[RelayUploader, Depends(get_relay_uploader)],
) -> ReplayService:
    return ReplayService(repository, read_repository, parser, storage, relay)


def get_replay_criteria(
    start_date: Optional[datetime] = Query(None, description="Inclusive lower bound on game date"),
    end_date: Optional[datetime] = Query(None, description="Inclusive upper bound on game date"),
    game_type: Optional[str] = Query(None, description="Exact game type"),
    min_id: Optional[int] = Query(None, description="Inclusive lower bound on replay id"),
    player: Optional[str] = Query(None, description="Battletag name, optionally with #discriminator"),
    with_players: bool = Query(False, description="Include bans and players in the response"),
) -> ReplayCriteria:
    """Collect catalog filters from the query string."""
    return ReplayCriteria(
        start_date=start_date,
        end_date=end_date,
        game_type=game_type,
        min_id=min_id,
        player=player,
        with_players=with_players,
    )


# Type aliases for cleaner dependency injection
ReplayServiceDep = Annotated[ReplayService, Depends(get_replay_service)]
ReplayCriteriaDep = Annotated[ReplayCriteria, Depends(get_replay_criteria)]

__all__ = [
    "get_replay_service",
    "get_replay_repository",
    "get_read_replay_repository",
    "get_replay_parser",
    "get_replay_storage",
    "get_relay_uploader",
    "get_replay_criteria",
    "ReplayServiceDep",
    "ReplayCriteriaDep",
]
