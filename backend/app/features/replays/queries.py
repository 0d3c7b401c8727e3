"""Catalog query composition for replays.

Only the criteria that are present become predicates; they are AND-ed
together and the result is always ordered by id so consumers can resume
paging with ``min_id``.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import ColumnElement, Select, and_, false, select
from sqlalchemy.orm import selectinload

from .orm_models import BanORM, PlayerORM, ReplayORM

# Number of replays per page
PAGE_SIZE = 100

PLAYER_SEPARATOR = "#"

# Upper bound of the integer battletag_id column
MAX_BATTLETAG_ID = 2**31 - 1


@dataclass(frozen=True)
class ReplayCriteria:
    """Optional filters and paging for a catalog query."""

    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    game_type: Optional[str] = None
    min_id: Optional[int] = None
    player: Optional[str] = None
    with_players: bool = False
    page: int = 1


def player_predicate(player: str) -> ColumnElement[bool]:
    """Membership filter for replays that have a matching participant.

    ``Name#1234`` matches name and discriminator, ``Name`` matches the name
    with any discriminator.
    """
    participants = select(PlayerORM.replay_id)
    if PLAYER_SEPARATOR not in player:
        participants = participants.where(PlayerORM.battletag_name == player)
    else:
        parts = player.split(PLAYER_SEPARATOR)
        name, discriminator = parts[0], parts[1]
        if not (discriminator.isascii() and discriminator.isdecimal()):
            # battletag_id is numeric, nothing can match
            return false()
        battletag_id = int(discriminator)
        if battletag_id > MAX_BATTLETAG_ID:
            return false()
        participants = participants.where(
            PlayerORM.battletag_name == name,
            PlayerORM.battletag_id == battletag_id,
        )
    return ReplayORM.id.in_(participants)


def build_predicates(criteria: ReplayCriteria) -> List[ColumnElement[bool]]:
    """Translate the present criteria into a list of predicates."""
    predicates: List[ColumnElement[bool]] = []

    if criteria.start_date:
        predicates.append(ReplayORM.game_date >= criteria.start_date)

    if criteria.end_date:
        predicates.append(ReplayORM.game_date <= criteria.end_date)

    if criteria.game_type:
        predicates.append(ReplayORM.game_type == criteria.game_type)

    if criteria.min_id:
        predicates.append(ReplayORM.id >= criteria.min_id)

    if criteria.player:
        predicates.append(player_predicate(criteria.player))

    return predicates


def detail_load_options() -> list:
    """Loader options for the full replay detail."""
    return [
        selectinload(ReplayORM.game_map),
        selectinload(ReplayORM.bans).selectinload(BanORM.hero),
        selectinload(ReplayORM.players).selectinload(PlayerORM.hero),
        selectinload(ReplayORM.players).selectinload(PlayerORM.talents),
        selectinload(ReplayORM.players).selectinload(PlayerORM.score),
    ]


def build_replay_query(criteria: ReplayCriteria) -> Select:
    """Compose the filtered, id-ordered replay query for ``criteria``."""
    stmt = select(ReplayORM)

    predicates = build_predicates(criteria)
    if predicates:
        stmt = stmt.where(and_(*predicates))

    if criteria.with_players:
        stmt = stmt.options(*detail_load_options())
    else:
        stmt = stmt.options(selectinload(ReplayORM.game_map))

    return stmt.order_by(ReplayORM.id.asc())


def limit_only(stmt: Select, size: int = PAGE_SIZE) -> Select:
    """First ``size`` rows, no count."""
    return stmt.limit(size)


def for_page(stmt: Select, page: int, size: int = PAGE_SIZE) -> Select:
    """Rows of the given 1-based page. Pages below 1 read the first page."""
    return stmt.offset(max(0, (page - 1) * size)).limit(size)
