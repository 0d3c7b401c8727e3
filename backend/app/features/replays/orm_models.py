"""SQLAlchemy 2.0 ORM models for the replays feature.

A replay owns its players and bans; maps and heroes are shared lookup rows
referenced by name.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime as SQLDateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.core.models import Base

FINGERPRINT_CONSTRAINT = "uq_replays_fingerprint"


class GameMapORM(Base):
    """Battleground a replay was played on."""

    __tablename__ = "game_maps"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    def __repr__(self) -> str:
        return f"<GameMapORM(id={self.id}, name='{self.name}')>"


class HeroORM(Base):
    """Hero lookup row shared by players and bans."""

    __tablename__ = "heroes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    def __repr__(self) -> str:
        return f"<HeroORM(id={self.id}, name='{self.name}')>"


class ReplayORM(Base):
    """Uploaded replay and its catalog metadata.

    ``fingerprint`` is the canonical (V3) identity and is unique; the
    database constraint is what decides concurrent uploads of the same file.
    ``fingerprint_old`` keeps the V1 identity for legacy lookups.
    """

    __tablename__ = "replays"
    __table_args__ = (
        UniqueConstraint("fingerprint", name=FINGERPRINT_CONSTRAINT),
        Index("idx_replays_game_type_id", "game_type", "id"),
    )

    # ========================================================================
    # DATABASE FIELDS
    # ========================================================================

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    fingerprint: Mapped[str] = mapped_column(
        String(36),
        nullable=False,
        comment="Canonical replay fingerprint",
    )

    fingerprint_old: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        index=True,
        comment="Legacy (v1) fingerprint retained for old clients",
    )

    filename: Mapped[str] = mapped_column(String(64), nullable=False)
    url: Mapped[str] = mapped_column(String(255), nullable=False)
    size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Game information
    game_type: Mapped[Optional[str]] = mapped_column(
        String(32), nullable=True, comment="e.g. 'QuickMatch', 'HeroLeague'"
    )
    game_date: Mapped[Optional[datetime]] = mapped_column(
        SQLDateTime(timezone=True), nullable=True, index=True
    )
    game_length: Mapped[Optional[int]] = mapped_column(
        Integer, nullable=True, comment="Game length in seconds"
    )
    game_map_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("game_maps.id"), nullable=True
    )
    game_version: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    build: Mapped[int] = mapped_column(Integer, nullable=False)
    region: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Filled in later by the relay worker
    relay_status: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        SQLDateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        SQLDateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    # ========================================================================
    # RELATIONSHIPS
    # ========================================================================

    # lazy="raise" forces every query to say what it loads
    game_map: Mapped[Optional["GameMapORM"]] = relationship(lazy="raise")
    players: Mapped[list["PlayerORM"]] = relationship(
        back_populates="replay",
        cascade="all, delete-orphan",
        order_by="PlayerORM.id",
        lazy="raise",
    )
    bans: Mapped[list["BanORM"]] = relationship(
        back_populates="replay",
        cascade="all, delete-orphan",
        order_by="BanORM.id",
        lazy="raise",
    )

    def __repr__(self) -> str:
        return (
            f"<ReplayORM(id={self.id}, fingerprint='{self.fingerprint}', "
            f"build={self.build})>"
        )


class PlayerORM(Base):
    """Participant of a replay."""

    __tablename__ = "players"
    __table_args__ = (
        Index("idx_players_battletag", "battletag_name", "battletag_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    replay_id: Mapped[int] = mapped_column(
        ForeignKey("replays.id", ondelete="CASCADE"), nullable=False, index=True
    )
    hero_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("heroes.id"), nullable=True
    )
    hero_level: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    team: Mapped[int] = mapped_column(Integer, nullable=False)
    winner: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    blizz_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    battletag_name: Mapped[str] = mapped_column(String(64), nullable=False)
    battletag_id: Mapped[int] = mapped_column(Integer, nullable=False)
    party: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    replay: Mapped["ReplayORM"] = relationship(back_populates="players", lazy="raise")
    hero: Mapped[Optional["HeroORM"]] = relationship(lazy="raise")
    talents: Mapped[list["TalentORM"]] = relationship(
        cascade="all, delete-orphan", order_by="TalentORM.level", lazy="raise"
    )
    score: Mapped[Optional["ScoreORM"]] = relationship(
        cascade="all, delete-orphan", uselist=False, lazy="raise"
    )

    @property
    def battletag(self) -> str:
        return f"{self.battletag_name}#{self.battletag_id}"


class TalentORM(Base):
    """Talent picked by a player at a given level."""

    __tablename__ = "player_talents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    player_id: Mapped[int] = mapped_column(
        ForeignKey("players.id", ondelete="CASCADE"), nullable=False, index=True
    )
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)


class ScoreORM(Base):
    """End-of-game score screen for one player."""

    __tablename__ = "scores"

    player_id: Mapped[int] = mapped_column(
        ForeignKey("players.id", ondelete="CASCADE"), primary_key=True
    )
    level: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    kills: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    assists: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    takedowns: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    deaths: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    hero_damage: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    siege_damage: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    healing: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    self_healing: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    damage_taken: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    experience_contribution: Mapped[Optional[int]] = mapped_column(
        Integer, nullable=True
    )
    time_spent_dead: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class BanORM(Base):
    """Hero ban in a draft game."""

    __tablename__ = "bans"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    replay_id: Mapped[int] = mapped_column(
        ForeignKey("replays.id", ondelete="CASCADE"), nullable=False, index=True
    )
    hero_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("heroes.id"), nullable=True
    )
    team: Mapped[int] = mapped_column(Integer, nullable=False)
    index: Mapped[int] = mapped_column(Integer, nullable=False)

    replay: Mapped["ReplayORM"] = relationship(back_populates="bans", lazy="raise")
    hero: Mapped[Optional["HeroORM"]] = relationship(lazy="raise")
