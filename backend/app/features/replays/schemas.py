"""Pydantic schemas for the replays feature."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Parser output
# ============================================================================


class ParsedScore(BaseModel):
    """Score screen values for one player as reported by the parser."""

    level: Optional[int] = None
    kills: Optional[int] = None
    assists: Optional[int] = None
    takedowns: Optional[int] = None
    deaths: Optional[int] = None
    hero_damage: Optional[int] = None
    siege_damage: Optional[int] = None
    healing: Optional[int] = None
    self_healing: Optional[int] = None
    damage_taken: Optional[int] = None
    experience_contribution: Optional[int] = None
    time_spent_dead: Optional[int] = None


class ParsedTalent(BaseModel):
    level: int
    name: str


class ParsedPlayer(BaseModel):
    """Participant as reported by the parser."""

    battletag_name: str
    battletag_id: int
    hero: Optional[str] = None
    hero_level: Optional[int] = None
    team: int = Field(..., ge=0, le=1)
    winner: bool = False
    blizz_id: Optional[int] = None
    party: Optional[int] = None
    talents: List[ParsedTalent] = Field(default_factory=list)
    score: Optional[ParsedScore] = None


class ParsedBan(BaseModel):
    hero: str
    team: int = Field(..., ge=0, le=1)
    index: int = Field(..., ge=0)


class ParsedReplay(BaseModel):
    """Structured replay record produced by the external parser."""

    fingerprint: str = Field(..., min_length=1, max_length=36)
    fingerprint_old: Optional[str] = Field(None, max_length=64)
    game_type: Optional[str] = None
    game_date: Optional[datetime] = None
    game_length: Optional[int] = Field(None, ge=0)
    game_map: Optional[str] = None
    game_version: Optional[str] = None
    build: int
    region: Optional[int] = None
    players: List[ParsedPlayer] = Field(default_factory=list)
    bans: List[ParsedBan] = Field(default_factory=list)


# ============================================================================
# API responses
# ============================================================================


class ScoreResponse(ParsedScore):
    model_config = ConfigDict(from_attributes=True)


class TalentResponse(ParsedTalent):
    model_config = ConfigDict(from_attributes=True)


class PlayerResponse(BaseModel):
    """Participant in the replay detail."""

    battletag: str
    battletag_name: str
    battletag_id: int
    hero: Optional[str] = None
    hero_level: Optional[int] = None
    team: int
    winner: bool
    blizz_id: Optional[int] = None
    party: Optional[int] = None
    talents: List[TalentResponse] = Field(default_factory=list)
    score: Optional[ScoreResponse] = None


class BanResponse(BaseModel):
    hero: Optional[str] = None
    team: int
    index: int


class ReplayResponse(BaseModel):
    """Replay summary; ``players`` and ``bans`` are present only when loaded."""

    id: int
    filename: str
    size: int
    url: str
    fingerprint: str
    game_type: Optional[str] = None
    game_date: Optional[datetime] = None
    game_length: Optional[int] = None
    game_map: Optional[str] = None
    game_version: Optional[str] = None
    build: int
    region: Optional[int] = None
    relay_status: Optional[str] = None
    players: Optional[List[PlayerResponse]] = None
    bans: Optional[List[BanResponse]] = None


class PagedReplaysResponse(BaseModel):
    """A page of replays without totals."""

    per_page: int
    page: int
    replays: List[ReplayResponse]


class UploadResponse(BaseModel):
    """Outcome of a replay upload."""

    success: bool
    status: str
    originalName: Optional[str] = None
    filename: Optional[str] = None
    url: Optional[str] = None
    id: Optional[int] = None


class ExistsResponse(BaseModel):
    exists: bool


class MassCheckResponse(BaseModel):
    exists: List[str]
    absent: List[str]
