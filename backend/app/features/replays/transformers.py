"""Data mapper between replay ORM objects, parser records and API responses."""

from typing import Dict, List, Optional

from sqlalchemy import inspect

from .orm_models import (
    BanORM,
    GameMapORM,
    HeroORM,
    PlayerORM,
    ReplayORM,
    ScoreORM,
    TalentORM,
)
from .schemas import (
    BanResponse,
    ParsedReplay,
    PlayerResponse,
    ReplayResponse,
    ScoreResponse,
    TalentResponse,
)


def _is_loaded(obj: object, attribute: str) -> bool:
    return attribute not in inspect(obj).unloaded


class ReplayTransformer:
    """Data mapper for the replays feature."""

    @staticmethod
    def parsed_to_orm(
        parsed: ParsedReplay,
        *,
        filename: str,
        url: str,
        size: int,
        game_map: Optional[GameMapORM],
        heroes: Dict[str, HeroORM],
    ) -> ReplayORM:
        """Build a new replay with its players, talents, scores and bans.

        ``heroes`` must contain every hero name referenced by ``parsed``.
        """
        players: List[PlayerORM] = []
        for p in parsed.players:
            player = PlayerORM(
                hero=heroes[p.hero] if p.hero else None,
                hero_level=p.hero_level,
                team=p.team,
                winner=p.winner,
                blizz_id=p.blizz_id,
                battletag_name=p.battletag_name,
                battletag_id=p.battletag_id,
                party=p.party,
                talents=[TalentORM(level=t.level, name=t.name) for t in p.talents],
            )
            if p.score is not None:
                player.score = ScoreORM(**p.score.model_dump())
            players.append(player)

        bans = [
            BanORM(hero=heroes[b.hero], team=b.team, index=b.index)
            for b in parsed.bans
        ]

        return ReplayORM(
            fingerprint=parsed.fingerprint,
            fingerprint_old=parsed.fingerprint_old,
            filename=filename,
            url=url,
            size=size,
            game_type=parsed.game_type,
            game_date=parsed.game_date,
            game_length=parsed.game_length,
            game_map=game_map,
            game_version=parsed.game_version,
            build=parsed.build,
            region=parsed.region,
            players=players,
            bans=bans,
        )

    @staticmethod
    def player_to_response(player: PlayerORM) -> PlayerResponse:
        return PlayerResponse(
            battletag=player.battletag,
            battletag_name=player.battletag_name,
            battletag_id=player.battletag_id,
            hero=player.hero.name if player.hero else None,
            hero_level=player.hero_level,
            team=player.team,
            winner=player.winner,
            blizz_id=player.blizz_id,
            party=player.party,
            talents=[TalentResponse.model_validate(t) for t in player.talents],
            score=ScoreResponse.model_validate(player.score) if player.score else None,
        )

    @classmethod
    def orm_to_response(cls, replay: ReplayORM) -> ReplayResponse:
        """Transform a replay to its API shape, including only loaded relations."""
        game_map = replay.game_map if _is_loaded(replay, "game_map") else None

        players = None
        if _is_loaded(replay, "players"):
            players = [cls.player_to_response(p) for p in replay.players]

        bans = None
        if _is_loaded(replay, "bans"):
            bans = [
                BanResponse(
                    hero=ban.hero.name if ban.hero else None,
                    team=ban.team,
                    index=ban.index,
                )
                for ban in replay.bans
            ]

        return ReplayResponse(
            id=replay.id,
            filename=replay.filename,
            size=replay.size,
            url=replay.url,
            fingerprint=replay.fingerprint,
            game_type=replay.game_type,
            game_date=replay.game_date,
            game_length=replay.game_length,
            game_map=game_map.name if game_map else None,
            game_version=replay.game_version,
            build=replay.build,
            region=replay.region,
            relay_status=replay.relay_status,
            players=players,
            bans=bans,
        )
