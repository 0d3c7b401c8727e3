from datetime import datetime, timezone

from app.features.replays.orm_models import (
    BanORM,
    GameMapORM,
    HeroORM,
    PlayerORM,
    ReplayORM,
    ScoreORM,
    TalentORM,
)
from app.features.replays.schemas import (
    ParsedBan,
    ParsedPlayer,
    ParsedReplay,
    ParsedScore,
    ParsedTalent,
    ReplayResponse,
)
from app.features.replays.transformers import ReplayTransformer


def make_replay(**overrides):
    fields = dict(
        id=7,
        fingerprint="5ac2a1a4-6fe9-f17a-1c59-3aa7e1d6a3c2",
        filename="7.StormReplay",
        url="http://files/7.StormReplay",
        size=1024,
        game_type="HeroLeague",
        game_date=datetime(2018, 5, 1, tzinfo=timezone.utc),
        game_length=1300,
        build=65000,
        region=1,
    )
    fields.update(overrides)
    return ReplayORM(**fields)


def test_transform_parsed_to_orm():
    """Test building a replay with players, talents, scores and bans"""
    # Setup
    valla = HeroORM(name="Valla")
    genji = HeroORM(name="Genji")
    parsed = ParsedReplay(
        fingerprint="fp-1",
        fingerprint_old="legacy",
        game_type="Ranked",
        build=70000,
        players=[
            ParsedPlayer(
                battletag_name="Foo",
                battletag_id=123,
                hero="Valla",
                team=1,
                winner=True,
                talents=[ParsedTalent(level=1, name="Hungering Arrow")],
                score=ParsedScore(kills=5, deaths=2),
            )
        ],
        bans=[ParsedBan(hero="Genji", team=0, index=1)],
    )

    # Execute
    replay = ReplayTransformer.parsed_to_orm(
        parsed,
        filename="a.StormReplay",
        url="http://files/a.StormReplay",
        size=10,
        game_map=GameMapORM(name="Towers of Doom"),
        heroes={"Valla": valla, "Genji": genji},
    )

    # Verify
    assert replay.fingerprint == "fp-1"
    assert replay.fingerprint_old == "legacy"
    assert replay.filename == "a.StormReplay"
    assert replay.game_map.name == "Towers of Doom"
    player = replay.players[0]
    assert player.hero is valla
    assert player.winner is True
    assert player.talents[0].name == "Hungering Arrow"
    assert player.score.kills == 5
    assert player.score.healing is None
    assert replay.bans[0].hero is genji
    assert replay.bans[0].index == 1


def test_transform_orm_to_response_summary_omits_players():
    """Test that relations never loaded are left out of the response"""
    replay = make_replay()

    response = ReplayTransformer.orm_to_response(replay)

    assert isinstance(response, ReplayResponse)
    assert response.id == 7
    assert response.game_type == "HeroLeague"
    assert response.game_map is None
    assert response.players is None
    assert response.bans is None


def test_transform_orm_to_response_detail():
    """Test the full detail shape with map, bans and players"""
    # Setup
    player = PlayerORM(
        battletag_name="Foo",
        battletag_id=123,
        hero=HeroORM(name="Valla"),
        team=0,
        winner=True,
        talents=[TalentORM(level=4, name="Frost Shot")],
        score=ScoreORM(kills=3, assists=9),
    )
    replay = make_replay(
        game_map=GameMapORM(name="Cursed Hollow"),
        players=[player],
        bans=[BanORM(hero=HeroORM(name="Genji"), team=1, index=0)],
    )

    # Execute
    response = ReplayTransformer.orm_to_response(replay)

    # Verify
    assert response.game_map == "Cursed Hollow"
    assert response.bans[0].hero == "Genji"
    assert response.bans[0].team == 1
    assert response.players[0].battletag == "Foo#123"
    assert response.players[0].hero == "Valla"
    assert response.players[0].talents[0].name == "Frost Shot"
    assert response.players[0].score.assists == 9
