import itertools
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from app.core.exceptions import (
    DatabaseError,
    ReplayNotFoundError,
    ReplayParseError,
    ServiceException,
)
from app.features.relay.service import RelayUploader
from app.features.replays.fingerprints import FingerprintVersion
from app.features.replays.gateway import MIN_SUPPORTED_BUILD, StoredFile
from app.features.replays.orm_models import GameMapORM, HeroORM, ReplayORM
from app.features.replays.queries import PAGE_SIZE, ReplayCriteria
from app.features.replays.repository import (
    DuplicateFingerprintError,
    ReplayRepositoryInterface,
    SQLAlchemyReplayRepository,
)
from app.features.replays.schemas import ParsedBan, ParsedPlayer, ParsedReplay
from app.features.replays.service import (
    ReplayService,
    ReplayStatus,
    UploadedReplay,
    parse_fingerprint_list,
)


class InMemoryReplayRepository(ReplayRepositoryInterface):
    """Repository double keeping replays in a dict keyed by fingerprint."""

    def __init__(self):
        self.replays: Dict[str, ReplayORM] = {}
        self._ids = itertools.count(1)
        self.race_winner: Optional[ReplayORM] = None

    async def find_by_column(self, column, value):
        for replay in self.replays.values():
            if getattr(replay, column) == value:
                return replay
        return None

    async def find_existing_fingerprints(self, fingerprints: Iterable[str]):
        return {f for f in fingerprints if f in self.replays}

    async def get_detail(self, replay_id):
        return next((r for r in self.replays.values() if r.id == replay_id), None)

    async def list_replays(self, stmt):
        return sorted(self.replays.values(), key=lambda r: r.id)

    async def create(self, replay):
        if self.race_winner is not None:
            # Another request committed the same fingerprint first
            self.replays[self.race_winner.fingerprint] = self.race_winner
            raise DuplicateFingerprintError(replay.fingerprint)
        if replay.fingerprint in self.replays:
            raise DuplicateFingerprintError(replay.fingerprint)
        replay.id = next(self._ids)
        self.replays[replay.fingerprint] = replay
        return replay

    async def get_or_create_map(self, name):
        return GameMapORM(name=name)

    async def get_or_create_heroes(self, names):
        return {name: HeroORM(name=name) for name in names}

    async def set_relay_status(self, replay_id, status):
        pass


def parsed_replay(fingerprint="fp-1", build=70000, **overrides):
    fields = dict(
        fingerprint=fingerprint,
        fingerprint_old="legacy-1",
        game_type="QuickMatch",
        game_date=datetime(2018, 5, 1, tzinfo=timezone.utc),
        game_length=1200,
        game_map="Cursed Hollow",
        build=build,
        players=[
            ParsedPlayer(battletag_name="Foo", battletag_id=123, hero="Valla", team=0),
            ParsedPlayer(battletag_name="Bar", battletag_id=456, hero="Muradin", team=1),
        ],
        bans=[ParsedBan(hero="Genji", team=0, index=0)],
    )
    fields.update(overrides)
    return ParsedReplay(**fields)


@pytest.fixture
def repository():
    return InMemoryReplayRepository()


@pytest.fixture
def parser():
    parser = AsyncMock()
    parser.parse.return_value = parsed_replay()
    return parser


@pytest.fixture
def storage():
    storage = AsyncMock()
    counter = itertools.count(1)

    async def save(content):
        n = next(counter)
        return StoredFile(
            filename=f"{n}.StormReplay", url=f"http://files/{n}.StormReplay", size=len(content)
        )

    storage.save.side_effect = save
    return storage


@pytest.fixture
def relay():
    return MagicMock(spec=RelayUploader)


@pytest.fixture
def service(repository, parser, storage, relay):
    return ReplayService(repository, repository, parser, storage, relay)


UPLOAD = UploadedReplay(filename="match.StormReplay", content=b"replay-bytes")


# ============================================================================
# Ingestion
# ============================================================================


async def test_ingest_without_file_touches_nothing(service, parser, storage):
    result = await service.ingest(None)

    assert result.status == ReplayStatus.NO_FILE
    assert result.replay is None
    parser.parse.assert_not_called()
    storage.save.assert_not_called()


async def test_ingest_empty_file_is_missing_input(service, parser):
    result = await service.ingest(UploadedReplay(filename="x.StormReplay", content=b""))

    assert result.status == ReplayStatus.NO_FILE
    parser.parse.assert_not_called()


async def test_ingest_persists_new_replay(service, repository, parser):
    result = await service.ingest(UPLOAD)

    assert result.status == ReplayStatus.SUCCESS
    assert result.replay.id == 1
    assert result.replay.filename == "1.StormReplay"
    assert result.replay.url == "http://files/1.StormReplay"
    assert [p.battletag_name for p in result.replay.players] == ["Foo", "Bar"]
    assert result.replay.bans[0].hero.name == "Genji"
    assert result.replay.game_map.name == "Cursed Hollow"
    assert list(repository.replays) == ["fp-1"]
    parser.parse.assert_awaited_once()


async def test_ingest_is_idempotent(service, repository, storage):
    first = await service.ingest(UPLOAD)
    second = await service.ingest(UPLOAD)

    assert first.status == ReplayStatus.SUCCESS
    assert second.status == ReplayStatus.DUPLICATE
    assert second.replay.id == first.replay.id
    assert len(repository.replays) == 1
    assert storage.save.await_count == 1


async def test_ingest_old_build_is_stored_but_flagged(service, repository, parser):
    parser.parse.return_value = parsed_replay(build=MIN_SUPPORTED_BUILD - 1)

    result = await service.ingest(UPLOAD)

    assert result.status == ReplayStatus.TOO_OLD
    assert result.replay.id == 1
    assert "fp-1" in repository.replays


async def test_ingest_minimum_build_is_supported(service, parser):
    parser.parse.return_value = parsed_replay(build=MIN_SUPPORTED_BUILD)

    result = await service.ingest(UPLOAD)

    assert result.status == ReplayStatus.SUCCESS


async def test_ingest_unreadable_file(service, parser, storage, repository):
    parser.parse.side_effect = ReplayParseError("parser rejected the file")

    result = await service.ingest(UPLOAD)

    assert result.status == ReplayStatus.UPLOAD_ERROR
    assert result.replay is None
    storage.save.assert_not_called()
    assert repository.replays == {}


async def test_ingest_lost_race_reports_duplicate(service, repository, storage):
    winner = ReplayORM(
        id=99, fingerprint="fp-1", filename="w.StormReplay", url="http://files/w", size=1, build=70000
    )
    repository.race_winner = winner

    result = await service.ingest(UPLOAD)

    assert result.status == ReplayStatus.DUPLICATE
    assert result.replay is winner
    storage.delete.assert_awaited_once_with("1.StormReplay")


async def test_ingest_storage_failure_propagates(service, storage):
    service.repository = AsyncMock(spec=InMemoryReplayRepository)
    service.repository.find_by_column.return_value = None
    service.repository.get_or_create_map.return_value = GameMapORM(name="Cursed Hollow")
    service.repository.get_or_create_heroes.return_value = {
        "Valla": HeroORM(name="Valla"),
        "Muradin": HeroORM(name="Muradin"),
        "Genji": HeroORM(name="Genji"),
    }
    service.repository.create.side_effect = DatabaseError("connection lost")

    with pytest.raises(DatabaseError):
        await service.ingest(UPLOAD)

    storage.delete.assert_awaited_once_with("1.StormReplay")


async def test_ingest_lookup_table_failure_is_service_exception(
    parser, storage, relay
):
    db = AsyncMock()
    db.execute.side_effect = OperationalError("INSERT", {}, Exception("connection lost"))
    repository = SQLAlchemyReplayRepository(db)
    repository.find_by_column = AsyncMock(return_value=None)
    service = ReplayService(repository, repository, parser, storage, relay)

    with pytest.raises(ServiceException):
        await service.ingest(UPLOAD)

    storage.delete.assert_awaited_once_with("1.StormReplay")


async def test_ingest_enqueues_relay_when_requested(service, relay):
    result = await service.ingest(UPLOAD, upload_to_relay=True)

    relay.queue_for_upload.assert_called_once_with(result.replay)


async def test_ingest_does_not_enqueue_relay_by_default(service, relay):
    await service.ingest(UPLOAD)

    relay.queue_for_upload.assert_not_called()


async def test_ingest_relay_failure_does_not_fail_upload(repository, parser, storage):
    relay = RelayUploader(MagicMock(submit=MagicMock(side_effect=RuntimeError("down"))))
    service = ReplayService(repository, repository, parser, storage, relay)

    result = await service.ingest(UPLOAD, upload_to_relay=True)

    assert result.status == ReplayStatus.SUCCESS


# ============================================================================
# Deduplication
# ============================================================================


async def test_exists_single_v3(service):
    await service.ingest(UPLOAD)

    assert await service.exists_single("fp-1", FingerprintVersion.V3)
    assert not await service.exists_single("fp-2", FingerprintVersion.V3)


async def test_exists_single_v2_normalizes_before_lookup(service, parser):
    parser.parse.return_value = parsed_replay(fingerprint="abc-def-0201-rest")
    await service.ingest(UPLOAD)

    assert await service.exists_single("abc-def-0102-rest", FingerprintVersion.V2)
    assert not await service.exists_single("abc-def-0102-rest", FingerprintVersion.V3)


async def test_exists_single_v1_uses_legacy_field_only(service):
    await service.ingest(UPLOAD)

    assert await service.exists_single("legacy-1", FingerprintVersion.V1)
    assert not await service.exists_single("fp-1", FingerprintVersion.V1)
    assert not await service.exists_single("legacy-1", FingerprintVersion.V3)


async def test_exists_single_triggers_relay_on_match(service, relay):
    await service.ingest(UPLOAD)

    await service.exists_single("fp-1", FingerprintVersion.V3, upload_to_relay=True)

    relay.queue_for_upload.assert_called_once()


async def test_exists_single_no_relay_on_miss(service, relay):
    await service.exists_single("fp-1", FingerprintVersion.V3, upload_to_relay=True)

    relay.queue_for_upload.assert_not_called()


async def test_exists_single_v1_never_triggers_relay(service, relay):
    await service.ingest(UPLOAD)

    assert await service.exists_single(
        "legacy-1", FingerprintVersion.V1, upload_to_relay=True
    )
    relay.queue_for_upload.assert_not_called()


async def test_exists_single_relay_failure_is_swallowed(repository, parser, storage):
    relay = RelayUploader(MagicMock(submit=MagicMock(side_effect=RuntimeError("down"))))
    service = ReplayService(repository, repository, parser, storage, relay)
    await service.ingest(UPLOAD)

    assert await service.exists_single("fp-1", FingerprintVersion.V3, upload_to_relay=True)


async def test_exists_many_partitions_input(service, parser):
    parser.parse.return_value = parsed_replay(fingerprint="fp2")
    await service.ingest(UPLOAD)

    result = await service.exists_many(parse_fingerprint_list("fp1\nfp2\nfp3"))

    assert result.exists == ["fp2"]
    assert result.absent == ["fp1", "fp3"]


async def test_exists_many_partition_is_exact(service, parser):
    parser.parse.return_value = parsed_replay(fingerprint="b")
    await service.ingest(UPLOAD)
    fingerprints = ["a", "b", "c", "b", "a"]

    result = await service.exists_many(fingerprints)

    assert set(result.exists) | set(result.absent) == set(fingerprints)
    assert not set(result.exists) & set(result.absent)
    assert result.exists == ["b"]
    assert result.absent == ["a", "c", "a"]


async def test_exists_many_does_not_normalize(service, parser):
    parser.parse.return_value = parsed_replay(fingerprint="abc-def-0201-rest")
    await service.ingest(UPLOAD)

    result = await service.exists_many(["abc-def-0102-rest"])

    assert result.exists == []
    assert result.absent == ["abc-def-0102-rest"]


@pytest.mark.parametrize("fingerprint", ["fp-1", "fp-unknown"])
async def test_single_and_mass_check_agree(service, fingerprint):
    await service.ingest(UPLOAD)

    single = await service.exists_single(fingerprint, FingerprintVersion.V3)
    many = await service.exists_many([fingerprint])

    assert single == (fingerprint in many.exists)


async def test_exists_many_empty(service):
    result = await service.exists_many([])

    assert result.exists == []
    assert result.absent == []


def test_parse_fingerprint_list_handles_all_line_breaks():
    assert parse_fingerprint_list("a\r\nb\nc\rd\n") == ["a", "b", "c", "d"]
    assert parse_fingerprint_list("") == []


# ============================================================================
# Catalog
# ============================================================================


async def test_list_replays_paged_reports_page(service):
    await service.ingest(UPLOAD)

    page = await service.list_replays_paged(ReplayCriteria(page=3))

    assert page.page == 3
    assert page.per_page == PAGE_SIZE


async def test_list_replays_uses_read_repository(repository, parser, storage, relay):
    read_repository = AsyncMock(spec=InMemoryReplayRepository)
    read_repository.list_replays.return_value = []
    service = ReplayService(repository, read_repository, parser, storage, relay)

    await service.list_replays(ReplayCriteria(game_type="Ranked"))

    read_repository.list_replays.assert_awaited_once()


async def test_get_replay_not_found(service):
    with pytest.raises(ReplayNotFoundError):
        await service.get_replay(404)


async def test_get_replay(service):
    created = await service.ingest(UPLOAD)

    assert await service.get_replay(created.replay.id) is created.replay


def test_minimum_build():
    assert ReplayService.minimum_build() == MIN_SUPPORTED_BUILD
