"""Replay service: deduplication checks, ingestion and catalog reads.

Expected outcomes of an upload (missing file, duplicate, unsupported build,
unreadable file) are reported through ``ReplayStatus``; only infrastructure
failures raise.
"""

import asyncio
import re
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence

import structlog

from app.core.exceptions import ReplayNotFoundError, ReplayParseError
from app.features.relay.service import RelayUploader

from .fingerprints import FingerprintVersion, lookup_column, normalize, relay_eligible
from .gateway import MIN_SUPPORTED_BUILD, REPLAY_EXTENSION, ReplayParser, ReplayStorage
from .orm_models import ReplayORM
from .queries import PAGE_SIZE, ReplayCriteria, build_replay_query, for_page, limit_only
from .repository import DuplicateFingerprintError, ReplayRepositoryInterface
from .schemas import ParsedReplay
from .transformers import ReplayTransformer

logger = structlog.get_logger(__name__)

_LINE_BREAK = re.compile(r"\r\n|\n|\r")


class ReplayStatus(str, Enum):
    """Outcome of an upload."""

    SUCCESS = "Success"
    DUPLICATE = "Duplicate"
    TOO_OLD = "TooOld"
    UPLOAD_ERROR = "UploadError"
    NO_FILE = "NoFile"


@dataclass(frozen=True)
class UploadedReplay:
    filename: Optional[str]
    content: bytes


@dataclass(frozen=True)
class IngestResult:
    status: ReplayStatus
    replay: Optional[ReplayORM] = None


@dataclass(frozen=True)
class MassCheckResult:
    exists: List[str]
    absent: List[str]


@dataclass(frozen=True)
class ReplayPage:
    page: int
    per_page: int
    replays: List[ReplayORM]


def parse_fingerprint_list(body: str) -> List[str]:
    """Split a newline-delimited fingerprint list, dropping blank lines."""
    return [line for line in _LINE_BREAK.split(body) if line]


class ReplayService:
    """Coordinates the replay repositories, parser, storage and relay.

    ``repository`` is bound to the primary, ``read_repository`` to the read
    replica; catalog reads never touch the primary.
    """

    def __init__(
        self,
        repository: ReplayRepositoryInterface,
        read_repository: ReplayRepositoryInterface,
        parser: ReplayParser,
        storage: ReplayStorage,
        relay: RelayUploader,
    ):
        self.repository = repository
        self.read_repository = read_repository
        self.parser = parser
        self.storage = storage
        self.relay = relay

    # ========================================================================
    # Deduplication
    # ========================================================================

    async def exists_single(
        self,
        fingerprint: str,
        version: FingerprintVersion = FingerprintVersion.V3,
        upload_to_relay: bool = False,
    ) -> bool:
        """Check one fingerprint of the given format version."""
        value = normalize(fingerprint, version)
        replay = await self.repository.find_by_column(lookup_column(version), value)

        if replay is not None and upload_to_relay and relay_eligible(version):
            self.relay.queue_for_upload(replay)

        logger.debug(
            "fingerprint_checked",
            version=version.value,
            fingerprint=value,
            exists=replay is not None,
        )
        return replay is not None

    async def exists_many(self, fingerprints: Sequence[str]) -> MassCheckResult:
        """Partition canonical fingerprints into stored and absent ones."""
        candidates = [f for f in fingerprints if f]
        unique = list(dict.fromkeys(candidates))
        found = await self.repository.find_existing_fingerprints(unique)

        exists = [f for f in unique if f in found]
        absent = [f for f in candidates if f not in found]

        logger.info("mass_check", total=len(candidates), exists=len(exists))
        return MassCheckResult(exists=exists, absent=absent)

    # ========================================================================
    # Ingestion
    # ========================================================================

    async def ingest(
        self, upload: Optional[UploadedReplay], upload_to_relay: bool = False
    ) -> IngestResult:
        """Store an uploaded replay unless its fingerprint is already known."""
        if upload is None or not upload.content:
            return IngestResult(ReplayStatus.NO_FILE)

        try:
            parsed = await self._parse(upload.content)
        except ReplayParseError as e:
            logger.warning(
                "replay_parse_failed",
                original_name=upload.filename,
                error=str(e),
                **e.context,
            )
            return IngestResult(ReplayStatus.UPLOAD_ERROR)

        existing = await self.repository.find_by_column("fingerprint", parsed.fingerprint)
        if existing is not None:
            logger.info(
                "replay_duplicate", fingerprint=parsed.fingerprint, replay_id=existing.id
            )
            return IngestResult(ReplayStatus.DUPLICATE, existing)

        replay = await self._persist(parsed, upload.content)
        if replay is None:
            winner = await self.repository.find_by_column(
                "fingerprint", parsed.fingerprint
            )
            return IngestResult(ReplayStatus.DUPLICATE, winner)

        status = (
            ReplayStatus.TOO_OLD
            if parsed.build < MIN_SUPPORTED_BUILD
            else ReplayStatus.SUCCESS
        )

        if upload_to_relay:
            self.relay.queue_for_upload(replay)

        logger.info(
            "replay_ingested",
            replay_id=replay.id,
            status=status.value,
            build=parsed.build,
        )
        return IngestResult(status, replay)

    async def _parse(self, content: bytes) -> ParsedReplay:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / f"upload{REPLAY_EXTENSION}"
            await asyncio.to_thread(path.write_bytes, content)
            return await self.parser.parse(path)

    async def _persist(self, parsed: ParsedReplay, content: bytes) -> Optional[ReplayORM]:
        """Store file and rows; None when a concurrent upload won the race."""
        stored = await self.storage.save(content)

        hero_names = [p.hero for p in parsed.players if p.hero]
        hero_names += [b.hero for b in parsed.bans]
        try:
            heroes = await self.repository.get_or_create_heroes(hero_names)
            game_map = (
                await self.repository.get_or_create_map(parsed.game_map)
                if parsed.game_map
                else None
            )
            replay = ReplayTransformer.parsed_to_orm(
                parsed,
                filename=stored.filename,
                url=stored.url,
                size=stored.size,
                game_map=game_map,
                heroes=heroes,
            )
            return await self.repository.create(replay)
        except DuplicateFingerprintError:
            logger.info("replay_duplicate_race_lost", fingerprint=parsed.fingerprint)
            await self.storage.delete(stored.filename)
            return None
        except Exception:
            logger.error(
                "replay_persist_failed",
                fingerprint=parsed.fingerprint,
                filename=stored.filename,
                exc_info=True,
            )
            await self.storage.delete(stored.filename)
            raise

    # ========================================================================
    # Catalog
    # ========================================================================

    async def list_replays(self, criteria: ReplayCriteria) -> List[ReplayORM]:
        """First page of matching replays, no paging metadata."""
        stmt = limit_only(build_replay_query(criteria))
        return await self.read_repository.list_replays(stmt)

    async def list_replays_paged(self, criteria: ReplayCriteria) -> ReplayPage:
        """One page of matching replays; totals are never computed."""
        stmt = for_page(build_replay_query(criteria), criteria.page)
        replays = await self.read_repository.list_replays(stmt)
        return ReplayPage(page=criteria.page, per_page=PAGE_SIZE, replays=replays)

    async def get_replay(self, replay_id: int) -> ReplayORM:
        """Full replay detail from the read replica."""
        replay = await self.read_repository.get_detail(replay_id)
        if replay is None:
            raise ReplayNotFoundError(replay_id)
        return replay

    @staticmethod
    def minimum_build() -> int:
        return MIN_SUPPORTED_BUILD
