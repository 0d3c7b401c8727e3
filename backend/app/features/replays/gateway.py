"""Gateways to the external replay parser and file storage.

Both collaborators sit behind a small protocol so the service only deals
with ``ParsedReplay`` records and stored-file locations.
"""

import asyncio
import json
import shlex
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import structlog
from pydantic import ValidationError

from app.core.exceptions import ReplayParseError, StorageError

from .schemas import ParsedReplay

logger = structlog.get_logger(__name__)

# Replays from older builds are stored but flagged
MIN_SUPPORTED_BUILD = 43905

REPLAY_EXTENSION = ".StormReplay"


class ReplayParser(Protocol):
    """Extracts the structured record (including fingerprint) from a replay file."""

    async def parse(self, path: Path) -> ParsedReplay:
        """Raises ReplayParseError when the file cannot be read."""
        ...


@dataclass(frozen=True)
class StoredFile:
    filename: str
    url: str
    size: int


class ReplayStorage(Protocol):
    """Keeps uploaded replay files and exposes them by URL."""

    async def save(self, content: bytes) -> StoredFile:
        """Raises StorageError when the file cannot be written."""
        ...

    async def delete(self, filename: str) -> None: ...


class SubprocessReplayParser:
    """Runs an external parser executable that prints the replay as JSON."""

    def __init__(self, command: str, timeout_seconds: float = 60.0):
        self.command = shlex.split(command)
        self.timeout_seconds = timeout_seconds

    async def parse(self, path: Path) -> ParsedReplay:
        try:
            process = await asyncio.create_subprocess_exec(
                *self.command,
                str(path),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ReplayParseError(
                "parser could not be started",
                context={"command": self.command[0]},
                original_error=e,
            ) from e

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            process.kill()
            await process.wait()
            raise ReplayParseError(
                "parser timed out", context={"path": str(path)}, original_error=e
            ) from e

        if process.returncode != 0:
            raise ReplayParseError(
                "parser rejected the file",
                context={
                    "returncode": process.returncode,
                    "stderr": stderr.decode(errors="replace")[-500:],
                },
            )

        try:
            return ParsedReplay.model_validate(json.loads(stdout))
        except (json.JSONDecodeError, ValidationError) as e:
            raise ReplayParseError(
                "parser output is not a valid replay record", original_error=e
            ) from e


class LocalReplayStorage:
    """Stores replay files in a directory served under ``base_url``."""

    def __init__(self, directory: Path, base_url: str):
        self.directory = Path(directory)
        self.base_url = base_url.rstrip("/")

    async def save(self, content: bytes) -> StoredFile:
        filename = f"{uuid.uuid4()}{REPLAY_EXTENSION}"
        target = self.directory / filename
        try:
            await asyncio.to_thread(self._write, target, content)
        except OSError as e:
            raise StorageError(
                "replay file could not be written",
                operation="save",
                context={"filename": filename},
                original_error=e,
            ) from e

        logger.debug("replay_file_stored", filename=filename, size=len(content))
        return StoredFile(
            filename=filename, url=f"{self.base_url}/{filename}", size=len(content)
        )

    async def delete(self, filename: str) -> None:
        try:
            await asyncio.to_thread((self.directory / filename).unlink, True)
        except OSError as e:
            raise StorageError(
                "replay file could not be removed",
                operation="delete",
                context={"filename": filename},
                original_error=e,
            ) from e

    def _write(self, target: Path, content: bytes) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
