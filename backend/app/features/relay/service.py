"""Relay upload hand-off and worker handler.

``RelayUploader.queue_for_upload`` is what request handlers call; it never
raises and never waits for the upload. The actual upload runs later in a
``TaskQueue`` worker through ``RelayUploadHandler``.
"""

from contextlib import AbstractAsyncContextManager
from typing import Any, Callable, Dict, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import RelayError
from app.features.replays.orm_models import ReplayORM
from app.features.replays.repository import SQLAlchemyReplayRepository
from app.tasks.queue import BackgroundTask, TaskPriority, TaskQueue

from .gateway import RELAY_FAILED, RelayGateway

logger = structlog.get_logger(__name__)

RELAY_TASK_TYPE = "relay_upload"

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class RelayUploader:
    """Fire-and-forget producer side of the relay."""

    def __init__(self, queue: Optional[TaskQueue], enabled: bool = True):
        self.queue = queue
        self.enabled = enabled

    def queue_for_upload(self, replay: ReplayORM) -> bool:
        """Queue a stored replay for relay upload.

        Returns whether the replay was handed over. Failures are logged and
        never propagate to the caller.
        """
        if not self.enabled or self.queue is None:
            logger.debug("relay_disabled", replay_id=replay.id)
            return False

        try:
            self.queue.submit(
                BackgroundTask(
                    task_type=RELAY_TASK_TYPE,
                    priority=TaskPriority.NORMAL,
                    data={
                        "replay_id": replay.id,
                        "filename": replay.filename,
                        "url": replay.url,
                    },
                )
            )
        except Exception as e:
            logger.warning(
                "relay_enqueue_failed",
                replay_id=replay.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        logger.info("relay_enqueued", replay_id=replay.id)
        return True


class RelayUploadHandler:
    """Worker side: uploads the replay and records the relay status."""

    def __init__(self, gateway: RelayGateway, session_factory: SessionFactory):
        self.gateway = gateway
        self.session_factory = session_factory

    async def __call__(self, data: Dict[str, Any]) -> Dict[str, Any]:
        replay_id = data["replay_id"]
        try:
            status = await self.gateway.upload(data["filename"], data["url"])
        except RelayError as e:
            logger.warning("relay_upload_failed", replay_id=replay_id, error=str(e))
            await self._record(replay_id, RELAY_FAILED)
            # Re-raise so the task queue retries
            raise

        await self._record(replay_id, status)
        logger.info("relay_upload_finished", replay_id=replay_id, status=status)
        return {"replay_id": replay_id, "status": status}

    async def _record(self, replay_id: int, status: str) -> None:
        async with self.session_factory() as session:
            await SQLAlchemyReplayRepository(session).set_relay_status(
                replay_id, status
            )


def build_relay_queue(
    gateway: RelayGateway, session_factory: SessionFactory, workers: int
) -> TaskQueue:
    """Create the task queue with the relay handler registered."""
    queue = TaskQueue(max_concurrent_tasks=workers)
    queue.register_handler(
        RELAY_TASK_TYPE, RelayUploadHandler(gateway, session_factory)
    )
    return queue
