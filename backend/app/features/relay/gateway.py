"""HTTP gateway to the third-party upload relay."""

import asyncio
from typing import Optional

import aiohttp
import structlog

from app.core.exceptions import RelayError

logger = structlog.get_logger(__name__)

RELAY_UPLOADED = "Uploaded"
RELAY_DUPLICATE = "Duplicate"
RELAY_FAILED = "Failed"


class RelayGateway:
    """Posts stored replays to the relay and reports its verdict.

    The relay downloads the file from our public URL itself, so only the
    location is sent.
    """

    def __init__(self, relay_url: str, timeout_seconds: float = 30.0):
        self.relay_url = relay_url
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.session: Optional[aiohttp.ClientSession] = None
        self._session_lock = asyncio.Lock()

    async def start_session(self) -> aiohttp.ClientSession:
        """Start the aiohttp session if needed and return it."""
        if self.session is None or self.session.closed:
            async with self._session_lock:
                if self.session is None or self.session.closed:
                    self.session = aiohttp.ClientSession(
                        timeout=self.timeout,
                        headers={"User-Agent": "ReplayRegistry-Relay/1.0"},
                    )
                    logger.info("relay_session_started", relay_url=self.relay_url)
        return self.session

    async def close(self) -> None:
        """Close the aiohttp session."""
        if self.session and not self.session.closed:
            await self.session.close()
            logger.info("relay_session_closed")

    async def upload(self, filename: str, url: str) -> str:
        """Send one replay to the relay.

        Returns:
            ``Uploaded`` or ``Duplicate``

        Raises:
            RelayError: Transport failure or a non-success response
        """
        session = await self.start_session()

        payload = {"filename": filename, "url": url}
        try:
            async with session.post(self.relay_url, json=payload) as response:
                if response.status == 409:
                    return RELAY_DUPLICATE
                if response.status >= 400:
                    raise RelayError(
                        f"relay rejected {filename}", status_code=response.status
                    )
                body = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise RelayError(
                f"relay unreachable: {e}",
                context={"filename": filename},
                original_error=e,
            ) from e

        if isinstance(body, dict) and body.get("status") == RELAY_DUPLICATE:
            return RELAY_DUPLICATE
        return RELAY_UPLOADED
