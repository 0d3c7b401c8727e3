"""Relay feature - forwarding stored replays to the third-party aggregator."""

from .gateway import RelayGateway
from .service import RelayUploader, RelayUploadHandler, build_relay_queue

__all__ = [
    "RelayGateway",
    "RelayUploader",
    "RelayUploadHandler",
    "build_relay_queue",
]
