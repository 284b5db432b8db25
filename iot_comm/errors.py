"""Shared error types.

We keep failure kinds consistent across broker/worker/client:
- `BindError`: an endpoint could not be bound (fatal at startup)
- `TransportError`: a send/receive failed while running (fatal to the owner)
- `FramingError`: a frame sequence was not `[identity, payload]`
- `MalformedPayload`: telemetry bytes are not whole 4-byte records
"""

from __future__ import annotations


class IotCommError(Exception):
    """Base class for all errors raised by this package."""


class BindError(IotCommError):
    def __init__(self, address: str, reason: str) -> None:
        super().__init__(f"failed binding {address}: {reason}")
        self.address = address
        self.reason = reason


class TransportError(IotCommError):
    pass


class FramingError(IotCommError):
    def __init__(self, frames: list[bytes]) -> None:
        super().__init__(f"expected [identity, payload], got {len(frames)} frame(s)")
        self.frames = frames


class MalformedPayload(IotCommError, ValueError):
    def __init__(self, size: int, message: str | None = None) -> None:
        super().__init__(message or f"payload length {size} is not a multiple of 4")
        self.size = size
