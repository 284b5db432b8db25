"""Endpoint helpers and protocol constants.

We keep address construction in one place so broker and clients agree on it.

Wire layout (v0):

- Broker frontend: ZeroMQ ROUTER bound on `tcp://*:5570`.
- Clients: ZeroMQ DEALER connected to `tcp://<host>:5570`, with the socket
  IDENTITY set to the controller id.
- Request: one frame of telemetry, `4 * zones` bytes.
- Reply: one frame, the single byte `R`.

The internal fan-out to workers is an in-process queue, not an address.
"""

from __future__ import annotations

DEFAULT_PORT = 5570
DEFAULT_WORKERS = 5

ACK = b"R"

# Client cadence.
REPORT_INTERVAL = 5.0
CLIENT_POLL_MS = 10


def frontend_bind(port: int = DEFAULT_PORT, host: str = "*") -> str:
    return f"tcp://{host}:{port}"


def frontend_connect(host: str = "localhost", port: int = DEFAULT_PORT) -> str:
    return f"tcp://{host}:{port}"
