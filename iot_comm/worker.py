from __future__ import annotations

# Worker pool.
#
# This file contains two layers:
# 1) `TelemetryHandler` (pure request handling, easy to unit test)
# 2) `WorkerPool` (N symmetric threads wired to the broker's request/reply queues)
#
# All workers share one request queue, which is the internal fan-out endpoint.
# Whichever idle worker asks first gets the next request. Workers keep no state
# between requests and never see another worker's in-flight request.

import queue
import threading
from typing import Callable, Optional

from .codec import SensorReading, decode_payload, format_reading
from .endpoints import ACK, DEFAULT_WORKERS
from .errors import FramingError, MalformedPayload

Frames = list[bytes]

# (identity, payload) -> reply payload, or None to send nothing back.
Handler = Callable[[bytes, bytes], Optional[bytes]]
Emit = Callable[[str], None]


def split_frames(frames: Frames) -> tuple[bytes, bytes]:
    """Unpack an `[identity, payload]` frame sequence."""
    if len(frames) != 2:
        raise FramingError(frames)
    identity, payload = frames
    return identity, payload


class TelemetryHandler:
    """Decode a telemetry payload, log it, acknowledge it."""

    def __init__(self, emit: Emit = print) -> None:
        self.emit = emit

    @staticmethod
    def render(identity: bytes, readings: list[SensorReading]) -> str:
        lines = [f"{identity.decode('utf-8', errors='replace')}:"]
        for i, reading in enumerate(readings):
            lines.append(f"  sensor {i}: {format_reading(reading)}")
        return "\n".join(lines)

    def __call__(self, identity: bytes, payload: bytes) -> bytes:
        # Raises MalformedPayload before anything is logged.
        readings = decode_payload(payload)
        self.emit(self.render(identity, readings))
        return ACK


class WorkerPool:
    """Fixed-size pool of stateless workers.

    Failure policy:
    - a malformed payload is discarded with a log line and gets no reply
    - a frame sequence other than `[identity, payload]` is discarded the same way
    - any other error is fatal to the worker that hit it; the worker is
      recorded in `failures` and is not restarted
    """

    def __init__(
        self,
        requests: "queue.Queue[Frames]",
        replies: "queue.Queue[Frames]",
        *,
        size: int = DEFAULT_WORKERS,
        handler: Handler | None = None,
        emit: Emit = print,
        poll_interval: float = 0.1,
    ) -> None:
        if size <= 0:
            raise ValueError("size must be > 0")

        self.size = size
        self.handler: Handler = handler or TelemetryHandler(emit=emit)
        self._requests = requests
        self._replies = replies
        self._emit = emit
        self._poll_interval = poll_interval

        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []

        # worker index -> error that ended it
        self.failures: dict[int, BaseException] = {}
        # worker index -> number of requests handled
        self.served: list[int] = [0] * size

    def start(self) -> None:
        if self._threads:
            return
        for i in range(self.size):
            t = threading.Thread(target=self._run, args=(i,), name=f"worker {i}", daemon=True)
            self._threads.append(t)
            t.start()

    def stop(self, timeout: float = 1.0) -> None:
        """Signal every worker and wait for them to exit."""
        self._stop_event.set()
        self.join(timeout)

    def join(self, timeout: float | None = None) -> None:
        for t in self._threads:
            if t.is_alive():
                t.join(timeout=timeout)

    @property
    def alive(self) -> int:
        return sum(1 for t in self._threads if t.is_alive())

    # -------------------- worker thread --------------------

    def _run(self, index: int) -> None:
        try:
            while not self._stop_event.is_set():
                try:
                    frames = self._requests.get(timeout=self._poll_interval)
                except queue.Empty:
                    continue
                self._handle(index, frames)
        except Exception as e:
            with self._lock:
                self.failures[index] = e
            self._emit(f"[worker {index}] fatal: {e}")

    def _handle(self, index: int, frames: Frames) -> None:
        try:
            identity, payload = split_frames(frames)
        except FramingError as e:
            sender = frames[0] if frames else b""
            self._emit(f"[worker {index}] discarded request from {sender!r}: {e}")
            return

        try:
            reply = self.handler(identity, payload)
        except MalformedPayload as e:
            self._emit(f"[worker {index}] discarded {len(payload)}-byte payload from {identity!r}: {e}")
            return

        with self._lock:
            self.served[index] += 1

        if reply is not None:
            self._replies.put([identity, reply])
