"""Simulated controller clients (ZeroMQ DEALER).

Each client is one controller with its own DEALER socket. The socket IDENTITY
is the controller id, so the broker's ROUTER can route replies back to it.

Design:
- `ControllerClient` owns one socket and must only be used from one thread.
- `run()` is the reporting cycle: drain a pending reply (bounded poll), send
  the current telemetry, sleep. The sleep is interruptible by a stop event.
- `request()` sends one payload and blocks for its reply. This is the
  wait-for-ack cadence used by tests and load runs.
- `ClientFleet` runs many clients, one thread each, with a shared stop event.

Replies are best effort: nothing is retried and a missing reply only shows up
as a `TimeoutError` from `request()`.
"""

from __future__ import annotations

import argparse
import threading
import time
from typing import Callable

import zmq

from .device import ZONE_COUNT, Controller
from .endpoints import CLIENT_POLL_MS, DEFAULT_PORT, REPORT_INTERVAL, frontend_connect
from .errors import IotCommError, TransportError

ReplyHandler = Callable[[str, bytes], None]


def print_reply(controller_id: str, reply: bytes) -> None:
    print(f"controller {controller_id}: {reply.decode('utf-8', errors='replace')}")


class ControllerClient:
    """One simulated device connected to the broker."""

    def __init__(
        self,
        *,
        host: str = "localhost",
        port: int = DEFAULT_PORT,
        address: str | None = None,
        controller: Controller | None = None,
        context: zmq.Context | None = None,
        on_reply: ReplyHandler = print_reply,
    ) -> None:
        self.controller = controller or Controller()
        self.address = address or frontend_connect(host, port)
        self.on_reply = on_reply

        self._context = context or zmq.Context.instance()
        self._socket: zmq.Socket | None = None

    @property
    def id(self) -> str:
        return self.controller.id

    def connect(self) -> None:
        """Create the DEALER socket and connect it to the broker."""
        if self._socket is not None:
            return
        sock = self._context.socket(zmq.DEALER)
        sock.setsockopt(zmq.LINGER, 0)
        sock.setsockopt(zmq.IDENTITY, self.controller.identity)
        try:
            sock.connect(self.address)
        except zmq.ZMQError as e:
            sock.close()
            raise TransportError(f"controller {self.id} failed connecting to {self.address}: {e}") from e
        self._socket = sock

    def close(self) -> None:
        if self._socket is None:
            return
        self._socket.close()
        self._socket = None

    def __enter__(self) -> ControllerClient:
        self.connect()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _require_socket(self) -> zmq.Socket:
        if self._socket is None:
            raise RuntimeError("client is not connected; call connect() first")
        return self._socket

    # -------------------- messaging --------------------

    def send(self, payload: bytes | None = None) -> None:
        """Send one telemetry payload (a fresh reading of every zone by default)."""
        sock = self._require_socket()
        data = self.controller.sensor_data() if payload is None else payload
        try:
            sock.send(data)
        except zmq.ZMQError as e:
            raise TransportError(f"controller {self.id} failed sending request: {e}") from e

    def poll_reply(self, timeout_ms: int = CLIENT_POLL_MS) -> bytes | None:
        """Return a pending reply, waiting at most `timeout_ms`, else None."""
        sock = self._require_socket()
        try:
            if sock.poll(timeout_ms, zmq.POLLIN) == 0:
                return None
            return sock.recv()
        except zmq.ZMQError as e:
            raise TransportError(f"controller {self.id} failed receiving response: {e}") from e

    def request(self, payload: bytes | None = None, *, timeout: float = 5.0) -> bytes:
        """Send a payload and wait for its reply.

        Raises:
            TimeoutError: if no reply arrives within `timeout` seconds.
        """
        self.send(payload)
        reply = self.poll_reply(int(timeout * 1000))
        if reply is None:
            raise TimeoutError(f"No reply for controller {self.id} within {timeout}s")
        return reply

    def run(
        self,
        stop_event: threading.Event,
        *,
        interval: float = REPORT_INTERVAL,
        poll_ms: int = CLIENT_POLL_MS,
    ) -> None:
        """Report telemetry every `interval` seconds until `stop_event` is set."""
        while not stop_event.is_set():
            reply = self.poll_reply(poll_ms)
            if reply is not None:
                self.on_reply(self.id, reply)

            self.send()

            stop_event.wait(interval)


class ClientFleet:
    """A managed group of controller clients, one thread each."""

    def __init__(
        self,
        count: int,
        *,
        host: str = "localhost",
        port: int = DEFAULT_PORT,
        address: str | None = None,
        interval: float = REPORT_INTERVAL,
        poll_ms: int = CLIENT_POLL_MS,
        zone_count: int = ZONE_COUNT,
        on_reply: ReplyHandler = print_reply,
    ) -> None:
        if count <= 0:
            raise ValueError("count must be > 0")

        self.count = count
        self.address = address or frontend_connect(host, port)
        self.interval = interval
        self.poll_ms = poll_ms
        self.zone_count = zone_count
        self.on_reply = on_reply

        self._context = zmq.Context()
        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []
        self._lock = threading.Lock()

        # client index -> controller id, filled in as threads come up
        self.controller_ids: dict[int, str] = {}
        # client index -> error that ended it
        self.failures: dict[int, BaseException] = {}

    def start(self) -> None:
        if self._threads:
            return
        for i in range(self.count):
            t = threading.Thread(target=self._run_client, args=(i,), name=f"controller {i}", daemon=True)
            self._threads.append(t)
            t.start()

    def stop(self, timeout: float = 2.0) -> None:
        """Signal every client, wait for them, release the shared context."""
        self._stop_event.set()
        self.join(timeout)
        # Terminating blocks while any socket is still open.
        stuck = [t.name for t in self._threads if t.is_alive()]
        if stuck:
            print(f"[client] {len(stuck)} still running after stop, context left open: {', '.join(stuck)}")
            return
        if not self._context.closed:
            self._context.term()

    def join(self, timeout: float | None = None) -> None:
        for t in self._threads:
            if t.is_alive():
                t.join(timeout=timeout)

    @property
    def alive(self) -> int:
        return sum(1 for t in self._threads if t.is_alive())

    def __enter__(self) -> ClientFleet:
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()

    def _run_client(self, index: int) -> None:
        client = ControllerClient(
            address=self.address,
            controller=Controller(zone_count=self.zone_count),
            context=self._context,
            on_reply=self.on_reply,
        )
        with self._lock:
            self.controller_ids[index] = client.id

        # One client failing ends only its own thread.
        try:
            with client:
                client.run(self._stop_event, interval=self.interval, poll_ms=self.poll_ms)
        except IotCommError as e:
            with self._lock:
                self.failures[index] = e
            print(f"[client {index}] failed: {e}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Controller clients (ZeroMQ DEALER)")
    parser.add_argument("--host", default="localhost")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    parser.add_argument("--num-clients", type=int, default=1000)
    parser.add_argument(
        "--interval",
        type=float,
        default=REPORT_INTERVAL,
        help="seconds between telemetry reports per controller",
    )
    args = parser.parse_args()

    fleet = ClientFleet(args.num_clients, host=args.host, port=args.port, interval=args.interval)
    fleet.start()

    print(f"[client] started {args.num_clients} controllers -> {fleet.address}")

    try:
        while fleet.alive:
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        fleet.stop()


if __name__ == "__main__":
    main()
