from __future__ import annotations

# Broker: frontend/backend proxy.
#
# Clients connect to a ZeroMQ ROUTER socket (the frontend). The ROUTER prefixes
# every inbound message with the sender's identity frame, so each request
# arrives as `[identity, payload]`. The relay puts that frame list, unchanged,
# on an in-process queue shared by the worker pool (the backend). Workers
# answer with `[identity, reply]` on a reply queue; the relay sends those
# frames to the ROUTER, which routes by the leading identity frame.
#
# The relay never looks inside payloads.
#
# Failure policy:
# - binding the frontend fails -> BindError from start(), nothing keeps running
# - a transport error while relaying -> everything stops, wait() re-raises it
# - every worker has exited -> same as a transport error

import argparse
import queue
import threading

import zmq

from .endpoints import DEFAULT_WORKERS, frontend_bind
from .errors import BindError, TransportError
from .worker import Emit, Frames, Handler, WorkerPool


class Broker:
    """ROUTER frontend + queue fan-out to a fixed worker pool."""

    def __init__(
        self,
        *,
        frontend_addr: str = frontend_bind(),
        num_workers: int = DEFAULT_WORKERS,
        handler: Handler | None = None,
        emit: Emit = print,
        queue_size: int = 1000,
        poll_ms: int = 5,
    ) -> None:
        self.frontend_addr = frontend_addr
        self.poll_ms = poll_ms

        self._context = zmq.Context()
        self._frontend: zmq.Socket | None = None

        # Internal fan-out endpoint. Bounded: a backlog queues here.
        self._requests: "queue.Queue[Frames]" = queue.Queue(maxsize=queue_size)
        self._replies: "queue.Queue[Frames]" = queue.Queue()

        self.pool = WorkerPool(self._requests, self._replies, size=num_workers, handler=handler, emit=emit)

        # Relay thread control.
        self._stop_event = threading.Event()
        self._relay_thread: threading.Thread | None = None
        self._error: TransportError | None = None

        # Actual bound address (resolves `tcp://host:*`).
        self.endpoint: str | None = None

    # -------------------- lifecycle --------------------

    def start(self) -> None:
        """Bind the frontend, start workers, enter the relaying state."""
        if self._relay_thread is not None:
            return

        frontend = self._context.socket(zmq.ROUTER)
        frontend.setsockopt(zmq.LINGER, 0)
        try:
            frontend.bind(self.frontend_addr)
        except zmq.ZMQError as e:
            frontend.close()
            self._context.term()
            raise BindError(self.frontend_addr, str(e)) from e

        self._frontend = frontend
        self.endpoint = frontend.getsockopt_string(zmq.LAST_ENDPOINT)

        self.pool.start()

        # The relay thread owns the socket from here on.
        self._relay_thread = threading.Thread(target=self._relay, name="broker relay", daemon=True)
        self._relay_thread.start()

    def stop(self) -> None:
        """Cancel relaying and stop the workers. Safe to call more than once."""
        self._stop_event.set()
        t = self._relay_thread
        if t and t.is_alive():
            t.join(timeout=2.0)
        self.pool.stop()
        if not self._context.closed:
            self._context.destroy(linger=0)

    def wait(self, timeout: float | None = None) -> bool:
        """Block until relaying ends. Re-raises a fatal relay error.

        Returns True if the relay has ended, False on timeout.
        """
        t = self._relay_thread
        if t is not None:
            t.join(timeout=timeout)
            if t.is_alive():
                return False
        if self._error is not None:
            raise self._error
        return True

    def serve_forever(self) -> None:
        self.start()
        # Short joins keep the main thread responsive to Ctrl+C.
        while not self.wait(timeout=0.5):
            pass

    @property
    def running(self) -> bool:
        t = self._relay_thread
        return bool(t and t.is_alive())

    def __enter__(self) -> Broker:
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()

    # -------------------- relay thread --------------------

    def _relay(self) -> None:
        frontend = self._frontend
        assert frontend is not None
        try:
            while not self._stop_event.is_set():
                if self.pool.alive == 0:
                    # Requests would queue with nobody to answer them.
                    self._fail(TransportError(f"all {self.pool.size} workers have exited"))
                    return
                if frontend.poll(self.poll_ms, zmq.POLLIN):
                    self._forward(frontend.recv_multipart(), frontend)
                self._drain_replies(frontend)
        except zmq.ZMQError as e:
            self._fail(TransportError(f"broker failed relaying: {e}"))
        finally:
            frontend.close()

    def _fail(self, error: TransportError) -> None:
        self._error = error
        print(f"[broker] fatal: {error}")
        self._stop_event.set()
        self.pool.stop()

    def _forward(self, frames: Frames, frontend: zmq.Socket) -> None:
        # Block while the backlog is full, but keep acknowledgments flowing.
        while not self._stop_event.is_set() and self.pool.alive:
            try:
                self._requests.put(frames, timeout=0.1)
                return
            except queue.Full:
                self._drain_replies(frontend)

    def _drain_replies(self, frontend: zmq.Socket) -> None:
        while True:
            try:
                frames = self._replies.get_nowait()
            except queue.Empty:
                return
            frontend.send_multipart(frames)


def main() -> None:
    parser = argparse.ArgumentParser(description="Telemetry broker (ZeroMQ ROUTER -> worker pool)")
    parser.add_argument("--bind", default=frontend_bind(), help="frontend address clients connect to")
    parser.add_argument("--workers", type=int, default=DEFAULT_WORKERS)
    args = parser.parse_args()

    broker = Broker(frontend_addr=args.bind, num_workers=args.workers)
    broker.start()

    print(f"[broker] relaying {broker.endpoint} -> {args.workers} workers")

    try:
        broker.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        broker.stop()


if __name__ == "__main__":
    main()
