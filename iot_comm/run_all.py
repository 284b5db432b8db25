from __future__ import annotations

# Single-command runner.
#
# Starts a full local system from one command by spawning child processes:
# - the broker (frontend + worker pool)
# - a fleet of N simulated controllers
#
# Both stay independent processes, exactly as when started by hand.

import argparse
import os
import signal
import subprocess
import sys
import time
from dataclasses import dataclass

from .endpoints import DEFAULT_PORT, DEFAULT_WORKERS, REPORT_INTERVAL, frontend_bind


@dataclass
class Child:
    name: str
    proc: subprocess.Popen


def run_all(
    *,
    port: int,
    num_workers: int,
    num_clients: int,
    interval: float,
) -> None:
    if num_workers <= 0:
        raise ValueError("num_workers must be > 0")
    if num_clients <= 0:
        raise ValueError("num_clients must be > 0")

    python = sys.executable

    # Each child gets its own process group so it can be stopped as a unit.
    def popen(name: str, args: list[str]) -> Child:
        proc = subprocess.Popen(
            args,
            preexec_fn=os.setsid,
        )
        return Child(name=name, proc=proc)

    children: list[Child] = []

    broker_args = [
        python,
        "-m",
        "iot_comm.broker",
        "--bind",
        frontend_bind(port),
        "--workers",
        str(num_workers),
    ]
    children.append(popen("broker", broker_args))

    # Small delay so the broker is bound before clients connect.
    time.sleep(0.5)

    client_args = [
        python,
        "-m",
        "iot_comm.client",
        "--host",
        "localhost",
        "--port",
        str(port),
        "--num-clients",
        str(num_clients),
        "--interval",
        str(interval),
    ]
    children.append(popen("clients", client_args))

    print(
        "[run] started: "
        + ", ".join(f"{c.name}(pid={c.proc.pid})" for c in children)
        + "\nPress Ctrl+C to stop all."
    )

    try:
        # Any child exiting on its own means something went fatally wrong.
        while True:
            for c in children:
                rc = c.proc.poll()
                if rc is not None:
                    raise RuntimeError(f"Child {c.name} exited with code {rc}")
            time.sleep(0.5)
    except KeyboardInterrupt:
        pass
    finally:
        _terminate_children(children)


def _terminate_children(children: list[Child]) -> None:
    # Try graceful termination.
    for c in children:
        if c.proc.poll() is None:
            try:
                os.killpg(os.getpgid(c.proc.pid), signal.SIGTERM)
            except ProcessLookupError:
                pass

    deadline = time.time() + 2.0
    while time.time() < deadline:
        if all(c.proc.poll() is not None for c in children):
            return
        time.sleep(0.1)

    # Force kill.
    for c in children:
        if c.proc.poll() is None:
            try:
                os.killpg(os.getpgid(c.proc.pid), signal.SIGKILL)
            except ProcessLookupError:
                pass


def main() -> None:
    parser = argparse.ArgumentParser(description="Run broker + controller fleet")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    parser.add_argument("--workers", type=int, default=DEFAULT_WORKERS)
    parser.add_argument("--num-clients", type=int, default=1000)
    parser.add_argument("--interval", type=float, default=REPORT_INTERVAL, help="seconds between reports")
    args = parser.parse_args()

    run_all(
        port=args.port,
        num_workers=args.workers,
        num_clients=args.num_clients,
        interval=args.interval,
    )


if __name__ == "__main__":
    main()
