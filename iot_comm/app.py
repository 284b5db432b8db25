from __future__ import annotations

# Single-entrypoint runner.
#
#     python -m iot_comm.app run [--num-clients N] [--workers W]
#
# starts the broker and a controller fleet together. The `broker` and
# `clients` subcommands start one side only (e.g. on different hosts).

import argparse

from .endpoints import DEFAULT_PORT, DEFAULT_WORKERS, REPORT_INTERVAL, frontend_bind


def main() -> None:
    parser = argparse.ArgumentParser(description="IoT controller telemetry system - main entrypoint")
    sub = parser.add_subparsers(dest="cmd", required=True)

    def add_client_args(p: argparse.ArgumentParser) -> None:
        p.add_argument("--num-clients", type=int, default=1000)
        p.add_argument("--interval", type=float, default=REPORT_INTERVAL, help="seconds between reports")

    # ---- Normal operation: one command ----
    p_run = sub.add_parser("run", help="Start broker + controller fleet")
    p_run.add_argument("--port", type=int, default=DEFAULT_PORT)
    p_run.add_argument("--workers", type=int, default=DEFAULT_WORKERS)
    add_client_args(p_run)

    # ---- One side only ----
    p_broker = sub.add_parser("broker", help="Start the broker only")
    p_broker.add_argument("--bind", default=frontend_bind())
    p_broker.add_argument("--workers", type=int, default=DEFAULT_WORKERS)

    p_clients = sub.add_parser("clients", help="Start a controller fleet only")
    p_clients.add_argument("--host", default="localhost")
    p_clients.add_argument("--port", type=int, default=DEFAULT_PORT)
    add_client_args(p_clients)

    args = parser.parse_args()

    if args.cmd == "run":
        from .run_all import main as run

        run_args = [
            "--port",
            str(args.port),
            "--workers",
            str(args.workers),
            "--num-clients",
            str(args.num_clients),
            "--interval",
            str(args.interval),
        ]
        _dispatch_to_module_main(run, run_args)
        return

    if args.cmd == "broker":
        from .broker import main as run

        _dispatch_to_module_main(run, ["--bind", args.bind, "--workers", str(args.workers)])
        return

    if args.cmd == "clients":
        from .client import main as run

        run_args = [
            "--host",
            args.host,
            "--port",
            str(args.port),
            "--num-clients",
            str(args.num_clients),
            "--interval",
            str(args.interval),
        ]
        _dispatch_to_module_main(run, run_args)
        return


def _dispatch_to_module_main(module_main, argv: list[str]) -> None:
    import sys

    old_argv = sys.argv[:]
    try:
        sys.argv = [old_argv[0], *argv]
        module_main()
    finally:
        sys.argv = old_argv


if __name__ == "__main__":
    main()
