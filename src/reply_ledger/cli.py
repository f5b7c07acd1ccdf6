"""Command line entry point: ``reply-ledger``."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from collections.abc import Sequence

from reply_ledger.core.logging import configure_logging
from reply_ledger.core.settings import settings
from reply_ledger.db.session import create_tables
from reply_ledger.pipeline import build_pipeline

logger = logging.getLogger(__name__)


def _init_db(_: argparse.Namespace) -> int:
    create_tables()
    print("Database initialized.")
    return 0


async def _run_forever() -> None:
    deps, scheduler = build_pipeline(settings)
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:  # pragma: no cover - Windows event loops
            pass
    await scheduler.start()
    try:
        await stop.wait()
    finally:
        await scheduler.stop()
        await deps.aclose()


def _run(_: argparse.Namespace) -> int:
    asyncio.run(_run_forever())
    return 0


async def _tick_once(name: str) -> str:
    deps, scheduler = build_pipeline(settings)
    try:
        outcome = await scheduler.run_once(name)
    finally:
        await deps.aclose()
    lines = [outcome.summary()]
    lines.extend(f"  {key}: {message}" for key, message in sorted(outcome.errors.items()))
    return "\n".join(lines)


def _tick(args: argparse.Namespace) -> int:
    try:
        print(asyncio.run(_tick_once(args.worker)))
    except KeyError as exc:
        print(exc.args[0])
        return 2
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="reply-ledger", description=settings.app_name)
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    init_db = sub.add_parser("init-db", help="Create all database tables")
    init_db.set_defaults(func=_init_db)

    run = sub.add_parser("run", help="Run every worker until interrupted")
    run.set_defaults(func=_run)

    tick = sub.add_parser("tick", help="Run a single tick of one worker")
    tick.add_argument("worker", help="Worker name, e.g. evaluation or tx_confirmation")
    tick.set_defaults(func=_tick)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
