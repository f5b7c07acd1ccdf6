"""Logging setup shared by the CLI and the HTTP app."""

from __future__ import annotations

import logging
import sys

from reply_ledger.core.settings import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Install a single stderr handler on the root logger.

    Calling it more than once replaces the handler instead of stacking them.
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_reply_ledger", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._reply_ledger = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel((level or settings.log_level).upper())

    # httpx logs every request at INFO; keep it out of the worker output.
    logging.getLogger("httpx").setLevel(logging.WARNING)
