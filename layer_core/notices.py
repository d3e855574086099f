"""User-facing notice plumbing shared by the store and the session."""
from __future__ import annotations

import logging
from typing import Callable

NotifyFn = Callable[[str, str], None]

LOGGER = logging.getLogger("CADLayerManager.Notices")


def noop_notify(title: str, message: str) -> None:
    return None


def logging_notify(title: str, message: str) -> None:
    """Notifier used when no dialog is attached: the message lands in the log."""

    LOGGER.info("%s: %s", title, message)
