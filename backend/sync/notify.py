from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Literal

log = logging.getLogger(__name__)

NotificationLevel = Literal["info", "warning", "error"]


@dataclass(frozen=True)
class Notification:
    """Transient user-visible message (toast)."""

    level: NotificationLevel
    title: str
    message: str
    duration_ms: int = 3000


Notifier = Callable[[Notification], None]


def log_notifier(n: Notification) -> None:
    # Fallback when no UI is attached.
    log.warning("[%s] %s: %s", n.level, n.title, n.message)
