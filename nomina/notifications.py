"""User-facing notifications raised by the editing controller."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

logger = logging.getLogger(__name__)


class NotificationVariant(str, enum.Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    DESTRUCTIVE = "destructive"


@dataclass(frozen=True)
class Notification:
    title: str
    description: str = ""
    variant: NotificationVariant = NotificationVariant.INFO
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class NotificationCenter:
    """Collects notifications and forwards them to subscribed listeners."""

    def __init__(self) -> None:
        self._items: list[Notification] = []
        self._listeners: list[Callable[[Notification], None]] = []

    def subscribe(self, listener: Callable[[Notification], None]) -> None:
        self._listeners.append(listener)

    def notify(
        self,
        title: str,
        description: str = "",
        variant: NotificationVariant = NotificationVariant.INFO,
    ) -> Notification:
        notification = Notification(title=title, description=description, variant=variant)
        self._items.append(notification)
        log_level = logging.WARNING if variant is NotificationVariant.DESTRUCTIVE else logging.INFO
        logger.log(log_level, "%s: %s", title, description)
        for listener in self._listeners:
            listener(notification)
        return notification

    @property
    def items(self) -> list[Notification]:
        return list(self._items)

    @property
    def last(self) -> Notification | None:
        return self._items[-1] if self._items else None

    def clear(self) -> None:
        self._items.clear()
