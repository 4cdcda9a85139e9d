from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

from clientops.platform.batch import BatchResult


logger = logging.getLogger("clientops.notifications")
_LEVELS = {"info": logging.INFO, "warning": logging.WARNING, "error": logging.ERROR}


class NotificationPort(Protocol):
    def batch_completed(self, result: BatchResult) -> None: ...

    def notify(self, level: str, message: str) -> None: ...


class LoggingNotificationPort:
    def batch_completed(self, result: BatchResult) -> None:
        logger.info(
            "batch.completed",
            extra={
                "action": result.action,
                "succeeded": len(result.succeeded),
                "failed": len(result.failed),
            },
        )

    def notify(self, level: str, message: str) -> None:
        logger.log(_LEVELS.get(level.lower(), logging.INFO), message)


@dataclass
class InMemoryNotificationPort:
    batches: list[BatchResult] = field(default_factory=list)
    messages: list[tuple[str, str]] = field(default_factory=list)

    def batch_completed(self, result: BatchResult) -> None:
        self.batches.append(result)

    def notify(self, level: str, message: str) -> None:
        self.messages.append((level, message))
