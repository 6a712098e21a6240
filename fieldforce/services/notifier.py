from __future__ import annotations

import logging
from typing import Any, Protocol

from fieldforce.settings import get_settings

logger = logging.getLogger("fieldforce.notifier")

DUTY_STARTED = "duty_started"
DUTY_ENDED = "duty_ended"


class DutyNotifier(Protocol):
    def publish(self, user_id: int, event: str, payload: dict[str, Any]) -> None: ...


class LoggingDutyNotifier:
    """Default publisher: records the event for the delivery service to tail."""

    def publish(self, user_id: int, event: str, payload: dict[str, Any]) -> None:
        logger.info(
            "duty_event_published",
            extra={"user_id": user_id, "event": event, "payload": payload},
        )


class NullDutyNotifier:
    def publish(self, user_id: int, event: str, payload: dict[str, Any]) -> None:
        return


def get_duty_notifier() -> DutyNotifier:
    if not get_settings().notifications_enabled:
        return NullDutyNotifier()
    return LoggingDutyNotifier()


def publish_safely(notifier: DutyNotifier, user_id: int, event: str, payload: dict[str, Any]) -> None:
    try:
        notifier.publish(user_id, event, payload)
    except Exception:
        logger.exception(
            "duty_event_publish_failed",
            extra={"user_id": user_id, "event": event},
        )
