"""Deferred notifications about registration changes.

Events are collected while a roster's unit of work runs and handed to the
sinks only after it committed. A sink that raises is logged and skipped; it
never affects the allocation that triggered it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional

from roster_engine.models import Participant, Registration, RegistrationStatus

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    REGISTERED = "registered"
    RESERVED = "reserved"
    SUBSTITUTE = "substitute"
    WITHDRAWN = "withdrawn"
    EXCUSED = "excused"
    NOT_EXCUSED = "not_excused"
    PROMOTED = "promoted"
    DEMOTED = "demoted"
    TEAM_CHANGED = "team_changed"


_STATUS_EVENTS = {
    RegistrationStatus.REGISTERED: EventKind.REGISTERED,
    RegistrationStatus.RESERVED: EventKind.RESERVED,
    RegistrationStatus.SUBSTITUTE: EventKind.SUBSTITUTE,
    RegistrationStatus.WITHDRAWN: EventKind.WITHDRAWN,
    RegistrationStatus.EXCUSED: EventKind.EXCUSED,
    RegistrationStatus.NOT_EXCUSED: EventKind.NOT_EXCUSED,
}


def event_for_status(status: RegistrationStatus) -> EventKind:
    return _STATUS_EVENTS[status]


@dataclass(frozen=True)
class Notification:
    roster_id: str
    participant: Participant
    kind: EventKind
    registration: Registration

    @classmethod
    def for_registration(cls, kind: EventKind, registration: Registration) -> "Notification":
        # snapshot so later mutations do not leak into queued events
        return cls(
            roster_id=registration.roster_id,
            participant=registration.participant,
            kind=kind,
            registration=registration.copy(),
        )


NotificationSink = Callable[[Notification], None]


class RecordingSink:
    """Keeps every delivered notification in memory."""

    def __init__(self) -> None:
        self.delivered: List[Notification] = []

    def __call__(self, notification: Notification) -> None:
        self.delivered.append(notification)

    def kinds_for(self, participant_id: str) -> List[EventKind]:
        return [n.kind for n in self.delivered if n.participant.id == participant_id]


class NotificationDispatcher:
    def __init__(self, sinks: Optional[Iterable[NotificationSink]] = None) -> None:
        self.sinks: List[NotificationSink] = list(sinks or [])

    def dispatch(self, notifications: Iterable[Notification]) -> int:
        """Deliver to every sink; returns the number of successful deliveries."""
        delivered = 0
        for notification in notifications:
            for sink in self.sinks:
                try:
                    sink(notification)
                except Exception:
                    logger.exception(
                        "notification delivery failed roster=%s participant=%s kind=%s",
                        notification.roster_id,
                        notification.participant.id,
                        notification.kind.value,
                    )
                    continue
                delivered += 1
        return delivered


__all__ = [
    "EventKind",
    "Notification",
    "NotificationDispatcher",
    "NotificationSink",
    "RecordingSink",
    "event_for_status",
]
