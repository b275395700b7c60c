"""Errors raised by the allocation engine.

All of them are detected locally and raised synchronously; only
:class:`RosterBusy` is worth retrying on the caller's side.
"""

from __future__ import annotations


class AllocationError(Exception):
    """Base class for every error raised by the engine."""

    def __init__(
        self,
        message: str,
        *,
        roster_id: str | None = None,
        participant_id: str | None = None,
    ) -> None:
        self.roster_id = roster_id
        self.participant_id = participant_id
        context = []
        if roster_id is not None:
            context.append(f"roster={roster_id}")
        if participant_id is not None:
            context.append(f"participant={participant_id}")
        full = f"{message} ({', '.join(context)})" if context else message
        super().__init__(full)
        self.message = message


class DuplicateRegistration(AllocationError):
    """The participant already holds the requested status."""


class RegistrationNotFound(AllocationError, LookupError):
    """No registration exists, or it is not in a status the action needs."""


class InvalidStateTransition(AllocationError, ValueError):
    """The intent is not valid from the registration's current status."""


class InvalidTiming(AllocationError, ValueError):
    """The roster is outside the window in which the actor may act."""


class RosterInactive(AllocationError):
    """The roster is not open for changes."""


class RosterNotFound(AllocationError, LookupError):
    """Unknown roster id."""


class ParticipantNotFound(AllocationError, LookupError):
    """Unknown participant id."""


class RosterBusy(AllocationError):
    """Another unit of work holds the roster lock."""


__all__ = [
    "AllocationError",
    "DuplicateRegistration",
    "InvalidStateTransition",
    "InvalidTiming",
    "ParticipantNotFound",
    "RegistrationNotFound",
    "RosterBusy",
    "RosterInactive",
    "RosterNotFound",
]
