"""In-memory registration store with one lock per roster.

Every mutation of a roster's registrations goes through
:meth:`RosterStore.unit_of_work`. The context manager holds the roster's lock,
snapshots the roster and its registrations, and restores that snapshot if any
exception escapes. Notifications queued on the session are dispatched only
after the lock is released and the changes are committed.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field, fields, replace
from typing import Dict, Iterator, List, Optional

from roster_engine.errors import (
    DuplicateRegistration,
    ParticipantNotFound,
    RosterBusy,
    RosterNotFound,
)
from roster_engine.models import Participant, Registration, Roster
from roster_engine.notifications import (
    EventKind,
    Notification,
    NotificationDispatcher,
)

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TIMEOUT = 2.0


@dataclass
class RosterSession:
    """Mutable view on one roster, valid inside a unit of work only."""

    roster: Roster
    registrations: Dict[str, Registration]
    participants: Dict[str, Participant]
    outbox: List[Notification] = field(default_factory=list)

    def registration_list(self) -> List[Registration]:
        return list(self.registrations.values())

    def get(self, participant_id: str) -> Optional[Registration]:
        return self.registrations.get(participant_id)

    def participant(self, participant_id: str) -> Participant:
        try:
            return self.participants[participant_id]
        except KeyError:
            raise ParticipantNotFound(
                "unknown participant", roster_id=self.roster.id, participant_id=participant_id
            ) from None

    def add(self, registration: Registration) -> None:
        pid = registration.participant_id
        existing = self.registrations.get(pid)
        if existing is not None and existing is not registration:
            raise DuplicateRegistration(
                "a registration already exists", roster_id=self.roster.id, participant_id=pid
            )
        self.registrations[pid] = registration

    def notify(self, kind: EventKind, registration: Registration) -> None:
        self.outbox.append(Notification.for_registration(kind, registration))


class RosterStore:
    def __init__(self, *, lock_timeout: float = DEFAULT_LOCK_TIMEOUT) -> None:
        self.lock_timeout = lock_timeout
        self._rosters: Dict[str, Roster] = {}
        self._participants: Dict[str, Participant] = {}
        self._registrations: Dict[str, Dict[str, Registration]] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    # -- setup ---------------------------------------------------------

    def add_roster(self, roster: Roster) -> None:
        with self._guard:
            self._rosters[roster.id] = roster
            self._registrations.setdefault(roster.id, {})

    def add_participant(self, participant: Participant) -> None:
        with self._guard:
            self._participants[participant.id] = participant

    def add_registration(self, registration: Registration) -> None:
        """Seed a registration directly (e.g. from a CSV import)."""
        if registration.roster_id not in self._rosters:
            raise RosterNotFound("unknown roster", roster_id=registration.roster_id)
        with self._guard:
            self._participants.setdefault(registration.participant_id, registration.participant)
            regs = self._registrations.setdefault(registration.roster_id, {})
            if registration.participant_id in regs:
                raise DuplicateRegistration(
                    "a registration already exists",
                    roster_id=registration.roster_id,
                    participant_id=registration.participant_id,
                )
            regs[registration.participant_id] = registration

    # -- reads ---------------------------------------------------------

    def get_roster(self, roster_id: str) -> Roster:
        try:
            return self._rosters[roster_id]
        except KeyError:
            raise RosterNotFound("unknown roster", roster_id=roster_id) from None

    def get_participant(self, participant_id: str) -> Participant:
        try:
            return self._participants[participant_id]
        except KeyError:
            raise ParticipantNotFound("unknown participant", participant_id=participant_id) from None

    def roster_ids(self) -> List[str]:
        return sorted(self._rosters)

    def registrations(self, roster_id: str) -> List[Registration]:
        """Copies of the roster's registrations, oldest submission first."""
        self.get_roster(roster_id)
        regs = self._registrations.get(roster_id, {}).values()
        return [r.copy() for r in sorted(regs, key=lambda r: r.priority_key())]

    def get_registration(self, roster_id: str, participant_id: str) -> Optional[Registration]:
        self.get_roster(roster_id)
        reg = self._registrations.get(roster_id, {}).get(participant_id)
        return reg.copy() if reg is not None else None

    # -- transactions --------------------------------------------------

    def _lock_for(self, roster_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(roster_id)
            if lock is None:
                lock = self._locks[roster_id] = threading.Lock()
            return lock

    @contextmanager
    def unit_of_work(
        self,
        roster_id: str,
        *,
        timeout: float | None = None,
        dispatcher: NotificationDispatcher | None = None,
    ) -> Iterator[RosterSession]:
        roster = self.get_roster(roster_id)
        wait = self.lock_timeout if timeout is None else timeout
        lock = self._lock_for(roster_id)
        if not lock.acquire(timeout=max(0.0, wait)):
            raise RosterBusy(f"roster is locked by another operation (waited {wait:.1f}s)", roster_id=roster_id)

        try:
            regs = self._registrations.setdefault(roster_id, {})
            roster_before = replace(roster)
            regs_before = {pid: r.copy() for pid, r in regs.items()}
            session = RosterSession(roster=roster, registrations=regs, participants=self._participants)
            try:
                yield session
            except BaseException:
                self._restore(roster, roster_before, regs, regs_before)
                logger.warning("rolled back roster=%s", roster_id)
                raise
        finally:
            lock.release()

        if dispatcher is not None and session.outbox:
            dispatcher.dispatch(session.outbox)

    @staticmethod
    def _restore(
        roster: Roster,
        roster_before: Roster,
        regs: Dict[str, Registration],
        regs_before: Dict[str, Registration],
    ) -> None:
        for f in fields(roster):
            setattr(roster, f.name, getattr(roster_before, f.name))
        for pid in list(regs):
            if pid not in regs_before:
                del regs[pid]
        for pid, snapshot in regs_before.items():
            current = regs.get(pid)
            if current is None:
                regs[pid] = snapshot
            else:
                current.restore_from(snapshot)


__all__ = ["DEFAULT_LOCK_TIMEOUT", "RosterSession", "RosterStore"]
