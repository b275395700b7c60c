"""Registration state machine.

:meth:`RegistrationStateMachine.apply_intent` validates one intent against a
single (roster, participant) registration and mutates it into its new state.
It never touches other registrations; restoring global invariants after a
vacancy is the waitlist promoter's job.

Accepted transitions (``None`` is the virtual NO_RESPONSE state):

=====================  ===============================================  ==============
intent                 from                                             to
=====================  ===============================================  ==============
register               None, RESERVED, WITHDRAWN, SUBSTITUTE,           REGISTERED if a
                       NOT_EXCUSED                                      slot is free,
                                                                        else RESERVED
register_as_substitute anything but REGISTERED / SUBSTITUTE             SUBSTITUTE
withdraw               REGISTERED, RESERVED                             WITHDRAWN
excuse                 None, SUBSTITUTE, NOT_EXCUSED                    EXCUSED
mark_not_excused       REGISTERED, roster already started               NOT_EXCUSED
cancel_not_excused     NOT_EXCUSED, roster already started              EXCUSED
change_team            REGISTERED                                       REGISTERED
change_position        REGISTERED, RESERVED, SUBSTITUTE                 unchanged
admin_set_status       any existing registration, privileged actors     any but
                                                                        NOT_EXCUSED
=====================  ===============================================  ==============
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, List, Optional

from roster_engine.capacity import CapacityAllocator
from roster_engine.clock import Clock, SystemClock
from roster_engine.config import Config, get_config
from roster_engine.errors import (
    DuplicateRegistration,
    InvalidStateTransition,
    InvalidTiming,
    RegistrationNotFound,
    RosterInactive,
)
from roster_engine.models import (
    ExcuseReason,
    Origin,
    Participant,
    Position,
    Registration,
    RegistrationStatus,
    Roster,
    Team,
)

logger = logging.getLogger(__name__)


class Actor(str, Enum):
    PLAYER = "player"
    MANAGER = "manager"
    ADMIN = "admin"

    @property
    def privileged(self) -> bool:
        return self is not Actor.PLAYER

    @property
    def origin(self) -> Origin:
        return Origin(self.value)


class IntentKind(str, Enum):
    REGISTER = "register"
    REGISTER_AS_SUBSTITUTE = "register_as_substitute"
    WITHDRAW = "withdraw"
    EXCUSE = "excuse"
    MARK_NOT_EXCUSED = "mark_not_excused"
    CANCEL_NOT_EXCUSED = "cancel_not_excused"
    CHANGE_TEAM = "change_team"
    CHANGE_POSITION = "change_position"
    ADMIN_SET_STATUS = "admin_set_status"


@dataclass(frozen=True)
class Intent:
    """What a caller wants to happen to one registration, plus its payload."""

    kind: IntentKind
    actor: Actor = Actor.PLAYER
    team: Optional[Team] = None
    position: Optional[Position] = None
    status: Optional[RegistrationStatus] = None
    excuse_reason: Optional[ExcuseReason] = None
    excuse_note: Optional[str] = None
    admin_note: Optional[str] = None

    @classmethod
    def register(cls, team: Team | None = None, position: Position | None = None, *,
                 actor: Actor = Actor.PLAYER, admin_note: str | None = None) -> "Intent":
        return cls(IntentKind.REGISTER, actor=actor, team=team, position=position,
                   admin_note=admin_note)

    @classmethod
    def substitute(cls, team: Team | None = None, position: Position | None = None, *,
                   actor: Actor = Actor.PLAYER) -> "Intent":
        return cls(IntentKind.REGISTER_AS_SUBSTITUTE, actor=actor, team=team, position=position)

    @classmethod
    def withdraw(cls, reason: ExcuseReason | None = None, note: str | None = None, *,
                 actor: Actor = Actor.PLAYER) -> "Intent":
        return cls(IntentKind.WITHDRAW, actor=actor, excuse_reason=reason, excuse_note=note)

    @classmethod
    def excuse(cls, reason: ExcuseReason | None = None, note: str | None = None, *,
               actor: Actor = Actor.PLAYER) -> "Intent":
        return cls(IntentKind.EXCUSE, actor=actor, excuse_reason=reason, excuse_note=note)

    @classmethod
    def mark_not_excused(cls, admin_note: str | None = None, *,
                         actor: Actor = Actor.ADMIN) -> "Intent":
        return cls(IntentKind.MARK_NOT_EXCUSED, actor=actor, admin_note=admin_note)

    @classmethod
    def cancel_not_excused(cls, reason: ExcuseReason | None = None, note: str | None = None, *,
                           actor: Actor = Actor.MANAGER) -> "Intent":
        return cls(IntentKind.CANCEL_NOT_EXCUSED, actor=actor, excuse_reason=reason,
                   excuse_note=note)

    @classmethod
    def change_team(cls, *, actor: Actor = Actor.PLAYER) -> "Intent":
        return cls(IntentKind.CHANGE_TEAM, actor=actor)

    @classmethod
    def change_position(cls, position: Position, *, actor: Actor = Actor.PLAYER) -> "Intent":
        return cls(IntentKind.CHANGE_POSITION, actor=actor, position=position)

    @classmethod
    def admin_set_status(cls, status: RegistrationStatus, *, actor: Actor = Actor.ADMIN,
                         admin_note: str | None = None) -> "Intent":
        return cls(IntentKind.ADMIN_SET_STATUS, actor=actor, status=status,
                   admin_note=admin_note)


@dataclass(frozen=True)
class Transition:
    registration: Registration
    previous_status: Optional[RegistrationStatus]
    previous_team: Optional[Team]
    previous_position: Optional[Position]
    created: bool

    @property
    def status_changed(self) -> bool:
        return self.previous_status is not self.registration.status

    @property
    def frees_slot(self) -> bool:
        return (
            self.previous_status is RegistrationStatus.REGISTERED
            and self.registration.status is not RegistrationStatus.REGISTERED
        )


_REGISTER_FROM = {
    None,
    RegistrationStatus.RESERVED,
    RegistrationStatus.WITHDRAWN,
    RegistrationStatus.SUBSTITUTE,
    RegistrationStatus.NOT_EXCUSED,
}
_WITHDRAW_FROM = {RegistrationStatus.REGISTERED, RegistrationStatus.RESERVED}
_EXCUSE_FROM = {None, RegistrationStatus.SUBSTITUTE, RegistrationStatus.NOT_EXCUSED}
_POSITION_CHANGE_FROM = {
    RegistrationStatus.REGISTERED,
    RegistrationStatus.RESERVED,
    RegistrationStatus.SUBSTITUTE,
}
_CLEARS_EXCUSE = {
    RegistrationStatus.REGISTERED,
    RegistrationStatus.RESERVED,
    RegistrationStatus.SUBSTITUTE,
    RegistrationStatus.NOT_EXCUSED,
}

_Handler = Callable[
    [Roster, Participant, Optional[Registration], Intent, List[Registration], datetime],
    Registration,
]


class RegistrationStateMachine:
    def __init__(
        self,
        allocator: CapacityAllocator | None = None,
        *,
        clock: Clock | None = None,
        config: Config | None = None,
    ) -> None:
        self.allocator = allocator or CapacityAllocator()
        self.clock = clock or SystemClock()
        self.config = config or get_config()
        self._handlers: Dict[IntentKind, _Handler] = {
            IntentKind.REGISTER: self._register,
            IntentKind.REGISTER_AS_SUBSTITUTE: self._register_as_substitute,
            IntentKind.WITHDRAW: self._withdraw,
            IntentKind.EXCUSE: self._excuse,
            IntentKind.MARK_NOT_EXCUSED: self._mark_not_excused,
            IntentKind.CANCEL_NOT_EXCUSED: self._cancel_not_excused,
            IntentKind.CHANGE_TEAM: self._change_team,
            IntentKind.CHANGE_POSITION: self._change_position,
            IntentKind.ADMIN_SET_STATUS: self._admin_set_status,
        }

    def apply_intent(
        self,
        roster: Roster,
        participant: Participant,
        registration: Optional[Registration],
        intent: Intent,
        registrations: List[Registration],
    ) -> Transition:
        """Apply ``intent`` and return the resulting transition.

        ``registrations`` is the roster's full registration set and is only
        read, for capacity checks. ``registration`` is mutated in place (or
        created when ``None``); callers own persistence and rollback.
        """

        handler = self._handlers[intent.kind]
        previous_status = registration.status if registration is not None else None
        previous_team = registration.team if registration is not None else None
        previous_position = registration.assigned_position if registration is not None else None

        now = self.clock.now()
        updated = handler(roster, participant, registration, intent, registrations, now)

        logger.info(
            "transition roster=%s participant=%s intent=%s from=%s to=%s team=%s position=%s",
            roster.id,
            participant.id,
            intent.kind.value,
            previous_status.value if previous_status else "no_response",
            updated.status.value,
            updated.team.value if updated.team else None,
            updated.assigned_position.value if updated.assigned_position else None,
        )
        return Transition(
            registration=updated,
            previous_status=previous_status,
            previous_team=previous_team,
            previous_position=previous_position,
            created=registration is None,
        )

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    def _require_active(self, roster: Roster, participant: Participant) -> None:
        if self.config.REQUIRE_ACTIVE_ROSTER and not roster.is_active:
            raise RosterInactive(
                "roster is not open for registrations",
                roster_id=roster.id,
                participant_id=participant.id,
            )

    def _require_edit_window(
        self, roster: Roster, participant: Participant, intent: Intent, now: datetime
    ) -> None:
        if intent.actor.privileged:
            return
        deadline = roster.scheduled_at + timedelta(minutes=self.config.PLAYER_EDIT_WINDOW_MINUTES)
        if now >= deadline:
            raise InvalidTiming(
                "registration can only be changed until "
                f"{self.config.PLAYER_EDIT_WINDOW_MINUTES} minutes after the start",
                roster_id=roster.id,
                participant_id=participant.id,
            )

    def _require_not_started(
        self, roster: Roster, participant: Participant, intent: Intent, now: datetime
    ) -> None:
        if intent.actor.privileged:
            return
        if now >= roster.scheduled_at:
            raise InvalidTiming(
                "only rosters that have not started yet can be changed",
                roster_id=roster.id,
                participant_id=participant.id,
            )

    def _require_started(self, roster: Roster, participant: Participant, now: datetime) -> None:
        if now < roster.scheduled_at:
            raise InvalidStateTransition(
                "no-show status can only be handled once the roster has started",
                roster_id=roster.id,
                participant_id=participant.id,
            )

    @staticmethod
    def _require_registration(
        roster: Roster, participant: Participant, registration: Optional[Registration]
    ) -> Registration:
        if registration is None:
            raise RegistrationNotFound(
                "no registration exists",
                roster_id=roster.id,
                participant_id=participant.id,
            )
        return registration

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _others(registrations: List[Registration], registration: Optional[Registration]) -> List[Registration]:
        return [r for r in registrations if r is not registration]

    @staticmethod
    def _ensure(
        roster: Roster,
        participant: Participant,
        registration: Optional[Registration],
        now: datetime,
    ) -> Registration:
        if registration is not None:
            return registration
        return Registration(
            roster_id=roster.id,
            participant=participant,
            status=RegistrationStatus.RESERVED,
            submitted_at=now,
        )

    @staticmethod
    def _stamp(registration: Registration, status: RegistrationStatus, intent: Intent,
               now: datetime) -> Registration:
        registration.status = status
        registration.submitted_at = now
        registration.origin = intent.actor.origin
        if status in _CLEARS_EXCUSE:
            registration.clear_excuse()
        if intent.admin_note is not None:
            registration.admin_note = intent.admin_note
        return registration

    @staticmethod
    def _apply_excuse(registration: Registration, intent: Intent) -> None:
        registration.excuse_reason = intent.excuse_reason
        registration.excuse_note = intent.excuse_note

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _register(
        self,
        roster: Roster,
        participant: Participant,
        registration: Optional[Registration],
        intent: Intent,
        registrations: List[Registration],
        now: datetime,
    ) -> Registration:
        self._require_active(roster, participant)
        self._require_edit_window(roster, participant, intent, now)

        current = registration.status if registration is not None else None
        if current is RegistrationStatus.REGISTERED:
            raise DuplicateRegistration(
                "participant is already registered",
                roster_id=roster.id,
                participant_id=participant.id,
            )
        if current not in _REGISTER_FROM:
            raise InvalidStateTransition(
                f"cannot register from status {current.value}",
                roster_id=roster.id,
                participant_id=participant.id,
            )

        team = intent.team
        if team is None and registration is not None:
            team = registration.team
        position = intent.position
        if position is None and registration is not None:
            position = registration.assigned_position
        if position is None:
            position = participant.primary_position

        free = self.allocator.has_free_slot(
            roster, self._others(registrations, registration), team, position
        )
        status = RegistrationStatus.REGISTERED if free else RegistrationStatus.RESERVED

        reg = self._ensure(roster, participant, registration, now)
        reg.team = team
        reg.assigned_position = position
        return self._stamp(reg, status, intent, now)

    def _register_as_substitute(
        self,
        roster: Roster,
        participant: Participant,
        registration: Optional[Registration],
        intent: Intent,
        registrations: List[Registration],
        now: datetime,
    ) -> Registration:
        self._require_active(roster, participant)
        self._require_edit_window(roster, participant, intent, now)

        current = registration.status if registration is not None else None
        if current in (RegistrationStatus.REGISTERED, RegistrationStatus.SUBSTITUTE):
            raise DuplicateRegistration(
                f"participant is already {current.value}",
                roster_id=roster.id,
                participant_id=participant.id,
            )

        reg = self._ensure(roster, participant, registration, now)
        if intent.team is not None:
            reg.team = intent.team
        if intent.position is not None:
            reg.assigned_position = intent.position
        return self._stamp(reg, RegistrationStatus.SUBSTITUTE, intent, now)

    def _withdraw(
        self,
        roster: Roster,
        participant: Participant,
        registration: Optional[Registration],
        intent: Intent,
        registrations: List[Registration],
        now: datetime,
    ) -> Registration:
        self._require_edit_window(roster, participant, intent, now)
        if registration is None or registration.status not in _WITHDRAW_FROM:
            raise RegistrationNotFound(
                "no registered or reserved registration to withdraw",
                roster_id=roster.id,
                participant_id=participant.id,
            )
        self._stamp(registration, RegistrationStatus.WITHDRAWN, intent, now)
        self._apply_excuse(registration, intent)
        return registration

    def _excuse(
        self,
        roster: Roster,
        participant: Participant,
        registration: Optional[Registration],
        intent: Intent,
        registrations: List[Registration],
        now: datetime,
    ) -> Registration:
        self._require_edit_window(roster, participant, intent, now)
        current = registration.status if registration is not None else None
        if current not in _EXCUSE_FROM:
            raise DuplicateRegistration(
                "an excuse is only possible before responding or as a substitute "
                f"(current status {current.value})",
                roster_id=roster.id,
                participant_id=participant.id,
            )

        reg = self._ensure(roster, participant, registration, now)
        self._stamp(reg, RegistrationStatus.EXCUSED, intent, now)
        self._apply_excuse(reg, intent)
        if reg.excuse_reason is None:
            reg.excuse_reason = ExcuseReason.OTHER
        return reg

    def _mark_not_excused(
        self,
        roster: Roster,
        participant: Participant,
        registration: Optional[Registration],
        intent: Intent,
        registrations: List[Registration],
        now: datetime,
    ) -> Registration:
        self._require_started(roster, participant, now)
        reg = self._require_registration(roster, participant, registration)
        if reg.status is not RegistrationStatus.REGISTERED:
            raise InvalidStateTransition(
                "only registered participants can be marked as no-show",
                roster_id=roster.id,
                participant_id=participant.id,
            )
        self._stamp(reg, RegistrationStatus.NOT_EXCUSED, intent, now)
        if not intent.admin_note:
            reg.admin_note = self.config.NO_SHOW_ADMIN_NOTE
        return reg

    def _cancel_not_excused(
        self,
        roster: Roster,
        participant: Participant,
        registration: Optional[Registration],
        intent: Intent,
        registrations: List[Registration],
        now: datetime,
    ) -> Registration:
        self._require_started(roster, participant, now)
        reg = self._require_registration(roster, participant, registration)
        if reg.status is not RegistrationStatus.NOT_EXCUSED:
            raise InvalidStateTransition(
                "only no-show registrations can be turned into an excuse",
                roster_id=roster.id,
                participant_id=participant.id,
            )
        self._stamp(reg, RegistrationStatus.EXCUSED, intent, now)
        reg.excuse_reason = intent.excuse_reason or ExcuseReason.OTHER
        reg.excuse_note = intent.excuse_note or self.config.CANCEL_NO_SHOW_NOTE
        reg.admin_note = None
        return reg

    def _change_team(
        self,
        roster: Roster,
        participant: Participant,
        registration: Optional[Registration],
        intent: Intent,
        registrations: List[Registration],
        now: datetime,
    ) -> Registration:
        self._require_not_started(roster, participant, intent, now)
        reg = self._require_registration(roster, participant, registration)
        if reg.status is not RegistrationStatus.REGISTERED:
            raise InvalidStateTransition(
                "team can only be changed for registered participants",
                roster_id=roster.id,
                participant_id=participant.id,
            )

        new_team = reg.team.opposite() if reg.team is not None else intent.team
        if new_team is None:
            raise InvalidStateTransition(
                "registration has no team to switch from",
                roster_id=roster.id,
                participant_id=participant.id,
            )
        others = self._others(registrations, reg)
        if not self.allocator.has_position_slot(roster, others, new_team, reg.assigned_position):
            raise InvalidStateTransition(
                f"position {reg.assigned_position.value} is full in team {new_team.value}",
                roster_id=roster.id,
                participant_id=participant.id,
            )
        reg.team = new_team
        reg.origin = intent.actor.origin
        return reg

    def _change_position(
        self,
        roster: Roster,
        participant: Participant,
        registration: Optional[Registration],
        intent: Intent,
        registrations: List[Registration],
        now: datetime,
    ) -> Registration:
        self._require_not_started(roster, participant, intent, now)
        reg = self._require_registration(roster, participant, registration)
        if reg.status not in _POSITION_CHANGE_FROM:
            raise InvalidStateTransition(
                "position can only be changed for registered, reserved or substitute entries",
                roster_id=roster.id,
                participant_id=participant.id,
            )
        if intent.position is None:
            raise InvalidStateTransition(
                "position change needs a target position",
                roster_id=roster.id,
                participant_id=participant.id,
            )
        if reg.status is RegistrationStatus.REGISTERED:
            others = self._others(registrations, reg)
            if not self.allocator.has_free_slot(roster, others, reg.team, intent.position):
                raise InvalidStateTransition(
                    f"position {intent.position.value} has no free slot",
                    roster_id=roster.id,
                    participant_id=participant.id,
                )
        reg.assigned_position = intent.position
        reg.origin = intent.actor.origin
        return reg

    def _admin_set_status(
        self,
        roster: Roster,
        participant: Participant,
        registration: Optional[Registration],
        intent: Intent,
        registrations: List[Registration],
        now: datetime,
    ) -> Registration:
        if not intent.actor.privileged:
            raise InvalidStateTransition(
                "status override requires a privileged actor",
                roster_id=roster.id,
                participant_id=participant.id,
            )
        target = intent.status
        if target is None:
            raise InvalidStateTransition(
                "status override needs a target status",
                roster_id=roster.id,
                participant_id=participant.id,
            )
        if target is RegistrationStatus.NOT_EXCUSED:
            raise InvalidStateTransition(
                "no-show status must be set through mark_not_excused",
                roster_id=roster.id,
                participant_id=participant.id,
            )
        reg = self._require_registration(roster, participant, registration)

        if target is RegistrationStatus.REGISTERED and reg.status is not RegistrationStatus.REGISTERED:
            others = self._others(registrations, reg)
            if not self.allocator.has_free_slot(
                roster, others, reg.team, reg.assigned_position, goalie=reg.is_goalie
            ):
                raise InvalidStateTransition(
                    "no free slot for a registered status",
                    roster_id=roster.id,
                    participant_id=participant.id,
                )

        self._stamp(reg, target, intent, now)
        if target in (RegistrationStatus.EXCUSED, RegistrationStatus.WITHDRAWN):
            if intent.excuse_reason is not None or intent.excuse_note is not None:
                self._apply_excuse(reg, intent)
        return reg


__all__ = [
    "Actor",
    "Intent",
    "IntentKind",
    "RegistrationStateMachine",
    "Transition",
]
