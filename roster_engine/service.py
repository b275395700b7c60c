"""Entry points of the allocation engine.

Each call runs as one unit of work on a single roster: state machine first,
then promotion or rebalancing to restore the roster-wide invariants, with
notifications delivered after commit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from roster_engine.capacity import CapacityAllocator
from roster_engine.clock import Clock, SystemClock
from roster_engine.config import Config, get_config
from roster_engine.errors import InvalidStateTransition
from roster_engine.layout import PositionLayoutProvider
from roster_engine.lineup import LineupMove, LineupOptimizer
from roster_engine.models import LayoutMode, Registration
from roster_engine.notifications import (
    EventKind,
    NotificationDispatcher,
    NotificationSink,
    event_for_status,
)
from roster_engine.occupancy import Occupancy, build_occupancy
from roster_engine.rebalance import (
    CapacityRebalancer,
    RegistrationChange,
    remap_positions,
)
from roster_engine.state_machine import (
    Intent,
    IntentKind,
    RegistrationStateMachine,
    Transition,
)
from roster_engine.store import RosterSession, RosterStore
from roster_engine.waitlist import WaitlistPromoter

logger = logging.getLogger(__name__)

# No-show marking happens after the match, so it never opens a place.
_PROMOTING_INTENTS = {IntentKind.WITHDRAW, IntentKind.ADMIN_SET_STATUS}


@dataclass
class AllocationOutcome:
    """What a roster-wide operation changed."""

    roster_id: str
    promoted: List[str] = field(default_factory=list)
    demoted: List[str] = field(default_factory=list)
    team_changed: List[str] = field(default_factory=list)
    remapped: List[str] = field(default_factory=list)
    lineup: List[LineupMove] = field(default_factory=list)

    def to_snapshot(self) -> dict:
        return {
            "roster_id": self.roster_id,
            "promoted": list(self.promoted),
            "demoted": list(self.demoted),
            "team_changed": list(self.team_changed),
            "remapped": list(self.remapped),
            "lineup": [
                {
                    "participant_id": m.participant_id,
                    "team": m.team.value,
                    "from": m.from_position.value if m.from_position else None,
                    "to": m.to_position.value,
                }
                for m in self.lineup
            ],
        }


class AllocationService:
    def __init__(
        self,
        store: RosterStore | None = None,
        *,
        layout: PositionLayoutProvider | None = None,
        clock: Clock | None = None,
        config: Config | None = None,
        sinks: Optional[Iterable[NotificationSink]] = None,
    ) -> None:
        self.config = config or get_config()
        self.store = store or RosterStore(lock_timeout=self.config.LOCK_TIMEOUT_SECONDS)
        self.clock = clock or SystemClock()
        self.allocator = CapacityAllocator(layout)
        self.state_machine = RegistrationStateMachine(
            self.allocator, clock=self.clock, config=self.config
        )
        self.promoter = WaitlistPromoter(self.allocator)
        self.rebalancer = CapacityRebalancer(self.allocator)
        self.optimizer = LineupOptimizer(self.allocator)
        self.dispatcher = NotificationDispatcher(sinks)

    def _session(self, roster_id: str):
        return self.store.unit_of_work(roster_id, dispatcher=self.dispatcher)

    # ------------------------------------------------------------------

    def submit_intent(self, roster_id: str, participant_id: str, intent: Intent) -> Registration:
        """Apply one intent; a withdrawal or override that frees a slot promotes from the waitlist.

        Returns a copy of the participant's registration after the change.
        """

        with self._session(roster_id) as session:
            participant = session.participant(participant_id)
            transition = self.state_machine.apply_intent(
                session.roster,
                participant,
                session.get(participant_id),
                intent,
                session.registration_list(),
            )
            if transition.created:
                session.add(transition.registration)
            self._notify_transition(session, intent, transition)

            if transition.frees_slot and intent.kind in _PROMOTING_INTENTS:
                promoted = self.promoter.promote(
                    session.roster,
                    session.registration_list(),
                    team=transition.previous_team,
                    position=transition.previous_position,
                    exclude=transition.registration,
                )
                for reg in promoted:
                    session.notify(EventKind.PROMOTED, reg)
            result = transition.registration.copy()
        return result

    def on_capacity_changed(self, roster_id: str, old_capacity: int, new_capacity: int) -> AllocationOutcome:
        if new_capacity < 0:
            raise InvalidStateTransition("capacity cannot be negative", roster_id=roster_id)

        outcome = AllocationOutcome(roster_id=roster_id)
        with self._session(roster_id) as session:
            roster = session.roster
            if roster.capacity != old_capacity:
                logger.warning(
                    "capacity change roster=%s stored=%d reported_old=%d",
                    roster_id,
                    roster.capacity,
                    old_capacity,
                )
            roster.capacity = new_capacity
            regs = session.registration_list()

            if new_capacity < old_capacity:
                result = self.rebalancer.rebalance(roster, regs)
                self._record_changes(session, outcome, result.changes)
            elif new_capacity > old_capacity:
                promoted = self.promoter.fill_new_slots(roster, regs, new_capacity - old_capacity)
                for reg in promoted:
                    session.notify(EventKind.PROMOTED, reg)
                outcome.promoted = [r.participant_id for r in promoted]

        logger.info(
            "capacity changed roster=%s %d -> %d promoted=%d demoted=%d",
            roster_id,
            old_capacity,
            new_capacity,
            len(outcome.promoted),
            len(outcome.demoted),
        )
        return outcome

    def on_layout_changed(
        self, roster_id: str, old_layout: LayoutMode, new_layout: LayoutMode
    ) -> AllocationOutcome:
        outcome = AllocationOutcome(roster_id=roster_id)
        with self._session(roster_id) as session:
            roster = session.roster
            roster.layout_mode = new_layout
            regs = session.registration_list()

            remapped = remap_positions(roster, regs, self.allocator.layout)
            outcome.remapped = [c.participant_id for c in remapped]

            result = self.rebalancer.rebalance(roster, regs)
            self._record_changes(session, outcome, result.changes)

            # a smaller goalie budget can leave skater places open
            free = self.allocator.free_slots(roster, regs)
            if free:
                promoted = self.promoter.fill_new_slots(roster, regs, free)
                for reg in promoted:
                    session.notify(EventKind.PROMOTED, reg)
                outcome.promoted = [r.participant_id for r in promoted]

            outcome.lineup = self.optimizer.optimize(roster, regs)

        logger.info(
            "layout changed roster=%s %s -> %s remapped=%d demoted=%d lineup_moves=%d",
            roster_id,
            old_layout.value if old_layout else None,
            new_layout.value,
            len(outcome.remapped),
            len(outcome.demoted),
            len(outcome.lineup),
        )
        return outcome

    def rebalance(self, roster_id: str) -> AllocationOutcome:
        outcome = AllocationOutcome(roster_id=roster_id)
        with self._session(roster_id) as session:
            result = self.rebalancer.rebalance(session.roster, session.registration_list())
            self._record_changes(session, outcome, result.changes)
        return outcome

    def optimize_lineup(self, roster_id: str) -> List[LineupMove]:
        with self._session(roster_id) as session:
            moves = self.optimizer.optimize(session.roster, session.registration_list())
        return moves

    def get_occupancy(self, roster_id: str) -> Occupancy:
        with self._session(roster_id) as session:
            return build_occupancy(session.roster, session.registration_list(), self.allocator)

    # ------------------------------------------------------------------

    @staticmethod
    def _notify_transition(session: RosterSession, intent: Intent, transition: Transition) -> None:
        reg = transition.registration
        if intent.kind is IntentKind.CHANGE_TEAM:
            session.notify(EventKind.TEAM_CHANGED, reg)
        elif transition.created or transition.status_changed:
            session.notify(event_for_status(reg.status), reg)

    @staticmethod
    def _record_changes(
        session: RosterSession, outcome: AllocationOutcome, changes: List[RegistrationChange]
    ) -> None:
        for change in changes:
            reg = session.get(change.participant_id)
            if change.demoted:
                outcome.demoted.append(change.participant_id)
                session.notify(EventKind.DEMOTED, reg)
            elif change.team_changed:
                outcome.team_changed.append(change.participant_id)
                session.notify(EventKind.TEAM_CHANGED, reg)


__all__ = ["AllocationOutcome", "AllocationService"]
