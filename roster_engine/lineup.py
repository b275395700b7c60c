"""Lineup optimizer: fill empty layout positions from players already on a team.

Works on one team at a time and only ever rewrites ``assigned_position`` of
REGISTERED entries; status and team are left alone.

Two passes:

1. Flexible players (no concrete assigned position) are put on a free slot,
   trying primary, secondary, the primary's category and finally any skater
   slot when their category may change.
2. Every layout position with capacity but no occupant looks for a donor in
   the same category whose current spot is either outside the layout or
   double-booked. Donors are ranked by preference score (primary 2,
   secondary 1), then newest ``submitted_at`` first so senior players are
   disturbed least. Each move strictly increases the number of occupied
   positions, so the loop ends.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional

from roster_engine.capacity import CapacityAllocator, registered
from roster_engine.models import (
    Position,
    Registration,
    Roster,
    TEAMS,
    Team,
    is_concrete,
    same_category,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LineupMove:
    participant_id: str
    team: Team
    from_position: Optional[Position]
    to_position: Position


def preference_score(reg: Registration, position: Position) -> int:
    participant = reg.participant
    if participant.primary_position is position:
        return 2
    if participant.secondary_position is position:
        return 1
    return 0


class LineupOptimizer:
    def __init__(self, allocator: CapacityAllocator | None = None) -> None:
        self.allocator = allocator or CapacityAllocator()

    def optimize(self, roster: Roster, registrations: List[Registration]) -> List[LineupMove]:
        moves: List[LineupMove] = []
        for team in TEAMS:
            moves.extend(self.optimize_team(roster, registrations, team))
        return moves

    def optimize_team(
        self, roster: Roster, registrations: List[Registration], team: Team
    ) -> List[LineupMove]:
        capacity = self.allocator.position_capacity(roster)
        members = sorted(
            (r for r in registered(registrations) if r.team is team),
            key=lambda r: r.priority_key(),
        )
        if not capacity or not members:
            return []

        occupied = Counter(r.assigned_position for r in members if is_concrete(r.assigned_position))
        moves: List[LineupMove] = []

        for reg in members:
            if is_concrete(reg.assigned_position):
                continue
            target = self._flexible_target(reg, capacity, occupied)
            if target is None:
                continue
            moves.append(self._move(roster, reg, target, occupied))

        while True:
            progressed = False
            for target, cap in capacity.items():
                if cap <= 0 or occupied[target] > 0:
                    continue
                donor = self._best_donor(members, target, capacity, occupied)
                if donor is None:
                    continue
                moves.append(self._move(roster, donor, target, occupied))
                progressed = True
                break
            if not progressed:
                break

        return moves

    def _flexible_target(
        self,
        reg: Registration,
        capacity: Dict[Position, int],
        occupied: Counter,
    ) -> Optional[Position]:
        participant = reg.participant
        primary = participant.primary_position
        options: List[Position] = []
        if reg.is_goalie:
            options.append(Position.GOALIE)
        else:
            for pos in (primary, participant.secondary_position):
                if is_concrete(pos):
                    options.append(pos)
            options.extend(p for p in capacity if same_category(p, primary))
            if participant.can_change_position_category or not is_concrete(primary):
                options.extend(capacity)
            options = [p for p in options if p is not Position.GOALIE]

        for pos in options:
            if occupied[pos] < capacity.get(pos, 0):
                return pos
        return None

    @staticmethod
    def _best_donor(
        members: List[Registration],
        target: Position,
        capacity: Dict[Position, int],
        occupied: Counter,
    ) -> Optional[Registration]:
        donors = []
        for reg in members:
            current = reg.assigned_position
            if not is_concrete(current) or current is target:
                continue
            if not same_category(current, target):
                continue
            if capacity.get(current) and occupied[current] <= 1:
                continue
            donors.append(reg)
        if not donors:
            return None
        donors.sort(key=lambda r: r.participant_id)
        donors.sort(key=lambda r: r.submitted_at, reverse=True)
        donors.sort(key=lambda r: preference_score(r, target), reverse=True)
        return donors[0]

    @staticmethod
    def _move(
        roster: Roster, reg: Registration, target: Position, occupied: Counter
    ) -> LineupMove:
        source = reg.assigned_position
        if is_concrete(source):
            occupied[source] -= 1
        occupied[target] += 1
        reg.assigned_position = target
        logger.info(
            "lineup roster=%s participant=%s team=%s position %s -> %s",
            roster.id,
            reg.participant_id,
            reg.team.value if reg.team else None,
            source.value if source else None,
            target.value,
        )
        return LineupMove(
            participant_id=reg.participant_id,
            team=reg.team,
            from_position=source,
            to_position=target,
        )


__all__ = ["LineupMove", "LineupOptimizer", "preference_score"]
