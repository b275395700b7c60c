"""Capacity queries over a roster's registrations.

Nothing here mutates state. Three checks compose into
:meth:`CapacityAllocator.has_free_slot`:

- global: fewer REGISTERED than ``roster.capacity``;
- sub-budget: goalies and skaters draw from separate budgets, the goalie one
  sized by the layout mode and capped at the total capacity;
- positional: for a concrete position with a defined per-team capacity, fewer
  REGISTERED at ``(team, position)`` than that capacity.

``None``/``ANY`` positions, unknown teams and positions the layout gives no
capacity are unconstrained by the positional check.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from roster_engine.layout import PositionLayoutProvider
from roster_engine.models import (
    Position,
    Registration,
    RegistrationStatus,
    Roster,
    Team,
    is_concrete,
    is_goalie_position,
)


def registered(registrations: Iterable[Registration]) -> List[Registration]:
    return [r for r in registrations if r.status is RegistrationStatus.REGISTERED]


class CapacityAllocator:
    def __init__(self, layout_provider: PositionLayoutProvider | None = None) -> None:
        self.layout = layout_provider or PositionLayoutProvider()

    def position_capacity(self, roster: Roster) -> Dict[Position, int]:
        return self.layout.capacity_for(roster.layout_mode, roster.slots_per_team)

    def goalie_budget(self, roster: Roster) -> int:
        budget = self.layout.goalie_slots(roster.layout_mode)
        return max(0, min(budget, max(0, roster.capacity)))

    def skater_budget(self, roster: Roster) -> int:
        return max(0, roster.capacity) - self.goalie_budget(roster)

    def count_registered(
        self,
        registrations: Iterable[Registration],
        *,
        team: Optional[Team] = None,
        position: Optional[Position] = None,
    ) -> int:
        count = 0
        for reg in registered(registrations):
            if team is not None and reg.team is not team:
                continue
            if position is not None and reg.assigned_position is not position:
                continue
            count += 1
        return count

    def count_goalies(self, registrations: Iterable[Registration]) -> int:
        return sum(1 for r in registered(registrations) if r.is_goalie)

    def free_slots(self, roster: Roster, registrations: Iterable[Registration]) -> int:
        return max(0, roster.capacity - self.count_registered(registrations))

    def has_global_slot(self, roster: Roster, registrations: Iterable[Registration]) -> bool:
        return self.count_registered(registrations) < roster.capacity

    def has_budget_slot(
        self,
        roster: Roster,
        registrations: Iterable[Registration],
        *,
        goalie: bool,
    ) -> bool:
        regs = registered(registrations)
        goalies = sum(1 for r in regs if r.is_goalie)
        if goalie:
            return goalies < self.goalie_budget(roster)
        return len(regs) - goalies < self.skater_budget(roster)

    def has_position_slot(
        self,
        roster: Roster,
        registrations: Iterable[Registration],
        team: Optional[Team],
        position: Optional[Position],
    ) -> bool:
        if team is None or not is_concrete(position):
            return True
        limit = self.position_capacity(roster).get(position)
        if not limit:
            return True
        occupied = self.count_registered(registrations, team=team, position=position)
        return occupied < limit

    def has_free_slot(
        self,
        roster: Roster,
        registrations: Iterable[Registration],
        team: Optional[Team],
        position: Optional[Position],
        *,
        goalie: bool | None = None,
    ) -> bool:
        """Whether a REGISTERED slot is free for ``(team, position)``.

        ``goalie`` selects the sub-budget; by default it follows ``position``.
        """

        regs = list(registrations)
        if not self.has_global_slot(roster, regs):
            return False
        if goalie is None:
            goalie = is_goalie_position(position)
        if not self.has_budget_slot(roster, regs, goalie=goalie):
            return False
        return self.has_position_slot(roster, regs, team, position)


__all__ = ["CapacityAllocator", "registered"]
