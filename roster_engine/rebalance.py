"""Full recomputation of REGISTERED/RESERVED after a capacity or layout change.

The pass is deterministic for a given registration set: registrations are
walked in priority order (``submitted_at``, then participant id), goalies
against the goalie sub-budget, skaters against per-team targets. Anyone who no
longer fits is demoted to RESERVED without losing their queue position.
Running :meth:`CapacityRebalancer.rebalance` twice in a row changes nothing the
second time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from roster_engine.capacity import CapacityAllocator, registered
from roster_engine.layout import PositionLayoutProvider
from roster_engine.models import (
    Origin,
    Position,
    Registration,
    RegistrationStatus,
    Roster,
    TEAMS,
    Team,
    is_concrete,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegistrationChange:
    participant_id: str
    previous_status: RegistrationStatus
    status: RegistrationStatus
    previous_team: Optional[Team]
    team: Optional[Team]
    previous_position: Optional[Position]
    position: Optional[Position]

    @property
    def demoted(self) -> bool:
        return (
            self.previous_status is RegistrationStatus.REGISTERED
            and self.status is RegistrationStatus.RESERVED
        )

    @property
    def team_changed(self) -> bool:
        return self.previous_team is not None and self.previous_team is not self.team

    @property
    def position_changed(self) -> bool:
        return self.previous_position is not self.position


@dataclass
class RebalanceResult:
    roster_id: str
    changes: List[RegistrationChange] = field(default_factory=list)

    @property
    def demoted(self) -> List[str]:
        return [c.participant_id for c in self.changes if c.demoted]

    @property
    def team_changed(self) -> List[str]:
        return [c.participant_id for c in self.changes if c.team_changed and not c.demoted]

    def __bool__(self) -> bool:
        return bool(self.changes)


def _snapshot(regs: Sequence[Registration]) -> Dict[str, Tuple]:
    return {r.participant_id: (r.status, r.team, r.assigned_position) for r in regs}


def _diff(before: Dict[str, Tuple], regs: Sequence[Registration]) -> List[RegistrationChange]:
    changes: List[RegistrationChange] = []
    for reg in regs:
        status, team, position = before[reg.participant_id]
        if (status, team, position) == (reg.status, reg.team, reg.assigned_position):
            continue
        changes.append(
            RegistrationChange(
                participant_id=reg.participant_id,
                previous_status=status,
                status=reg.status,
                previous_team=team,
                team=reg.team,
                previous_position=position,
                position=reg.assigned_position,
            )
        )
    return changes


class CapacityRebalancer:
    def __init__(self, allocator: CapacityAllocator | None = None) -> None:
        self.allocator = allocator or CapacityAllocator()

    def skater_targets(self, roster: Roster, skaters: Sequence[Registration]) -> Dict[Team, int]:
        """Per-team skater targets; an odd place goes to the team holding more skaters."""

        half, extra = divmod(self.allocator.skater_budget(roster), 2)
        targets = {t: half for t in TEAMS}
        if extra:
            dark = sum(1 for r in skaters if r.team is Team.DARK)
            light = sum(1 for r in skaters if r.team is Team.LIGHT)
            targets[Team.DARK if dark >= light else Team.LIGHT] += 1
        return targets

    def rebalance(self, roster: Roster, registrations: List[Registration]) -> RebalanceResult:
        regs = sorted(registered(registrations), key=lambda r: r.priority_key())
        before = _snapshot(regs)
        goalies = [r for r in regs if r.is_goalie]
        skaters = [r for r in regs if not r.is_goalie]

        kept: List[Registration] = []

        budget = self.allocator.goalie_budget(roster)
        goalie_room = {t: budget for t in TEAMS}
        for reg in goalies:
            placement = self._place(roster, reg, kept, goalie_room, Position.GOALIE)
            if placement is None:
                self._demote(roster, reg)
                continue
            for t in TEAMS:
                goalie_room[t] -= 1

        targets = self.skater_targets(roster, skaters)
        room = dict(targets)
        for reg in skaters:
            placement = self._place(roster, reg, kept, room, reg.assigned_position)
            if placement is None:
                self._demote(roster, reg)
                continue
            room[placement] -= 1

        result = RebalanceResult(roster_id=roster.id, changes=_diff(before, regs))
        logger.info(
            "rebalance roster=%s capacity=%d goalie_budget=%d targets=%s demoted=%d moved=%d",
            roster.id,
            roster.capacity,
            budget,
            {t.value: n for t, n in targets.items()},
            len(result.demoted),
            len(result.team_changed),
        )
        return result

    def _place(
        self,
        roster: Roster,
        reg: Registration,
        kept: List[Registration],
        room: Dict[Team, int],
        position: Optional[Position],
    ) -> Optional[Team]:
        if reg.team is None:
            teams = sorted(TEAMS, key=lambda t: -room[t])
        elif reg.participant.can_change_team:
            teams = [reg.team, reg.team.opposite()]
        else:
            teams = [reg.team]

        for team in teams:
            if room[team] <= 0:
                continue
            fits, target = self._fit_position(roster, kept, team, position)
            if not fits:
                continue
            if reg.team is not None and reg.team is not team:
                logger.debug(
                    "rebalance roster=%s participant=%s team %s -> %s",
                    roster.id,
                    reg.participant_id,
                    reg.team.value,
                    team.value,
                )
            reg.team = team
            reg.assigned_position = target
            kept.append(reg)
            return team
        return None

    def _fit_position(
        self,
        roster: Roster,
        kept: List[Registration],
        team: Team,
        position: Optional[Position],
    ) -> Tuple[bool, Optional[Position]]:
        if self.allocator.has_position_slot(roster, kept, team, position):
            return True, position
        if position is Position.GOALIE:
            return False, None
        for candidate in self.allocator.position_capacity(roster):
            if candidate is Position.GOALIE or candidate.category is not position.category:
                continue
            if self.allocator.has_position_slot(roster, kept, team, candidate):
                return True, candidate
        return False, None

    @staticmethod
    def _demote(roster: Roster, reg: Registration) -> None:
        logger.info(
            "demote roster=%s participant=%s team=%s",
            roster.id,
            reg.participant_id,
            reg.team.value if reg.team else None,
        )
        reg.status = RegistrationStatus.RESERVED
        reg.origin = Origin.SYSTEM


def remap_position(
    reg: Registration, allowed: Sequence[Position]
) -> Optional[Position]:
    """Replacement for an assigned position the layout no longer offers.

    Returns the current position when it is still valid (or unconstrained).
    """

    current = reg.assigned_position
    if not is_concrete(current) or current in allowed or current is Position.GOALIE:
        return current

    participant = reg.participant
    preferred = [participant.primary_position, participant.secondary_position]
    category = current.category

    for pos in preferred:
        if pos is not None and pos in allowed and pos.category is category:
            return pos
    for pos in allowed:
        if pos.category is category:
            return pos

    if not participant.can_change_position_category:
        return Position.ANY

    for pos in preferred:
        if is_concrete(pos) and pos in allowed and pos is not Position.GOALIE:
            return pos
    for pos in allowed:
        if pos is not Position.GOALIE:
            return pos
    return Position.ANY


def remap_positions(
    roster: Roster,
    registrations: List[Registration],
    layout: PositionLayoutProvider,
) -> List[RegistrationChange]:
    """Remap assigned positions invalid under ``roster.layout_mode``."""

    allowed = layout.positions_for(roster.layout_mode)
    affected = [
        r
        for r in registrations
        if r.status in (RegistrationStatus.REGISTERED, RegistrationStatus.RESERVED)
    ]
    before = _snapshot(affected)
    for reg in affected:
        target = remap_position(reg, allowed)
        if target is reg.assigned_position:
            continue
        logger.info(
            "remap roster=%s participant=%s position %s -> %s",
            roster.id,
            reg.participant_id,
            reg.assigned_position.value if reg.assigned_position else None,
            target.value if target else None,
        )
        reg.assigned_position = target
    return _diff(before, affected)


__all__ = [
    "CapacityRebalancer",
    "RebalanceResult",
    "RegistrationChange",
    "remap_position",
    "remap_positions",
]
