"""Waitlist promotion: move RESERVED registrations into freed slots.

Candidates are served strictly by ``submitted_at`` (oldest wait first, ties by
participant id). A vacancy may name a team and a position; the candidate has
to be able to take both without breaking team or category mobility rules.
Promoted registrations keep their original ``submitted_at`` so a later
demotion puts them back at the same place in the queue.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from roster_engine.capacity import CapacityAllocator
from roster_engine.models import (
    Origin,
    Position,
    Registration,
    RegistrationStatus,
    Roster,
    TEAMS,
    Team,
    is_concrete,
    same_category,
)

logger = logging.getLogger(__name__)

Target = Tuple[Optional[Team], Optional[Position]]


def waitlist(
    registrations: List[Registration], exclude: Optional[Registration] = None
) -> List[Registration]:
    reserved = [
        r
        for r in registrations
        if r.status is RegistrationStatus.RESERVED and r is not exclude
    ]
    return sorted(reserved, key=lambda r: r.priority_key())


class WaitlistPromoter:
    def __init__(self, allocator: CapacityAllocator | None = None) -> None:
        self.allocator = allocator or CapacityAllocator()

    def target_for(
        self,
        candidate: Registration,
        team: Optional[Team],
        position: Optional[Position],
    ) -> Optional[Target]:
        """Team and position ``candidate`` would take for the vacancy, or ``None``."""

        participant = candidate.participant
        if team is None or candidate.team is None or candidate.team is team:
            target_team = team if team is not None else candidate.team
        elif participant.can_change_team:
            target_team = team
        else:
            return None

        current = candidate.current_position
        if not is_concrete(position):
            return target_team, current
        if position is Position.GOALIE:
            return (target_team, Position.GOALIE) if current is Position.GOALIE else None
        if current is Position.GOALIE:
            return None
        if not is_concrete(current):
            return target_team, position
        if current is position or same_category(current, position):
            return target_team, position
        if participant.can_change_position_category:
            return target_team, position
        return None

    def promote(
        self,
        roster: Roster,
        registrations: List[Registration],
        *,
        team: Optional[Team] = None,
        position: Optional[Position] = None,
        slots: int = 1,
        exclude: Optional[Registration] = None,
    ) -> List[Registration]:
        """Promote up to ``slots`` candidates into the given vacancy.

        ``exclude`` is never promoted, e.g. the registration whose change
        opened the vacancy.
        """

        promoted: List[Registration] = []
        for _ in range(max(0, slots)):
            reg = self._promote_one(roster, registrations, team, position, exclude)
            if reg is None:
                break
            promoted.append(reg)
        return promoted

    def _promote_one(
        self,
        roster: Roster,
        registrations: List[Registration],
        team: Optional[Team],
        position: Optional[Position],
        exclude: Optional[Registration] = None,
    ) -> Optional[Registration]:
        for candidate in waitlist(registrations, exclude):
            target = self.target_for(candidate, team, position)
            if target is None:
                continue
            target_team, target_position = target
            if not self.allocator.has_free_slot(roster, registrations, target_team, target_position):
                continue
            logger.info(
                "promote roster=%s participant=%s team=%s position=%s",
                roster.id,
                candidate.participant_id,
                target_team.value if target_team else None,
                target_position.value if target_position else None,
            )
            candidate.status = RegistrationStatus.REGISTERED
            candidate.team = target_team
            candidate.assigned_position = target_position
            candidate.origin = Origin.SYSTEM
            candidate.clear_excuse()
            return candidate
        return None

    def split_new_slots(
        self, roster: Roster, registrations: List[Registration], slots: int
    ) -> Dict[Team, int]:
        """Split ``slots`` new places between the teams.

        Never more than ``capacity - REGISTERED`` in total; an odd place goes to
        the team with fewer registered skaters (dark on a tie).
        """

        remaining = min(max(0, slots), self.allocator.free_slots(roster, registrations))
        half, extra = divmod(remaining, 2)
        split = {t: half for t in TEAMS}
        if extra:
            skaters = {
                t: sum(
                    1
                    for r in registrations
                    if r.status is RegistrationStatus.REGISTERED and r.team is t and not r.is_goalie
                )
                for t in TEAMS
            }
            smaller = Team.DARK if skaters[Team.DARK] <= skaters[Team.LIGHT] else Team.LIGHT
            split[smaller] += 1
        return split

    def fill_new_slots(
        self, roster: Roster, registrations: List[Registration], slots: int
    ) -> List[Registration]:
        """Promote candidates after a capacity increase of ``slots``.

        Each team's share is offered first; places a team could not fill are
        then offered to any candidate regardless of team.
        """

        split = self.split_new_slots(roster, registrations, slots)
        promoted: List[Registration] = []
        for team in TEAMS:
            promoted.extend(self.promote(roster, registrations, team=team, slots=split[team]))
        leftover = sum(split.values()) - len(promoted)
        if leftover:
            promoted.extend(self.promote(roster, registrations, slots=leftover))
        logger.debug(
            "capacity increase roster=%s requested=%d promoted=%d",
            roster.id,
            slots,
            len(promoted),
        )
        return promoted


__all__ = ["WaitlistPromoter", "waitlist"]
