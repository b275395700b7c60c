"""Read-only occupancy report for one roster."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List

import pandas as pd

from roster_engine.capacity import CapacityAllocator, registered
from roster_engine.models import (
    LayoutMode,
    Position,
    Registration,
    RegistrationStatus,
    Roster,
    TEAMS,
    Team,
)


@dataclass(frozen=True)
class PositionSlot:
    position: Position
    capacity_per_team: int
    occupied: Dict[Team, int]

    def free(self, team: Team) -> int:
        return max(0, self.capacity_per_team - self.occupied.get(team, 0))


@dataclass(frozen=True)
class Occupancy:
    roster_id: str
    layout_mode: LayoutMode
    capacity: int
    registered: int
    reserved: int
    substitutes: int
    free_slots: int
    goalie_budget: int
    goalies: int
    team_counts: Dict[Team, int] = field(default_factory=dict)
    slots: List[PositionSlot] = field(default_factory=list)

    def slot(self, position: Position) -> PositionSlot | None:
        for s in self.slots:
            if s.position is position:
                return s
        return None

    def to_frame(self) -> pd.DataFrame:
        rows = []
        for s in self.slots:
            for team in TEAMS:
                rows.append(
                    {
                        "position": s.position.value,
                        "team": team.value,
                        "capacity": s.capacity_per_team,
                        "occupied": s.occupied.get(team, 0),
                        "free": s.free(team),
                    }
                )
        return pd.DataFrame(rows, columns=["position", "team", "capacity", "occupied", "free"])

    def to_snapshot(self) -> Dict[str, Any]:
        return {
            "roster_id": self.roster_id,
            "layout_mode": self.layout_mode.value,
            "capacity": self.capacity,
            "registered": self.registered,
            "reserved": self.reserved,
            "substitutes": self.substitutes,
            "free_slots": self.free_slots,
            "goalie_budget": self.goalie_budget,
            "goalies": self.goalies,
            "teams": {t.value: self.team_counts.get(t, 0) for t in TEAMS},
            "positions": [
                {
                    "position": s.position.value,
                    "capacity_per_team": s.capacity_per_team,
                    "occupied": {t.value: s.occupied.get(t, 0) for t in TEAMS},
                    "free": {t.value: s.free(t) for t in TEAMS},
                }
                for s in self.slots
            ],
        }


def build_occupancy(
    roster: Roster,
    registrations: List[Registration],
    allocator: CapacityAllocator | None = None,
) -> Occupancy:
    allocator = allocator or CapacityAllocator()
    active = registered(registrations)
    slots = [
        PositionSlot(
            position=position,
            capacity_per_team=cap,
            occupied={
                t: allocator.count_registered(active, team=t, position=position) for t in TEAMS
            },
        )
        for position, cap in allocator.position_capacity(roster).items()
    ]
    return Occupancy(
        roster_id=roster.id,
        layout_mode=roster.layout_mode,
        capacity=roster.capacity,
        registered=len(active),
        reserved=sum(1 for r in registrations if r.status is RegistrationStatus.RESERVED),
        substitutes=sum(1 for r in registrations if r.status is RegistrationStatus.SUBSTITUTE),
        free_slots=allocator.free_slots(roster, active),
        goalie_budget=allocator.goalie_budget(roster),
        goalies=allocator.count_goalies(active),
        team_counts={t: allocator.count_registered(active, team=t) for t in TEAMS},
        slots=slots,
    )


__all__ = ["Occupancy", "PositionSlot", "build_occupancy"]
