"""Core data model for roster allocation.

A ``Roster`` is one scheduled match with a total ``capacity`` split across two
teams; a ``Participant`` is a player with position preferences and mobility
flags; a ``Registration`` is the single record linking the two. The virtual
NO_RESPONSE state is never stored: it is simply the absence of a
``Registration`` for a (roster, participant) pair.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Tuple


class RegistrationStatus(str, Enum):
    REGISTERED = "registered"
    RESERVED = "reserved"
    SUBSTITUTE = "substitute"
    EXCUSED = "excused"
    NOT_EXCUSED = "not_excused"
    WITHDRAWN = "withdrawn"


class Team(str, Enum):
    DARK = "dark"
    LIGHT = "light"

    def opposite(self) -> "Team":
        return Team.LIGHT if self is Team.DARK else Team.DARK


TEAMS: Tuple[Team, Team] = (Team.DARK, Team.LIGHT)


class PositionCategory(str, Enum):
    GOALIE = "goalie"
    DEFENSE = "defense"
    FORWARD = "forward"


class Position(str, Enum):
    GOALIE = "goalie"
    DEFENSE_LEFT = "defense_left"
    DEFENSE_RIGHT = "defense_right"
    DEFENSE = "defense"
    CENTER = "center"
    WING_LEFT = "wing_left"
    WING_RIGHT = "wing_right"
    FORWARD = "forward"
    ANY = "any"

    @property
    def category(self) -> Optional[PositionCategory]:
        return _POSITION_CATEGORY[self]

    @property
    def is_concrete(self) -> bool:
        return self is not Position.ANY


_POSITION_CATEGORY: Dict[Position, Optional[PositionCategory]] = {
    Position.GOALIE: PositionCategory.GOALIE,
    Position.DEFENSE_LEFT: PositionCategory.DEFENSE,
    Position.DEFENSE_RIGHT: PositionCategory.DEFENSE,
    Position.DEFENSE: PositionCategory.DEFENSE,
    Position.CENTER: PositionCategory.FORWARD,
    Position.WING_LEFT: PositionCategory.FORWARD,
    Position.WING_RIGHT: PositionCategory.FORWARD,
    Position.FORWARD: PositionCategory.FORWARD,
    Position.ANY: None,
}


def category_of(position: Optional[Position]) -> Optional[PositionCategory]:
    """Category of ``position``; ``None`` and ``ANY`` have none."""
    if position is None:
        return None
    return position.category


def is_concrete(position: Optional[Position]) -> bool:
    return position is not None and position is not Position.ANY


def is_goalie_position(position: Optional[Position]) -> bool:
    return category_of(position) is PositionCategory.GOALIE


def same_category(a: Optional[Position], b: Optional[Position]) -> bool:
    ca, cb = category_of(a), category_of(b)
    if ca is None or cb is None:
        return False
    return ca is cb


class LayoutMode(str, Enum):
    THREE_ON_THREE_NO_GOALIE = "three_on_three_no_goalie"
    THREE_ON_THREE_WITH_GOALIE = "three_on_three_with_goalie"
    FOUR_ON_FOUR_NO_GOALIE = "four_on_four_no_goalie"
    FOUR_ON_FOUR_WITH_GOALIE = "four_on_four_with_goalie"
    FIVE_ON_FIVE_NO_GOALIE = "five_on_five_no_goalie"
    FIVE_ON_FIVE_WITH_GOALIE = "five_on_five_with_goalie"
    SIX_ON_SIX_NO_GOALIE = "six_on_six_no_goalie"

    @property
    def skaters_per_team(self) -> int:
        return _MODE_SHAPE[self][0]

    @property
    def goalie_included(self) -> bool:
        return _MODE_SHAPE[self][1]

    @property
    def players_per_team(self) -> int:
        # two full lines of skaters plus the goalie
        return self.skaters_per_team * 2 + (1 if self.goalie_included else 0)

    @property
    def total_players(self) -> int:
        return self.players_per_team * 2


_MODE_SHAPE: Dict[LayoutMode, Tuple[int, bool]] = {
    LayoutMode.THREE_ON_THREE_NO_GOALIE: (3, False),
    LayoutMode.THREE_ON_THREE_WITH_GOALIE: (3, True),
    LayoutMode.FOUR_ON_FOUR_NO_GOALIE: (4, False),
    LayoutMode.FOUR_ON_FOUR_WITH_GOALIE: (4, True),
    LayoutMode.FIVE_ON_FIVE_NO_GOALIE: (5, False),
    LayoutMode.FIVE_ON_FIVE_WITH_GOALIE: (5, True),
    LayoutMode.SIX_ON_SIX_NO_GOALIE: (6, False),
}


class RosterStatus(str, Enum):
    ACTIVE = "active"
    CANCELED = "canceled"


class ExcuseReason(str, Enum):
    ILLNESS = "illness"
    WORK = "work"
    FAMILY = "family"
    INJURY = "injury"
    OTHER = "other"


class Origin(str, Enum):
    PLAYER = "player"
    MANAGER = "manager"
    ADMIN = "admin"
    SYSTEM = "system"


@dataclass
class Roster:
    id: str
    capacity: int
    layout_mode: LayoutMode
    scheduled_at: datetime
    status: RosterStatus = RosterStatus.ACTIVE

    @property
    def slots_per_team(self) -> int:
        return max(0, self.capacity) // 2

    @property
    def is_active(self) -> bool:
        return self.status is RosterStatus.ACTIVE


@dataclass(frozen=True)
class Participant:
    """A player as seen by the allocation engine.

    Attributes:
        id: Stable identifier.
        name: Display name, informational only.
        primary_position: Preferred position (``ANY`` for no preference).
        secondary_position: Optional fallback position.
        can_change_position_category: May be moved between forward and
            defense automatically.
        can_change_team: May be moved to the other team automatically.
    """

    id: str
    name: str = ""
    primary_position: Position = Position.ANY
    secondary_position: Optional[Position] = None
    can_change_position_category: bool = False
    can_change_team: bool = False


@dataclass
class Registration:
    roster_id: str
    participant: Participant
    status: RegistrationStatus
    submitted_at: datetime
    team: Optional[Team] = None
    assigned_position: Optional[Position] = None
    origin: Origin = Origin.PLAYER
    excuse_reason: Optional[ExcuseReason] = None
    excuse_note: Optional[str] = None
    admin_note: Optional[str] = None

    @property
    def participant_id(self) -> str:
        return self.participant.id

    @property
    def current_position(self) -> Optional[Position]:
        """Assigned position, falling back to the primary one when unset."""
        if self.assigned_position is not None:
            return self.assigned_position
        return self.participant.primary_position

    @property
    def is_goalie(self) -> bool:
        return is_goalie_position(self.current_position)

    def priority_key(self) -> Tuple[datetime, str]:
        return (self.submitted_at, self.participant.id)

    def clear_excuse(self) -> None:
        self.excuse_reason = None
        self.excuse_note = None

    def copy(self) -> "Registration":
        return replace(self)

    def restore_from(self, other: "Registration") -> None:
        for f in fields(self):
            setattr(self, f.name, getattr(other, f.name))


__all__ = [
    "ExcuseReason",
    "LayoutMode",
    "Origin",
    "Participant",
    "Position",
    "PositionCategory",
    "Registration",
    "RegistrationStatus",
    "Roster",
    "RosterStatus",
    "TEAMS",
    "Team",
    "category_of",
    "is_concrete",
    "is_goalie_position",
    "same_category",
]
