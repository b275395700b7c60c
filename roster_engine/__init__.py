"""Registration allocation engine for scheduled team rosters."""

from roster_engine.models import (
    LayoutMode,
    Participant,
    Position,
    Registration,
    RegistrationStatus,
    Roster,
    Team,
)
from roster_engine.service import AllocationService
from roster_engine.state_machine import Actor, Intent, IntentKind

__all__ = [
    "Actor",
    "AllocationService",
    "Intent",
    "IntentKind",
    "LayoutMode",
    "Participant",
    "Position",
    "Registration",
    "RegistrationStatus",
    "Roster",
    "Team",
]
