from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from roster_engine.clock import FixedClock
from roster_engine.config import DEFAULTS, Config, reset_config_cache
from roster_engine.models import (
    LayoutMode,
    Participant,
    Position,
    Registration,
    RegistrationStatus,
    Roster,
)
from roster_engine.notifications import RecordingSink
from roster_engine.service import AllocationService
from roster_engine.store import RosterStore

START = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
MATCH_AT = START + timedelta(days=7)


@pytest.fixture(autouse=True)
def _fresh_config():
    reset_config_cache()
    yield
    reset_config_cache()


@pytest.fixture
def start() -> datetime:
    return START


@pytest.fixture
def match_at() -> datetime:
    return MATCH_AT


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(START, step=timedelta(seconds=1))


@pytest.fixture
def config() -> Config:
    return Config(**DEFAULTS)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def make_roster():
    def _make(
        capacity: int = 10,
        mode: LayoutMode = LayoutMode.FIVE_ON_FIVE_NO_GOALIE,
        *,
        roster_id: str = "R1",
        scheduled_at: datetime = MATCH_AT,
        **kwargs,
    ) -> Roster:
        return Roster(
            id=roster_id,
            capacity=capacity,
            layout_mode=mode,
            scheduled_at=scheduled_at,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_participant():
    def _make(
        pid: str,
        primary: Position = Position.ANY,
        secondary: Position | None = None,
        *,
        category: bool = False,
        team: bool = False,
    ) -> Participant:
        return Participant(
            id=pid,
            name=pid,
            primary_position=primary,
            secondary_position=secondary,
            can_change_position_category=category,
            can_change_team=team,
        )

    return _make


@pytest.fixture
def make_registration():
    def _make(
        participant: Participant,
        status: RegistrationStatus = RegistrationStatus.REGISTERED,
        *,
        minute: int = 0,
        team=None,
        position: Position | None = None,
        roster_id: str = "R1",
    ) -> Registration:
        return Registration(
            roster_id=roster_id,
            participant=participant,
            status=status,
            submitted_at=START + timedelta(minutes=minute),
            team=team,
            assigned_position=position,
        )

    return _make


@pytest.fixture
def make_service(clock, config, sink):
    def _make(roster: Roster, participants=(), registrations=(), **kwargs) -> AllocationService:
        store = RosterStore(lock_timeout=0.05)
        store.add_roster(roster)
        for participant in participants:
            store.add_participant(participant)
        for reg in registrations:
            store.add_registration(reg)
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("config", config)
        kwargs.setdefault("sinks", [sink])
        return AllocationService(store, **kwargs)

    return _make
