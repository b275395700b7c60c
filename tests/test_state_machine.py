from datetime import timedelta

import pytest

from roster_engine.capacity import CapacityAllocator
from roster_engine.config import DEFAULTS, Config
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
    Position,
    RegistrationStatus,
    RosterStatus,
    Team,
)
from roster_engine.state_machine import Actor, Intent, RegistrationStateMachine


@pytest.fixture
def machine(clock, config):
    return RegistrationStateMachine(CapacityAllocator(), clock=clock, config=config)


def _full(make_participant, make_registration, count):
    return [make_registration(make_participant(f"other{i}"), minute=i) for i in range(count)]


def test_register_takes_free_slot_and_stamps(machine, make_roster, make_participant, start):
    roster = make_roster()
    p = make_participant("p1", Position.CENTER)

    transition = machine.apply_intent(roster, p, None, Intent.register(Team.DARK), [])

    reg = transition.registration
    assert transition.created
    assert transition.previous_status is None
    assert reg.status is RegistrationStatus.REGISTERED
    assert reg.team is Team.DARK
    assert reg.assigned_position is Position.CENTER
    assert reg.submitted_at == start
    assert reg.origin is Origin.PLAYER


def test_register_on_full_roster_is_reserved(machine, make_roster, make_participant, make_registration):
    roster = make_roster(capacity=2)
    regs = _full(make_participant, make_registration, 2)

    transition = machine.apply_intent(roster, make_participant("late"), None, Intent.register(), regs)

    assert transition.registration.status is RegistrationStatus.RESERVED


def test_register_on_full_position_is_reserved(machine, make_roster, make_participant, make_registration):
    roster = make_roster()
    regs = [make_registration(make_participant("c"), team=Team.DARK, position=Position.CENTER)]
    p = make_participant("p", Position.CENTER)

    dark = machine.apply_intent(roster, p, None, Intent.register(Team.DARK), regs)
    assert dark.registration.status is RegistrationStatus.RESERVED
    # the wish is kept so the reservation queues for that slot
    assert dark.registration.team is Team.DARK
    assert dark.registration.assigned_position is Position.CENTER

    light = machine.apply_intent(roster, make_participant("q", Position.CENTER), None, Intent.register(Team.LIGHT), regs)
    assert light.registration.status is RegistrationStatus.REGISTERED


def test_register_twice_is_duplicate(machine, make_roster, make_participant, make_registration):
    roster = make_roster()
    p = make_participant("p1")
    reg = make_registration(p)

    with pytest.raises(DuplicateRegistration):
        machine.apply_intent(roster, p, reg, Intent.register(), [reg])


@pytest.mark.parametrize(
    "status",
    [
        RegistrationStatus.RESERVED,
        RegistrationStatus.WITHDRAWN,
        RegistrationStatus.SUBSTITUTE,
        RegistrationStatus.NOT_EXCUSED,
    ],
)
def test_register_allowed_from_open_states(machine, make_roster, make_participant, make_registration, status):
    roster = make_roster()
    p = make_participant("p1")
    reg = make_registration(p, status)
    reg.excuse_reason = ExcuseReason.WORK
    reg.excuse_note = "late shift"

    transition = machine.apply_intent(roster, p, reg, Intent.register(), [reg])

    assert transition.registration is reg
    assert reg.status is RegistrationStatus.REGISTERED
    assert reg.excuse_reason is None
    assert reg.excuse_note is None


def test_register_from_excused_is_invalid(machine, make_roster, make_participant, make_registration):
    roster = make_roster()
    p = make_participant("p1")
    reg = make_registration(p, RegistrationStatus.EXCUSED)

    with pytest.raises(InvalidStateTransition):
        machine.apply_intent(roster, p, reg, Intent.register(), [reg])


def test_register_on_canceled_roster(clock, make_roster, make_participant):
    roster = make_roster(status=RosterStatus.CANCELED)
    strict = RegistrationStateMachine(clock=clock, config=Config(**DEFAULTS))

    with pytest.raises(RosterInactive):
        strict.apply_intent(roster, make_participant("p1"), None, Intent.register(), [])

    relaxed = RegistrationStateMachine(
        clock=clock, config=Config(**{**DEFAULTS, "REQUIRE_ACTIVE_ROSTER": False})
    )
    transition = relaxed.apply_intent(roster, make_participant("p1"), None, Intent.register(), [])
    assert transition.registration.status is RegistrationStatus.REGISTERED


def test_substitute_is_never_capacity_checked(machine, make_roster, make_participant, make_registration):
    roster = make_roster(capacity=1)
    regs = _full(make_participant, make_registration, 1)

    transition = machine.apply_intent(roster, make_participant("sub"), None, Intent.substitute(), regs)

    assert transition.registration.status is RegistrationStatus.SUBSTITUTE
    assert not transition.frees_slot


@pytest.mark.parametrize("status", [RegistrationStatus.REGISTERED, RegistrationStatus.SUBSTITUTE])
def test_substitute_duplicate(machine, make_roster, make_participant, make_registration, status):
    roster = make_roster()
    p = make_participant("p1")
    reg = make_registration(p, status)

    with pytest.raises(DuplicateRegistration):
        machine.apply_intent(roster, p, reg, Intent.substitute(), [reg])


def test_withdraw_applies_excuse_and_frees_slot(machine, make_roster, make_participant, make_registration):
    roster = make_roster()
    p = make_participant("p1")
    reg = make_registration(p, team=Team.LIGHT, position=Position.CENTER)

    transition = machine.apply_intent(
        roster, p, reg, Intent.withdraw(ExcuseReason.ILLNESS, "flu"), [reg]
    )

    assert reg.status is RegistrationStatus.WITHDRAWN
    assert reg.excuse_reason is ExcuseReason.ILLNESS
    assert reg.excuse_note == "flu"
    assert transition.frees_slot
    assert transition.previous_team is Team.LIGHT
    assert transition.previous_position is Position.CENTER


def test_withdraw_reserved_frees_nothing(machine, make_roster, make_participant, make_registration):
    roster = make_roster()
    p = make_participant("p1")
    reg = make_registration(p, RegistrationStatus.RESERVED)

    transition = machine.apply_intent(roster, p, reg, Intent.withdraw(), [reg])

    assert reg.status is RegistrationStatus.WITHDRAWN
    assert not transition.frees_slot


@pytest.mark.parametrize("status", [None, RegistrationStatus.SUBSTITUTE, RegistrationStatus.EXCUSED])
def test_withdraw_without_active_registration(machine, make_roster, make_participant, make_registration, status):
    roster = make_roster()
    p = make_participant("p1")
    reg = make_registration(p, status) if status else None

    with pytest.raises(RegistrationNotFound):
        machine.apply_intent(roster, p, reg, Intent.withdraw(), [reg] if reg else [])


def test_excuse_defaults_reason(machine, make_roster, make_participant):
    roster = make_roster()

    transition = machine.apply_intent(roster, make_participant("p1"), None, Intent.excuse(note="away"), [])

    assert transition.registration.status is RegistrationStatus.EXCUSED
    assert transition.registration.excuse_reason is ExcuseReason.OTHER
    assert transition.registration.excuse_note == "away"


@pytest.mark.parametrize("status", [RegistrationStatus.REGISTERED, RegistrationStatus.RESERVED])
def test_excuse_after_registering_is_duplicate(machine, make_roster, make_participant, make_registration, status):
    roster = make_roster()
    p = make_participant("p1")
    reg = make_registration(p, status)

    with pytest.raises(DuplicateRegistration):
        machine.apply_intent(roster, p, reg, Intent.excuse(ExcuseReason.WORK), [reg])


def test_mark_not_excused_only_after_start(machine, clock, make_roster, make_participant, make_registration, match_at):
    roster = make_roster()
    p = make_participant("p1")
    reg = make_registration(p)
    reg.excuse_note = "stale"

    with pytest.raises(InvalidStateTransition):
        machine.apply_intent(roster, p, reg, Intent.mark_not_excused(), [reg])

    clock.set(match_at + timedelta(hours=2))
    machine.apply_intent(roster, p, reg, Intent.mark_not_excused(), [reg])

    assert reg.status is RegistrationStatus.NOT_EXCUSED
    assert reg.admin_note == DEFAULTS["NO_SHOW_ADMIN_NOTE"]
    assert reg.excuse_note is None
    assert reg.origin is Origin.ADMIN


def test_mark_not_excused_needs_registered(machine, clock, make_roster, make_participant, make_registration, match_at):
    roster = make_roster()
    p = make_participant("p1")
    reg = make_registration(p, RegistrationStatus.RESERVED)
    clock.set(match_at + timedelta(hours=2))

    with pytest.raises(InvalidStateTransition):
        machine.apply_intent(roster, p, reg, Intent.mark_not_excused(), [reg])
    with pytest.raises(RegistrationNotFound):
        machine.apply_intent(roster, make_participant("ghost"), None, Intent.mark_not_excused(), [reg])


def test_cancel_not_excused_turns_into_excuse(machine, clock, make_roster, make_participant, make_registration, match_at):
    roster = make_roster()
    p = make_participant("p1")
    reg = make_registration(p, RegistrationStatus.NOT_EXCUSED)
    reg.admin_note = "no show"
    clock.set(match_at + timedelta(days=1))

    machine.apply_intent(roster, p, reg, Intent.cancel_not_excused(), [reg])

    assert reg.status is RegistrationStatus.EXCUSED
    assert reg.excuse_reason is ExcuseReason.OTHER
    assert reg.excuse_note == DEFAULTS["CANCEL_NO_SHOW_NOTE"]
    assert reg.admin_note is None

    with pytest.raises(InvalidStateTransition):
        machine.apply_intent(roster, p, reg, Intent.cancel_not_excused(), [reg])


def test_change_team_flips_without_restamping(machine, make_roster, make_participant, make_registration):
    roster = make_roster()
    p = make_participant("p1")
    reg = make_registration(p, team=Team.DARK, position=Position.CENTER, minute=5)
    stamped = reg.submitted_at

    transition = machine.apply_intent(roster, p, reg, Intent.change_team(), [reg])

    assert reg.team is Team.LIGHT
    assert reg.status is RegistrationStatus.REGISTERED
    assert reg.submitted_at == stamped
    assert transition.previous_team is Team.DARK


def test_change_team_timing_and_status(machine, clock, make_roster, make_participant, make_registration, match_at):
    roster = make_roster()
    p = make_participant("p1")
    reg = make_registration(p, team=Team.DARK)
    clock.set(match_at + timedelta(minutes=1))

    with pytest.raises(InvalidTiming):
        machine.apply_intent(roster, p, reg, Intent.change_team(), [reg])

    machine.apply_intent(roster, p, reg, Intent.change_team(actor=Actor.MANAGER), [reg])
    assert reg.team is Team.LIGHT

    reserved = make_registration(make_participant("p2"), RegistrationStatus.RESERVED, team=Team.DARK)
    with pytest.raises(InvalidStateTransition):
        machine.apply_intent(roster, reserved.participant, reserved, Intent.change_team(actor=Actor.ADMIN), [reserved])


def test_change_team_needs_position_slot(machine, make_roster, make_participant, make_registration):
    roster = make_roster()
    taken = make_registration(make_participant("c2"), team=Team.LIGHT, position=Position.CENTER)
    p = make_participant("p1")
    reg = make_registration(p, team=Team.DARK, position=Position.CENTER)

    with pytest.raises(InvalidStateTransition):
        machine.apply_intent(roster, p, reg, Intent.change_team(), [taken, reg])
    assert reg.team is Team.DARK


def test_change_position(machine, make_roster, make_participant, make_registration):
    roster = make_roster()
    taken = make_registration(make_participant("w"), team=Team.DARK, position=Position.WING_LEFT)
    p = make_participant("p1")
    reg = make_registration(p, team=Team.DARK, position=Position.CENTER)

    with pytest.raises(InvalidStateTransition):
        machine.apply_intent(roster, p, reg, Intent.change_position(Position.WING_LEFT), [taken, reg])

    machine.apply_intent(roster, p, reg, Intent.change_position(Position.DEFENSE_LEFT), [taken, reg])
    assert reg.assigned_position is Position.DEFENSE_LEFT

    excused = make_registration(make_participant("e"), RegistrationStatus.EXCUSED)
    with pytest.raises(InvalidStateTransition):
        machine.apply_intent(roster, excused.participant, excused, Intent.change_position(Position.CENTER), [excused])


def test_admin_set_status_rules(machine, make_roster, make_participant, make_registration):
    roster = make_roster(capacity=1)
    holder = make_registration(make_participant("holder"))
    p = make_participant("p1")
    reg = make_registration(p, RegistrationStatus.RESERVED)
    regs = [holder, reg]

    with pytest.raises(InvalidStateTransition):
        machine.apply_intent(roster, p, reg, Intent.admin_set_status(RegistrationStatus.NOT_EXCUSED), regs)
    with pytest.raises(InvalidStateTransition):
        machine.apply_intent(
            roster, p, reg, Intent.admin_set_status(RegistrationStatus.SUBSTITUTE, actor=Actor.PLAYER), regs
        )
    with pytest.raises(InvalidStateTransition):
        machine.apply_intent(roster, p, reg, Intent.admin_set_status(RegistrationStatus.REGISTERED), regs)
    with pytest.raises(RegistrationNotFound):
        machine.apply_intent(
            roster, make_participant("ghost"), None, Intent.admin_set_status(RegistrationStatus.EXCUSED), regs
        )

    machine.apply_intent(
        roster, p, reg, Intent.admin_set_status(RegistrationStatus.SUBSTITUTE, admin_note="bench"), regs
    )
    assert reg.status is RegistrationStatus.SUBSTITUTE
    assert reg.admin_note == "bench"
    assert reg.origin is Origin.ADMIN


def test_player_edit_window(machine, clock, make_roster, make_participant, make_registration, match_at):
    roster = make_roster()
    p = make_participant("p1")
    reg = make_registration(p)

    clock.set(match_at + timedelta(minutes=29))
    machine.apply_intent(roster, p, reg, Intent.withdraw(), [reg])
    assert reg.status is RegistrationStatus.WITHDRAWN

    clock.set(match_at + timedelta(minutes=30))
    with pytest.raises(InvalidTiming):
        machine.apply_intent(roster, p, reg, Intent.register(), [reg])

    machine.apply_intent(roster, p, reg, Intent.register(actor=Actor.ADMIN), [reg])
    assert reg.status is RegistrationStatus.REGISTERED
    assert reg.origin is Origin.ADMIN
