from datetime import datetime, timezone

from roster_engine.io import (
    load_participants,
    load_registrations,
    load_rosters,
    parse_enum,
    write_registrations,
)
from roster_engine.models import (
    ExcuseReason,
    LayoutMode,
    Origin,
    Position,
    RegistrationStatus,
    RosterStatus,
    Team,
)


def test_parse_enum_is_forgiving():
    assert parse_enum(Position, "Wing-Left") is Position.WING_LEFT
    assert parse_enum(Position, "DEFENSE_RIGHT") is Position.DEFENSE_RIGHT
    assert parse_enum(LayoutMode, "five on five no goalie") is LayoutMode.FIVE_ON_FIVE_NO_GOALIE
    assert parse_enum(Team, "", Team.DARK) is Team.DARK
    assert parse_enum(Team, "purple") is None


def test_load_participants_case_insensitive_headers(tmp_path, capsys):
    path = tmp_path / "participants.csv"
    path.write_text(
        "\n".join(
            [
                "participantid,NAME,primaryposition,SecondaryPosition,canchangecategory",
                "p1,Alice,center,wing_left,yes",
                "p2,,goalie,,",
                "p1,Duplicate,defense,,",
                ",nobody,center,,",
            ]
        ),
        encoding="utf-8",
    )

    participants = load_participants(path)

    assert list(participants) == ["p1", "p2"]
    alice = participants["p1"]
    assert alice.name == "Alice"
    assert alice.primary_position is Position.CENTER
    assert alice.secondary_position is Position.WING_LEFT
    assert alice.can_change_position_category is True
    assert alice.can_change_team is False
    assert participants["p2"].name == "p2"
    assert participants["p2"].secondary_position is None
    assert "[warn] participants: duplicate id" in capsys.readouterr().out


def test_load_rosters_skips_invalid_rows(tmp_path, capsys):
    path = tmp_path / "rosters.csv"
    path.write_text(
        "\n".join(
            [
                "RosterId,Capacity,LayoutMode,ScheduledAt,Status",
                "R1,10,five_on_five_no_goalie,2026-03-08T12:00:00Z,",
                "R2,12,FOUR_ON_FOUR_WITH_GOALIE,2026-03-09 18:30,canceled",
                "R3,abc,five_on_five_no_goalie,2026-03-10T12:00:00Z,",
                "R4,10,ten_on_ten,2026-03-10T12:00:00Z,",
            ]
        ),
        encoding="utf-8",
    )

    rosters = load_rosters(path)

    assert sorted(rosters) == ["R1", "R2"]
    assert rosters["R1"].scheduled_at == datetime(2026, 3, 8, 12, 0, tzinfo=timezone.utc)
    assert rosters["R1"].status is RosterStatus.ACTIVE
    assert rosters["R2"].status is RosterStatus.CANCELED
    assert rosters["R2"].layout_mode is LayoutMode.FOUR_ON_FOUR_WITH_GOALIE
    assert capsys.readouterr().out.count("[warn] rosters") == 2


def test_missing_files_load_empty(tmp_path):
    assert load_participants(tmp_path / "none.csv") == {}
    assert load_rosters(tmp_path / "none.csv") == {}
    assert load_registrations(tmp_path / "none.csv", {}) == []


def test_registrations_load_and_write(tmp_path, make_participant):
    path = tmp_path / "registrations.csv"
    path.write_text(
        "\n".join(
            [
                "RosterId,ParticipantId,Status,SubmittedAt,Team,Position,Origin,ExcuseReason,ExcuseNote,AdminNote",
                "R1,p1,registered,2026-03-01T12:00:00Z,dark,center,player,,,",
                "R1,p2,excused,2026-03-01T12:05:00Z,,,admin,illness,flu,",
                "R1,p3,maybe,2026-03-01T12:06:00Z,,,,,,",
                "R1,p1,reserved,2026-03-01T12:07:00Z,,,,,,",
            ]
        ),
        encoding="utf-8",
    )
    participants = {"p1": make_participant("p1", Position.CENTER)}

    regs = load_registrations(path, participants)

    assert [(r.participant_id, r.status) for r in regs] == [
        ("p1", RegistrationStatus.REGISTERED),
        ("p2", RegistrationStatus.EXCUSED),
    ]
    first, second = regs
    assert first.participant is participants["p1"]
    assert first.team is Team.DARK
    assert first.assigned_position is Position.CENTER
    assert second.participant.id == "p2"
    assert second.origin is Origin.ADMIN
    assert second.excuse_reason is ExcuseReason.ILLNESS
    assert second.excuse_note == "flu"
    assert second.admin_note is None

    out = write_registrations(tmp_path / "out" / "registrations.csv", regs)
    lines = out.read_text(encoding="utf-8").splitlines()
    assert lines[0].startswith("RosterId,ParticipantId,Status,SubmittedAt")
    assert lines[1].startswith("R1,p1,registered,2026-03-01T12:00:00+00:00,dark,center,player")
