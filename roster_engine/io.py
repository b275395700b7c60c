"""CSV loaders and writers for participants, rosters and registrations.

Column names are matched case-insensitively and missing optional columns are
filled with empty values, so spreadsheet exports load without hand editing.
Rows that cannot be interpreted are skipped with a ``[warn]`` line.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Type, TypeVar

import pandas as pd

from roster_engine.models import (
    ExcuseReason,
    LayoutMode,
    Origin,
    Participant,
    Position,
    Registration,
    RegistrationStatus,
    Roster,
    RosterStatus,
    Team,
)

E = TypeVar("E", bound=Enum)

PARTICIPANT_COLUMNS = [
    "ParticipantId",
    "Name",
    "PrimaryPosition",
    "SecondaryPosition",
    "CanChangeCategory",
    "CanChangeTeam",
]
ROSTER_COLUMNS = ["RosterId", "Capacity", "LayoutMode", "ScheduledAt", "Status"]
REGISTRATION_COLUMNS = [
    "RosterId",
    "ParticipantId",
    "Status",
    "SubmittedAt",
    "Team",
    "Position",
    "Origin",
    "ExcuseReason",
    "ExcuseNote",
    "AdminNote",
]


def _read_frame(path: str | Path, cols: List[str]) -> pd.DataFrame:
    csv_path = Path(path)
    if not csv_path.exists():
        return pd.DataFrame(columns=cols)

    df = pd.read_csv(csv_path, dtype=str)

    lower_to_expected = {c.lower(): c for c in cols}
    for col in list(df.columns):
        key = str(col).strip().lower()
        if key in lower_to_expected and lower_to_expected[key] not in df.columns:
            df = df.rename(columns={col: lower_to_expected[key]})

    for col in cols:
        if col not in df.columns:
            df[col] = ""

    df = df[cols].copy()
    for col in cols:
        df[col] = df[col].fillna("").astype(str).str.strip()
    return df


def parse_enum(enum_cls: Type[E], value: str, default: Optional[E] = None) -> Optional[E]:
    """Look up ``value`` by enum value or name, ignoring case, dashes and spaces."""

    key = (value or "").strip().lower().replace("-", "_").replace(" ", "_")
    if not key:
        return default
    for member in enum_cls:
        if member.value == key or member.name.lower() == key:
            return member
    return default


def _truthy(value: str) -> bool:
    return (value or "").strip().lower() in {"1", "true", "t", "yes", "y", "x", "ja"}


def _parse_datetime(value: str) -> Optional[datetime]:
    if not value:
        return None
    ts = pd.to_datetime(value, utc=True, errors="coerce")
    if pd.isna(ts):
        return None
    return ts.to_pydatetime()


def _optional_text(value: str) -> Optional[str]:
    return value if value else None


def load_participants(path: str | Path = "data/participants.csv") -> Dict[str, Participant]:
    df = _read_frame(path, PARTICIPANT_COLUMNS)
    df = df[df["ParticipantId"] != ""]

    participants: Dict[str, Participant] = {}
    for row in df.itertuples(index=False):
        pid = getattr(row, "ParticipantId")
        if pid in participants:
            print(f"[warn] participants: duplicate id {pid!r} ignored")
            continue
        participants[pid] = Participant(
            id=pid,
            name=getattr(row, "Name") or pid,
            primary_position=parse_enum(Position, getattr(row, "PrimaryPosition"), Position.ANY),
            secondary_position=parse_enum(Position, getattr(row, "SecondaryPosition")),
            can_change_position_category=_truthy(getattr(row, "CanChangeCategory")),
            can_change_team=_truthy(getattr(row, "CanChangeTeam")),
        )
    return participants


def load_rosters(path: str | Path = "data/rosters.csv") -> Dict[str, Roster]:
    df = _read_frame(path, ROSTER_COLUMNS)
    df = df[df["RosterId"] != ""]

    rosters: Dict[str, Roster] = {}
    for row in df.itertuples(index=False):
        rid = getattr(row, "RosterId")
        mode = parse_enum(LayoutMode, getattr(row, "LayoutMode"))
        scheduled_at = _parse_datetime(getattr(row, "ScheduledAt"))
        try:
            capacity = int(float(getattr(row, "Capacity")))
        except ValueError:
            capacity = -1
        if mode is None or scheduled_at is None or capacity < 0:
            print(f"[warn] rosters: row for {rid!r} skipped (capacity/layout/scheduled_at invalid)")
            continue
        rosters[rid] = Roster(
            id=rid,
            capacity=capacity,
            layout_mode=mode,
            scheduled_at=scheduled_at,
            status=parse_enum(RosterStatus, getattr(row, "Status"), RosterStatus.ACTIVE),
        )
    return rosters


def load_registrations(
    path: str | Path,
    participants: Dict[str, Participant],
) -> List[Registration]:
    """Load registrations; unknown participants get a default profile."""

    df = _read_frame(path, REGISTRATION_COLUMNS)
    df = df[(df["RosterId"] != "") & (df["ParticipantId"] != "")]

    regs: List[Registration] = []
    seen: set[tuple[str, str]] = set()
    for row in df.itertuples(index=False):
        rid = getattr(row, "RosterId")
        pid = getattr(row, "ParticipantId")
        if (rid, pid) in seen:
            print(f"[warn] registrations: duplicate row for {rid}/{pid} ignored")
            continue
        status = parse_enum(RegistrationStatus, getattr(row, "Status"))
        submitted_at = _parse_datetime(getattr(row, "SubmittedAt"))
        if status is None or submitted_at is None:
            print(f"[warn] registrations: row for {rid}/{pid} skipped (status/submitted_at invalid)")
            continue
        participant = participants.get(pid)
        if participant is None:
            print(f"[info] registrations: participant {pid!r} not in participant list - using defaults")
            participant = Participant(id=pid, name=pid)
        seen.add((rid, pid))
        regs.append(
            Registration(
                roster_id=rid,
                participant=participant,
                status=status,
                submitted_at=submitted_at,
                team=parse_enum(Team, getattr(row, "Team")),
                assigned_position=parse_enum(Position, getattr(row, "Position")),
                origin=parse_enum(Origin, getattr(row, "Origin"), Origin.PLAYER),
                excuse_reason=parse_enum(ExcuseReason, getattr(row, "ExcuseReason")),
                excuse_note=_optional_text(getattr(row, "ExcuseNote")),
                admin_note=_optional_text(getattr(row, "AdminNote")),
            )
        )
    return regs


def _iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def registrations_to_frame(registrations: Iterable[Registration]) -> pd.DataFrame:
    rows = [
        {
            "RosterId": r.roster_id,
            "ParticipantId": r.participant_id,
            "Status": r.status.value,
            "SubmittedAt": _iso(r.submitted_at),
            "Team": r.team.value if r.team else "",
            "Position": r.assigned_position.value if r.assigned_position else "",
            "Origin": r.origin.value,
            "ExcuseReason": r.excuse_reason.value if r.excuse_reason else "",
            "ExcuseNote": r.excuse_note or "",
            "AdminNote": r.admin_note or "",
        }
        for r in registrations
    ]
    return pd.DataFrame(rows, columns=REGISTRATION_COLUMNS)


def write_registrations(path: str | Path, registrations: Iterable[Registration]) -> Path:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    registrations_to_frame(registrations).to_csv(out, index=False)
    return out


__all__ = [
    "load_participants",
    "load_registrations",
    "load_rosters",
    "parse_enum",
    "registrations_to_frame",
    "write_registrations",
]
