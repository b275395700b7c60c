from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any


def report_error(message: str) -> None:
    print(f"::error::{message}")


def report_notice(message: str) -> None:
    print(f"::notice::{message}")


def load_latest(path: Path) -> tuple[dict[str, Any] | None, bool]:
    if not path.exists():
        report_error(f"{path} not found")
        return None, False

    try:
        with path.open("r", encoding="utf-8") as fp:
            data = json.load(fp)
    except json.JSONDecodeError as exc:
        report_error(f"latest.json is not valid JSON (line {exc.lineno}, column {exc.colno})")
        return None, False
    except OSError as exc:
        report_error(f"could not read latest.json: {exc.strerror or exc}")
        return None, False

    if not isinstance(data, dict):
        report_error("latest.json must contain a JSON object")
        return None, False

    return data, True


def validate_occupancy(index: int, occupancy: Any) -> bool:
    where = f".rosters[{index}].occupancy"
    if not isinstance(occupancy, dict):
        report_error(f"{where} must be an object")
        return False

    for field in ("capacity", "registered", "goalie_budget", "goalies", "positions"):
        if field not in occupancy:
            report_error(f"{where} is missing '{field}'")
            return False

    ok = True
    if occupancy["registered"] > occupancy["capacity"]:
        report_error(f"{where}: {occupancy['registered']} registered exceed capacity {occupancy['capacity']}")
        ok = False
    if occupancy["goalies"] > occupancy["goalie_budget"]:
        report_error(f"{where}: {occupancy['goalies']} goalies exceed budget {occupancy['goalie_budget']}")
        ok = False

    for slot in occupancy["positions"]:
        cap = slot.get("capacity_per_team", 0)
        for team, count in (slot.get("occupied") or {}).items():
            if cap and count > cap:
                report_error(f"{where}: {slot.get('position')} in team {team} holds {count} > {cap}")
                ok = False
    return ok


def validate_rosters(rosters: Any) -> bool:
    if not isinstance(rosters, list):
        report_error(".rosters must be an array")
        return False
    if len(rosters) == 0:
        report_error(".rosters must contain at least one entry")
        return False

    ok = True
    for index, entry in enumerate(rosters):
        if not isinstance(entry, dict):
            report_error(f".rosters[{index}] must be an object")
            return False
        if "roster_id" not in entry:
            report_error(f".rosters[{index}] is missing 'roster_id'")
            ok = False
        ok = validate_occupancy(index, entry.get("occupancy")) and ok
    return ok


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    latest_path = Path(args[0]) if args else Path("out/latest.json")
    data, ok = load_latest(latest_path)
    if not ok or data is None:
        return 1

    if not validate_rosters(data.get("rosters")):
        return 1

    report_notice("latest.json validated")
    return 0


if __name__ == "__main__":
    sys.exit(main())
