# -*- coding: utf-8 -*-
"""Command-line entry point for roster allocation runs.

Flow:
1. Load participants, rosters and registrations from CSV via
   :mod:`roster_engine.io` and seed an in-memory store.
2. Run one engine operation per selected roster (occupancy report, rebalance,
   lineup optimization, capacity or layout change).
3. Write the updated registrations back to CSV and emit ``latest.json`` with
   the outcome and the occupancy of every roster touched.
"""

from __future__ import annotations

import argparse
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Sequence

from roster_engine.config import get_config
from roster_engine.errors import AllocationError
from roster_engine.io import (
    load_participants,
    load_registrations,
    load_rosters,
    parse_enum,
    write_registrations,
)
from roster_engine.layout import load_layout_config
from roster_engine.models import LayoutMode
from roster_engine.service import AllocationOutcome, AllocationService
from roster_engine.store import RosterStore

logger = logging.getLogger(__name__)

COMMANDS = ("occupancy", "rebalance", "optimize", "capacity", "layout")


def configure_logging(*, level: int = logging.INFO) -> None:
    """Configure a simple root logger that writes to stdout.

    This is safe to call multiple times.
    """

    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        )
    else:
        root.setLevel(level)


# --------------------------
# CLI
# --------------------------

def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Run the roster allocation engine on CSV data")
    ap.add_argument("command", choices=COMMANDS, help="Operation to run")
    ap.add_argument(
        "--participants",
        default="data/participants.csv",
        help="CSV with ParticipantId,Name,PrimaryPosition,SecondaryPosition,CanChangeCategory,CanChangeTeam",
    )
    ap.add_argument(
        "--rosters",
        default="data/rosters.csv",
        help="CSV with RosterId,Capacity,LayoutMode,ScheduledAt,Status",
    )
    ap.add_argument(
        "--registrations",
        default="data/registrations.csv",
        help="CSV with RosterId,ParticipantId,Status,SubmittedAt,Team,Position,...",
    )
    ap.add_argument(
        "--layout-config",
        default="data/layout_config.yml",
        help="Optional YAML/JSON overriding the per-mode position lists",
    )
    ap.add_argument("--roster", default="", help="Only process this roster id")
    ap.add_argument("--capacity", type=int, default=None, help="New capacity (capacity command)")
    ap.add_argument("--mode", default="", help="New layout mode (layout command)")
    ap.add_argument("--out", default="out", help="Output directory for latest.json and registrations.csv")
    ap.add_argument("--log-level", default="INFO", help="Python logging level")
    return ap.parse_args(argv)


def _build_service(args: argparse.Namespace) -> AllocationService:
    cfg = get_config()
    participants = load_participants(args.participants)
    rosters = load_rosters(args.rosters)
    registrations = load_registrations(args.registrations, participants)
    layout, _meta = load_layout_config(args.layout_config)

    store = RosterStore(lock_timeout=cfg.LOCK_TIMEOUT_SECONDS)
    for roster in rosters.values():
        store.add_roster(roster)
    for participant in participants.values():
        store.add_participant(participant)
    skipped = 0
    for reg in registrations:
        if reg.roster_id not in rosters:
            skipped += 1
            continue
        store.add_registration(reg)
    if skipped:
        print(f"[warn] registrations: {skipped} row(s) reference unknown rosters - skipped")
    print(
        f"[info] loaded {len(participants)} participants, {len(rosters)} rosters, "
        f"{len(registrations) - skipped} registrations"
    )
    return AllocationService(store, layout=layout, config=cfg)


def _run(service: AllocationService, args: argparse.Namespace, roster_id: str) -> Dict[str, object]:
    roster = service.store.get_roster(roster_id)
    entry: Dict[str, object] = {"roster_id": roster_id}

    if args.command == "rebalance":
        entry["outcome"] = service.rebalance(roster_id).to_snapshot()
    elif args.command == "optimize":
        outcome = AllocationOutcome(roster_id=roster_id, lineup=service.optimize_lineup(roster_id))
        entry["outcome"] = outcome.to_snapshot()
    elif args.command == "capacity":
        if args.capacity is None:
            raise SystemExit("[error] capacity command needs --capacity")
        outcome = service.on_capacity_changed(roster_id, roster.capacity, args.capacity)
        entry["outcome"] = outcome.to_snapshot()
    elif args.command == "layout":
        mode = parse_enum(LayoutMode, args.mode)
        if mode is None:
            raise SystemExit(f"[error] unknown layout mode {args.mode!r}")
        outcome = service.on_layout_changed(roster_id, roster.layout_mode, mode)
        entry["outcome"] = outcome.to_snapshot()

    entry["occupancy"] = service.get_occupancy(roster_id).to_snapshot()
    return entry


def _write_outputs(out_dir: Path, payload: Dict[str, object], service: AllocationService) -> None:
    out_dir.mkdir(parents=True, exist_ok=True)
    regs = [reg for rid in service.store.roster_ids() for reg in service.store.registrations(rid)]
    write_registrations(out_dir / "registrations.csv", regs)

    json_str = json.dumps(payload, ensure_ascii=False, indent=2)
    (out_dir / "latest.json").write_text(json_str, encoding="utf-8")


# --------------------------
# Main
# --------------------------

def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    configure_logging(level=getattr(logging, str(args.log_level).upper(), logging.INFO))

    service = _build_service(args)
    roster_ids: List[str] = [args.roster] if args.roster else service.store.roster_ids()

    entries: List[Dict[str, object]] = []
    for roster_id in roster_ids:
        try:
            entries.append(_run(service, args, roster_id))
        except AllocationError as exc:
            print(f"[error] {args.command} failed: {exc}")
            return 1

    payload = {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "command": args.command,
        "rosters": entries,
    }
    _write_outputs(Path(args.out), payload, service)
    print(f"[ok] {args.command} done for {len(entries)} roster(s) → {Path(args.out) / 'latest.json'}")
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
