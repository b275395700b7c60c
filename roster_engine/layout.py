"""Position layout table: which positions exist per team and how many slots each gets.

The table is a pure function of ``(layout_mode, slots_per_team)``. The goalie
(if the mode has one) is served first; the remaining slots are dealt
round-robin over the skater positions in the order the mode lists them, so a
10-slot team in 5-on-5 gets one of each position and the sixth slot goes to
the first position again.

Overrides can be read from ``data/layout_config.yml`` (or a custom path); any
missing or broken entry falls back onto the embedded defaults.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Mapping, Sequence, Tuple

import yaml  # type: ignore

from roster_engine.models import LayoutMode, Position


DEFAULT_MODE_POSITIONS: Dict[LayoutMode, Tuple[Position, ...]] = {
    LayoutMode.THREE_ON_THREE_NO_GOALIE: (
        Position.WING_LEFT,
        Position.WING_RIGHT,
        Position.DEFENSE,
    ),
    LayoutMode.THREE_ON_THREE_WITH_GOALIE: (
        Position.GOALIE,
        Position.WING_LEFT,
        Position.WING_RIGHT,
        Position.DEFENSE,
    ),
    LayoutMode.FOUR_ON_FOUR_NO_GOALIE: (
        Position.WING_LEFT,
        Position.WING_RIGHT,
        Position.DEFENSE_LEFT,
        Position.DEFENSE_RIGHT,
    ),
    LayoutMode.FOUR_ON_FOUR_WITH_GOALIE: (
        Position.GOALIE,
        Position.WING_LEFT,
        Position.WING_RIGHT,
        Position.DEFENSE_LEFT,
        Position.DEFENSE_RIGHT,
    ),
    LayoutMode.FIVE_ON_FIVE_NO_GOALIE: (
        Position.WING_LEFT,
        Position.CENTER,
        Position.WING_RIGHT,
        Position.DEFENSE_LEFT,
        Position.DEFENSE_RIGHT,
    ),
    LayoutMode.FIVE_ON_FIVE_WITH_GOALIE: (
        Position.GOALIE,
        Position.WING_LEFT,
        Position.CENTER,
        Position.WING_RIGHT,
        Position.DEFENSE_LEFT,
        Position.DEFENSE_RIGHT,
    ),
    LayoutMode.SIX_ON_SIX_NO_GOALIE: (
        Position.WING_LEFT,
        Position.CENTER,
        Position.WING_RIGHT,
        Position.DEFENSE,
        Position.DEFENSE_LEFT,
        Position.DEFENSE_RIGHT,
    ),
}

# Used when a roster carries no layout mode at all.
FALLBACK_POSITIONS: Tuple[Position, ...] = (
    Position.GOALIE,
    Position.DEFENSE_LEFT,
    Position.DEFENSE_RIGHT,
    Position.WING_LEFT,
    Position.CENTER,
    Position.WING_RIGHT,
)

DEFAULT_GOALIE_SLOTS_PER_TEAM = 1


class PositionLayoutProvider:
    """Default implementation of the layout lookup table."""

    def __init__(
        self,
        mode_positions: Mapping[LayoutMode, Sequence[Position]] | None = None,
        *,
        goalie_slots_per_team: int = DEFAULT_GOALIE_SLOTS_PER_TEAM,
    ) -> None:
        table = dict(DEFAULT_MODE_POSITIONS)
        if mode_positions:
            table.update({mode: tuple(positions) for mode, positions in mode_positions.items()})
        self._mode_positions = table
        self.goalie_slots_per_team = max(0, int(goalie_slots_per_team))

    def positions_for(self, mode: LayoutMode | None) -> List[Position]:
        if mode is None:
            return list(FALLBACK_POSITIONS)
        return list(self._mode_positions.get(mode, FALLBACK_POSITIONS))

    def capacity_for(self, mode: LayoutMode | None, slots_per_team: int) -> Dict[Position, int]:
        """Map each position of ``mode`` to its per-team capacity.

        Positions that receive no slot are left out of the map, which callers
        treat as "no defined capacity".
        """

        positions = self.positions_for(mode)
        capacity: Dict[Position, int] = {}
        remaining = max(0, int(slots_per_team))
        if not positions or remaining == 0:
            return capacity

        if Position.GOALIE in positions and self.goalie_slots_per_team > 0:
            goalies = min(self.goalie_slots_per_team, remaining)
            capacity[Position.GOALIE] = goalies
            remaining -= goalies

        skaters = [p for p in positions if p is not Position.GOALIE]
        if not skaters:
            return capacity

        idx = 0
        while remaining > 0:
            pos = skaters[idx % len(skaters)]
            capacity[pos] = capacity.get(pos, 0) + 1
            remaining -= 1
            idx += 1
        return capacity

    def goalie_slots(self, mode: LayoutMode | None) -> int:
        """Goalie slots for a whole roster (both teams)."""
        if Position.GOALIE not in self.positions_for(mode):
            return 0
        return 2 * self.goalie_slots_per_team


def _read_config_file(path: Path) -> Dict[str, Any] | None:
    if not path.exists():
        return None
    if path.suffix.lower() == ".json":
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None
    try:
        with path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError):
        return None
    return data if isinstance(data, dict) else None


def _parse_positions(raw: Any) -> List[Position] | None:
    if not isinstance(raw, (list, tuple)) or not raw:
        return None
    out: List[Position] = []
    for item in raw:
        key = str(item).strip().upper()
        if key not in Position.__members__ or key == "ANY":
            return None
        pos = Position[key]
        if pos not in out:
            out.append(pos)
    return out


def load_layout_config(
    path: str | Path = "data/layout_config.yml",
) -> Tuple[PositionLayoutProvider, Dict[str, Any]]:
    cfg_path = Path(path)
    meta: Dict[str, Any] = {
        "path": str(cfg_path),
        "loaded_from_file": False,
        "overridden_modes": [],
        "issues": [],
    }

    raw = _read_config_file(cfg_path)
    if raw is None:
        meta["issues"].append("layout config missing or unreadable; using defaults")
        print(f"[warn] layout_config: {cfg_path} missing/broken - using defaults")
        return PositionLayoutProvider(), meta

    meta["loaded_from_file"] = True
    goalie_slots = DEFAULT_GOALIE_SLOTS_PER_TEAM
    raw_goalies = raw.get("goalie_slots_per_team")
    if raw_goalies is not None:
        try:
            goalie_slots = max(0, int(raw_goalies))
        except (TypeError, ValueError):
            meta["issues"].append("goalie_slots_per_team invalid; using default")

    overrides: Dict[LayoutMode, List[Position]] = {}
    modes_block = raw.get("modes") or {}
    if not isinstance(modes_block, dict):
        meta["issues"].append("modes must be a mapping; ignored")
        modes_block = {}
    for key, value in modes_block.items():
        mode_key = str(key).strip().upper()
        if mode_key not in LayoutMode.__members__:
            meta["issues"].append(f"unknown layout mode {key!r}; ignored")
            continue
        positions = _parse_positions(value)
        if positions is None:
            meta["issues"].append(f"invalid positions for {mode_key}; using default")
            continue
        overrides[LayoutMode[mode_key]] = positions
        meta["overridden_modes"].append(mode_key)

    if meta["issues"]:
        print(f"[warn] layout_config: {'; '.join(meta['issues'])}")
    print(
        f"[info] layout_config: using {cfg_path} ({len(overrides)} mode override(s))"
    )
    return PositionLayoutProvider(overrides, goalie_slots_per_team=goalie_slots), meta


__all__ = [
    "DEFAULT_GOALIE_SLOTS_PER_TEAM",
    "DEFAULT_MODE_POSITIONS",
    "FALLBACK_POSITIONS",
    "PositionLayoutProvider",
    "load_layout_config",
]
