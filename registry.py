"""
MCC World Registry
==================
Static world data: named geofences (bounding boxes with ambient effects)
and the company roster used by the navigation commands.
Everything is loaded once from a single JSON file and never mutated.

World file layout:

    {
      "meta": {"name": "..."},
      "geofences": [
        {"key": "area51", "name": "...", "category": "...",
         "box": {"min_lng": .., "max_lng": .., "min_lat": .., "max_lat": ..},
         "effects": ["ufo", ...], "colors": ["#45ffb0", ...]}
      ],
      "roster": [
        {"name": "Acme Corp", "location": {"lng": .., "lat": ..}}
      ]
    }
"""

import json
import os
import logging
from pathlib import Path
from typing import Optional, Dict, List, Any, Tuple
from dataclasses import dataclass, field

logger = logging.getLogger("mcc.registry")


@dataclass(frozen=True)
class GeoPoint:
    """A longitude/latitude pair in degrees."""
    lng: float
    lat: float


@dataclass(frozen=True)
class BoundingBox:
    min_lng: float
    max_lng: float
    min_lat: float
    max_lat: float

    def contains(self, point: GeoPoint) -> bool:
        """Strict containment; points on the edge are outside."""
        return (self.min_lng < point.lng < self.max_lng and
                self.min_lat < point.lat < self.max_lat)

    def center(self) -> GeoPoint:
        return GeoPoint((self.min_lng + self.max_lng) / 2,
                        (self.min_lat + self.max_lat) / 2)


@dataclass(frozen=True)
class Geofence:
    """A named region with the cosmetic effects it triggers."""
    key: str
    box: BoundingBox
    name: str = ""
    category: str = ""
    effects: Tuple[str, ...] = ()
    colors: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RosterEntry:
    """A company headquarters on the map."""
    name: str
    location: GeoPoint


class WorldRegistry:
    """
    Read-only lookup tables for geofences and the company roster.

    Geofence keys are unique and stored lower-case; duplicate keys in the
    source file are rejected on load.
    """

    def __init__(self, geofences: List[Geofence] = None,
                 roster: List[RosterEntry] = None,
                 meta: Dict[str, Any] = None):
        self.meta: Dict[str, Any] = meta or {"name": "Unnamed World"}
        self.geofences: List[Geofence] = []
        self.roster: List[RosterEntry] = list(roster or [])

        # Indices
        self._key_index: Dict[str, Geofence] = {}
        self._category_index: Dict[str, List[Geofence]] = {}

        for fence in geofences or []:
            self._add_geofence(fence)

    def _add_geofence(self, fence: Geofence) -> None:
        key = fence.key.lower()
        if key in self._key_index:
            raise ValueError(f"Duplicate geofence key: {fence.key}")
        self.geofences.append(fence)
        self._key_index[key] = fence
        self._category_index.setdefault(fence.category, []).append(fence)

    # ─────────────────────────────────────────────────────────────
    # File I/O
    # ─────────────────────────────────────────────────────────────

    @classmethod
    def load(cls, path) -> 'WorldRegistry':
        """Load the registry from a JSON world file. Missing file -> empty world."""
        if not os.path.exists(path):
            logger.warning(f"World file not found: {path}")
            return cls()

        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)

        try:
            fences = [_parse_geofence(g) for g in data.get("geofences", [])]
            roster = [_parse_roster_entry(r) for r in data.get("roster", [])]
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed world file {Path(path).name}: missing {e}") from e

        registry = cls(fences, roster, meta=data.get("meta"))
        logger.info(f"World: loaded {len(registry.geofences)} geofences, "
                    f"{len(registry.roster)} roster entries")
        return registry

    # ─────────────────────────────────────────────────────────────
    # Geofence Queries
    # ─────────────────────────────────────────────────────────────

    def keys(self) -> List[str]:
        return [g.key for g in self.geofences]

    def get(self, key: str) -> Optional[Geofence]:
        """Exact key lookup (case-insensitive)."""
        return self._key_index.get((key or "").lower())

    def center_of(self, key: str) -> Optional[GeoPoint]:
        fence = self.get(key)
        return fence.box.center() if fence else None

    def by_category(self, category: str) -> List[Geofence]:
        return list(self._category_index.get(category, []))

    def categories(self) -> List[str]:
        return list(self._category_index.keys())

    def find_at(self, point: GeoPoint) -> List[Geofence]:
        """All geofences whose box contains point."""
        return [g for g in self.geofences if g.box.contains(point)]

    # ─────────────────────────────────────────────────────────────
    # Roster Queries
    # ─────────────────────────────────────────────────────────────

    def company_names(self) -> List[str]:
        """Unique non-empty roster names in first-seen order."""
        seen = []
        for entry in self.roster:
            if entry.name and entry.name not in seen:
                seen.append(entry.name)
        return seen

    def find_company(self, query: str) -> Optional[RosterEntry]:
        """First roster entry whose name contains query, case-insensitive."""
        needle = (query or "").lower()
        if not needle:
            return None
        for entry in self.roster:
            if needle in (entry.name or "").lower():
                return entry
        return None


def _parse_geofence(raw: Dict[str, Any]) -> Geofence:
    box = raw["box"]
    return Geofence(
        key=raw["key"].lower(),
        box=BoundingBox(float(box["min_lng"]), float(box["max_lng"]),
                        float(box["min_lat"]), float(box["max_lat"])),
        name=raw.get("name", ""),
        category=raw.get("category", ""),
        effects=tuple(raw.get("effects", [])),
        colors=tuple(raw.get("colors", [])),
    )


def _parse_roster_entry(raw: Dict[str, Any]) -> RosterEntry:
    loc = raw["location"]
    return RosterEntry(name=raw["name"], location=GeoPoint(float(loc["lng"]), float(loc["lat"])))


# ─────────────────────────────────────────────────────────────────
# Quick check when run directly
# ─────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    registry = WorldRegistry.load(Path(__file__).parent / "world.json")
    print(f"Loaded world: {registry.meta.get('name')}")
    for fence in registry.geofences:
        print(f"  {fence.key}: {fence.name} ({fence.category}) -> {', '.join(fence.effects)}")
