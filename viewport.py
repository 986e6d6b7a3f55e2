"""
MCC Collaborators
=================
Headless stand-ins for the things the console talks to but does not own:
the map viewport (camera + projection), the audio cue sink, the
achievement board and the global alert beacon.

The host renders from these; tests inspect them.
"""

import math
import logging
from collections import deque
from typing import Optional, Callable, Deque, Dict, List, Tuple

from registry import GeoPoint

logger = logging.getLogger("mcc.viewport")

TILE_SIZE = 512.0
MAX_MERCATOR_LAT = 85.051129
SOUND_HISTORY = 32


class MapViewport:
    """
    Camera state plus Web-Mercator projection.

    Camera moves are applied immediately (no easing); listeners
    registered with on('move' | 'zoom', cb) are called with the viewport.
    """

    def __init__(self, center: GeoPoint = GeoPoint(0.0, 0.0), zoom: float = 2.0,
                 width: int = 1024, height: int = 768):
        self.center = center
        self.zoom = zoom
        self.width = width
        self.height = height
        self.last_duration_ms: Optional[int] = None
        self._listeners: Dict[str, List[Callable]] = {'move': [], 'zoom': []}

    # ─────────────────────────────────────────────────────────────
    # Camera API
    # ─────────────────────────────────────────────────────────────

    def get_center(self) -> GeoPoint:
        return self.center

    def fly_to(self, center: GeoPoint, zoom: Optional[float] = None,
               duration_ms: Optional[int] = None) -> None:
        self.center = center
        self.last_duration_ms = duration_ms
        self._emit('move')
        if zoom is not None:
            self.zoom = zoom
            self._emit('zoom')

    def zoom_to(self, zoom: float, duration_ms: Optional[int] = None) -> None:
        self.zoom = zoom
        self.last_duration_ms = duration_ms
        self._emit('zoom')

    def on(self, event: str, callback: Callable) -> None:
        self._listeners.setdefault(event, []).append(callback)

    def off(self, event: str, callback: Callable) -> None:
        if callback in self._listeners.get(event, []):
            self._listeners[event].remove(callback)

    def _emit(self, event: str) -> None:
        for cb in list(self._listeners.get(event, [])):
            cb(self)

    # ─────────────────────────────────────────────────────────────
    # Projection
    # ─────────────────────────────────────────────────────────────

    def _world_xy(self, point: GeoPoint) -> Tuple[float, float]:
        scale = TILE_SIZE * (2 ** self.zoom)
        lat = max(-MAX_MERCATOR_LAT, min(MAX_MERCATOR_LAT, point.lat))
        x = (point.lng + 180.0) / 360.0 * scale
        siny = math.sin(math.radians(lat))
        y = (0.5 - math.log((1 + siny) / (1 - siny)) / (4 * math.pi)) * scale
        return x, y

    def project(self, point: GeoPoint) -> Tuple[float, float]:
        """Screen pixel (x, y) of point, with the camera center mid-screen."""
        cx, cy = self._world_xy(self.center)
        px, py = self._world_xy(point)
        return (px - cx + self.width / 2, py - cy + self.height / 2)


class SoundBoard:
    """Audio cue sink. Keeps the most recent cues that would have been played."""

    def __init__(self, history: int = SOUND_HISTORY):
        self.played: Deque[str] = deque(maxlen=history)

    def play_effect(self, effect_id: str) -> None:
        self.played.append(effect_id)
        logger.debug(f"Sound: {effect_id}")


class AchievementBoard:
    """Achievement sink. Each id unlocks once."""

    def __init__(self):
        self.unlocked: List[str] = []

    def unlock(self, achievement_id: str) -> bool:
        if achievement_id in self.unlocked:
            return False
        self.unlocked.append(achievement_id)
        logger.info(f"Achievement unlocked: {achievement_id}")
        return True


DEFAULT_ALERT_MS = 6000


class AlertBeacon:
    """
    Global alert. Expiry is checked against the frame clock in update(),
    never by a timer of its own.
    """

    def __init__(self, clock: Callable[[], float]):
        self.clock = clock
        self.expires_at_ms: Optional[float] = None

    @property
    def active(self) -> bool:
        return self.expires_at_ms is not None

    def trigger(self, duration_ms: Optional[int] = None) -> None:
        self.expires_at_ms = self.clock() + (duration_ms or DEFAULT_ALERT_MS)
        logger.warning(f"Global alert raised for {duration_ms or DEFAULT_ALERT_MS} ms")

    def update(self, now_ms: float) -> bool:
        """Clear an elapsed alert. Returns True on the tick it clears."""
        if self.expires_at_ms is not None and now_ms >= self.expires_at_ms:
            self.expires_at_ms = None
            return True
        return False
