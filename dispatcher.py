"""
MCC Action Dispatcher
=====================
Applies terminal actions to the world: camera moves go to the map
viewport, vehicle orders go to the UXV engine, and cosmetic cues go to
the audio/achievement/alert sinks.

Every action type has exactly one handler. Anything else is a bug in the
caller and raises TypeError.
"""

import logging
from typing import Optional, Callable, Dict, Any

from actions import (
    FlyTo, Zoom,
    StartUXV, StopUXV, UxvGoto, UxvSpeed, UxvDrop, UxvReturn, UxvFollow,
    UxvWeapon, UxvCharge, UxvFire, UxvPatrol, UxvAltitude, UxvTrail,
    PlaySound, UnlockAchievement, TriggerAlert,
)
from uxv_engine import UXVEngine

logger = logging.getLogger("mcc.dispatch")


class ActionDispatcher:
    """Type-keyed dispatch table over the closed action set."""

    def __init__(self, viewport: Any, engine: UXVEngine,
                 audio: Optional[Any] = None,
                 achievements: Optional[Any] = None,
                 alert: Optional[Any] = None):
        self.viewport = viewport
        self.engine = engine
        self.audio = audio
        self.achievements = achievements
        self.alert = alert

        self._handlers: Dict[type, Callable[[Any], None]] = {
            FlyTo: self._fly_to,
            Zoom: self._zoom,
            StartUXV: self._start,
            StopUXV: lambda a: self.engine.stop(),
            UxvGoto: lambda a: self.engine.set_target(a.target),
            UxvSpeed: lambda a: self.engine.set_speed(a.meters_per_second),
            UxvDrop: lambda a: self.engine.drop_payload(),
            UxvReturn: lambda a: self.engine.return_to_base(),
            UxvFollow: lambda a: self.engine.set_follow(a.enabled),
            UxvWeapon: lambda a: self.engine.set_weapon(a.weapon),
            UxvCharge: self._charge,
            UxvFire: lambda a: self.engine.fire(a.target),
            UxvPatrol: lambda a: self.engine.set_patrol_mode(a.mode),
            UxvAltitude: lambda a: self.engine.set_altitude(a.meters),
            UxvTrail: lambda a: self.engine.set_trail_max(a.max_length),
            PlaySound: self._play_sound,
            UnlockAchievement: self._unlock,
            TriggerAlert: self._trigger_alert,
        }

    def apply(self, action: Any) -> None:
        handler = self._handlers.get(type(action))
        if handler is None:
            raise TypeError(f"Not a console action: {action!r}")
        handler(action)

    def apply_all(self, actions) -> None:
        for action in actions or []:
            self.apply(action)

    # ─────────────────────────────────────────────────────────────
    # Camera
    # ─────────────────────────────────────────────────────────────

    def _fly_to(self, action: FlyTo) -> None:
        self.viewport.fly_to(action.center, zoom=action.zoom, duration_ms=action.duration_ms)

    def _zoom(self, action: Zoom) -> None:
        self.viewport.zoom_to(action.zoom, duration_ms=action.duration_ms)

    # ─────────────────────────────────────────────────────────────
    # Vehicle
    # ─────────────────────────────────────────────────────────────

    def _start(self, action: StartUXV) -> None:
        position = action.position
        if position is None and self.viewport is not None:
            position = self.viewport.get_center()
        self.engine.start(position)

    def _charge(self, action: UxvCharge) -> None:
        if action.enabled:
            self.engine.start_charging()
        else:
            self.engine.stop_charging()

    # ─────────────────────────────────────────────────────────────
    # Cosmetic Sinks
    # ─────────────────────────────────────────────────────────────

    def _play_sound(self, action: PlaySound) -> None:
        if self.audio is not None:
            self.audio.play_effect(action.id)

    def _unlock(self, action: UnlockAchievement) -> None:
        if self.achievements is not None:
            self.achievements.unlock(action.id)

    def _trigger_alert(self, action: TriggerAlert) -> None:
        if self.alert is not None:
            self.alert.trigger(action.duration_ms)
