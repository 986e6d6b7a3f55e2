"""
MCC Console
===========
One operator session: terminal -> dispatcher -> vehicle, all driven by a
single millisecond clock.

    console = MissionConsole(WorldRegistry.load("world.json"))
    console.submit("uxv start 0 0")
    console.tick()          # once per frame
"""

import time
import logging
from typing import Optional, Callable, Dict, Any

from dispatcher import ActionDispatcher
from registry import WorldRegistry
from terminal import Terminal, CommandResult
from uxv_engine import UXVEngine, WeaponType, DEFAULT_TRAIL
from viewport import MapViewport, SoundBoard, AchievementBoard, AlertBeacon

logger = logging.getLogger("mcc.console")


class MissionConsole:
    """Owns the collaborators and wires the data flow between them."""

    def __init__(self, registry: Optional[WorldRegistry] = None,
                 viewport: Optional[MapViewport] = None,
                 clock: Optional[Callable[[], float]] = None,
                 trail_max: int = DEFAULT_TRAIL):
        self.clock = clock or (lambda: time.monotonic() * 1000.0)
        self.registry = registry or WorldRegistry()
        self.viewport = viewport or MapViewport()

        self.audio = SoundBoard()
        self.achievements = AchievementBoard()
        self.alert = AlertBeacon(self.clock)

        self.terminal = Terminal(self.registry)
        self.engine = UXVEngine(self.viewport, clock=self.clock, trail_max=trail_max)
        self.dispatcher = ActionDispatcher(self.viewport, self.engine,
                                           audio=self.audio,
                                           achievements=self.achievements,
                                           alert=self.alert)
        logger.info(f"Console ready: {self.registry.meta.get('name')} "
                    f"({len(self.registry.geofences)} geofences)")

    def submit(self, line: str) -> CommandResult:
        """Interpret one line and apply its actions in order."""
        result = self.terminal.submit(line)
        self.dispatcher.apply_all(result.actions)
        return result

    def tick(self, now_ms: Optional[float] = None) -> Dict[str, Any]:
        """Advance one frame and return the render snapshot."""
        now = self.clock() if now_ms is None else now_ms

        for blast in self.engine.update(now):
            self.audio.play_effect('sweep' if blast.weapon == WeaponType.ORBITAL else 'alert')

        if self.alert.update(now):
            self.terminal.clear_alert()

        return self.engine.snapshot(now)

    def ambient_effects(self):
        """Effects of every geofence the vehicle (or the camera) is inside."""
        point = self.engine.state.position or self.viewport.get_center()
        effects = []
        for fence in self.registry.find_at(point):
            for effect in fence.effects:
                if effect not in effects:
                    effects.append(effect)
        return effects
