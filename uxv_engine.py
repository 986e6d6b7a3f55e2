"""
MCC UXV Engine
==============
Real-time simulation of the autonomous vehicle (UXV): steering toward a
target, a bounded position trail, weapon charging, projectile/laser/
explosion lifecycles and patrol route generation.

The host calls update() once per animation frame. All time-based decay is
derived from the millisecond clock passed in (or the injected clock), so a
stalled frame loop stalls everything uniformly and tests can drive time
by hand.

Movement uses a flat-earth approximation: 111,000 m ≈ 1° and distances are
plain Euclidean deltas in degrees. No great-circle correction.
"""

import math
import time
import random
import logging
import itertools
from enum import Enum
from collections import deque
from typing import Optional, Callable, Dict, List, Any
from dataclasses import dataclass, field

from registry import GeoPoint

logger = logging.getLogger("mcc.uxv")


# ─────────────────────────────────────────────────────────────────
# Tunables
# ─────────────────────────────────────────────────────────────────

METERS_PER_DEGREE = 111000.0

MIN_SPEED = 50.0
MAX_SPEED = 10000.0
DEFAULT_SPEED = 200.0

MIN_ALTITUDE = 100.0
MAX_ALTITUDE = 5000.0
DEFAULT_ALTITUDE = 1000.0

MIN_TRAIL = 10
MAX_TRAIL = 200
DEFAULT_TRAIL = 50

ARRIVAL_EPSILON = 1e-4      # degrees
TRAIL_SAMPLE_MS = 120
TRAIL_MOVE_EPSILON = 1e-6   # degrees
WAYPOINT_EPSILON = 1e-3     # degrees
FOLLOW_DURATION_MS = 250

MAX_CHARGE = 2.0
MIN_SHOT_POWER = 0.1
CHARGE_RATE = 0.5           # power units per second while charging

PAYLOAD_DURATION_MS = 2000


class WeaponType(str, Enum):
    PROJECTILE = "projectile"
    LASER = "laser"
    PULSE = "pulse"
    ORBITAL = "orbital"


class PatrolMode(str, Enum):
    NONE = "none"
    CIRCLE = "circle"
    FIGURE8 = "figure8"
    RANDOM = "random"
    ZIGZAG = "zigzag"


# Beam lifetime per weapon, short pulse to long orbital strike
WEAPON_DURATIONS_MS = {
    WeaponType.PULSE: 300,
    WeaponType.LASER: 800,
    WeaponType.PROJECTILE: 1500,
    WeaponType.ORBITAL: 3000,
}

EXPLOSION_MAX_AGE_MS = {WeaponType.ORBITAL: 2000}
DEFAULT_EXPLOSION_MAX_AGE_MS = 1000

# Peak blast radius in screen pixels
EXPLOSION_BASE_RADIUS = {
    WeaponType.PULSE: 8.0,
    WeaponType.LASER: 14.0,
    WeaponType.PROJECTILE: 18.0,
    WeaponType.ORBITAL: 60.0,
}


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def distance_deg(a: GeoPoint, b: GeoPoint) -> float:
    return math.hypot(b.lng - a.lng, b.lat - a.lat)


# ─────────────────────────────────────────────────────────────────
# Transient Entities
# ─────────────────────────────────────────────────────────────────

@dataclass
class Projectile:
    id: str
    start: GeoPoint
    end: GeoPoint
    start_ms: float
    duration_ms: float
    weapon: WeaponType = WeaponType.PROJECTILE

    def age(self, now_ms: float) -> float:
        return now_ms - self.start_ms

    def expired(self, now_ms: float) -> bool:
        return self.age(now_ms) >= self.duration_ms

    def position_at(self, now_ms: float) -> GeoPoint:
        """Linear ground track from start to end; renderers add the arc."""
        t = clamp(self.age(now_ms) / self.duration_ms, 0.0, 1.0) if self.duration_ms else 1.0
        return GeoPoint(self.start.lng + (self.end.lng - self.start.lng) * t,
                        self.start.lat + (self.end.lat - self.start.lat) * t)


@dataclass
class Laser(Projectile):
    weapon: WeaponType = WeaponType.LASER
    power: float = 1.0


@dataclass
class Explosion:
    id: str
    location: GeoPoint
    start_ms: float
    weapon: WeaponType = WeaponType.PROJECTILE

    @property
    def max_age_ms(self) -> float:
        return EXPLOSION_MAX_AGE_MS.get(self.weapon, DEFAULT_EXPLOSION_MAX_AGE_MS)

    def age(self, now_ms: float) -> float:
        return now_ms - self.start_ms

    def expired(self, now_ms: float) -> bool:
        return self.age(now_ms) > self.max_age_ms

    def progress(self, now_ms: float) -> float:
        return clamp(self.age(now_ms) / self.max_age_ms, 0.0, 1.0)

    def radius(self, now_ms: float) -> float:
        """Blast grows from 40% to full radius over its lifetime."""
        return EXPLOSION_BASE_RADIUS.get(self.weapon, 18.0) * (0.4 + 0.6 * self.progress(now_ms))

    def opacity(self, now_ms: float) -> float:
        return 1.0 - self.progress(now_ms)


# ─────────────────────────────────────────────────────────────────
# Vehicle State
# ─────────────────────────────────────────────────────────────────

@dataclass
class WeaponState:
    type: WeaponType = WeaponType.PROJECTILE
    charge_power: float = 0.0
    charging: bool = False


@dataclass
class PatrolState:
    mode: PatrolMode = PatrolMode.NONE
    waypoints: List[GeoPoint] = field(default_factory=list)
    current_index: int = 0


@dataclass
class UXVState:
    active: bool = False
    position: Optional[GeoPoint] = None
    target: Optional[GeoPoint] = None
    base: Optional[GeoPoint] = None
    trail: deque = field(default_factory=lambda: deque(maxlen=DEFAULT_TRAIL))
    speed_mps: float = DEFAULT_SPEED
    follow_camera: bool = False
    weapon: WeaponState = field(default_factory=WeaponState)
    patrol: PatrolState = field(default_factory=PatrolState)
    altitude_m: float = DEFAULT_ALTITUDE
    projectiles: List[Projectile] = field(default_factory=list)
    lasers: List[Laser] = field(default_factory=list)
    explosions: List[Explosion] = field(default_factory=list)

    @property
    def trail_max(self) -> int:
        return self.trail.maxlen


# ─────────────────────────────────────────────────────────────────
# Patrol Generation
# ─────────────────────────────────────────────────────────────────

def generate_patrol(mode: PatrolMode, center: Optional[GeoPoint],
                    rng: random.Random = None) -> List[GeoPoint]:
    """
    Waypoints for a patrol mode around center.

    Circle: 16 points on a 0.5° x 0.3° ellipse.
    Figure8: 32 points on a lemniscate (0.6° wide, 0.3° tall lobes).
    Random: 12 uniform points anywhere on the globe (center unused).
    Zigzag: 20 points stepping 0.1° east, alternating ±0.2° latitude.
    Center-relative modes produce nothing without a center.
    """
    mode = PatrolMode(mode)
    rng = rng or random.Random()

    if mode == PatrolMode.RANDOM:
        return [GeoPoint(rng.uniform(-180.0, 180.0), rng.uniform(-85.0, 85.0))
                for _ in range(12)]

    if mode == PatrolMode.NONE or center is None:
        return []

    if mode == PatrolMode.CIRCLE:
        points = []
        for i in range(16):
            t = 2 * math.pi * i / 16
            points.append(GeoPoint(center.lng + 0.5 * math.cos(t),
                                   center.lat + 0.3 * math.sin(t)))
        return points

    if mode == PatrolMode.FIGURE8:
        points = []
        for i in range(32):
            t = 2 * math.pi * i / 32
            points.append(GeoPoint(center.lng + 0.6 * math.sin(t),
                                   center.lat + 0.3 * math.sin(t) * math.cos(t)))
        return points

    # Zigzag
    return [GeoPoint(center.lng + 0.1 * i,
                     center.lat + (0.2 if i % 2 == 0 else -0.2))
            for i in range(20)]


# ─────────────────────────────────────────────────────────────────
# Engine
# ─────────────────────────────────────────────────────────────────

class UXVEngine:
    """
    Owns one vehicle's UXVState and advances it per frame.

    viewport: optional map viewport (only fly_to is used, for camera follow).
    clock: returns the current time in milliseconds; defaults to a
           monotonic wall clock. Spawned entities are stamped with it.
    """

    def __init__(self, viewport: Optional[Any] = None,
                 clock: Optional[Callable[[], float]] = None,
                 trail_max: int = DEFAULT_TRAIL,
                 rng: Optional[random.Random] = None):
        self.viewport = viewport
        self.clock = clock or (lambda: time.monotonic() * 1000.0)
        self.rng = rng or random.Random()
        self.state = UXVState(trail=deque(maxlen=int(clamp(trail_max, MIN_TRAIL, MAX_TRAIL))))

        self._ids = itertools.count(1)
        self._last_tick_ms: Optional[float] = None
        self._last_trail_ms: Optional[float] = None

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    # ─────────────────────────────────────────────────────────────
    # Controls
    # ─────────────────────────────────────────────────────────────

    def start(self, position: Optional[GeoPoint] = None) -> None:
        """Activate. A given position becomes the spawn point and the base."""
        s = self.state
        if position is not None:
            s.position = position
            s.base = position
            s.trail.clear()
            s.trail.append(position)
        s.active = True
        self._last_trail_ms = None
        logger.info(f"UXV engaged at {s.position}")

    def stop(self) -> None:
        """Halt steering. In-flight shots and blasts are left to decay."""
        self.state.active = False
        self.state.target = None
        logger.info("UXV disengaged")

    def set_target(self, target: Optional[GeoPoint]) -> None:
        self.state.target = target

    def return_to_base(self) -> None:
        if self.state.base is not None:
            self.state.target = self.state.base

    def set_speed(self, mps: float) -> float:
        self.state.speed_mps = clamp(float(mps), MIN_SPEED, MAX_SPEED)
        return self.state.speed_mps

    def set_altitude(self, meters: float) -> float:
        self.state.altitude_m = clamp(float(meters), MIN_ALTITUDE, MAX_ALTITUDE)
        return self.state.altitude_m

    def set_trail_max(self, length: int) -> int:
        """Resize the trail, keeping the newest points."""
        length = int(clamp(int(length), MIN_TRAIL, MAX_TRAIL))
        self.state.trail = deque(self.state.trail, maxlen=length)
        return length

    def set_follow(self, enabled: bool) -> None:
        self.state.follow_camera = bool(enabled)

    # ─────────────────────────────────────────────────────────────
    # Weapons
    # ─────────────────────────────────────────────────────────────

    def set_weapon(self, weapon) -> WeaponType:
        weapon = WeaponType(weapon)
        w = self.state.weapon
        if weapon != w.type:
            w.type = weapon
            w.charge_power = 0.0
        return w.type

    def start_charging(self) -> None:
        self.state.weapon.charging = True

    def stop_charging(self) -> None:
        self.state.weapon.charging = False

    def set_charge(self, power: float) -> float:
        w = self.state.weapon
        w.charge_power = clamp(float(power), 0.0, MAX_CHARGE)
        return w.charge_power

    def fire_projectile(self, target: GeoPoint,
                        duration_ms: float = PAYLOAD_DURATION_MS) -> Optional[Projectile]:
        s = self.state
        if s.position is None:
            return None
        shot = Projectile(id=self._next_id("proj"), start=s.position, end=target,
                          start_ms=self.clock(), duration_ms=duration_ms,
                          weapon=WeaponType.PROJECTILE)
        s.projectiles.append(shot)
        return shot

    def fire_laser(self, target: GeoPoint, power: float) -> Optional[Laser]:
        """Fire a beam of the current weapon type. Power is clamped to [0.1, 2]."""
        s = self.state
        if s.position is None:
            return None
        weapon = s.weapon.type
        beam = Laser(id=self._next_id("beam"), start=s.position, end=target,
                     start_ms=self.clock(), duration_ms=WEAPON_DURATIONS_MS[weapon],
                     weapon=weapon, power=clamp(float(power), MIN_SHOT_POWER, MAX_CHARGE))
        s.lasers.append(beam)
        return beam

    def drop_payload(self) -> Optional[Projectile]:
        """
        Release at the current target (or straight down if none).
        Projectile weapons lob a payload; the beam weapons discharge
        whatever charge has built up.
        """
        s = self.state
        if s.position is None:
            return None
        return self.fire(s.target or s.position)

    def fire(self, target: GeoPoint) -> Optional[Projectile]:
        """Fire the selected weapon at target: a payload or a charged beam."""
        if self.state.weapon.type == WeaponType.PROJECTILE:
            return self.fire_projectile(target)
        return self.discharge(target)

    def discharge(self, target: GeoPoint) -> Optional[Laser]:
        """Fire a beam at the built-up charge and release the charge."""
        w = self.state.weapon
        beam = self.fire_laser(target, w.charge_power)
        if beam is not None:
            w.charge_power = 0.0
            w.charging = False
        return beam

    # ─────────────────────────────────────────────────────────────
    # Patrol
    # ─────────────────────────────────────────────────────────────

    def set_patrol_mode(self, mode) -> List[GeoPoint]:
        mode = PatrolMode(mode)
        p = self.state.patrol
        p.mode = mode
        p.waypoints = generate_patrol(mode, self.state.position, self.rng)
        p.current_index = 0
        return list(p.waypoints)

    # ─────────────────────────────────────────────────────────────
    # Frame Update
    # ─────────────────────────────────────────────────────────────

    def update(self, now_ms: Optional[float] = None) -> List[Explosion]:
        """
        Advance one frame. Returns the explosions spawned this tick.

        Order: movement, trail, camera follow, charge, shot aging,
        explosion aging, patrol bookkeeping.
        """
        now = self.clock() if now_ms is None else now_ms
        dt = 0.0 if self._last_tick_ms is None else max(0.0, (now - self._last_tick_ms) / 1000.0)
        self._last_tick_ms = now

        s = self.state
        if s.active:
            self._integrate(dt)
            self._sample_trail(now)
            self._follow()

        if s.weapon.charging:
            self.set_charge(s.weapon.charge_power + CHARGE_RATE * dt)

        spawned = self._age_shots(now)
        s.explosions = [e for e in s.explosions if not e.expired(now)]
        self._track_patrol()
        return spawned

    def _integrate(self, dt: float) -> None:
        s = self.state
        if s.position is None or s.target is None:
            return

        dist = distance_deg(s.position, s.target)
        if dist < ARRIVAL_EPSILON:
            s.position = s.target
            s.target = None
            return

        step = (s.speed_mps / METERS_PER_DEGREE) * dt
        if step >= dist:
            s.position = s.target
            s.target = None
            return

        ratio = step / dist
        s.position = GeoPoint(s.position.lng + (s.target.lng - s.position.lng) * ratio,
                              s.position.lat + (s.target.lat - s.position.lat) * ratio)

    def _sample_trail(self, now: float) -> None:
        s = self.state
        if s.position is None:
            return
        if self._last_trail_ms is None:
            self._last_trail_ms = now
            if not s.trail:
                s.trail.append(s.position)
            return
        if now - self._last_trail_ms < TRAIL_SAMPLE_MS:
            return

        self._last_trail_ms = now
        if not s.trail or distance_deg(s.trail[-1], s.position) > TRAIL_MOVE_EPSILON:
            s.trail.append(s.position)

    def _follow(self) -> None:
        s = self.state
        if not s.follow_camera or s.position is None or self.viewport is None:
            return
        try:
            self.viewport.fly_to(s.position, duration_ms=FOLLOW_DURATION_MS)
        except Exception as e:
            logger.warning(f"Camera follow failed: {e}")

    def _age_shots(self, now: float) -> List[Explosion]:
        s = self.state
        spawned = []

        remaining = []
        for shot in s.projectiles:
            if shot.expired(now):
                spawned.append(Explosion(shot.id, shot.end, now, shot.weapon))
            else:
                remaining.append(shot)
        s.projectiles = remaining

        remaining = []
        for beam in s.lasers:
            if beam.expired(now):
                if beam.weapon != WeaponType.PULSE:
                    spawned.append(Explosion(beam.id, beam.end, now, beam.weapon))
            else:
                remaining.append(beam)
        s.lasers = remaining

        for blast in spawned:
            logger.debug(f"Explosion {blast.id} ({blast.weapon.value}) at {blast.location}")
        s.explosions.extend(spawned)
        return spawned

    def _track_patrol(self) -> None:
        p = self.state.patrol
        pos = self.state.position
        if not p.waypoints or pos is None:
            return
        if distance_deg(pos, p.waypoints[p.current_index]) < WAYPOINT_EPSILON:
            p.current_index = (p.current_index + 1) % len(p.waypoints)

    # ─────────────────────────────────────────────────────────────
    # Rendering Snapshot
    # ─────────────────────────────────────────────────────────────

    def snapshot(self, now_ms: Optional[float] = None) -> Dict[str, Any]:
        """Plain-data view of the whole state for the presentation layer."""
        now = self.clock() if now_ms is None else now_ms
        s = self.state

        def pt(p):
            return {'lng': p.lng, 'lat': p.lat} if p is not None else None

        return {
            'active': s.active,
            'position': pt(s.position),
            'target': pt(s.target),
            'base': pt(s.base),
            'trail': [pt(p) for p in s.trail],
            'trail_max': s.trail_max,
            'speed_mps': s.speed_mps,
            'follow_camera': s.follow_camera,
            'altitude_m': s.altitude_m,
            'weapon': {
                'type': s.weapon.type.value,
                'charge_power': s.weapon.charge_power,
                'charging': s.weapon.charging,
            },
            'patrol': {
                'mode': s.patrol.mode.value,
                'waypoints': [pt(p) for p in s.patrol.waypoints],
                'current_index': s.patrol.current_index,
            },
            'projectiles': [
                {'id': p.id, 'position': pt(p.position_at(now)), 'end': pt(p.end),
                 'weapon': p.weapon.value}
                for p in s.projectiles
            ],
            'lasers': [
                {'id': b.id, 'start': pt(b.start), 'end': pt(b.end),
                 'weapon': b.weapon.value, 'power': b.power}
                for b in s.lasers
            ],
            'explosions': [
                {'id': e.id, 'location': pt(e.location), 'weapon': e.weapon.value,
                 'radius': e.radius(now), 'opacity': e.opacity(now)}
                for e in s.explosions
            ],
        }
