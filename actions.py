"""
MCC Actions
===========
The closed set of effects a terminal command may request.

Commands never touch the map or the vehicle directly; they return these
immutable values and the dispatcher applies them, once each, in order.
"""

from typing import Optional
from dataclasses import dataclass

from registry import GeoPoint


# Camera

@dataclass(frozen=True)
class FlyTo:
    center: GeoPoint
    zoom: Optional[float] = None
    duration_ms: Optional[int] = None


@dataclass(frozen=True)
class Zoom:
    zoom: float
    duration_ms: Optional[int] = None


# Vehicle

@dataclass(frozen=True)
class StartUXV:
    position: Optional[GeoPoint] = None


@dataclass(frozen=True)
class StopUXV:
    pass


@dataclass(frozen=True)
class UxvGoto:
    target: GeoPoint


@dataclass(frozen=True)
class UxvSpeed:
    meters_per_second: float


@dataclass(frozen=True)
class UxvDrop:
    pass


@dataclass(frozen=True)
class UxvReturn:
    pass


@dataclass(frozen=True)
class UxvFollow:
    enabled: bool


@dataclass(frozen=True)
class UxvWeapon:
    weapon: str


@dataclass(frozen=True)
class UxvCharge:
    enabled: bool


@dataclass(frozen=True)
class UxvFire:
    target: GeoPoint


@dataclass(frozen=True)
class UxvPatrol:
    mode: str


@dataclass(frozen=True)
class UxvAltitude:
    meters: float


@dataclass(frozen=True)
class UxvTrail:
    max_length: int


# Cosmetic sinks

@dataclass(frozen=True)
class PlaySound:
    id: str


@dataclass(frozen=True)
class UnlockAchievement:
    id: str


@dataclass(frozen=True)
class TriggerAlert:
    duration_ms: Optional[int] = None


ACTION_TYPES = (
    FlyTo, Zoom,
    StartUXV, StopUXV, UxvGoto, UxvSpeed, UxvDrop, UxvReturn, UxvFollow,
    UxvWeapon, UxvCharge, UxvFire, UxvPatrol, UxvAltitude, UxvTrail,
    PlaySound, UnlockAchievement, TriggerAlert,
)
