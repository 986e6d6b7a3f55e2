import unittest

from actions import (
    FlyTo, Zoom, StartUXV, StopUXV, UxvGoto, UxvSpeed, UxvDrop, UxvReturn, UxvFollow,
    UxvWeapon, UxvCharge, UxvFire, UxvPatrol, UxvAltitude, UxvTrail,
    PlaySound, UnlockAchievement, TriggerAlert, ACTION_TYPES,
)
from dispatcher import ActionDispatcher
from registry import GeoPoint
from uxv_engine import UXVEngine, WeaponType, PatrolMode
from viewport import MapViewport, SoundBoard, AchievementBoard, AlertBeacon


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


class TestDispatcher(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.viewport = MapViewport(center=GeoPoint(5.0, 6.0), zoom=3)
        self.engine = UXVEngine(self.viewport, clock=self.clock)
        self.audio = SoundBoard()
        self.achievements = AchievementBoard()
        self.alert = AlertBeacon(self.clock)
        self.d = ActionDispatcher(self.viewport, self.engine, audio=self.audio,
                                  achievements=self.achievements, alert=self.alert)

    def test_every_action_type_has_a_handler(self):
        self.assertEqual(set(self.d._handlers), set(ACTION_TYPES))

    def test_unknown_action_is_a_programming_error(self):
        with self.assertRaises(TypeError):
            self.d.apply("uxv_stop")

    def test_camera(self):
        self.d.apply(FlyTo(GeoPoint(1.0, 2.0), zoom=10, duration_ms=1200))
        self.assertEqual(self.viewport.center, GeoPoint(1.0, 2.0))
        self.assertEqual(self.viewport.zoom, 10)
        self.d.apply(Zoom(4.5, duration_ms=500))
        self.assertEqual(self.viewport.zoom, 4.5)
        self.assertEqual(self.viewport.last_duration_ms, 500)

    def test_start_defaults_to_camera_center(self):
        self.d.apply(StartUXV())
        s = self.engine.state
        self.assertTrue(s.active)
        self.assertEqual(s.position, GeoPoint(5.0, 6.0))
        self.assertEqual(s.base, GeoPoint(5.0, 6.0))
        self.assertEqual(list(s.trail), [GeoPoint(5.0, 6.0)])

    def test_start_at_position(self):
        self.d.apply(StartUXV(GeoPoint(0.0, 0.0)))
        self.assertEqual(self.engine.state.position, GeoPoint(0.0, 0.0))

    def test_stop_leaves_shots_in_flight(self):
        self.d.apply_all([StartUXV(GeoPoint(0.0, 0.0)), UxvGoto(GeoPoint(1.0, 1.0)), UxvDrop()])
        self.d.apply(StopUXV())
        s = self.engine.state
        self.assertFalse(s.active)
        self.assertIsNone(s.target)
        self.assertEqual(len(s.projectiles), 1)

    def test_speed_is_clamped(self):
        self.d.apply(UxvSpeed(999999))
        self.assertEqual(self.engine.state.speed_mps, 10000)
        self.d.apply(UxvSpeed(1))
        self.assertEqual(self.engine.state.speed_mps, 50)

    def test_return(self):
        self.d.apply(UxvReturn())
        self.assertIsNone(self.engine.state.target)
        self.d.apply(StartUXV(GeoPoint(2.0, 2.0)))
        self.d.apply(UxvReturn())
        self.assertEqual(self.engine.state.target, GeoPoint(2.0, 2.0))

    def test_follow(self):
        self.d.apply(UxvFollow(True))
        self.assertTrue(self.engine.state.follow_camera)

    def test_weapon_controls(self):
        self.d.apply(StartUXV(GeoPoint(0.0, 0.0)))
        self.d.apply(UxvWeapon("orbital"))
        self.assertEqual(self.engine.state.weapon.type, WeaponType.ORBITAL)
        self.d.apply(UxvCharge(True))
        self.assertTrue(self.engine.state.weapon.charging)
        self.d.apply(UxvFire(GeoPoint(1.0, 1.0)))
        self.assertEqual(len(self.engine.state.lasers), 1)
        self.assertFalse(self.engine.state.weapon.charging)

    def test_fire_with_projectile_weapon_lobs_a_payload(self):
        self.d.apply(StartUXV(GeoPoint(0.0, 0.0)))
        self.d.apply(UxvFire(GeoPoint(1.0, 1.0)))
        s = self.engine.state
        self.assertEqual(len(s.projectiles), 1)
        self.assertEqual(s.lasers, [])
        self.assertEqual(s.projectiles[0].end, GeoPoint(1.0, 1.0))

    def test_patrol_altitude_trail(self):
        self.d.apply(StartUXV(GeoPoint(0.0, 0.0)))
        self.d.apply(UxvPatrol("figure8"))
        self.assertEqual(self.engine.state.patrol.mode, PatrolMode.FIGURE8)
        self.assertEqual(len(self.engine.state.patrol.waypoints), 32)
        self.d.apply(UxvAltitude(9000))
        self.assertEqual(self.engine.state.altitude_m, 5000)
        self.d.apply(UxvTrail(120))
        self.assertEqual(self.engine.state.trail_max, 120)

    def test_cosmetic_sinks_leave_vehicle_alone(self):
        self.d.apply_all([PlaySound("scan"), UnlockAchievement("map_scan"), TriggerAlert(6000)])
        self.assertEqual(list(self.audio.played), ["scan"])
        self.assertEqual(self.achievements.unlocked, ["map_scan"])
        self.assertTrue(self.alert.active)
        self.assertFalse(self.engine.state.active)

    def test_sinks_are_optional(self):
        d = ActionDispatcher(self.viewport, self.engine)
        d.apply_all([PlaySound("x"), UnlockAchievement("y"), TriggerAlert()])


if __name__ == "__main__":
    unittest.main()
