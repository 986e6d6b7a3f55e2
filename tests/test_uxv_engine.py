import random
import unittest

from registry import GeoPoint
from uxv_engine import (
    UXVEngine, WeaponType, PatrolMode, generate_patrol,
    ARRIVAL_EPSILON, PAYLOAD_DURATION_MS, WEAPON_DURATIONS_MS,
)


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


class RecordingViewport:
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    def fly_to(self, center, zoom=None, duration_ms=None):
        if self.fail:
            raise RuntimeError("map not loaded")
        self.calls.append(center)


def run(engine, clock, ms, step=100):
    """Advance the fake clock in fixed steps, ticking each time."""
    end = clock.now + ms
    while clock.now < end:
        clock.now += step
        engine.update()


class TestClamps(unittest.TestCase):
    def setUp(self):
        self.e = UXVEngine(clock=FakeClock())

    def test_speed(self):
        self.assertEqual(self.e.set_speed(999999), 10000)
        self.assertEqual(self.e.set_speed(1), 50)
        self.assertEqual(self.e.set_speed(750), 750)

    def test_altitude(self):
        self.assertEqual(self.e.set_altitude(1), 100)
        self.assertEqual(self.e.set_altitude(1e9), 5000)

    def test_trail_length(self):
        self.assertEqual(self.e.set_trail_max(3), 10)
        self.assertEqual(self.e.set_trail_max(5000), 200)

    def test_charge(self):
        self.assertEqual(self.e.set_charge(7), 2.0)
        self.assertEqual(self.e.set_charge(-1), 0.0)

    def test_shot_power(self):
        self.e.start(GeoPoint(0, 0))
        self.assertEqual(self.e.fire_laser(GeoPoint(1, 1), 0).power, 0.1)
        self.assertEqual(self.e.fire_laser(GeoPoint(1, 1), 50).power, 2.0)


class TestMovement(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.e = UXVEngine(clock=self.clock)
        self.e.start(GeoPoint(0.0, 0.0))

    def test_start_sets_base_and_seeds_trail(self):
        s = self.e.state
        self.assertTrue(s.active)
        self.assertEqual(s.base, GeoPoint(0.0, 0.0))
        self.assertEqual(list(s.trail), [GeoPoint(0.0, 0.0)])

    def test_holding_without_target(self):
        run(self.e, self.clock, 1000)
        self.assertEqual(self.e.state.position, GeoPoint(0.0, 0.0))

    def test_flat_earth_step(self):
        self.e.set_speed(1110)
        self.e.set_target(GeoPoint(1.0, 0.0))
        self.e.update(0)
        self.e.update(1000)
        # 1110 m/s for 1 s = 0.01 degrees
        self.assertAlmostEqual(self.e.state.position.lng, 0.01)
        self.assertAlmostEqual(self.e.state.position.lat, 0.0)

    def test_no_overshoot(self):
        self.e.set_speed(10000)
        self.e.set_target(GeoPoint(0.001, 0.0))
        self.e.update(0)
        self.e.update(10000)
        self.assertEqual(self.e.state.position, GeoPoint(0.001, 0.0))
        self.assertIsNone(self.e.state.target)

    def test_arrival_snap(self):
        near = GeoPoint(ARRIVAL_EPSILON / 2, 0.0)
        self.e.set_target(near)
        self.e.update(0)
        self.assertEqual(self.e.state.position, near)
        self.assertIsNone(self.e.state.target)
        self.e.update(500)
        self.assertEqual(self.e.state.position, near)

    def test_inactive_does_not_move(self):
        self.e.set_target(GeoPoint(1.0, 1.0))
        self.e.stop()
        run(self.e, self.clock, 5000)
        self.assertEqual(self.e.state.position, GeoPoint(0.0, 0.0))
        self.assertIsNone(self.e.state.target)

    def test_return_to_base(self):
        self.e.state.position = GeoPoint(5.0, 5.0)
        self.e.return_to_base()
        self.assertEqual(self.e.state.target, GeoPoint(0.0, 0.0))

    def test_return_without_base_is_noop(self):
        e = UXVEngine(clock=FakeClock())
        e.return_to_base()
        self.assertIsNone(e.state.target)

    def test_converges(self):
        self.e.set_speed(1000)
        self.e.set_target(GeoPoint(10.0, 10.0))
        run(self.e, self.clock, 2000 * 1000, step=10000)
        pos = self.e.state.position
        self.assertLess(abs(pos.lng - 10.0), ARRIVAL_EPSILON)
        self.assertLess(abs(pos.lat - 10.0), ARRIVAL_EPSILON)
        self.assertIsNone(self.e.state.target)


class TestTrail(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.e = UXVEngine(clock=self.clock, trail_max=10)
        self.e.start(GeoPoint(0.0, 0.0))
        self.e.set_speed(10000)

    def test_bounded_fifo(self):
        self.e.set_target(GeoPoint(50.0, 0.0))
        samples = []
        for _ in range(100):
            self.clock.now += 150
            self.e.update()
            self.assertLessEqual(len(self.e.state.trail), 10)
            samples.append(self.e.state.position)
        trail = list(self.e.state.trail)
        self.assertEqual(len(trail), 10)
        # Oldest evicted first: what remains is the most recent samples, in order
        self.assertEqual(trail, samples[-10:])

    def test_rate_limited(self):
        self.e.set_target(GeoPoint(50.0, 0.0))
        self.e.update(0)
        for t in range(10, 120, 10):
            self.e.update(t)
        self.assertEqual(len(self.e.state.trail), 1)
        self.e.update(120)
        self.assertEqual(len(self.e.state.trail), 2)

    def test_stationary_not_sampled(self):
        run(self.e, self.clock, 3000)
        self.assertEqual(len(self.e.state.trail), 1)

    def test_shrinking_keeps_newest(self):
        self.e.set_trail_max(50)
        self.e.set_target(GeoPoint(50.0, 0.0))
        run(self.e, self.clock, 30 * 150, step=150)
        newest = list(self.e.state.trail)[-10:]
        self.e.set_trail_max(10)
        self.assertEqual(list(self.e.state.trail), newest)


class TestFollow(unittest.TestCase):
    def test_follow_recenters(self):
        vp = RecordingViewport()
        e = UXVEngine(viewport=vp, clock=FakeClock())
        e.start(GeoPoint(1.0, 2.0))
        e.update(0)
        self.assertEqual(vp.calls, [])
        e.set_follow(True)
        e.update(16)
        self.assertEqual(vp.calls, [GeoPoint(1.0, 2.0)])

    def test_follow_failure_is_swallowed(self):
        e = UXVEngine(viewport=RecordingViewport(fail=True), clock=FakeClock())
        e.start(GeoPoint(1.0, 2.0))
        e.set_follow(True)
        with self.assertLogs("mcc.uxv", level="WARNING"):
            e.update(16)


class TestWeapons(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock(1000.0)
        self.e = UXVEngine(clock=self.clock)
        self.e.start(GeoPoint(0.0, 0.0))

    def test_projectile_lifecycle(self):
        self.e.set_target(GeoPoint(0.5, 0.5))
        shot = self.e.drop_payload()
        self.assertEqual(shot.duration_ms, PAYLOAD_DURATION_MS)
        self.e.stop()

        self.assertEqual(self.e.update(1000 + PAYLOAD_DURATION_MS - 1), [])
        self.assertEqual(len(self.e.state.projectiles), 1)

        spawned = self.e.update(1000 + PAYLOAD_DURATION_MS)
        self.assertEqual([x.id for x in spawned], [shot.id])
        self.assertEqual(spawned[0].location, GeoPoint(0.5, 0.5))
        self.assertEqual(self.e.state.projectiles, [])

        self.assertEqual(self.e.update(1000 + PAYLOAD_DURATION_MS + 10), [])
        self.assertEqual([x.id for x in self.e.state.explosions], [shot.id])

    def test_drop_without_target_falls_straight_down(self):
        shot = self.e.drop_payload()
        self.assertEqual(shot.end, GeoPoint(0.0, 0.0))

    def test_drop_without_position_is_noop(self):
        e = UXVEngine(clock=FakeClock())
        self.assertIsNone(e.drop_payload())
        self.assertEqual(e.state.projectiles, [])

    def test_explosion_max_age(self):
        self.e.drop_payload()
        self.e.update(1000 + PAYLOAD_DURATION_MS)
        self.e.update(1000 + PAYLOAD_DURATION_MS + 1000)
        self.assertEqual(len(self.e.state.explosions), 1)
        self.e.update(1000 + PAYLOAD_DURATION_MS + 1001)
        self.assertEqual(self.e.state.explosions, [])

    def test_orbital_blast_lasts_longer(self):
        self.e.set_weapon(WeaponType.ORBITAL)
        beam = self.e.fire_laser(GeoPoint(1, 1), 1.0)
        self.assertEqual(beam.duration_ms, WEAPON_DURATIONS_MS[WeaponType.ORBITAL])
        t = 1000 + beam.duration_ms
        self.assertEqual(len(self.e.update(t)), 1)
        self.e.update(t + 1500)
        self.assertEqual(len(self.e.state.explosions), 1)
        self.e.update(t + 2001)
        self.assertEqual(self.e.state.explosions, [])

    def test_pulse_leaves_no_blast(self):
        self.e.set_weapon("pulse")
        beam = self.e.fire_laser(GeoPoint(1, 1), 1.0)
        self.assertEqual(self.e.update(1000 + beam.duration_ms), [])
        self.assertEqual(self.e.state.lasers, [])

    def test_durations_ordered(self):
        d = WEAPON_DURATIONS_MS
        self.assertLess(d[WeaponType.PULSE], d[WeaponType.LASER])
        self.assertLess(d[WeaponType.PROJECTILE], d[WeaponType.ORBITAL])

    def test_charging_is_frame_driven(self):
        self.e.set_weapon(WeaponType.LASER)
        self.e.start_charging()
        self.assertEqual(self.e.state.weapon.charge_power, 0.0)
        self.e.update(1000)
        self.e.update(2000)
        self.assertAlmostEqual(self.e.state.weapon.charge_power, 0.5)
        self.e.update(20000)
        self.assertEqual(self.e.state.weapon.charge_power, 2.0)
        self.e.stop_charging()
        self.e.update(30000)
        self.assertEqual(self.e.state.weapon.charge_power, 2.0)

    def test_weapon_change_resets_charge(self):
        self.e.set_charge(1.5)
        self.e.set_weapon(WeaponType.PROJECTILE)
        self.assertEqual(self.e.state.weapon.charge_power, 1.5)
        self.e.set_weapon(WeaponType.LASER)
        self.assertEqual(self.e.state.weapon.charge_power, 0.0)

    def test_beam_drop_discharges(self):
        self.e.set_weapon(WeaponType.LASER)
        self.e.set_charge(1.2)
        beam = self.e.drop_payload()
        self.assertAlmostEqual(beam.power, 1.2)
        self.assertEqual(self.e.state.weapon.charge_power, 0.0)
        self.assertIn(beam, self.e.state.lasers)


class TestPatrol(unittest.TestCase):
    def test_counts(self):
        c = GeoPoint(10.0, 20.0)
        rng = random.Random(7)
        self.assertEqual(len(generate_patrol(PatrolMode.CIRCLE, c)), 16)
        self.assertEqual(len(generate_patrol(PatrolMode.FIGURE8, c)), 32)
        self.assertEqual(len(generate_patrol(PatrolMode.RANDOM, c, rng)), 12)
        self.assertEqual(len(generate_patrol(PatrolMode.ZIGZAG, c)), 20)
        self.assertEqual(generate_patrol(PatrolMode.NONE, c), [])

    def test_circle_is_centered(self):
        pts = generate_patrol("circle", GeoPoint(10.0, 20.0))
        self.assertAlmostEqual(sum(p.lng for p in pts) / len(pts), 10.0)
        self.assertAlmostEqual(sum(p.lat for p in pts) / len(pts), 20.0)

    def test_zigzag_alternates(self):
        pts = generate_patrol("zigzag", GeoPoint(0.0, 0.0))
        self.assertTrue(all(b.lng > a.lng for a, b in zip(pts, pts[1:])))
        self.assertTrue(all((a.lat > 0) != (b.lat > 0) for a, b in zip(pts, pts[1:])))

    def test_random_is_global(self):
        pts = generate_patrol("random", None, random.Random(1))
        self.assertTrue(all(-180 <= p.lng <= 180 and -85 <= p.lat <= 85 for p in pts))

    def test_pure_given_seed(self):
        a = generate_patrol("random", None, random.Random(42))
        b = generate_patrol("random", None, random.Random(42))
        self.assertEqual(a, b)

    def test_patrol_does_not_steer(self):
        clock = FakeClock()
        e = UXVEngine(clock=clock)
        e.start(GeoPoint(0.0, 0.0))
        waypoints = e.set_patrol_mode("circle")
        self.assertEqual(len(waypoints), 16)
        run(e, clock, 5000)
        self.assertEqual(e.state.position, GeoPoint(0.0, 0.0))
        self.assertIsNone(e.state.target)

    def test_index_advances_at_waypoint(self):
        e = UXVEngine(clock=FakeClock())
        e.start(GeoPoint(0.0, 0.0))
        e.set_patrol_mode("zigzag")
        first = e.state.patrol.waypoints[0]
        e.set_target(first)
        e.set_speed(10000)
        e.update(0)
        e.update(60000)
        self.assertEqual(e.state.patrol.current_index, 1)


class TestSnapshot(unittest.TestCase):
    def test_snapshot_is_plain_data(self):
        clock = FakeClock()
        e = UXVEngine(clock=clock)
        e.start(GeoPoint(1.0, 2.0))
        e.set_target(GeoPoint(3.0, 4.0))
        e.drop_payload()
        snap = e.snapshot(1000)
        self.assertEqual(snap['position'], {'lng': 1.0, 'lat': 2.0})
        self.assertEqual(snap['weapon']['type'], 'projectile')
        self.assertEqual(snap['patrol']['mode'], 'none')
        self.assertAlmostEqual(snap['projectiles'][0]['position']['lng'], 2.0)
        self.assertEqual(snap['trail_max'], 50)


if __name__ == "__main__":
    unittest.main()
