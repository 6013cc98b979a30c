import math
import unittest
from pathlib import Path

import numpy as np

from common.math import GRAVITY, Quaternion, Vector3D
from common.types import StateEstimate
from quadcontrol.control import (
    AltitudeController,
    BodyRateController,
    LateralPositionController,
    QuadControl,
    QuadMixer,
    RollPitchController,
    YawController,
)
from quadcontrol.params import ControlParams, GainSet, Limits, PhysicalParameters
from quadcontrol.paramstore import SimParamStore
from quadcontrol.trajectory import Trajectory

CONFIG = Path(__file__).resolve().parent.parent / "config" / "quad_control.yaml"

PHYSICAL = PhysicalParameters(
    mass=0.5, arm_length=0.17, ixx=0.0023, iyy=0.0023, izz=0.0046,
    kappa=0.016, min_motor_thrust=0.1, max_motor_thrust=4.5,
)
GAINS = GainSet(
    kp_pos_xy=2.5, kp_pos_z=4.0, ki_pos_z=20.0, kp_vel_xy=10.0, kp_vel_z=10.0,
    kp_bank=10.0, kp_yaw=2.0, kp_pqr=(70.0, 70.0, 10.0),
)
LIMITS = Limits(max_ascent_rate=5.0, max_descent_rate=2.0, max_speed_xy=5.0, max_accel_xy=12.0, max_tilt_angle=0.7)
LEVEL = Quaternion()


def hover_state(position=Vector3D(0, 0, -1), orientation=None):
    return StateEstimate(
        position=position,
        velocity=Vector3D(),
        orientation=orientation or Quaternion(),
        angular_velocity=Vector3D(),
    )


class TestMixer(unittest.TestCase):
    def setUp(self):
        self.mixer = QuadMixer(PHYSICAL)

    def test_pure_thrust_splits_evenly(self):
        np.testing.assert_allclose(self.mixer.allocate(2.0, Vector3D()), [0.5] * 4, atol=1e-12)
        cmd = self.mixer.mix(2.0, Vector3D())
        np.testing.assert_allclose(cmd.as_tuple(), [0.5] * 4, atol=1e-12)

    def test_moment_signs(self):
        # positive roll moment: left motors push harder
        fl, fr, rl, rr = self.mixer.allocate(2.0, Vector3D(0.01, 0, 0))
        self.assertGreater(fl, fr)
        self.assertGreater(rl, rr)
        # positive pitch moment: front motors push harder
        fl, fr, rl, rr = self.mixer.allocate(2.0, Vector3D(0, 0.01, 0))
        self.assertGreater(fl, rl)
        self.assertGreater(fr, rr)
        # positive yaw moment: FR/RL pair spins up
        fl, fr, rl, rr = self.mixer.allocate(2.0, Vector3D(0, 0, 0.001))
        self.assertGreater(fr, fl)
        self.assertAlmostEqual(fr, rl)
        self.assertAlmostEqual(fl, rr)

    def test_allocation_reproduces_wrench(self):
        moment = Vector3D(0.02, -0.01, 0.003)
        thrusts = self.mixer.allocate(5.0, moment)
        np.testing.assert_allclose(self.mixer.wrench(thrusts), [5.0, 0.02, -0.01, 0.003], atol=1e-12)

    def test_matches_closed_form(self):
        l = PHYSICAL.arm_length / math.sqrt(2)
        mx, my, mz, t = 0.03, -0.02, 0.004, 6.0
        t1, t2, t3 = mx / l, my / l, -mz / PHYSICAL.kappa
        expected = [
            (t1 + t2 + t3 + t) / 4,
            (-t1 + t2 - t3 + t) / 4,
            (t1 - t2 - t3 + t) / 4,
            (-t1 - t2 + t3 + t) / 4,
        ]
        np.testing.assert_allclose(self.mixer.allocate(t, Vector3D(mx, my, mz)), expected, atol=1e-12)

    def test_saturation_is_per_motor(self):
        cmd = self.mixer.mix(10.0, Vector3D(2.0, 0, 0))
        self.assertEqual(cmd.front_left, 4.5)
        self.assertEqual(cmd.front_right, 0.1)
        # no redistribution: the unsaturated solution is simply clipped
        np.testing.assert_allclose(
            cmd.as_tuple(), np.clip(self.mixer.allocate(10.0, Vector3D(2.0, 0, 0)), 0.1, 4.5)
        )

    def test_outputs_always_within_band(self):
        rng = np.random.default_rng(0)
        for _ in range(200):
            thrust = rng.uniform(-5, 30)
            moment = Vector3D(*rng.uniform(-2, 2, size=3))
            for value in self.mixer.mix(thrust, moment):
                self.assertGreaterEqual(value, 0.1)
                self.assertLessEqual(value, 4.5)


class TestBodyRateController(unittest.TestCase):
    def test_inertia_scaled_moment(self):
        ctrl = BodyRateController(PHYSICAL, GAINS)
        moment = ctrl.update(Vector3D(1, 2, 3), Vector3D())
        np.testing.assert_allclose(moment.v, [0.0023 * 70, 0.0023 * 70 * 2, 0.0046 * 10 * 3])

    def test_zero_error_gives_zero_moment(self):
        ctrl = BodyRateController(PHYSICAL, GAINS)
        moment = ctrl.update(Vector3D(0.3, -0.2, 0.1), Vector3D(0.3, -0.2, 0.1))
        self.assertEqual(moment, Vector3D())


class TestYawController(unittest.TestCase):
    def test_takes_short_way_round(self):
        ctrl = YawController(GAINS)
        self.assertAlmostEqual(ctrl.update(3.0, -3.0), 2.0 * (6.0 - 2 * math.pi))
        self.assertAlmostEqual(ctrl.update(-3.0, 3.0), 2.0 * (2 * math.pi - 6.0))
        self.assertAlmostEqual(ctrl.update(0.5, 0.2), 2.0 * 0.3)

    def test_command_reduced_modulo_two_pi(self):
        ctrl = YawController(GAINS)
        self.assertAlmostEqual(ctrl.update(0.1 + 4 * math.pi, 0.0), 0.2)
        self.assertAlmostEqual(ctrl.update(-0.1 - 4 * math.pi, 0.0), -0.2)

    def test_error_is_wrapped_representative(self):
        ctrl = YawController(GainSet(kp_yaw=1.0))
        rng = np.random.default_rng(1)
        for _ in range(500):
            yaw_cmd = rng.uniform(-20, 20)
            yaw = rng.uniform(-math.pi, math.pi)
            err = ctrl.update(yaw_cmd, yaw)
            self.assertLessEqual(abs(err), math.pi + 1e-12)
            turns = (err - (yaw_cmd - yaw)) / (2 * math.pi)
            self.assertAlmostEqual(turns, round(turns), places=9)


class TestRollPitchController(unittest.TestCase):
    def setUp(self):
        self.ctrl = RollPitchController(PHYSICAL, GAINS, LIMITS)

    def test_no_thrust_no_rates(self):
        for thrust in (0.0, -1.0):
            rates = self.ctrl.update(Vector3D(5, -3, 0), Quaternion.from_euler(0.2, 0.1, 0.3), thrust)
            self.assertEqual(rates, Vector3D())

    def test_level_and_zero_accel_is_fixed_point(self):
        rates = self.ctrl.update(Vector3D(), LEVEL, PHYSICAL.mass * GRAVITY)
        self.assertEqual(rates, Vector3D())

    def test_tilt_target_is_capped(self):
        cap = 10.0 * math.sin(0.7)
        rates = self.ctrl.update(Vector3D(100, 0, 0), LEVEL, PHYSICAL.mass * GRAVITY)
        self.assertAlmostEqual(rates.x, 0.0)
        self.assertAlmostEqual(rates.y, -cap)
        self.assertEqual(rates.z, 0.0)
        rates = self.ctrl.update(Vector3D(0, 100, 0), LEVEL, PHYSICAL.mass * GRAVITY)
        self.assertAlmostEqual(rates.x, cap)
        self.assertAlmostEqual(rates.y, 0.0)

    def test_levels_out_a_tilted_vehicle(self):
        rates = self.ctrl.update(Vector3D(), Quaternion.from_euler(0.2, 0.0, 0.0), PHYSICAL.mass * GRAVITY)
        self.assertLess(rates.x, 0.0)
        self.assertAlmostEqual(rates.y, 0.0)

    def test_near_vertical_tilt_stays_finite(self):
        rates = self.ctrl.update(Vector3D(1, 1, 0), Quaternion.from_euler(math.pi / 2, 0, 0), 4.0)
        self.assertTrue(np.all(np.isfinite(rates.v)))


class TestAltitudeController(unittest.TestCase):
    def setUp(self):
        self.ctrl = AltitudeController(PHYSICAL, GAINS, LIMITS)

    def test_hover_thrust_is_weight(self):
        thrust = self.ctrl.update(-1.0, 0.0, -1.0, 0.0, LEVEL, 0.0, 0.002)
        self.assertAlmostEqual(thrust, PHYSICAL.mass * GRAVITY)
        self.assertEqual(self.ctrl.integrated_altitude_error, 0.0)

    def test_tilt_compensation(self):
        attitude = Quaternion.from_euler(0.3, 0.0, 0.0)
        thrust = self.ctrl.update(-1.0, 0.0, -1.0, 0.0, attitude, 0.0, 0.002)
        self.assertAlmostEqual(thrust, PHYSICAL.mass * GRAVITY / math.cos(0.3))

    def test_integrator_accumulates_without_reset(self):
        # 0.5 m below the target (NED)
        first = self.ctrl.update(-1.0, 0.0, -0.5, 0.0, LEVEL, 0.0, 0.01)
        self.assertAlmostEqual(self.ctrl.integrated_altitude_error, -0.005)
        self.assertAlmostEqual(first, -0.5 * (4.0 * -0.5 + 20.0 * -0.005 - GRAVITY))
        self.assertGreater(first, PHYSICAL.mass * GRAVITY)
        self.ctrl.update(-1.0, 0.0, -0.5, 0.0, LEVEL, 0.0, 0.01)
        self.assertAlmostEqual(self.ctrl.integrated_altitude_error, -0.01)
        self.ctrl.reset()
        self.assertEqual(self.ctrl.integrated_altitude_error, 0.0)

    def test_raw_vertical_velocity_term(self):
        thrust = self.ctrl.update(-1.0, 1.0, -1.0, 1.0, LEVEL, 0.0, 0.002)
        self.assertAlmostEqual(thrust, -0.5 * (1.0 - GRAVITY))

    def test_acceleration_clamped_by_ascent_rate(self):
        thrust = self.ctrl.update(-1.0, 0.0, -1.0, 0.0, LEVEL, 0.0, 1.0)
        self.assertAlmostEqual(thrust, 0.5 * 5.0)

    def test_near_vertical_tilt_stays_finite(self):
        thrust = self.ctrl.update(-1.0, 0.0, -1.0, 0.0, Quaternion.from_euler(math.pi / 2, 0, 0), 0.0, 0.002)
        self.assertTrue(math.isfinite(thrust))

    def test_zero_dt_skips_clamp_and_integration(self):
        # 0.5 m below the target, no time elapsed
        thrust = self.ctrl.update(-1.0, 0.0, -0.5, 0.0, LEVEL, 0.0, 0.0)
        self.assertTrue(math.isfinite(thrust))
        self.assertAlmostEqual(thrust, -0.5 * (4.0 * -0.5 - GRAVITY))
        self.assertEqual(self.ctrl.integrated_altitude_error, 0.0)


class TestLateralPositionController(unittest.TestCase):
    def test_ignores_vertical_inputs(self):
        ctrl = LateralPositionController(GAINS, LIMITS)
        accel = ctrl.update(Vector3D(0, 0, -10), Vector3D(0, 0, 3), Vector3D(), Vector3D(0, 0, 1), Vector3D(0, 0, 9))
        self.assertEqual(accel, Vector3D())

    def test_velocity_command_capped_along_direction(self):
        ctrl = LateralPositionController(GainSet(kp_vel_xy=1.0), Limits(max_speed_xy=5.0, max_accel_xy=100.0))
        accel = ctrl.update(Vector3D(), Vector3D(30, 40, 7), Vector3D(), Vector3D(), Vector3D())
        np.testing.assert_allclose(accel.v, [3.0, 4.0, 0.0])
        self.assertAlmostEqual(accel.mag(), 5.0)

    def test_acceleration_capped_along_direction(self):
        ctrl = LateralPositionController(GainSet(kp_pos_xy=1.0), Limits(max_speed_xy=5.0, max_accel_xy=12.0))
        accel = ctrl.update(Vector3D(60, 80, 0), Vector3D(), Vector3D(), Vector3D(), Vector3D())
        np.testing.assert_allclose(accel.v, [7.2, 9.6, 0.0])

    def test_pd_with_feedforward_below_caps(self):
        ctrl = LateralPositionController(GAINS, LIMITS)
        accel = ctrl.update(Vector3D(1.0, 0, 0), Vector3D(0, 0.1, 0), Vector3D(0.8, 0, 0), Vector3D(0, 0.2, 0),
                            Vector3D(0.1, 0.2, 0))
        np.testing.assert_allclose(accel.v, [2.5 * 0.2 + 0.1, 10.0 * -0.1 + 0.2, 0.0])


class TestQuadControl(unittest.TestCase):
    def make(self, trajectory=None, **overrides):
        params = ControlParams(physical=PHYSICAL, gains=GAINS, limits=LIMITS, **overrides)
        return QuadControl(params, trajectory or Trajectory.hover(Vector3D(0, 0, -1)))

    def test_hover_splits_weight_across_motors(self):
        ctrl = self.make()
        ctrl.update_estimates(hover_state())
        cmd = ctrl.run_control(0.002, 0.0)
        np.testing.assert_allclose(cmd.as_tuple(), [PHYSICAL.mass * GRAVITY / 4] * 4, atol=1e-9)
        self.assertEqual(ctrl.intermediate.moment_cmd, Vector3D())
        self.assertEqual(ctrl.intermediate.body_rate_cmd, Vector3D())
        self.assertEqual(ctrl.integrated_altitude_error, 0.0)

    def test_repeated_ticks_are_identical(self):
        ctrl = self.make()
        state = hover_state(position=Vector3D(0.3, -0.2, -1), orientation=Quaternion.from_euler(0.05, -0.02, 0.1))
        ctrl.update_estimates(state)
        first = ctrl.run_control(0.002, 0.0)
        second = ctrl.run_control(0.002, 0.0)
        self.assertEqual(first, second)

    def test_trajectory_offset_shifts_setpoint(self):
        ctrl = self.make(Trajectory.hover(Vector3D()), trajectory_offset=(0.0, 0.0, -1.0))
        ctrl.update_estimates(hover_state())
        cmd = ctrl.run_control(0.002, 0.0)
        np.testing.assert_allclose(cmd.as_tuple(), [PHYSICAL.mass * GRAVITY / 4] * 4, atol=1e-9)

    def test_yaw_rate_comes_from_heading_error(self):
        ctrl = self.make(Trajectory.hover(Vector3D(0, 0, -1), yaw=math.pi / 2))
        ctrl.update_estimates(hover_state())
        cmd = ctrl.run_control(0.002, 0.0)
        self.assertAlmostEqual(ctrl.intermediate.body_rate_cmd.z, 2.0 * math.pi / 2)
        self.assertGreater(cmd.front_right, cmd.front_left)

    def test_collective_thrust_keeps_attitude_margin(self):
        ctrl = self.make(Trajectory.hover(Vector3D(0, 0, -100)))
        ctrl.update_estimates(hover_state())
        ctrl.run_control(0.002, 0.0)
        lo, hi = ctrl.thrust_limits()
        self.assertAlmostEqual(lo, 4 * (0.1 + 0.44))
        self.assertAlmostEqual(hi, 4 * (4.5 - 0.44))
        self.assertAlmostEqual(ctrl.intermediate.coll_thrust_cmd, hi)

    def test_motor_commands_stay_in_band(self):
        ctrl = self.make(Trajectory.hover(Vector3D(3, -2, -4), yaw=2.0))
        rng = np.random.default_rng(2)
        for _ in range(100):
            state = StateEstimate(
                position=Vector3D(*rng.uniform(-5, 5, size=3)),
                velocity=Vector3D(*rng.uniform(-3, 3, size=3)),
                orientation=Quaternion.from_euler(*rng.uniform(-0.6, 0.6, size=2), rng.uniform(-3, 3)),
                angular_velocity=Vector3D(*rng.uniform(-2, 2, size=3)),
            )
            ctrl.update_estimates(state)
            for value in ctrl.run_control(0.002, 0.0):
                self.assertGreaterEqual(value, 0.1)
                self.assertLessEqual(value, 4.5)

    def test_init_resets_integrator(self):
        ctrl = self.make()
        ctrl.update_estimates(hover_state(position=Vector3D(0, 0, -0.5)))
        ctrl.run_control(0.01, 0.0)
        self.assertNotEqual(ctrl.integrated_altitude_error, 0.0)
        ctrl.init()
        self.assertEqual(ctrl.integrated_altitude_error, 0.0)

    def test_instances_do_not_share_state(self):
        a, b = self.make(), self.make()
        a.update_estimates(hover_state(position=Vector3D(0, 0, -0.5)))
        a.run_control(0.01, 0.0)
        self.assertEqual(b.integrated_altitude_error, 0.0)

    def test_built_from_parameter_file(self):
        ctrl = QuadControl.from_param_source(SimParamStore.from_yaml(CONFIG), Trajectory.hover(Vector3D(0, 0, -1)))
        self.assertEqual(ctrl.params.physical, PHYSICAL)
        self.assertEqual(ctrl.params.gains, GAINS)
        self.assertEqual(ctrl.params.limits, LIMITS)

if __name__ == '__main__':
    unittest.main()
