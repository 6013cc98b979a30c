"""
Control module: cascaded quadrotor controllers and the X-configuration mixer.

Altitude and lateral position feed roll/pitch, yaw runs alongside, body rate
turns rates into moments and the mixer turns thrust + moments into motor thrusts.
Everything is NED (z down); thrust in N, moments in N*m.
"""

from __future__ import annotations

import math
from typing import Optional

import numpy as np

from common.interface import Controller, ParamSource, TrajectorySource
from common.logger import get_logger
from common.math import GRAVITY, Quaternion, Vector3D
from common.types import ControlIntermediate, MotorCommand, StateEstimate, TrajectoryPoint
from quadcontrol.params import (
    DEFAULT_NAMESPACE,
    ControlParams,
    GainSet,
    Limits,
    PhysicalParameters,
    load_control_params,
)

logger = get_logger("control")

# Smallest |R(2,2)| accepted as a divisor, roughly 89.94 deg of tilt.
MIN_TILT_COSINE = 1e-3

# Share of each motor's thrust band held back from altitude control.
THRUST_MARGIN = 0.1


def _bounded_tilt_cosine(r22: float) -> float:
    if abs(r22) < MIN_TILT_COSINE:
        return math.copysign(MIN_TILT_COSINE, r22)
    return r22


def _cap_magnitude(vec: np.ndarray, limit: float) -> np.ndarray:
    """Scale vec down along its own direction so |vec| <= limit."""
    mag = float(np.linalg.norm(vec))
    if mag > limit:
        return vec / mag * limit
    return vec


class AltitudeController:
    """
    PID-with-feedforward on NED altitude producing collective thrust.
    Owns the integrated altitude error; there is no anti-windup.
    """

    def __init__(self, physical: PhysicalParameters, gains: GainSet, limits: Limits):
        self.physical = physical
        self.gains = gains
        self.limits = limits
        self.integrated_altitude_error = 0.0

    def reset(self):
        self.integrated_altitude_error = 0.0

    def update(self, pos_z_cmd, vel_z_cmd, pos_z, vel_z, attitude: Quaternion, accel_z_cmd, dt) -> float:
        """Return collective thrust [N], positive up (opposite body z)."""
        R = attitude.as_rotation_matrix()

        z_err = pos_z_cmd - pos_z
        z_dot_err = vel_z_cmd - vel_z
        self.integrated_altitude_error += z_err * dt

        p_term = self.gains.kp_pos_z * z_err
        # raw vel_z is added on top of the damping term
        d_term = self.gains.kp_vel_z * z_dot_err + vel_z
        i_term = self.gains.ki_pos_z * self.integrated_altitude_error

        u1_bar = p_term + d_term + i_term + accel_z_cmd
        acc = (u1_bar - GRAVITY) / _bounded_tilt_cosine(R[2, 2])

        acc_limit = self.limits.max_ascent_rate / dt if dt > 0 else math.inf
        return -self.physical.mass * float(np.clip(acc, -acc_limit, acc_limit))


class LateralPositionController:
    """PD-with-feedforward on horizontal position, returning a capped NED acceleration."""

    def __init__(self, gains: GainSet, limits: Limits):
        self.gains = gains
        self.limits = limits

    def update(self, pos_cmd: Vector3D, vel_cmd: Vector3D, pos: Vector3D, vel: Vector3D,
               accel_cmd_ff: Vector3D) -> Vector3D:
        # strictly horizontal: pin z to the current position, drop z rates
        pos_cmd_xy = np.array([pos_cmd.x, pos_cmd.y, pos.z])
        vel_cmd_xy = np.array([vel_cmd.x, vel_cmd.y, 0.0])
        accel_ff_xy = np.array([accel_cmd_ff.x, accel_cmd_ff.y, 0.0])

        kp_pos = np.array([self.gains.kp_pos_xy, self.gains.kp_pos_xy, 0.0])
        kp_vel = np.array([self.gains.kp_vel_xy, self.gains.kp_vel_xy, 0.0])

        cap_vel_cmd = _cap_magnitude(vel_cmd_xy, self.limits.max_speed_xy)
        accel_cmd = kp_pos * (pos_cmd_xy - pos.v) + kp_vel * (cap_vel_cmd - vel.v) + accel_ff_xy
        accel_cmd = _cap_magnitude(accel_cmd, self.limits.max_accel_xy)
        return Vector3D(accel_cmd[0], accel_cmd[1], 0.0)


class RollPitchController:
    """Turns desired horizontal acceleration and collective thrust into roll/pitch rates."""

    def __init__(self, physical: PhysicalParameters, gains: GainSet, limits: Limits):
        self.physical = physical
        self.gains = gains
        self.limits = limits

    def update(self, accel_cmd: Vector3D, attitude: Quaternion, coll_thrust_cmd: float) -> Vector3D:
        """Return desired body rates (p, q, 0) [rad/s]."""
        if coll_thrust_cmd <= 0.0:
            return Vector3D()

        R = attitude.as_rotation_matrix()
        c = -coll_thrust_cmd / self.physical.mass
        max_tilt = math.sin(self.limits.max_tilt_angle)

        b_x = float(np.clip(accel_cmd.x / c, -max_tilt, max_tilt))
        b_y = float(np.clip(accel_cmd.y / c, -max_tilt, max_tilt))

        b_x_dot = self.gains.kp_bank * (b_x - R[0, 2])
        b_y_dot = self.gains.kp_bank * (b_y - R[1, 2])

        r22 = _bounded_tilt_cosine(R[2, 2])
        p_cmd = (R[1, 0] * b_x_dot - R[0, 0] * b_y_dot) / r22
        q_cmd = (R[1, 1] * b_x_dot - R[0, 1] * b_y_dot) / r22
        return Vector3D(p_cmd, q_cmd, 0.0)


class YawController:
    """P controller on heading, always turning the short way round."""

    def __init__(self, gains: GainSet):
        self.gains = gains

    def update(self, yaw_cmd: float, yaw: float) -> float:
        # fmod keeps the sign of yaw_cmd, result in (-2pi, 2pi)
        yaw_cmd = math.fmod(yaw_cmd, 2.0 * math.pi)
        err = yaw_cmd - yaw
        if err > math.pi:
            err -= 2.0 * math.pi
        if err < -math.pi:
            err += 2.0 * math.pi
        return self.gains.kp_yaw * err


class BodyRateController:
    """Inertia-scaled P controller from body-rate error to moment."""

    def __init__(self, physical: PhysicalParameters, gains: GainSet):
        self._inertia = physical.inertia
        self._kp_pqr = np.asarray(gains.kp_pqr, dtype=float)

    def update(self, pqr_cmd: Vector3D, pqr: Vector3D) -> Vector3D:
        return Vector3D(*(self._inertia * self._kp_pqr * (pqr_cmd.v - pqr.v)))


class QuadMixer:
    """
    X-configuration mixer. Motor order: front-left, front-right, rear-left, rear-right.

        T      = F1 + F2 + F3 + F4
        Mx / l = F1 - F2 + F3 - F4
        My / l = F1 + F2 - F3 - F4
        Mz     = -kappa * (F1 - F2 - F3 + F4)

    with l = L / sqrt(2). The yaw row is negated because a positive NED yaw
    moment is clockwise seen from above.
    """

    def __init__(self, physical: PhysicalParameters):
        self.min_thrust = physical.min_motor_thrust
        self.max_thrust = physical.max_motor_thrust
        l = physical.arm_length / math.sqrt(2.0)
        kappa = physical.kappa
        self._A = np.array([
            [1.0, 1.0, 1.0, 1.0],
            [l, -l, l, -l],
            [l, l, -l, -l],
            [-kappa, kappa, kappa, -kappa],
        ])
        self._A_inv = np.linalg.inv(self._A)

    def allocate(self, coll_thrust_cmd: float, moment_cmd: Vector3D) -> np.ndarray:
        """Unsaturated motor thrusts solving the mixing equations."""
        return self._A_inv @ np.array([coll_thrust_cmd, *moment_cmd.v])

    def wrench(self, thrusts) -> np.ndarray:
        """Collective thrust and moments (T, Mx, My, Mz) produced by motor thrusts."""
        return self._A @ np.asarray(thrusts, dtype=float)

    def mix(self, coll_thrust_cmd: float, moment_cmd: Vector3D) -> MotorCommand:
        # saturation is per motor; lost authority is not redistributed
        thrusts = np.clip(self.allocate(coll_thrust_cmd, moment_cmd), self.min_thrust, self.max_thrust)
        return MotorCommand.from_array(thrusts)


class QuadControl(Controller):
    """
    Full cascade for one vehicle. Call update_estimates() with the estimator
    output, then run_control() once per tick.
    """

    def __init__(self, params: ControlParams, trajectory: TrajectorySource):
        self.params = params
        self.trajectory = trajectory
        self.trajectory_offset = Vector3D(*params.trajectory_offset)

        physical, gains, limits = params.physical, params.gains, params.limits
        self.altitude = AltitudeController(physical, gains, limits)
        self.lateral = LateralPositionController(gains, limits)
        self.roll_pitch = RollPitchController(physical, gains, limits)
        self.yaw = YawController(gains)
        self.body_rate = BodyRateController(physical, gains)
        self.mixer = QuadMixer(physical)

        self.est_pos = Vector3D()
        self.est_vel = Vector3D()
        self.est_att = Quaternion()
        self.est_omega = Vector3D()

        self.cur_traj_point: Optional[TrajectoryPoint] = None
        self.intermediate: Optional[ControlIntermediate] = None
        self.init()

    @classmethod
    def from_param_source(cls, source: ParamSource, trajectory: TrajectorySource,
                          namespace: str = DEFAULT_NAMESPACE) -> QuadControl:
        return cls(load_control_params(source, namespace), trajectory)

    def init(self):
        """Start a new control session."""
        self.altitude.reset()
        self.cur_traj_point = None
        self.intermediate = None
        logger.info(f"QuadControl initialized (mass={self.params.physical.mass} kg)")

    @property
    def integrated_altitude_error(self) -> float:
        return self.altitude.integrated_altitude_error

    def update_estimates(self, state: StateEstimate) -> None:
        self.est_pos = state.position
        self.est_vel = state.velocity
        self.est_att = state.orientation
        self.est_omega = state.angular_velocity

    def get_next_trajectory_point(self, sim_time: float) -> TrajectoryPoint:
        point = self.trajectory.sample(sim_time)
        if self.trajectory_offset == Vector3D():
            return point
        return TrajectoryPoint(
            time=point.time,
            position=point.position + self.trajectory_offset,
            velocity=point.velocity,
            accel=point.accel,
            attitude=point.attitude,
        )

    # -- Cascade stages --------------------------------------------------------

    def altitude_control(self, pos_z_cmd, vel_z_cmd, pos_z, vel_z, attitude, accel_z_cmd, dt) -> float:
        return self.altitude.update(pos_z_cmd, vel_z_cmd, pos_z, vel_z, attitude, accel_z_cmd, dt)

    def lateral_position_control(self, pos_cmd, vel_cmd, pos, vel, accel_cmd_ff) -> Vector3D:
        return self.lateral.update(pos_cmd, vel_cmd, pos, vel, accel_cmd_ff)

    def roll_pitch_control(self, accel_cmd, attitude, coll_thrust_cmd) -> Vector3D:
        return self.roll_pitch.update(accel_cmd, attitude, coll_thrust_cmd)

    def yaw_control(self, yaw_cmd, yaw) -> float:
        return self.yaw.update(yaw_cmd, yaw)

    def body_rate_control(self, pqr_cmd, pqr) -> Vector3D:
        return self.body_rate.update(pqr_cmd, pqr)

    def generate_motor_commands(self, coll_thrust_cmd, moment_cmd) -> MotorCommand:
        return self.mixer.mix(coll_thrust_cmd, moment_cmd)

    def thrust_limits(self):
        """Collective thrust band left after reserving attitude headroom on every motor."""
        lo = self.params.physical.min_motor_thrust
        hi = self.params.physical.max_motor_thrust
        margin = THRUST_MARGIN * (hi - lo)
        return 4.0 * (lo + margin), 4.0 * (hi - margin)

    def run_control(self, dt: float, sim_time: float) -> MotorCommand:
        traj = self.get_next_trajectory_point(sim_time)
        self.cur_traj_point = traj

        coll_thrust_cmd = self.altitude_control(
            traj.position.z, traj.velocity.z, self.est_pos.z, self.est_vel.z,
            self.est_att, traj.accel.z, dt,
        )
        coll_thrust_cmd = float(np.clip(coll_thrust_cmd, *self.thrust_limits()))

        des_acc = self.lateral_position_control(traj.position, traj.velocity, self.est_pos, self.est_vel, traj.accel)

        des_omega = self.roll_pitch_control(des_acc, self.est_att, coll_thrust_cmd)
        des_omega = Vector3D(des_omega.x, des_omega.y, self.yaw_control(traj.attitude.yaw(), self.est_att.yaw()))

        des_moment = self.body_rate_control(des_omega, self.est_omega)

        self.intermediate = ControlIntermediate(
            accel_cmd=des_acc,
            body_rate_cmd=des_omega,
            moment_cmd=des_moment,
            coll_thrust_cmd=coll_thrust_cmd,
        )
        return self.generate_motor_commands(coll_thrust_cmd, des_moment)
