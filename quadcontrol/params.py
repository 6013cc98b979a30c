"""Parameter groups for the cascade controller and their loading from a ParamSource."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Tuple

import numpy as np

from common.interface import ParamSource
from common.logger import get_logger

logger = get_logger("params")

DEFAULT_NAMESPACE = "QuadControlParams"


@dataclass(frozen=True)
class PhysicalParameters:
    mass: float = 0.5  # kg
    arm_length: float = 0.17  # m, center to motor
    ixx: float = 0.0023  # kg*m^2
    iyy: float = 0.0023
    izz: float = 0.0046
    kappa: float = 0.016  # m, rotor torque per N of thrust
    min_motor_thrust: float = 0.0  # N
    max_motor_thrust: float = 100.0  # N

    def __post_init__(self):
        for name in ("mass", "arm_length", "ixx", "iyy", "izz", "kappa"):
            if getattr(self, name) <= 0.0:
                raise ValueError(f"{name} must be positive")
        if self.max_motor_thrust < self.min_motor_thrust:
            raise ValueError("max_motor_thrust must not be below min_motor_thrust")

    @property
    def inertia(self) -> np.ndarray:
        return np.array([self.ixx, self.iyy, self.izz])


@dataclass(frozen=True)
class GainSet:
    kp_pos_xy: float = 0.0
    kp_pos_z: float = 0.0
    ki_pos_z: float = 0.0
    kp_vel_xy: float = 0.0
    kp_vel_z: float = 0.0
    kp_bank: float = 0.0
    kp_yaw: float = 0.0
    kp_pqr: Tuple[float, float, float] = (0.0, 0.0, 0.0)


@dataclass(frozen=True)
class Limits:
    max_ascent_rate: float = 100.0  # m/s
    max_descent_rate: float = 100.0  # m/s
    max_speed_xy: float = 100.0  # m/s
    max_accel_xy: float = 100.0  # m/s^2
    max_tilt_angle: float = 0.7  # rad

    def __post_init__(self):
        if not 0.0 < self.max_tilt_angle < math.pi / 2:
            raise ValueError("max_tilt_angle must lie in (0, pi/2)")
        for name in ("max_ascent_rate", "max_descent_rate", "max_speed_xy", "max_accel_xy"):
            if getattr(self, name) < 0.0:
                raise ValueError(f"{name} must be non-negative")


@dataclass(frozen=True)
class ControlParams:
    physical: PhysicalParameters = field(default_factory=PhysicalParameters)
    gains: GainSet = field(default_factory=GainSet)
    limits: Limits = field(default_factory=Limits)
    trajectory_offset: Tuple[float, float, float] = (0.0, 0.0, 0.0)


def _as_vec3(value: Any) -> Tuple[float, float, float]:
    arr = np.asarray(value, dtype=float)
    if arr.ndim == 0:
        arr = np.full(3, float(arr))
    x, y, z = arr.reshape(3)
    return (float(x), float(y), float(z))


class _Reader:
    """Reads '<namespace>.<name>' keys and logs the ones that fell back to defaults."""

    _MISSING = object()

    def __init__(self, source: ParamSource, namespace: str):
        self.source = source
        self.namespace = namespace

    def get(self, name: str, default):
        key = f"{self.namespace}.{name}"
        value = self.source.get(key, self._MISSING)
        if value is self._MISSING or value is None:
            logger.debug(f"{key} not set, using default {default}")
            return default
        return value

    def scalar(self, name: str, default: float) -> float:
        return float(self.get(name, default))

    def vec3(self, name: str, default) -> Tuple[float, float, float]:
        return _as_vec3(self.get(name, default))


def load_control_params(source: ParamSource, namespace: str = DEFAULT_NAMESPACE) -> ControlParams:
    """Build ControlParams from a parameter source. Raises ValueError on invalid values."""
    r = _Reader(source, namespace)
    physical = PhysicalParameters(
        mass=r.scalar("Mass", PhysicalParameters.mass),
        arm_length=r.scalar("L", PhysicalParameters.arm_length),
        ixx=r.scalar("Ixx", PhysicalParameters.ixx),
        iyy=r.scalar("Iyy", PhysicalParameters.iyy),
        izz=r.scalar("Izz", PhysicalParameters.izz),
        kappa=r.scalar("kappa", PhysicalParameters.kappa),
        min_motor_thrust=r.scalar("minMotorThrust", PhysicalParameters.min_motor_thrust),
        max_motor_thrust=r.scalar("maxMotorThrust", PhysicalParameters.max_motor_thrust),
    )
    gains = GainSet(
        kp_pos_xy=r.scalar("kpPosXY", 0.0),
        kp_pos_z=r.scalar("kpPosZ", 0.0),
        ki_pos_z=r.scalar("KiPosZ", 0.0),
        kp_vel_xy=r.scalar("kpVelXY", 0.0),
        kp_vel_z=r.scalar("kpVelZ", 0.0),
        kp_bank=r.scalar("kpBank", 0.0),
        kp_yaw=r.scalar("kpYaw", 0.0),
        kp_pqr=r.vec3("kpPQR", (0.0, 0.0, 0.0)),
    )
    limits = Limits(
        max_ascent_rate=r.scalar("maxAscentRate", Limits.max_ascent_rate),
        max_descent_rate=r.scalar("maxDescentRate", Limits.max_descent_rate),
        max_speed_xy=r.scalar("maxSpeedXY", Limits.max_speed_xy),
        max_accel_xy=r.scalar("maxHorizAccel", Limits.max_accel_xy),
        max_tilt_angle=r.scalar("maxTiltAngle", Limits.max_tilt_angle),
    )
    params = ControlParams(
        physical=physical,
        gains=gains,
        limits=limits,
        trajectory_offset=r.vec3("TrajectoryOffset", (0.0, 0.0, 0.0)),
    )
    logger.info(f"Loaded control parameters from '{namespace}' (mass={physical.mass} kg, L={physical.arm_length} m)")
    return params
