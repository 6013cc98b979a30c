"""
Shared data structures for estimator ↔ controller ↔ vehicle boundaries.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Tuple

import numpy as np

from common.math import Vector3D, Quaternion


@dataclass(frozen=True)
class StateEstimate:
    """Estimated vehicle state used by the controller (NED)."""

    position: Vector3D
    velocity: Vector3D
    orientation: Quaternion
    angular_velocity: Vector3D  # body rates p, q, r


@dataclass(frozen=True)
class TrajectoryPoint:
    """Reference state for one instant of a trajectory (NED)."""

    time: float = 0.0
    position: Vector3D = field(default_factory=Vector3D)
    velocity: Vector3D = field(default_factory=Vector3D)
    accel: Vector3D = field(default_factory=Vector3D)
    attitude: Quaternion = field(default_factory=Quaternion)


@dataclass(frozen=True)
class ControlIntermediate:
    """Per-tick values produced between the cascade stages."""

    accel_cmd: Vector3D
    body_rate_cmd: Vector3D
    moment_cmd: Vector3D
    coll_thrust_cmd: float


@dataclass(frozen=True)
class MotorCommand:
    """Per-motor thrusts in Newtons."""

    front_left: float
    front_right: float
    rear_left: float
    rear_right: float

    @classmethod
    def from_array(cls, thrusts) -> MotorCommand:
        fl, fr, rl, rr = (float(t) for t in np.asarray(thrusts, dtype=float).reshape(4))
        return cls(fl, fr, rl, rr)

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.front_left, self.front_right, self.rear_left, self.rear_right)

    def __iter__(self) -> Iterator[float]:
        return iter(self.as_tuple())

    @property
    def total(self) -> float:
        return sum(self.as_tuple())
