"""
Vector and attitude primitives shared by the controller, trajectory and host loop.

Frames follow NED (z down). Quaternions are scalar-first (w, x, y, z) and
represent the body-to-inertial rotation, ZYX (yaw-pitch-roll) Euler order.
"""

from __future__ import annotations

import math

import numpy as np

GRAVITY = 9.81  # m/s^2


def wrap_angle(angle: float) -> float:
    """Wrap an angle in radians into [-pi, pi)."""
    return (angle + math.pi) % (2.0 * math.pi) - math.pi


class Vector3D:
    """Thin wrapper around a length-3 numpy array."""

    def __init__(self, x=0.0, y=0.0, z=0.0):
        self.v = np.array([x, y, z], dtype=float)

    @classmethod
    def from_array(cls, values) -> Vector3D:
        x, y, z = np.asarray(values, dtype=float).reshape(3)
        return cls(x, y, z)

    @property
    def x(self) -> float:
        return float(self.v[0])

    @property
    def y(self) -> float:
        return float(self.v[1])

    @property
    def z(self) -> float:
        return float(self.v[2])

    def __add__(self, other: Vector3D) -> Vector3D:
        return Vector3D(*(self.v + other.v))

    def __sub__(self, other: Vector3D) -> Vector3D:
        return Vector3D(*(self.v - other.v))

    def __neg__(self) -> Vector3D:
        return Vector3D(*(-self.v))

    def __mul__(self, other) -> Vector3D:
        # Vector3D * Vector3D is elementwise
        if isinstance(other, Vector3D):
            return Vector3D(*(self.v * other.v))
        return Vector3D(*(self.v * float(other)))

    __rmul__ = __mul__

    def __truediv__(self, scalar: float) -> Vector3D:
        return Vector3D(*(self.v / float(scalar)))

    def __eq__(self, other) -> bool:
        if not isinstance(other, Vector3D):
            return NotImplemented
        return bool(np.array_equal(self.v, other.v))

    def __iter__(self):
        return iter(self.v.tolist())

    def __repr__(self) -> str:
        return f"Vector3D({self.x:.4f}, {self.y:.4f}, {self.z:.4f})"

    def mag(self) -> float:
        return float(np.linalg.norm(self.v))

    def norm(self) -> Vector3D:
        """Unit vector in the same direction (zero vector stays zero)."""
        mag = self.mag()
        if mag == 0.0:
            return Vector3D()
        return self / mag


class Quaternion:
    """Unit quaternion (w, x, y, z) describing body orientation in the inertial frame."""

    def __init__(self, w=1.0, x=0.0, y=0.0, z=0.0):
        self.q = np.array([w, x, y, z], dtype=float)

    @classmethod
    def from_euler(cls, roll: float, pitch: float, yaw: float) -> Quaternion:
        cr, sr = math.cos(roll / 2), math.sin(roll / 2)
        cp, sp = math.cos(pitch / 2), math.sin(pitch / 2)
        cy, sy = math.cos(yaw / 2), math.sin(yaw / 2)
        return cls(
            cr * cp * cy + sr * sp * sy,
            sr * cp * cy - cr * sp * sy,
            cr * sp * cy + sr * cp * sy,
            cr * cp * sy - sr * sp * cy,
        )

    @classmethod
    def from_axis_angle(cls, axis, angle: float) -> Quaternion:
        axis = np.asarray(axis, dtype=float)
        n = np.linalg.norm(axis)
        if n == 0.0:
            return cls()
        axis = axis / n
        s = math.sin(angle / 2)
        return cls(math.cos(angle / 2), *(axis * s))

    def conjugate(self) -> Quaternion:
        w, x, y, z = self.q
        return Quaternion(w, -x, -y, -z)

    def __mul__(self, other):
        if isinstance(other, Quaternion):
            w1, x1, y1, z1 = self.q
            w2, x2, y2, z2 = other.q
            return Quaternion(
                w1 * w2 - x1 * x2 - y1 * y2 - z1 * z2,
                w1 * x2 + x1 * w2 + y1 * z2 - z1 * y2,
                w1 * y2 - x1 * z2 + y1 * w2 + z1 * x2,
                w1 * z2 + x1 * y2 - y1 * x2 + z1 * w2,
            )
        return Quaternion(*(self.q * float(other)))

    def __repr__(self) -> str:
        w, x, y, z = self.q
        return f"Quaternion({w:.4f}, {x:.4f}, {y:.4f}, {z:.4f})"

    def rotate(self, vec: Vector3D) -> Vector3D:
        """Rotate a body-frame vector into the inertial frame."""
        return Vector3D(*(self.as_rotation_matrix() @ vec.v))

    def as_rotation_matrix(self) -> np.ndarray:
        """
        Body-to-inertial rotation matrix. R[:, 2] is the body z axis expressed
        in the inertial frame, so R[2, 2] is the cosine of the combined tilt.
        """
        n = np.linalg.norm(self.q)
        if n == 0.0:
            return np.eye(3)
        w, x, y, z = self.q / n
        return np.array([
            [1 - 2 * (y * y + z * z), 2 * (x * y - w * z), 2 * (x * z + w * y)],
            [2 * (x * y + w * z), 1 - 2 * (x * x + z * z), 2 * (y * z - w * x)],
            [2 * (x * z - w * y), 2 * (y * z + w * x), 1 - 2 * (x * x + y * y)],
        ])

    def to_euler(self) -> tuple[float, float, float]:
        R = self.as_rotation_matrix()
        roll = math.atan2(R[2, 1], R[2, 2])
        pitch = math.asin(float(np.clip(-R[2, 0], -1.0, 1.0)))
        yaw = math.atan2(R[1, 0], R[0, 0])
        return roll, pitch, yaw

    def yaw(self) -> float:
        """Heading in [-pi, pi]."""
        return self.to_euler()[2]
