"""Timestamped reference trajectories sampled by simulated time."""

from __future__ import annotations

from pathlib import Path
from typing import List, Sequence, Union

import numpy as np

from common.interface import TrajectorySource
from common.logger import get_logger
from common.math import Quaternion, Vector3D
from common.types import TrajectoryPoint

logger = get_logger("trajectory")

# t, x, y, z, vx, vy, vz, ax, ay, az, yaw
_COLUMNS = 11


class Trajectory(TrajectorySource):
    """
    Ordered list of TrajectoryPoint. sample(t) returns the first point whose
    time is not earlier than t and holds the final point once t passes the end.
    """

    def __init__(self, points: Sequence[TrajectoryPoint]):
        if not points:
            raise ValueError("trajectory needs at least one point")
        self.points: List[TrajectoryPoint] = sorted(points, key=lambda p: p.time)
        self._times = np.array([p.time for p in self.points])

    @classmethod
    def hover(cls, position: Vector3D, yaw: float = 0.0) -> Trajectory:
        """Single setpoint held forever."""
        return cls([TrajectoryPoint(position=position, attitude=Quaternion.from_euler(0.0, 0.0, yaw))])

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> Trajectory:
        """
        Load comma-separated rows: t, x, y, z[, vx, vy, vz[, ax, ay, az[, yaw]]].
        Missing trailing columns are zero; '#' starts a comment.
        """
        rows = []
        with Path(path).open("r", encoding="utf-8") as fh:
            for lineno, line in enumerate(fh, 1):
                line = line.split("#", 1)[0].strip()
                if not line:
                    continue
                values = [float(v) for v in line.split(",")]
                if not 4 <= len(values) <= _COLUMNS:
                    raise ValueError(f"{path}:{lineno}: expected 4 to {_COLUMNS} columns, got {len(values)}")
                rows.append(values + [0.0] * (_COLUMNS - len(values)))
        if not rows:
            raise ValueError(f"{path}: no trajectory points")
        data = np.array(rows)
        points = [
            TrajectoryPoint(
                time=float(r[0]),
                position=Vector3D(*r[1:4]),
                velocity=Vector3D(*r[4:7]),
                accel=Vector3D(*r[7:10]),
                attitude=Quaternion.from_euler(0.0, 0.0, float(r[10])),
            )
            for r in data
        ]
        logger.info(f"Loaded {len(points)} trajectory points from {path}")
        return cls(points)

    def __len__(self) -> int:
        return len(self.points)

    @property
    def duration(self) -> float:
        return float(self._times[-1] - self._times[0])

    def sample(self, sim_time: float) -> TrajectoryPoint:
        idx = int(np.searchsorted(self._times, sim_time, side="left"))
        return self.points[min(idx, len(self.points) - 1)]
