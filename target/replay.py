"""
Replay board: feeds a recorded state-estimate log through the control loop and
records the motor thrusts it produces.

Log rows are comma separated:
    t, x, y, z, vx, vy, vz, qw, qx, qy, qz, p, q, r
Lines starting with '#' are ignored.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Tuple, Union

import numpy as np

from common.logger import get_logger
from common.math import Quaternion, Vector3D
from common.types import MotorCommand, StateEstimate
from quadcontrol.board import Board

logger = get_logger("replay")

LOG_COLUMNS = 14


class ReplayBoard(Board):
    def __init__(self, log_path: Union[str, Path], output_path: Optional[Union[str, Path]] = None):
        rows = np.loadtxt(log_path, delimiter=",", comments="#", ndmin=2)
        if rows.size == 0:
            raise ValueError(f"{log_path}: no state rows")
        if rows.shape[1] != LOG_COLUMNS:
            raise ValueError(f"{log_path}: expected {LOG_COLUMNS} columns, got {rows.shape[1]}")
        self.rows = rows
        self.output_path = output_path
        self.frame = 0
        self.commands: List[Tuple[float, ...]] = []
        logger.info(f"Replaying {len(rows)} frames from {log_path}")

    def __len__(self) -> int:
        return len(self.rows)

    def read_state(self) -> Tuple[StateEstimate, float]:
        if self.frame >= len(self.rows):
            raise EOFError("state log exhausted")
        row = self.rows[self.frame]
        self.frame += 1
        state = StateEstimate(
            position=Vector3D(*row[1:4]),
            velocity=Vector3D(*row[4:7]),
            orientation=Quaternion(*row[7:11]),
            angular_velocity=Vector3D(*row[11:14]),
        )
        return state, float(row[0])

    def write_actuators(self, command: MotorCommand) -> None:
        t = float(self.rows[self.frame - 1, 0])
        self.commands.append((t, *command.as_tuple()))

    def close(self) -> None:
        if self.output_path is None or not self.commands:
            return
        np.savetxt(self.output_path, np.array(self.commands), delimiter=",", fmt="%.6f",
                   header="t,front_left,front_right,rear_left,rear_right")
        logger.info(f"Wrote {len(self.commands)} motor commands to {self.output_path}")
