"""
Board interface: the boundary between the control loop and a vehicle or simulator.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Tuple

from common.types import MotorCommand, StateEstimate


class Board(ABC):
    """
    Every vehicle target implements this. The board owns the estimator and the
    motor drivers; the control loop only sees state in and thrusts out.
    """

    @abstractmethod
    def read_state(self) -> Tuple[StateEstimate, float]:
        """Return the latest state estimate and its timestamp (seconds)."""

    @abstractmethod
    def write_actuators(self, command: MotorCommand) -> None:
        """Send motor thrust commands [N]."""

    def close(self) -> None:
        """Optional cleanup hook."""
        return None
