"""
Interface definitions for controllers and the collaborators that feed them.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from common.types import MotorCommand, StateEstimate, TrajectoryPoint


class ParamSource(ABC):
    """Key-value store of gains and physical constants."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Return the value stored under key, or default if absent."""


class TrajectorySource(ABC):
    """Supplies reference setpoints by simulated time."""

    @abstractmethod
    def sample(self, sim_time: float) -> TrajectoryPoint:
        """Return the reference point for sim_time (seconds)."""


class Controller(ABC):
    """Abstract base for control algorithms."""

    @abstractmethod
    def update_estimates(self, state: StateEstimate) -> None:
        """Store the latest state estimate for the next control tick."""

    @abstractmethod
    def run_control(self, dt: float, sim_time: float) -> MotorCommand:
        """Compute motor commands for one tick of length dt."""
