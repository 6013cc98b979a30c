"""
Host loop: read state from a board, run the cascade, write motor thrusts.
"""

from __future__ import annotations

import os
from typing import Optional

from common.logger import get_logger
from common.math import Vector3D
from common.realtime import RateKeeper
from common.types import MotorCommand
from quadcontrol.board import Board
from quadcontrol.control import QuadControl
from quadcontrol.paramstore import open_param_source
from quadcontrol.trajectory import Trajectory

logger = get_logger("controls")


def build_controller(param_path: Optional[str] = None, trajectory_path: Optional[str] = None,
                     namespace: Optional[str] = None) -> QuadControl:
    """
    Build a QuadControl from a YAML parameter file and a trajectory file.
    Unset arguments fall back to QUADCONTROL_PARAMS, QUADCONTROL_TRAJECTORY and
    QUADCONTROL_NAMESPACE; without a trajectory the vehicle holds the origin.
    """
    param_path = param_path or os.environ.get("QUADCONTROL_PARAMS")
    trajectory_path = trajectory_path or os.environ.get("QUADCONTROL_TRAJECTORY")
    namespace = namespace or os.environ.get("QUADCONTROL_NAMESPACE", "QuadControlParams")

    source = open_param_source("sim", path=param_path)
    if trajectory_path:
        trajectory = Trajectory.from_file(trajectory_path)
    else:
        trajectory = Trajectory.hover(Vector3D())
    return QuadControl.from_param_source(source, trajectory, namespace=namespace)


def init_board(target_name: Optional[str]) -> Board:
    """Instantiate the board for a target name (QUADCONTROL_TARGET)."""
    target = (target_name or "replay").lower()
    if target == "replay":
        from target.replay import ReplayBoard

        log_path = os.environ.get("QUADCONTROL_STATE_LOG")
        if not log_path:
            raise ValueError("QUADCONTROL_STATE_LOG must name a state log for the replay target")
        return ReplayBoard(log_path, output_path=os.environ.get("QUADCONTROL_OUTPUT"))
    raise NotImplementedError(f"Unsupported target '{target}'")


class Controls:
    """Controls-style loop: update() -> state_control() -> publish() -> run()."""

    def __init__(self, board: Board, controller: QuadControl, rate_hz: float = 500.0):
        if rate_hz <= 0.0:
            raise ValueError("rate_hz must be positive")
        self.rate_hz = float(rate_hz)
        self.dt = 1.0 / self.rate_hz
        self.board = board
        self.controller = controller
        self.ticks = 0
        logger.info(f"Controls ready ({type(self.board).__name__} at {self.rate_hz:.0f} Hz)")

    # -- Pipeline stages -----------------------------------------------------

    def update(self) -> float:
        """Feed the latest estimate to the controller; return its timestamp."""
        state, sim_time = self.board.read_state()
        self.controller.update_estimates(state)
        return sim_time

    def state_control(self, sim_time: float) -> MotorCommand:
        return self.controller.run_control(self.dt, sim_time)

    def publish(self, command: MotorCommand) -> None:
        self.board.write_actuators(command)

    def step(self) -> MotorCommand:
        sim_time = self.update()
        command = self.state_control(sim_time)
        self.publish(command)
        self.ticks += 1
        return command

    def run(self, max_ticks: Optional[int] = None, realtime: bool = False) -> None:
        """Loop until max_ticks (forever if None); realtime paces ticks to rate_hz."""
        logger.info("Starting controls loop")
        rk = RateKeeper(rate_hz=self.rate_hz) if realtime else None
        try:
            while max_ticks is None or self.ticks < max_ticks:
                self.step()
                if rk is not None:
                    rk.keep_time()
        finally:
            self.board.close()
            logger.info(f"Controls loop stopped after {self.ticks} ticks")


def main():
    controller = build_controller()
    board = init_board(os.environ.get("QUADCONTROL_TARGET"))
    rate_hz = float(os.environ.get("QUADCONTROL_RATE", "500"))
    controls = Controls(board, controller, rate_hz=rate_hz)
    controls.run(max_ticks=len(board))

if __name__ == "__main__":
    main()
