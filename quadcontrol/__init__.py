# quadcontrol/__init__.py

from .control import (
    AltitudeController,
    LateralPositionController,
    RollPitchController,
    YawController,
    BodyRateController,
    QuadMixer,
    QuadControl,
)
from .params import ControlParams, GainSet, Limits, PhysicalParameters, load_control_params
from .paramstore import SimParamStore, HardwareParamStore, open_param_source
from .trajectory import Trajectory

__all__ = [
    'AltitudeController', 'LateralPositionController', 'RollPitchController',
    'YawController', 'BodyRateController', 'QuadMixer', 'QuadControl',
    'ControlParams', 'GainSet', 'Limits', 'PhysicalParameters', 'load_control_params',
    'SimParamStore', 'HardwareParamStore', 'open_param_source',
    'Trajectory',
]
