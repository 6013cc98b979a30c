"""
Parameter stores backing the controller configuration.

Two interchangeable sources implement ParamSource.get(key, default):
- SimParamStore: in-memory dotted keys, usually loaded from a YAML file.
- HardwareParamStore: adapter over an embedded parameter store (e.g. PX4 params).
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union

import yaml

from common.interface import ParamSource
from common.logger import get_logger

logger = get_logger("paramstore")


def flatten(tree: Mapping[str, Any], prefix: str = "") -> Dict[str, Any]:
    """Flatten nested mappings into dotted keys: {"A": {"b": 1}} -> {"A.b": 1}."""
    flat: Dict[str, Any] = {}
    for key, value in tree.items():
        full = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping):
            flat.update(flatten(value, full))
        else:
            flat[full] = value
    return flat


class SimParamStore(ParamSource):
    """Simulator parameter store."""

    def __init__(self, values: Optional[Mapping[str, Any]] = None):
        self._values: Dict[str, Any] = flatten(values or {})

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> SimParamStore:
        path = Path(path)
        with path.open("r", encoding="utf-8") as fh:
            tree = yaml.safe_load(fh) or {}
        if not isinstance(tree, Mapping):
            raise ValueError(f"{path}: top level must be a mapping, got {type(tree).__name__}")
        store = cls(tree)
        logger.info(f"Loaded {len(store)} parameters from {path}")
        return store

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._values[key] = value

    def keys(self):
        return self._values.keys()

    def __contains__(self, key: str) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)


# Controller parameter name -> embedded store name(s). A tuple reads a vector.
PX4_PARAM_NAMES: Dict[str, Union[str, Tuple[str, ...]]] = {
    "kpBank": "MC_PITCH_P",
    "kpYaw": "MC_YAW_P",
    "kpPQR": ("MC_ROLLRATE_P", "MC_PITCHRATE_P", "MC_YAWRATE_P"),
    "maxSpeedXY": "MPC_XY_VEL_MAX",
    "maxAscentRate": "MPC_Z_VEL_MAX_UP",
    "maxDescentRate": "MPC_Z_VEL_MAX_DN",
    "maxHorizAccel": "MPC_ACC_HOR_MAX",
}


class HardwareParamStore(ParamSource):
    """
    Reads parameters from an embedded parameter store through param_get(name),
    which returns the stored value or None when the parameter does not exist.
    Keys are '<namespace>.<name>'; only names present in name_map are looked up.
    """

    def __init__(
        self,
        param_get: Callable[[str], Any],
        name_map: Optional[Mapping[str, Union[str, Tuple[str, ...]]]] = None,
    ):
        self._param_get = param_get
        self._name_map = dict(PX4_PARAM_NAMES if name_map is None else name_map)

    def get(self, key: str, default: Any = None) -> Any:
        name = key.rsplit(".", 1)[-1]
        hw_name = self._name_map.get(name)
        if hw_name is None:
            return default
        if isinstance(hw_name, tuple):
            values = [self._param_get(n) for n in hw_name]
            if any(v is None for v in values):
                logger.debug(f"{key}: hardware parameters {hw_name} incomplete, using default")
                return default
            return tuple(values)
        value = self._param_get(hw_name)
        if value is None:
            logger.debug(f"{key}: hardware parameter {hw_name} not found, using default")
            return default
        return value


def open_param_source(kind: str = "sim", **kwargs) -> ParamSource:
    """
    Select the parameter source at startup.
    kind="sim": optional path= YAML file or values= mapping.
    kind="hw": required param_get= callable, optional name_map=.
    """
    kind = (kind or "sim").lower()
    if kind == "sim":
        path = kwargs.get("path")
        if path is not None:
            return SimParamStore.from_yaml(path)
        return SimParamStore(kwargs.get("values"))
    if kind == "hw":
        if "param_get" not in kwargs:
            raise ValueError("hardware parameter source requires param_get")
        return HardwareParamStore(kwargs["param_get"], kwargs.get("name_map"))
    raise NotImplementedError(f"Unsupported parameter source '{kind}'")
