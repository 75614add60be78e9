"""Simulation configuration (YAML file plus environment overrides)."""

from __future__ import annotations

import os
import logging
from dataclasses import dataclass, asdict, fields
from typing import Any, Dict, Optional

import yaml

from edgetwin.errors import ConfigError
from edgetwin.mobility import ALGORITHMS

logger = logging.getLogger(__name__)

ENV_PREFIX = "EDGETWIN_"

# Knobs that must never go negative
NUMERIC_KNOBS = (
    "user_speed",
    "user_size",
    "prediction_steps",
    "edge_capacity",
    "edge_coverage",
    "central_capacity",
    "central_coverage",
    "simulation_speed",
    "viewport_width",
    "viewport_height",
    "tick_interval_ms",
    "sweep_interval_ms",
    "warm_timeout_ms",
)

# Nodes are built from these, and a node needs a positive capacity
POSITIVE_KNOBS = ("edge_capacity", "central_capacity")


@dataclass
class SimulationConfig:
    user_speed: float = 2.0
    user_size: float = 8.0
    prediction_steps: int = 10
    edge_capacity: float = 100.0
    edge_coverage: float = 0.0
    central_capacity: float = 500.0
    central_coverage: float = 0.0
    simulation_speed: float = 1.0
    viewport_width: float = 1200.0
    viewport_height: float = 800.0
    tick_interval_ms: int = 100
    sweep_interval_ms: int = 5000
    warm_timeout_ms: int = 30000
    algorithm: str = "linear"
    prediction_enabled: bool = True
    auto_assignment: bool = True
    seed: Optional[int] = None

    def validate(self) -> "SimulationConfig":
        for name in NUMERIC_KNOBS:
            value = getattr(self, name)
            if value is None or value < 0:
                raise ConfigError(f"{name} must be non-negative, got {value!r}")
        for name in POSITIVE_KNOBS:
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive, got {getattr(self, name)!r}")
        if self.algorithm not in ALGORITHMS:
            raise ConfigError(f"unknown algorithm {self.algorithm!r}")
        return self

    def update(self, **changes: Any) -> "SimulationConfig":
        """Apply changes atomically: nothing is written unless all validate."""
        known = {f.name: f for f in fields(self)}
        merged = asdict(self)
        for key, value in changes.items():
            if key not in known:
                raise ConfigError(f"unknown config knob: {key}")
            merged[key] = _coerce(known[key].type, value, key)
        candidate = SimulationConfig(**merged).validate()
        for key in changes:
            setattr(self, key, getattr(candidate, key))
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _to_bool(val: Any) -> bool:
    if isinstance(val, bool):
        return val
    return str(val).lower() in {"1", "true", "yes", "on"}


def _coerce(type_name: Any, value: Any, key: str) -> Any:
    type_name = str(type_name)
    if value is None:
        if type_name.startswith("Optional"):
            return None
        raise ConfigError(f"{key} may not be null")
    try:
        if type_name == "bool":
            return _to_bool(value)
        if type_name == "int" or type_name == "Optional[int]":
            return int(value)
        if type_name == "float":
            return float(value)
        return str(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid value for {key}: {value!r}") from e


def load_config(path: Optional[str] = None, env: Optional[Dict[str, str]] = None) -> SimulationConfig:
    """Load config from YAML (``path`` or ``$EDGETWIN_CONFIG``) and env overrides.

    Environment variables are named ``EDGETWIN_<KNOB>`` (e.g.
    ``EDGETWIN_USER_SPEED=3``) and win over the file.
    """
    env = dict(os.environ) if env is None else env
    path = path or env.get(f"{ENV_PREFIX}CONFIG")
    raw: Dict[str, Any] = {}
    if path:
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
        except FileNotFoundError as e:
            raise ConfigError(f"config file not found: {path}") from e
        if not isinstance(raw, dict):
            raise ConfigError(f"config file {path} must contain a mapping")
        logger.info(f"Loaded simulation config from {path}")

    for f in fields(SimulationConfig):
        env_value = env.get(f"{ENV_PREFIX}{f.name.upper()}")
        if env_value is not None:
            raw[f.name] = env_value

    return SimulationConfig().update(**raw)
