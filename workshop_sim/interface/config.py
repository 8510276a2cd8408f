"""
User configuration persistence.

Stores simulation settings (scenario, storage, pacing) in a JSON file
inside the state directory.
"""

import json
import os
from pathlib import Path
from typing import TypedDict


class Config(TypedDict, total=False):
    """User configuration."""
    scenario_path: str | None  # None uses the bundled AidCraft scenario
    state_dir: str
    storage_key: str
    curveball_probability: float
    curveball_delay_ms: int
    entry_event_delay_ms: int
    timer_penalty: int  # politicalCapital change when a phase timer runs out
    curveballs_on_phase_entry: bool
    max_dispatch_depth: int
    log_level: str


DEFAULT_CONFIG: Config = {
    "scenario_path": None,
    "state_dir": "state",
    "storage_key": "workshop_state",
    "curveball_probability": 0.2,
    "curveball_delay_ms": 3000,
    "entry_event_delay_ms": 1000,
    "timer_penalty": -10,
    "curveballs_on_phase_entry": True,
    "max_dispatch_depth": 32,
    "log_level": "INFO",
}

ENV_OVERRIDES = {
    "WORKSHOP_SIM_SCENARIO": "scenario_path",
    "WORKSHOP_SIM_STATE_DIR": "state_dir",
    "WORKSHOP_SIM_LOG_LEVEL": "log_level",
}


def get_config_path(state_dir: Path | str = "state") -> Path:
    """Get path to config file."""
    return Path(state_dir) / ".workshop_config.json"


def load_config(state_dir: Path | str = "state") -> Config:
    """Load config from file, or return defaults if not found."""
    path = get_config_path(state_dir)
    config = DEFAULT_CONFIG.copy()
    config["state_dir"] = str(state_dir)

    if not path.exists():
        return config

    try:
        with open(path, "r", encoding="utf-8") as f:
            saved = json.load(f)
        # Merge with defaults to handle missing keys
        if isinstance(saved, dict):
            config.update(saved)
        return config
    except (json.JSONDecodeError, IOError):
        return config


def save_config(config: Config, state_dir: Path | str = "state") -> bool:
    """Save config to file. Returns True on success."""
    path = get_config_path(state_dir)

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2)
        return True
    except IOError:
        return False


def apply_env_overrides(config: Config) -> Config:
    """Return a copy of config with WORKSHOP_SIM_* environment variables applied."""
    merged = config.copy()
    for var, key in ENV_OVERRIDES.items():
        value = os.environ.get(var)
        if value:
            merged[key] = value
    return merged


def set_scenario(scenario_path: str | None, state_dir: Path | str = "state") -> bool:
    """Save scenario preference."""
    config = load_config(state_dir)
    config["scenario_path"] = scenario_path
    return save_config(config, state_dir)
