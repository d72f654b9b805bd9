from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


DEFAULT_CONFIG: dict[str, Any] = {
    # Slack for float sums such as 33.33 + 33.33 + 33.34.
    "weight_tolerance": 1e-6,
    "max_grade": 5,
    "grade_step": 0.5,
    "progress_bands": {"on_track": 75, "progressing": 50, "slow": 25},
    "health_bands": {"ahead": 10, "on_schedule": -10, "slightly_behind": -25},
}


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class EngineConfig:
    weight_tolerance: float = 1e-6
    max_grade: float = 5
    grade_step: float = 0.5
    progress_bands: dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_CONFIG["progress_bands"])
    )
    health_bands: dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_CONFIG["health_bands"])
    )


DEFAULT = EngineConfig()


def load_config_file(path: str | Path) -> dict[str, Any]:
    """Load engine overrides from a YAML file.

    Format:
      weight_tolerance: 0.001
      progress_bands: {on_track: 80}

    Unknown keys are rejected; band mappings may be partial.
    """
    p = Path(path)
    raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError("config file must be a mapping")

    out: dict[str, Any] = {}
    for k, v in raw.items():
        if k not in DEFAULT_CONFIG:
            raise ConfigError(f"unknown config key: {k}")
        if k in {"progress_bands", "health_bands"}:
            if not isinstance(v, dict):
                raise ConfigError(f"'{k}' must be a mapping of band -> number")
            for band, threshold in v.items():
                if band not in DEFAULT_CONFIG[k]:
                    raise ConfigError(f"unknown band '{band}' in '{k}'")
                if isinstance(threshold, bool) or not isinstance(threshold, (int, float)):
                    raise ConfigError(f"'{k}.{band}' must be a number")
            out[k] = dict(v)
            continue
        if isinstance(v, bool) or not isinstance(v, (int, float)) or v < 0:
            raise ConfigError(f"'{k}' must be a non-negative number")
        out[k] = v

    if "grade_step" in out and out["grade_step"] == 0:
        raise ConfigError("'grade_step' must be positive")
    return out


def merged_config(overrides: dict[str, Any] | None = None) -> EngineConfig:
    """Return DEFAULT_CONFIG merged with optional overrides (bands merge per key)."""
    merged: dict[str, Any] = {
        k: dict(v) if isinstance(v, dict) else v for k, v in DEFAULT_CONFIG.items()
    }
    if overrides:
        for k, v in overrides.items():
            if isinstance(v, dict):
                merged[k].update(v)
            else:
                merged[k] = v
    return EngineConfig(**merged)


def load_and_merge(config_file: str | None) -> EngineConfig:
    if not config_file:
        return merged_config()
    return merged_config(load_config_file(config_file))
