"""
Configuration management for osqtool.

Loads the verification and scheduling Policy from a YAML file
(default: $OSQTOOL_HOME/policy.yaml). Command-line flags override file
values.
"""

import os
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from osqtool.durations import duration_seconds
from osqtool.errors import ConfigError
from osqtool.schemas import Policy


POLICY_FILE = "policy.yaml"

INTERVAL_KEYS = ("default_interval", "min_interval", "max_interval")
DURATION_KEYS = ("max_duration", "max_query_daily_duration", "max_total_daily_duration")
INT_KEYS = ("concurrency_limit", "max_results")
LIST_KEYS = ("tag_intervals", "exclude", "exclude_tags", "platforms")


def get_osqtool_home() -> Path:
    """Directory holding osqtool configuration."""
    return Path(os.environ.get("OSQTOOL_HOME", "~/.config/osqtool")).expanduser()


def _split_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    if isinstance(value, (list, tuple, set, frozenset)):
        return [str(v).strip() for v in value if str(v).strip()]
    raise ValueError(f"expected a list or comma-separated string, got {value!r}")


def _load_yaml(path: Path) -> Dict[str, Any]:
    """Load and parse a YAML policy file."""
    try:
        with open(path, "r") as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax in {path}: {e}")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}")
    if not config:
        raise ConfigError(f"Configuration file is empty: {path}")
    if not isinstance(config, dict):
        raise ConfigError(f"Configuration file must hold a mapping: {path}")
    return config


def policy_from_dict(data: Dict[str, Any]) -> Policy:
    """
    Build a Policy from plain values.

    Intervals and durations accept seconds or duration literals ("6h").
    List options accept YAML lists or comma-separated strings.

    Raises:
        ConfigError: On unknown keys or invalid values
    """
    known = set(INTERVAL_KEYS + DURATION_KEYS + INT_KEYS + LIST_KEYS)
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown policy option(s): {', '.join(unknown)}")

    kwargs: Dict[str, Any] = {}
    try:
        for key, value in data.items():
            if key in INTERVAL_KEYS:
                kwargs[key] = int(duration_seconds(value))
            elif key in DURATION_KEYS:
                seconds = duration_seconds(value)
                kwargs[key] = None if seconds is None else float(seconds)
            elif key in INT_KEYS:
                kwargs[key] = None if value is None else int(value)
            else:
                kwargs[key] = _split_list(value)
        if kwargs.get("concurrency_limit") is None:
            kwargs.pop("concurrency_limit", None)
        return Policy(**kwargs)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid policy: {e}")


def policy_to_dict(policy: Policy) -> Dict[str, Any]:
    """Plain, YAML-friendly form of a Policy."""
    data = asdict(policy)
    for key in LIST_KEYS:
        data[key] = sorted(data[key]) if key != "tag_intervals" else list(data[key])
    return data


def load_policy(config_path: Optional[Path] = None, **overrides: Any) -> Policy:
    """
    Load the Policy from YAML and apply overrides.

    Args:
        config_path: Path to policy file. Defaults to $OSQTOOL_HOME/policy.yaml,
            which may be absent (built-in defaults apply).
        **overrides: Option values taking precedence; None means "not set"

    Returns:
        Policy instance

    Raises:
        ConfigError: If an explicit file is missing or the policy is invalid
    """
    data: Dict[str, Any] = {}
    if config_path is not None:
        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigError(f"Configuration file not found: {config_path}")
        data = _load_yaml(config_path)
    else:
        default_path = get_osqtool_home() / POLICY_FILE
        if default_path.exists():
            data = _load_yaml(default_path)

    data.update({k: v for k, v in overrides.items() if v is not None})
    return policy_from_dict(data)
