"""
Configuration management and loading.

Handles application settings from an optional YAML file and environment variables.
"""

import os
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

DEFAULT_PRICING_URL = (
    "https://raw.githubusercontent.com/erwint/claude-code-statusline/main/pricing.json"
)
DEFAULT_CONFIG_PATH = Path.home() / ".config" / "claude-code-statusline" / "config.yaml"


class AggregationMode(Enum):
    """How day buckets are folded into reporting windows."""
    FIXED = "fixed"  # today, Mon-Sun week, calendar month
    SLIDING = "sliding"  # trailing 24h, 7d, retention window


@dataclass(frozen=True)
class StatuslineConfig:
    """Settings threaded through the cost computation."""
    aggregation_mode: AggregationMode = AggregationMode.FIXED
    retention_days: int = 31
    dedup_cap: int = 100_000
    pricing_ttl_hours: float = 24.0
    pricing_url: str = DEFAULT_PRICING_URL
    cache_dir: Path = Path.home() / ".cache" / "claude-code-statusline"
    projects_dir: Path = Path.home() / ".claude" / "projects"
    lock_attempts: int = 10
    lock_backoff_seconds: float = 0.05
    debug: bool = False
    debug_log_path: Path = Path("/tmp/claude-statusline.log")

    def __post_init__(self):
        """Validate numeric settings are usable."""
        if self.retention_days <= 0:
            raise ValueError("retention_days must be > 0")
        if self.dedup_cap <= 0:
            raise ValueError("dedup_cap must be > 0")
        if self.pricing_ttl_hours <= 0:
            raise ValueError("pricing_ttl_hours must be > 0")
        if self.lock_attempts <= 0:
            raise ValueError("lock_attempts must be > 0")
        if self.lock_backoff_seconds < 0:
            raise ValueError("lock_backoff_seconds cannot be negative")

    @property
    def cache_file(self) -> Path:
        return self.cache_dir / "cost_cache.json"

    @property
    def lock_file(self) -> Path:
        return self.cache_dir / "cost_cache.lock"

    @property
    def pricing_cache_file(self) -> Path:
        return self.cache_dir / "pricing.json"


_ALLOWED_KEYS = {
    'aggregation_mode', 'retention_days', 'dedup_cap', 'pricing_ttl_hours',
    'pricing_url', 'cache_dir', 'projects_dir', 'lock_attempts',
    'lock_backoff_seconds', 'debug', 'debug_log_path',
}
_INT_KEYS = {'retention_days', 'dedup_cap', 'lock_attempts'}
_FLOAT_KEYS = {'pricing_ttl_hours', 'lock_backoff_seconds'}
_PATH_KEYS = {'cache_dir', 'projects_dir', 'debug_log_path'}


def load_config(path: Optional[str] = None, env: Optional[Mapping[str, str]] = None) -> StatuslineConfig:
    """Load configuration from YAML (if present) and apply environment overrides.

    An explicitly given path must exist; the default path is optional.

    Args:
        path: Path to YAML configuration file
        env: Environment mapping (defaults to os.environ)

    Returns:
        Validated StatuslineConfig

    Raises:
        FileNotFoundError: If an explicit config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    if env is None:
        env = os.environ

    values: Dict[str, Any] = {}

    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    if config_path.exists():
        values.update(_read_yaml(config_path))
    elif path:
        raise FileNotFoundError(f"Config file not found: {path}")

    config = _build_config(values)
    return _apply_env(config, env)


def _read_yaml(config_path: Path) -> Dict[str, Any]:
    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {config_path}: {e}")

    if raw_config is None:
        return {}
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration file must contain a mapping")

    unknown_keys = set(raw_config.keys()) - _ALLOWED_KEYS
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    return raw_config


def _build_config(values: Dict[str, Any]) -> StatuslineConfig:
    kwargs: Dict[str, Any] = {}
    for key, value in values.items():
        if key == 'aggregation_mode':
            kwargs[key] = _parse_mode(value)
        elif key in _INT_KEYS:
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"'{key}' must be an integer")
            kwargs[key] = value
        elif key in _FLOAT_KEYS:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"'{key}' must be a number")
            kwargs[key] = float(value)
        elif key in _PATH_KEYS:
            if not isinstance(value, str):
                raise ValueError(f"'{key}' must be a string")
            kwargs[key] = Path(value).expanduser()
        elif key == 'debug':
            if not isinstance(value, bool):
                raise ValueError("'debug' must be a boolean")
            kwargs[key] = value
        else:
            if not isinstance(value, str):
                raise ValueError(f"'{key}' must be a string")
            kwargs[key] = value
    return StatuslineConfig(**kwargs)


def _apply_env(config: StatuslineConfig, env: Mapping[str, str]) -> StatuslineConfig:
    overrides: Dict[str, Any] = {}

    mode = env.get("CLAUDE_STATUS_AGGREGATION")
    if mode:
        overrides['aggregation_mode'] = _parse_mode(mode)

    debug = env.get("CLAUDE_STATUS_DEBUG")
    if debug:
        overrides['debug'] = debug.lower() in ("true", "1", "yes")

    cache_dir = env.get("CLAUDE_STATUS_CACHE_DIR")
    if cache_dir:
        overrides['cache_dir'] = Path(cache_dir).expanduser()

    projects_dir = env.get("CLAUDE_STATUS_PROJECTS_DIR")
    if projects_dir:
        overrides['projects_dir'] = Path(projects_dir).expanduser()

    if not overrides:
        return config
    return replace(config, **overrides)


def _parse_mode(value: Any) -> AggregationMode:
    if not isinstance(value, str):
        raise ValueError("'aggregation_mode' must be a string")
    try:
        return AggregationMode(value.lower())
    except ValueError:
        valid_modes = [mode.value for mode in AggregationMode]
        raise ValueError(f"'aggregation_mode' must be one of: {valid_modes}")
