"""
Configuration Management for fragscore

Provides configuration loading from multiple sources:
- Default values
- Configuration files (YAML, TOML, JSON)
- Environment variables

Configuration precedence (highest to lowest):
1. Environment variables (FRAGSCORE_*)
2. Configuration file
3. Default values
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from fragscore.core.constants import DEFAULT_CACHE_TTL_SECONDS, DEFAULT_PAST_MATCH_COUNT

logger = logging.getLogger(__name__)


# ============================================================================
# Configuration Dataclasses
# ============================================================================


@dataclass
class CacheConfig:
    """Configuration for the match-scoped aggregate cache."""

    # Disable to force every computation to run (benchmarks, determinism tests)
    enabled: bool = True
    ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS


@dataclass
class DashboardConfig:
    """Configuration for dashboard trend windows."""

    default_match_count: int = DEFAULT_PAST_MATCH_COUNT
    trend_precision: int = 1
    # How many "most improved" / "least improved" stats the summary shows
    mover_limit: int = 2


@dataclass
class DatabaseConfig:
    """Configuration for the SQLite event store."""

    path: str | None = None
    echo: bool = False


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class FragscoreConfig:
    """Main configuration container."""

    cache: CacheConfig = field(default_factory=CacheConfig)
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    config_version: str = "1.0"


# ============================================================================
# Configuration Loading
# ============================================================================


def get_default_config_paths() -> list[Path]:
    """Get the default paths to search for configuration files."""
    home = Path.home()
    xdg_config = os.environ.get("XDG_CONFIG_HOME", str(home / ".config"))

    return [
        Path.cwd() / "fragscore.yaml",
        Path.cwd() / "fragscore.toml",
        Path.cwd() / "fragscore.json",
        Path(xdg_config) / "fragscore" / "config.yaml",
        home / ".fragscore.yaml",
    ]


def load_yaml_config(path: Path) -> dict[str, Any]:
    """Load configuration from a YAML file."""
    import yaml

    with open(path) as f:
        return yaml.safe_load(f) or {}


def load_toml_config(path: Path) -> dict[str, Any]:
    """Load configuration from a TOML file."""
    import tomllib

    with open(path, "rb") as f:
        return tomllib.load(f)


def load_json_config(path: Path) -> dict[str, Any]:
    """Load configuration from a JSON file."""
    with open(path) as f:
        return json.load(f)


def load_config_file(path: Path) -> dict[str, Any]:
    """Load configuration from a file, detecting format from extension."""
    if not path.exists():
        return {}

    suffix = path.suffix.lower()
    if suffix in (".yaml", ".yml"):
        return load_yaml_config(path)
    elif suffix == ".toml":
        return load_toml_config(path)
    elif suffix == ".json":
        return load_json_config(path)
    else:
        logger.warning(f"Unknown config file format: {suffix}")
        return {}


def _coerce_env_value(value: str) -> Any:
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    if value.isdigit():
        return int(value)
    try:
        return float(value)
    except ValueError:
        return value


def load_env_config() -> dict[str, Any]:
    """Load configuration from environment variables."""
    config: dict[str, Any] = {}

    # (section, key, coerce); string-typed settings are taken verbatim
    env_mappings = {
        "FRAGSCORE_CACHE_ENABLED": ("cache", "enabled", True),
        "FRAGSCORE_CACHE_TTL": ("cache", "ttl_seconds", True),
        "FRAGSCORE_MATCH_COUNT": ("dashboard", "default_match_count", True),
        "FRAGSCORE_TREND_PRECISION": ("dashboard", "trend_precision", True),
        "FRAGSCORE_DB_PATH": ("database", "path", False),
        "FRAGSCORE_LOG_LEVEL": ("logging", "level", False),
    }

    for env_var, (section, key, coerce) in env_mappings.items():
        value = os.environ.get(env_var)
        if value is not None:
            config.setdefault(section, {})[key] = _coerce_env_value(value) if coerce else value

    return config


def merge_configs(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge two configuration dictionaries."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_configs(result[key], value)
        else:
            result[key] = value

    return result


def dict_to_config(data: dict[str, Any]) -> FragscoreConfig:
    """Convert a dictionary to FragscoreConfig, ignoring unknown keys."""
    config = FragscoreConfig()

    for section_name in ("cache", "dashboard", "database", "logging"):
        section = getattr(config, section_name)
        for key, value in (data.get(section_name) or {}).items():
            if hasattr(section, key):
                setattr(section, key, value)
            else:
                logger.warning(f"Ignoring unknown config key: {section_name}.{key}")

    return config


def load_config(config_file: Path | None = None, include_env: bool = True) -> FragscoreConfig:
    """
    Load configuration from all sources.

    Args:
        config_file: Explicit path to a config file (optional)
        include_env: Whether to include environment variables

    Returns:
        Merged FragscoreConfig
    """
    config_data: dict[str, Any] = {}

    if config_file:
        config_data = load_config_file(config_file)
        logger.info(f"Loaded config from: {config_file}")
    else:
        for path in get_default_config_paths():
            if path.exists():
                config_data = load_config_file(path)
                logger.info(f"Loaded config from: {path}")
                break

    if include_env:
        config_data = merge_configs(config_data, load_env_config())

    return dict_to_config(config_data)


def config_to_dict(config: FragscoreConfig) -> dict[str, Any]:
    """Convert FragscoreConfig to a dictionary."""
    return asdict(config)
