"""
Configuration Management for Stratyx

Provides configuration loading from multiple sources:
- Default values
- Configuration files (YAML, TOML, JSON)
- Environment variables

Configuration precedence (highest to lowest):
1. Explicit overrides passed to load_config()
2. Environment variables (STRATYX_*)
3. Configuration file
4. Default values

There is no process-wide configuration object: load_config() returns a
fresh StratyxConfig that callers pass to the components they construct.
"""

import json
import logging
import logging.handlers
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


# ============================================================================
# Configuration Dataclasses
# ============================================================================


@dataclass
class EngineConfig:
    """Configuration for per-event causal processing."""

    # Events older than this are dropped as stale
    max_event_age_ms: float = 10000.0

    # Processing slower than this logs a warning
    max_processing_ms: float = 500.0

    # Events scoring below this completeness are dropped
    min_data_quality: float = 0.7

    # Retention cap of the temporal feature store
    feature_store_capacity: int = 1000

    # Initial win probability for the running debt-decay estimate
    prior_win_probability: float = 0.5


@dataclass
class StatisticsConfig:
    """Configuration for the statistical significance gate."""

    significance_threshold: float = 0.05
    min_sample_size: int = 5
    confidence_level: float = 0.95


@dataclass
class PatternConfig:
    """Configuration for batch pattern scans."""

    min_occurrences: int = 3
    min_confidence: float = 0.65
    sequence_window: int = 3
    success_window_seconds: float = 60.0


@dataclass
class SyncConfig:
    """Configuration for the real-time delivery layer."""

    poll_interval_ms: float = 5000.0
    reconnect_interval_ms: float = 3000.0
    heartbeat_interval_ms: float = 10000.0
    max_latency_ms: float = 2000.0
    enable_heartbeat: bool = True

    # Queue size above which health checks warn about backlog
    queue_warning_size: int = 100

    # Capacity of the bounded inbound channel
    queue_capacity: int = 1000

    # Trailing average above which the performance monitor reports degraded
    degraded_threshold_ms: float = 500.0


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: str | None = None
    file_max_bytes: int = 10 * 1024 * 1024  # 10MB
    file_backup_count: int = 5


@dataclass
class StratyxConfig:
    """Main configuration container."""

    engine: EngineConfig = field(default_factory=EngineConfig)
    statistics: StatisticsConfig = field(default_factory=StatisticsConfig)
    patterns: PatternConfig = field(default_factory=PatternConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Version of the config format
    config_version: str = "1.0"


SECTIONS = ("engine", "statistics", "patterns", "sync", "logging")


# ============================================================================
# Configuration Loading
# ============================================================================


def get_default_config_paths() -> list[Path]:
    """Get the default paths to search for configuration files."""
    paths = []

    # Current directory
    paths.append(Path.cwd() / "stratyx.yaml")
    paths.append(Path.cwd() / "stratyx.toml")
    paths.append(Path.cwd() / "stratyx.json")
    paths.append(Path.cwd() / ".stratyx.yaml")

    # User home directory
    home = Path.home()
    xdg_config = os.environ.get("XDG_CONFIG_HOME", str(home / ".config"))
    paths.append(Path(xdg_config) / "stratyx" / "config.yaml")
    paths.append(home / ".stratyx.yaml")

    return paths


def load_yaml_config(path: Path) -> dict[str, Any]:
    """Load configuration from a YAML file."""
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


ENV_MAPPINGS: dict[str, tuple[str, str]] = {
    "STRATYX_MAX_EVENT_AGE_MS": ("engine", "max_event_age_ms"),
    "STRATYX_MAX_PROCESSING_MS": ("engine", "max_processing_ms"),
    "STRATYX_MIN_DATA_QUALITY": ("engine", "min_data_quality"),
    "STRATYX_FEATURE_STORE_CAPACITY": ("engine", "feature_store_capacity"),
    "STRATYX_SIGNIFICANCE": ("statistics", "significance_threshold"),
    "STRATYX_MIN_SAMPLE_SIZE": ("statistics", "min_sample_size"),
    "STRATYX_CONFIDENCE_LEVEL": ("statistics", "confidence_level"),
    "STRATYX_PATTERN_MIN_OCCURRENCES": ("patterns", "min_occurrences"),
    "STRATYX_PATTERN_MIN_CONFIDENCE": ("patterns", "min_confidence"),
    "STRATYX_POLL_INTERVAL_MS": ("sync", "poll_interval_ms"),
    "STRATYX_RECONNECT_INTERVAL_MS": ("sync", "reconnect_interval_ms"),
    "STRATYX_HEARTBEAT_INTERVAL_MS": ("sync", "heartbeat_interval_ms"),
    "STRATYX_MAX_LATENCY_MS": ("sync", "max_latency_ms"),
    "STRATYX_QUEUE_WARN_SIZE": ("sync", "queue_warning_size"),
    "STRATYX_LOG_LEVEL": ("logging", "level"),
    "STRATYX_LOG_FILE": ("logging", "file"),
}


def _convert_env_value(value: str) -> Any:
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    if value.isdigit():
        return int(value)
    try:
        return float(value)
    except ValueError:
        return value


def load_env_config(environ: dict[str, str] | None = None) -> dict[str, Any]:
    """Load configuration from environment variables."""
    environ = os.environ if environ is None else environ
    config: dict[str, Any] = {}

    for env_var, (section, key) in ENV_MAPPINGS.items():
        value = environ.get(env_var)
        if value is not None:
            config.setdefault(section, {})[key] = _convert_env_value(value)

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


def dict_to_config(data: dict[str, Any]) -> StratyxConfig:
    """Convert a dictionary to StratyxConfig, ignoring unknown keys."""
    config = StratyxConfig()

    for section in SECTIONS:
        target = getattr(config, section)
        for key, value in (data.get(section) or {}).items():
            if hasattr(target, key):
                setattr(target, key, value)
            else:
                logger.warning(f"Ignoring unknown config key: {section}.{key}")

    return config


def load_config(
    config_file: Path | None = None,
    include_env: bool = True,
    overrides: dict[str, Any] | None = None,
) -> StratyxConfig:
    """
    Load configuration from all sources.

    Args:
        config_file: Explicit path to a config file (optional)
        include_env: Whether to include environment variables
        overrides: Nested dict applied last, e.g. {"engine": {"max_event_age_ms": 5000}}

    Returns:
        Merged StratyxConfig
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

    if overrides:
        config_data = merge_configs(config_data, overrides)

    return dict_to_config(config_data)


# ============================================================================
# Configuration Saving
# ============================================================================


def config_to_dict(config: StratyxConfig) -> dict[str, Any]:
    """Convert StratyxConfig to a dictionary."""
    return asdict(config)


def save_config(config: StratyxConfig, path: Path) -> None:
    """
    Save configuration to a file.

    Args:
        config: Configuration to save
        path: Path to save to (format detected from extension)
    """
    data = config_to_dict(config)
    suffix = path.suffix.lower()

    if suffix in (".yaml", ".yml"):
        with open(path, "w") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
    elif suffix == ".json":
        with open(path, "w") as f:
            json.dump(data, f, indent=2)
    else:
        raise ValueError(f"Unknown config format: {suffix}")

    logger.info(f"Saved config to: {path}")


# ============================================================================
# Logging
# ============================================================================


def configure_logging(config: LoggingConfig) -> None:
    """Configure root logging from a LoggingConfig. Called by entry points only."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if config.file:
        handlers.append(
            logging.handlers.RotatingFileHandler(
                config.file,
                maxBytes=config.file_max_bytes,
                backupCount=config.file_backup_count,
            )
        )

    logging.basicConfig(
        level=getattr(logging, str(config.level).upper(), logging.INFO),
        format=config.format,
        handlers=handlers,
        force=True,
    )


# ============================================================================
# Configuration Templates
# ============================================================================

DEFAULT_CONFIG_YAML = """# Stratyx Configuration

# Per-event causal processing
engine:
  max_event_age_ms: 10000      # drop events older than this
  max_processing_ms: 500       # warn when one event takes longer
  min_data_quality: 0.7        # drop events scoring below this completeness
  feature_store_capacity: 1000 # oldest features evicted first

# Significance gate for insights
statistics:
  significance_threshold: 0.05
  min_sample_size: 5
  confidence_level: 0.95

# Batch pattern scans
patterns:
  min_occurrences: 3
  min_confidence: 0.65
  sequence_window: 3

# Real-time delivery
sync:
  poll_interval_ms: 5000
  reconnect_interval_ms: 3000
  heartbeat_interval_ms: 10000
  max_latency_ms: 2000
  queue_warning_size: 100

# Logging settings
logging:
  level: INFO
  # file: /path/to/stratyx.log
"""


def generate_default_config(path: Path) -> None:
    """Generate a default configuration file."""
    suffix = path.suffix.lower()

    if suffix in (".yaml", ".yml"):
        path.write_text(DEFAULT_CONFIG_YAML)
    else:
        save_config(StratyxConfig(), path)

    logger.info(f"Generated default config at: {path}")
