"""
Configuration — Centralized settings management

Config hierarchy (highest to lowest priority):
  1. Command-line flags (applied by the CLI on top of load())
  2. Environment variables
  3. User config (~/.evtq/config.yaml)
  4. Defaults

Credentials for remote hosts are NEVER read from config files.
They are only accepted on the command line.

Environment variables:
- EVTQ_OUTPUT_FORMAT: Default output format (json, xml, tsv, csv)
- EVTQ_COLUMNS: Column list for TSV, CSV and JSON output
- EVTQ_DATEFMT: Date format (%Y %m %d %H %M %S %.3f %z)
- EVTQ_QUIESCENCE_INTERVAL: Seconds without events before a live read ends
- EVTQ_PIPELINE_MODE: "locked" or "queued" output synchronization
- EVTQ_QUEUE_SIZE: Bound of the queued writer (default: 1024)
- EVTQ_METADATA_CACHE: Field-name cache file imported at startup
"""

import os
import yaml
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional, Dict, Any

from .core.render import DEFAULT_DATEFMT
from .errors import ConfigError
from .output.columns import parse_columns


OUTPUT_FORMATS = ("json", "xml", "tsv", "csv")
PIPELINE_MODES = ("locked", "queued")


@dataclass
class OutputConfig:
    """Output encoding and destination preferences."""
    format: str = "json"
    json_pretty: bool = False
    append: bool = False
    gzip: bool = False
    columns: Optional[str] = None     # Column list, e.g. "timestamp,provider,variant1,...,variant8"
    datefmt: str = DEFAULT_DATEFMT

    def validate(self) -> Optional[str]:
        """Validate config. Returns error message or None if valid."""
        if self.format not in OUTPUT_FORMATS:
            return f"Unknown output format '{self.format}'. Valid: {', '.join(OUTPUT_FORMATS)}"
        if self.columns is not None:
            try:
                parse_columns(self.columns)
            except ValueError as e:
                return str(e)
        if not self.datefmt:
            return "Date format must not be empty"
        return None


@dataclass
class LiveConfig:
    """Live subscription behaviour."""
    quiescence_interval: float = 1.0  # seconds without new events = drained

    def validate(self) -> Optional[str]:
        """Validate config. Returns error message or None if valid."""
        if self.quiescence_interval <= 0:
            return f"Quiescence interval must be > 0 (got {self.quiescence_interval})"
        return None


@dataclass
class MetadataConfig:
    """Field-name metadata sources."""
    load_system: bool = True          # Introspect the host's providers
    cache_path: Optional[str] = None  # Imported after host population

    def validate(self) -> Optional[str]:
        return None


@dataclass
class PipelineConfig:
    """Output synchronization strategy."""
    mode: str = "locked"
    queue_size: int = 1024

    def validate(self) -> Optional[str]:
        """Validate config. Returns error message or None if valid."""
        if self.mode not in PIPELINE_MODES:
            return f"Unknown pipeline mode '{self.mode}'. Valid: {', '.join(PIPELINE_MODES)}"
        if self.queue_size < 1:
            return f"Queue size must be >= 1 (got {self.queue_size})"
        return None


@dataclass
class Config:
    """Application configuration."""
    output: OutputConfig = field(default_factory=OutputConfig)
    live: LiveConfig = field(default_factory=LiveConfig)
    metadata: MetadataConfig = field(default_factory=MetadataConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)

    def validate(self) -> Optional[str]:
        """Validate every section, returning the first error found."""
        for section in (self.output, self.live, self.metadata, self.pipeline):
            error = section.validate()
            if error:
                return error
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "output": {
                "format": self.output.format,
                "json_pretty": self.output.json_pretty,
                "append": self.output.append,
                "gzip": self.output.gzip,
                "columns": self.output.columns,
                "datefmt": self.output.datefmt,
            },
            "live": {
                "quiescence_interval": self.live.quiescence_interval,
            },
            "metadata": {
                "load_system": self.metadata.load_system,
                "cache_path": self.metadata.cache_path,
            },
            "pipeline": {
                "mode": self.pipeline.mode,
                "queue_size": self.pipeline.queue_size,
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Config':
        """Create from dictionary."""
        output_data = data.get("output", {}) or {}
        live_data = data.get("live", {}) or {}
        metadata_data = data.get("metadata", {}) or {}
        pipeline_data = data.get("pipeline", {}) or {}

        columns = output_data.get("columns")
        if isinstance(columns, list):
            columns = ",".join(str(c) for c in columns)

        return cls(
            output=OutputConfig(
                format=str(output_data.get("format", "json")).lower(),
                json_pretty=bool(output_data.get("json_pretty", False)),
                append=bool(output_data.get("append", False)),
                gzip=bool(output_data.get("gzip", False)),
                columns=columns,
                datefmt=str(output_data.get("datefmt", DEFAULT_DATEFMT)),
            ),
            live=LiveConfig(
                quiescence_interval=float(live_data.get("quiescence_interval", 1.0)),
            ),
            metadata=MetadataConfig(
                load_system=bool(metadata_data.get("load_system", True)),
                cache_path=metadata_data.get("cache_path"),
            ),
            pipeline=PipelineConfig(
                mode=str(pipeline_data.get("mode", "locked")).lower(),
                queue_size=int(pipeline_data.get("queue_size", 1024)),
            ),
        )


class ConfigManager:
    """
    Manages configuration loading and persistence.

    Hierarchy:
      1. Environment variables
      2. User config (~/.evtq/config.yaml)
      3. Defaults
    """

    USER_CONFIG_DIR = Path.home() / ".evtq"
    USER_CONFIG_FILE = "config.yaml"

    def __init__(self, config_dir: Optional[Path] = None):
        self.config_dir = Path(config_dir) if config_dir else self.USER_CONFIG_DIR
        self._config: Optional[Config] = None

    @property
    def user_config_path(self) -> Path:
        return self.config_dir / self.USER_CONFIG_FILE

    def load(self) -> Config:
        """Load configuration from all sources."""
        if self._config is not None:
            return self._config

        config_data: Dict[str, Any] = {}

        # Layer 1: User config
        if self.user_config_path.exists():
            try:
                with open(self.user_config_path, encoding="utf-8") as f:
                    user_data = yaml.safe_load(f) or {}
                if isinstance(user_data, dict):
                    config_data = self._merge(config_data, user_data)
            except (OSError, yaml.YAMLError):
                pass  # Ignore malformed user config

        # Layer 2: Environment overrides
        env_format = os.environ.get("EVTQ_OUTPUT_FORMAT")
        if env_format:
            config_data.setdefault("output", {})["format"] = env_format
        env_columns = os.environ.get("EVTQ_COLUMNS")
        if env_columns:
            config_data.setdefault("output", {})["columns"] = env_columns
        env_datefmt = os.environ.get("EVTQ_DATEFMT")
        if env_datefmt:
            config_data.setdefault("output", {})["datefmt"] = env_datefmt
        env_cache = os.environ.get("EVTQ_METADATA_CACHE")
        if env_cache:
            config_data.setdefault("metadata", {})["cache_path"] = env_cache
        env_mode = os.environ.get("EVTQ_PIPELINE_MODE")
        if env_mode:
            config_data.setdefault("pipeline", {})["mode"] = env_mode

        try:
            config = Config.from_dict(config_data)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid configuration in {self.user_config_path}: {e}") from e
        config.live.quiescence_interval = _get_float_env(
            "EVTQ_QUIESCENCE_INTERVAL", config.live.quiescence_interval
        )
        config.pipeline.queue_size = _get_int_env(
            "EVTQ_QUEUE_SIZE", config.pipeline.queue_size
        )

        self._config = config
        return self._config

    def save_user(self, config: Config) -> Path:
        """
        Save configuration to the user config file (the CLI's --save-config).

        Raises:
            ConfigError: the file cannot be written
        """
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            with open(self.user_config_path, 'w', encoding="utf-8") as f:
                yaml.dump(config.to_dict(), f, default_flow_style=False)
        except OSError as e:
            raise ConfigError(f"Unable to save configuration to {self.user_config_path}: {e}") from e

        self._config = config
        return self.user_config_path

    def _merge(self, base: Dict, override: Dict) -> Dict:
        """Deep merge two dicts, override wins."""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge(result[key], value)
            else:
                result[key] = value
        return result


def _get_int_env(key: str, default: int) -> int:
    """Get integer from environment variable."""
    value = os.environ.get(key, "")
    if value:
        try:
            return int(value)
        except ValueError:
            pass
    return default


def _get_float_env(key: str, default: float) -> float:
    """Get float from environment variable."""
    value = os.environ.get(key, "")
    if value:
        try:
            return float(value)
        except ValueError:
            pass
    return default
