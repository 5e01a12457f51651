"""PivotPlay configuration.

Loads from config.yaml if present, with environment variable overrides.
Environment variables use the pattern: PIVOT_<SECTION>_<KEY> (uppercase).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8000
    env: str = "dev"  # "dev" or "prod"


@dataclass
class TransferConfig:
    max_attempts: int = 3
    retry_window_seconds: float = 300.0
    ack_timeout_seconds: float = 30.0
    sweep_interval_seconds: float = 60.0
    backoff_base: float = 2.0
    poll_interval_seconds: float = 2.0  # HTTP channel confirmation polling


@dataclass
class CodecConfig:
    max_payload_bytes: int = 10 * 1024 * 1024
    schema_version: int = 1


@dataclass
class HeatmapConfig:
    grid_width: int = 105
    grid_height: int = 68
    palette_size: int = 15


@dataclass
class RecorderConfig:
    max_accuracy_m: float = 15.0


@dataclass
class QueueConfig:
    max_size: int = 1_000


@dataclass
class StorageConfig:
    base_dir: str = "data/workouts"


@dataclass
class LoggingConfig:
    level: str = "info"
    format: str = "console"  # "console" or "json"


@dataclass
class AppConfig:
    server: ServerConfig = field(default_factory=ServerConfig)
    transfer: TransferConfig = field(default_factory=TransferConfig)
    codec: CodecConfig = field(default_factory=CodecConfig)
    heatmap: HeatmapConfig = field(default_factory=HeatmapConfig)
    recorder: RecorderConfig = field(default_factory=RecorderConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


_SECTIONS = ("server", "transfer", "codec", "heatmap", "recorder", "queue", "storage", "logging")


def _apply_env_overrides(config: AppConfig) -> None:
    """Override config values from environment variables."""
    mapping = {
        "PIVOT_SERVER_HOST": lambda v: setattr(config.server, "host", v),
        "PIVOT_SERVER_PORT": lambda v: setattr(config.server, "port", int(v)),
        "PIVOT_SERVER_ENV": lambda v: setattr(config.server, "env", v),
        "PIVOT_TRANSFER_MAX_ATTEMPTS": lambda v: setattr(config.transfer, "max_attempts", int(v)),
        "PIVOT_TRANSFER_RETRY_WINDOW": lambda v: setattr(config.transfer, "retry_window_seconds", float(v)),
        "PIVOT_TRANSFER_ACK_TIMEOUT": lambda v: setattr(config.transfer, "ack_timeout_seconds", float(v)),
        "PIVOT_TRANSFER_SWEEP_INTERVAL": lambda v: setattr(config.transfer, "sweep_interval_seconds", float(v)),
        "PIVOT_TRANSFER_POLL_INTERVAL": lambda v: setattr(config.transfer, "poll_interval_seconds", float(v)),
        "PIVOT_CODEC_MAX_PAYLOAD_BYTES": lambda v: setattr(config.codec, "max_payload_bytes", int(v)),
        "PIVOT_HEATMAP_GRID_WIDTH": lambda v: setattr(config.heatmap, "grid_width", int(v)),
        "PIVOT_HEATMAP_GRID_HEIGHT": lambda v: setattr(config.heatmap, "grid_height", int(v)),
        "PIVOT_HEATMAP_PALETTE_SIZE": lambda v: setattr(config.heatmap, "palette_size", int(v)),
        "PIVOT_RECORDER_MAX_ACCURACY": lambda v: setattr(config.recorder, "max_accuracy_m", float(v)),
        "PIVOT_QUEUE_MAX_SIZE": lambda v: setattr(config.queue, "max_size", int(v)),
        "PIVOT_STORAGE_BASE_DIR": lambda v: setattr(config.storage, "base_dir", v),
        "PIVOT_LOG_LEVEL": lambda v: setattr(config.logging, "level", v),
        "PIVOT_LOG_FORMAT": lambda v: setattr(config.logging, "format", v),
    }
    for env_key, setter in mapping.items():
        val = os.environ.get(env_key)
        if val is not None:
            setter(val)


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load configuration from YAML file + environment overrides."""
    config = AppConfig()

    if config_path is None:
        config_path = Path("config.yaml")
    else:
        config_path = Path(config_path)

    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}

        for section_name in _SECTIONS:
            section = getattr(config, section_name)
            for k, v in (raw.get(section_name) or {}).items():
                if hasattr(section, k):
                    setattr(section, k, v)

    # Environment overrides always win
    _apply_env_overrides(config)
    return config
