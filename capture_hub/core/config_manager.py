"""Configuration loading and validation.

The configuration lives in a JSON file::

    {
      "screenshot": {"format": "png", "quality": 90,
                     "captureInterval": 30, "outputFolder": "./screenshots"},
      "worker": {"command": null, "readyTimeout": 10, "shutdownGrace": 2,
                 "captureTimeout": 60},
      "server": {"host": "0.0.0.0", "httpPort": 8080, "httpsPort": 8443,
                 "certFile": "certs/cert.pem", "keyFile": "certs/key.pem",
                 "publicDir": null},
      "logging": {"level": "info", "file": "logs/capture_hub.log"}
    }

Every section is optional and merged key by key over the defaults. Values
are validated once here; nothing downstream clamps or repairs them.
"""

from __future__ import annotations

import copy
import json
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import aiofiles

from .errors import ConfigError
from .logging_utils import get_module_logger
from .paths import CERT_FILE, KEY_FILE, MASTER_LOG_FILE, PUBLIC_DIR


logger = get_module_logger("ConfigManager")

IMAGE_FORMATS = ("png", "jpg", "jpeg")
LOG_LEVELS = ("critical", "error", "warning", "info", "debug")

DEFAULT_CONFIG: Dict[str, Dict[str, Any]] = {
    "screenshot": {
        "format": "png",
        "quality": 90,
        "captureInterval": 30,
        "outputFolder": "./screenshots",
    },
    "worker": {
        "command": None,
        "readyTimeout": 10.0,
        "shutdownGrace": 2.0,
        "captureTimeout": 60.0,
    },
    "server": {
        "host": "0.0.0.0",
        "httpPort": 8080,
        "httpsPort": 8443,
        "certFile": str(CERT_FILE),
        "keyFile": str(KEY_FILE),
        "publicDir": None,
    },
    "logging": {
        "level": "info",
        "file": str(MASTER_LOG_FILE),
    },
}


def default_worker_command() -> Tuple[str, ...]:
    """Launch the bundled reference worker with the current interpreter."""
    return (sys.executable, "-m", "capture_hub.worker")


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass(frozen=True)
class CaptureConfig:
    image_format: str = "png"
    quality: int = 90
    capture_interval_seconds: int = 30
    output_root: Path = Path("./screenshots")

    def __post_init__(self) -> None:
        if self.image_format not in IMAGE_FORMATS:
            raise ConfigError(
                f"Invalid screenshot format: {self.image_format!r}. "
                "Must be 'png', 'jpg', or 'jpeg'"
            )
        if not _is_int(self.quality) or not 1 <= self.quality <= 100:
            raise ConfigError(f"Invalid quality: {self.quality!r}. Must be between 1 and 100")
        if not _is_int(self.capture_interval_seconds) or self.capture_interval_seconds < 1:
            raise ConfigError(
                f"Invalid capture interval: {self.capture_interval_seconds!r}. "
                "Must be at least 1 second"
            )
        if not str(self.output_root).strip():
            raise ConfigError("Output folder cannot be empty")
        if "\n" in str(self.output_root) or "\r" in str(self.output_root):
            raise ConfigError("Output folder cannot contain line breaks")

    @property
    def is_jpeg(self) -> bool:
        return self.image_format in ("jpg", "jpeg")

    def to_snapshot(self) -> Dict[str, Any]:
        """Payload of the outbound ``config`` observer message."""
        return {
            "format": self.image_format,
            "quality": self.quality,
            "captureIntervalSeconds": self.capture_interval_seconds,
            "outputRoot": str(self.output_root),
        }


@dataclass(frozen=True)
class WorkerConfig:
    command: Tuple[str, ...] = field(default_factory=default_worker_command)
    ready_timeout: float = 10.0
    shutdown_grace: float = 2.0
    capture_timeout: float = 60.0

    def __post_init__(self) -> None:
        if not self.command or not all(isinstance(part, str) and part for part in self.command):
            raise ConfigError("Worker command must be a non-empty list of strings")
        for name in ("ready_timeout", "shutdown_grace", "capture_timeout"):
            value = getattr(self, name)
            if not _is_number(value) or value <= 0:
                raise ConfigError(f"Invalid worker {name}: {value!r}. Must be a positive number")


@dataclass(frozen=True)
class ServerConfig:
    host: str = "0.0.0.0"
    http_port: int = 8080
    https_port: int = 8443
    cert_file: Path = CERT_FILE
    key_file: Path = KEY_FILE
    public_dir: Path = PUBLIC_DIR

    def __post_init__(self) -> None:
        if not isinstance(self.host, str) or not self.host:
            raise ConfigError("Server host cannot be empty")
        for name in ("http_port", "https_port"):
            value = getattr(self, name)
            if not _is_int(value) or not 0 <= value <= 65535:
                raise ConfigError(f"Invalid server {name}: {value!r}")


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "info"
    file: Optional[Path] = MASTER_LOG_FILE

    def __post_init__(self) -> None:
        if self.level not in LOG_LEVELS:
            raise ConfigError(f"Invalid log level: {self.level!r}")


@dataclass(frozen=True)
class AppConfig:
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    worker: WorkerConfig = field(default_factory=WorkerConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def screenshot_snapshot(self) -> Dict[str, Any]:
        return self.capture.to_snapshot()


def _merge_sections(user_config: Any) -> Dict[str, Dict[str, Any]]:
    if not isinstance(user_config, dict):
        raise ConfigError("Configuration root must be a JSON object")

    merged = copy.deepcopy(DEFAULT_CONFIG)
    for section, values in user_config.items():
        if section not in merged:
            logger.warning("Ignoring unknown config section: %s", section)
            continue
        if values is None:
            continue
        if not isinstance(values, dict):
            raise ConfigError(f"Config section '{section}' must be an object")
        merged[section].update(values)
    return merged


def build_config(user_config: Any) -> AppConfig:
    """Merge a decoded JSON document over the defaults and validate it."""
    merged = _merge_sections(user_config)
    shot = merged["screenshot"]
    worker = merged["worker"]
    server = merged["server"]
    log = merged["logging"]

    output_folder = shot["outputFolder"]
    if not isinstance(output_folder, str):
        raise ConfigError("Output folder must be a string")
    # Path("") collapses to ".", so emptiness is checked on the raw string
    if not output_folder.strip():
        raise ConfigError("Output folder cannot be empty")

    command = worker["command"]
    if command is None:
        command = default_worker_command()
    elif isinstance(command, str):
        command = (command,)
    elif isinstance(command, list):
        command = tuple(command)
    else:
        raise ConfigError("Worker command must be a string or a list of strings")

    level = log["level"]
    if isinstance(level, str):
        level = level.lower()

    public_dir = server["publicDir"]
    log_file = log["file"]

    try:
        return AppConfig(
            capture=CaptureConfig(
                image_format=shot["format"],
                quality=shot["quality"],
                capture_interval_seconds=shot["captureInterval"],
                output_root=Path(output_folder),
            ),
            worker=WorkerConfig(
                command=command,
                ready_timeout=worker["readyTimeout"],
                shutdown_grace=worker["shutdownGrace"],
                capture_timeout=worker["captureTimeout"],
            ),
            server=ServerConfig(
                host=server["host"],
                http_port=server["httpPort"],
                https_port=server["httpsPort"],
                cert_file=Path(server["certFile"]),
                key_file=Path(server["keyFile"]),
                public_dir=Path(public_dir) if public_dir else PUBLIC_DIR,
            ),
            logging=LoggingConfig(
                level=level,
                file=Path(log_file) if log_file else None,
            ),
        )
    except TypeError as e:
        raise ConfigError(f"Invalid configuration value: {e}") from e


def _parse_text(text: str, path: Path) -> AppConfig:
    try:
        user_config = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigError(f"{path} is not valid JSON: {e}") from e
    return build_config(user_config)


def _default_text() -> str:
    return json.dumps(DEFAULT_CONFIG, indent=2) + "\n"


def _log_loaded(config: AppConfig, path: Path) -> None:
    capture = config.capture
    logger.info("Configuration loaded from %s", path)
    logger.info("  Format: %s", capture.image_format.upper())
    if capture.is_jpeg:
        logger.info("  Quality: %d%%", capture.quality)
    logger.info("  Capture Interval: %d seconds", capture.capture_interval_seconds)
    logger.info("  Output Folder: %s", capture.output_root)


def load_config(path: Union[str, Path]) -> AppConfig:
    """Load and validate ``path``; a missing file is created with the defaults."""
    path = Path(path)
    if not path.exists():
        logger.info("%s not found, writing default settings", path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(_default_text(), encoding="utf-8")
        return build_config({})

    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    config = _parse_text(text, path)
    _log_loaded(config, path)
    return config


async def load_config_async(path: Union[str, Path]) -> AppConfig:
    """Async variant of :func:`load_config` backed by aiofiles."""
    path = Path(path)
    if not path.exists():
        logger.info("%s not found, writing default settings", path)
        path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(path, "w", encoding="utf-8") as f:
            await f.write(_default_text())
        return build_config({})

    try:
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            text = await f.read()
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    config = _parse_text(text, path)
    _log_loaded(config, path)
    return config


__all__ = [
    "AppConfig",
    "CaptureConfig",
    "DEFAULT_CONFIG",
    "IMAGE_FORMATS",
    "LoggingConfig",
    "ServerConfig",
    "WorkerConfig",
    "build_config",
    "default_worker_command",
    "load_config",
    "load_config_async",
]
