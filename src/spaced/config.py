"""Configuration loading utilities for the screenshot uploader."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml # type: ignore


logger = logging.getLogger(__name__)

# Presigned URL expiry is whole seconds, at most one week under SigV4.
MIN_SHARE_TTL = timedelta(seconds=1)
MAX_SHARE_TTL = timedelta(days=7)

DEFAULT_CONFIG_PATH = Path("config.yaml")
DEFAULT_MONITOR_PATH = "~/Desktop"


class ConfigError(Exception):
    """Raised when the configuration file is missing or invalid."""


@dataclass(frozen=True)
class StorageConfig:
    """Connection details for the S3-compatible bucket."""

    access_key: str
    secret_key: str
    endpoint: str
    bucket: str
    prefix: str = ""
    region: str = "us-east-1"
    kind: str = "s3"


@dataclass(frozen=True)
class ShortenerConfig:
    """Connection details for the URL shortener service."""

    endpoint: str
    token: str
    timeout: float = 10.0
    kind: str = "eokvin"


@dataclass(frozen=True)
class WatchConfig:
    """Options describing which directory is watched and how."""

    monitor_path: Path
    use_polling: bool = False
    poll_interval: float = 1.0


@dataclass(frozen=True)
class ClipboardConfig:
    """Clipboard command; ``None`` selects the platform default."""

    command: Optional[Tuple[str, ...]] = None


@dataclass(frozen=True)
class AppConfig:
    """Top-level configuration structure, fixed for the life of the process."""

    storage: StorageConfig
    shortener: ShortenerConfig
    watch: WatchConfig
    share_ttl: timedelta
    clipboard: ClipboardConfig = field(default_factory=ClipboardConfig)
    log_file: Optional[Path] = None


def load_config(path: Optional[Path], overrides: Optional[Mapping[str, Any]] = None) -> AppConfig:
    """Load the YAML configuration file and apply command-line overrides.

    ``path`` may be ``None`` to build the configuration from overrides alone.
    Override keys are dotted section paths such as ``storage.bucket``; values
    of ``None`` are ignored so unset flags never clobber the file.
    """

    data: Dict[str, Any] = {}
    base_dir = Path.cwd()
    if path is not None:
        data = _read_yaml(path)
        base_dir = path.resolve().parent

    _apply_overrides(data, overrides or {})

    storage_cfg = _parse_storage_config(data.get("storage", {}))
    shortener_cfg = _parse_shortener_config(data.get("shortener", {}))
    watch_cfg = _parse_watch_config(data.get("watch", {}), base_dir=base_dir)
    clipboard_cfg = _parse_clipboard_config(data.get("clipboard", {}))
    share_ttl = _parse_share_ttl(data.get("share_ttl"))

    log_file: Optional[Path] = None
    log_file_raw = data.get("log_file")
    if log_file_raw not in (None, ""):
        if not isinstance(log_file_raw, str):
            raise ConfigError("log_file must be a string")
        log_file = Path(log_file_raw).expanduser()

    logger.debug(
        "Loaded configuration: bucket=%s prefix=%r monitor_path=%s share_ttl=%s",
        storage_cfg.bucket,
        storage_cfg.prefix,
        watch_cfg.monitor_path,
        format_duration(share_ttl),
    )

    return AppConfig(
        storage=storage_cfg,
        shortener=shortener_cfg,
        watch=watch_cfg,
        share_ttl=share_ttl,
        clipboard=clipboard_cfg,
        log_file=log_file,
    )


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}")

    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as exc:  # pragma: no cover - logging helper
        raise ConfigError(f"Failed to parse YAML configuration: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError("Configuration root must be a mapping")
    return data


def _apply_overrides(data: Dict[str, Any], overrides: Mapping[str, Any]) -> None:
    for dotted_key, value in overrides.items():
        if value is None:
            continue
        *sections, leaf = dotted_key.split(".")
        target = data
        for section in sections:
            existing = target.get(section)
            if existing is None:
                existing = target[section] = {}
            if not isinstance(existing, dict):
                raise ConfigError(f"'{section}' section must be a mapping")
            target = existing
        target[leaf] = value


def _parse_storage_config(raw: Any) -> StorageConfig:
    section = _ensure_mapping(raw, "storage")

    kind = section.get("kind", "s3")
    if kind != "s3":
        raise ConfigError(f"unsupported storage kind: {kind}")

    prefix = section.get("prefix") or ""
    if not isinstance(prefix, str):
        raise ConfigError("storage.prefix must be a string")

    region = section.get("region") or "us-east-1"
    if not isinstance(region, str):
        raise ConfigError("storage.region must be a string")

    return StorageConfig(
        access_key=_require_str(section, "access_key", "storage.access_key"),
        secret_key=_require_str(section, "secret_key", "storage.secret_key"),
        endpoint=_require_str(section, "endpoint", "storage.endpoint"),
        bucket=_require_str(section, "bucket", "storage.bucket"),
        prefix=prefix.strip(),
        region=region,
    )


def _parse_shortener_config(raw: Any) -> ShortenerConfig:
    section = _ensure_mapping(raw, "shortener")

    kind = section.get("kind", "eokvin")
    if kind != "eokvin":
        raise ConfigError(f"unsupported URL shortener kind: {kind}")

    timeout = _positive_float(section.get("timeout", 10.0), "shortener.timeout")

    return ShortenerConfig(
        endpoint=_require_str(section, "endpoint", "shortener.endpoint"),
        token=_require_str(section, "token", "shortener.token"),
        timeout=timeout,
    )


def _parse_watch_config(raw: Any, *, base_dir: Path) -> WatchConfig:
    section = _ensure_mapping(raw, "watch")

    monitor_raw = section.get("monitor_path", DEFAULT_MONITOR_PATH)
    if not isinstance(monitor_raw, str) or not monitor_raw.strip():
        raise ConfigError("watch.monitor_path cannot be blank")

    monitor_path = Path(monitor_raw.strip()).expanduser()
    if not monitor_path.is_absolute():
        monitor_path = (base_dir / monitor_path).resolve()

    use_polling = section.get("use_polling", False)
    if not isinstance(use_polling, bool):
        raise ConfigError("watch.use_polling must be a boolean")

    poll_interval = _positive_float(section.get("poll_interval", 1.0), "watch.poll_interval")

    return WatchConfig(monitor_path=monitor_path, use_polling=use_polling, poll_interval=poll_interval)


def _parse_clipboard_config(raw: Any) -> ClipboardConfig:
    section = _ensure_mapping(raw, "clipboard")
    command = section.get("command")
    if command is None:
        return ClipboardConfig()
    if isinstance(command, str):
        command = command.split()
    if not isinstance(command, list) or not command or not all(isinstance(part, str) for part in command):
        raise ConfigError("clipboard.command must be a non-empty list of strings")
    return ClipboardConfig(command=tuple(command))


def _parse_share_ttl(raw: Any) -> timedelta:
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise ConfigError("share_ttl cannot be blank")
    if isinstance(raw, bool):
        raise ConfigError("share_ttl must be a duration such as '20m' or a number of seconds")
    if isinstance(raw, (int, float)):
        try:
            ttl = timedelta(seconds=raw)
        except (OverflowError, ValueError) as exc:
            raise ConfigError(f"share_ttl is invalid: {exc}") from exc
    elif isinstance(raw, str):
        try:
            ttl = parse_duration(raw)
        except ValueError as exc:
            raise ConfigError(f"share_ttl is invalid: {exc}") from exc
    else:
        raise ConfigError("share_ttl must be a duration such as '20m' or a number of seconds")

    if ttl <= timedelta(0):
        raise ConfigError("share_ttl must be positive")
    if ttl < MIN_SHARE_TTL:
        raise ConfigError(f"share_ttl must be at least {format_duration(MIN_SHARE_TTL)}")
    if ttl > MAX_SHARE_TTL:
        raise ConfigError(f"share_ttl must not exceed {format_duration(MAX_SHARE_TTL)}")
    return ttl


_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")

_UNIT_MICROSECONDS = {
    "ns": 0.001,
    "us": 1,
    "µs": 1,
    "μs": 1,
    "ms": 1_000,
    "s": 1_000_000,
    "m": 60_000_000,
    "h": 3_600_000_000,
}


def parse_duration(text: str) -> timedelta:
    """Parse a Go-style duration string such as ``1h30m`` or ``20m``."""

    value = text.strip()
    sign = 1
    if value[:1] in ("-", "+"):
        sign = -1 if value[0] == "-" else 1
        value = value[1:]

    if value == "0":
        return timedelta(0)
    if not value:
        raise ValueError(f"invalid duration {text!r}")

    total = 0.0
    position = 0
    while position < len(value):
        match = _DURATION_PART.match(value, position)
        if match is None:
            raise ValueError(f"invalid duration {text!r}")
        total += float(match.group(1)) * _UNIT_MICROSECONDS[match.group(2)]
        position = match.end()

    try:
        return timedelta(microseconds=sign * round(total))
    except OverflowError as exc:
        raise ValueError(f"duration {text!r} is out of range") from exc


def format_duration(value: timedelta) -> str:
    """Render a duration the way Go's ``time.Duration.String`` does."""

    total_us = (value.days * 86400 + value.seconds) * 1_000_000 + value.microseconds
    if total_us == 0:
        return "0s"

    sign = "-" if total_us < 0 else ""
    total_us = abs(total_us)

    if total_us < 1_000:
        return f"{sign}{total_us}µs"
    if total_us < 1_000_000:
        return f"{sign}{_decimal(total_us, 3)}ms"

    hours, remainder = divmod(total_us, 3_600_000_000)
    minutes, micros = divmod(remainder, 60_000_000)
    seconds = f"{_decimal(micros, 6)}s"
    if hours:
        return f"{sign}{hours}h{minutes}m{seconds}"
    if minutes:
        return f"{sign}{minutes}m{seconds}"
    return f"{sign}{seconds}"


def _decimal(value: int, digits: int) -> str:
    whole, fraction = divmod(value, 10 ** digits)
    if not fraction:
        return str(whole)
    return f"{whole}.{fraction:0{digits}d}".rstrip("0")


def _ensure_mapping(raw: Any, field_name: str) -> Dict[str, Any]:
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"'{field_name}' section must be a mapping")
    return raw


def _require_str(section: Mapping[str, Any], key: str, field_name: str) -> str:
    value = section.get(key)
    if value is None:
        raise ConfigError(f"{field_name} cannot be blank")
    if not isinstance(value, str):
        raise ConfigError(f"{field_name} must be a string")
    if not value.strip():
        raise ConfigError(f"{field_name} cannot be blank")
    return value.strip()


def _positive_float(value: Any, field_name: str) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"{field_name} must be numeric")
    try:
        result = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{field_name} must be numeric") from exc
    if result <= 0:
        raise ConfigError(f"{field_name} must be positive")
    return result
