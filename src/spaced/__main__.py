"""Command-line entry point for the screenshot uploader."""
from __future__ import annotations

import argparse
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from .clipboard import CommandClipboard, default_clipboard_command
from .config import DEFAULT_CONFIG_PATH, AppConfig, ConfigError, load_config
from .coordinator import Coordinator
from .pipeline import UploadPipeline
from .shortener import EokvinShortener
from .storage import S3ObjectStore
from .watch import WatchSource, WatchSourceError

logger = logging.getLogger(__name__)

DESCRIPTION = (
    "Automatically upload screenshots and put a shareable URL in the system clipboard. "
    "Screenshots are uploaded to an S3-compatible bucket, such as DigitalOcean Spaces, "
    "and an eokvin service shortens the link."
)

# Flag destination -> dotted configuration key it overrides.
_OVERRIDES = {
    "access_key": "storage.access_key",
    "secret_key": "storage.secret_key",
    "endpoint": "storage.endpoint",
    "bucket": "storage.bucket",
    "prefix": "storage.prefix",
    "monitor_path": "watch.monitor_path",
    "token": "shortener.token",
    "eokvin": "shortener.endpoint",
    "share_ttl": "share_ttl",
    "log_file": "log_file",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="spaced", description=DESCRIPTION)
    parser.add_argument(
        "--config",
        default=None,
        help=f"Path to the YAML configuration file (default: {DEFAULT_CONFIG_PATH} if present)",
    )
    parser.add_argument("--access-key", help="Access key (required)")
    parser.add_argument("--secret-key", help="Secret key (required)")
    parser.add_argument("--endpoint", help="Storage endpoint URL (required)")
    parser.add_argument("--bucket", help="Bucket name (required)")
    parser.add_argument("--prefix", help="Key prefix")
    parser.add_argument("--monitor-path", help="Path to monitor (default: ~/Desktop)")
    parser.add_argument("--token", help="Secret token for the eokvin service")
    parser.add_argument("--eokvin", help="URL shortener service endpoint")
    parser.add_argument("--share-ttl", help="How long shared URLs stay valid, e.g. 20m or 1h30m")
    parser.add_argument("--log-file", help="Log file path. If blank, logs print to stderr")
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)

    log_format = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
    level = getattr(logging, args.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=log_format)

    overrides: Dict[str, Any] = {key: getattr(args, dest) for dest, key in _OVERRIDES.items()}
    config_path = _resolve_config_path(args.config)
    try:
        app_config = load_config(config_path, overrides)
    except ConfigError as exc:
        logging.error("%s", exc)
        raise SystemExit(2) from exc

    if app_config.log_file is not None:
        _redirect_logging(app_config.log_file, level, log_format)

    raise SystemExit(serve(app_config))


def serve(app_config: AppConfig) -> int:
    """Construct the gateways, open the watch source and run until stopped."""

    try:
        store = S3ObjectStore(
            bucket=app_config.storage.bucket,
            endpoint=app_config.storage.endpoint,
            access_key=app_config.storage.access_key,
            secret_key=app_config.storage.secret_key,
            region=app_config.storage.region,
        )
    except ValueError as exc:
        logger.error("unable to create storage client: %s", exc)
        return 1

    shortener = EokvinShortener(
        app_config.shortener.endpoint,
        app_config.shortener.token,
        timeout=app_config.shortener.timeout,
    )
    clipboard = CommandClipboard(app_config.clipboard.command or default_clipboard_command())

    source = WatchSource(
        app_config.watch.monitor_path,
        use_polling=app_config.watch.use_polling,
        poll_interval=app_config.watch.poll_interval,
    )
    try:
        source.open()
    except WatchSourceError as exc:
        logger.error("%s", exc)
        shortener.close()
        return 1

    stop_event = threading.Event()
    pipeline = UploadPipeline(
        source,
        store,
        shortener,
        clipboard,
        share_ttl=app_config.share_ttl,
        stop_event=stop_event,
        prefix=app_config.storage.prefix,
    )
    try:
        return Coordinator(pipeline, stop_event).run()
    finally:
        source.close()
        shortener.close()


def _resolve_config_path(explicit: Optional[str]) -> Optional[Path]:
    if explicit:
        return Path(explicit).expanduser()
    if DEFAULT_CONFIG_PATH.exists():
        return DEFAULT_CONFIG_PATH
    return None


def _redirect_logging(log_file: Path, level: int, log_format: str) -> None:
    try:
        handler = logging.FileHandler(log_file, mode="a")
    except OSError as exc:
        logging.error("unable to open %s for writing: %s", log_file, exc)
        raise SystemExit(2) from exc
    handler.setFormatter(logging.Formatter(log_format))
    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)


if __name__ == "__main__":
    main()
