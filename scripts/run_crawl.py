"""CLI entrypoint to crawl a Google Drive with a service account."""

from __future__ import annotations

import argparse
import json
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, List

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from drive_ingestion.config import (
    CLIENT_EMAIL_PARAM,
    PRIVATE_KEY_ID_PARAM,
    PRIVATE_KEY_PARAM,
    AppConfig,
)
from drive_ingestion.connectors import GoogleDriveClient
from drive_ingestion.pipeline import CrawlPipeline
from drive_ingestion.storage import build_failure_sink, build_record_sink

CREDENTIAL_KEYS = (PRIVATE_KEY_PARAM, PRIVATE_KEY_ID_PARAM, CLIENT_EMAIL_PARAM)


def parse_env_lines(lines: Iterable[str]) -> Dict[str, str]:
    """Parse ``KEY=value`` lines, allowing an ``export`` prefix and quoted values."""
    values: Dict[str, str] = {}
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):]
        key, sep, value = line.partition("=")
        if not sep or not key.strip():
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "'\"":
            value = value[1:-1]
        values[key.strip()] = value
    return values


def load_env_file(env_path: str = ".env") -> List[str]:
    """Export variables from ``env_path`` that the environment does not define yet."""
    candidates = [Path(env_path), ROOT / env_path]
    env_file = next((path for path in candidates if path.is_file()), None)
    if env_file is None:
        logging.debug("Environment file not found: %s", env_path)
        return []

    logging.info("Loading environment from: %s", env_file)
    added = []
    for key, value in parse_env_lines(env_file.read_text().splitlines()).items():
        if key not in os.environ:
            os.environ[key] = value
            added.append(key)
    return added


def expand_env_vars(data: Any) -> Any:
    """Expand ``${VAR}`` and ``$VAR`` in every string of a JSON document."""
    if isinstance(data, dict):
        return {key: expand_env_vars(value) for key, value in data.items()}
    if isinstance(data, list):
        return [expand_env_vars(item) for item in data]
    if isinstance(data, str):
        return os.path.expandvars(data)
    return data


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Crawl a Google Drive")
    parser.add_argument(
        "--config",
        type=Path,
        required=True,
        help="Path to a JSON config file with crawl params and sinks",
    )
    parser.add_argument(
        "--credentials",
        type=Path,
        help="Service-account key file; its private_key, private_key_id "
        "and client_email override the config params",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Verbosity for logging output",
    )
    parser.add_argument(
        "--env-file",
        default=".env",
        help="Path to .env file (default: .env)",
    )
    return parser.parse_args()


def load_config(path: Path, credentials: Path | None = None) -> AppConfig:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        raw_config = expand_env_vars(json.load(f))

    if credentials:
        with open(credentials) as f:
            key_file = json.load(f)
        params = raw_config.setdefault("params", {})
        for key in CREDENTIAL_KEYS:
            if key in key_file:
                params[key] = key_file[key]

    return AppConfig.from_dict(raw_config)


def main() -> int:
    args = parse_args()
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    load_env_file(args.env_file)

    config = load_config(args.config, args.credentials)
    record_sink = build_record_sink(config.record_sink)
    failure_sink = build_failure_sink(config.failure_sink)

    with GoogleDriveClient.from_params(config.crawl.params) as client:
        pipeline = CrawlPipeline(config.crawl, client, record_sink, failure_sink)
        signal.signal(signal.SIGTERM, lambda signum, frame: pipeline.cancel())
        result = pipeline.run()

    logging.info(
        "Crawl %s processed: %d stored, %d failed, %d discarded",
        result.name,
        result.stored,
        result.failed,
        result.discarded,
    )
    return 0 if result.drained else 1


if __name__ == "__main__":
    sys.exit(main())
