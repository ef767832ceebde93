"""Storage backends for crawled records and failure URLs."""

from __future__ import annotations

import json
import logging
import sqlite3
import traceback
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Mapping, Optional

from .config import StorageTargetConfig
from .interfaces import FailureSink, RecordSink

logger = logging.getLogger(__name__)

MAX_ERROR_LOG_LENGTH = 4000


class JsonLinesRecordSink(RecordSink):
    """Appends each record as one JSON object per line."""

    def __init__(self, config: StorageTargetConfig) -> None:
        path = config.params.get("path")
        if not path:
            raise ValueError("JsonLinesRecordSink requires path param")
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = Lock()

    @property
    def path(self) -> Path:
        return self._path

    def store(self, params: Mapping[str, str], record: Dict[str, Any]) -> None:
        line = json.dumps(record, default=str, ensure_ascii=False)
        with self._lock:
            with self._path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")
        logger.debug("Stored record %s", record.get("url"))

    def read_all(self) -> List[Dict[str, Any]]:
        if not self._path.exists():
            return []
        with self._path.open(encoding="utf-8") as handle:
            return [json.loads(line) for line in handle if line.strip()]


class MemoryRecordSink(RecordSink):
    """Keeps records in a list; handy for dry runs."""

    def __init__(self, config: Optional[StorageTargetConfig] = None) -> None:
        self._lock = Lock()
        self.records: List[Dict[str, Any]] = []

    def store(self, params: Mapping[str, str], record: Dict[str, Any]) -> None:
        with self._lock:
            self.records.append(record)


def _format_cause(cause: BaseException) -> str:
    text = "".join(traceback.format_exception(type(cause), cause, cause.__traceback__))
    return text[-MAX_ERROR_LOG_LENGTH:]


class LoggingFailureSink(FailureSink):
    def __init__(self, config: Optional[StorageTargetConfig] = None) -> None:
        pass

    def store(self, run_name: str, error_name: str, url: str, cause: BaseException) -> None:
        logger.error("[%s] %s failed with %s: %s", run_name, url, error_name, cause)


class SqliteFailureStore(FailureSink):
    """Failure URLs keyed by ``(run_name, url)`` with a running error count."""

    def __init__(self, config: StorageTargetConfig) -> None:
        path = config.params.get("path")
        if not path:
            raise ValueError("SqliteFailureStore requires path param")
        self._path = Path(path)
        if self._path.parent:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = Lock()
        self._init_db()

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS failure_urls (
                    run_name TEXT NOT NULL,
                    url TEXT NOT NULL,
                    error_name TEXT NOT NULL,
                    error_log TEXT,
                    error_count INTEGER NOT NULL DEFAULT 1,
                    last_failed_at TEXT NOT NULL,
                    PRIMARY KEY (run_name, url)
                )
                """
            )

    @contextmanager
    def _conn(self):
        conn = sqlite3.connect(self._path)
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def store(self, run_name: str, error_name: str, url: str, cause: BaseException) -> None:
        failed_at = datetime.now(timezone.utc).isoformat()
        with self._lock, self._conn() as conn:
            conn.execute(
                """
                INSERT INTO failure_urls (
                    run_name,
                    url,
                    error_name,
                    error_log,
                    error_count,
                    last_failed_at
                ) VALUES (?, ?, ?, ?, 1, ?)
                ON CONFLICT (run_name, url) DO UPDATE SET
                    error_name = excluded.error_name,
                    error_log = excluded.error_log,
                    error_count = failure_urls.error_count + 1,
                    last_failed_at = excluded.last_failed_at
                """,
                (run_name, url, error_name, _format_cause(cause), failed_at),
            )
        logger.debug("Stored failure %s for %s", error_name, url)

    def get_failures(self, run_name: Optional[str] = None) -> List[Dict[str, Any]]:
        query = (
            "SELECT run_name, url, error_name, error_log, error_count, last_failed_at "
            "FROM failure_urls"
        )
        args: tuple = ()
        if run_name is not None:
            query += " WHERE run_name = ?"
            args = (run_name,)
        query += " ORDER BY url"
        with self._conn() as conn:
            conn.row_factory = sqlite3.Row
            return [dict(row) for row in conn.execute(query, args)]


def build_record_sink(config: StorageTargetConfig) -> RecordSink:
    sink_type = config.type
    if sink_type == "jsonl":
        return JsonLinesRecordSink(config)
    elif sink_type == "memory":
        return MemoryRecordSink(config)
    raise ValueError(f"Unsupported record sink type: {sink_type}")


def build_failure_sink(config: StorageTargetConfig) -> FailureSink:
    sink_type = config.type
    if sink_type == "sqlite":
        return SqliteFailureStore(config)
    elif sink_type == "logging":
        return LoggingFailureSink(config)
    raise ValueError(f"Unsupported failure sink type: {sink_type}")
