"""Tests for the record and failure sinks."""

from datetime import datetime, timezone

import pytest

from drive_ingestion.config import StorageTargetConfig
from drive_ingestion.storage import (
    JsonLinesRecordSink,
    LoggingFailureSink,
    MemoryRecordSink,
    SqliteFailureStore,
    build_failure_sink,
    build_record_sink,
)


def test_jsonl_sink_appends_records(tmp_path):
    sink = JsonLinesRecordSink(StorageTargetConfig("jsonl", {"path": str(tmp_path / "out/records.jsonl")}))
    created = datetime(2024, 1, 2, tzinfo=timezone.utc)
    sink.store({}, {"url": "u1", "created_time": created})
    sink.store({}, {"url": "u2", "roles": ["1guest"]})

    records = sink.read_all()
    assert [r["url"] for r in records] == ["u1", "u2"]
    assert records[0]["created_time"] == str(created)
    assert records[1]["roles"] == ["1guest"]


def test_sqlite_failure_store_counts_repeats(tmp_path):
    store = SqliteFailureStore(StorageTargetConfig("sqlite", {"path": str(tmp_path / "failures.db")}))
    store.store("drive", "DataAccessError", "https://a", ValueError("first"))
    store.store("drive", "ExtractionError", "https://a", ValueError("second"))
    store.store("drive", "MaxLengthExceededError", "https://b", ValueError("big"))
    store.store("other", "DataAccessError", "https://a", ValueError("elsewhere"))

    failures = store.get_failures("drive")
    assert [(f["url"], f["error_count"]) for f in failures] == [("https://a", 2), ("https://b", 1)]
    assert failures[0]["error_name"] == "ExtractionError"
    assert "second" in failures[0]["error_log"]
    assert len(store.get_failures()) == 3


def test_builders():
    assert isinstance(build_record_sink(StorageTargetConfig("memory")), MemoryRecordSink)
    assert isinstance(build_failure_sink(StorageTargetConfig("logging")), LoggingFailureSink)
    with pytest.raises(ValueError):
        build_record_sink(StorageTargetConfig("s3"))
    with pytest.raises(ValueError):
        build_failure_sink(StorageTargetConfig("postgres"))
    with pytest.raises(ValueError):
        JsonLinesRecordSink(StorageTargetConfig("jsonl"))
