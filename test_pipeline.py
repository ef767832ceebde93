"""Tests for the crawl pipeline, record building and failure handling."""

import io
import threading

import pytest

from drive_ingestion.config import CrawlConfig
from drive_ingestion.errors import DataAccessError, ExtractionError, MultipleCrawlingAccessError
from drive_ingestion.filters import FOLDER_MIMETYPE
from drive_ingestion.interfaces import FailureSink, RemoteFileClient
from drive_ingestion.models import CrawlOutcome, FileDescriptor
from drive_ingestion.pipeline import (
    CallerRunsExecutor,
    CrawlPipeline,
    build_file_map,
    get_url,
    resolve_path,
)
from drive_ingestion.storage import MemoryRecordSink


class FakeDriveClient(RemoteFileClient):
    def __init__(self, files, media=None, exports=None, fail_after=None):
        self.files = files
        self.media = media or {}
        self.exports = exports or {}
        self.fail_after = fail_after
        self.list_calls = []

    def list_files(self, query=None, corpora=None, spaces=None, fields=None):
        self.list_calls.append((query, corpora, spaces, fields))
        for index, item in enumerate(self.files):
            if self.fail_after is not None and index == self.fail_after:
                raise DataAccessError("Failed to access files.")
            yield FileDescriptor.from_api(item)

    def export_text(self, file_id, mime_type):
        return self.exports[file_id]

    def download_media(self, file_id):
        data = self.media[file_id]
        if isinstance(data, Exception):
            raise data
        return io.BytesIO(data)


class RecordingFailureSink(FailureSink):
    def __init__(self):
        self.failures = []

    def store(self, run_name, error_name, url, cause):
        self.failures.append((run_name, error_name, url, cause))


class ExplodingRecordSink(MemoryRecordSink):
    def __init__(self, error):
        super().__init__()
        self.error = error

    def store(self, params, record):
        raise self.error


FOLDER = {"id": "folder1", "name": "Reports", "mimeType": FOLDER_MIMETYPE}


def _pdf_file(file_id="pdf1", size=12345, **extra):
    data = {
        "id": file_id,
        "name": "report.pdf",
        "mimeType": "application/pdf",
        "size": str(size),
        "webContentLink": f"https://drive.google.com/uc?id={file_id}&export=download",
        "webViewLink": f"https://drive.google.com/file/d/{file_id}/view",
        "createdTime": "2024-01-05T09:00:00.000Z",
        "modifiedTime": "2024-02-05T09:00:00.000Z",
        "owners": [{"emailAddress": "owner@example.com", "displayName": "Owner"}],
        "permissions": [
            {"type": "user", "emailAddress": "alice@example.com", "role": "reader"},
            {"type": "anyone", "role": "reader"},
        ],
        "lastModifyingUser": {"emailAddress": "alice@example.com", "displayName": "Alice"},
        "md5Checksum": "abc123",
        "driveId": "drive-1",
    }
    data.update(extra)
    return data


def _pipeline(client, params=None, record_sink=None, **config_kwargs):
    config = CrawlConfig.from_params(params or {}, name="drive", **config_kwargs)
    records = record_sink or MemoryRecordSink()
    failures = RecordingFailureSink()
    return CrawlPipeline(config, client, records, failures), records, failures


def test_folder_and_pdf(pdf_bytes):
    client = FakeDriveClient([FOLDER, _pdf_file()], media={"pdf1": pdf_bytes("Quarterly report")})
    pipeline, records, failures = _pipeline(client)

    result = pipeline.run()

    assert result.stored == 1
    assert result.discarded == 1
    assert result.failed == 0
    assert result.drained
    assert failures.failures == []
    assert client.list_calls == [(None, "allDrives", None, "*")]
    assert pipeline.stats.count(CrawlOutcome.FINISHED) == 1
    assert {s.outcome for s in pipeline.stats.history()} == {
        CrawlOutcome.FINISHED,
        CrawlOutcome.DISCARDED,
    }
    assert all(s.closed for s in pipeline.stats.history())

    record = records.records[0]
    assert record["url"] == "https://drive.google.com/uc?id=pdf1&export=download"
    assert record["filetype"] == "pdf"
    assert record["size"] == 12345
    assert "Quarterly report" in record["contents"]
    assert record["roles"] == ["1alice@example.com", "1guest", "1owner@example.com"]
    assert record["last_modifying_user"]["display_name"] == "Alice"
    assert record["md5_checksum"] == "abc123"
    assert record["drive_id"] == "drive-1"
    assert record["created_time"].year == 2024


def test_oversized_file_is_a_failure(pdf_bytes):
    client = FakeDriveClient(
        [_pdf_file(size=1000)], media={"pdf1": pdf_bytes("too big")}
    )
    pipeline, records, failures = _pipeline(client, params={"max_size": "100"})

    result = pipeline.run()

    assert result.stored == 0
    assert result.failed == 1
    assert records.records == []
    run_name, error_name, url, cause = failures.failures[0]
    assert run_name == "drive"
    assert error_name == "MaxLengthExceededError"
    assert url == "https://drive.google.com/uc?id=pdf1&export=download"
    assert str(cause) == (
        "The content length (1000 byte) is over 100 byte. "
        "The url is https://drive.google.com/uc?id=pdf1&export=download"
    )


def test_size_falls_back_to_content_length():
    item = {"id": "t1", "name": "notes.txt", "mimeType": "text/plain"}
    client = FakeDriveClient([item], media={"t1": b"12345678"})
    pipeline, records, failures = _pipeline(client, params={"max_size": "5"})

    pipeline.run()

    assert failures.failures[0][1] == "MaxLengthExceededError"


def test_extraction_failure_is_named_after_its_cause():
    item = {"id": "t1", "name": "notes.txt", "mimeType": "text/plain"}
    client = FakeDriveClient([item], media={"t1": RuntimeError("disk on fire")})
    pipeline, records, failures = _pipeline(client, params={"ignore_error": "false"})

    result = pipeline.run()

    assert result.failed == 1
    _, error_name, url, cause = failures.failures[0]
    assert error_name == "RuntimeError"
    assert isinstance(cause, ExtractionError)
    assert url == "https://drive.google.com/uc?id=t1&export=download"


def test_extraction_failure_ignored_still_stores_record():
    item = {"id": "t1", "name": "notes.txt", "mimeType": "text/plain", "size": "3"}
    client = FakeDriveClient([item], media={"t1": RuntimeError("disk on fire")})
    pipeline, records, failures = _pipeline(client)

    pipeline.run()

    assert failures.failures == []
    assert records.records[0]["contents"] == ""


def test_multiple_access_error_uses_last_cause():
    last = DataAccessError("second")
    last.__cause__ = TimeoutError("slow")
    error = MultipleCrawlingAccessError("both failed", [ExtractionError("first"), last])
    client = FakeDriveClient([_pdf_file(size=1)], media={"pdf1": b"%PDF"})
    pipeline, _, failures = _pipeline(client, record_sink=ExplodingRecordSink(error))

    result = pipeline.run()

    assert result.counts["access_exception"] == 1
    _, error_name, _, cause = failures.failures[0]
    assert error_name == "TimeoutError"
    assert cause is last


def test_access_error_without_cause_uses_own_class():
    client = FakeDriveClient([_pdf_file(size=1)], media={"pdf1": b"%PDF"})
    sink = ExplodingRecordSink(DataAccessError("denied"))
    pipeline, _, failures = _pipeline(client, record_sink=sink)

    pipeline.run()

    assert failures.failures[0][1] == "DataAccessError"


def test_unexpected_error_uses_own_class():
    client = FakeDriveClient([_pdf_file(size=1)], media={"pdf1": b"%PDF"})
    pipeline, _, failures = _pipeline(client, record_sink=ExplodingRecordSink(KeyError("x")))

    result = pipeline.run()

    assert result.counts["exception"] == 1
    assert failures.failures[0][1] == "KeyError"


def test_unsupported_and_filtered_files_are_discarded():
    files = [
        {"id": "img", "name": "a.png", "mimeType": "image/png"},
        {"id": "txt", "name": "a.txt", "mimeType": "text/plain", "size": "2"},
        {"id": "skip", "name": "b.txt", "mimeType": "text/plain", "size": "2"},
    ]
    client = FakeDriveClient(files, media={"txt": b"hi", "skip": b"hi"})
    pipeline, records, _ = _pipeline(
        client,
        params={"supported_mimetypes": "text/.*", "exclude_pattern": ".*id=skip.*"},
    )

    result = pipeline.run()

    assert result.discarded == 2
    assert [r["id"] for r in records.records] == ["txt"]


def test_many_files_with_caller_runs_backpressure():
    files = [
        {"id": f"t{i}", "name": f"{i}.txt", "mimeType": "text/plain", "size": "2"}
        for i in range(25)
    ]
    client = FakeDriveClient(files, media={f"t{i}": b"ok" for i in range(25)})
    pipeline, records, failures = _pipeline(client, params={"number_of_threads": "2"})

    result = pipeline.run()

    assert result.stored == 25
    assert sorted(r["id"] for r in records.records) == sorted(f["id"] for f in files)
    assert failures.failures == []


def test_listing_failure_aborts_run():
    files = [{"id": "t1", "name": "1.txt", "mimeType": "text/plain", "size": "2"}] * 3
    client = FakeDriveClient(files, media={"t1": b"ok"}, fail_after=1)
    pipeline, _, _ = _pipeline(client)

    with pytest.raises(DataAccessError):
        pipeline.run()


def test_cancel_stops_submission():
    files = [{"id": "t1", "name": "1.txt", "mimeType": "text/plain", "size": "2"}] * 3
    client = FakeDriveClient(files, media={"t1": b"ok"})
    pipeline, records, _ = _pipeline(client)
    pipeline.cancel()

    result = pipeline.run()

    assert result.stored == 0
    assert records.records == []


def test_field_mapping_and_default_data():
    client = FakeDriveClient(
        [{"id": "t1", "name": "1.txt", "mimeType": "text/plain", "size": "5"}],
        media={"t1": b"hello"},
    )
    pipeline, records, _ = _pipeline(
        client,
        params={"site": "drive.example.com"},
        field_mapping={
            "title": "file.name",
            "content": "file.contents",
            "host": "site",
            "summary": "file.missing",
        },
        default_data={"lang": "en", "title": "untitled"},
    )

    pipeline.run()

    assert records.records == [
        {"lang": "en", "title": "1.txt", "content": "hello", "host": "drive.example.com"}
    ]


def test_resolve_path():
    context = {"file": {"owners": {"name": "x"}}, "a.b": 1}
    assert resolve_path(context, "file.owners.name") == "x"
    assert resolve_path(context, "a.b") == 1
    assert resolve_path(context, "file.nope") is None


def test_get_url():
    assert get_url(FileDescriptor(id="x", name="n", mime_type=None, web_content_link="https://l")) == "https://l"
    assert get_url(FileDescriptor(id="x", name="n", mime_type=None, web_content_link=" ")) == (
        "https://drive.google.com/uc?id=x&export=download"
    )
    assert get_url(FileDescriptor(id=None, name="n", mime_type=None)) is None


def test_build_file_map_is_idempotent():
    file = FileDescriptor.from_api(_pdf_file(description=None))
    first = build_file_map(file, "text", 4, get_url(file), ["1a"])
    second = build_file_map(file, "text", 4, get_url(file), ["1a"])
    assert first == second
    assert first["description"] == ""
    assert first["trashing_user"] is None
    assert first["owners"][0]["email_address"] == "owner@example.com"


def test_executor_runs_inline_when_saturated():
    started = threading.Event()
    release = threading.Event()
    threads = []

    def blocker():
        started.set()
        release.wait(5)

    def record_thread():
        threads.append(threading.current_thread())

    executor = CallerRunsExecutor(1, queue_size=0)
    executor.submit(blocker)
    assert started.wait(5)
    assert executor.submit(record_thread) is None
    assert threads == [threading.current_thread()]
    release.set()
    assert executor.shutdown(5)
