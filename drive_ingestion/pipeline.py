"""High-level crawl pipeline orchestration."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from threading import BoundedSemaphore, Event, Lock
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Set

from . import fields as f
from .config import CrawlConfig
from .connectors.google_drive import GoogleDriveClient
from .errors import CrawlingAccessError, MaxLengthExceededError, MultipleCrawlingAccessError
from .extractors import ContentExtractor, ExtractorFactory
from .filetypes import get_filetype
from .filters import Discard, evaluate
from .interfaces import FailureSink, RecordSink, RemoteFileClient, RoleMapper
from .models import CrawlOutcome, FileDescriptor, User
from .permissions import DefaultRoleMapper, PermissionResolver
from .stats import CrawlStatsRecorder

logger = logging.getLogger(__name__)

DOWNLOAD_URL_TEMPLATE = "https://drive.google.com/uc?id={id}&export=download"
DEFAULT_DRAIN_TIMEOUT = 60.0


@dataclass
class CrawlResult:
    name: str
    stored: int
    failed: int
    discarded: int
    drained: bool
    counts: Dict[str, int] = field(default_factory=dict)


class CallerRunsExecutor:
    """Fixed-size thread pool with a bounded queue.

    When every worker is busy and the queue is full, ``submit`` runs the task
    in the calling thread instead of blocking or dropping it.
    """

    def __init__(self, max_workers: int, queue_size: Optional[int] = None) -> None:
        logger.debug("Executor Thread Pool: %d", max_workers)
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="drive-crawler"
        )
        capacity = max_workers + (max_workers if queue_size is None else queue_size)
        self._slots = BoundedSemaphore(capacity)
        self._pending: Set[Future] = set()
        self._lock = Lock()

    def submit(self, fn: Callable[..., Any], *args: Any) -> Optional[Future]:
        if not self._slots.acquire(blocking=False):
            logger.debug("Executor saturated, running task in the caller thread")
            fn(*args)
            return None
        try:
            future = self._executor.submit(fn, *args)
        except BaseException:
            self._slots.release()
            raise
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._on_done)
        return future

    def _on_done(self, future: Future) -> None:
        with self._lock:
            if future not in self._pending:
                return
            self._pending.discard(future)
        self._slots.release()

    def shutdown(self, timeout: float) -> bool:
        """Wait up to ``timeout`` seconds for queued work; cancel the rest.

        Returns ``True`` when every task finished in time.
        """
        with self._lock:
            pending = set(self._pending)
        _, not_done = wait(pending, timeout=timeout)
        if not_done:
            logger.warning("%d tasks did not finish in %.0f seconds", len(not_done), timeout)
        self.abort()
        return not not_done

    def abort(self) -> None:
        with self._lock:
            pending = set(self._pending)
        for future in pending:
            future.cancel()
        self._executor.shutdown(wait=False, cancel_futures=True)


def get_url(file: FileDescriptor) -> Optional[str]:
    """The web content link, or a synthesized download URL, or ``None``."""
    url = file.web_content_link
    if url and url.strip():
        return url
    if file.id and file.id.strip():
        return DOWNLOAD_URL_TEMPLATE.format(id=file.id)
    logger.debug("id is null.")
    return None


def _user_dict(data: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Optional[str]]]:
    if not data:
        return None
    return User.from_api(data).to_dict()


def build_file_map(
    file: FileDescriptor,
    contents: Optional[str],
    size: int,
    url: Optional[str],
    roles: Iterable[str],
) -> Dict[str, Any]:
    """Build the normalized record of a file. Pure; equal inputs give equal maps."""
    file_map: Dict[str, Any] = {
        f.FILE_NAME: file.name,
        f.FILE_DESCRIPTION: file.description if file.description is not None else "",
        f.FILE_CONTENTS: contents,
        f.FILE_MIMETYPE: file.mime_type,
        f.FILE_FILETYPE: get_filetype(file.mime_type),
        f.FILE_SIZE: size,
        f.FILE_WEB_VIEW_LINK: file.web_view_link,
        f.FILE_WEB_CONTENT_LINK: file.web_content_link,
        f.FILE_THUMBNAIL_LINK: file.thumbnail_link,
        f.FILE_ICON_LINK: file.icon_link,
        f.FILE_EXPORT_LINKS: dict(file.export_links),
        f.FILE_URL: url,
        f.FILE_ID: file.id,
        f.FILE_CREATED_TIME: file.created_time,
        f.FILE_MODIFIED_TIME: file.modified_time,
        f.FILE_VIEWED_BY_ME_TIME: file.viewed_by_me_time,
        f.FILE_MODIFIED_BY_ME_TIME: file.modified_by_me_time,
        f.FILE_TRASHED_TIME: file.trashed_time,
        f.FILE_OWNERS: [owner.to_dict() for owner in file.owners],
        f.FILE_LAST_MODIFYING_USER: _user_dict(file.get("lastModifyingUser")),
        f.FILE_TRASHING_USER: _user_dict(file.get("trashingUser")),
    }
    for key, api_name in f.PASSTHROUGH_FIELDS.items():
        file_map[key] = file.get(api_name)
    file_map[f.FILE_ROLES] = list(roles)
    return file_map


def resolve_path(context: Mapping[str, Any], path: str) -> Any:
    """Resolve a dotted path such as ``file.name`` against nested mappings."""
    if path in context:
        return context[path]
    value: Any = context
    for part in path.split("."):
        if not isinstance(value, Mapping) or part not in value:
            return None
        value = value[part]
    return value


class CrawlPipeline:
    """Lists a drive and turns each file into a record or a failure."""

    def __init__(
        self,
        config: CrawlConfig,
        client: RemoteFileClient,
        record_sink: RecordSink,
        failure_sink: FailureSink,
        role_mapper: Optional[RoleMapper] = None,
        extractor_factory: Optional[ExtractorFactory] = None,
        stats: Optional[CrawlStatsRecorder] = None,
        drain_timeout: float = DEFAULT_DRAIN_TIMEOUT,
    ) -> None:
        self._config = config
        self._client = client
        self._record_sink = record_sink
        self._failure_sink = failure_sink
        self._content = ContentExtractor(
            client, extractor_factory, ignore_error=config.filters.ignore_error
        )
        self._permissions = PermissionResolver(role_mapper or DefaultRoleMapper())
        self._stats = stats or CrawlStatsRecorder()
        self._drain_timeout = drain_timeout
        self._cancelled = Event()

    @property
    def stats(self) -> CrawlStatsRecorder:
        return self._stats

    def cancel(self) -> None:
        """Stop submitting files and cancel the queued ones."""
        self._cancelled.set()

    def run(self) -> CrawlResult:
        logger.debug("filters: %s", self._config.filters)
        listing = self._config.listing
        executor = CallerRunsExecutor(self._config.number_of_threads)
        drained = False
        try:
            for file in self._client.list_files(
                listing.query, listing.corpora, listing.spaces, listing.fields
            ):
                if self._cancelled.is_set():
                    logger.info("Crawl %s cancelled", self._config.name)
                    break
                executor.submit(self.process_file, file)
            if not self._cancelled.is_set():
                logger.debug("Shutting down thread executor.")
                drained = executor.shutdown(self._drain_timeout)
        finally:
            executor.abort()

        summary = self._stats.summary()
        result = CrawlResult(
            name=self._config.name,
            stored=summary[CrawlOutcome.FINISHED.value],
            failed=summary[CrawlOutcome.EXCEPTION.value]
            + summary[CrawlOutcome.ACCESS_EXCEPTION.value],
            discarded=summary[CrawlOutcome.DISCARDED.value],
            drained=drained,
            counts=summary,
        )
        logger.info(
            "Crawl %s finished: %d stored, %d failed, %d discarded",
            result.name,
            result.stored,
            result.failed,
            result.discarded,
        )
        return result

    def process_file(self, file: FileDescriptor) -> None:
        logger.debug("file: %s", file)
        stats = self._stats.begin(file)
        url: Optional[str] = None
        try:
            url = get_url(file)
            stats.url = url
            filters = self._config.filters
            decision = evaluate(
                file.mime_type,
                url,
                filters.ignore_folder,
                filters.supported_mimetypes,
                filters.url_filter,
            )
            if isinstance(decision, Discard):
                stats.outcome = CrawlOutcome.DISCARDED
                return
            stats.outcome = CrawlOutcome.EVALUATED

            logger.info("Crawling URL: %s", url)
            record = self.build_record(file, url)
            self._record_sink.store(self._config.params, record)
            stats.outcome = CrawlOutcome.FINISHED
        except CrawlingAccessError as e:
            logger.warning("Crawling Access Exception at : %s", url, exc_info=True)
            target: BaseException = e
            if isinstance(e, MultipleCrawlingAccessError) and e.causes:
                target = e.causes[-1]
            cause = target.__cause__
            error_name = type(cause).__name__ if cause is not None else type(target).__name__
            self._store_failure(error_name, url, target)
            stats.outcome = CrawlOutcome.ACCESS_EXCEPTION
        except Exception as e:
            logger.warning("Crawling Exception at : %s", url, exc_info=True)
            self._store_failure(type(e).__name__, url, e)
            stats.outcome = CrawlOutcome.EXCEPTION
        finally:
            self._stats.finish(stats)

    def build_record(self, file: FileDescriptor, url: Optional[str]) -> Dict[str, Any]:
        contents = self._content.get_file_contents(file)
        if file.size is not None:
            size = file.size
        elif contents is not None:
            size = len(contents)
        else:
            size = 0

        max_size = self._config.filters.max_size
        if size > max_size:
            raise MaxLengthExceededError(
                f"The content length ({size} byte) is over {max_size} byte. The url is {url}"
            )

        roles = self._permissions.get_file_permissions(
            file, self._config.filters.default_permissions
        )
        file_map = build_file_map(file, contents, size, url, roles)
        logger.debug("fileMap: %s", file_map)
        return self.map_fields(file_map)

    def map_fields(self, file_map: Dict[str, Any]) -> Dict[str, Any]:
        """Merge the file map into the default data, through the field mapping if any."""
        data: Dict[str, Any] = dict(self._config.default_data)
        if not self._config.field_mapping:
            data.update(file_map)
            return data
        context: Dict[str, Any] = dict(self._config.params)
        context[f.FILE] = file_map
        for target, path in self._config.field_mapping.items():
            value = resolve_path(context, path)
            if value is not None:
                data[target] = value
        return data

    def _store_failure(self, error_name: str, url: Optional[str], cause: BaseException) -> None:
        try:
            self._failure_sink.store(self._config.name, error_name, url or "", cause)
        except Exception:
            logger.error("Failed to record a failure for %s", url, exc_info=True)


def run_crawl(
    config: CrawlConfig,
    record_sink: RecordSink,
    failure_sink: FailureSink,
    role_mapper: Optional[RoleMapper] = None,
    extractor_factory: Optional[ExtractorFactory] = None,
) -> CrawlResult:
    """Authenticate, crawl the drive and always stop the token refresher."""
    with GoogleDriveClient.from_params(config.params) as client:
        pipeline = CrawlPipeline(
            config,
            client,
            record_sink,
            failure_sink,
            role_mapper=role_mapper,
            extractor_factory=extractor_factory,
        )
        return pipeline.run()
