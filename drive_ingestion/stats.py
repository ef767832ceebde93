"""Thread-safe bookkeeping of per-file crawl outcomes."""

from __future__ import annotations

import logging
from collections import Counter, deque
from datetime import datetime, timezone
from threading import Lock
from typing import Deque, Dict, List

from .models import CrawlOutcome, CrawlStats, FileDescriptor

logger = logging.getLogger(__name__)


class CrawlStatsRecorder:
    """Collects finalized ``CrawlStats`` and counts them by outcome."""

    def __init__(self, history_size: int = 10000) -> None:
        self._lock = Lock()
        self._counts: Counter = Counter()
        self._history: Deque[CrawlStats] = deque(maxlen=history_size)

    def begin(self, file: FileDescriptor) -> CrawlStats:
        return CrawlStats(file_id=file.id)

    def finish(self, stats: CrawlStats) -> None:
        """Close ``stats``; a second call for the same record is ignored."""
        with self._lock:
            if stats.closed:
                logger.debug("Stats for %s already closed", stats.file_id)
                return
            stats.finished_at = datetime.now(timezone.utc)
            self._counts[stats.outcome] += 1
            self._history.append(stats)

    def count(self, outcome: CrawlOutcome) -> int:
        with self._lock:
            return self._counts[outcome]

    def summary(self) -> Dict[str, int]:
        with self._lock:
            return {outcome.value: self._counts[outcome] for outcome in CrawlOutcome}

    def history(self) -> List[CrawlStats]:
        with self._lock:
            return list(self._history)
