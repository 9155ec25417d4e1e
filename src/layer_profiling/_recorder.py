"""Profile record construction and persistence.

Many executions (often separate processes) append to the same profile file.
Each record is serialized completely before the file is touched and written
as a single line under an exclusive advisory lock. Lock acquisition is
retried a fixed number of times; when the budget runs out the record is
dropped. Losing a record is preferred over blocking the caller or
interleaving writes.
"""

import fcntl
import json
import resource
import sys
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import IO, Any

import psutil
from beartype import beartype
from loguru import logger

from layer_profiling._context import RequestContext
from layer_profiling._paths import PathClassifier
from layer_profiling._scheduler import SampleScheduler

LOCK_RETRIES = 30
LOCK_RETRY_DELAY = 0.1  # seconds


def peak_memory_bytes() -> int:
    """Peak resident memory of this process in bytes.

    Uses the peak working set where psutil reports one (Windows); elsewhere
    the larger of current RSS and the kernel's max-RSS counter.
    """
    info = psutil.Process().memory_info()
    peak = getattr(info, "peak_wset", None)
    if peak is not None:
        return int(peak)

    max_rss = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # ru_maxrss is bytes on macOS, KiB elsewhere
    if sys.platform != "darwin":
        max_rss *= 1024
    return max(int(info.rss), int(max_rss))


def no_queries() -> int:
    return 0


@dataclass(frozen=True)
class ProfileRecord:
    """Summary of one profiled execution. Times are in seconds."""

    url: str
    client_ip: str
    pid: int
    date: str
    total: float
    core: float
    theme: float
    extensions: float
    overhead: float
    breakdown: dict[str, float] = field(default_factory=dict)
    memory_peak: int = 0
    stack_switches: int = 0
    queries: int = 0

    def to_dict(self) -> dict[str, Any]:
        """JSON shape shared with the readers of the profile file."""
        return {
            "url": self.url,
            "ip": self.client_ip,
            "pid": self.pid,
            "date": self.date,
            "runtime": {
                "total": self.total,
                "wordpress": self.core,
                "theme": self.theme,
                "plugins": self.extensions,
                "profile": self.overhead,
                "breakdown": dict(self.breakdown),
            },
            "memory": self.memory_peak,
            "stacksize": self.stack_switches,
            "queries": self.queries,
        }


class ProfileRecorder:
    """Builds the final ProfileRecord and appends it to the profile file.

    Args:
        classifier: Shared PathClassifier, used for whole-script overrides
        started_at: ISO-8601 timestamp of when profiling started
        memory_peak: Returns peak memory in bytes (default: psutil-based)
        query_counter: Returns the number of queries the execution ran
        lock_retries: Lock attempts before a record is dropped (default: 30)
        lock_retry_delay: Seconds between lock attempts (default: 0.1)
    """

    @beartype
    def __init__(
        self,
        classifier: PathClassifier,
        started_at: str | None = None,
        memory_peak: Callable[[], int] = peak_memory_bytes,
        query_counter: Callable[[], int] = no_queries,
        lock_retries: int = LOCK_RETRIES,
        lock_retry_delay: float = LOCK_RETRY_DELAY,
    ) -> None:
        assert lock_retries >= 1, f"lock_retries must be at least 1: {lock_retries}"
        assert lock_retry_delay >= 0, f"lock_retry_delay must be non-negative: {lock_retry_delay}"
        self.classifier = classifier
        if started_at is None:
            started_at = datetime.now().astimezone().isoformat(timespec="seconds")
        self.started_at = started_at
        self.memory_peak = memory_peak
        self.query_counter = query_counter
        self.lock_retries = lock_retries
        self.lock_retry_delay = lock_retry_delay

    @beartype
    def finalize(self, scheduler: SampleScheduler, context: RequestContext) -> ProfileRecord:
        """Flush the pending sample and summarize the execution.

        When the entry script itself is an extension (or theme) file, no host
        bootstrap ran and the whole non-profiler runtime belongs to that
        extension (or the theme), so per-tick attribution is overridden.
        """
        now = scheduler.clock()
        scheduler.flush(now)

        aggregator = scheduler.aggregator
        breakdown = aggregator.grouped_extension_totals()
        totals = aggregator.snapshot()
        total = now - scheduler.start_time
        core, theme, extensions = totals.core, totals.theme, totals.extensions

        script = context.entry_script
        if script and self.classifier.is_extension_file(script):
            core, theme = 0.0, 0.0
            extensions = total - totals.overhead
            breakdown = {self.classifier.resolve_extension_id(script): extensions}
        elif script and self.classifier.is_theme_file(script):
            core, extensions = 0.0, 0.0
            theme = total - totals.overhead
            breakdown = {}

        record = ProfileRecord(
            url=context.url,
            client_ip=context.client_ip,
            pid=context.pid,
            date=self.started_at,
            total=total,
            core=core,
            theme=theme,
            extensions=extensions,
            overhead=totals.overhead,
            breakdown=breakdown,
            memory_peak=self.memory_peak(),
            stack_switches=aggregator.sample_count,
            queries=self.query_counter(),
        )
        aggregator.discard_samples()
        return record

    @beartype
    def persist(self, record: ProfileRecord, target: Path) -> bool:
        """Append ``record`` to ``target`` as one JSON line.

        Returns:
            True if the record was written, False if it was dropped (lock
            budget exhausted or I/O failure). Never raises for either case.
        """
        line = json.dumps(record.to_dict()) + "\n"

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            # Opening creates the file before the lock is tried, so a dropped
            # record can leave an empty file. It is not removed: another writer
            # may already hold it.
            with open(target, "a", encoding="utf-8") as handle:
                if not self._acquire_lock(handle):
                    logger.warning(
                        f"Dropping profile for {record.url}: {target} stayed locked "
                        f"for {self.lock_retries} attempts"
                    )
                    return False
                try:
                    handle.write(line)
                    handle.flush()
                finally:
                    fcntl.flock(handle, fcntl.LOCK_UN)
        except OSError as exc:
            logger.warning(f"Dropping profile for {record.url}: cannot write {target}: {exc}")
            return False

        logger.debug(f"Appended profile for {record.url} to {target}")
        return True

    def _acquire_lock(self, handle: IO[str]) -> bool:
        for attempt in range(self.lock_retries):
            try:
                fcntl.flock(handle, fcntl.LOCK_EX | fcntl.LOCK_NB)
                return True
            except BlockingIOError:
                if attempt + 1 < self.lock_retries:
                    time.sleep(self.lock_retry_delay)
        return False
