"""Profiler lifecycle: enablement, runtime hook, finalization."""

import enum
import sys
import time
from collections.abc import Callable
from functools import partial
from pathlib import Path
from types import FrameType
from typing import Any

from beartype import beartype
from loguru import logger

from layer_profiling._context import Enablement, RequestContext, load_enablement
from layer_profiling._paths import PathClassifier
from layer_profiling._recorder import (
    LOCK_RETRIES,
    LOCK_RETRY_DELAY,
    ProfileRecord,
    ProfileRecorder,
    no_queries,
    peak_memory_bytes,
)
from layer_profiling._scheduler import SampleScheduler
from layer_profiling._stack import StackCategorizer, capture_stack


class ProfilerState(enum.Enum):
    DISABLED = "disabled"
    ACTIVE = "active"
    FINALIZED = "finalized"


def default_relevance(context: RequestContext, classifier: PathClassifier) -> Callable[[], bool]:
    """Profile themed renders, background jobs, admin pages and direct extension scripts."""
    relevant = (
        context.themed_render
        or context.background_job
        or context.admin_context
        or (bool(context.entry_script) and classifier.is_extension_file(context.entry_script))
    )
    return lambda: relevant


class Profiler:
    """Attributes the runtime of one execution to core, theme and extensions.

    The flag file is read once, here. When it is missing, unreadable, or its
    IP pattern does not match the client, the profiler stays DISABLED and
    start()/finalize() do nothing.

    Args:
        context: Immutable description of the execution
        flag_file: JSON flag file with ``{"ip": ..., "name": ...}``
        profiles_dir: Directory receiving ``<name>.json`` profile files
        classifier: Shared PathClassifier (default: new one per profiler)
        relevance: Tick gate (default: default_relevance(context, classifier))
        query_counter: Returns the number of queries run so far
        memory_peak: Returns peak memory in bytes
        clock: Monotonic time source in seconds
        lock_retries: Lock attempts before a record is dropped
        lock_retry_delay: Seconds between lock attempts

    Usage:
        context = RequestContext.from_environ(environ, themed_render=True)
        with Profiler(context, flag_file=flag, profiles_dir=profiles) as profiler:
            response = app(environ, start_response)
        # profiler.record holds the summary when profiling was enabled

    Only the thread that calls start() is observed.
    """

    @beartype
    def __init__(
        self,
        context: RequestContext,
        flag_file: Path,
        profiles_dir: Path,
        classifier: PathClassifier | None = None,
        relevance: Callable[[], bool] | None = None,
        query_counter: Callable[[], int] = no_queries,
        memory_peak: Callable[[], int] = peak_memory_bytes,
        clock: Callable[[], float] = time.perf_counter,
        lock_retries: int = LOCK_RETRIES,
        lock_retry_delay: float = LOCK_RETRY_DELAY,
    ) -> None:
        self.context = context
        self.state = ProfilerState.DISABLED
        self.record: ProfileRecord | None = None
        self.enablement: Enablement | None = None
        self.scheduler: SampleScheduler | None = None
        self.profile_path: Path | None = None
        self._installed = False

        enablement = load_enablement(flag_file)
        if enablement is None or not enablement.matches(context.client_ip):
            return

        self.enablement = enablement
        self.profile_path = enablement.profile_path(profiles_dir)
        self.classifier = classifier if classifier is not None else PathClassifier()
        if relevance is None:
            relevance = default_relevance(context, self.classifier)
        self.recorder = ProfileRecorder(
            self.classifier,
            memory_peak=memory_peak,
            query_counter=query_counter,
            lock_retries=lock_retries,
            lock_retry_delay=lock_retry_delay,
        )
        self.scheduler = SampleScheduler(
            StackCategorizer(self.classifier),
            relevance=relevance,
            clock=clock,
        )
        self.state = ProfilerState.ACTIVE
        logger.debug(f"Profiling {context.url} for session {enablement.name!r}")

    @property
    def active(self) -> bool:
        return self.state is ProfilerState.ACTIVE

    def start(self) -> None:
        """Install the runtime hook on the current thread."""
        if not self.active or self._installed:
            return
        sys.setprofile(self._on_event)
        self._installed = True

    def finalize(self) -> ProfileRecord | None:
        """Stop sampling, then build and persist the profile record.

        Returns the record, or None when the profiler is not ACTIVE or the
        record could not be built. The record is returned even if it could
        not be persisted.
        """
        if not self.active:
            return None
        self._uninstall()
        self.state = ProfilerState.FINALIZED

        assert self.scheduler is not None and self.profile_path is not None
        try:
            record = self.recorder.finalize(self.scheduler, self.context)
        except Exception:
            logger.exception("Profiler finalize failed; no profile recorded for this execution")
            return None
        self.record = record
        self.recorder.persist(record, self.profile_path)
        return record

    def __enter__(self) -> "Profiler":
        self.start()
        return self

    def __exit__(self, *args: Any) -> None:
        self.finalize()

    def _on_event(self, frame: FrameType, event: str, arg: Any) -> None:
        try:
            self.scheduler.tick(partial(capture_stack, frame))
        except Exception:
            logger.exception("Profiler hook failed; profiling disabled for this execution")
            self._uninstall()
            self.state = ProfilerState.DISABLED

    def _uninstall(self) -> None:
        if self._installed:
            sys.setprofile(None)
            self._installed = False
