"""layer-profiling: Attribute request runtime to core, theme, and extension code.

Provides:
- Profiler: Per-execution lifecycle (enablement flag, runtime hook, finalize)
- PathClassifier: Memoized extension/theme detection for source file paths
- StackCategorizer: Picks the billed layer for a call stack (EXTENSION > THEME > CORE)
- SampleScheduler: Tick-driven sampler with one-tick-lag attribution
- RuntimeAggregator: Per-category totals and per-extension samples
- ProfileRecorder: Builds the summary record and appends it under a file lock
- read_profiles / sort_rows: Reading saved profile files

Usage:
    from layer_profiling import Profiler, RequestContext

    context = RequestContext.from_environ(environ, themed_render=True)
    with Profiler(context, flag_file=flag, profiles_dir=profiles) as profiler:
        handle_request()

    profiler.record.to_dict()["runtime"]["breakdown"]
"""

from layer_profiling._aggregator import ExtensionSample, RuntimeAggregator, RuntimeTotals
from layer_profiling._context import (
    Enablement,
    RequestContext,
    client_ip,
    load_enablement,
    request_url,
)
from layer_profiling._paths import PathCache, PathClassifier, PathLayout
from layer_profiling._profiler import Profiler, ProfilerState, default_relevance
from layer_profiling._profiles import read_profiles, sort_rows
from layer_profiling._recorder import ProfileRecord, ProfileRecorder, peak_memory_bytes
from layer_profiling._scheduler import SampleScheduler
from layer_profiling._stack import (
    Classification,
    ExecutionCategory,
    StackCategorizer,
    StackFrame,
    capture_stack,
)

__all__ = [
    "Classification",
    "Enablement",
    "ExecutionCategory",
    "ExtensionSample",
    "PathCache",
    "PathClassifier",
    "PathLayout",
    "ProfileRecord",
    "ProfileRecorder",
    "Profiler",
    "ProfilerState",
    "RequestContext",
    "RuntimeAggregator",
    "RuntimeTotals",
    "SampleScheduler",
    "StackCategorizer",
    "StackFrame",
    "capture_stack",
    "client_ip",
    "default_relevance",
    "load_enablement",
    "peak_memory_bytes",
    "read_profiles",
    "request_url",
    "sort_rows",
]

__version__ = "0.1.0"
