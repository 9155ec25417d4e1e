"""Tick-driven sampler.

A call's category is only known once the profiler can see into it (the stack
at the moment it is interrupted), but its duration is only known when it
ends (at the next interruption). Attribution therefore runs one tick behind:
each tick bills the interval that just finished to the category chosen at the
previous tick, then classifies the current stack for the next interval. The
last pending sample must be flushed explicitly with flush().

Granularity is bounded by how often the host interrupts execution, not by
wall-clock precision.
"""

import time
from collections.abc import Callable, Sequence

from beartype import beartype

from layer_profiling._aggregator import RuntimeAggregator
from layer_profiling._stack import (
    CORE,
    Classification,
    ExecutionCategory,
    StackCategorizer,
    StackFrame,
)


StackSource = Sequence[StackFrame] | Callable[[], Sequence[StackFrame]]


def always_relevant() -> bool:
    return True


class SampleScheduler:
    """Bills elapsed time between ticks to the previously observed category.

    Args:
        categorizer: Classifies the stack seen at each tick
        aggregator: Receives billed intervals (default: new RuntimeAggregator)
        relevance: Predicate evaluated on every tick; when False the tick skips
            classification and its whole interval is billed as overhead
        clock: Monotonic time source in seconds (default: time.perf_counter)
        min_stack_depth: Stacks this shallow or shallower are never billed
            to an extension (default: 2)

    Design by Contract:
        - Every interval between start and flush lands in exactly one bucket
        - The scheduler's own time is billed as overhead
        - At most one pending sample exists at a time
    """

    @beartype
    def __init__(
        self,
        categorizer: StackCategorizer,
        aggregator: RuntimeAggregator | None = None,
        relevance: Callable[[], bool] = always_relevant,
        clock: Callable[[], float] = time.perf_counter,
        min_stack_depth: int = 2,
    ) -> None:
        assert min_stack_depth >= 0, f"min_stack_depth must be non-negative: {min_stack_depth}"
        self.categorizer = categorizer
        self.aggregator = aggregator if aggregator is not None else RuntimeAggregator()
        self.relevance = relevance
        self.clock = clock
        self.min_stack_depth = min_stack_depth

        self.start_time: float = self.clock()
        self.last_call_start: float = self.start_time
        self.pending: Classification | None = CORE
        self.tick_count: int = 0

    def tick(self, stack: StackSource) -> None:
        """Bill the interval that just ended and classify the current stack.

        ``stack`` may be a zero-argument callable returning the stack; it is
        only called once the tick is timed and past the relevance gate.
        """
        now = self.clock()
        elapsed = now - self.last_call_start
        self.tick_count += 1

        if not self.relevance():
            end = self.clock()
            self.aggregator.add_overhead(end - self.last_call_start)
            self.last_call_start = end
            return

        self._bill_pending(elapsed)

        if callable(stack):
            stack = stack()
        classification = self.categorizer.classify(stack)
        if (
            classification.category is ExecutionCategory.EXTENSION
            and len(stack) <= self.min_stack_depth
        ):
            classification = CORE
        self.pending = classification

        end = self.clock()
        self.aggregator.add_overhead(end - now)
        self.last_call_start = end

    def flush(self, now: float) -> None:
        """Bill the tail interval (last tick until ``now``) to the pending sample."""
        self._bill_pending(now - self.last_call_start)
        self.last_call_start = now

    def _bill_pending(self, elapsed: float) -> None:
        pending = self.pending
        if pending is None:
            self.aggregator.add_overhead(elapsed)
            return
        self.aggregator.bill(pending.category, elapsed, pending.extension_id)
        self.pending = None
