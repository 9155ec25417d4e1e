"""Property-based tests for layer_profiling using Hypothesis.

These tests verify the accounting invariant (every interval billed to exactly
one bucket) and the classification priority over arbitrary tick sequences
and stack shapes.
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from conftest import ALPHA_FILE, BETA_FILE, CORE_FILE, THEME_FILE, ManualClock
from layer_profiling import (
    ExecutionCategory,
    PathClassifier,
    ProfileRecorder,
    RequestContext,
    SampleScheduler,
    StackCategorizer,
    StackFrame,
)

# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

# Interval lengths between ticks, in seconds
valid_elapsed = st.floats(min_value=0.0, max_value=10.0, allow_nan=False, allow_infinity=False)

# Source files of every layer, plus frames without a source file
any_path = st.sampled_from([CORE_FILE, THEME_FILE, ALPHA_FILE, BETA_FILE, None, "<string>"])

# Innermost-first stacks of arbitrary shape
stacks = st.lists(any_path, min_size=0, max_size=8).map(
    lambda paths: [StackFrame(path) for path in paths]
)

# One tick: (time since previous tick, scheduler own cost, host relevance, stack)
ticks = st.lists(
    st.tuples(valid_elapsed, valid_elapsed, st.booleans(), stacks),
    min_size=0,
    max_size=40,
)

entry_scripts = st.sampled_from([
    "/srv/site/index.php",
    "/srv/site/wp-content/plugins/direct/run.php",
    THEME_FILE,
])


class ScriptedClock(ManualClock):
    """Advances by a scripted cost after each reading that starts a tick."""

    def __init__(self) -> None:
        super().__init__()
        self.costs: list[float] = []

    def __call__(self) -> float:
        now = self.now
        if self.costs:
            self.now += self.costs.pop()
        return now


def identity_classifier() -> PathClassifier:
    return PathClassifier(resolver=lambda path: path)


# ---------------------------------------------------------------------------
# Accounting invariant
# ---------------------------------------------------------------------------

class TestAccountingProperties:
    @given(data=ticks, tail=valid_elapsed, entry_script=entry_scripts)
    @settings(max_examples=200)
    def test_buckets_sum_to_total(self, data, tail, entry_script):
        """core + theme + extensions + overhead must equal the wall-clock span."""
        classifier = identity_classifier()
        clock = ScriptedClock()
        relevance = []
        scheduler = SampleScheduler(
            StackCategorizer(classifier), relevance=lambda: relevance.pop(), clock=clock
        )

        for elapsed, cost, relevant, stack in data:
            clock.advance(elapsed)
            clock.costs.append(cost)
            relevance.append(relevant)
            scheduler.tick(stack)

        clock.advance(tail)
        recorder = ProfileRecorder(classifier, started_at="", memory_peak=lambda: 0)
        record = recorder.finalize(
            scheduler, RequestContext(url="", client_ip="", entry_script=entry_script)
        )

        accounted = record.core + record.theme + record.extensions + record.overhead
        assert accounted == pytest.approx(record.total, rel=1e-9, abs=1e-9)
        assert sum(record.breakdown.values()) == pytest.approx(record.extensions, rel=1e-9, abs=1e-9)

    @given(data=ticks)
    @settings(max_examples=100)
    def test_totals_never_decrease(self, data):
        scheduler = SampleScheduler(StackCategorizer(identity_classifier()), clock=ManualClock())
        previous = scheduler.aggregator.snapshot()

        for elapsed, _, _, stack in data:
            scheduler.clock.advance(elapsed)
            scheduler.tick(stack)
            current = scheduler.aggregator.snapshot()
            assert current.core >= previous.core
            assert current.theme >= previous.theme
            assert current.extensions >= previous.extensions
            assert current.overhead >= previous.overhead
            previous = current


# ---------------------------------------------------------------------------
# Classification priority
# ---------------------------------------------------------------------------

class TestClassificationProperties:
    @given(stack=stacks)
    def test_extension_frame_always_wins(self, stack):
        categorizer = StackCategorizer(identity_classifier())
        paths = [frame.file_path for frame in stack]
        result = categorizer.classify(stack)

        if ALPHA_FILE in paths or BETA_FILE in paths:
            assert result.category is ExecutionCategory.EXTENSION
            assert result.extension_id in ("alpha", "beta")
        elif THEME_FILE in paths:
            assert result.category is ExecutionCategory.THEME
        else:
            assert result.category is ExecutionCategory.CORE

    @given(stack=stacks)
    def test_classification_is_idempotent(self, stack):
        categorizer = StackCategorizer(identity_classifier())
        assert categorizer.classify(stack) == categorizer.classify(stack)
