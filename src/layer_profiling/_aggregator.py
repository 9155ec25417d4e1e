"""Runtime accumulation per execution category.

Design by Contract:
- Every billed interval MUST be non-negative (crash if negative)
- Totals are monotonically non-decreasing for the life of one execution
- Each interval lands in exactly one bucket
"""

from collections import defaultdict
from dataclasses import dataclass

from layer_profiling._stack import ExecutionCategory


@dataclass(frozen=True, slots=True)
class ExtensionSample:
    extension_id: str
    duration: float


@dataclass(frozen=True)
class RuntimeTotals:
    """Seconds billed to each bucket."""

    core: float = 0.0
    theme: float = 0.0
    extensions: float = 0.0
    overhead: float = 0.0

    @property
    def accounted(self) -> float:
        """Sum of all four buckets."""
        return self.core + self.theme + self.extensions + self.overhead


class RuntimeAggregator:
    """Accumulates elapsed time into per-category totals.

    Extension time is additionally kept as a list of ExtensionSample entries,
    grouped by extension id only when grouped_extension_totals() is asked for.

    Example:
        aggregator = RuntimeAggregator()
        aggregator.bill(ExecutionCategory.CORE, 0.010)
        aggregator.bill(ExecutionCategory.EXTENSION, 0.005, "alpha")
        aggregator.grouped_extension_totals()  # {"alpha": 0.005}
    """

    def __init__(self) -> None:
        self._core: float = 0.0
        self._theme: float = 0.0
        self._extensions: float = 0.0
        self._overhead: float = 0.0
        self.samples: list[ExtensionSample] = []
        self._sample_count: int = 0

    def bill(
        self,
        category: ExecutionCategory,
        elapsed: float,
        extension_id: str | None = None,
    ) -> None:
        assert elapsed >= 0, f"Elapsed time must be non-negative: {elapsed}"

        if category is ExecutionCategory.EXTENSION:
            assert extension_id is not None, "Extension time requires an extension id"
            self.samples.append(ExtensionSample(extension_id, elapsed))
            self._sample_count += 1
            self._extensions += elapsed
        elif category is ExecutionCategory.THEME:
            self._theme += elapsed
        else:
            self._core += elapsed

    def add_overhead(self, elapsed: float) -> None:
        assert elapsed >= 0, f"Elapsed time must be non-negative: {elapsed}"
        self._overhead += elapsed

    @property
    def sample_count(self) -> int:
        """Number of extension samples recorded, including discarded ones."""
        return self._sample_count

    def snapshot(self) -> RuntimeTotals:
        return RuntimeTotals(
            core=self._core,
            theme=self._theme,
            extensions=self._extensions,
            overhead=self._overhead,
        )

    def grouped_extension_totals(self) -> dict[str, float]:
        totals: dict[str, float] = defaultdict(float)
        for sample in self.samples:
            totals[sample.extension_id] += sample.duration
        return dict(totals)

    def discard_samples(self) -> None:
        """Drop the raw sample list; totals and sample_count are kept."""
        self.samples = []
