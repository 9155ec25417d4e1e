"""Shared fixtures: deterministic clocks and sample stacks."""

import pytest

from layer_profiling import PathClassifier, StackCategorizer, StackFrame

ROOT = "/srv/site"
CORE_FILE = f"{ROOT}/wp-includes/plugin.php"
THEME_FILE = f"{ROOT}/wp-content/themes/twentyten/functions.php"
ALPHA_FILE = f"{ROOT}/wp-content/plugins/alpha/includes/hooks.php"
BETA_FILE = f"{ROOT}/wp-content/mu-plugins/beta.php"


class ManualClock:
    """Time only moves when advance() is called."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def __call__(self) -> float:
        return self.now


class SteppingClock:
    """Every reading moves time forward by ``step`` seconds."""

    def __init__(self, step: float) -> None:
        self.step = step
        self.now = 0.0
        self.readings = 0

    def __call__(self) -> float:
        self.now += self.step
        self.readings += 1
        return self.now


def stack_of(*paths: str | None, depth: int = 4) -> list[StackFrame]:
    """Innermost-first stack made of ``paths`` padded with core frames to ``depth``."""
    frames = [StackFrame(path) for path in paths]
    frames.extend(StackFrame(CORE_FILE) for _ in range(depth - len(frames)))
    return frames


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def classifier() -> PathClassifier:
    # Identity resolver: the sample paths do not exist on disk
    return PathClassifier(resolver=lambda path: path)


@pytest.fixture
def categorizer(classifier: PathClassifier) -> StackCategorizer:
    return StackCategorizer(classifier)
