"""Call-stack categorization.

A call stack can cross layers (core calling into a theme calling into an
extension) but each sampled interval is billed to exactly one bucket, so the
most specific layer wins: EXTENSION > THEME > CORE.
"""

import enum
from collections.abc import Sequence
from dataclasses import dataclass
from types import FrameType
from typing import NamedTuple

from beartype import beartype

from layer_profiling._paths import PathClassifier


class ExecutionCategory(enum.Enum):
    CORE = "core"
    THEME = "theme"
    EXTENSION = "extension"


@dataclass(frozen=True, slots=True)
class StackFrame:
    """One frame of a call stack. Only the file path is consulted.

    ``file_path`` is None (or a pseudo-path such as ``<string>``) for code
    that was evaluated dynamically and has no source file.
    """

    file_path: str | None

    @property
    def has_source(self) -> bool:
        return bool(self.file_path) and not self.file_path.startswith("<")


class Classification(NamedTuple):
    category: ExecutionCategory
    extension_id: str | None = None


CORE = Classification(ExecutionCategory.CORE)
THEME = Classification(ExecutionCategory.THEME)


def capture_stack(frame: FrameType | None) -> list[StackFrame]:
    """Walk a live frame chain, innermost frame first."""
    stack = []
    while frame is not None:
        stack.append(StackFrame(frame.f_code.co_filename))
        frame = frame.f_back
    return stack


class StackCategorizer:
    """Decides which layer a call stack is executing in.

    Args:
        classifier: Shared PathClassifier (its caches persist across calls)
    """

    @beartype
    def __init__(self, classifier: PathClassifier) -> None:
        self.classifier = classifier

    def classify(self, stack: Sequence[StackFrame]) -> Classification:
        is_extension_file = self.classifier.is_extension_file
        for frame in stack:
            if frame.has_source and is_extension_file(frame.file_path):
                return Classification(
                    ExecutionCategory.EXTENSION,
                    self.classifier.resolve_extension_id(frame.file_path),
                )

        is_theme_file = self.classifier.is_theme_file
        for frame in stack:
            if frame.has_source and is_theme_file(frame.file_path):
                return THEME

        return CORE
