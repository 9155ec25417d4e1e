"""File path classification.

Decides whether a source file belongs to an extension or to the theme layer,
and resolves the extension a file belongs to. Every decision is memoized in
an explicit PathCache owned by the classifier: the filesystem layout is
assumed stable for the life of the process, so caches are never invalidated.
"""

import os
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from beartype import beartype

_SEPARATORS = re.compile(r"[\\/]+")

V = TypeVar("V")


@dataclass(frozen=True)
class PathLayout:
    """Directory names that identify the content layers of the host.

    Attributes:
        content_root: Directory that holds extensions and themes
        extension_dirs: Directories (under content_root) holding extensions
        theme_dir: Directory (under content_root) holding themes
        source_suffixes: Suffixes stripped from single-file extension names
            (matched case-insensitively)
    """

    content_root: str = "wp-content"
    extension_dirs: tuple[str, ...] = ("plugins", "mu-plugins")
    theme_dir: str = "themes"
    source_suffixes: tuple[str, ...] = (".php", ".py")

    def __post_init__(self) -> None:
        assert self.content_root, "content_root must be non-empty"
        assert self.extension_dirs, "At least one extension directory is required"
        assert self.theme_dir, "theme_dir must be non-empty"


class PathCache(Generic[V]):
    """Memo table keyed by file path, with hit/miss counters."""

    def __init__(self) -> None:
        self._entries: dict[str, V] = {}
        self.hits: int = 0
        self.misses: int = 0

    def get_or_compute(self, path: str, compute: Callable[[str], V]) -> V:
        if path in self._entries:
            self.hits += 1
            return self._entries[path]
        self.misses += 1
        value = self._entries[path] = compute(path)
        return value

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: object) -> bool:
        return path in self._entries


def _segments(path: str) -> list[str]:
    return [part for part in _SEPARATORS.split(path) if part]


class PathClassifier:
    """Classifies source files into extension, theme or neither.

    Construct once per process and share it; the caches live on the instance.

    Args:
        layout: Directory naming convention of the host (default: PathLayout())
        resolver: Canonicalizes a path before extension ids are derived from
            it (default: os.path.realpath, which resolves symlinks)

    Example:
        classifier = PathClassifier()
        classifier.is_extension_file("/srv/wp-content/plugins/akismet/akismet.php")  # True
        classifier.resolve_extension_id("/srv/wp-content/plugins/akismet/akismet.php")  # "akismet"
    """

    @beartype
    def __init__(
        self,
        layout: PathLayout | None = None,
        resolver: Callable[[str], str] = os.path.realpath,
    ) -> None:
        self.layout = layout if layout is not None else PathLayout()
        self._resolver = resolver
        self._extension_dirs = frozenset(self.layout.extension_dirs)
        self._theme_dirs = frozenset((self.layout.theme_dir,))
        self.extension_cache: PathCache[bool] = PathCache()
        self.theme_cache: PathCache[bool] = PathCache()
        self.extension_id_cache: PathCache[str] = PathCache()

    def is_extension_file(self, path: str) -> bool:
        return self.extension_cache.get_or_compute(path, self._under_extension_dir)

    def is_theme_file(self, path: str) -> bool:
        return self.theme_cache.get_or_compute(path, self._under_theme_dir)

    def resolve_extension_id(self, path: str) -> str:
        """Name of the extension that owns ``path``.

        A file inside an extension directory belongs to the extension named by
        that directory; a file sitting directly in the extensions directory is
        a single-file extension named after the file, minus its suffix.
        """
        return self.extension_id_cache.get_or_compute(path, self._extension_id)

    def _layer_index(self, segments: list[str], layer_dirs: frozenset[str]) -> int:
        """Index of the first layer directory nested under the content root, or -1."""
        seen_root = False
        # The final segment is the file itself, never a containing directory
        for index, segment in enumerate(segments[:-1]):
            if seen_root and segment in layer_dirs:
                return index
            if segment == self.layout.content_root:
                seen_root = True
        return -1

    def _under_extension_dir(self, path: str) -> bool:
        return self._layer_index(_segments(path), self._extension_dirs) >= 0

    def _under_theme_dir(self, path: str) -> bool:
        return self._layer_index(_segments(path), self._theme_dirs) >= 0

    def _extension_id(self, path: str) -> str:
        segments = _segments(self._resolver(path))
        assert segments, f"Cannot resolve an extension id from an empty path: {path!r}"
        index = self._layer_index(segments, self._extension_dirs)
        remainder = segments[index + 1:] if index >= 0 else segments[-1:]
        if len(remainder) > 1:
            return remainder[0]
        return self._strip_suffix(remainder[0])

    def _strip_suffix(self, filename: str) -> str:
        lowered = filename.lower()
        for suffix in self.layout.source_suffixes:
            if lowered.endswith(suffix.lower()) and len(filename) > len(suffix):
                return filename[: -len(suffix)]
        return os.path.splitext(filename)[0] or filename
