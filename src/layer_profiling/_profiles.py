"""Reading saved profile files.

A profile file holds one JSON object per line, appended by ProfileRecorder.
Lines from executions that died mid-write, or other junk, are skipped.
"""

import json
from pathlib import Path
from typing import Any

from beartype import beartype
from loguru import logger


@beartype
def read_profiles(path: Path) -> list[dict[str, Any]]:
    """Load every well-formed record from a profile file.

    Args:
        path: Profile file (``<profiles_dir>/<name>.json``)

    Returns:
        Records in file order; empty if the file does not exist.
    """
    if not path.exists():
        return []

    records: list[dict[str, Any]] = []
    # Undecodable bytes become U+FFFD so a torn line fails to parse on its own
    with open(path, encoding="utf-8", errors="replace") as handle:
        for line_number, line in enumerate(handle, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError as exc:
                logger.warning(f"{path}:{line_number}: skipping malformed profile line ({exc})")
                continue
            if not isinstance(record, dict):
                logger.warning(f"{path}:{line_number}: skipping non-object profile line")
                continue
            records.append(record)
    return records


@beartype
def sort_rows(
    rows: list[dict[str, Any]],
    field: str = "name",
    direction: str = "asc",
) -> list[dict[str, Any]]:
    """Sort table rows by one field.

    Numbers compare numerically and sort before everything else, which
    compares as strings.

    Args:
        rows: Rows to sort (not modified)
        field: Key to sort by; rows missing it sort as an empty string
        direction: "asc" or "desc"
    """
    assert direction in ("asc", "desc"), f"direction must be 'asc' or 'desc': {direction!r}"
    ordered = sorted(rows, key=lambda row: _sort_key(row.get(field, "")))
    return ordered if direction == "asc" else ordered[::-1]


def _sort_key(value: Any) -> tuple[int, float | str]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (0, value)
    return (1, str(value))
