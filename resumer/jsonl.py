"""Lenient readers for append-only JSON-lines logs."""

import json
import os
from pathlib import Path
from typing import Iterable, Iterator, Optional

# Byte budget for head/tail reads of a transcript
READ_BUDGET = 256 * 1024


def safe_json_loads(line: str) -> Optional[dict]:
    """Parse one line, returning None for anything that is not a JSON object."""
    line = line.strip()
    if not line:
        return None
    try:
        data = json.loads(line)
    except (json.JSONDecodeError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def iter_json_objects(lines: Iterable[str]) -> Iterator[dict]:
    """Yield the JSON objects among lines, skipping blanks and noise."""
    for line in lines:
        data = safe_json_loads(line)
        if data is not None:
            yield data


def read_head(path: Path, max_bytes: int = READ_BUDGET) -> list[str]:
    """Read up to max_bytes from the start of a file and split into lines."""
    with open(path, "rb") as f:
        raw = f.read(max_bytes)
    return raw.decode("utf-8", errors="replace").splitlines()


def read_tail(path: Path, max_bytes: int = READ_BUDGET) -> list[str]:
    """Read up to max_bytes from the end of a file and split into lines.

    When the read starts mid-file the first (partial) line is dropped.
    """
    with open(path, "rb") as f:
        f.seek(0, os.SEEK_END)
        size = f.tell()
        start = max(0, size - max_bytes)
        f.seek(start)
        raw = f.read()
    lines = raw.decode("utf-8", errors="replace").splitlines()
    if start > 0 and lines:
        lines = lines[1:]
    return lines
