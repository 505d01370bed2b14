"""
Low-level JSONL storage helpers.

Full-file writes go to a temp file and are renamed into place, so readers
never observe a half-written file. Appends are a single unbuffered write.
A malformed line fails the whole read; nothing is skipped silently.
"""

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path

from depflow.lib.errors import PermissionDenied, SystemFailure

logger = logging.getLogger(__name__)


def now_iso() -> str:
    """Current UTC time as an ISO-8601 string with a Z suffix."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _dumps(row: dict) -> str:
    return json.dumps(row, separators=(",", ":"), ensure_ascii=False)


def read_jsonl(path: Path) -> list[dict]:
    """Read every record from a JSONL file. A missing file reads as empty.

    Raises:
        SystemFailure: If the file can't be read or any line fails to parse
    """
    if not path.exists():
        return []

    rows: list[dict] = []
    try:
        with open(path, encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    rows.append(json.loads(line))
                except json.JSONDecodeError as e:
                    raise SystemFailure(
                        f"Cannot parse {path} line {lineno}. File may be corrupted.", e
                    ) from e
    except OSError as e:
        raise SystemFailure(f"Cannot read {path}", e) from e
    return rows


def append_jsonl(path: Path, row: dict) -> None:
    """Append one record as a single write."""
    data = (_dumps(row) + "\n").encode("utf-8")
    try:
        fd = os.open(path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o644)
    except PermissionError as e:
        raise PermissionDenied(f"Permission denied: cannot write to {path}", e) from e
    except OSError as e:
        raise SystemFailure(f"Cannot open {path} for append", e) from e
    try:
        os.write(fd, data)
    except OSError as e:
        raise SystemFailure(f"Cannot append to {path}", e) from e
    finally:
        os.close(fd)


def write_jsonl_atomic(path: Path, rows: list[dict]) -> None:
    """Rewrite a JSONL file via temp file + rename."""
    tmp = path.with_suffix(path.suffix + ".tmp")
    try:
        with open(tmp, "w", encoding="utf-8") as f:
            for row in rows:
                f.write(_dumps(row) + "\n")
        os.replace(tmp, path)
    except PermissionError as e:
        raise PermissionDenied(f"Permission denied: cannot write to {path}", e) from e
    except OSError as e:
        tmp.unlink(missing_ok=True)
        raise SystemFailure(f"Cannot write {path}", e) from e
    logger.debug(f"[STORE] rewrote {path.name} ({len(rows)} records)")


def write_json_atomic(path: Path, data: dict) -> None:
    """Write a single JSON document via temp file + rename."""
    tmp = path.with_suffix(path.suffix + ".tmp")
    try:
        tmp.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
        os.replace(tmp, path)
    except PermissionError as e:
        raise PermissionDenied(f"Permission denied: cannot write to {path}", e) from e
    except OSError as e:
        tmp.unlink(missing_ok=True)
        raise SystemFailure(f"Cannot write {path}", e) from e


def ensure_writable(directory: Path) -> None:
    """Pre-flight probe: create and remove a file in `directory`.

    Raises:
        PermissionDenied: If the directory is not writable
    """
    probe = directory / ".write_test"
    try:
        probe.write_text("")
        probe.unlink()
    except OSError as e:
        raise PermissionDenied(f"Permission denied: {directory} is not writable", e) from e
