"""
Advisory workspace locking.

Mutating operations hold an exclusive flock on .mandor/locks/workspace.lock
so two invocations cannot interleave a rewrite with an append.
"""

import fcntl
import logging
import os
import time
from contextlib import contextmanager
from pathlib import Path

from depflow.lib.config import WorkspacePaths
from depflow.lib.errors import SystemFailure

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.1


class LockTimeout(SystemFailure):
    """Lock acquisition timed out."""
    pass


@contextmanager
def _acquire_lock(lock_file: Path, timeout: float, lock_name: str):
    """
    Internal helper to acquire a file lock.

    Args:
        lock_file: Path to the lock file
        timeout: Seconds to wait for lock
        lock_name: Human-readable name for error messages
    """
    try:
        lock_file.parent.mkdir(parents=True, exist_ok=True)
        fd = open(lock_file, 'w')
    except OSError as e:
        raise SystemFailure(f"Cannot open {lock_name} at {lock_file}", e) from e

    start = time.monotonic()
    while True:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            break
        except BlockingIOError:
            if time.monotonic() - start > timeout:
                fd.close()
                raise LockTimeout(f"Could not acquire {lock_name} within {timeout}s")
            time.sleep(POLL_INTERVAL)

    logger.debug(f"[LOCK] acquired {lock_name}")
    try:
        fd.write(f"{os.getpid()}\n")
        fd.flush()
        yield
    finally:
        fcntl.flock(fd, fcntl.LOCK_UN)
        fd.close()
        logger.debug(f"[LOCK] released {lock_name}")


@contextmanager
def workspace_lock(paths: WorkspacePaths, timeout: float = 30):
    """
    Acquire the workspace lock, yield, release on exit.

    The lock file stays in place after release.
    """
    lock_file = paths.locks_dir / "workspace.lock"
    with _acquire_lock(lock_file, timeout, "workspace lock"):
        yield
