"""Host-wide lock serialising ledger access across isolator processes."""

from __future__ import annotations

import contextlib
import fcntl
import os
from pathlib import Path
from typing import TYPE_CHECKING

from dvdi.infrastructure.logger import logger

if TYPE_CHECKING:
    from collections.abc import Iterator


@contextlib.contextmanager
def ledger_lock(lock_path: Path) -> Iterator[None]:
    """Hold an exclusive flock on lock_path for the duration of the block.

    A second holder waits until the first leaves. The kernel drops the lock
    when its holder exits, so a crashed process never leaves it held. The
    file itself is never removed; it only records the last holder's pid.
    """
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    with open(lock_path, "a+") as f:
        try:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            f.seek(0)
            logger.info("Waiting for mount ledger lock", path=str(lock_path), holder=f.read().strip())
            fcntl.flock(f.fileno(), fcntl.LOCK_EX)

        f.seek(0)
        f.truncate()
        f.write(f"{os.getpid()}\n")
        f.flush()
        try:
            yield
        finally:
            fcntl.flock(f.fileno(), fcntl.LOCK_UN)
