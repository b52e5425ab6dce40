"""
Exclusive access to working tree paths.
"""

import logging
import os
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

from engine.src.errors import WorkspaceBusy

logger = logging.getLogger(__name__)

_locks: Dict[str, threading.Lock] = {}
_locks_guard = threading.Lock()

def _lock_for(path: str) -> threading.Lock:
    key = os.path.abspath(path)
    with _locks_guard:
        if key not in _locks:
            _locks[key] = threading.Lock()
        return _locks[key]

@contextmanager
def workspace_guard(path: str, timeout: Optional[float] = None) -> Iterator[str]:
    """
    Hold the working tree at `path` for the duration of a run.

    Waits for the current holder, or raises WorkspaceBusy after `timeout` seconds.
    """
    lock = _lock_for(path)

    if not lock.acquire(blocking=False):
        logger.info(f"Working tree {path} is busy, waiting")
        acquired = lock.acquire(timeout=timeout) if timeout is not None else lock.acquire()
        if not acquired:
            raise WorkspaceBusy(path)

    try:
        yield path
    finally:
        lock.release()
