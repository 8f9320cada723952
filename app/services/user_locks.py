"""
Per-user mutex for Drive operations.

Exchange, upload, move, share and disconnect for one user run one at a time
inside this process, so two requests cannot both miss a country/year folder
and both create it, or both refresh the same expired token. Other worker
processes are not covered.

An entry lives only while some request holds or waits for it; the last one
out removes it, so the registry does not grow with every user ever seen.
"""
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field


@dataclass
class _Entry:
    lock: threading.Lock = field(default_factory=threading.Lock)
    holders: int = 0  # requests holding or waiting on lock


_registry_lock = threading.Lock()
_locks: dict[str, _Entry] = {}


@contextmanager
def user_lock(user_id: str):
    with _registry_lock:
        entry = _locks.setdefault(user_id, _Entry())
        entry.holders += 1
    try:
        with entry.lock:
            yield
    finally:
        with _registry_lock:
            entry.holders -= 1
            if entry.holders == 0:
                del _locks[user_id]
