"""
Utility functions for identifier handling and per-key locking
"""
import re
import threading
from concurrent.futures import Future
from contextlib import contextmanager
from typing import Dict, Iterator, List


PDB_ID_RE = re.compile(r"^[A-Za-z0-9_]{1,16}$")


def normalize_pdb_id(value: str) -> str:
    """Strip and upper-case a structure identifier"""
    return (value or "").strip().upper()


def validate_pdb_id(value: str) -> str:
    """
    Normalize an identifier and check it is safe to use in a file name

    Args:
        value: Raw identifier (e.g. "1crn")

    Returns:
        Normalized identifier

    Raises:
        ValueError: If the identifier is empty or has characters other
            than letters, digits and "_" (extended IDs like pdb_00001crn)
    """
    pid = normalize_pdb_id(value)
    if not PDB_ID_RE.match(pid):
        raise ValueError(f"Invalid structure identifier: {value!r}")
    return pid


class KeyedLocks:
    """
    Registry of mutexes keyed by string

    Holders of the same key run one at a time; different keys never block
    each other. Each key also carries a Future shared by everyone queued on
    it, so the first holder can publish its outcome to the waiters. Entries,
    outcome included, are dropped once the last holder releases.
    """

    def __init__(self):
        self._guard = threading.Lock()
        # key -> [lock, number of holders and waiters, shared outcome]
        self._locks: Dict[str, List] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[Future]:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.Lock(), 0, Future()]
                self._locks[key] = entry
            entry[1] += 1
        try:
            with entry[0]:
                yield entry[2]
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
