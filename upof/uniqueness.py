"""Uniqueness key reservations.

A uniqueness key (for example a hash binding a holder to a jurisdiction
and purpose) may back at most one active record at a time. The vault
reserves the key at mint and releases it when the record is burned or
revoked, after which the key can be reserved again.

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

import threading
from typing import Dict, Optional

from upof.errors import UniquenessConflict


class UniquenessGuard:
    """Reservation set of active uniqueness keys.

    Every operation is a no-op for an absent key (``None``).
    """

    def __init__(self):
        self._active: Dict[bytes, int] = {}
        self._lock = threading.Lock()

    def reserve(self, key: Optional[bytes], record_id: int = 0) -> None:
        if key is None:
            return
        with self._lock:
            if key in self._active:
                raise UniquenessConflict(message=f"key 0x{key.hex()} already active")
            self._active[key] = record_id

    def bind(self, key: Optional[bytes], record_id: int) -> None:
        """Attach the final record id to a key reserved before the id existed."""
        if key is None:
            return
        with self._lock:
            if key in self._active:
                self._active[key] = record_id

    def release(self, key: Optional[bytes]) -> None:
        if key is None:
            return
        with self._lock:
            self._active.pop(key, None)

    def is_active(self, key: Optional[bytes]) -> bool:
        if key is None:
            return False
        with self._lock:
            return key in self._active

    def holder_of(self, key: Optional[bytes]) -> Optional[int]:
        """Record id currently holding ``key``, if any."""
        if key is None:
            return None
        with self._lock:
            return self._active.get(key)

    def active_keys(self) -> Dict[bytes, int]:
        with self._lock:
            return dict(self._active)

    def __len__(self) -> int:
        with self._lock:
            return len(self._active)
