"""
PCN Challenge Engine - Active Job Guard

At most one in-flight challenge job per ticket. Acquisition is an atomic
check-and-set; a losing caller is told immediately and never waits.
"""
import threading
from typing import Set


class ActiveJobGuard:
    def __init__(self):
        self._lock = threading.Lock()
        self._active: Set[str] = set()

    def try_acquire(self, ticket_id: str) -> bool:
        with self._lock:
            if ticket_id in self._active:
                return False
            self._active.add(ticket_id)
            return True

    def release(self, ticket_id: str) -> None:
        with self._lock:
            self._active.discard(ticket_id)

    def is_active(self, ticket_id: str) -> bool:
        with self._lock:
            return ticket_id in self._active
