"""
readiness.py
============
One-shot latch meaning "the initial scan is complete".
"""

import threading


class ReadinessGate:
    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()

    def fire(self) -> bool:
        """Open the gate. Returns True only for the call that opened it."""
        with self._lock:
            if self._event.is_set():
                return False
            self._event.set()
            return True

    def is_ready(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float = None) -> bool:
        """Block until ready; False if ``timeout`` seconds passed first."""
        return self._event.wait(timeout)
