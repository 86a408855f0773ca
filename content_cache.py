"""
content_cache.py
================
The live content cache: one watch session's tree, snapshot cache and
readiness gate, fed by watch events and read by HTTP handlers.

Writers (the watcher's event processor) go through the ``on_*`` methods or
``apply``; readers call ``get_snapshot``. Both sides share one lock so a
snapshot is never built from a half-applied event.
"""

import threading
from typing import Callable, Optional

from errors import InvalidOperation, MissingParent, ReadinessTimeout, WatchFailure
from live_tree import LiveTree
from logger import get_logger
from readiness import ReadinessGate
from snapshot_cache import CacheEntry, SnapshotCache

logger = get_logger("cache")


class LiveContentCache:
    """
    Args:
        error_callback: ``callback(context, exc)`` for every dropped event
            and watcher error; errors are always logged as well
    """

    def __init__(self, error_callback: Callable = None):
        self._lock = threading.RLock()
        self.tree = LiveTree(on_mutation=self._invalidate)
        self.snapshots = SnapshotCache(self.tree, self._lock)
        self.gate = ReadinessGate()
        self.error_callback = error_callback
        self._handlers = {
            "add":       lambda e: self.on_add(e.path, e.timestamp, e.size),
            "change":    lambda e: self.on_change(e.path, e.timestamp, e.size),
            "unlink":    lambda e: self.on_unlink(e.path),
            "addDir":    lambda e: self.on_add_dir(e.path, e.timestamp),
            "unlinkDir": lambda e: self.on_unlink_dir(e.path),
            "ready":     lambda e: self.on_ready(),
            "error":     lambda e: self.on_error(e.error),
        }

    def _invalidate(self):
        self.snapshots.invalidate()

    def _report(self, context, exc: Exception):
        if self.error_callback:
            try:
                self.error_callback(context, exc)
            except Exception:
                logger.exception("error callback failed")

    def _mutate(self, action: str, path: str, fn, *args) -> bool:
        with self._lock:
            try:
                fn(path, *args)
            except (MissingParent, InvalidOperation) as e:
                logger.warning(f"{action} {path!r} dropped: {e}")
                self._report(path, e)
                return False
        logger.debug(f"{action} {path!r}")
        return True

    # ── watch inputs ─────────────────────────────────────────────────────────
    def on_add(self, path: str, mtime: Optional[int], size: int) -> bool:
        return self._mutate("add", path, self.tree.upsert_file, mtime, size)

    def on_change(self, path: str, mtime: Optional[int], size: int) -> bool:
        return self._mutate("change", path, self.tree.upsert_file, mtime, size)

    def on_unlink(self, path: str) -> bool:
        return self._mutate("unlink", path, self.tree.remove)

    def on_add_dir(self, path: str, mtime: Optional[int]) -> bool:
        return self._mutate("addDir", path, self.tree.upsert_folder, mtime)

    def on_unlink_dir(self, path: str) -> bool:
        return self._mutate("unlinkDir", path, self.tree.remove)

    def on_ready(self) -> bool:
        opened = self.gate.fire()
        if opened:
            logger.info("initial scan complete")
        return opened

    def on_error(self, err) -> None:
        failure = err if isinstance(err, WatchFailure) else WatchFailure(err)
        logger.error(str(failure))
        self._report("watcher", failure)

    def apply(self, event):
        """Dispatch a ``file_watcher.WatchEvent`` to the matching ``on_*``."""
        handler = self._handlers.get(event.kind)
        if handler is None:
            logger.warning(f"unknown watch event kind {event.kind!r}")
            return None
        return handler(event)

    # ── readers ──────────────────────────────────────────────────────────────
    def get_snapshot(self, timeout: float = None) -> CacheEntry:
        """Current ``(snapshot, fingerprint)``; blocks until the initial scan is done."""
        if not self.gate.wait(timeout):
            raise ReadinessTimeout(f"initial scan not complete after {timeout}s")
        return self.snapshots.get_snapshot()

    @property
    def ready(self) -> bool:
        return self.gate.is_ready()

    def close(self):
        with self._lock:
            self.tree.clear()
