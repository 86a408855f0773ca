"""
file_watcher.py
===============
Bridge between watchdog and the live content cache.

watchdog callbacks only translate and enqueue; a single event-processor
thread applies events to the cache in arrival order, so the tree always
has exactly one writer.
"""

import os
import stat
import threading
from dataclasses import dataclass
from pathlib import Path
from collections import deque
from queue import Empty, Queue
from typing import Callable, Iterator, Optional

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from errors import WatchFailure
from logger import get_logger
from path_index import is_hidden

logger = get_logger("watcher")

ADD, CHANGE, UNLINK = "add", "change", "unlink"
ADD_DIR, UNLINK_DIR = "addDir", "unlinkDir"
READY, ERROR = "ready", "error"

# seconds between observer liveness checks while the queue is idle
HEALTH_INTERVAL = 5.0


@dataclass(frozen=True)
class WatchEvent:
    kind: str
    path: str = ""
    timestamp: Optional[int] = None
    size: Optional[int] = None
    error: object = None


def relative_path(root, abs_path) -> Optional[str]:
    """Posix-style path of ``abs_path`` under ``root``; None if outside."""
    try:
        rel = os.path.relpath(os.fsdecode(abs_path), os.fspath(root))
    except ValueError:
        return None
    if rel == os.curdir:
        return ""
    if rel == os.pardir or rel.startswith(os.pardir + os.sep):
        return None
    return Path(rel).as_posix()


def _mtime_ms(st) -> int:
    return st.st_mtime_ns // 1_000_000


def stat_event(root, abs_path, file_kind: str, dir_kind: str) -> Optional[WatchEvent]:
    """lstat ``abs_path`` and build the matching event.

    Only regular files and directories count; symlinks, sockets and entries
    that vanished before we got to them give None. The root itself is
    followed, so a shared folder may be a link to the real one.
    """
    rel = relative_path(root, abs_path)
    if rel is None:
        return None
    try:
        st = os.stat(abs_path) if rel == "" else os.lstat(abs_path)
    except OSError as e:
        logger.debug(f"stat failed for {abs_path}: {e}")
        return None
    if stat.S_ISDIR(st.st_mode):
        return WatchEvent(dir_kind, rel, _mtime_ms(st))
    if stat.S_ISREG(st.st_mode):
        return WatchEvent(file_kind, rel, _mtime_ms(st), st.st_size)
    return None


def walk_events(root, start=None) -> Iterator[WatchEvent]:
    """Recursive scan of ``start`` (default ``root``): each folder's addDir
    comes before anything inside it. Hidden entries are skipped."""
    start = Path(start if start is not None else root)
    event = stat_event(root, start, ADD, ADD_DIR)
    if event is None:
        return
    yield event
    if event.kind != ADD_DIR:
        return
    try:
        with os.scandir(start) as entries:
            names = sorted(entry.name for entry in entries)
    except OSError as e:
        logger.warning(f"cannot read {start}: {e}")
        return
    for name in names:
        if name.startswith("."):
            continue
        yield from walk_events(root, start / name)


# ── Watchdog handler ──────────────────────────────────────────────────────────
class ShareEventHandler(FileSystemEventHandler):
    def __init__(self, root, queue: Queue):
        super().__init__()
        self.root = Path(root)
        self.queue = queue
        # sources of recent directory moves; their children follow as
        # separate moved events that the destination rescan already covers
        self._moved_dirs = deque(maxlen=64)

    def _visible(self, abs_path) -> Optional[str]:
        rel = relative_path(self.root, abs_path)
        if rel is None or is_hidden(rel):
            return None
        return rel

    def _put_stat(self, abs_path, file_kind, dir_kind):
        if self._visible(abs_path) is None:
            return
        event = stat_event(self.root, abs_path, file_kind, dir_kind)
        if event is not None:
            self.queue.put(event)

    def on_created(self, event):
        rel = self._visible(event.src_path)
        if rel:
            self._forget_moved(rel)
        self._put_stat(event.src_path, ADD, ADD_DIR)

    def on_modified(self, event):
        # a modified folder is a stat refresh: addDir keeps its contents
        self._put_stat(event.src_path, CHANGE, ADD_DIR)

    def on_deleted(self, event):
        rel = self._visible(event.src_path)
        if rel is None or rel == "":
            return
        self.queue.put(WatchEvent(UNLINK_DIR if event.is_directory else UNLINK, rel))

    def _inside_moved_dir(self, rel: str) -> bool:
        return any(rel.startswith(moved + "/") for moved in self._moved_dirs)

    def _forget_moved(self, rel: str):
        # the path is in use again
        for moved in [m for m in self._moved_dirs if rel == m or rel.startswith(m + "/")]:
            self._moved_dirs.remove(moved)

    def on_moved(self, event):
        # no renames downstream: remove the old path, add the new one
        src = self._visible(event.src_path)
        if src and self._inside_moved_dir(src):
            return
        if src and event.is_directory:
            self._moved_dirs.append(src)
        if src:
            self.queue.put(WatchEvent(UNLINK_DIR if event.is_directory else UNLINK, src))
        dest = self._visible(event.dest_path)
        if dest is None:
            return
        self._forget_moved(dest)
        if event.is_directory:
            for scanned in walk_events(self.root, event.dest_path):
                self.queue.put(scanned)
        else:
            self._put_stat(event.dest_path, ADD, ADD_DIR)


# ── Watch session ─────────────────────────────────────────────────────────────
class FolderWatcher:
    """
    Watches ``root`` and keeps ``cache`` in sync with it.

    Args:
        root: shared folder
        cache: ``LiveContentCache`` receiving the events
        on_applied: called with each event after it has been applied
    """

    def __init__(self, root, cache, on_applied: Callable = None, health_interval: float = HEALTH_INTERVAL):
        self.root = Path(root)
        self.cache = cache
        self.on_applied = on_applied
        self.health_interval = health_interval
        self.event_queue: Queue = Queue()
        self._observer = None
        self._observer_failed = False
        self._stopping = False
        self._thread: Optional[threading.Thread] = None

    def start(self):
        self._thread = threading.Thread(target=self.event_processor, name="fileshare-events", daemon=True)
        self._thread.start()

        # observer first so nothing changed during the scan is missed
        try:
            observer = Observer()
            observer.schedule(ShareEventHandler(self.root, self.event_queue), str(self.root), recursive=True)
            observer.start()
            self._observer = observer
            logger.info(f"watching {self.root}")
        except Exception as e:
            self.event_queue.put(WatchEvent(ERROR, error=WatchFailure(e)))

        for event in walk_events(self.root):
            self.event_queue.put(event)
        self.event_queue.put(WatchEvent(READY))

    def event_processor(self):
        """Apply queued events one at a time until the stop sentinel."""
        while True:
            try:
                event = self.event_queue.get(timeout=self.health_interval)
            except Empty:
                self.check_observer()
                continue
            if event is None:
                break
            try:
                self.cache.apply(event)
                if self.on_applied:
                    self.on_applied(event)
            except Exception as e:
                logger.exception(f"error applying {event.kind} on {event.path!r}")
                self.cache.on_error(e)

    def check_observer(self) -> bool:
        """Report once if the observer or one of its emitters has died."""
        observer = self._observer
        if observer is None or self._stopping or self._observer_failed:
            return False
        threads = [observer, *getattr(observer, "emitters", ())]
        if all(thread.is_alive() for thread in threads):
            return False
        self._observer_failed = True
        self.cache.on_error(WatchFailure(f"observer for {self.root} stopped; changes are no longer tracked"))
        return True

    def stop(self):
        self._stopping = True
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None
        if self._thread is not None:
            self.event_queue.put(None)
            self._thread.join()
            self._thread = None
        self.cache.close()
        logger.info(f"stopped watching {self.root}")
