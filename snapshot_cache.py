"""
snapshot_cache.py
=================
Memoized, ordered, pruned snapshot of the live tree plus its fingerprint.

``invalidate()`` only drops the memoized entry; the snapshot is rebuilt on
the first read afterwards, so a burst of events during the initial scan
costs nothing until somebody actually asks.
"""

import hashlib
import json
import threading
from dataclasses import dataclass
from typing import NamedTuple, Optional, Union

from live_tree import FolderNode, LiveTree
from logger import get_logger
from path_index import split_path

logger = get_logger("snapshot")


@dataclass(frozen=True)
class FileContent:
    name: str
    path: str
    timestamp: Optional[int]
    size: int = 0

    def to_dict(self, with_size: bool = False) -> dict:
        data = {"folder": False, "name": self.name, "path": self.path, "timestamp": self.timestamp}
        if with_size:
            data["size"] = self.size
        return data


@dataclass(frozen=True)
class FolderContent:
    name: Optional[str]
    path: str
    contents: tuple = ()
    timestamp: Optional[int] = None

    def to_dict(self, with_size: bool = False) -> dict:
        return {
            "folder":    True,
            "name":      self.name,
            "path":      self.path,
            "contents":  [child.to_dict(with_size) for child in self.contents],
            "timestamp": self.timestamp,
        }


Content = Union[FolderContent, FileContent]


class CacheEntry(NamedTuple):
    snapshot: FolderContent
    fingerprint: str


# ── Serialization ─────────────────────────────────────────────────────────────
def _newest_first(content: Content):
    # missing timestamps go last; sorted() is stable so ties keep tree order
    if content.timestamp is None:
        return (1, 0)
    return (0, -content.timestamp)


def _name_of(node) -> str:
    parts = split_path(node.path)
    return parts[-1] if parts else None


def serialize_folder(node: FolderNode, is_root: bool = False) -> Optional[FolderContent]:
    """Recursively turn a folder node into ``FolderContent``.

    Folders with nothing to show serialize to None, except the root. The
    folder's timestamp is its newest child's, not its own mtime.
    """
    if not node.contents and not is_root:
        return None

    children = []
    for child in node.contents.values():
        if isinstance(child, FolderNode):
            content = serialize_folder(child)
        else:
            content = FileContent(name=_name_of(child), path=child.path,
                                  timestamp=child.timestamp, size=child.size)
        if content is not None:
            children.append(content)

    if not children and not is_root:
        return None

    children.sort(key=_newest_first)
    return FolderContent(
        name=None if is_root else _name_of(node),
        path=node.path,
        contents=tuple(children),
        timestamp=children[0].timestamp if children else None,
    )


def fingerprint(snapshot: FolderContent) -> str:
    """MD5 over the canonical JSON form (sizes included)."""
    canonical = json.dumps(snapshot.to_dict(with_size=True), sort_keys=True, separators=(",", ":"))
    return hashlib.md5(canonical.encode("utf-8")).hexdigest()


# ── Cache ─────────────────────────────────────────────────────────────────────
class SnapshotCache:
    """
    Args:
        tree: the live tree to serialize
        lock: shared with whoever mutates ``tree``; held while serializing
    """

    def __init__(self, tree: LiveTree, lock=None):
        self.tree = tree
        self._lock = lock or threading.RLock()
        self._entry: Optional[CacheEntry] = None
        self.recompute_count = 0

    def invalidate(self):
        self._entry = None

    def peek(self) -> Optional[CacheEntry]:
        return self._entry

    def get_snapshot(self) -> CacheEntry:
        entry = self._entry
        if entry is not None:
            return entry
        with self._lock:
            # another reader may have rebuilt it while we waited
            if self._entry is None:
                snapshot = serialize_folder(self.tree.root, is_root=True)
                self._entry = CacheEntry(snapshot, fingerprint(snapshot))
                self.recompute_count += 1
                logger.debug(f"snapshot rebuilt: {self._entry.fingerprint}")
            return self._entry
