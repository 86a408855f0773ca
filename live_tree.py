"""
live_tree.py
============
In-memory mirror of the shared folder, kept in sync from watch events.

Single writer: only the watcher's event-processor thread mutates the tree.
Every successful mutation calls ``on_mutation`` before returning so the
snapshot cache can drop its memoized copy.
"""

from dataclasses import dataclass, field
from typing import Callable, Optional, Union

from errors import InvalidOperation
from logger import get_logger
from path_index import join_path, locate, locate_parent, split_path

logger = get_logger("tree")


@dataclass
class FileNode:
    path: str
    timestamp: Optional[int] = None
    size: int = 0


@dataclass
class FolderNode:
    path: str
    timestamp: Optional[int] = None
    # child name -> node; storage order carries no meaning
    contents: dict = field(default_factory=dict)


Node = Union[FileNode, FolderNode]


class LiveTree:
    def __init__(self, on_mutation: Callable[[], None] = None):
        self.root = FolderNode(path="")
        self._on_mutation = on_mutation or (lambda: None)

    # ── queries ──────────────────────────────────────────────────────────────
    def get(self, path: str) -> Optional[Node]:
        return locate(self.root, split_path(path))

    def paths(self) -> set[str]:
        """Every non-root node path currently in the tree."""
        found = set()
        stack = [self.root]
        while stack:
            folder = stack.pop()
            for child in folder.contents.values():
                found.add(child.path)
                if isinstance(child, FolderNode):
                    stack.append(child)
        return found

    # ── mutations ────────────────────────────────────────────────────────────
    def upsert_file(self, path: str, timestamp: Optional[int], size: int) -> FileNode:
        parts = split_path(path)
        if not parts:
            raise InvalidOperation(path, "the root is a folder, not a file")
        parent = locate_parent(self.root, parts)
        node = FileNode(path=join_path(parts), timestamp=timestamp, size=size)
        parent.contents[parts[-1]] = node
        self._on_mutation()
        return node

    def upsert_folder(self, path: str, timestamp: Optional[int]) -> FolderNode:
        parts = split_path(path)
        if not parts:
            return self.set_root_timestamp(timestamp)
        parent = locate_parent(self.root, parts)
        existing = parent.contents.get(parts[-1])
        if isinstance(existing, FolderNode):
            # stat refresh: keep children discovered so far
            existing.timestamp = timestamp
            node = existing
        else:
            node = FolderNode(path=join_path(parts), timestamp=timestamp)
            parent.contents[parts[-1]] = node
        self._on_mutation()
        return node

    def remove(self, path: str) -> Optional[Node]:
        """Drop the node at ``path`` (and its subtree). Absent leaf is a no-op."""
        parts = split_path(path)
        if not parts:
            raise InvalidOperation(path, "the root cannot be removed")
        parent = locate_parent(self.root, parts)
        node = parent.contents.pop(parts[-1], None)
        if node is None:
            logger.debug(f"remove: {path!r} not in tree")
            return None
        self._on_mutation()
        return node

    def set_root_timestamp(self, timestamp: Optional[int]) -> FolderNode:
        self.root.timestamp = timestamp
        self._on_mutation()
        return self.root

    def clear(self):
        """Release every node; the root stays, empty."""
        self.root = FolderNode(path="")
        self._on_mutation()
