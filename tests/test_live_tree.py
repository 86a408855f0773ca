from __future__ import annotations

import random
import unittest

from errors import InvalidOperation, MissingParent
from live_tree import FileNode, FolderNode, LiveTree


class ReferenceFilesystem:
    """Flat path -> kind model with the same parent rules as the watcher."""

    def __init__(self) -> None:
        self.entries: dict[str, str] = {}

    def _parent_ok(self, path: str) -> bool:
        parent = path.rpartition("/")[0]
        return parent == "" or self.entries.get(parent) == "dir"

    def _drop(self, path: str) -> None:
        for key in [k for k in self.entries if k == path or k.startswith(path + "/")]:
            del self.entries[key]

    def add(self, path: str) -> None:
        if self._parent_ok(path):
            self._drop(path)
            self.entries[path] = "file"

    def add_dir(self, path: str) -> None:
        if self._parent_ok(path) and self.entries.get(path) != "dir":
            self._drop(path)
            self.entries[path] = "dir"

    def remove(self, path: str) -> None:
        if self._parent_ok(path):
            self._drop(path)


class LiveTreeMutationTests(unittest.TestCase):
    def setUp(self) -> None:
        self.mutations = 0
        self.tree = LiveTree(on_mutation=self._count)

    def _count(self) -> None:
        self.mutations += 1

    def test_upsert_file_requires_existing_parent(self) -> None:
        with self.assertRaises(MissingParent):
            self.tree.upsert_file("docs/a.txt", 1, 10)
        self.assertEqual(self.mutations, 0)
        self.assertEqual(self.tree.paths(), set())

    def test_upsert_file_then_folder_builds_paths(self) -> None:
        self.tree.upsert_folder("docs", 1)
        node = self.tree.upsert_file("docs/a.txt", 2, 10)
        self.assertEqual(node, FileNode(path="docs/a.txt", timestamp=2, size=10))
        self.assertEqual(self.tree.paths(), {"docs", "docs/a.txt"})
        self.assertEqual(self.mutations, 2)

    def test_upsert_folder_keeps_existing_children(self) -> None:
        self.tree.upsert_folder("docs", 1)
        self.tree.upsert_file("docs/a.txt", 2, 10)
        refreshed = self.tree.upsert_folder("docs", 5)
        self.assertEqual(refreshed.timestamp, 5)
        self.assertIn("a.txt", refreshed.contents)

    def test_upsert_file_over_folder_does_not_touch_siblings(self) -> None:
        self.tree.upsert_folder("x", 1)
        self.tree.upsert_file("x/inner.txt", 1, 1)
        self.tree.upsert_file("sibling.txt", 1, 1)
        self.tree.upsert_file("x", 3, 7)
        self.assertIsInstance(self.tree.get("x"), FileNode)
        self.assertEqual(self.tree.paths(), {"x", "sibling.txt"})

    def test_remove_folder_drops_subtree(self) -> None:
        self.tree.upsert_folder("a", 1)
        self.tree.upsert_folder("a/b", 1)
        self.tree.upsert_file("a/b/c.txt", 1, 1)
        removed = self.tree.remove("a")
        self.assertIsInstance(removed, FolderNode)
        self.assertEqual(self.tree.paths(), set())

    def test_remove_missing_leaf_is_a_no_op(self) -> None:
        self.tree.upsert_folder("a", 1)
        before = self.mutations
        self.assertIsNone(self.tree.remove("a/ghost.txt"))
        self.assertEqual(self.mutations, before)

    def test_remove_root_is_rejected(self) -> None:
        with self.assertRaises(InvalidOperation):
            self.tree.remove("")
        with self.assertRaises(InvalidOperation):
            self.tree.upsert_file("", 1, 1)

    def test_root_timestamp_is_set_through_upsert_folder(self) -> None:
        root = self.tree.upsert_folder("", 42)
        self.assertIs(root, self.tree.root)
        self.assertEqual(self.tree.root.timestamp, 42)
        self.assertEqual(self.tree.set_root_timestamp(43).timestamp, 43)

    def test_folder_timestamp_is_its_own_mtime(self) -> None:
        self.tree.upsert_folder("docs", 1)
        self.tree.upsert_file("docs/a.txt", 99, 1)
        self.assertEqual(self.tree.get("docs").timestamp, 1)

    def test_clear_releases_all_nodes(self) -> None:
        self.tree.upsert_folder("docs", 1)
        self.tree.upsert_file("docs/a.txt", 2, 1)
        self.tree.clear()
        self.assertEqual(self.tree.paths(), set())
        self.assertEqual(self.tree.root.path, "")

    def test_add_twice_is_idempotent(self) -> None:
        self.tree.upsert_folder("d", 1)
        self.tree.upsert_file("d/f", 5, 10)
        first = self.tree.get("d/f")
        self.tree.upsert_file("d/f", 5, 10)
        self.assertEqual(self.tree.get("d/f"), first)
        self.assertEqual(self.tree.paths(), {"d", "d/f"})


class LiveTreeModelTests(unittest.TestCase):
    PATHS = ["a", "a/b", "a/b/c.txt", "a/x.txt", "d", "d/y.txt", "z.txt", "a/b/e"]

    def _apply(self, tree: LiveTree, model: ReferenceFilesystem, op: str, path: str) -> None:
        if op == "add":
            model.add(path)
            call = lambda: tree.upsert_file(path, 1, 1)
        elif op == "addDir":
            model.add_dir(path)
            call = lambda: tree.upsert_folder(path, 1)
        else:
            model.remove(path)
            call = lambda: tree.remove(path)
        try:
            call()
        except MissingParent:
            pass

    def test_path_set_matches_reference_model(self) -> None:
        rng = random.Random(1234)
        for _ in range(50):
            tree = LiveTree()
            model = ReferenceFilesystem()
            for _ in range(60):
                op = rng.choice(["add", "addDir", "addDir", "unlink"])
                self._apply(tree, model, op, rng.choice(self.PATHS))
                self.assertEqual(tree.paths(), set(model.entries))


if __name__ == "__main__":
    unittest.main()
