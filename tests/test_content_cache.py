from __future__ import annotations

import threading
import unittest

from content_cache import LiveContentCache
from errors import InvalidOperation, MissingParent, ReadinessTimeout, WatchFailure
from file_watcher import WatchEvent


class LiveContentCacheTests(unittest.TestCase):
    def setUp(self) -> None:
        self.errors = []
        self.cache = LiveContentCache(error_callback=lambda ctx, exc: self.errors.append((ctx, exc)))

    def test_scan_scenario_produces_expected_snapshot(self) -> None:
        self.cache.on_add_dir("", 100)
        self.cache.on_add_dir("docs", 200)
        self.cache.on_add("docs/a.txt", 300, 100)
        self.cache.on_ready()

        snapshot, fingerprint = self.cache.get_snapshot()

        self.assertEqual(snapshot.to_dict(), {
            "folder": True, "name": None, "path": "", "timestamp": 300,
            "contents": [{
                "folder": True, "name": "docs", "path": "docs", "timestamp": 300,
                "contents": [{"folder": False, "name": "a.txt", "path": "docs/a.txt", "timestamp": 300}],
            }],
        })
        self.assertEqual(len(fingerprint), 32)

    def test_apply_dispatches_every_event_kind(self) -> None:
        events = [
            WatchEvent("addDir", "", 1),
            WatchEvent("addDir", "d", 1),
            WatchEvent("add", "d/a", 2, 1),
            WatchEvent("change", "d/a", 3, 2),
            WatchEvent("add", "d/b", 2, 1),
            WatchEvent("unlink", "d/b"),
            WatchEvent("addDir", "e", 1),
            WatchEvent("unlinkDir", "e"),
            WatchEvent("ready"),
        ]
        for event in events:
            self.cache.apply(event)

        self.assertEqual(self.cache.tree.paths(), {"d", "d/a"})
        self.assertEqual(self.cache.tree.get("d/a").size, 2)
        self.assertTrue(self.cache.ready)
        self.assertEqual(self.errors, [])

    def test_missing_parent_is_reported_and_dropped(self) -> None:
        self.assertFalse(self.cache.on_add("nowhere/a.txt", 1, 1))
        self.assertEqual(self.cache.tree.paths(), set())
        context, exc = self.errors[0]
        self.assertEqual(context, "nowhere/a.txt")
        self.assertIsInstance(exc, MissingParent)

    def test_removing_root_is_reported_not_raised(self) -> None:
        self.assertFalse(self.cache.on_unlink_dir(""))
        self.assertIsInstance(self.errors[0][1], InvalidOperation)

    def test_watch_error_is_reported_without_mutation(self) -> None:
        self.cache.on_add("a", 1, 1)
        self.cache.on_ready()
        before = self.cache.get_snapshot()

        self.cache.apply(WatchEvent("error", error=OSError("inotify limit")))

        self.assertIs(self.cache.get_snapshot(), before)
        self.assertIsInstance(self.errors[0][1], WatchFailure)

    def test_failing_error_callback_does_not_propagate(self) -> None:
        def explode(ctx, exc):
            raise RuntimeError("boom")

        cache = LiveContentCache(error_callback=explode)
        with self.assertLogs("fileshare.cache", level="ERROR"):
            self.assertFalse(cache.on_add("x/y", 1, 1))

    def test_get_snapshot_times_out_before_ready(self) -> None:
        self.cache.on_add("a", 1, 1)
        with self.assertRaises(ReadinessTimeout):
            self.cache.get_snapshot(timeout=0.01)

    def test_readers_block_until_ready(self) -> None:
        results = []
        started = threading.Barrier(4)

        def reader() -> None:
            started.wait()
            results.append(self.cache.get_snapshot(timeout=5))

        threads = [threading.Thread(target=reader) for _ in range(3)]
        for t in threads:
            t.start()
        started.wait()
        self.cache.on_add("a", 1, 1)
        threads[0].join(0.05)
        self.assertEqual(results, [])

        self.assertTrue(self.cache.on_ready())
        for t in threads:
            t.join(5)

        self.assertEqual(len(results), 3)
        self.assertEqual(len({r.fingerprint for r in results}), 1)
        self.assertFalse(self.cache.on_ready())

    def test_same_add_twice_keeps_fingerprint(self) -> None:
        self.cache.on_ready()
        self.cache.on_add("a", 5, 10)
        first = self.cache.get_snapshot()
        self.cache.on_add("a", 5, 10)
        self.assertEqual(self.cache.get_snapshot(), first)

    def test_close_releases_tree(self) -> None:
        self.cache.on_add_dir("d", 1)
        self.cache.on_add("d/a", 1, 1)
        self.cache.close()
        self.assertEqual(self.cache.tree.paths(), set())

    def test_independent_sessions_do_not_share_state(self) -> None:
        other = LiveContentCache()
        self.cache.on_add("only-here", 1, 1)
        self.assertEqual(other.tree.paths(), set())


if __name__ == "__main__":
    unittest.main()
