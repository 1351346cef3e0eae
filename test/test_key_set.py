"""
Tests for the concurrent key collection.
"""

import threading
import unittest

from s3bench.common.key_set import KeySet


class TestKeySet(unittest.TestCase):

    def test_concurrent_insertion(self):
        keys = KeySet()

        def writer(worker_id: int):
            for n in range(500):
                keys.add(f"{worker_id}-{n}")

        threads = [threading.Thread(target=writer, args=(i,)) for i in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(len(keys), 4000)
        self.assertIn("7-499", keys)

    def test_snapshot_is_a_copy(self):
        keys = KeySet()
        keys.add("a")
        snapshot = keys.snapshot()
        keys.add("b")
        self.assertEqual(snapshot, ["a"])
        self.assertEqual(sorted(keys), ["a", "b"])

    def test_duplicate_keys_count_once(self):
        keys = KeySet()
        keys.add("same")
        keys.add("same")
        self.assertEqual(len(keys), 1)


if __name__ == '__main__':
    unittest.main()
