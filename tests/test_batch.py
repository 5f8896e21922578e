from __future__ import annotations

import math
import types
import unittest

from post_feed.batch import chunked


class TestChunked(unittest.TestCase):
    def test_concatenation_reproduces_input(self) -> None:
        for n in (0, 1, 4, 5, 6, 15, 16):
            for size in (1, 2, 5, 7, 100):
                values = list(range(n))
                chunks = list(chunked(values, size))

                flat = [v for c in chunks for v in c]
                self.assertEqual(flat, values)
                self.assertEqual(len(chunks), math.ceil(n / size))
                for c in chunks[:-1]:
                    self.assertEqual(len(c), size)

    def test_last_chunk_holds_remainder(self) -> None:
        chunks = list(chunked(["a", "b", "c", "d", "e"], 2))
        self.assertEqual(chunks, [["a", "b"], ["c", "d"], ["e"]])

    def test_is_lazy(self) -> None:
        gen = chunked(list(range(10)), 3)
        self.assertIsInstance(gen, types.GeneratorType)
        self.assertEqual(next(gen), [0, 1, 2])

    def test_rejects_non_positive_size(self) -> None:
        with self.assertRaises(ValueError):
            list(chunked([1, 2], 0))
        with self.assertRaises(ValueError):
            list(chunked([1, 2], -3))


if __name__ == "__main__":
    unittest.main()
