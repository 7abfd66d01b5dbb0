import os
import gzip
import shutil
import tempfile
import unittest

from haplomc.chains import EMCChain
from haplomc.exceptions import InvariantViolation
from haplomc.random_source import RandomSource
from haplomc.trace import TraceLog


class TestTraceLog(unittest.TestCase):

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    def test_disabled_trace_is_noop(self):
        trace = TraceLog()
        self.assertFalse(trace.enabled)
        trace.write_line("ignored")
        trace.close()

    def test_write_chain(self):
        path = os.path.join(self.test_dir, "trace.txt")
        chain = EMCChain(2.0, 10.0, individual=4, chain_id=1)
        chain.set_likelihood(-3.5)
        with TraceLog(path) as trace:
            trace.write_line("# header")
            trace.write_chain(7, chain, True)
        with open(path) as f:
            lines = f.read().splitlines()
        self.assertEqual(lines, ["# header", "7\t4\t-3.5\t1\t2.0\t1"])

    def test_gzip(self):
        path = os.path.join(self.test_dir, "trace.txt.gz")
        with TraceLog(path) as trace:
            trace.write_line("a\tb\n")
        with gzip.open(path, 'rt') as f:
            self.assertEqual(f.read(), "a\tb\n")

    def test_unwritable_path(self):
        with self.assertRaises(InvariantViolation):
            TraceLog(os.path.join(self.test_dir, "missing", "trace.txt"))


class TestRandomSource(unittest.TestCase):

    def test_ranges(self):
        rng = RandomSource(0)
        for _ in range(1000):
            self.assertTrue(0.0 <= rng.uniform() < 1.0)
            self.assertTrue(0 <= rng.get() < 2 ** 32)

    def test_seeded_streams_match(self):
        first = RandomSource(123)
        second = RandomSource(123)
        self.assertEqual([first.get() for _ in range(5)], [second.get() for _ in range(5)])
        self.assertEqual(first.uniform(), second.uniform())


if __name__ == '__main__':
    unittest.main()
