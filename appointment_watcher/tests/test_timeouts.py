import threading
import unittest

from appointment_watcher.timeouts import OperationTimeout, run_with_timeout

class TestRunWithTimeout(unittest.TestCase):
    def test_returns_result(self):
        self.assertEqual(run_with_timeout(lambda a, b=0: a + b, 1, 2, b=3), 5)

    def test_propagates_exceptions(self):
        def fail():
            raise ValueError("bad")

        with self.assertRaises(ValueError):
            run_with_timeout(fail, 1)

    def test_abandons_slow_call(self):
        release = threading.Event()
        self.addCleanup(release.set)

        with self.assertRaises(OperationTimeout):
            run_with_timeout(release.wait, 0.05, 5)

if __name__ == '__main__':
    unittest.main()
