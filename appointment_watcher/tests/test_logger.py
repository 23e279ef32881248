import logging
import tempfile
import unittest
from pathlib import Path

from rich.logging import RichHandler

from appointment_watcher.logger import setup_logger

class TestSetupLogger(unittest.TestCase):
    """Test cases for logger setup"""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.name = "watcher_test_logger"
        self.addCleanup(self._close_handlers)

    def _close_handlers(self):
        test_logger = logging.getLogger(self.name)
        for handler in list(test_logger.handlers):
            handler.close()
            test_logger.removeHandler(handler)

    def test_timestamped_file_in_logs_dir(self):
        logs_dir = Path(self.tmp.name) / "logs"
        test_logger = setup_logger(self.name, level="debug", logs_dir=logs_dir)

        self.assertEqual(test_logger.level, logging.DEBUG)
        self.assertTrue(any(isinstance(h, RichHandler) for h in test_logger.handlers))
        file_handlers = [h for h in test_logger.handlers if isinstance(h, logging.FileHandler)]
        self.assertEqual(len(file_handlers), 1)
        log_files = list(logs_dir.glob(f"{self.name}_*.log"))
        self.assertEqual(len(log_files), 1)

    def test_unknown_level_name_falls_back_to_info(self):
        test_logger = setup_logger(self.name, level="CHATTY")
        self.assertEqual(test_logger.level, logging.INFO)

    def test_unwritable_log_location_keeps_console(self):
        """A log path that cannot be created leaves console logging in place"""
        blocker = Path(self.tmp.name) / "not_a_dir"
        blocker.write_text("")

        test_logger = setup_logger(self.name, log_file=blocker / "watcher.log")

        self.assertEqual(len(test_logger.handlers), 1)
        self.assertIsInstance(test_logger.handlers[0], RichHandler)

    def test_repeated_setup_does_not_stack_handlers(self):
        setup_logger(self.name, log_file=Path(self.tmp.name) / "a.log")
        test_logger = setup_logger(self.name, log_file=Path(self.tmp.name) / "b.log")
        self.assertEqual(len(test_logger.handlers), 2)

if __name__ == '__main__':
    unittest.main()
