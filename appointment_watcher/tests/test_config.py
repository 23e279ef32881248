import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

from appointment_watcher.__main__ import main, parse_args
from appointment_watcher.config import Config
from appointment_watcher.errors import ConfigurationError
from appointment_watcher.manager import InboxManager
from appointment_watcher.restart import RestartFlag

FULL_ENV = {
    'IMAP_HOST': 'imap.example.com',
    'IMAP_PORT': '993',
    'IMAP_USERNAME': 'praxis',
    'IMAP_PASSWORD': 'secret',
    'IMAP_USE_TLS': 'false',
    'SMTP_USERNAME': 'praxis@example.com',
    'POLL_INTERVAL': '30',
    'ANALYZER_PREFILTER': 'no',
}

class TestConfig(unittest.TestCase):
    def test_load_from_environment(self):
        with patch.dict(os.environ, FULL_ENV, clear=True):
            loaded = Config.load()

        self.assertEqual(loaded.imap.host, 'imap.example.com')
        self.assertEqual(loaded.imap.port, 993)
        self.assertFalse(loaded.imap.use_tls)
        self.assertEqual(loaded.imap.mailbox, 'INBOX')
        self.assertEqual(loaded.poll_interval, 30.0)
        self.assertFalse(loaded.claude.prefilter)
        self.assertIsNone(loaded.claude.api_key)
        # sender defaults to the SMTP user
        self.assertEqual(loaded.smtp.sender, 'praxis@example.com')
        self.assertEqual(loaded.smtp.port, 465)
        loaded.validate()

    def test_missing_mailbox_credentials_are_fatal(self):
        env = dict(FULL_ENV)
        del env['IMAP_PASSWORD']
        del env['IMAP_HOST']
        with patch.dict(os.environ, env, clear=True):
            loaded = Config.load()

        with self.assertRaises(ConfigurationError) as ctx:
            loaded.validate()
        self.assertIn('IMAP_HOST', str(ctx.exception))
        self.assertIn('IMAP_PASSWORD', str(ctx.exception))

    def test_missing_port_is_fatal(self):
        env = dict(FULL_ENV)
        del env['IMAP_PORT']
        with patch.dict(os.environ, env, clear=True):
            loaded = Config.load()

        self.assertIsNone(loaded.imap.port)
        with self.assertRaises(ConfigurationError) as ctx:
            loaded.validate()
        self.assertIn('IMAP_PORT', str(ctx.exception))

    def test_logs_dir_defaults_to_working_directory(self):
        with patch.dict(os.environ, FULL_ENV, clear=True):
            self.assertEqual(Config.load().logs_dir, Path('logs'))
        with patch.dict(os.environ, dict(FULL_ENV, LOG_DIR='/var/log/watcher'), clear=True):
            self.assertEqual(Config.load().logs_dir, Path('/var/log/watcher'))

    def test_malformed_numbers_are_configuration_errors(self):
        env = dict(FULL_ENV, POLL_INTERVAL='abc', IMAP_PORT='imaps')
        with patch.dict(os.environ, env, clear=True):
            loaded = Config.load()

        # defaults stand in until validation reports the bad values
        self.assertEqual(loaded.poll_interval, 10.0)
        self.assertIsNone(loaded.imap.port)
        with self.assertRaises(ConfigurationError) as ctx:
            loaded.validate()
        self.assertIn('POLL_INTERVAL', str(ctx.exception))
        self.assertIn('IMAP_PORT', str(ctx.exception))

    def test_main_exits_non_zero_on_malformed_numbers(self):
        env = dict(FULL_ENV, SMTP_PORT='four-six-five')
        with patch.dict(os.environ, env, clear=True):
            loaded = Config.load()

        with patch('appointment_watcher.__main__.config', loaded), \
                patch('appointment_watcher.__main__.build_manager') as mock_build:
            self.assertEqual(main([]), 1)
        mock_build.assert_not_called()

    def test_main_exits_non_zero_without_credentials(self):
        with patch('appointment_watcher.__main__.config') as mock_config, \
                patch('appointment_watcher.__main__.build_manager') as mock_build:
            mock_config.validate.side_effect = ConfigurationError("Missing required environment variables: IMAP_HOST")
            self.assertEqual(main([]), 1)
        mock_build.assert_not_called()

    def test_main_runs_single_cycle(self):
        with patch('appointment_watcher.__main__.config'), \
                patch('appointment_watcher.__main__.build_manager') as mock_build:
            self.assertEqual(main(['--once']), 0)
        mock_build.return_value.run_cycle.assert_called_once()
        mock_build.return_value.run_forever.assert_not_called()

    def test_single_cycle_hands_off_on_restart_request(self):
        """A restart request consumed by --once still starts a fresh process"""
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        restart_flag = RestartFlag(Path(tmp.name) / "restart_needed.txt")
        restart_flag.request()
        restarter = MagicMock()
        restarter.restart.return_value = True
        mailbox = MagicMock()
        manager = InboxManager(
            mailbox=mailbox,
            analyzer=MagicMock(),
            store=MagicMock(),
            notifier=MagicMock(),
            restart_flag=restart_flag,
            restarter=restarter,
            poll_interval=10,
            disconnect_timeout=1,
            mailbox_name='INBOX',
            sleep=MagicMock()
        )

        with patch('appointment_watcher.__main__.config'), \
                patch('appointment_watcher.__main__.build_manager', return_value=manager):
            self.assertEqual(main(['--once']), 0)

        self.assertFalse(restart_flag.is_set())
        restarter.restart.assert_called_once()
        mailbox.connect.assert_not_called()

    def test_single_cycle_without_restart_request(self):
        with patch('appointment_watcher.__main__.config'), \
                patch('appointment_watcher.__main__.build_manager') as mock_build:
            mock_build.return_value.run_cycle.return_value.restart_requested = False
            self.assertEqual(main(['--once']), 0)
        mock_build.return_value.restarter.restart.assert_not_called()

    def test_request_restart_writes_flag(self):
        with patch('appointment_watcher.__main__.RestartFlag') as mock_flag_class, \
                patch('appointment_watcher.__main__.build_manager') as mock_build:
            self.assertEqual(main(['--request-restart']), 0)
        mock_flag_class.return_value.request.assert_called_once()
        mock_build.assert_not_called()

    def test_parse_args(self):
        args = parse_args(['--poll-interval', '5'])
        self.assertEqual(args.poll_interval, 5.0)
        self.assertFalse(args.once)

if __name__ == '__main__':
    unittest.main()
