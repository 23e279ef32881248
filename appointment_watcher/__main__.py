"""Main entry point for the Appointment Watcher application."""

import argparse
import sys
from typing import List, Optional

from appointment_watcher.analyzer import EmailAnalyzer
from appointment_watcher.config import config
from appointment_watcher.errors import ConfigurationError
from appointment_watcher.imap import ImapMailbox
from appointment_watcher.logger import get_logger
from appointment_watcher.manager import InboxManager
from appointment_watcher.notifier import EmailNotifier
from appointment_watcher.restart import ProcessRestarter, RestartFlag
from appointment_watcher.storage import AppointmentStore, MailArchive

logger = get_logger(__name__)

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Appointment Watcher - detects appointment cancellations in a practice mailbox'
    )
    parser.add_argument(
        '--once',
        action='store_true',
        help='Run a single poll cycle and exit'
    )
    parser.add_argument(
        '--poll-interval',
        type=float,
        default=None,
        help=f'Seconds between poll cycles (default: {config.poll_interval})'
    )
    parser.add_argument(
        '--request-restart',
        action='store_true',
        help='Ask the running watcher to hand off to a fresh process, then exit'
    )
    return parser.parse_args(argv)

def build_manager(args: argparse.Namespace) -> InboxManager:
    restart_flag = RestartFlag()
    return InboxManager(
        mailbox=ImapMailbox(),
        analyzer=EmailAnalyzer(),
        store=AppointmentStore(),
        notifier=EmailNotifier(),
        restart_flag=restart_flag,
        restarter=ProcessRestarter(),
        archive=MailArchive(),
        poll_interval=args.poll_interval
    )

def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the application."""
    args = parse_args(argv)

    if args.request_restart:
        RestartFlag().request(note='requested from command line')
        return 0

    try:
        config.validate()
    except ConfigurationError as e:
        logger.error(str(e))
        return 1

    manager = build_manager(args)
    try:
        if args.once:
            result = manager.run_cycle()
            # the flag is already consumed, so the hand-off happens here
            if result.restart_requested and manager.restarter is not None:
                if not manager.restarter.restart():
                    logger.error("Restart failed after single cycle")
        else:
            logger.info("Starting appointment watcher")
            manager.run_forever()
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    return 0

if __name__ == '__main__':
    sys.exit(main())
