"""
Restart hand-off.

An operator (or another tool) drops a marker file to ask the running watcher
to yield to a fresh process. Only the file's presence matters; its content is
an informational timestamp.
"""
import logging
import os
import subprocess
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Union

import pytz

from .config import config
from .logger import get_logger

logger = get_logger(__name__)


def _terminate(status: int) -> None:
    # abandoned worker threads (timed-out calls) must not keep the process alive
    logging.shutdown()
    os._exit(status)


class RestartFlag:
    """Durable restart request stored as a marker file."""

    def __init__(self, path: Union[str, Path, None] = None):
        self.path = Path(path or config.storage.restart_flag_file)

    def is_set(self) -> bool:
        return self.path.exists()

    def consume(self) -> bool:
        """Return True if a restart was requested, clearing the request.

        The marker is removed as soon as it is seen so a second check before
        the process exits does not trigger another restart.
        """
        if not self.path.exists():
            return False

        logger.info("Restart flag detected")
        try:
            self.path.unlink()
            logger.info("Restart flag removed")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Failed to remove restart flag {self.path}: {e}")
        return True

    def request(self, note: Optional[str] = None) -> None:
        """Write the marker file."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(pytz.UTC).isoformat()
        self.path.write_text(f"{stamp} {note}\n" if note else f"{stamp}\n", encoding='utf-8')
        logger.info(f"Restart requested via {self.path}")


class ProcessRestarter:
    """Replaces the current process with a freshly spawned watcher."""

    def __init__(self, argv: Optional[List[str]] = None, grace_period: float = 1.0,
                 spawn: Callable[..., object] = subprocess.Popen,
                 exit_process: Optional[Callable[[int], None]] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.argv = list(sys.argv[1:] if argv is None else argv)
        self.grace_period = grace_period
        self._spawn = spawn
        self._exit = exit_process or _terminate
        self._sleep = sleep

    @property
    def command(self) -> List[str]:
        return [sys.executable, '-m', 'appointment_watcher', *self.argv]

    def restart(self) -> bool:
        """Spawn the successor and terminate this process.

        Returns False (without exiting) if the successor could not be started.
        """
        logger.info("=== RESTARTING APPLICATION ===")
        try:
            self._spawn(self.command)
        except OSError as e:
            logger.error(f"Failed to restart: {e}")
            return False

        logger.info("New process started, this process will exit")
        self._sleep(self.grace_period)
        self._exit(0)
        return True
