"""
Polling orchestrator for the Appointment Watcher.

Each poll cycle connects to the mailbox, lists unread messages and drives
every message through decode -> analyze -> persist -> notify -> mark-read,
strictly in listing order. A message is marked read only after its outcome
is known. Failures are isolated: a broken message never aborts the batch,
and a broken connection never stops the process.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional

import pytz

from .analyzer import EmailAnalyzer
from .config import config
from .decoder import decode_message
from .imap import ImapMailbox
from .logger import get_logger
from .models import AnalysisResult, InboundEmail, MessageHandle, ProcessingOutcome
from .notifier import EmailNotifier
from .restart import ProcessRestarter, RestartFlag
from .storage import AppointmentStore, MailArchive
from .timeouts import OperationTimeout, run_with_timeout

logger = get_logger(__name__)

class WatcherState(Enum):
    IDLE = 'idle'
    CONNECTING = 'connecting'
    LISTING = 'listing'
    PROCESSING_BATCH = 'processing_batch'
    DISCONNECTING = 'disconnecting'
    SCHEDULED = 'scheduled'
    RESTART_PENDING = 'restart_pending'

@dataclass
class CycleResult:
    """Summary of one poll cycle."""
    listed: int = 0
    outcomes: List[ProcessingOutcome] = field(default_factory=list)
    restart_requested: bool = False

    @property
    def processed(self) -> int:
        return len(self.outcomes)

class InboxManager:
    """Main class for the mailbox polling workflow.

    Attributes:
        mailbox (ImapMailbox): Mailbox session, used only during a cycle
        analyzer (EmailAnalyzer): Cancellation classifier and extractor
        store (AppointmentStore): Destination for cancellation records
        notifier (EmailNotifier): Staff alert sender
        restart_flag (RestartFlag): Out-of-band restart request
        restarter (ProcessRestarter): Hands off to a fresh process, None to restart in-process
        archive (MailArchive): Optional audit log of decoded emails
    """

    def __init__(self, mailbox: ImapMailbox, analyzer: EmailAnalyzer, store: AppointmentStore,
                 notifier: EmailNotifier, restart_flag: RestartFlag,
                 restarter: Optional[ProcessRestarter] = None, archive: Optional[MailArchive] = None,
                 poll_interval: Optional[float] = None, disconnect_timeout: Optional[float] = None,
                 mailbox_name: Optional[str] = None, sleep: Callable[[float], None] = time.sleep):
        self.mailbox = mailbox
        self.analyzer = analyzer
        self.store = store
        self.notifier = notifier
        self.restart_flag = restart_flag
        self.restarter = restarter
        self.archive = archive
        self.poll_interval = config.poll_interval if poll_interval is None else poll_interval
        self.disconnect_timeout = config.disconnect_timeout if disconnect_timeout is None else disconnect_timeout
        self.mailbox_name = mailbox_name or config.imap.mailbox
        self._sleep = sleep
        self.state = WatcherState.IDLE

    def _transition(self, state: WatcherState) -> None:
        logger.debug(f"State {self.state.value} -> {state.value}")
        self.state = state

    def run_forever(self, max_cycles: Optional[int] = None) -> None:
        """Poll until the process is replaced or `max_cycles` cycles have run.

        Cycles never overlap: the next one is scheduled a fixed delay after
        the previous one finished.
        """
        cycles = 0
        while True:
            result = self.run_cycle()
            cycles += 1

            if result.restart_requested:
                if self.restarter is None:
                    self.reset()
                elif self.restarter.restart():
                    return
                else:
                    logger.error("Restart failed, continuing with the current process")

            if max_cycles is not None and cycles >= max_cycles:
                return

            self._transition(WatcherState.SCHEDULED)
            logger.info(f"Scheduling next check in {self.poll_interval} seconds")
            self._sleep(self.poll_interval)
            self._transition(WatcherState.IDLE)

    def reset(self) -> None:
        """Restart in-process: drop any mailbox session and clear analyzer state."""
        logger.info("Restart requested, resetting watcher in-process")
        self._disconnect()
        self.analyzer.reset()
        self._transition(WatcherState.IDLE)

    def run_cycle(self) -> CycleResult:
        """Run one poll cycle.

        Returns:
            CycleResult with the outcome of every processed message and
            whether a restart was requested
        """
        result = CycleResult()
        logger.info("=== Checking for new emails ===")

        if self.restart_flag.consume():
            result.restart_requested = True
            self._transition(WatcherState.RESTART_PENDING)
            return result

        self._transition(WatcherState.CONNECTING)
        try:
            self.mailbox.connect()
        except Exception as e:
            logger.error(f"Could not connect to mailbox: {e}")
            self._transition(WatcherState.SCHEDULED)
            return result

        try:
            self._transition(WatcherState.LISTING)
            handles = self.mailbox.list_unread(self.mailbox_name)
            result.listed = len(handles)
            logger.info(f"Found {len(handles)} unread messages")

            if handles:
                self._transition(WatcherState.PROCESSING_BATCH)
            for position, handle in enumerate(handles, start=1):
                self._process_isolated(handle, result)
                if self.restart_flag.consume():
                    result.restart_requested = True
                    logger.info(
                        f"Restart requested, leaving {len(handles) - position} messages unread"
                    )
                    break
        except Exception as e:
            logger.error(f"Error during email check: {e}")
        finally:
            self._disconnect()

        if not result.restart_requested and self.restart_flag.consume():
            result.restart_requested = True

        self._transition(
            WatcherState.RESTART_PENDING if result.restart_requested else WatcherState.SCHEDULED
        )
        logger.info(f"Cycle finished: {result.processed} of {result.listed} messages processed")
        return result

    def _process_isolated(self, handle: MessageHandle, result: CycleResult) -> None:
        try:
            result.outcomes.append(self.process_message(handle))
        except Exception as e:
            # outcome unknown, so the message stays unread for the next cycle
            logger.error(f"Error processing message {handle.seq}: {e}")

    def process_message(self, handle: MessageHandle) -> ProcessingOutcome:
        """Run the per-message pipeline and mark the message read.

        Raises:
            TransportError: If the body could not be fetched; the message is
                left unread in that case
        """
        logger.info(f"Processing message {handle.seq} from {handle.sender}: {handle.subject}")

        parts = self.mailbox.fetch_body(handle)
        email = InboundEmail(
            message_id=handle.uid or str(handle.seq),
            sender=handle.sender,
            subject=handle.subject,
            body=decode_message(parts),
            received_date=handle.date or datetime.now(pytz.UTC)
        )
        logger.debug(f"Message content preview: {email.body[:100]}...")
        self._archive(email)

        analysis = self.analyzer.analyze_email(email)
        outcome = self._apply_analysis(email, analysis)

        self._mark_read(handle)
        logger.info(f"Message {handle.seq} finished with outcome {outcome}")
        return outcome

    def _archive(self, email: InboundEmail) -> None:
        if self.archive is None:
            return
        try:
            self.archive.add_email(email)
        except Exception as e:
            logger.warning(f"Could not add message {email.message_id} to the mail archive: {e}")

    def _apply_analysis(self, email: InboundEmail, analysis: AnalysisResult) -> ProcessingOutcome:
        """Persist and notify for a cancellation. Both steps are always attempted."""
        if analysis.is_failure:
            logger.warning(
                f"Analysis failed for message {email.message_id} ({analysis.failure}): {analysis.detail}"
            )
            return ProcessingOutcome.EXTRACTION_FAILED

        if not analysis.is_cancellation:
            return ProcessingOutcome.NOT_CANCELLATION

        record = analysis.record
        persisted = True
        try:
            self.store.add_record(record)
        except Exception as e:
            persisted = False
            logger.error(f"Error saving appointment data for message {email.message_id}: {e}")

        try:
            notified = self.notifier.notify(record)
        except Exception as e:
            notified = False
            logger.error(f"Notifier raised for message {email.message_id}: {e}")

        if not persisted:
            return ProcessingOutcome.PERSISTENCE_FAILED
        if not notified:
            return ProcessingOutcome.NOTIFICATION_FAILED
        return ProcessingOutcome.RECORDED

    def _mark_read(self, handle: MessageHandle) -> None:
        try:
            self.mailbox.mark_read(handle)
            logger.info(f"Marked message {handle.seq} as read")
        except Exception as e:
            logger.error(f"Failed to mark message {handle.seq} as read: {e}")

    def _disconnect(self) -> None:
        self._transition(WatcherState.DISCONNECTING)
        try:
            run_with_timeout(self.mailbox.disconnect, self.disconnect_timeout)
        except OperationTimeout:
            logger.warning(
                f"Disconnect timed out after {self.disconnect_timeout} seconds, continuing anyway"
            )
        except Exception as e:
            logger.error(f"Error during disconnect: {e}")
