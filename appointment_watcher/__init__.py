from appointment_watcher.analyzer import EmailAnalyzer
from appointment_watcher.imap import ImapMailbox
from appointment_watcher.manager import InboxManager, CycleResult, WatcherState
from appointment_watcher.models import CancellationRecord, InboundEmail, ProcessingOutcome
from appointment_watcher.notifier import EmailNotifier
from appointment_watcher.restart import ProcessRestarter, RestartFlag
from appointment_watcher.storage import AppointmentStore, MailArchive

__all__ = [
    'EmailAnalyzer',
    'ImapMailbox',
    'InboxManager',
    'CycleResult',
    'WatcherState',
    'CancellationRecord',
    'InboundEmail',
    'ProcessingOutcome',
    'EmailNotifier',
    'ProcessRestarter',
    'RestartFlag',
    'AppointmentStore',
    'MailArchive'
]
