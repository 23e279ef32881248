from .store import JsonArrayStore, AppointmentStore, MailArchive

__all__ = [
    'JsonArrayStore',
    'AppointmentStore',
    'MailArchive'
]
