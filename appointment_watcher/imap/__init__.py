from .client import ImapMailbox

__all__ = ['ImapMailbox']
