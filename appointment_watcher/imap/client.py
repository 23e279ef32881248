"""
IMAP mailbox binding for the watcher.

Only PEEK fetches are used, so reading a message never sets \\Seen. Marking a
message read is always an explicit call made by the orchestrator.
"""
import imaplib
import re
from datetime import datetime
from email import message_from_bytes
from email.header import decode_header, make_header
from email.utils import parseaddr, parsedate_to_datetime
from typing import Dict, List, Optional

import pytz

from ..config import config
from ..errors import TransportError
from ..logger import get_logger
from ..models import MessageHandle, MessagePart

logger = get_logger(__name__)

HEADER_QUERY = '(BODY.PEEK[HEADER.FIELDS (FROM SUBJECT DATE)])'
BODY_QUERY = '(BODY.PEEK[])'

_SEQ_PREFIX = re.compile(rb'^\s*(\d+)')


def _decode_header_value(value: Optional[str]) -> str:
    if not value:
        return ''
    try:
        decoded = str(make_header(decode_header(value)))
    except (UnicodeError, LookupError, ValueError):
        decoded = value
    return decoded.replace('\r\n', '').replace('\n', '')


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        return pytz.UTC.localize(parsed)
    return parsed.astimezone(pytz.UTC)


def _first_payload(data) -> Optional[tuple]:
    """Return the (descriptor, payload) tuple of an imaplib FETCH response."""
    for item in data or []:
        if isinstance(item, tuple) and len(item) >= 2:
            return item
    return None


class ImapMailbox:
    """Thin imaplib wrapper implementing the mailbox operations of a poll cycle."""

    def __init__(self, host: Optional[str] = None, port: Optional[int] = None,
                 username: Optional[str] = None, password: Optional[str] = None,
                 use_tls: Optional[bool] = None, timeout: float = 30.0):
        settings = config.imap
        self.host = host or settings.host
        self.port = port or settings.port
        self.username = username or settings.username
        self.password = password or settings.password
        self.use_tls = settings.use_tls if use_tls is None else use_tls
        self.timeout = timeout
        self._conn: Optional[imaplib.IMAP4] = None

    def connect(self) -> None:
        """Connect and authenticate to the IMAP server."""
        logger.info(f"Connecting to IMAP server {self.host}:{self.port}")
        conn = None
        try:
            if self.use_tls:
                conn = imaplib.IMAP4_SSL(self.host, self.port, timeout=self.timeout)
            else:
                conn = imaplib.IMAP4(self.host, self.port, timeout=self.timeout)
            conn.login(self.username, self.password)
        except (imaplib.IMAP4.error, OSError) as e:
            if conn is not None:
                try:
                    conn.logout()
                except (imaplib.IMAP4.error, OSError):
                    pass
            raise TransportError(f"Could not connect to {self.host}:{self.port}: {e}") from e
        self._conn = conn
        logger.info("Connected to IMAP server")

    def _require_connection(self) -> imaplib.IMAP4:
        if self._conn is None:
            raise TransportError("Not connected to IMAP server")
        return self._conn

    def list_unread(self, mailbox: str = 'INBOX') -> List[MessageHandle]:
        """Select `mailbox` and return its unread messages in server order."""
        conn = self._require_connection()
        try:
            status, _ = conn.select(mailbox)
            if status != 'OK':
                raise TransportError(f"Could not select mailbox {mailbox}")

            status, data = conn.uid('SEARCH', None, 'UNSEEN')
            if status != 'OK':
                raise TransportError(f"UNSEEN search failed in {mailbox}")

            uids = data[0].split() if data and data[0] else []
            handles = []
            for uid in uids:
                handle = self._fetch_envelope(conn, uid.decode())
                if handle is not None:
                    handles.append(handle)
            return handles
        except (imaplib.IMAP4.error, OSError) as e:
            raise TransportError(f"Listing unread messages failed: {e}") from e

    def _fetch_envelope(self, conn: imaplib.IMAP4, uid: str) -> Optional[MessageHandle]:
        status, data = conn.uid('FETCH', uid, HEADER_QUERY)
        item = _first_payload(data) if status == 'OK' else None
        if item is None:
            logger.warning(f"No envelope for message UID {uid}, skipping")
            return None

        descriptor, header_bytes = item[0], item[1]
        match = _SEQ_PREFIX.match(descriptor or b'')
        headers = message_from_bytes(header_bytes)
        _, address = parseaddr(_decode_header_value(headers.get('From')))

        return MessageHandle(
            seq=int(match.group(1)) if match else 0,
            uid=uid,
            sender=address or 'unknown@unknown.com',
            subject=_decode_header_value(headers.get('Subject')) or '(No subject)',
            date=_parse_date(headers.get('Date'))
        )

    def fetch_body(self, handle: MessageHandle) -> Dict[str, MessagePart]:
        """Fetch the raw body parts of a message without marking it read.

        Parts are keyed by their position in the MIME tree ("1", "2", ...).
        """
        conn = self._require_connection()
        try:
            if handle.uid:
                status, data = conn.uid('FETCH', handle.uid, BODY_QUERY)
            else:
                status, data = conn.fetch(str(handle.seq), BODY_QUERY)
        except (imaplib.IMAP4.error, OSError) as e:
            raise TransportError(f"Fetching message {handle.seq} failed: {e}") from e

        item = _first_payload(data) if status == 'OK' else None
        if item is None:
            return {}

        message = message_from_bytes(item[1])
        parts: Dict[str, MessagePart] = {}
        index = 0
        for part in message.walk():
            if part.is_multipart():
                continue
            index += 1
            if 'attachment' in (part.get('Content-Disposition') or ''):
                continue
            payload = part.get_payload(decode=False)
            if isinstance(payload, str):
                payload = payload.encode('utf-8', errors='surrogateescape')
            parts[str(index)] = MessagePart(
                data=payload or b'',
                content_type=part.get_content_type(),
                transfer_encoding=part.get('Content-Transfer-Encoding'),
                charset=part.get_content_charset()
            )
        return parts

    def mark_read(self, handle: MessageHandle) -> None:
        conn = self._require_connection()
        try:
            if handle.uid:
                status, _ = conn.uid('STORE', handle.uid, '+FLAGS', '(\\Seen)')
            else:
                status, _ = conn.store(str(handle.seq), '+FLAGS', '(\\Seen)')
        except (imaplib.IMAP4.error, OSError) as e:
            raise TransportError(f"Marking message {handle.seq} as read failed: {e}") from e
        if status != 'OK':
            raise TransportError(f"Server refused to mark message {handle.seq} as read")

    def disconnect(self) -> None:
        """Close the IMAP connection."""
        conn, self._conn = self._conn, None
        if conn is None:
            return
        try:
            conn.logout()
        except (imaplib.IMAP4.error, OSError) as e:
            raise TransportError(f"Disconnect failed: {e}") from e
        logger.info("Disconnected from IMAP server")
