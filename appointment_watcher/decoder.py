"""
Message body decoding.

Turns raw transport-encoded body parts into normalized plain text. Decoding
never raises: anything unusable degrades to BODY_UNAVAILABLE so the pipeline
can keep going.
"""
import base64
import binascii
import re
from typing import Mapping, Optional

from .logger import get_logger
from .models import MessagePart

logger = get_logger(__name__)

BODY_UNAVAILABLE = "(Message body unavailable)"

# UTF-8 byte pairs for accented letters as they appear in German mail
ACCENTED_SEQUENCES = {
    '=C3=A4': 'ä',
    '=C3=B6': 'ö',
    '=C3=BC': 'ü',
    '=C3=84': 'Ä',
    '=C3=96': 'Ö',
    '=C3=9C': 'Ü',
    '=C3=9F': 'ß',
    '=C3=A9': 'é',
    '=C3=A8': 'è',
    '=C3=A0': 'à',
    '=C3=A1': 'á',
    '=C3=A7': 'ç',
    '=C3=B3': 'ó',
    '=C3=B1': 'ñ',
}

_SOFT_LINE_BREAK = re.compile(r'=\r?\n')
_ESCAPE_RUN = re.compile(r'(?:=[0-9A-Fa-f]{2})+')
_WHITESPACE = re.compile(r'\s+')


def normalize_text(text: str) -> str:
    """Collapse whitespace runs to single spaces and trim."""
    return _WHITESPACE.sub(' ', text).strip()


def _decode_bytes(data: bytes, charset: Optional[str]) -> str:
    for encoding in (charset, 'utf-8'):
        if not encoding:
            continue
        try:
            return data.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            continue
    return data.decode('latin-1')


def decode_quoted_printable(text: str, charset: Optional[str] = None) -> str:
    """Decode quoted-printable escapes in already-stringified body text.

    Escapes left after the accented-letter map are decoded with the part's
    declared charset, falling back to UTF-8 and then latin-1.
    """
    def decode_escape_run(match: re.Match) -> str:
        raw = bytes.fromhex(match.group(0).replace('=', ''))
        return _decode_bytes(raw, charset)

    text = _SOFT_LINE_BREAK.sub('', text)
    text = text.replace('=0D=0A', '\n').replace('=20', ' ')
    for sequence, letter in ACCENTED_SEQUENCES.items():
        text = text.replace(sequence, letter).replace(sequence.lower(), letter)
    return _ESCAPE_RUN.sub(decode_escape_run, text)


def decode_part(data: bytes, transfer_encoding: Optional[str] = None,
                charset: Optional[str] = None) -> str:
    """Decode a single body part into normalized text.

    Args:
        data: Raw part bytes as fetched from the mailbox
        transfer_encoding: Declared Content-Transfer-Encoding, if any
        charset: Declared charset, if any

    Returns:
        Normalized text (possibly empty)
    """
    encoding = (transfer_encoding or '').strip().lower()

    if encoding == 'base64':
        try:
            data = base64.b64decode(data)
        except (binascii.Error, ValueError) as e:
            logger.warning(f"Invalid base64 body part, using raw bytes: {e}")
        return normalize_text(_decode_bytes(data, charset))

    text = _decode_bytes(data, charset)
    if encoding == 'quoted-printable':
        text = decode_quoted_printable(text, charset)
    return normalize_text(text)


def _select_part(parts: Mapping[str, MessagePart]) -> Optional[MessagePart]:
    if parts.get('TEXT') is not None and parts['TEXT'].data:
        return parts['TEXT']
    for part in parts.values():
        if part.data and part.content_type.lower() == 'text/plain':
            return part
    for part in parts.values():
        if part.data and part.content_type.lower().startswith('text/'):
            return part
    return None


def decode_message(parts: Optional[Mapping[str, MessagePart]]) -> str:
    """Pick the best text part of a message and decode it.

    Returns BODY_UNAVAILABLE when no recognizable text part exists or
    decoding fails for any reason.
    """
    if not parts:
        return BODY_UNAVAILABLE
    try:
        part = _select_part(parts)
        if part is None:
            logger.debug(f"No text part among {list(parts)}")
            return BODY_UNAVAILABLE
        text = decode_part(part.data, part.transfer_encoding, part.charset)
        return text or BODY_UNAVAILABLE
    except Exception as e:
        logger.error(f"Error decoding message body: {e}")
        return BODY_UNAVAILABLE
