from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class ProcessingOutcome(str, Enum):
    """Per-message pipeline result, used for logging only."""
    NOT_CANCELLATION = 'not_cancellation'
    RECORDED = 'recorded'
    EXTRACTION_FAILED = 'extraction_failed'
    PERSISTENCE_FAILED = 'persistence_failed'
    NOTIFICATION_FAILED = 'notification_failed'

    def __str__(self) -> str:
        return self.value


class FailureKind(str, Enum):
    """Why an analysis attempt produced no usable answer."""
    TIMEOUT = 'timeout'
    MALFORMED_RESPONSE = 'malformed_response'
    SCHEMA_VIOLATION = 'schema_violation'
    NOT_CONFIGURED = 'not_configured'
    SERVICE_ERROR = 'service_error'

    def __str__(self) -> str:
        return self.value


class AnalysisKind(str, Enum):
    NOT_CANCELLATION = 'not_cancellation'
    CANCELLATION = 'cancellation'
    FAILURE = 'failure'


@dataclass(frozen=True)
class MessagePart:
    """Raw body part as delivered by the mailbox."""
    data: bytes
    content_type: str = 'text/plain'
    transfer_encoding: Optional[str] = None
    charset: Optional[str] = None


@dataclass(frozen=True)
class MessageHandle:
    """Envelope metadata of an unread message."""
    seq: int
    uid: Optional[str]
    sender: str
    subject: str
    date: Optional[datetime] = None


@dataclass(frozen=True)
class InboundEmail:
    """Data class for a decoded incoming email"""
    message_id: str
    sender: str
    subject: str
    body: str
    received_date: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            'email': self.sender,
            'subject': self.subject,
            'message': self.body,
            'date': self.received_date.isoformat(),
        }


@dataclass(frozen=True)
class CancellationRecord:
    """Appointment data extracted from a cancellation email"""
    email: str
    is_cancellation: bool = True
    date: Optional[str] = None
    time: Optional[str] = None
    full_name: Optional[str] = None
    birth_date: Optional[str] = None
    phone: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the field names of the stored JSON documents."""
        return {
            'email': self.email,
            'date': self.date,
            'time': self.time,
            'fullName': self.full_name,
            'birthDate': self.birth_date,
            'phone': self.phone,
            'isCancellation': self.is_cancellation,
            'message': self.message,
        }


@dataclass(frozen=True)
class AnalysisResult:
    """Data class for analysis results"""
    kind: AnalysisKind
    record: Optional[CancellationRecord] = None
    failure: Optional[FailureKind] = None
    detail: Optional[str] = field(default=None, compare=False)

    @classmethod
    def not_cancellation(cls) -> 'AnalysisResult':
        return cls(kind=AnalysisKind.NOT_CANCELLATION)

    @classmethod
    def cancellation(cls, record: CancellationRecord) -> 'AnalysisResult':
        return cls(kind=AnalysisKind.CANCELLATION, record=record)

    @classmethod
    def failed(cls, failure: FailureKind, detail: Optional[str] = None) -> 'AnalysisResult':
        return cls(kind=AnalysisKind.FAILURE, failure=failure, detail=detail)

    @property
    def is_cancellation(self) -> bool:
        return self.kind is AnalysisKind.CANCELLATION

    @property
    def is_failure(self) -> bool:
        return self.kind is AnalysisKind.FAILURE
