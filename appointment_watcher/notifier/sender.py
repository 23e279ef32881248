"""
Staff notification for recorded cancellations.

One delivery attempt per record, no retry and no queue. Failures are logged
and reported through the return value of EmailNotifier.notify.
"""
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Optional

from ..config import config
from ..errors import NotificationError
from ..logger import get_logger
from ..models import CancellationRecord
from ..timeouts import OperationTimeout, run_with_timeout

logger = get_logger(__name__)

NOTIFICATION_SUBJECT = "Terminabsage eingegangen"
NOT_GIVEN = "Nicht angegeben"


def _or_not_given(value: Optional[str]) -> str:
    return value or NOT_GIVEN


def format_plain(record: CancellationRecord) -> str:
    lines = [
        "Ein Patient hat einen Termin abgesagt.",
        f"Email: {record.email}",
        f"Name: {_or_not_given(record.full_name)}",
        f"Datum: {_or_not_given(record.date)}",
        f"Zeit: {_or_not_given(record.time)}",
    ]
    if record.birth_date:
        lines.append(f"Geburtsdatum: {record.birth_date}")
    if record.phone:
        lines.append(f"Telefon: {record.phone}")
    return "\n".join(lines)


def format_html(record: CancellationRecord) -> str:
    rows = [
        ("Email", record.email),
        ("Name", _or_not_given(record.full_name)),
        ("Datum", _or_not_given(record.date)),
        ("Zeit", _or_not_given(record.time)),
    ]
    if record.birth_date:
        rows.append(("Geburtsdatum", record.birth_date))
    if record.phone:
        rows.append(("Telefon", record.phone))

    table = "\n".join(
        f"    <tr><td>{label}:</td><td>{escape(value)}</td></tr>" for label, value in rows
    )
    return (
        f"<h2>{NOTIFICATION_SUBJECT}</h2>\n"
        "<p>Sehr geehrtes Praxisteam,</p>\n"
        "<p>Ein Patient hat einen Termin abgesagt.</p>\n"
        f"<table>\n{table}\n</table>\n"
        "<p>Mit freundlichen Grüßen<br>\nIhr System</p>"
    )


class EmailNotifier:
    """Sends cancellation alerts to the practice over SMTP."""

    def __init__(self, host: Optional[str] = None, port: Optional[int] = None,
                 username: Optional[str] = None, password: Optional[str] = None,
                 sender: Optional[str] = None, recipient: Optional[str] = None,
                 use_ssl: Optional[bool] = None, timeout: Optional[float] = None):
        settings = config.smtp
        self.host = host or settings.host
        self.port = port or settings.port
        self.username = username if username is not None else settings.username
        self.password = password if password is not None else settings.password
        self.sender = sender or settings.sender or self.username
        self.recipient = recipient or settings.recipient
        self.use_ssl = settings.use_ssl if use_ssl is None else use_ssl
        self.timeout = timeout if timeout is not None else settings.timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.host and self.sender and self.recipient)

    def build_message(self, record: CancellationRecord) -> MIMEMultipart:
        message = MIMEMultipart('alternative')
        message['Subject'] = NOTIFICATION_SUBJECT
        message['From'] = self.sender
        message['To'] = self.recipient
        message.attach(MIMEText(format_plain(record), 'plain', 'utf-8'))
        message.attach(MIMEText(format_html(record), 'html', 'utf-8'))
        return message

    def _send(self, message: MIMEMultipart) -> None:
        try:
            if self.use_ssl:
                smtp = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout,
                                        context=ssl.create_default_context())
            else:
                smtp = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
                smtp.starttls(context=ssl.create_default_context())
            with smtp:
                if self.username and self.password:
                    smtp.login(self.username, self.password)
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(f"SMTP delivery failed: {e}") from e

    def notify(self, record: CancellationRecord) -> bool:
        """Attempt one delivery of the alert for `record`.

        Returns:
            True if the SMTP server accepted the message, False otherwise
        """
        if not self.is_configured:
            logger.error("SMTP notification not configured (SMTP_HOST, SENDER_EMAIL, RECEIVER_EMAIL)")
            return False

        try:
            message = self.build_message(record)
            logger.info(f"Sending cancellation notification to {self.recipient}")
            # the socket timeout covers each SMTP step, the outer budget the whole exchange
            run_with_timeout(self._send, self.timeout * 2, message)
        except NotificationError as e:
            logger.error(f"Failed to send email notification: {e}")
            return False
        except OperationTimeout as e:
            logger.error(f"Email notification timed out: {e}")
            return False
        except Exception as e:
            logger.error(f"Unexpected error sending email notification: {e}")
            return False

        logger.info(f"Email notification sent for {record.email}")
        return True
