"""
Configuration management for the Appointment Watcher application.
"""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .errors import ConfigurationError

# Load environment variables from .env file
load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == '':
        return default
    return value.strip().lower() not in ('false', '0', 'no', 'off')


def _env_number(name: str, default, convert, invalid: List[str]):
    """Read a numeric setting, recording malformed values in `invalid`."""
    value = os.getenv(name)
    if not value:
        return default
    try:
        return convert(value)
    except ValueError:
        invalid.append(f"{name}={value!r}")
        return default


@dataclass
class ImapConfig:
    """Mailbox connection settings."""
    host: Optional[str]
    port: Optional[int]
    username: Optional[str]
    password: Optional[str]
    use_tls: bool = True
    mailbox: str = 'INBOX'


@dataclass
class ClaudeConfig:
    """Claude AI configuration."""
    api_key: Optional[str]
    model: str
    request_timeout: float = 20.0
    analysis_timeout: float = 30.0
    prefilter: bool = True


@dataclass
class SmtpConfig:
    """Outbound notification mail settings."""
    host: Optional[str]
    port: int
    username: Optional[str]
    password: Optional[str]
    sender: Optional[str]
    recipient: Optional[str]
    use_ssl: bool = True
    timeout: float = 15.0

    @property
    def is_configured(self) -> bool:
        return bool(self.host and self.recipient and self.sender)


@dataclass
class StorageConfig:
    """Locations of the JSON artifacts."""
    data_dir: Path
    appointments_file: Path
    mails_file: Path
    restart_flag_file: Path


@dataclass
class Config:
    """Main application configuration."""
    logs_dir: Path

    # Component configurations
    imap: ImapConfig
    claude: ClaudeConfig
    smtp: SmtpConfig
    storage: StorageConfig

    poll_interval: float = 10.0
    disconnect_timeout: float = 5.0
    log_level: str = 'INFO'
    invalid: List[str] = field(default_factory=list)

    @classmethod
    def load(cls) -> 'Config':
        """Load configuration from environment variables."""
        data_dir = Path(os.getenv('DATA_DIR', '.'))
        invalid: List[str] = []
        smtp_username = os.getenv('SMTP_USERNAME')

        return cls(
            logs_dir=Path(os.getenv('LOG_DIR', 'logs')),

            imap=ImapConfig(
                host=os.getenv('IMAP_HOST'),
                port=_env_number('IMAP_PORT', None, int, invalid),
                username=os.getenv('IMAP_USERNAME'),
                password=os.getenv('IMAP_PASSWORD'),
                use_tls=_env_bool('IMAP_USE_TLS', True),
                mailbox=os.getenv('IMAP_MAILBOX', 'INBOX')
            ),

            claude=ClaudeConfig(
                api_key=os.getenv('ANTHROPIC_API_KEY'),
                model=os.getenv('CLAUDE_MODEL', 'claude-3-5-haiku-latest'),
                request_timeout=_env_number('ANALYZER_REQUEST_TIMEOUT', 20.0, float, invalid),
                analysis_timeout=_env_number('ANALYZER_TIMEOUT', 30.0, float, invalid),
                prefilter=_env_bool('ANALYZER_PREFILTER', True)
            ),

            smtp=SmtpConfig(
                host=os.getenv('SMTP_HOST'),
                port=_env_number('SMTP_PORT', 465, int, invalid),
                username=smtp_username,
                password=os.getenv('SMTP_PASSWORD'),
                sender=os.getenv('SENDER_EMAIL') or smtp_username,
                recipient=os.getenv('RECEIVER_EMAIL'),
                use_ssl=_env_bool('SMTP_USE_SSL', True),
                timeout=_env_number('SMTP_TIMEOUT', 15.0, float, invalid)
            ),

            storage=StorageConfig(
                data_dir=data_dir,
                appointments_file=Path(os.getenv('APPOINTMENTS_FILE', str(data_dir / 'appointments.json'))),
                mails_file=Path(os.getenv('MAILS_FILE', str(data_dir / 'mails.json'))),
                restart_flag_file=Path(os.getenv('RESTART_FLAG_FILE', str(data_dir / 'restart_needed.txt')))
            ),

            poll_interval=_env_number('POLL_INTERVAL', 10.0, float, invalid),
            disconnect_timeout=_env_number('DISCONNECT_TIMEOUT', 5.0, float, invalid),
            log_level=os.getenv('LOG_LEVEL', 'INFO').upper(),
            invalid=invalid
        )

    def validate(self) -> None:
        """Check the settings required to start polling.

        Raises:
            ConfigurationError: If any mailbox setting is missing or a
                numeric setting could not be parsed
        """
        if self.invalid:
            raise ConfigurationError(
                f"Invalid numeric environment variables: {', '.join(self.invalid)}"
            )
        required = {
            'IMAP_HOST': self.imap.host,
            'IMAP_PORT': self.imap.port,
            'IMAP_USERNAME': self.imap.username,
            'IMAP_PASSWORD': self.imap.password,
        }
        missing = [name for name, value in required.items() if not value]
        if missing:
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing)}"
            )

# Global configuration instance
config = Config.load()
