import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..config import config
from ..errors import PersistenceError
from ..logger import get_logger
from ..models import CancellationRecord, InboundEmail

logger = get_logger(__name__)

class JsonArrayStore:
    """Append-only JSON array file.

    Appends are read-modify-write. The new array goes to a temporary file
    next to the target which then replaces it, so a reader never sees a
    truncated document.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def read_all(self) -> List[Any]:
        """Return the stored items, or an empty list if the file is absent or empty.

        Raises:
            PersistenceError: If the file cannot be read or is not a JSON array
        """
        try:
            content = self.path.read_text(encoding='utf-8')
        except FileNotFoundError:
            return []
        except OSError as e:
            raise PersistenceError(f"Cannot read {self.path}: {e}") from e

        if not content.strip():
            return []

        try:
            items = json.loads(content)
        except json.JSONDecodeError as e:
            raise PersistenceError(f"{self.path} does not contain valid JSON: {e}") from e

        if not isinstance(items, list):
            raise PersistenceError(f"{self.path} does not contain a JSON array")
        return items

    def append(self, item: Dict[str, Any]) -> int:
        """Append one item and return the new number of items.

        Raises:
            PersistenceError: If the item could not be fully written
        """
        items = self.read_all()
        items.append(item)

        tmp_path: Optional[str] = None
        try:
            payload = json.dumps(items, indent=2, ensure_ascii=False)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=str(self.path.parent), prefix=f".{self.path.name}.", suffix='.tmp'
            )
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
            tmp_path = None
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"Failed to write {self.path}: {e}") from e
        finally:
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass

        return len(items)


class AppointmentStore(JsonArrayStore):
    """Cancellation records extracted from patient emails."""

    def __init__(self, path: Union[str, Path, None] = None):
        super().__init__(path or config.storage.appointments_file)

    def add_record(self, record: CancellationRecord) -> int:
        count = self.append(record.to_dict())
        logger.info(f"Appointment data saved to {self.path} ({count} records)")
        return count


class MailArchive(JsonArrayStore):
    """Audit log of every decoded inbound email."""

    def __init__(self, path: Union[str, Path, None] = None):
        super().__init__(path or config.storage.mails_file)

    def add_email(self, email: InboundEmail) -> int:
        count = self.append(email.to_dict())
        logger.debug(f"Email saved to {self.path}")
        return count
