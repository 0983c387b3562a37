"""
Audit recorder: append-only log of every mutating engine call.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from gamematch.models.schemas import AuditLogEntry
from gamematch.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)


class AuditRecorder:
    """Keeps the session's audit trail in memory."""

    def __init__(self):
        self._entries: List[AuditLogEntry] = []

    def record(
        self, entry_type: str, payload: Optional[Dict[str, Any]] = None, now: Optional[datetime] = None
    ) -> AuditLogEntry:
        """Append an entry. Entries are frozen once written."""
        entry = AuditLogEntry(
            id=f"log-{uuid.uuid4().hex}",
            type=entry_type,
            payload=dict(payload or {}),
            timestamp=now or utcnow(),
        )
        self._entries.append(entry)
        logger.info(f"audit {entry_type}: {entry.payload}")
        return entry

    def entries(self) -> Tuple[AuditLogEntry, ...]:
        return tuple(self._entries)

    def clear(self) -> None:
        """Only used by a full session reset."""
        self._entries = []

    def __len__(self) -> int:
        return len(self._entries)
