"""In-memory snooze state for human handoff.

Entries are never swept: an expired entry stays in the dict and simply reads
as inactive until `clear` or a later `set` replaces it. The map is shared by
every request in the process without a lock; concurrent writes for the same
user resolve last-write-wins.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from line_relay.logging_config import get_logger, user_tail

logger = get_logger("handoff_store")

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class HandoffEntry:
    user_id: str
    expires_at: datetime


class HandoffStore:
    def __init__(self, clock: Clock = _utcnow):
        self._clock = clock
        self._entries: Dict[str, HandoffEntry] = {}

    def set(self, user_id: str, duration_minutes: float) -> HandoffEntry:
        """Snooze automated replies for `user_id`, overwriting any existing entry."""
        if duration_minutes <= 0:
            raise ValueError(f"duration_minutes must be positive, got {duration_minutes}")
        entry = HandoffEntry(user_id=user_id, expires_at=self._clock() + timedelta(minutes=duration_minutes))
        self._entries[user_id] = entry
        logger.info(
            "Handoff snooze set",
            extra={"context": {"user": user_tail(user_id), "expires_at": entry.expires_at.isoformat()}},
        )
        return entry

    def clear(self, user_id: str) -> bool:
        """Remove the entry. Returns True if one existed."""
        removed = self._entries.pop(user_id, None) is not None
        logger.info("Handoff snooze cleared", extra={"context": {"user": user_tail(user_id), "existed": removed}})
        return removed

    def is_active(self, user_id: str) -> bool:
        entry = self._entries.get(user_id)
        if entry is None:
            return False
        return self._clock() < entry.expires_at

    def expires_at(self, user_id: str) -> Optional[datetime]:
        entry = self._entries.get(user_id)
        return entry.expires_at if entry else None

    def __len__(self) -> int:
        return len(self._entries)


_handoff_store: Optional[HandoffStore] = None


def get_handoff_store() -> HandoffStore:
    """Get or create the process-wide store."""
    global _handoff_store
    if _handoff_store is None:
        _handoff_store = HandoffStore()
    return _handoff_store
