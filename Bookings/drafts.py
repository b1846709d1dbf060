"""Partially completed bookings kept per user so the wizard can resume after login."""

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class BookingDraftFields(BaseModel):
    """Payload accepted when saving wizard progress; unset fields keep their stored value."""

    route_id : Optional[UUID] = None
    branch_id : Optional[UUID] = None
    from_location : Optional[str] = None
    to_location : Optional[str] = None
    departure_date : Optional[str] = None
    departure_time : Optional[str] = None
    seats : Optional[list[int]] = None
    step : Optional[int] = Field(default=None, ge=0)
    return_url : Optional[str] = None


class BookingDraft(BookingDraftFields):

    user_id : UUID
    saved_at : datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def is_expired(self, ttl: timedelta, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now - self.saved_at > ttl


class BookingDraftStore:
    """In-process draft storage with a fixed time to live."""

    def __init__(self, ttl_hours: int = 24) -> None:
        self._ttl = timedelta(hours=ttl_hours)
        self._drafts: dict[UUID, BookingDraft] = {}
        self._lock = threading.Lock()

    def save(self, user_id: UUID, fields: BookingDraftFields, now: Optional[datetime] = None) -> BookingDraft:
        """Merge ``fields`` into the user's current draft and refresh its timestamp."""
        with self._lock:
            current = self._get_locked(user_id, now)
            merged = current.model_dump(exclude={"saved_at"}) if current else {"user_id": user_id}
            merged.update(fields.model_dump(exclude_unset=True))
            draft = BookingDraft(**merged, saved_at=now or datetime.now(timezone.utc))
            self._drafts[user_id] = draft
        logger.info("Booking draft saved", extra={"user_id": str(user_id), "step": draft.step})
        return draft

    def get(self, user_id: UUID, now: Optional[datetime] = None) -> Optional[BookingDraft]:
        with self._lock:
            return self._get_locked(user_id, now)

    def clear(self, user_id: UUID) -> bool:
        with self._lock:
            removed = self._drafts.pop(user_id, None) is not None
        if removed:
            logger.info("Booking draft cleared", extra={"user_id": str(user_id)})
        return removed

    def _get_locked(self, user_id: UUID, now: Optional[datetime]) -> Optional[BookingDraft]:
        draft = self._drafts.get(user_id)
        if draft is None:
            return None
        if draft.is_expired(self._ttl, now):
            del self._drafts[user_id]
            logger.info("Expired booking draft discarded", extra={"user_id": str(user_id)})
            return None
        return draft
