"""Repository for the append-only notification event log."""

import threading
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import and_, desc

from ..models import NotificationEvent, utcnow
from .base import BaseRepository

# Serializes check-then-insert within this process
_fingerprint_lock = threading.Lock()


def _as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class NotificationEventRepository(BaseRepository):
    """Repository for notification history operations."""

    def append(
        self,
        alert_id: str,
        status: str,
        message: str,
        integration_id: Optional[str] = None,
        target_name: Optional[str] = None,
        run_number: Optional[str] = None,
        link: Optional[str] = None,
        sent_at: Optional[datetime] = None,
    ) -> NotificationEvent:
        """Append an event to history."""
        event = NotificationEvent(
            alert_id=alert_id,
            status=status,
            message=message,
            integration_id=integration_id,
            target_name=target_name,
            run_number=run_number,
            link=link,
            sent_at=_as_naive_utc(sent_at) if sent_at else utcnow(),
        )

        self.session.add(event)
        self.session.commit()
        self.session.refresh(event)

        return event

    def query_recent_by_fingerprint(
        self,
        alert_id: str,
        message: str,
        since: datetime,
        status: Optional[str] = "SENT",
    ) -> List[NotificationEvent]:
        """Events for the same alert and message recorded at or after ``since``."""
        conditions = [
            NotificationEvent.alert_id == alert_id,
            NotificationEvent.message == message,
            NotificationEvent.sent_at >= _as_naive_utc(since),
        ]
        if status:
            conditions.append(NotificationEvent.status == status)

        return (
            self.session.query(NotificationEvent)
            .filter(and_(*conditions))
            .order_by(desc(NotificationEvent.sent_at))
            .all()
        )

    def has_recent(
        self, alert_id: str, message: str, since: datetime, status: Optional[str] = "SENT"
    ) -> bool:
        return bool(self.query_recent_by_fingerprint(alert_id, message, since, status))

    def append_if_absent(
        self, since: datetime, **event_fields
    ) -> Optional[NotificationEvent]:
        """
        Insert an event unless a matching fingerprint exists within the window.

        The check and the insert run in one transaction while holding the
        process-wide fingerprint lock.

        Returns:
            The new event, or None when a matching event already exists
        """
        with _fingerprint_lock:
            try:
                exists = self.has_recent(
                    event_fields["alert_id"],
                    event_fields["message"],
                    since,
                    status=event_fields.get("status", "SENT"),
                )
                if exists:
                    self.session.rollback()
                    return None
                return self.append(**event_fields)
            except Exception:
                self.session.rollback()
                raise

    def list_events(
        self,
        alert_id: Optional[str] = None,
        status: Optional[str] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> Tuple[List[NotificationEvent], int]:
        """Page through history, newest first."""
        query = self.session.query(NotificationEvent)
        if alert_id:
            query = query.filter(NotificationEvent.alert_id == alert_id)
        if status:
            query = query.filter(NotificationEvent.status == status)

        total = query.count()
        items = (
            query.order_by(desc(NotificationEvent.sent_at), desc(NotificationEvent.id))
            .offset(offset)
            .limit(limit)
            .all()
        )
        return items, total
