"""Recording of dispatch outcomes into the append-only notification history."""

from typing import Any, Dict, Optional

from ..config.logging import get_logger
from ..exceptions import PersistenceError
from ..ormdb.repositories import NotificationEventRepository
from .evaluation.dedup import DedupClaim
from .evaluation.models import CandidateNotification
from .notification.models import DispatchReport

logger = get_logger(__name__)

STATUS_SENT = "SENT"
STATUS_FAILED = "FAILED"


class HistoryRecorder:
    """Persists NotificationEvents; never raises into the evaluation loop."""

    def __init__(self, repository_factory=NotificationEventRepository):
        self._repository_factory = repository_factory
        self.logger = logger.bind(component="history_recorder")

    @staticmethod
    def status_for(report: DispatchReport) -> Optional[str]:
        """
        SENT once any channel delivered, FAILED when every attempted channel
        failed, None when nothing was attempted.
        """
        if not report.attempted:
            return None
        return STATUS_SENT if report.delivered else STATUS_FAILED

    def record(
        self,
        claim: DedupClaim,
        candidate: CandidateNotification,
        report: DispatchReport,
    ) -> Optional[str]:
        """
        Write the event for one dispatch.

        Returns:
            The recorded status, or None when nothing was written
        """
        status = self.status_for(report)
        log = self.logger.bind(alert_id=candidate.alert_id, message=candidate.message)

        if status is None:
            log.warning("No channel attempted delivery; nothing recorded")
            return None

        fields = dict(
            alert_id=candidate.alert_id,
            status=status,
            message=candidate.message,
            integration_id=candidate.integration_id,
            target_name=candidate.target,
            run_number=candidate.run_number,
            link=candidate.link,
        )

        try:
            with self._repository_factory() as repo:
                if status == STATUS_SENT:
                    event = repo.append_if_absent(since=claim.since, **fields)
                    if event is None:
                        log.warning(
                            "Matching SENT event already recorded by a concurrent pass"
                        )
                        return None
                else:
                    repo.append(**fields)
        except Exception as e:
            error = PersistenceError("append notification event", str(e))
            log.error(
                "Failed to record notification event",
                status=status,
                error=error.message,
                exc_info=True,
            )
            return None

        log.info(
            "Notification event recorded",
            status=status,
            failed_channels=report.failed_channels,
        )
        return status

    def list_events(
        self,
        alert_id: Optional[str] = None,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        """Page through history, newest first."""
        page = max(page, 1)
        with self._repository_factory() as repo:
            items, total = repo.list_events(
                alert_id=alert_id,
                status=status,
                offset=(page - 1) * limit,
                limit=limit,
            )
            events = [
                {
                    "id": event.id,
                    "alert_id": event.alert_id,
                    "status": event.status,
                    "message": event.message,
                    "integration_id": event.integration_id,
                    "target_name": event.target_name,
                    "run_number": event.run_number,
                    "link": event.link,
                    "sent_at": event.sent_at.isoformat() + "Z",
                }
                for event in items
            ]

        return {"items": events, "total": total, "page": page, "limit": limit}
