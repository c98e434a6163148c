"""Alert evaluation, test notification and history endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from ...config.logging import get_logger
from ...config.settings import get_settings
from ...exceptions import PipewatchError
from ...scheduler import trigger_evaluation_now
from ...services import HistoryRecorder, NotificationService
from ..auth import verify_auth_token
from ..models.requests import NotificationTestRequest
from ..models.responses import (
    HistoryResponse,
    NotificationEventItem,
    PaginatedData,
    PaginationMeta,
    StatusResponse,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/alerts", dependencies=[Depends(verify_auth_token)])


# Service dependencies
def get_notification_service() -> NotificationService:
    """Dependency to get notification service instance."""
    return NotificationService()


def get_history_recorder() -> HistoryRecorder:
    return HistoryRecorder()


@router.post(
    "/evaluate",
    response_model=StatusResponse,
    summary="Evaluate Now",
    description="Run one evaluation pass over all active alerts and return the per-alert summary",
)
async def evaluate_now(request: Request) -> StatusResponse:
    request_id = getattr(request.state, "request_id", None)

    if not get_settings().alerts_enabled:
        raise PipewatchError(
            "Alert evaluation is disabled (ALERTS_ENABLED=false)", status_code=503
        )

    logger.info("Manual evaluation requested", request_id=request_id)
    summary = await trigger_evaluation_now()

    return StatusResponse.create(
        data=summary.to_dict(),
        message=f"Evaluated {summary.evaluated} alert(s)",
        request_id=request_id,
    )


@router.post(
    "/test",
    response_model=StatusResponse,
    summary="Send Test Notification",
    description="Deliver a message through the given channels without evaluation, dedup or history",
)
async def send_test_notification(
    test_request: NotificationTestRequest,
    request: Request,
    notification_service: NotificationService = Depends(get_notification_service),
) -> StatusResponse:
    request_id = getattr(request.state, "request_id", None)

    report = await notification_service.send_test_notification(
        test_request.channels,
        title=test_request.title,
        text=test_request.text,
        link=test_request.link,
    )

    return StatusResponse.create(
        data=report.to_dict(),
        message="Delivered" if report.delivered else "Not delivered",
        request_id=request_id,
    )


@router.get(
    "/history",
    response_model=HistoryResponse,
    summary="Notification History",
)
async def get_history(
    request: Request,
    alert_id: Optional[str] = Query(None, description="Filter by alert id"),
    status: Optional[str] = Query(None, pattern="^(SENT|FAILED)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    history: HistoryRecorder = Depends(get_history_recorder),
) -> HistoryResponse:
    result = history.list_events(alert_id=alert_id, status=status, page=page, limit=limit)

    return HistoryResponse(
        data=PaginatedData[NotificationEventItem](
            items=[NotificationEventItem(**item) for item in result["items"]],
            pagination=PaginationMeta.build(page, limit, result["total"]),
        ),
        request_id=getattr(request.state, "request_id", None),
    )
