"""API Models package for request/response schemas."""

from .requests import NotificationTestRequest
from .responses import (
    BaseResponse,
    ErrorResponse,
    HealthResponse,
    HealthStatus,
    HistoryResponse,
    NotificationEventItem,
    PaginatedData,
    PaginatedResponse,
    PaginationMeta,
    StatusResponse,
    SuccessResponse,
)

__all__ = [
    # Response models
    "BaseResponse",
    "SuccessResponse",
    "ErrorResponse",
    "HealthResponse",
    "HealthStatus",
    "HistoryResponse",
    "NotificationEventItem",
    "PaginatedData",
    "PaginatedResponse",
    "PaginationMeta",
    "StatusResponse",
    # Request models
    "NotificationTestRequest",
]
