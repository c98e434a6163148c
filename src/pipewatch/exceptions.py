"""Exception taxonomy for the alert evaluation engine."""

from typing import Any, Dict, Optional


class PipewatchError(Exception):
    """Base exception for pipewatch application."""

    status_code = 500

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code


class ConfigurationError(PipewatchError):
    """An integration or alert definition is missing or incomplete."""

    status_code = 400

    def __init__(self, setting: str, message: str):
        super().__init__(
            message=f"Configuration error for '{setting}': {message}",
            details={"setting": setting},
        )
        self.setting = setting


class UpstreamError(PipewatchError):
    """A call to an external CI provider failed."""

    status_code = 502

    def __init__(
        self,
        provider: str,
        operation: str,
        message: str,
        upstream_status: Optional[int] = None,
    ):
        super().__init__(
            message=f"{provider} error during {operation}: {message}",
            details={
                "provider": provider,
                "operation": operation,
                "upstream_status": upstream_status,
            },
        )
        self.provider = provider
        self.operation = operation
        self.upstream_status = upstream_status


class DispatchError(PipewatchError):
    """A notification channel failed to deliver."""

    status_code = 502

    def __init__(self, channel: str, message: str):
        super().__init__(
            message=f"{channel} delivery failed: {message}",
            details={"channel": channel},
        )
        self.channel = channel


class PersistenceError(PipewatchError):
    """Reading or writing notification history failed."""

    def __init__(self, operation: str, message: str):
        super().__init__(
            message=f"Database {operation} failed: {message}",
            details={"operation": operation},
        )
        self.operation = operation


class EvaluationInProgressError(PipewatchError):
    """An evaluation pass is already running."""

    status_code = 409

    def __init__(self, running_since: Optional[str] = None):
        super().__init__(
            message="An evaluation pass is already running",
            details={"running_since": running_since},
        )


class NotFoundError(PipewatchError):
    """Requested resource does not exist."""

    status_code = 404

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            message=f"{resource} with identifier '{identifier}' not found",
            details={"resource": resource, "identifier": identifier},
        )
