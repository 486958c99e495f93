"""Custom exceptions and error handling."""

from typing import Any

from fastapi import status


class SeautoError(Exception):
    """Base exception for the audit coordinator."""

    def __init__(
        self,
        message: str,
        code: str = "error",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class NotFoundError(SeautoError):
    """Resource not found."""

    def __init__(self, resource: str, identifier: str | None = None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with id '{identifier}' not found"
        super().__init__(
            message=message,
            code="not_found",
            status_code=status.HTTP_404_NOT_FOUND,
        )


class ValidationError(SeautoError):
    """Validation error."""

    def __init__(self, message: str, field: str | None = None):
        details = {"field": field} if field else {}
        super().__init__(
            message=message,
            code="validation_error",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
        )


class ConflictError(SeautoError):
    """Resource conflict."""

    def __init__(self, message: str, code: str = "conflict"):
        super().__init__(
            message=message,
            code=code,
            status_code=status.HTTP_409_CONFLICT,
        )


class NoTargetsFoundError(SeautoError):
    """Target resolution produced no URLs, so no run can start."""

    def __init__(self, mode: str, reason: str):
        super().__init__(
            message=f"No pages found to audit ({mode}): {reason}",
            code="no_targets_found",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"mode": mode},
        )


class RunInProgressError(ConflictError):
    """A run is already active for the site."""

    def __init__(self, site_url: str):
        super().__init__(
            f"An audit run is already in progress for {site_url}",
            code="run_in_progress",
        )


class InvalidTransitionError(ConflictError):
    """A recommendation lifecycle action whose precondition does not hold."""

    def __init__(self, action: str, key: str, state: str):
        super().__init__(
            f"Cannot {action} recommendation '{key}' while it is {state}",
            code="invalid_transition",
        )
        self.details = {"action": action, "key": key, "state": state}


class ExternalServiceError(SeautoError):
    """External service error."""

    def __init__(self, service: str, message: str, code: str = "external_service_error"):
        super().__init__(
            message=f"{service}: {message}",
            code=code,
            status_code=status.HTTP_502_BAD_GATEWAY,
            details={"service": service},
        )


class AuditServiceError(ExternalServiceError):
    """Transport or HTTP failure talking to the audit backend."""

    def __init__(self, endpoint: str, message: str, status_code: int | None = None):
        super().__init__("audit-service", f"{endpoint}: {message}", code="audit_service_error")
        self.endpoint = endpoint
        self.upstream_status = status_code
        self.details["endpoint"] = endpoint
        if status_code is not None:
            self.details["upstream_status"] = status_code


class TaskStoreError(ExternalServiceError):
    """A read or write against the persisted task store failed."""

    def __init__(self, message: str):
        super().__init__("task-store", message, code="task_store_error")
