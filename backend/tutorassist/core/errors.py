"""Exceptions raised by services and routes, each knowing its HTTP status and error code.

Invariants:
    - to_response() always yields {"error": {code, message, category, severity, timestamp}}
    - 4xx subclasses describe caller mistakes; 5xx subclasses describe a failed dependency
    - Messages are safe to show a tutor or student: no SQL, stack traces or tokens
    - Extra keys (field, limit, ...) are merged into the envelope beside code and message

Design Decisions:
    - Routes raise these directly and one FastAPI handler renders them
    - ErrorContext is plain data so jobs can attach job_id without importing logging
    - JobExecutionError carries retry: the queue decides between backoff and terminal failure
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """How loudly a failure is logged and how the client should treat it."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """Coarse grouping reported to clients as error.category."""
    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    RESOURCE_NOT_FOUND = "resource_not_found"
    DATABASE = "database"
    EXTERNAL_API = "external_api"
    INTERNAL = "internal"
    CONFLICT = "conflict"


@dataclass
class ErrorContext:
    """Who and what a failure concerns; copied into logs and the envelope."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    workspace_id: str | None = None
    user_id: str | None = None
    job_id: str | None = None
    debug_info: dict[str, Any] | None = None
    retry_after_ms: int | None = None


class TutorAssistError(Exception):
    """Base exception for all TutorAssist errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
        extra: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status
        self.extra = extra or {}

    def to_response(self) -> dict:
        """Envelope body for JSONResponse."""
        body = {
            "code": self.code,
            "message": self.message,
            "category": self.category.value,
            "severity": self.severity.value,
            "timestamp": self.context.timestamp.isoformat(),
        }
        if self.context.retry_after_ms is not None:
            body["retry_after_ms"] = self.context.retry_after_ms
        body.update(self.extra)
        return {"error": body}


# ─── Caller errors (4xx) ───────────────────────────────────────

class ValidationFailedError(TutorAssistError):
    """Request data failed a domain-level check."""
    def __init__(self, message: str, field: str | None = None, context: ErrorContext | None = None):
        super().__init__(
            message, "VALIDATION_ERROR", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
            extra={"field": field} if field else None,
        )
        self.field = field


class BusinessRuleError(TutorAssistError):
    """Operation not allowed in the current state."""
    def __init__(
        self, message: str, code: str = "BUSINESS_RULE_VIOLATION",
        context: ErrorContext | None = None, extra: dict[str, Any] | None = None,
    ):
        super().__init__(
            message, code, ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.WARNING, context, 400, extra,
        )


class AuthenticationError(TutorAssistError):
    """Missing, expired or invalid credentials."""
    def __init__(self, message: str = "Unauthorized", context: ErrorContext | None = None):
        super().__init__(
            message, "UNAUTHORIZED", ErrorCategory.AUTHENTICATION,
            ErrorSeverity.WARNING, context, 401,
        )


class PermissionDeniedError(TutorAssistError):
    """Caller's role does not allow the operation."""
    def __init__(self, message: str = "Forbidden", context: ErrorContext | None = None):
        super().__init__(
            message, "FORBIDDEN", ErrorCategory.AUTHORIZATION,
            ErrorSeverity.WARNING, context, 403,
        )


class NoWorkspaceError(TutorAssistError):
    """Authenticated user is not a member of any workspace."""
    def __init__(self, context: ErrorContext | None = None):
        super().__init__(
            "No workspace", "NO_WORKSPACE", ErrorCategory.AUTHORIZATION,
            ErrorSeverity.WARNING, context, 403,
        )


class ResourceNotFoundError(TutorAssistError):
    """Requested resource does not exist (or is outside the caller's workspace)."""
    def __init__(
        self, resource_type: str, resource_id: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            "RESOURCE_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, context, 404,
        )


class ConflictError(TutorAssistError):
    """Unique constraint would be violated."""
    def __init__(
        self, message: str, context: ErrorContext | None = None,
        extra: dict[str, Any] | None = None,
    ):
        super().__init__(
            message, "CONFLICT", ErrorCategory.CONFLICT,
            ErrorSeverity.ERROR, context, 409, extra,
        )


# ─── Dependency failures (5xx) ─────────────────────────────────

class DatabaseError(TutorAssistError):
    """SQLAlchemy failure other than a constraint violation."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            "DATABASE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.operation = operation


class AnthropicAPIError(TutorAssistError):
    """Messages API call failed after the client gave up retrying."""
    def __init__(
        self,
        message: str,
        api_error_type: str,
        retry_after_ms: int | None = None,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.retry_after_ms = retry_after_ms
        super().__init__(
            f"Anthropic API error ({api_error_type}): {message}",
            "ANTHROPIC_API_ERROR", ErrorCategory.EXTERNAL_API,
            ErrorSeverity.CRITICAL, ctx, 503,
        )
        self.api_error_type = api_error_type


class ExternalServiceError(TutorAssistError):
    """Third-party service (Google, OpenAI) failed or returned an unusable payload."""
    def __init__(self, service: str, message: str, context: ErrorContext | None = None):
        super().__init__(
            f"{service}: {message}",
            "EXTERNAL_SERVICE_ERROR", ErrorCategory.EXTERNAL_API,
            ErrorSeverity.ERROR, context, 502,
        )
        self.service = service


class StorageError(TutorAssistError):
    """Object storage operation failed."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Storage {operation} failed: {message}",
            "STORAGE_ERROR", ErrorCategory.EXTERNAL_API,
            ErrorSeverity.ERROR, context, 502,
        )
        self.operation = operation


class ServiceNotConfiguredError(TutorAssistError):
    """An optional integration (SMTP, ...) has no credentials in this deployment."""
    def __init__(self, service: str, context: ErrorContext | None = None):
        super().__init__(
            f"{service} service not configured",
            "SERVICE_NOT_CONFIGURED", ErrorCategory.EXTERNAL_API,
            ErrorSeverity.WARNING, context, 503,
        )
        self.service = service


class JobExecutionError(TutorAssistError):
    """Background job handler failed."""
    def __init__(self, message: str, retry: bool = True, context: ErrorContext | None = None):
        super().__init__(
            message, "JOB_FAILED", ErrorCategory.INTERNAL,
            ErrorSeverity.ERROR, context, 500,
        )
        self.retry = retry
