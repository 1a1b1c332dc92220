"""
Domain Errors
=============

Exceptions raised by the service layer. The API layer maps them to HTTP
status codes via `http_status_for` and a single exception handler that
renders `{"error": message}`.
"""

from typing import Optional


class InsightsError(Exception):
    """Base class for service-layer errors"""
    status_code = 500

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(InsightsError):
    """Missing or malformed request fields"""
    status_code = 400


class NotFoundError(InsightsError):
    status_code = 404


class AccessDeniedError(NotFoundError):
    """Resource exists but is not owned by the caller (reported as not found)"""

    def __init__(self, message: str = "Case not found or access denied", details: Optional[str] = None):
        super().__init__(message, details)


class LimitExceededError(InsightsError):
    """Plan limit reached"""
    status_code = 403


class ConfigurationError(InsightsError):
    """Required environment variable missing"""
    status_code = 500


class WebhookError(InsightsError):
    """Workflow engine call failed"""
    status_code = 500

    def __init__(self, message: str, upstream_status: Optional[int] = None, details: Optional[str] = None):
        super().__init__(message, details)
        self.upstream_status = upstream_status


class BillingError(InsightsError):
    """Stripe call or webhook processing failed"""
    status_code = 500


class StorageError(InsightsError):
    status_code = 500


def http_status_for(exc: Exception) -> int:
    return getattr(exc, "status_code", 500)
