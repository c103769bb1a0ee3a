"""
Custom Exceptions for the collection layer
"""

from typing import Any, Dict, Optional

from fastapi import status


class CollectException(Exception):
    """Base exception for pagecollect"""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "internal_error",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(CollectException):
    """Raised when collection configuration is invalid (fail fast at startup)"""

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error_code="configuration_error",
            details=details,
        )


class MalformedEventError(CollectException):
    """Client-submitted collect request is missing required fields"""

    def __init__(self, message: str = "Malformed request", details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="malformed_request",
            details=details,
        )


class RemoteCallError(CollectException):
    """Outbound HTTP call to a destination failed"""

    def __init__(
        self,
        message: str = "Remote call failed",
        url: str = "unknown",
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details["url"] = url
        self.url = url
        super().__init__(
            message=message,
            status_code=status.HTTP_502_BAD_GATEWAY,
            error_code="remote_call_error",
            details=details,
        )


class RemoteTimeoutError(RemoteCallError, TimeoutError):
    """Response headers did not arrive within the configured timeout"""

    def __init__(self, message: str, url: str, timeout_ms: int, elapsed_ms: float):
        self.timeout_ms = timeout_ms
        self.elapsed_ms = elapsed_ms
        super().__init__(
            message=message,
            url=url,
            details={"timeout_ms": timeout_ms, "elapsed_ms": round(elapsed_ms)},
        )
        self.error_code = "remote_timeout"


class RemoteHTTPError(RemoteCallError):
    """Remote endpoint answered with a non-2xx status"""

    def __init__(self, message: str, url: str, status_code: int, body: str):
        self.response_status = status_code
        self.body = body
        super().__init__(
            message=message,
            url=url,
            details={"status_code": status_code},
        )
        self.error_code = "remote_http_error"


class RemoteNetworkError(RemoteCallError):
    """Connection-level failure (DNS, refused, reset, ...)"""

    def __init__(self, message: str, url: str):
        super().__init__(message=message, url=url)
        self.error_code = "remote_network_error"
