from __future__ import annotations

from enum import Enum
from typing import Any, Optional, Sequence

REDACT_TOKEN = "***redacted***"


class GSCError(Exception):
    """Base class for every error this package raises on purpose."""


# ---------------------------------------------------------------------------
# Startup / configuration
# ---------------------------------------------------------------------------


class ConfigurationError(GSCError):
    pass


class MissingCredentialsError(ConfigurationError):
    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message
            or "Missing Google OAuth credentials. Set GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET "
            "in your environment or .env file.\n"
            "See: https://console.cloud.google.com/apis/credentials"
        )


class DelegatedCredentialFileMissingError(ConfigurationError):
    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Service account file not found: {path}")


class DelegatedCredentialMalformedError(ConfigurationError):
    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to parse service account file {path}: {reason}")


class NoAuthConfiguredError(ConfigurationError):
    def __init__(self) -> None:
        super().__init__(
            "No authentication configured. Either:\n"
            "1. Run the auth command to authenticate with OAuth, or\n"
            "2. Set GSC_SERVICE_ACCOUNT_PATH to use a service account"
        )


# ---------------------------------------------------------------------------
# Interactive flow / token lifecycle
# ---------------------------------------------------------------------------


class OAuthFlowError(GSCError):
    pass


class OAuthCallbackError(OAuthFlowError):
    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"OAuth error: {reason}")


class OAuthTimeoutError(OAuthFlowError):
    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"OAuth timeout - no callback received within {timeout:g} seconds")


class OAuthExchangeFailureError(OAuthFlowError):
    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Failed to obtain tokens from Google: {reason}")


class TokenRefreshFailureError(GSCError):
    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(
            f"Failed to refresh OAuth token ({reason}). Run the auth command to re-authenticate."
        )


class TokenPersistenceError(GSCError):
    def __init__(self, path: str, cause: OSError) -> None:
        self.path = path
        super().__init__(f"Failed to write token file {path}: {cause}")


class TokenEndpointError(GSCError):
    """Raw rejection from the OAuth token endpoint; callers translate it."""

    def __init__(self, status: Optional[int], message: str) -> None:
        self.status = status
        self.message = message
        super().__init__(f"token endpoint returned {status}: {message}" if status else message)


# ---------------------------------------------------------------------------
# Per-call errors
# ---------------------------------------------------------------------------


class SchemaValidationError(GSCError):
    """Arguments did not satisfy a tool's input schema.

    ``fields`` holds ``(field_path, problem)`` pairs in the order reported.
    """

    def __init__(self, tool_name: str, fields: Sequence[tuple[str, str]]) -> None:
        self.tool_name = tool_name
        self.fields = list(fields)
        detail = "; ".join(f"{path}: {problem}" for path, problem in self.fields)
        super().__init__(f"Invalid arguments for {tool_name}: {detail}")


class UpstreamAPIError(GSCError):
    """Failure reported by the Search Console API (or the transport to it).

    ``status`` is the HTTP status, or ``None`` when no response was received.
    """

    def __init__(self, status: Optional[int], message: str) -> None:
        self.status = status
        self.message = message
        super().__init__(message)

    @property
    def kind(self) -> "UpstreamErrorKind":
        return map_upstream_status(self.status)


class UpstreamErrorKind(str, Enum):
    INVALID_REQUEST = "INVALID_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    RATE_LIMITED = "RATE_LIMIT"
    SERVICE_UNAVAILABLE = "SERVICE_ERROR"
    HTTP_ERROR = "HTTP_ERROR"


_STATUS_KINDS = {
    400: UpstreamErrorKind.INVALID_REQUEST,
    401: UpstreamErrorKind.UNAUTHORIZED,
    403: UpstreamErrorKind.FORBIDDEN,
    404: UpstreamErrorKind.NOT_FOUND,
    429: UpstreamErrorKind.RATE_LIMITED,
}

_KIND_ADVICE = {
    UpstreamErrorKind.INVALID_REQUEST: "Invalid request parameters",
    UpstreamErrorKind.UNAUTHORIZED: "Authentication failed. Try running the auth command to re-authenticate.",
    UpstreamErrorKind.FORBIDDEN: "Permission denied. Make sure you have access to this GSC property.",
    UpstreamErrorKind.NOT_FOUND: "Resource not found. The URL or property may not exist.",
    UpstreamErrorKind.RATE_LIMITED: "Rate limit exceeded. Please wait a moment and try again.",
    UpstreamErrorKind.SERVICE_UNAVAILABLE: (
        "Google Search Console service is temporarily unavailable. Please try again later."
    ),
}


def map_upstream_status(status: Optional[int]) -> UpstreamErrorKind:
    if status in _STATUS_KINDS:
        return _STATUS_KINDS[status]
    if status is not None and 500 <= status <= 599:
        return UpstreamErrorKind.SERVICE_UNAVAILABLE
    return UpstreamErrorKind.HTTP_ERROR


def error_code(exc: UpstreamAPIError) -> str:
    kind = exc.kind
    if kind is UpstreamErrorKind.HTTP_ERROR:
        return f"HTTP_{exc.status}"
    return kind.value


def describe_error(exc: BaseException) -> str:
    """User-facing text for any error that reaches the dispatch boundary."""
    if isinstance(exc, UpstreamAPIError):
        advice = _KIND_ADVICE.get(exc.kind)
        if advice is None:
            return f"Google API error: {exc.message}"
        if exc.message and exc.message != advice:
            return f"{advice}\nDetails: {exc.message}"
        return advice
    message = str(exc)
    return message or exc.__class__.__name__


def typed_error(code: str, message: str, *, details: dict | None = None, **extra: Any) -> dict:
    """
    Structured error record used in telemetry:
      {"error": {"code": code, "message": message, "details": {...}}, ...extra}
    """
    err: dict[str, Any] = {"error": {"code": code, "message": message}}
    if details:
        err["error"]["details"] = details
    if extra:
        err.update(extra)
    return err
