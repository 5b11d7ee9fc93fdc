"""Custom exceptions used by image provider adapters."""

from __future__ import annotations

from enum import Enum


class ProviderErrorKind(str, Enum):
    CONTENT_POLICY = "content_policy"
    RATE_LIMIT = "rate_limit"
    TRANSIENT = "transient"
    FATAL = "fatal"

    @property
    def retryable(self) -> bool:
        return self in (ProviderErrorKind.RATE_LIMIT, ProviderErrorKind.TRANSIENT)


class ProviderError(RuntimeError):
    """Base error raised for provider failures."""

    default_kind = ProviderErrorKind.FATAL

    def __init__(
        self,
        message: str,
        *,
        kind: ProviderErrorKind | None = None,
        code: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind or self.default_kind
        self.code = code
        self.status_code = status_code


class ProviderConfigError(ProviderError):
    """Raised when configuration is missing or invalid."""


class ProviderResponseError(ProviderError):
    """Raised when a provider returns an unusable response."""

    default_kind = ProviderErrorKind.TRANSIENT


class ContentPolicyError(ProviderError):
    """The provider refused the prompt; retrying cannot help."""

    default_kind = ProviderErrorKind.CONTENT_POLICY


class RateLimitError(ProviderError):
    default_kind = ProviderErrorKind.RATE_LIMIT


class TransientProviderError(ProviderError):
    default_kind = ProviderErrorKind.TRANSIENT


class FatalProviderError(ProviderError):
    """Authentication, billing, or request errors that will not recover."""


FATAL_ERROR_CODES = frozenset(
    {
        "billing_hard_limit_reached",
        "insufficient_quota",
        "invalid_api_key",
        "account_deactivated",
        "organization_suspended",
    }
)

CONTENT_POLICY_CODES = frozenset({"content_policy_violation", "moderation_blocked"})


def classify_status(
    message: str,
    *,
    status_code: int | None,
    code: str | None = None,
) -> ProviderError:
    """Map an HTTP status, error code and message to a typed provider error."""

    normalised_code = (code or "").lower() or None
    lowered = (message or "").lower()

    if normalised_code in CONTENT_POLICY_CODES or "content_policy" in lowered or "content policy" in lowered:
        return ContentPolicyError(message, code=normalised_code, status_code=status_code)
    if normalised_code in FATAL_ERROR_CODES:
        return FatalProviderError(message, code=normalised_code, status_code=status_code)
    if status_code in (401, 403):
        return FatalProviderError(message, code=normalised_code, status_code=status_code)
    if status_code == 429 or normalised_code == "rate_limit_exceeded":
        return RateLimitError(message, code=normalised_code, status_code=status_code)
    if status_code is None or status_code >= 500:
        return TransientProviderError(message, code=normalised_code, status_code=status_code)
    return FatalProviderError(message, code=normalised_code, status_code=status_code)
