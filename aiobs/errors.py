"""Error taxonomy — no internal deps except the usage model for rate limits."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from aiobs.models import UsageInfo


class AiobsError(Exception):
    """Root of every error raised by aiobs."""


# ---------------------------------------------------------------------------
# Credential / quota
# ---------------------------------------------------------------------------

class CredentialError(AiobsError):
    pass


class MissingCredential(CredentialError):
    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message
            or "API key is required. Provide api_key or set the AIOBS_API_KEY environment variable."
        )


class InvalidApiKey(CredentialError):
    def __init__(self, status_code: int = 401) -> None:
        super().__init__("Invalid API key provided to aiobs")
        self.status_code = status_code


class QuotaError(AiobsError):
    pass


class RateLimitExceeded(QuotaError):
    """The quota service reports the credential as rate limited."""

    def __init__(self, message: str, usage: UsageInfo | None = None) -> None:
        super().__init__(message)
        self.usage = usage

    @property
    def tier(self) -> str | None:
        return self.usage.tier if self.usage else None


class QuotaServiceUnreachable(QuotaError):
    """Raised for non-2xx validation responses and transport failures.

    ``timed_out`` separates a network-level timeout from an HTTP rejection.
    """

    def __init__(self, message: str, *, status_code: int | None = None, timed_out: bool = False) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.timed_out = timed_out


class UsageReportFailed(QuotaError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


# ---------------------------------------------------------------------------
# Labels
# ---------------------------------------------------------------------------

class LabelError(AiobsError, ValueError):
    pass


class InvalidLabelKey(LabelError):
    pass


class ReservedLabelKey(LabelError):
    pass


class LabelValueTooLong(LabelError):
    pass


class TooManyLabels(LabelError):
    pass


# ---------------------------------------------------------------------------
# Session / export
# ---------------------------------------------------------------------------

class NoActiveSession(AiobsError, RuntimeError):
    def __init__(self) -> None:
        super().__init__("No active session. Call observe() first.")


class ExportHandlerFailed(AiobsError):
    """An exporter callback raised; the original exception is kept as ``cause``."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause
