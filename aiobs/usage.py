"""Usage/quota client — credential validation and consumption reporting."""

from __future__ import annotations

import logging

import httpx
from pydantic import ValidationError

from aiobs.config import QUOTA_TIMEOUT
from aiobs.errors import (
    InvalidApiKey,
    QuotaServiceUnreachable,
    RateLimitExceeded,
    UsageReportFailed,
)
from aiobs.models import UsageEnvelope, UsageInfo

logger = logging.getLogger(__name__)

USAGE_PATH = "/v1/usage"


def _envelope(response: httpx.Response) -> UsageEnvelope | None:
    try:
        return UsageEnvelope.model_validate(response.json())
    except (ValueError, ValidationError):
        return None


class UsageClient:
    """Talks to the shepherd quota service over ``httpx``.

    Every request is a single attempt bounded by ``timeout``; nothing is retried.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = QUOTA_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def _client(self, api_key: str) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
            headers={"Authorization": f"Bearer {api_key}"},
        )

    # -- validation ---------------------------------------------------------

    async def validate(self, api_key: str) -> UsageInfo | None:
        """Check the credential; fatal on 401 or when the tier is rate limited."""
        try:
            async with self._client(api_key) as client:
                response = await client.get(USAGE_PATH)
        except httpx.TimeoutException as exc:
            raise QuotaServiceUnreachable(
                "Failed to connect to shepherd server: timeout", timed_out=True,
            ) from exc
        except httpx.HTTPError as exc:
            raise QuotaServiceUnreachable(f"Failed to connect to shepherd server: {exc}") from exc

        if response.status_code == 401:
            raise InvalidApiKey(response.status_code)
        if not response.is_success:
            raise QuotaServiceUnreachable(
                f"Failed to validate API key: HTTP {response.status_code}",
                status_code=response.status_code,
            )

        envelope = _envelope(response)
        if envelope is None or not envelope.success or envelope.usage is None:
            return None

        usage = envelope.usage
        logger.debug(
            "API key validated: tier=%s, traces_used=%d/%d",
            usage.tier, usage.traces_used, usage.traces_limit,
        )
        if usage.is_rate_limited:
            raise RateLimitExceeded(
                f"Rate limit exceeded: tier={usage.tier}, used={usage.traces_used}/{usage.traces_limit}",
                usage=usage,
            )
        return usage

    # -- reporting ----------------------------------------------------------

    async def report_usage(self, api_key: str, trace_count: int) -> UsageInfo | None:
        """Record ``trace_count`` consumed traces. Any failure is raised."""
        if trace_count <= 0:
            return None

        try:
            async with self._client(api_key) as client:
                response = await client.post(USAGE_PATH, json={"trace_count": trace_count})
        except httpx.HTTPError as exc:
            raise UsageReportFailed(f"Failed to connect to shepherd server: {exc!r}") from exc

        if response.status_code == 401:
            raise InvalidApiKey(response.status_code)
        if response.status_code == 429:
            envelope = _envelope(response) or UsageEnvelope()
            usage = envelope.usage
            raise RateLimitExceeded(
                f"Rate limit exceeded: {envelope.error or 'Unknown error'} "
                f"(tier: {usage.tier if usage else 'unknown'}, "
                f"used: {usage.traces_used if usage else 0}/{usage.traces_limit if usage else 0})",
                usage=usage,
            )
        if not response.is_success:
            raise UsageReportFailed(
                f"Failed to record usage: HTTP {response.status_code}",
                status_code=response.status_code,
            )

        envelope = _envelope(response)
        usage = envelope.usage if envelope else None
        logger.debug(
            "Usage recorded: %d traces, %s remaining",
            trace_count, usage.traces_remaining if usage else "unknown",
        )
        return usage
