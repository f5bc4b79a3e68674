"""
HTTP status → typed error mapping shared by the HTTP backends.

  429                                   → RateLimitError(retry_after from Retry-After)
  429 + allocation/quota wording        → QuotaExceededError
  402, 403 + quota wording              → QuotaExceededError
  401                                   → ProviderError(retryable=False)
  404                                   → ProviderError(retryable=False)
  other non-2xx                         → ProviderError(status_code)
  httpx timeout / transport failure     → ProviderError(timeout=...)
"""

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional

import httpx

from .errors import ProviderError, QuotaExceededError, RateLimitError

_QUOTA_HINTS = ("quota", "credit", "insufficient", "billing", "allocation")


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header (delta-seconds or HTTP-date) into seconds."""
    if not value:
        return None
    value = value.strip()
    try:
        seconds = float(value)
        return seconds if seconds >= 0 else None
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


def _mentions_quota(body: str) -> bool:
    lowered = body.lower()
    return any(hint in lowered for hint in _QUOTA_HINTS)


async def raise_for_status(response: httpx.Response, provider: str, model_id: str) -> None:
    """Raise the typed error for a non-2xx response; no-op on success."""
    if response.is_success:
        return
    body = (await response.aread()).decode("utf-8", errors="replace")[:500]
    status = response.status_code

    if status == 429:
        if _mentions_quota(body):
            raise QuotaExceededError(f"Quota exceeded: {body}", provider=provider, status_code=status)
        raise RateLimitError(
            "Rate limit exceeded",
            provider=provider,
            retry_after=parse_retry_after(response.headers.get("retry-after")),
        )
    if status == 402 or (status == 403 and _mentions_quota(body)):
        raise QuotaExceededError(f"Quota exceeded: {body}", provider=provider, status_code=status)
    if status == 401:
        raise ProviderError("Authentication failed", provider=provider, status_code=status, retryable=False)
    if status == 404:
        raise ProviderError(
            f"Model {model_id} not found", provider=provider, status_code=status, retryable=False
        )
    raise ProviderError(f"API request failed: {status} {body}", provider=provider, status_code=status)


def transport_error(error: httpx.HTTPError, provider: str) -> ProviderError:
    """Wrap an httpx failure; the original stays reachable via ``__cause__``."""
    if isinstance(error, httpx.TimeoutException):
        wrapped = ProviderError(f"Request timed out: {error}", provider=provider, timeout=True)
    else:
        wrapped = ProviderError(f"Transport error: {type(error).__name__}: {error}", provider=provider)
    wrapped.__cause__ = error
    return wrapped
