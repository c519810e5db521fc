"""Exponential backoff shared by notification jobs and webhook deliveries."""

from __future__ import annotations

from src.schemas.webhooks import RetryPolicy


def backoff_delay(policy: RetryPolicy, attempt: int) -> float:
    """Seconds to wait after failed ``attempt`` (1-based) before the next one.

    ``initial * multiplier ** (attempt - 1)``, capped at ``max_delay_seconds`` when set.
    """
    if attempt < 1:
        raise ValueError("attempt is 1-based")
    delay = policy.initial_delay_seconds * policy.backoff_multiplier ** (attempt - 1)
    if policy.max_delay_seconds is not None:
        delay = min(delay, policy.max_delay_seconds)
    return delay


def should_retry(policy: RetryPolicy, attempt: int) -> bool:
    """True while ``attempt`` failures still leave a retry in the budget."""
    return attempt <= policy.max_retries
