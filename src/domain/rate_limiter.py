"""
Rate limiter - sliding request window with temporary blocking.

Records are keyed by an arbitrary string: a client IP, "email_" + address,
or "<action>_<ip>" for named actions. Each call site supplies its own rule.

Decision table for check():
    no record                      -> start window, allow
    blocked_until in the future    -> reject, counters untouched
    blocked_until elapsed          -> start fresh window, allow
    inside window, count < max     -> atomic increment, allow
    inside window, count >= max    -> block for block_duration, reject
    window elapsed                 -> start fresh window, allow
"""

import logging
import math
from dataclasses import dataclass, field

from .exceptions import RateLimited
from .models import Clock, RateLimitRule, utc_now
from .ports import RateLimitRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    message: str | None = None
    retry_after_seconds: int | None = None


@dataclass
class RateLimiter:
    """
    Domain service enforcing per-key request limits.

    Storage failures are not retried and propagate to the caller.
    """

    repository: RateLimitRepository
    clock: Clock = field(default=utc_now)

    def check(self, key: str, rule: RateLimitRule) -> RateLimitDecision:
        now = self.clock()
        record = self.repository.get(key)

        if record is not None and record.blocked_until is not None:
            if now < record.blocked_until:
                minutes_remaining = math.ceil(
                    (record.blocked_until - now).total_seconds() / 60
                )
                return RateLimitDecision(
                    allowed=False,
                    message=(
                        "Rate limit exceeded. "
                        f"Please try again in {minutes_remaining} minute(s)."
                    ),
                    retry_after_seconds=minutes_remaining * 60,
                )
            # Stale block: the next request opens a fresh window
            record = None

        if record is None or now >= record.window_start + rule.window:
            self.repository.start_window(key, now)
            return RateLimitDecision(allowed=True)

        if record.count < rule.max_requests:
            self.repository.increment(key)
            return RateLimitDecision(allowed=True)

        self.repository.block(key, now + rule.block_duration)
        logger.warning("Rate limit triggered for key %s", key)
        return RateLimitDecision(
            allowed=False,
            message=(
                "Rate limit exceeded. Too many requests. "
                f"Please try again in {rule.block_duration_minutes} minutes."
            ),
            retry_after_seconds=rule.block_duration_minutes * 60,
        )

    def enforce(self, key: str, rule: RateLimitRule) -> None:
        """
        Check the limit and raise when the request is not allowed.

        Raises:
            RateLimited: If the key is blocked or just exceeded its window
        """
        decision = self.check(key, rule)
        if not decision.allowed:
            raise RateLimited(
                decision.message or "Rate limit exceeded",
                retry_after_seconds=decision.retry_after_seconds,
            )
