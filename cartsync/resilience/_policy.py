"""
Resilience policy — retry, timeout, cache and degradation settings.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import timedelta

# ═══════════════════════════════════════════════════════════════════════════════
# Policy — Full Configuration
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class ResiliencePolicy:
    """
    Resilience configuration.

    Chain the with_* methods to configure.

    Example:
        policy = (
            ResiliencePolicy()
            .with_retries(3, base_delay=1.0)
            .with_attempt_timeout(seconds=15)
            .with_cache_timeout(minutes=5)
        )

    Each with_* call returns a new policy.
    Delay before retry n (1-based) is base_delay * n.
    """

    retry_attempts: int = 3
    base_delay: float = 1.0
    attempt_timeout: float | None = 15.0
    cache_timeout: timedelta = timedelta(minutes=5)
    enable_storage: bool = True
    enable_offline_mode: bool = True
    # Off by default: a degraded membership grants real discounts without
    # backend confirmation.
    allow_degraded_membership: bool = False

    def __post_init__(self) -> None:
        if self.retry_attempts < 1:
            raise ValueError("retry_attempts must be >= 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must be >= 0")
        if self.attempt_timeout is not None and self.attempt_timeout <= 0:
            raise ValueError("attempt_timeout must be > 0")

    def with_retries(self, attempts: int, *, base_delay: float | None = None) -> ResiliencePolicy:
        """
        Set the attempt budget (first try included) and backoff base.

        Example:
            .with_retries(5, base_delay=0.5)   # waits 0.5, 1.0, 1.5, 2.0
        """
        return replace(
            self,
            retry_attempts=attempts,
            base_delay=self.base_delay if base_delay is None else base_delay,
        )

    def with_attempt_timeout(self, *, seconds: float | None) -> ResiliencePolicy:
        """Per-attempt timeout. None disables it."""
        return replace(self, attempt_timeout=seconds)

    def with_cache_timeout(
        self,
        *,
        seconds: float | None = None,
        minutes: float | None = None,
        delta: timedelta | None = None,
    ) -> ResiliencePolicy:
        """
        Set snapshot TTL.

        Example:
            .with_cache_timeout(minutes=5)
            .with_cache_timeout(delta=timedelta(hours=1))
        """
        if delta is None:
            delta = timedelta(seconds=(seconds or 0) + (minutes or 0) * 60)
        return replace(self, cache_timeout=delta)

    def with_storage(self, enabled: bool = True) -> ResiliencePolicy:
        return replace(self, enable_storage=enabled)

    def with_offline_mode(self, enabled: bool = True) -> ResiliencePolicy:
        """When on, an offline runtime fails fast instead of burning retries."""
        return replace(self, enable_offline_mode=enabled)

    def with_degraded_membership(self, allowed: bool = True) -> ResiliencePolicy:
        """
        Opt into the degraded membership fallback.

        With no usable snapshot and an unreachable backend, the customer is
        treated as an active member. The membership is flagged is_degraded.
        """
        return replace(self, allow_degraded_membership=allowed)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = ("ResiliencePolicy",)
