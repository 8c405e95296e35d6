"""
Resilience executor — the single place retry, backoff and fallback live.

    resilience = Resilience(ResiliencePolicy(), store=MemoryStore())

    match await resilience.execute(lambda: platform.get_cart(cart_id), "get_cart"):
        case Ok(cart):
            ...
        case Error(err):
            log(err.to_dict())

Each attempt is timed out, its failure classified into a CommerceError,
and retried with linear backoff (base_delay × attempt number) while the
error is retryable and the runtime is online.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta

import structlog
from combinators import RetryPolicy, retry, timeout
from combinators import lift as L
from kungfu import Error, LazyCoroResult, Ok, Result

from cartsync._errors import CommerceError, Errors, classify
from cartsync._types import Clock, Operation, utc_now
from cartsync.benefits import (
    Membership,
    MembershipBenefits,
    MembershipStats,
    MembershipStatus,
)
from cartsync.resilience._connectivity import OFFLINE_MESSAGE, AlwaysOnline, Connectivity
from cartsync.resilience._policy import ResiliencePolicy
from cartsync.resilience._snapshot import SnapshotCache
from cartsync.resilience._store import KeyValueStore, MemoryStore

logger = structlog.get_logger(__name__)

DEGRADED_TERM = timedelta(days=365)


# ═══════════════════════════════════════════════════════════════════════════════
# Resilience
# ═══════════════════════════════════════════════════════════════════════════════


class Resilience:
    """Retry, fallback, snapshot cache and offline handling for one session."""

    def __init__(
        self,
        policy: ResiliencePolicy | None = None,
        *,
        store: KeyValueStore | None = None,
        connectivity: Connectivity | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.policy = policy or ResiliencePolicy()
        self.connectivity = connectivity or AlwaysOnline()
        self.clock = clock
        self.snapshots = SnapshotCache(
            store if store is not None else MemoryStore(),
            ttl=self.policy.cache_timeout,
            clock=clock,
            enabled=self.policy.enable_storage,
        )

    @property
    def is_offline(self) -> bool:
        return self.policy.enable_offline_mode and not self.connectivity.is_online()

    def offline_message(self) -> str:
        return OFFLINE_MESSAGE

    def _attempt[T](self, operation: Operation[T], name: str) -> LazyCoroResult[T, CommerceError]:
        """One try: exceptions and timeouts become classified errors."""
        attempt = L.catching_async(operation, on_error=lambda exc: classify(exc, name))
        if self.policy.attempt_timeout is not None:
            attempt = timeout(attempt, seconds=self.policy.attempt_timeout)
        return attempt.map_err(lambda e: classify(e, name))

    def _retry_policy(self, name: str) -> RetryPolicy[CommerceError]:
        policy = self.policy

        def backoff(attempt: int, err: CommerceError) -> float:
            delay = policy.base_delay * (attempt + 1)
            logger.warning(
                "resilience.retry",
                operation=name,
                attempt=attempt + 1,
                max_attempts=policy.retry_attempts,
                delay=delay,
                kind=err.kind.value,
                correlation_id=err.context.correlation_id,
            )
            return delay

        return RetryPolicy(
            times=policy.retry_attempts,
            backoff=backoff,
            retry_on=lambda err: err.is_retryable and not self.is_offline,
        )

    def execute[T](self, operation: Operation[T], name: str = "operation") -> LazyCoroResult[T, CommerceError]:
        """
        Run operation with retry. Lazy: nothing happens until awaited.

        Offline (with offline mode on) fails fast with NETWORK_ERROR.
        """

        async def run() -> Result[T, CommerceError]:
            if self.is_offline:
                logger.info("resilience.offline", operation=name)
                return Error(Errors.network(ConnectionError(OFFLINE_MESSAGE), name))

            result = await retry(self._attempt(operation, name), policy=self._retry_policy(name))
            match result:
                case Ok(_):
                    return result
                case Error(err):
                    logger.error("resilience.failed", operation=name, **err.to_dict())
                    return result

        return LazyCoroResult(run)

    def execute_with_fallback[T](
        self,
        operation: Operation[T],
        fallback: Operation[T] | None = None,
        name: str = "operation",
    ) -> LazyCoroResult[T, CommerceError]:
        """
        execute(), then fallback on failure.

        A failing fallback is logged and the original error is returned.
        """

        async def run() -> Result[T, CommerceError]:
            result = await self.execute(operation, name)
            match result:
                case Ok(_):
                    return result
                case Error(err) if fallback is not None:
                    logger.warning("resilience.fallback", operation=name, kind=err.kind.value)
                    fallback_result = await L.catching_async(
                        fallback,
                        on_error=lambda exc: classify(exc, f"{name}.fallback"),
                    )
                    match fallback_result:
                        case Ok(_):
                            return fallback_result
                        case Error(fallback_err):
                            logger.error(
                                "resilience.fallback_failed",
                                operation=name,
                                error=fallback_err.message,
                            )
                            return Error(err)
                case _:
                    return result

        return LazyCoroResult(run)

    async def cache_snapshot(self, membership: Membership | None, stats: MembershipStats | None = None) -> None:
        await self.snapshots.cache_snapshot(membership, stats)

    async def get_fallback_membership(self, customer_id: str) -> Membership | None:
        """
        Cached membership for this customer, labelled is_cached.

        Without one, a degraded membership when the policy allows it,
        otherwise None. Never an unlabelled active membership.
        """
        snapshot = await self.snapshots.get_cached_snapshot()
        if snapshot is not None and snapshot.membership is not None:
            if snapshot.membership.customer_id == customer_id:
                logger.info("resilience.cached_membership", customer_id=customer_id)
                return replace(snapshot.membership, is_cached=True)

        if self.policy.allow_degraded_membership:
            logger.warning("resilience.degraded_membership", customer_id=customer_id)
            return degraded_membership(customer_id, now=self.clock())
        return None

    async def get_fallback_stats(self, customer_id: str) -> MembershipStats:
        snapshot = await self.snapshots.get_cached_snapshot()
        if snapshot is not None and snapshot.stats is not None:
            owner = snapshot.membership.customer_id if snapshot.membership else None
            if owner in (None, customer_id):
                return snapshot.stats
        return MembershipStats.zero(self.clock())


def degraded_membership(customer_id: str, *, now: datetime) -> Membership:
    """Active membership on default benefits, flagged is_degraded."""
    return Membership(
        id=f"degraded_{customer_id}",
        customer_id=customer_id,
        status=MembershipStatus.ACTIVE,
        started_at=now,
        expires_at=now + DEGRADED_TERM,
        benefits=MembershipBenefits(),
        is_degraded=True,
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "Resilience",
    "degraded_membership",
)
