"""
Snapshot cache — last-known-good membership and stats.

One JSON entry under a fixed key:

    {"membership": {...} | null, "stats": {...} | null,
     "timestamp": "<iso8601>", "schemaVersion": "1.0.0"}

A snapshot is served only while its schema version matches and
`now - timestamp < ttl`. Anything else (stale, other version, unreadable)
is purged on read and reported as absent.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any

import structlog

from cartsync._types import Clock, utc_now
from cartsync.benefits import (
    Membership,
    MembershipBenefits,
    MembershipStats,
    MembershipStatus,
)
from cartsync.resilience._store import KeyValueStore

logger = structlog.get_logger(__name__)

STORAGE_KEY = "cartsync_membership_cache"
SCHEMA_VERSION = "1.0.0"

# ═══════════════════════════════════════════════════════════════════════════════
# Snapshot
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CachedSnapshot:
    membership: Membership | None
    stats: MembershipStats | None
    timestamp: datetime
    schema_version: str = SCHEMA_VERSION


# ═══════════════════════════════════════════════════════════════════════════════
# Codec
# ═══════════════════════════════════════════════════════════════════════════════


def membership_to_dict(m: Membership) -> dict[str, Any]:
    return {
        "id": m.id,
        "customer_id": m.customer_id,
        "status": m.status.value,
        "started_at": m.started_at.isoformat(),
        "expires_at": m.expires_at.isoformat(),
        "benefits": {
            "discount_percentage": str(m.benefits.discount_percentage),
            "free_delivery": m.benefits.free_delivery,
            "eligible_services": sorted(m.benefits.eligible_services),
        },
    }


def membership_from_dict(data: dict[str, Any]) -> Membership:
    """Decoded memberships are always labelled as cached."""
    benefits = data["benefits"]
    return Membership(
        id=data["id"],
        customer_id=data["customer_id"],
        status=MembershipStatus(data["status"]),
        started_at=datetime.fromisoformat(data["started_at"]),
        expires_at=datetime.fromisoformat(data["expires_at"]),
        benefits=MembershipBenefits(
            discount_percentage=Decimal(benefits["discount_percentage"]),
            free_delivery=bool(benefits["free_delivery"]),
            eligible_services=frozenset(benefits["eligible_services"]),
        ),
        is_cached=True,
    )


def stats_to_dict(s: MembershipStats) -> dict[str, Any]:
    return {
        "total_savings": str(s.total_savings),
        "services_used": s.services_used,
        "orders_with_free_delivery": s.orders_with_free_delivery,
        "member_since": s.member_since.isoformat(),
        "average_order_value": str(s.average_order_value),
        "total_orders": s.total_orders,
    }


def stats_from_dict(data: dict[str, Any]) -> MembershipStats:
    return MembershipStats(
        total_savings=Decimal(data["total_savings"]),
        services_used=int(data["services_used"]),
        orders_with_free_delivery=int(data["orders_with_free_delivery"]),
        member_since=datetime.fromisoformat(data["member_since"]),
        average_order_value=Decimal(data["average_order_value"]),
        total_orders=int(data["total_orders"]),
    )


def encode_snapshot(snapshot: CachedSnapshot) -> str:
    return json.dumps({
        "membership": membership_to_dict(snapshot.membership) if snapshot.membership else None,
        "stats": stats_to_dict(snapshot.stats) if snapshot.stats else None,
        "timestamp": snapshot.timestamp.isoformat(),
        "schemaVersion": snapshot.schema_version,
    })


def decode_snapshot(raw: str) -> CachedSnapshot:
    """Raises ValueError, KeyError, TypeError or InvalidOperation on malformed payloads."""
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("snapshot payload is not an object")
    membership = data.get("membership")
    stats = data.get("stats")
    return CachedSnapshot(
        membership=membership_from_dict(membership) if membership else None,
        stats=stats_from_dict(stats) if stats else None,
        timestamp=datetime.fromisoformat(data["timestamp"]),
        schema_version=str(data["schemaVersion"]),
    )


# ═══════════════════════════════════════════════════════════════════════════════
# SnapshotCache
# ═══════════════════════════════════════════════════════════════════════════════


class SnapshotCache:
    """
    Versioned, time-boxed snapshot over a KeyValueStore.

    Example:
        snapshots = SnapshotCache(MemoryStore(), ttl=timedelta(minutes=5))
        await snapshots.cache_snapshot(membership, stats)
        snap = await snapshots.get_cached_snapshot()
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        ttl: timedelta = timedelta(minutes=5),
        clock: Clock = utc_now,
        key: str = STORAGE_KEY,
        enabled: bool = True,
    ) -> None:
        self._store = store
        self._ttl = ttl
        self._clock = clock
        self._key = key
        self._enabled = enabled

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def cache_snapshot(
        self,
        membership: Membership | None,
        stats: MembershipStats | None = None,
    ) -> None:
        """Persist. Storage failures are logged, never raised."""
        if not self._enabled:
            return
        snapshot = CachedSnapshot(membership=membership, stats=stats, timestamp=self._clock())
        try:
            await self._store.set(self._key, encode_snapshot(snapshot))
        except OSError as exc:
            logger.warning("snapshot.write_failed", key=self._key, error=str(exc))
            return
        logger.debug("snapshot.cached", key=self._key, has_membership=membership is not None)

    async def get_cached_snapshot(self) -> CachedSnapshot | None:
        if not self._enabled:
            return None
        try:
            raw = await self._store.get(self._key)
        except OSError as exc:
            logger.warning("snapshot.read_failed", key=self._key, error=str(exc))
            return None
        if raw is None:
            return None

        try:
            snapshot = decode_snapshot(raw)
        except (ValueError, KeyError, TypeError, InvalidOperation) as exc:
            logger.warning("snapshot.corrupt", key=self._key, error=str(exc))
            await self.clear()
            return None

        if snapshot.schema_version != SCHEMA_VERSION:
            logger.info(
                "snapshot.version_mismatch",
                found=snapshot.schema_version,
                expected=SCHEMA_VERSION,
            )
            await self.clear()
            return None

        age = self._clock() - snapshot.timestamp
        if age >= self._ttl:
            logger.info("snapshot.expired", age_seconds=age.total_seconds())
            await self.clear()
            return None

        return snapshot

    async def clear(self) -> None:
        try:
            await self._store.delete(self._key)
        except OSError as exc:
            logger.warning("snapshot.clear_failed", key=self._key, error=str(exc))


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "STORAGE_KEY",
    "SCHEMA_VERSION",
    "CachedSnapshot",
    "SnapshotCache",
    "encode_snapshot",
    "decode_snapshot",
    "membership_to_dict",
    "membership_from_dict",
    "stats_to_dict",
    "stats_from_dict",
)
