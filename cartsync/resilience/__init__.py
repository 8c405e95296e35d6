"""
Resilience — retry, snapshot cache, degradation.

    from cartsync import resilience as R

    res = R.Resilience(R.ResiliencePolicy().with_retries(3, base_delay=1.0), store=R.MemoryStore())
    result = await res.execute_with_fallback(fetch, lambda: res.get_fallback_membership(cid), "get_membership")
"""

from __future__ import annotations

from cartsync.resilience._policy import ResiliencePolicy
from cartsync.resilience._store import KeyValueStore, MemoryStore, FileStore
from cartsync.resilience._connectivity import (
    Connectivity,
    AlwaysOnline,
    ManualConnectivity,
    OFFLINE_MESSAGE,
)
from cartsync.resilience._snapshot import (
    STORAGE_KEY,
    SCHEMA_VERSION,
    CachedSnapshot,
    SnapshotCache,
    encode_snapshot,
    decode_snapshot,
)
from cartsync.resilience._executor import Resilience, degraded_membership

__all__ = (
    "ResiliencePolicy",
    "KeyValueStore",
    "MemoryStore",
    "FileStore",
    "Connectivity",
    "AlwaysOnline",
    "ManualConnectivity",
    "OFFLINE_MESSAGE",
    "STORAGE_KEY",
    "SCHEMA_VERSION",
    "CachedSnapshot",
    "SnapshotCache",
    "encode_snapshot",
    "decode_snapshot",
    "Resilience",
    "degraded_membership",
)
