"""Canonical-hash deduplication with a pluggable keystore (Redis-like)."""

from __future__ import annotations

import asyncio
from typing import AbstractSet, Callable, Optional, Protocol

from ingestion.errors import DuplicateError
from ingestion.models.domain import NormalizedPosting
from ingestion.utils.logging import get_logger

logger = get_logger(__name__)


class KeyStore(Protocol):
    def has(self, key: str) -> bool: ...  # noqa: D401
    def add(self, key: str, ttl_seconds: int | None = None) -> bool: ...  # noqa: D401


class InMemoryKeyStore:
    """Simple in-memory keystore for tests/local runs."""

    def __init__(self) -> None:
        self._set: set[str] = set()

    def __len__(self) -> int:
        return len(self._set)

    def has(self, key: str) -> bool:
        return key in self._set

    def add(self, key: str, ttl_seconds: int | None = None) -> bool:
        if key in self._set:
            return False
        self._set.add(key)
        return True


class _RedisLikeClient(Protocol):
    def exists(self, name: str) -> int: ...  # returns 1 if exists, else 0
    def set(self, name: str, value: str, *, ex: int | None = None, nx: bool | None = None) -> bool | None: ...


class RedisKeyStore:
    """Redis 기반 KeyStore 구현.

    - 존재 확인: `EXISTS key` → 정수(0/1)
    - 추가: `SET key value NX EX <ttl>` → 키가 없을 때만 설정하고, 설정 여부를 반환

    실행(run) 단위 prefix 를 주면 여러 워커가 같은 실행의 중복 집합을 공유할 수 있다.
    테스트에서는 fake 클라이언트를 주입한다.
    """

    def __init__(self, client: _RedisLikeClient, *, prefix: str = "dedup", default_ttl_seconds: int | None = None) -> None:
        self._client = client
        self._prefix = prefix
        self._default_ttl = default_ttl_seconds

    def _format(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    def has(self, key: str) -> bool:
        return bool(self._client.exists(self._format(key)))

    def add(self, key: str, ttl_seconds: int | None = None) -> bool:
        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl
        # redis-py: set(name, value, ex=seconds, nx=True) returns True if set, None if not set
        return bool(self._client.set(self._format(key), "1", ex=ttl, nx=True))


PersistedLookup = Callable[[str], bool]


def persisted_lookup(hashes: AbstractSet[str]) -> PersistedLookup:
    """Wrap a preloaded set of persisted hashes as a lookup callable."""
    frozen = frozenset(hashes)
    return frozen.__contains__


class Deduplicator:
    """Admits the first posting per canonical hash; later ones raise :class:`DuplicateError`.

    One instance per ingestion run. ``persisted`` enables cross-run dedup against hashes
    already in the catalog.
    """

    def __init__(self, keystore: Optional[KeyStore] = None, *, persisted: Optional[PersistedLookup] = None) -> None:
        self._seen: KeyStore = keystore if keystore is not None else InMemoryKeyStore()
        self._persisted = persisted
        self._lock = asyncio.Lock()
        self.duplicates = 0
        self.persisted_skips = 0
        self.admitted = 0

    async def _store_call(self, method: Callable[[str], bool], key: str) -> bool:
        if isinstance(self._seen, InMemoryKeyStore):
            return method(key)
        # networked keystores (redis-py is synchronous) must not block the event loop
        return await asyncio.to_thread(method, key)

    async def admit(self, posting: NormalizedPosting) -> NormalizedPosting:
        key = posting.canonical_hash
        async with self._lock:
            if await self._store_call(self._seen.has, key):
                self.duplicates += 1
                logger.debug("dedup.duplicate", extra={"canonical_hash": key, "source": posting.source})
                raise DuplicateError(key, reason="batch")
            if self._persisted is not None and self._persisted(key):
                # later copies in the same run count as batch duplicates
                await self._store_call(self._seen.add, key)
                self.persisted_skips += 1
                raise DuplicateError(key, reason="persisted")
            if not await self._store_call(self._seen.add, key):
                # another worker sharing the keystore won the race
                self.duplicates += 1
                raise DuplicateError(key, reason="batch")
            self.admitted += 1
            return posting
