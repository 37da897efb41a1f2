from __future__ import annotations

import asyncio
import threading
from typing import Dict

import pytest

from ingestion.errors import DuplicateError
from ingestion.models.domain import NormalizedPosting, SourceKind
from ingestion.services.deduplicator import Deduplicator, InMemoryKeyStore, RedisKeyStore, persisted_lookup


class FakeRedis:
    def __init__(self) -> None:
        self._store: Dict[str, str] = {}

    def exists(self, name: str) -> int:
        return 1 if name in self._store else 0

    def set(self, name: str, value: str, *, ex: int | None = None, nx: bool | None = None):
        if nx:
            if name in self._store:
                return None
            self._store[name] = value
            return True
        self._store[name] = value
        return True


def _posting(canonical_hash: str, source: str = "greenhouse") -> NormalizedPosting:
    return NormalizedPosting(
        source=source,
        source_kind=SourceKind.ATS_FEED,
        url=f"https://jobs.example.com/{canonical_hash}",
        title="Software Engineering Intern",
        company="Acme",
        normalized_title="software engineering intern",
        normalized_company="acme",
        normalized_location="unspecified",
        canonical_hash=canonical_hash,
        relevant_majors=["Computer Science"],
        eligibility_years=["Junior", "Senior"],
        internship_cycle="Summer 2026",
        quality_score=50,
        completeness_score=50,
    )


def test_inmemory_keystore_basic():
    ks = InMemoryKeyStore()
    assert not ks.has("k1")
    assert ks.add("k1")
    assert ks.has("k1")
    assert not ks.add("k1")


def test_redis_keystore_basic():
    client = FakeRedis()
    ks = RedisKeyStore(client, prefix="test", default_ttl_seconds=60)
    assert not ks.has("k1")
    assert ks.add("k1")
    assert ks.has("k1")
    # NX should prevent overwrite and behave idempotently
    assert not ks.add("k1")
    assert client.exists("test:k1") == 1


def test_deduplicator_rejects_repeats_within_run():
    dedup = Deduplicator()

    async def scenario():
        await dedup.admit(_posting("aaa"))
        await dedup.admit(_posting("bbb"))
        with pytest.raises(DuplicateError) as exc:
            await dedup.admit(_posting("aaa", source="lever"))
        return exc.value

    error = asyncio.run(scenario())
    assert error.reason == "batch"
    assert error.canonical_hash == "aaa"
    assert (dedup.admitted, dedup.duplicates, dedup.persisted_skips) == (2, 1, 0)


def test_deduplicator_skips_persisted_hashes():
    dedup = Deduplicator(persisted=persisted_lookup({"old"}))

    async def scenario():
        with pytest.raises(DuplicateError) as exc:
            await dedup.admit(_posting("old"))
        await dedup.admit(_posting("new"))
        return exc.value

    error = asyncio.run(scenario())
    assert error.reason == "persisted"
    assert dedup.persisted_skips == 1
    assert dedup.admitted == 1


def test_shared_redis_keystore_dedups_across_instances():
    client = FakeRedis()
    first = Deduplicator(RedisKeyStore(client, prefix="dedup:run-1"))
    second = Deduplicator(RedisKeyStore(client, prefix="dedup:run-1"))

    asyncio.run(first.admit(_posting("shared")))
    with pytest.raises(DuplicateError):
        asyncio.run(second.admit(_posting("shared")))
    assert second.duplicates == 1


class ThreadRecordingRedis(FakeRedis):
    def __init__(self) -> None:
        super().__init__()
        self.threads: set[int] = set()

    def exists(self, name: str) -> int:
        self.threads.add(threading.get_ident())
        return super().exists(name)

    def set(self, name: str, value: str, *, ex: int | None = None, nx: bool | None = None):
        self.threads.add(threading.get_ident())
        return super().set(name, value, ex=ex, nx=nx)


def test_redis_calls_run_off_the_event_loop_thread():
    client = ThreadRecordingRedis()
    dedup = Deduplicator(RedisKeyStore(client, prefix="dedup:run-2"))

    async def scenario():
        await dedup.admit(_posting("aaa"))
        with pytest.raises(DuplicateError):
            await dedup.admit(_posting("aaa"))
        return threading.get_ident()

    loop_thread = asyncio.run(scenario())
    assert client.threads
    assert loop_thread not in client.threads
    assert dedup.admitted == 1 and dedup.duplicates == 1
