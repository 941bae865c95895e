"""Unit tests for auth/aliases.py -- box alias allocation.

Covers:
- Drawn aliases have the BOX- prefix and six characters from the safe alphabet
- Collisions are retried; the attempt count is reported
- Exhausting every attempt falls back to a derived alias instead of failing
- Concurrent allocations against a shared store stay distinct
"""

import threading

import pytest

from auth.aliases import ALIAS_ALPHABET, AliasGenerator, derive_fallback_alias, draw_alias, is_valid_alias
from auth.models import Account


class _CollidingStore:
    """Alias lookup that reports the first `collisions` candidates as taken."""

    def __init__(self, collisions: int) -> None:
        self.collisions = collisions
        self.calls = 0

    def get_by_alias(self, alias: str):
        self.calls += 1
        if self.calls <= self.collisions:
            return Account(email="taken@example.com", box_alias=alias)
        return None


class _RecordingStore:
    """Thread-safe alias set standing in for the accounts table.

    The first `forced_collisions` lookups report a collision whatever the alias.
    """

    def __init__(self, forced_collisions: int = 0) -> None:
        self.taken: set[str] = set()
        self.forced_collisions = forced_collisions
        self.lock = threading.Lock()

    def get_by_alias(self, alias: str):
        with self.lock:
            if self.forced_collisions > 0:
                self.forced_collisions -= 1
                return Account(email="x@example.com", box_alias=alias)
            return Account(email="x@example.com", box_alias=alias) if alias in self.taken else None

    def claim(self, alias: str) -> bool:
        with self.lock:
            if alias in self.taken:
                return False
            self.taken.add(alias)
            return True


def test_drawn_alias_format():
    for _ in range(50):
        alias = draw_alias()
        assert alias.startswith("BOX-")
        assert len(alias) == 10
        assert is_valid_alias(alias)


def test_alphabet_excludes_lookalikes():
    for glyph in "01OI":
        assert glyph not in ALIAS_ALPHABET


def test_fallback_alias_uses_same_alphabet():
    assert is_valid_alias(derive_fallback_alias())


def test_is_valid_alias_rejects_bad_shapes():
    assert not is_valid_alias("BOX-ABC")
    assert not is_valid_alias("BOX-ABCDE0")
    assert not is_valid_alias("XYZ-ABCDEF")


def test_first_free_candidate_wins():
    allocation = AliasGenerator(_CollidingStore(collisions=0)).allocate()
    assert allocation.attempts == 1
    assert not allocation.exhausted


def test_collisions_are_retried():
    store = _CollidingStore(collisions=3)
    allocation = AliasGenerator(store, max_attempts=10).allocate()
    assert allocation.attempts == 4
    assert store.calls == 4
    assert not allocation.exhausted
    assert is_valid_alias(allocation.alias)


def test_exhaustion_falls_back():
    store = _CollidingStore(collisions=1000)
    allocation = AliasGenerator(store, max_attempts=5).allocate()
    assert allocation.exhausted
    assert allocation.attempts == 5
    assert store.calls == 5
    assert is_valid_alias(allocation.alias)


@pytest.mark.parametrize("forced_collisions", [0, 15, 400])
def test_concurrent_allocations_are_distinct(forced_collisions):
    """Eight threads, some draws forced to collide: every allocation terminates, none repeat."""
    store = _RecordingStore(forced_collisions=forced_collisions)
    generator = AliasGenerator(store, max_attempts=10)
    results: list[str] = []
    results_lock = threading.Lock()

    def worker():
        for _ in range(25):
            alias = generator.allocate().alias
            assert store.claim(alias)
            with results_lock:
                results.append(alias)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(results) == 200
    assert len(set(results)) == 200
