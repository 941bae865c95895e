"""
auth/aliases.py -- Box alias allocation.

A box alias is the public, shareable handle of an account: "BOX-" plus six
characters from an alphabet without the look-alike glyphs 0/O and 1/I.

Allocation draws a random candidate and checks it against the store, up to
max_attempts times. If every draw collides, the alias is derived from fresh
random bytes mapped onto the same alphabet and returned without a further
check, so allocation always terminates. 32^6 (about 10^9) candidates make a
fallback collision unlikely; the UNIQUE constraint on box_alias still rejects
one if it happens.

The check-then-insert is not atomic. Two concurrent registrations can draw
the same free alias; the database constraint decides and the loser surfaces
a ConflictError.
"""

from __future__ import annotations

import logging
import secrets
from typing import Protocol

from auth.models import Account, AliasAllocation

logger = logging.getLogger("boxid.auth.aliases")

ALIAS_PREFIX = "BOX-"
ALIAS_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
ALIAS_LENGTH = 6


class AliasLookup(Protocol):
    def get_by_alias(self, alias: str) -> Account | None: ...


def draw_alias() -> str:
    return ALIAS_PREFIX + "".join(secrets.choice(ALIAS_ALPHABET) for _ in range(ALIAS_LENGTH))


def derive_fallback_alias() -> str:
    # 256 is a multiple of len(ALIAS_ALPHABET), so the modulo is unbiased.
    raw = secrets.token_bytes(ALIAS_LENGTH)
    return ALIAS_PREFIX + "".join(ALIAS_ALPHABET[b % len(ALIAS_ALPHABET)] for b in raw)


def is_valid_alias(alias: str) -> bool:
    if not alias.startswith(ALIAS_PREFIX):
        return False
    body = alias[len(ALIAS_PREFIX) :]
    return len(body) == ALIAS_LENGTH and all(c in ALIAS_ALPHABET for c in body)


class AliasGenerator:
    """Allocates aliases that are unique against the store at check time."""

    def __init__(self, store: AliasLookup, max_attempts: int = 10) -> None:
        self.store = store
        self.max_attempts = max_attempts

    def allocate(self) -> AliasAllocation:
        for attempt in range(1, self.max_attempts + 1):
            candidate = draw_alias()
            if self.store.get_by_alias(candidate) is None:
                return AliasAllocation(alias=candidate, attempts=attempt)
        alias = derive_fallback_alias()
        logger.warning("Alias draws exhausted after %d attempts; using fallback derivation", self.max_attempts)
        return AliasAllocation(alias=alias, attempts=self.max_attempts, exhausted=True)
