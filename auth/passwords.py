"""
auth/passwords.py -- bcrypt hashing for passwords and refresh tokens at rest.

Using bcrypt directly rather than passlib[bcrypt]: passlib's wrap-bug
detection feeds bcrypt a secret longer than 72 bytes, which bcrypt 4.x
rejects outright.

bcrypt only looks at the first 72 bytes of its input and current releases
raise on anything longer. Passwords are truncated to 72 bytes (the API caps
them at 255 chars). Refresh tokens are JWTs, well over 72 bytes, and the
per-issuance tid sits past the cut-off; hash_token() therefore hashes the
token's SHA-256 hex digest so the whole token contributes.

Layer rule: stdlib + bcrypt only.
"""

from __future__ import annotations

import hashlib
from functools import cached_property

import bcrypt

_BCRYPT_MAX_BYTES = 72


def _secret_bytes(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def _token_digest(token: str) -> bytes:
    return hashlib.sha256(token.encode("utf-8")).hexdigest().encode("ascii")


class PasswordHasher:
    """Salted, adaptive one-way hashing with a configurable cost factor."""

    def __init__(self, rounds: int = 10) -> None:
        self.rounds = rounds

    def hash(self, plain: str) -> str:
        return bcrypt.hashpw(_secret_bytes(plain), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plain: str, hashed: str) -> bool:
        """Return True if plain matches hashed. Malformed hashes count as a mismatch."""
        try:
            return bcrypt.checkpw(_secret_bytes(plain), hashed.encode("utf-8"))
        except (ValueError, TypeError):
            return False

    def hash_token(self, token: str) -> str:
        return bcrypt.hashpw(_token_digest(token), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify_token(self, token: str, hashed: str) -> bool:
        try:
            return bcrypt.checkpw(_token_digest(token), hashed.encode("utf-8"))
        except (ValueError, TypeError):
            return False

    @cached_property
    def dummy_hash(self) -> str:
        """Hash compared against when the account does not exist [C1].

        Running bcrypt on the unknown-email path keeps its response time in
        line with the wrong-password path, so timing does not reveal which
        emails are registered.
        """
        return self.hash("boxid_timing_dummy")

    def equalize(self, plain: str) -> None:
        self.verify(plain, self.dummy_hash)
