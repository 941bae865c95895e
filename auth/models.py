"""
auth/models.py -- Domain dataclasses for the identity core.

Pattern: Data class (pure data container, near-zero logic). Stores and
services do the work; these types only own the domain shape.

Layer rule: no imports from api/, web/, or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class VerificationState(str, Enum):
    unverified = "unverified"
    pending = "pending"
    verified = "verified"


@dataclass
class Account:
    """A registered identity.

    password_hash is None for OAuth-only accounts (no local credential login).
    external_id is the Google subject id; None until the first OAuth login
    attaches it.

    verification_token_hash holds SHA-256 of the emailed token, never the token
    itself. refresh_token_hash holds the bcrypt hash of the one live refresh
    token; issuing a new one overwrites it.

    Timestamps are ISO 8601 UTC strings, as written by the store.
    """

    email: str
    box_alias: str
    role: str = "artist"  # "artist" or "studio"
    id: str | None = None
    password_hash: str | None = None
    external_id: str | None = None
    email_verified: bool = False
    verification_token_hash: str | None = None
    verification_expires_at: str | None = None
    refresh_token_hash: str | None = None
    display_name: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    business_name: str | None = None
    profile_image_url: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    last_login: str | None = None

    @property
    def verification_state(self) -> VerificationState:
        if self.email_verified:
            return VerificationState.verified
        if self.verification_token_hash is not None:
            return VerificationState.pending
        return VerificationState.unverified

    @property
    def has_local_password(self) -> bool:
        return self.password_hash is not None


@dataclass(frozen=True)
class Principal:
    """The authenticated subject of one request. Never persisted."""

    subject_id: str


@dataclass(frozen=True)
class AliasAllocation:
    """Outcome of one box-alias allocation.

    exhausted is True when every random draw collided and the alias came from
    the fallback derivation, which is not re-checked against the store.
    """

    alias: str
    attempts: int
    exhausted: bool = False


@dataclass(frozen=True)
class VerificationTicket:
    """A freshly issued verification token. token is the only cleartext copy."""

    account_id: str
    email: str
    token: str
    expires_at: str


@dataclass(frozen=True)
class IssuedTokens:
    """Tokens minted after a successful authentication or rotation."""

    account_id: str
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class ExternalIdentity:
    """An identity assertion from the OAuth provider.

    subject and email are attested by the provider; the rest is profile data
    used when a new account is created.
    """

    subject: str
    email: str
    display_name: str | None = None
    given_name: str | None = None
    family_name: str | None = None
    picture: str | None = None


@dataclass(frozen=True)
class LinkResult:
    account: Account
    created: bool = False
    linked: bool = False
