"""
auth/verification.py -- Email ownership verification.

States (Account.verification_state):
  unverified -- no token outstanding (only reachable for legacy rows)
  pending    -- token + expiry stored; registration lands here
  verified   -- terminal; nothing moves an account back

One live token per account: issuing a new token overwrites the previous one,
so an older link stops working the moment a resend happens. A successful
verification clears the token; that, not the expiry, is what makes a link
single-use.

The database stores SHA-256 of the token. The cleartext exists only in the
VerificationTicket handed to the mailer.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from auth.errors import NotFoundError, ValidationError, VerificationExpiredError
from auth.mailer import Mailer
from auth.models import Account, VerificationTicket
from auth.store import AccountStore

logger = logging.getLogger("boxid.auth.verification")

VERIFY_PATH = "/verify-email"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def hash_verification_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def new_verification_token() -> str:
    return secrets.token_hex(32)


class VerificationWorkflow:
    def __init__(
        self,
        store: AccountStore,
        mailer: Mailer,
        ttl_hours: int = 24,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.store = store
        self.mailer = mailer
        self.ttl = timedelta(hours=ttl_hours)
        self._clock = clock

    def new_ticket_fields(self) -> tuple[str, dict]:
        """Return (token, account fields) for a fresh pending state.

        Used by registration, which writes the fields as part of the insert.
        """
        token = new_verification_token()
        expires_at = (self._clock() + self.ttl).isoformat()
        return token, {"verification_token_hash": hash_verification_token(token), "verification_expires_at": expires_at}

    def issue(self, account: Account) -> VerificationTicket:
        """Store a new token on the account, replacing any previous one."""
        token, fields = self.new_ticket_fields()
        self.store.update_account(account.id, **fields)
        return VerificationTicket(
            account_id=account.id,
            email=account.email,
            token=token,
            expires_at=fields["verification_expires_at"],
        )

    def resend(self, email: str) -> VerificationTicket | None:
        """Issue a new token for a pending account.

        Returns None, without raising, when the email is unknown or already
        verified; callers reply identically either way.
        """
        account = self.store.get_by_email(email)
        if account is None or account.email_verified:
            return None
        return self.issue(account)

    def verify(self, token: str) -> Account:
        """Consume a token and mark its account verified.

        Raises ValidationError for a blank token, NotFoundError when no
        account holds it, VerificationExpiredError once past expiry. Failed
        attempts change nothing.
        """
        token = (token or "").strip()
        if not token:
            raise ValidationError("Invalid verification link")
        account = self.store.get_by_verification_token(hash_verification_token(token))
        if account is None:
            raise NotFoundError("Invalid or expired verification link")
        if self._is_expired(account.verification_expires_at):
            raise VerificationExpiredError("Verification link has expired")

        self.store.update_account(
            account.id,
            email_verified=True,
            verification_token_hash=None,
            verification_expires_at=None,
        )
        logger.info("Email verified for account %s", account.id)
        return self.store.get_by_id(account.id)

    def _is_expired(self, expires_at: str | None) -> bool:
        if not expires_at:
            return False
        deadline = datetime.fromisoformat(expires_at)
        if deadline.tzinfo is None:
            deadline = deadline.replace(tzinfo=timezone.utc)
        return self._clock() > deadline

    def send(self, ticket: VerificationTicket, base_url: str) -> None:
        """Deliver the verification link. Raises UpstreamError on transport failure."""
        url = f"{base_url.rstrip('/')}{VERIFY_PATH}?token={ticket.token}"
        self.mailer.send_verification(ticket.email, url)
