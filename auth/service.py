"""
auth/service.py -- Account lifecycle: registration, login, refresh, logout.

AuthService is the only place the token rules live. Routes translate HTTP
into calls here and results back into cookies and JSON; they do not inspect
hashes or decode tokens themselves.

Refresh rotation:
  Each account stores the bcrypt hash of exactly one refresh token. A refresh
  call must present that token; on success a new token replaces the hash.
  A token that has been rotated away no longer matches and is rejected, so a
  stolen token dies as soon as the legitimate holder refreshes.

  Consequences accepted by this design:
    - Two devices signed in to one account invalidate each other on their
      next refresh. A per-session token table keyed by (account id, session
      id) would lift this; it is not implemented.
    - read/compare/rewrite is not transactional. Two concurrent refreshes
      can both pass the compare; the last write wins and the other caller's
      new token is already dead.

Error policy: every token failure becomes AuthenticationError with the same
generic message; every credential failure becomes AuthenticationError with
INVALID_CREDENTIALS.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from auth.aliases import AliasGenerator, is_valid_alias
from auth.errors import (
    INVALID_CREDENTIALS,
    INVALID_REFRESH_TOKEN,
    AuthenticationError,
    ConflictError,
    IncorrectPasswordError,
    NeedsVerificationError,
    NotFoundError,
    PasswordNotSetError,
    ValidationError,
)
from auth.linking import OAuthLinker
from auth.mailer import Mailer
from auth.models import Account, ExternalIdentity, IssuedTokens, LinkResult, Principal, VerificationTicket
from auth.passwords import PasswordHasher
from auth.store import AccountStore, normalize_email
from auth.tokens import TokenService
from auth.verification import VerificationWorkflow
from core.config import Settings

logger = logging.getLogger("boxid.auth")

SELF_REGISTRATION_ROLES = ("artist", "studio")


@dataclass(frozen=True)
class Registration:
    account: Account
    ticket: VerificationTicket
    studio: Account | None = None

    @property
    def message(self) -> str:
        if self.studio is not None:
            name = self.studio.business_name or self.studio.display_name
            return f"Account created and joined {name}'s network. Please check your email to verify."
        return "Please check your email to verify your account"


class AuthService:
    """Facade over the identity components. One instance per process."""

    def __init__(self, settings: Settings, store: AccountStore, mailer: Mailer) -> None:
        self.settings = settings
        self.store = store
        self.hasher = PasswordHasher(rounds=settings.bcrypt_rounds)
        self.tokens = TokenService(settings)
        self.aliases = AliasGenerator(store, max_attempts=settings.alias_max_attempts)
        self.verification = VerificationWorkflow(store, mailer, ttl_hours=settings.verification_ttl_hours)
        self.linker = OAuthLinker(store, self.aliases)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(
        self,
        email: str,
        password: str,
        display_name: str,
        role: str | None = None,
        first_name: str | None = None,
        last_name: str | None = None,
        business_name: str | None = None,
        studio_code: str | None = None,
    ) -> Registration:
        """Create an unverified account with a pending verification token.

        Raises ValidationError for bad input or an invalid studio code and
        ConflictError("Email already registered") for a duplicate email,
        including when a concurrent registration wins the insert.
        """
        email = normalize_email(email)
        role = role or "artist"
        if not email or not password:
            raise ValidationError("Email and password are required")
        if "@" not in email:
            raise ValidationError("A valid email address is required")
        if not (display_name or "").strip():
            raise ValidationError("Name is required")
        if role not in SELF_REGISTRATION_ROLES:
            raise ValidationError("Invalid role")
        if role == "studio" and not (business_name or "").strip():
            raise ValidationError("Business name is required for studios")
        if len(password) < self.settings.password_min_length:
            raise ValidationError(f"Password must be at least {self.settings.password_min_length} characters")

        if self.store.get_by_email(email) is not None:
            raise ConflictError("Email already registered", field="email")

        studio = None
        if studio_code and role == "artist":
            code = studio_code.strip().upper()
            studio = self.store.get_by_alias(code) if is_valid_alias(code) else None
            if studio is None or studio.role != "studio":
                raise ValidationError("Invalid studio code", code="invalid_studio_code")

        token, verification_fields = self.verification.new_ticket_fields()
        account = Account(
            email=email,
            box_alias=self.aliases.allocate().alias,
            role=role,
            password_hash=self.hasher.hash(password),
            email_verified=False,
            display_name=display_name.strip(),
            first_name=first_name or None,
            last_name=last_name or None,
            business_name=business_name.strip() if role == "studio" and business_name else None,
            **verification_fields,
        )
        try:
            account.id = self.store.create_account(account)
        except ConflictError as exc:
            if exc.field == "email":
                raise ConflictError("Email already registered", field="email") from exc
            raise

        if studio is not None:
            self.store.add_studio_member(studio.id, account.id, email)

        logger.info("Registered account %s (role=%s)", account.id, role)
        ticket = VerificationTicket(
            account_id=account.id,
            email=email,
            token=token,
            expires_at=verification_fields["verification_expires_at"],
        )
        return Registration(account=self.store.get_by_id(account.id), ticket=ticket, studio=studio)

    def mark_verified(self, email: str) -> Account:
        """Force an account to verified without a token (development helper)."""
        account = self.store.get_by_email(email)
        if account is None:
            raise NotFoundError("User not found")
        self.store.update_account(
            account.id,
            email_verified=True,
            verification_token_hash=None,
            verification_expires_at=None,
        )
        return self.store.get_by_id(account.id)

    # ------------------------------------------------------------------
    # Login and post-authentication issuance
    # ------------------------------------------------------------------

    def authenticate(self, email: str, password: str) -> Account:
        """Check local credentials with timing equalization [C1].

        bcrypt runs whether or not the email exists. Wrong email, wrong
        password and OAuth-only account all raise the same
        AuthenticationError. Correct credentials on an unverified account
        raise NeedsVerificationError. No state is written here.
        """
        if not email or not password:
            raise ValidationError("Email and password are required")
        account = self.store.get_by_email(email)
        if account is None or account.password_hash is None:
            self.hasher.equalize(password)
            raise AuthenticationError(INVALID_CREDENTIALS, code="bad_credentials")
        if not self.hasher.verify(password, account.password_hash):
            raise AuthenticationError(INVALID_CREDENTIALS, code="bad_credentials")
        if not account.email_verified:
            raise NeedsVerificationError(account.email)
        return account

    def issue_tokens(self, account: Account) -> IssuedTokens:
        """Mint a refresh token (replacing any stored one) and an access token.

        Shared by password login, OAuth callback and rotation.
        """
        refresh_token = self.tokens.create_refresh_token(account.id)
        self.store.update_account(account.id, refresh_token_hash=self.hasher.hash_token(refresh_token))
        return IssuedTokens(
            account_id=account.id,
            access_token=self.tokens.create_access_token(account.id),
            refresh_token=refresh_token,
        )

    def login(self, email: str, password: str) -> tuple[Account, IssuedTokens]:
        account = self.authenticate(email, password)
        tokens = self.issue_tokens(account)
        self.store.update_last_login(account.id)
        logger.info("Password login for account %s", account.id)
        return account, tokens

    def login_external(self, identity: ExternalIdentity) -> tuple[LinkResult, IssuedTokens]:
        """Resolve an OAuth assertion, then issue tokens exactly as login does."""
        result = self.linker.link(identity)
        tokens = self.issue_tokens(result.account)
        self.store.update_last_login(result.account.id)
        logger.info(
            "OAuth login for account %s (created=%s, linked=%s)",
            result.account.id,
            result.created,
            result.linked,
        )
        return result, tokens

    # ------------------------------------------------------------------
    # Refresh / logout
    # ------------------------------------------------------------------

    def refresh(self, refresh_token: str | None) -> IssuedTokens:
        if not refresh_token:
            raise AuthenticationError("No refresh token")
        payload = self.tokens.decode_refresh_token(refresh_token)
        if payload is None:
            raise AuthenticationError(INVALID_REFRESH_TOKEN)

        account = self.store.get_by_id(payload["sub"])
        if account is None or not account.refresh_token_hash:
            raise AuthenticationError(INVALID_REFRESH_TOKEN)
        if not self.hasher.verify_token(refresh_token, account.refresh_token_hash):
            logger.warning("Refresh token mismatch for account %s (superseded or forged)", account.id)
            raise AuthenticationError(INVALID_REFRESH_TOKEN)

        return self.issue_tokens(account)

    def logout(self, refresh_token: str | None) -> None:
        """Clear the stored refresh hash if the token identifies an account.

        Undecodable or missing tokens are ignored; logout always succeeds.
        """
        if not refresh_token:
            return
        payload = self.tokens.decode_refresh_token(refresh_token)
        if payload is None:
            return
        if self.store.update_account(payload["sub"], refresh_token_hash=None):
            logger.info("Refresh credential cleared for account %s", payload["sub"])

    def revoke_sessions(self, email: str) -> bool:
        account = self.store.get_by_email(email)
        if account is None:
            return False
        return self.store.update_account(account.id, refresh_token_hash=None)

    # ------------------------------------------------------------------
    # Account self-service
    # ------------------------------------------------------------------

    def get_account(self, principal: Principal) -> Account:
        account = self.store.get_by_id(principal.subject_id)
        if account is None:
            raise NotFoundError("User not found")
        return account

    def change_password(self, principal: Principal, current_password: str, new_password: str) -> None:
        """Replace the local password.

        PasswordNotSetError for OAuth-only accounts and IncorrectPasswordError
        for a wrong current password are distinct on purpose: the first tells
        the user to sign in with Google, the second to retype.
        """
        if not current_password or not new_password:
            raise ValidationError("Current and new password are required")
        if len(new_password) < self.settings.password_min_length:
            raise ValidationError(f"New password must be at least {self.settings.password_min_length} characters")
        account = self.get_account(principal)
        if account.password_hash is None:
            raise PasswordNotSetError("Account uses OAuth login - password cannot be changed")
        if not self.hasher.verify(current_password, account.password_hash):
            raise IncorrectPasswordError("Current password is incorrect")
        self.store.update_account(account.id, password_hash=self.hasher.hash(new_password))
        logger.info("Password changed for account %s", account.id)

    def update_profile(self, principal: Principal, display_name: str | None) -> Account:
        account = self.get_account(principal)
        name = (display_name or "").strip() or None
        self.store.update_account(account.id, display_name=name, first_name=name)
        return self.store.get_by_id(account.id)
