"""
auth/linking.py -- Resolve an OAuth identity assertion to a local account.

Link-on-first-use:
  1. Look for an account whose external_id or email matches the assertion.
  2. None -> create one: verified (the provider attests the email), default
     role, a fresh box alias, profile fields from the provider.
  3. Found without an external id -> attach it, backfill a missing profile
     image, mark the email verified.
  4. Found with the same external id -> nothing to do.
  5. Found with a different external id -> leave it alone. An existing link
     is never overwritten.

Races: two first logins for the same person can both miss in step 1. The
loser's insert hits a UNIQUE constraint; instead of failing it re-reads and
goes through steps 3-5. Attaching uses a conditional update (only while
external_id IS NULL) so two concurrent links cannot clobber each other.

Open question, kept as-is: step 3 trusts an email match against any local
account, including one registered (and possibly never verified) by someone
else before the real owner's first OAuth login.
"""

from __future__ import annotations

import logging

from auth.aliases import AliasGenerator
from auth.errors import ConflictError
from auth.models import Account, ExternalIdentity, LinkResult
from auth.store import AccountStore, normalize_email

logger = logging.getLogger("boxid.auth.linking")

DEFAULT_ROLE = "artist"


def _split_name(identity: ExternalIdentity) -> tuple[str, str]:
    display = identity.display_name or ""
    first = identity.given_name or (display.split(" ")[0] if display else "")
    last = identity.family_name or " ".join(display.split(" ")[1:])
    return first, last


class OAuthLinker:
    def __init__(self, store: AccountStore, aliases: AliasGenerator, default_role: str = DEFAULT_ROLE) -> None:
        self.store = store
        self.aliases = aliases
        self.default_role = default_role

    def link(self, identity: ExternalIdentity) -> LinkResult:
        account = self.store.find_by_email_or_external_id(identity.email, identity.subject)
        if account is None:
            try:
                return LinkResult(account=self._create(identity), created=True, linked=True)
            except ConflictError as exc:
                # A concurrent first login created it between our lookup and insert.
                account = self.store.find_by_email_or_external_id(identity.email, identity.subject)
                if account is None:
                    raise
                logger.info("OAuth account creation lost a race (%s); merging instead", exc.field)
        return self._merge(account, identity)

    def _create(self, identity: ExternalIdentity) -> Account:
        first, last = _split_name(identity)
        email = normalize_email(identity.email)
        allocation = self.aliases.allocate()
        account = Account(
            email=email,
            box_alias=allocation.alias,
            role=self.default_role,
            external_id=identity.subject,
            email_verified=True,
            display_name=identity.display_name or email,
            first_name=first,
            last_name=last,
            profile_image_url=identity.picture,
        )
        account.id = self.store.create_account(account)
        logger.info("Created account %s from OAuth identity", account.id)
        return self.store.get_by_id(account.id)

    def _merge(self, account: Account, identity: ExternalIdentity) -> LinkResult:
        if account.external_id == identity.subject:
            return LinkResult(account=account)

        if account.external_id is not None:
            logger.warning(
                "Account %s is already linked to a different external id; leaving the link unchanged",
                account.id,
            )
            return LinkResult(account=account)

        linked = self.store.link_external_id(account.id, identity.subject)
        if not linked:
            # A concurrent request attached an id first; only touch the account if it was ours.
            account = self.store.get_by_id(account.id)
            if account.external_id != identity.subject:
                logger.warning(
                    "Account %s was linked to a different external id concurrently; leaving it unchanged",
                    account.id,
                )
                return LinkResult(account=account)

        fields: dict = {}
        if not account.email_verified:
            fields.update(email_verified=True, verification_token_hash=None, verification_expires_at=None)
        if not account.profile_image_url and identity.picture:
            fields["profile_image_url"] = identity.picture
        if fields:
            self.store.update_account(account.id, **fields)
        if linked:
            logger.info("Linked OAuth identity to existing account %s", account.id)
        return LinkResult(account=self.store.get_by_id(account.id), linked=linked)
