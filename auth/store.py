"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts.

Pattern: Repository + Data Mapper. AccountStore is the repository;
_row_to_account is the mapper. Services and routes never touch SQL directly.

Uniqueness:
  email, box_alias and external_id carry UNIQUE constraints. SQLite treats
  NULLs as distinct, so any number of accounts may have no external_id.
  create_account() translates IntegrityError into ConflictError naming the
  colliding field; the database is the arbiter when two registrations race
  past a service-level pre-check.

Writes are last-writer-wins. The one conditional write is link_external_id(),
which only succeeds while external_id is still NULL.

Invariants enforced here rather than trusted to callers:
  - box_alias is immutable once assigned.
  - email_verified never goes back to False.

Security:
  All queries use bound parameters. Column names in update_account() come
  from a whitelist, never from user input.

Layer rule: no imports from api/, web/, or core/.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, MetaData, String, Table, Text, UniqueConstraint, create_engine, event, or_
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import ConflictError
from auth.models import Account

logger = logging.getLogger("boxid.auth.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", String(32), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("box_alias", String(16), nullable=False, unique=True),
    Column("role", String(30), nullable=False, server_default="artist"),
    Column("password_hash", Text),  # NULL for OAuth-only accounts
    Column("external_id", String(255), unique=True),  # Google subject id
    Column("email_verified", Boolean, nullable=False, server_default="0"),
    Column("verification_token_hash", String(64), index=True),
    Column("verification_expires_at", String(32)),
    Column("refresh_token_hash", Text),
    Column("display_name", String(255)),
    Column("first_name", String(255)),
    Column("last_name", String(255)),
    Column("business_name", String(255)),
    Column("profile_image_url", Text),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32)),
    Column("last_login", String(32)),
)

_studio_members = Table(
    "studio_members",
    _metadata,
    Column("id", String(32), primary_key=True),
    Column("studio_id", String(32), nullable=False),
    Column("artist_id", String(32), nullable=False),
    Column("invite_email", String(255)),
    Column("status", String(20), nullable=False),
    Column("accepted_at", String(32)),
    UniqueConstraint("studio_id", "artist_id"),
)

# Fields update_account() accepts. id, email, box_alias and created_at are
# deliberately absent.
_UPDATABLE_FIELDS = frozenset(
    {
        "role",
        "password_hash",
        "external_id",
        "email_verified",
        "verification_token_hash",
        "verification_expires_at",
        "refresh_token_hash",
        "display_name",
        "first_name",
        "last_name",
        "business_name",
        "profile_image_url",
        "last_login",
    }
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block on writers.

    Set per-connection: SQLite PRAGMAs are not inherited by new pool connections.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account entities.

    Usage:
        store = AccountStore("sqlite:///:memory:")
        account_id = store.create_account(Account(email="a@x.com", box_alias="BOX-ABC234"))
        account = store.get_by_email("a@x.com")
        store.close()
    """

    def __init__(self, db_url: str = "sqlite:///boxid.db") -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and "mode=memory" not in db_url and ":memory:" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_by_id(self, account_id: str) -> Account | None:
        return self._fetch_one(_accounts.c.id == account_id)

    def get_by_email(self, email: str) -> Account | None:
        """Look up by email. The argument is normalized before comparison."""
        return self._fetch_one(_accounts.c.email == normalize_email(email))

    def get_by_alias(self, alias: str) -> Account | None:
        return self._fetch_one(_accounts.c.box_alias == alias)

    def get_by_external_id(self, external_id: str) -> Account | None:
        return self._fetch_one(_accounts.c.external_id == external_id)

    def get_by_verification_token(self, token_hash: str) -> Account | None:
        return self._fetch_one(_accounts.c.verification_token_hash == token_hash)

    def find_by_email_or_external_id(self, email: str, external_id: str) -> Account | None:
        """Return the account matching either the email or the external id.

        When both match different rows, the external-id match wins: it is the
        identity the provider already vouched for on a previous login.
        """
        with self.engine.connect() as conn:
            rows = conn.execute(
                _accounts.select().where(
                    or_(_accounts.c.email == normalize_email(email), _accounts.c.external_id == external_id)
                )
            ).fetchall()
        if not rows:
            return None
        for row in rows:
            if row.external_id == external_id:
                return _row_to_account(row)
        return _row_to_account(rows[0])

    def _fetch_one(self, clause) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(clause)).fetchone()
        return _row_to_account(row) if row is not None else None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_account(self, account: Account) -> str:
        """Insert a new account and return its generated id.

        Raises ConflictError(field=...) when email, box_alias or external_id
        already exists. Nothing is written in that case.
        """
        account_id = uuid.uuid4().hex
        now = _now_iso()
        email = normalize_email(account.email)
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    _accounts.insert().values(
                        id=account_id,
                        email=email,
                        box_alias=account.box_alias,
                        role=account.role,
                        password_hash=account.password_hash,
                        external_id=account.external_id,
                        email_verified=account.email_verified,
                        verification_token_hash=account.verification_token_hash,
                        verification_expires_at=account.verification_expires_at,
                        refresh_token_hash=account.refresh_token_hash,
                        display_name=account.display_name,
                        first_name=account.first_name,
                        last_name=account.last_name,
                        business_name=account.business_name,
                        profile_image_url=account.profile_image_url,
                        created_at=now,
                        updated_at=now,
                    )
                )
        except IntegrityError as exc:
            field = self._conflicting_field(email, account.box_alias, account.external_id)
            logger.info("Account insert rejected: duplicate %s", field)
            raise ConflictError(f"An account with that {field} already exists.", field=field) from exc
        return account_id

    def _conflicting_field(self, email: str, alias: str, external_id: str | None) -> str:
        """Work out which UNIQUE constraint an insert tripped.

        The driver's IntegrityError text is not portable across backends, so
        ask the table instead.
        """
        if self.get_by_email(email) is not None:
            return "email"
        if external_id is not None and self.get_by_external_id(external_id) is not None:
            return "external_id"
        if self.get_by_alias(alias) is not None:
            return "box_alias"
        return "email"

    def update_account(self, account_id: str, **fields) -> bool:
        """Update whitelisted fields on an account.

        Raises ValueError for unknown fields, for any attempt to change
        box_alias, and for email_verified=False. Returns True if a row was
        updated, False if account_id was not found.
        """
        if "box_alias" in fields:
            raise ValueError("box_alias is immutable once assigned")
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown account fields: {sorted(unknown)!r}")
        if "email_verified" in fields and fields["email_verified"] is not True:
            raise ValueError("email_verified can only transition to True")
        if not fields:
            return False
        fields["updated_at"] = _now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(_accounts.update().where(_accounts.c.id == account_id).values(**fields))
        return result.rowcount > 0

    def link_external_id(self, account_id: str, external_id: str) -> bool:
        """Attach an external id if the account has none yet.

        Returns False when another request linked the account first or when
        the external id already belongs to a different account; the caller
        re-reads and proceeds with whatever is stored.
        """
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    _accounts.update()
                    .where((_accounts.c.id == account_id) & (_accounts.c.external_id.is_(None)))
                    .values(external_id=external_id, updated_at=_now_iso())
                )
        except IntegrityError:
            return False
        return result.rowcount > 0

    def update_last_login(self, account_id: str) -> None:
        with self.engine.begin() as conn:
            conn.execute(_accounts.update().where(_accounts.c.id == account_id).values(last_login=_now_iso()))

    # ------------------------------------------------------------------
    # Studio membership
    # ------------------------------------------------------------------

    def add_studio_member(self, studio_id: str, artist_id: str, invite_email: str) -> None:
        """Record an artist joining a studio at registration time."""
        with self.engine.begin() as conn:
            conn.execute(
                _studio_members.insert().values(
                    id=uuid.uuid4().hex,
                    studio_id=studio_id,
                    artist_id=artist_id,
                    invite_email=normalize_email(invite_email),
                    status="accepted",
                    accepted_at=_now_iso(),
                )
            )

    def list_studio_members(self, studio_id: str) -> list[str]:
        """Return artist ids that joined the given studio."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _studio_members.select().where(_studio_members.c.studio_id == studio_id)
            ).fetchall()
        return [r.artist_id for r in rows]

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(_accounts.select().limit(1))
        except Exception:
            logger.exception("Database ping failed")
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        email=row.email,
        box_alias=row.box_alias,
        role=row.role,
        password_hash=row.password_hash,
        external_id=row.external_id,
        email_verified=bool(row.email_verified),
        verification_token_hash=row.verification_token_hash,
        verification_expires_at=row.verification_expires_at,
        refresh_token_hash=row.refresh_token_hash,
        display_name=row.display_name,
        first_name=row.first_name,
        last_name=row.last_name,
        business_name=row.business_name,
        profile_image_url=row.profile_image_url,
        created_at=row.created_at,
        updated_at=row.updated_at,
        last_login=row.last_login,
    )
