"""Unit tests for auth/store.py -- AccountStore persistence.

Covers:
- create_account() returns an id and stores a normalized email
- Duplicate email, box alias and external id raise ConflictError naming the field
- update_account() refuses box_alias changes, unknown fields and un-verifying
- link_external_id() only succeeds while the account has no external id
- find_by_email_or_external_id() prefers the external-id match
- Studio membership rows
"""

import pytest

from auth.errors import ConflictError
from auth.models import Account, VerificationState
from auth.store import AccountStore


@pytest.fixture
def mem_store():
    s = AccountStore("sqlite:///:memory:")
    yield s
    s.close()


def _account(email="a@x.com", alias="BOX-AAAAAA", **kwargs) -> Account:
    return Account(email=email, box_alias=alias, **kwargs)


class TestCreate:
    def test_create_and_fetch(self, mem_store):
        account_id = mem_store.create_account(_account(email="  Artist@Example.COM "))
        account = mem_store.get_by_id(account_id)
        assert account.email == "artist@example.com"
        assert account.box_alias == "BOX-AAAAAA"
        assert account.role == "artist"
        assert account.email_verified is False
        assert account.created_at is not None
        assert mem_store.get_by_email("ARTIST@example.com").id == account_id

    def test_ids_are_unique(self, mem_store):
        first = mem_store.create_account(_account())
        second = mem_store.create_account(_account(email="b@x.com", alias="BOX-BBBBBB"))
        assert first != second

    @pytest.mark.parametrize(
        "second, field",
        [
            (dict(email="A@x.com", alias="BOX-BBBBBB"), "email"),
            (dict(email="b@x.com", alias="BOX-AAAAAA"), "box_alias"),
            (dict(email="b@x.com", alias="BOX-BBBBBB", external_id="g-1"), "external_id"),
        ],
    )
    def test_duplicates_raise_conflict(self, mem_store, second, field):
        mem_store.create_account(_account(external_id="g-1"))
        with pytest.raises(ConflictError) as exc_info:
            mem_store.create_account(_account(**second))
        assert exc_info.value.field == field

    def test_many_accounts_without_external_id(self, mem_store):
        mem_store.create_account(_account())
        mem_store.create_account(_account(email="b@x.com", alias="BOX-BBBBBB"))
        assert mem_store.get_by_email("b@x.com").external_id is None


class TestUpdate:
    def test_update_whitelisted_fields(self, mem_store):
        account_id = mem_store.create_account(_account())
        assert mem_store.update_account(account_id, display_name="Ink Queen", refresh_token_hash="h")
        account = mem_store.get_by_id(account_id)
        assert account.display_name == "Ink Queen"
        assert account.refresh_token_hash == "h"

    def test_update_missing_account_returns_false(self, mem_store):
        assert mem_store.update_account("nope", display_name="x") is False

    def test_box_alias_is_immutable(self, mem_store):
        account_id = mem_store.create_account(_account())
        with pytest.raises(ValueError):
            mem_store.update_account(account_id, box_alias="BOX-CCCCCC")
        assert mem_store.get_by_id(account_id).box_alias == "BOX-AAAAAA"

    def test_unknown_field_rejected(self, mem_store):
        account_id = mem_store.create_account(_account())
        with pytest.raises(ValueError):
            mem_store.update_account(account_id, email="evil@x.com")

    def test_verified_never_goes_back(self, mem_store):
        account_id = mem_store.create_account(_account())
        mem_store.update_account(account_id, email_verified=True)
        with pytest.raises(ValueError):
            mem_store.update_account(account_id, email_verified=False)
        assert mem_store.get_by_id(account_id).verification_state is VerificationState.verified

    def test_update_last_login(self, mem_store):
        account_id = mem_store.create_account(_account())
        mem_store.update_last_login(account_id)
        assert mem_store.get_by_id(account_id).last_login is not None


class TestExternalIdLinking:
    def test_link_only_while_unlinked(self, mem_store):
        account_id = mem_store.create_account(_account())
        assert mem_store.link_external_id(account_id, "g-1") is True
        assert mem_store.link_external_id(account_id, "g-2") is False
        assert mem_store.get_by_id(account_id).external_id == "g-1"

    def test_link_taken_external_id_returns_false(self, mem_store):
        mem_store.create_account(_account(external_id="g-1"))
        other_id = mem_store.create_account(_account(email="b@x.com", alias="BOX-BBBBBB"))
        assert mem_store.link_external_id(other_id, "g-1") is False
        assert mem_store.get_by_id(other_id).external_id is None

    def test_external_id_match_wins_over_email(self, mem_store):
        by_email = mem_store.create_account(_account(email="a@x.com"))
        by_subject = mem_store.create_account(_account(email="b@x.com", alias="BOX-BBBBBB", external_id="g-1"))
        assert mem_store.find_by_email_or_external_id("a@x.com", "g-1").id == by_subject
        assert mem_store.find_by_email_or_external_id("a@x.com", "g-9").id == by_email
        assert mem_store.find_by_email_or_external_id("z@x.com", "g-9") is None


class TestStudioMembers:
    def test_add_and_list(self, mem_store):
        studio_id = mem_store.create_account(_account(email="studio@x.com", role="studio"))
        artist_id = mem_store.create_account(_account(email="b@x.com", alias="BOX-BBBBBB"))
        mem_store.add_studio_member(studio_id, artist_id, "b@x.com")
        assert mem_store.list_studio_members(studio_id) == [artist_id]


def test_ping(mem_store):
    assert mem_store.ping() is True
