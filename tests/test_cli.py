"""Unit tests for main.py -- operator commands.

Covers:
- verify-email marks a pending account verified
- revoke-sessions clears the stored refresh credential
- show-account prints alias and verification state, and member counts for studios
- Unknown emails exit with status 1
"""

import pytest

from main import build_parser, run


def _run(service, *argv):
    return run(build_parser().parse_args(list(argv)), service)


def test_verify_email(service, make_account, store, capsys):
    account = make_account(email="a@x.com", verified=False)
    assert _run(service, "verify-email", "a@x.com") == 0
    assert store.get_by_id(account.id).email_verified is True
    assert "marked verified" in capsys.readouterr().out


def test_revoke_sessions(service, make_account, store):
    account = make_account(email="a@x.com")
    service.login("a@x.com", "correct-horse")
    assert _run(service, "revoke-sessions", "a@x.com") == 0
    assert store.get_by_id(account.id).refresh_token_hash is None


def test_show_account(service, make_account, capsys):
    account = make_account(email="a@x.com", verified=False)
    assert _run(service, "show-account", "a@x.com") == 0
    out = capsys.readouterr().out
    assert account.box_alias in out
    assert "pending" in out
    assert "password" in out


def test_show_studio_account_counts_members(service, make_account, capsys):
    studio = make_account(email="studio@x.com", role="studio", business_name="Black Anchor")
    service.register(email="artist@x.com", password="secret1", display_name="Artist", studio_code=studio.box_alias)
    assert _run(service, "show-account", "studio@x.com") == 0
    assert "studio members: 1" in capsys.readouterr().out


@pytest.mark.parametrize("command", ["verify-email", "revoke-sessions", "show-account"])
def test_unknown_email(service, command, capsys):
    assert _run(service, command, "ghost@x.com") == 1
    assert "No account" in capsys.readouterr().out


def test_command_required():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])
