"""
Credential linking tests
"""

import pytest

from core.drip_api import DripAPIError
from features.linking import CredentialLinker, LinkOutcome

WALLET = "0x" + "ab" * 20


@pytest.fixture
def linker(engine, points, users):
    return CredentialLinker(engine, points, users)


def test_link_new_credential(linker, users):
    user_id = users.create_user(email="fan@example.com")

    result = linker.link_credential(user_id, "wallet", WALLET.upper().replace("0X", "0x"))
    assert result.outcome is LinkOutcome.LINKED
    assert result.identifier == WALLET

    credentials = linker.list_credentials(user_id)
    assert [(c['credential_type'], c['identifier']) for c in credentials] == [("wallet", WALLET)]
    assert credentials[0]['verified'] is True


def test_credential_has_one_owner(linker, users):
    u1 = users.create_user()
    u2 = users.create_user()
    linker.link_credential(u1, "email", "fan@example.com")

    result = linker.link_credential(u2, "email", "Fan@Example.com")
    assert result.outcome is LinkOutcome.ALREADY_LINKED_OTHER
    assert not result.ok
    assert users.get_credential_owner("email", "fan@example.com") == u1
    assert linker.list_credentials(u2) == []


def test_relinking_own_credential(linker, users):
    user_id = users.create_user()
    linker.link_credential(user_id, "discord", "123456789")

    result = linker.link_credential(user_id, "discord", "123456789")
    assert result.outcome is LinkOutcome.ALREADY_LINKED_SELF
    assert result.ok
    assert len(linker.list_credentials(user_id)) == 1


def test_unknown_user(linker):
    result = linker.link_credential("missing", "email", "fan@example.com")
    assert result.outcome is LinkOutcome.USER_NOT_FOUND


@pytest.mark.parametrize("credential_type,identifier", [
    ("twitter", "@fan"),
    ("wallet", "0x1234"),
    ("email", "not-an-email"),
    ("email", "   "),
])
def test_invalid_credentials_rejected(linker, users, credential_type, identifier):
    user_id = users.create_user()
    with pytest.raises(ValueError):
        linker.link_credential(user_id, credential_type, identifier)


def test_ghost_user_adopts_existing_drip_account(linker, users, points):
    points.add_account("acct_7", 120, wallet=WALLET)
    user_id = users.create_user()

    result = linker.link_credential(user_id, "wallet", WALLET)
    assert result.adopted_account_ref == "acct_7"
    assert users.get_user(user_id)['drip_account_id'] == "acct_7"
    # Credential already lives on that account, nothing to push
    assert result.propagated is None
    assert points.links == []


def test_user_with_account_does_not_adopt(linker, users, points):
    points.add_account("acct_7", 120, wallet=WALLET)
    user_id = users.create_user(drip_account_id="acct_1")

    result = linker.link_credential(user_id, "wallet", WALLET)
    assert result.adopted_account_ref is None
    assert users.get_user(user_id)['drip_account_id'] == "acct_1"


def test_link_is_propagated_to_drip(linker, users, points):
    user_id = users.create_user(drip_account_id="acct_1")

    result = linker.link_credential(user_id, "email", "fan@example.com")
    assert result.propagated is True
    assert points.links == [("email", "fan@example.com", "acct_1")]


def test_propagation_failure_keeps_local_link(linker, users, points):
    user_id = users.create_user(drip_account_id="acct_1")
    points.fail_link = True

    result = linker.link_credential(user_id, "discord", "987654321")
    assert result.outcome is LinkOutcome.LINKED
    assert result.propagated is False
    assert users.get_credential_owner("discord", "987654321") == user_id


def test_propagation_exception_keeps_local_link(linker, users, points, monkeypatch):
    user_id = users.create_user(drip_account_id="acct_1")

    def boom(*args, **kwargs):
        raise DripAPIError("Drip API timeout after 10s")

    monkeypatch.setattr(points, "link_credential_to_account", boom)

    result = linker.link_credential(user_id, "email", "fan@example.com")
    assert result.outcome is LinkOutcome.LINKED
    assert result.propagated is False


def test_lookup_failure_still_links_locally(linker, users, points):
    user_id = users.create_user()
    points.fail_lookup = True

    result = linker.link_credential(user_id, "wallet", WALLET)
    assert result.outcome is LinkOutcome.LINKED
    assert result.adopted_account_ref is None
    assert users.get_user(user_id)['drip_account_id'] is None


def test_unlink(linker, users):
    u1 = users.create_user()
    u2 = users.create_user()
    linker.link_credential(u1, "email", "fan@example.com")

    assert linker.unlink_credential(u2, "email", "fan@example.com") is False
    assert linker.unlink_credential(u1, "email", "FAN@example.com") is True
    assert linker.list_credentials(u1) == []

    # Freed credential can be claimed by someone else
    assert linker.link_credential(u2, "email", "fan@example.com").outcome is LinkOutcome.LINKED


def test_list_credentials_by_type(linker, users):
    user_id = users.create_user()
    linker.link_credential(user_id, "email", "fan@example.com")
    linker.link_credential(user_id, "wallet", WALLET)

    assert [c['identifier'] for c in linker.list_credentials(user_id, "wallet")] == [WALLET]
    with pytest.raises(ValueError):
        linker.list_credentials(user_id, "twitter")


def test_result_dict(linker, users):
    user_id = users.create_user()
    data = linker.link_credential(user_id, "email", "fan@example.com").to_dict()
    assert data['success'] is True
    assert data['code'] == 'linked'
    assert data['identifier'] == "fan@example.com"
