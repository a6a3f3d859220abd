"""
User profile and admin user management tests
"""

import pytest
from sqlalchemy import text

ADDRESS = {'name': "Sassy Fan", 'address': "1 Main St", 'city': "Boston", 'state': "MA", 'zip': "02108"}


def add_credential(engine, user_id, credential_type, identifier):
    with engine.begin() as conn:
        conn.execute(text("""
            INSERT INTO connected_credentials (id, user_id, credential_type, identifier)
            VALUES (:id, :user_id, :credential_type, :identifier)
        """), {
            'id': f"{user_id}-{identifier}",
            'user_id': user_id,
            'credential_type': credential_type,
            'identifier': identifier,
        })


def test_address_round_trip_defaults_country(users):
    user_id = users.create_user()
    assert users.get_shipping_address(user_id) is None

    assert users.set_shipping_address(user_id, {**ADDRESS, 'city': "  Boston "}) is True
    assert users.get_shipping_address(user_id) == {**ADDRESS, 'country': "United States"}


def test_address_replaces_every_field(users):
    user_id = users.create_user(shipping_address="9 Elm St", shipping_country="US", shipping_zip="90001")
    users.set_shipping_address(user_id, {**ADDRESS, 'country': "Canada"})

    user = users.get_user(user_id)
    assert (user['shipping_address'], user['shipping_zip'], user['shipping_country']) == (
        "1 Main St", "02108", "Canada",
    )


def test_address_requires_fields(users):
    user_id = users.create_user()
    with pytest.raises(ValueError, match="zip"):
        users.set_shipping_address(user_id, {**ADDRESS, 'zip': " "})
    assert users.get_user(user_id)['shipping_address'] is None


def test_address_for_missing_user(users):
    assert users.set_shipping_address("missing", ADDRESS) is False


@pytest.mark.parametrize("name", [None, 42, "", "  a ", "x" * 31])
def test_display_name_validation(users, name):
    user_id = users.create_user()
    with pytest.raises(ValueError):
        users.set_display_name(user_id, name)


def test_display_name_is_trimmed(users):
    user_id = users.create_user()
    assert users.set_display_name(user_id, "  Sassy Fan ") == "Sassy Fan"
    assert users.get_user(user_id)['display_name'] == "Sassy Fan"
    assert users.set_display_name("missing", "Sassy Fan") is None


def test_delete_user_removes_owned_rows(engine, users):
    user_id = users.create_user(email="fan@example.com")
    other = users.create_user()
    add_credential(engine, user_id, "discord", "42")
    add_credential(engine, other, "discord", "43")
    with engine.begin() as conn:
        conn.execute(text("""
            INSERT INTO submissions (id, user_id, content_url) VALUES ('s1', :user_id, 'https://clip')
        """), {'user_id': user_id})
        conn.execute(text("""
            INSERT INTO email_verifications (id, user_id, email) VALUES ('v1', :user_id, 'fan@example.com')
        """), {'user_id': user_id})
    assert users.count_submissions(user_id) == 1

    log = users.delete_user(user_id)
    assert log == [
        "Deleted 1 credentials",
        "Deleted 1 email verifications",
        "Deleted 1 submissions",
        f"Deleted user: {user_id}",
    ]
    assert users.get_user(user_id) is None
    assert users.get_credentials(user_id) == []
    assert users.count_submissions(user_id) == 0
    assert [c['identifier'] for c in users.get_credentials(other)] == ["43"]


def test_delete_missing_user(users):
    assert users.delete_user("missing") is None


def test_search_by_profile_and_credential(engine, users):
    by_email = users.create_user(email="Sassy@Example.com")
    by_name = users.create_user(display_name="Big Sassy")
    by_wallet = users.create_user()
    add_credential(engine, by_wallet, "wallet", "0xsassy01")
    users.create_user(email="other@example.com")

    found = {u['id']: u for u in users.search_users("SASSY")}
    assert set(found) == {by_email, by_name, by_wallet}
    assert [c['identifier'] for c in found[by_wallet]['credentials']] == ["0xsassy01"]

    assert [u['id'] for u in users.search_users(by_name)] == [by_name]


def test_search_lists_each_user_once(engine, users):
    user_id = users.create_user(email="sassy@example.com")
    add_credential(engine, user_id, "email", "sassy@example.com")
    assert [u['id'] for u in users.search_users("sassy")] == [user_id]


def test_search_needs_three_characters(users):
    with pytest.raises(ValueError):
        users.search_users("ab")
