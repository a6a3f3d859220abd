"""
Admin allow-list tests
"""

from utils.admin_policy import AdminPolicy


def test_is_admin_by_email_or_wallet():
    policy = AdminPolicy(emails=["Admin@Example.com"], wallets=["0x" + "AB" * 20])
    assert policy.is_admin(["admin@example.com"])
    assert policy.is_admin([None, "0x" + "ab" * 20])
    assert not policy.is_admin(["fan@example.com"])
    assert not policy.is_admin([])


def test_api_key_check():
    policy = AdminPolicy(api_key="cron-secret")
    assert policy.check_api_key("cron-secret")
    assert not policy.check_api_key("cron-secre")
    assert not policy.check_api_key(None)


def test_no_api_key_configured_rejects_everything():
    assert not AdminPolicy().check_api_key("")
    assert not AdminPolicy().check_api_key("anything")


def test_from_env(monkeypatch):
    monkeypatch.setenv("ADMIN_EMAILS", "a@example.com, B@example.com,")
    monkeypatch.setenv("ADMIN_WALLETS", "")
    monkeypatch.delenv("CRON_SECRET", raising=False)
    monkeypatch.setenv("ADMIN_API_KEY", "admin-key")

    policy = AdminPolicy.from_env()
    assert policy.emails == frozenset({"a@example.com", "b@example.com"})
    assert policy.wallets == frozenset()
    assert policy.check_api_key("admin-key")
