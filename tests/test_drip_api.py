"""
Drip client tests against a canned HTTP session
"""

import json

import pytest
import requests

from core.drip_api import DripClient, DripAPIError, DripConfigError


class FakeResponse:
    def __init__(self, status_code=200, payload=None, reason="OK"):
        self.status_code = status_code
        self.reason = reason
        self.content = json.dumps(payload).encode() if payload is not None else b""
        self.text = self.content.decode()
        self._payload = payload

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def json(self):
        return self._payload


class FakeSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


MEMBER = {
    'accountId': 'acct_1',
    'displayName': 'Sassy Fan',
    'balances': [
        {'currencyName': 'POINTS', 'currencyId': 'pts', 'balance': 999},
        {'currencyName': 'GRIT', 'currencyId': 'grit', 'balance': 15},
    ],
    'credentials': [
        {'format': 'blockchain', 'publicIdentifier': '0x' + 'AB' * 20},
        {'provider': 'discord', 'publicIdentifier': '42'},
    ],
}


def client_with(*responses):
    session = FakeSession(*responses)
    return DripClient(api_key="key", realm_id="realm", base_url="https://drip.test/api/v1",
                      timeout=5, session=session), session


def test_find_account_by_credential():
    client, session = client_with(FakeResponse(payload={'data': [MEMBER]}))

    account = client.find_account_by_credential('discord', ' 42 ')
    assert account.account_id == 'acct_1'
    assert account.points == 15
    assert account.currency_ref == 'grit'
    assert account.wallet == '0x' + 'ab' * 20
    assert account.discord_id == '42'

    method, url, kwargs = session.calls[0]
    assert method == 'GET'
    assert url == "https://drip.test/api/v1/realms/realm/members/search?type=discord-id&values=42"
    assert kwargs['timeout'] == 5
    assert kwargs['headers']['Authorization'] == 'Bearer key'


def test_no_member_is_none():
    client, _ = client_with(FakeResponse(payload={'data': []}), FakeResponse(404, reason="Not Found"))
    assert client.find_account_by_credential('email', 'a@b.com') is None
    assert client.find_account_by_credential('email', 'a@b.com') is None


def test_outage_is_an_error_not_a_missing_account():
    client, _ = client_with(requests.Timeout("slow"), FakeResponse(500, payload={}, reason="Server Error"))
    with pytest.raises(DripAPIError):
        client.find_account_by_credential('wallet', '0x' + 'ab' * 20)
    with pytest.raises(DripAPIError) as excinfo:
        client.find_account_by_id('acct_1')
    assert excinfo.value.status_code == 500


def test_find_account_by_id_scans_leaderboard():
    other = dict(MEMBER, accountId='acct_2')
    client, _ = client_with(
        FakeResponse(payload={'data': [other, MEMBER]}),
        FakeResponse(payload={'data': [other]}),
    )
    assert client.find_account_by_id('acct_1').account_id == 'acct_1'
    assert client.get_balance('acct_1') is None


def test_adjust_balance():
    client, session = client_with(FakeResponse(payload={'balance': 5}))

    adjustment = client.adjust_balance('acct_1', -10, "Pin Wheel entry", currency_ref='grit')
    assert adjustment.success
    assert adjustment.new_balance == 5

    method, url, kwargs = session.calls[0]
    assert method == 'PATCH'
    assert url.endswith("/members/acct_1/balance")
    assert kwargs['json'] == {'amount': -10, 'note': "Pin Wheel entry", 'currencyId': 'grit'}


def test_adjust_balance_failure_is_reported_not_raised():
    client, _ = client_with(requests.ConnectionError("reset"), FakeResponse(502, payload={}, reason="Bad Gateway"))
    first = client.adjust_balance('acct_1', -10, "Pin Wheel entry")
    second = client.adjust_balance('acct_1', -10, "Pin Wheel entry")
    assert not first.success and "ConnectionError" in first.error
    assert not second.success and "502" in second.error


def test_link_credential_to_account():
    client, session = client_with(FakeResponse(payload={}), FakeResponse(409, payload={}, reason="Conflict"))
    assert client.link_credential_to_account('email', 'Fan@Example.com', 'acct_1') is True
    assert "type=email&value=fan%40example.com&accountId=acct_1" in session.calls[0][1]
    assert client.link_credential_to_account('email', 'fan@example.com', 'acct_1') is False


def test_update_display_name():
    client, session = client_with(FakeResponse(), FakeResponse(500, payload={}, reason="Server Error"))
    assert client.update_display_name('acct_1', "Sassy Fan") is True
    method, url, kwargs = session.calls[0]
    assert (method, kwargs['json']) == ('PATCH', {'name': "Sassy Fan"})
    assert url.endswith("/realms/realm/members/acct_1")
    assert client.update_display_name('acct_1', "Sassy Fan") is False


def test_missing_configuration():
    with pytest.raises(DripConfigError):
        DripClient(api_key="", realm_id="realm", session=FakeSession()).find_account_by_id('acct_1')
    with pytest.raises(DripConfigError):
        DripClient(api_key="key", realm_id="", session=FakeSession()).find_account_by_id('acct_1')
