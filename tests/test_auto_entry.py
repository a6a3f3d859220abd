"""
Auto-entry opt-in and batch tests
"""

from datetime import date

import pytest

from pinwheel.auto_entry import AutoEntryManager

WINDOW = date(2024, 6, 1)


class RecordingPublisher:
    def __init__(self):
        self.batches = []

    def publish_auto_entry_batch(self, window, report):
        self.batches.append((window, report.to_dict()))


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def auto_entry(engine, service, clock, publisher):
    return AutoEntryManager(engine, service, clock, publisher=publisher)


def by_identifier(report):
    return {r.identifier: r for r in report.results}


def test_opt_in_requires_known_account(auto_entry, points):
    result = auto_entry.set_auto_entry("acct_missing", True)
    assert result['success'] is False
    assert result['code'] == 'account_not_found'
    assert auto_entry.list_enabled() == []


def test_opt_in_and_out(auto_entry, points):
    points.add_account("acct_1", 50)

    assert auto_entry.set_auto_entry("acct_1", True) == {'success': True, 'code': 'ok', 'enabled': True}
    assert auto_entry.is_auto_entry_enabled("acct_1")
    assert auto_entry.list_enabled() == ["acct_1"]

    auto_entry.set_auto_entry("acct_1", False)
    assert not auto_entry.is_auto_entry_enabled("acct_1")
    assert auto_entry.list_enabled() == []


def test_wallet_opt_in_is_stored_lowercase(auto_entry, points):
    wallet = "0x" + "ab" * 20
    points.add_account("acct_1", 50, wallet=wallet)

    auto_entry.set_auto_entry(wallet.upper().replace("0X", "0x"), True)
    assert auto_entry.list_enabled() == [wallet]


def test_batch_outcomes_are_isolated(auto_entry, points, entries, publisher):
    points.add_account("acct_rich", 50)
    points.add_account("acct_poor", 5)
    points.add_account("acct_done", 50)
    points.add_account("acct_gone", 50)
    for ref in ("acct_rich", "acct_poor", "acct_done", "acct_gone"):
        auto_entry.set_auto_entry(ref, True)
    del points.accounts["acct_gone"]
    entries.reserve("acct_done", WINDOW)

    report = auto_entry.run_batch()
    results = by_identifier(report)

    assert report.processed == 4
    assert report.succeeded == 1
    assert report.skipped == 3
    assert report.failed == 0
    assert results["acct_rich"].status == 'succeeded'
    assert results["acct_rich"].new_balance == 40
    assert results["acct_poor"].reason == 'Insufficient balance'
    assert results["acct_done"].reason == 'Already entered'
    assert results["acct_gone"].reason == 'Account not found'
    assert publisher.batches[0][0] == "2024-06-01"


def test_failed_charge_does_not_stop_batch(auto_entry, points, entries, monkeypatch):
    points.add_account("acct_1", 50)
    points.add_account("acct_2", 50)
    auto_entry.set_auto_entry("acct_1", True)
    auto_entry.set_auto_entry("acct_2", True)

    real_adjust = points.adjust_balance

    def flaky(account_ref, delta, memo, currency_ref=None):
        if account_ref == "acct_1":
            raise ConnectionError("Drip unreachable")
        return real_adjust(account_ref, delta, memo, currency_ref=currency_ref)

    monkeypatch.setattr(points, "adjust_balance", flaky)

    report = auto_entry.run_batch()
    results = by_identifier(report)

    assert results["acct_1"].status == 'failed'
    assert results["acct_2"].status == 'succeeded'
    assert entries.entries_for_window(WINDOW) == ["acct_2"]


def test_unexpected_error_is_reported_per_account(auto_entry, points, entries, monkeypatch):
    points.add_account("acct_1", 50)
    points.add_account("acct_2", 50)
    auto_entry.set_auto_entry("acct_1", True)
    auto_entry.set_auto_entry("acct_2", True)

    real_has_entry = entries.has_entry

    def broken(account_ref, window, raw_identifier=None):
        if account_ref == "acct_1":
            raise RuntimeError("disk full")
        return real_has_entry(account_ref, window, raw_identifier=raw_identifier)

    monkeypatch.setattr(entries, "has_entry", broken)

    results = by_identifier(auto_entry.run_batch())
    assert results["acct_1"].status == 'failed'
    assert results["acct_1"].reason == 'disk full'
    assert results["acct_2"].status == 'succeeded'


def test_lookup_failure_marks_account_failed(auto_entry, points):
    points.add_account("acct_1", 50)
    auto_entry.set_auto_entry("acct_1", True)
    points.fail_lookup = True

    report = auto_entry.run_batch()
    assert report.failed == 1
    assert report.results[0].reason.startswith("Drip lookup failed")


def test_one_account_under_two_identifiers_is_charged_once(auto_entry, points):
    wallet = "0x" + "cd" * 20
    points.add_account("acct_1", 50, wallet=wallet)
    auto_entry.set_auto_entry("acct_1", True)
    auto_entry.set_auto_entry(wallet, True)

    report = auto_entry.run_batch()
    assert report.succeeded == 1
    assert report.skipped == 1
    assert points.balance("acct_1") == 40


def test_rerun_is_idempotent(auto_entry, points):
    points.add_account("acct_1", 50)
    auto_entry.set_auto_entry("acct_1", True)

    assert auto_entry.run_batch().succeeded == 1
    second = auto_entry.run_batch()
    assert second.succeeded == 0
    assert second.skipped == 1
    assert points.balance("acct_1") == 40


def test_empty_batch(auto_entry, publisher):
    report = auto_entry.run_batch()
    assert report.to_dict() == {'processed': 0, 'succeeded': 0, 'failed': 0, 'skipped': 0, 'results': []}
