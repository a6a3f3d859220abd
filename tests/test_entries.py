"""
Entry ledger tests
"""

from datetime import date, datetime, timezone

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from pinwheel.entries import EntryLedger
from pinwheel.models import ReserveResult

WINDOW = date(2024, 6, 1)


def test_current_window_uses_clock(entries, clock):
    assert entries.current_window() == WINDOW
    clock.set(datetime(2024, 6, 1, 20, 0, tzinfo=timezone.utc))
    assert entries.current_window() == date(2024, 6, 2)


def test_reserve_then_duplicate(entries):
    assert entries.reserve("acct_1", WINDOW) is ReserveResult.RESERVED
    assert entries.reserve("acct_1", WINDOW) is ReserveResult.ALREADY_RESERVED
    assert entries.count_in_window(WINDOW) == 1


def test_same_account_different_windows(entries):
    assert entries.reserve("acct_1", WINDOW) is ReserveResult.RESERVED
    assert entries.reserve("acct_1", date(2024, 6, 2)) is ReserveResult.RESERVED
    assert entries.count_in_window(WINDOW) == 1


def test_release_removes_reservation(entries):
    entries.reserve("acct_1", WINDOW)
    assert entries.release("acct_1", WINDOW) is True
    assert not entries.has_entry("acct_1", WINDOW)
    assert entries.release("acct_1", WINDOW) is False


def test_legacy_raw_identifier_counts_as_entered(engine, entries):
    wallet = "0xabcdef0123456789abcdef0123456789abcdef01"
    entries.reserve(wallet, WINDOW)  # written before canonicalization

    assert entries.has_entry("acct_1", WINDOW, raw_identifier=wallet.upper().replace("0X", "0x"))
    assert not entries.has_entry("acct_1", WINDOW)


def test_legacy_lookup_can_be_disabled(engine, clock):
    ledger = EntryLedger(engine, clock, legacy_lookup=False)
    wallet = "0xabcdef0123456789abcdef0123456789abcdef01"
    ledger.reserve(wallet, WINDOW)
    assert not ledger.has_entry("acct_1", WINDOW, raw_identifier=wallet)


def test_entries_for_window_keeps_every_row(engine, entries):
    entries.reserve("acct_1", WINDOW)
    entries.reserve("acct_2", WINDOW)
    entries.reserve("acct_3", date(2024, 6, 2))
    assert sorted(entries.entries_for_window(WINDOW)) == ["acct_1", "acct_2"]
    assert [e['wallet_address'] for e in entries.list_entries(date(2024, 6, 2))] == ["acct_3"]


def test_storage_errors_propagate(engine, entries):
    with engine.begin() as conn:
        conn.execute(text("DROP TABLE pinwheel_entries"))
    with pytest.raises(Exception):
        entries.reserve("acct_1", WINDOW)


def test_other_constraint_errors_are_not_duplicates(entries):
    with pytest.raises(IntegrityError):
        entries.reserve(None, WINDOW)
    assert entries.count_in_window(WINDOW) == 0
