"""
Pytest fixtures for the Pin Wheel portal. Uses a temporary SQLite DB and an in-memory points ledger.
"""

import threading
from dataclasses import replace
from datetime import datetime, timezone

import pytest

from core.drip_api import Account, BalanceAdjustment, DripAPIError
from pinwheel.database import create_portal_engine, setup_portal_database
from pinwheel.entries import EntryLedger
from pinwheel.identity import IdentityResolver
from pinwheel.entry_service import EntryService
from features.linking.users import UserStore


class FixedClock:
    """Clock pinned to one instant, movable by tests"""

    def __init__(self, now):
        self.current = now

    def now(self):
        return self.current

    def set(self, now):
        self.current = now


class FakeLedger:
    """Thread-safe stand-in for DripClient"""

    def __init__(self):
        self.lock = threading.Lock()
        self.accounts = {}
        self.credentials = {}
        self.charges = []
        self.links = []
        self.renames = []
        self.fail_adjust = None  # error string, or an exception instance to raise
        self.fail_lookup = False
        self.fail_link = False

    def add_account(self, account_id, points, wallet=None, email=None, discord_id=None, display_name=None):
        with self.lock:
            self.accounts[account_id] = Account(
                account_id=account_id, points=points, currency_ref='grit',
                display_name=display_name, wallet=wallet, email=email, discord_id=discord_id,
            )
            for credential_type, value in (('wallet', wallet), ('email', email), ('discord', discord_id)):
                if value:
                    self.credentials[(credential_type, value.lower())] = account_id
        return self.accounts[account_id]

    def balance(self, account_id):
        with self.lock:
            return self.accounts[account_id].points

    def find_account_by_id(self, account_ref):
        if self.fail_lookup:
            raise DripAPIError("Drip API timeout after 10s")
        with self.lock:
            account = self.accounts.get(account_ref)
            return replace(account) if account else None

    def find_account_by_credential(self, credential_type, value):
        if self.fail_lookup:
            raise DripAPIError("Drip API timeout after 10s")
        with self.lock:
            account_id = self.credentials.get((credential_type, value.lower()))
            return replace(self.accounts[account_id]) if account_id else None

    def get_balance(self, account_ref):
        account = self.find_account_by_id(account_ref)
        return account.points if account else None

    def adjust_balance(self, account_ref, delta, memo, currency_ref=None):
        if isinstance(self.fail_adjust, Exception):
            raise self.fail_adjust
        if self.fail_adjust:
            return BalanceAdjustment(success=False, error=self.fail_adjust)
        with self.lock:
            account = self.accounts[account_ref]
            account.points += delta
            self.charges.append((account_ref, delta, memo))
            return BalanceAdjustment(success=True, new_balance=account.points)

    def update_display_name(self, account_ref, display_name):
        with self.lock:
            self.renames.append((account_ref, display_name))
            return account_ref in self.accounts

    def link_credential_to_account(self, credential_type, value, account_ref):
        self.links.append((credential_type, value, account_ref))
        if self.fail_link:
            return False
        with self.lock:
            self.credentials[(credential_type, value.lower())] = account_ref
        return True


class RecordingNotifier:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def notify_winner(self, result, discord_id=None):
        if self.fail:
            raise RuntimeError("webhook down")
        self.sent.append((result, discord_id))
        return True


@pytest.fixture
def engine(tmp_path):
    engine = create_portal_engine(f"sqlite:///{tmp_path / 'portal.db'}")
    setup_portal_database(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def clock():
    # 2024-06-01 12:00 UTC, window 2024-06-01
    return FixedClock(datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def points():
    return FakeLedger()


@pytest.fixture
def entries(engine, clock):
    return EntryLedger(engine, clock, legacy_lookup=True)


@pytest.fixture
def service(points, entries, clock):
    return EntryService(IdentityResolver(points), entries, points, clock, entry_cost=10)


@pytest.fixture
def users(engine):
    return UserStore(engine)
