"""
Pin Wheel Entry Ledger
One entry per Drip account per draw window, enforced by the (wallet_address, entry_date) unique key
"""

import uuid
import logging
from datetime import date
from typing import List, Dict, Any, Optional

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from utils.error_helpers import db_error_handler
from . import config
from .clock import Clock, window_for_timestamp, parse_window
from .models import ReserveResult

logger = logging.getLogger(__name__)


class EntryLedger:
    """Manages daily Pin Wheel entries"""

    def __init__(self, engine, clock=None, legacy_lookup=None):
        self.engine = engine
        self.clock = clock or Clock()
        self.legacy_lookup = config.LEGACY_ENTRY_LOOKUP if legacy_lookup is None else legacy_lookup

    def current_window(self, now=None) -> date:
        """Draw date that an entry made now counts toward"""
        return window_for_timestamp(now or self.clock.now())

    @db_error_handler
    def has_entry(self, account_ref: str, window, raw_identifier: Optional[str] = None) -> bool:
        """
        Check whether an account already entered the window

        Args:
            account_ref: Canonical Drip account ID
            window: Draw date
            raw_identifier: Identifier as the user typed it; rows written before
                entries were canonicalized may be stored under it

        Returns:
            bool: True if an entry exists
        """
        refs = [account_ref]
        if self.legacy_lookup and raw_identifier:
            raw = raw_identifier.strip().lower()
            if raw and raw != account_ref:
                refs.append(raw)

        placeholders = ", ".join(f":ref_{i}" for i in range(len(refs)))
        params = {f"ref_{i}": ref for i, ref in enumerate(refs)}
        params['entry_date'] = parse_window(window).isoformat()

        with self.engine.connect() as conn:
            row = conn.execute(text(f"""
                SELECT 1 FROM pinwheel_entries
                WHERE entry_date = :entry_date AND wallet_address IN ({placeholders})
                LIMIT 1
            """), params).fetchone()
        return row is not None

    @db_error_handler
    def reserve(self, account_ref: str, window) -> ReserveResult:
        """
        Claim the account's slot in the window

        The insert is the concurrency guard: a unique violation means another
        request already holds the slot.
        """
        entry_date = parse_window(window).isoformat()
        try:
            with self.engine.begin() as conn:
                conn.execute(text("""
                    INSERT INTO pinwheel_entries (id, wallet_address, entry_date)
                    VALUES (:id, :wallet_address, :entry_date)
                """), {
                    'id': str(uuid.uuid4()),
                    'wallet_address': account_ref,
                    'entry_date': entry_date,
                })
        except IntegrityError:
            # Only the (wallet_address, entry_date) key means the slot is taken
            if not self._slot_taken(account_ref, entry_date):
                raise
            logger.info(f"Entry already reserved for {account_ref} on {entry_date}")
            return ReserveResult.ALREADY_RESERVED

        logger.info(f"🎟️ Reserved Pin Wheel entry for {account_ref} on {entry_date}")
        return ReserveResult.RESERVED

    def _slot_taken(self, account_ref, entry_date) -> bool:
        if account_ref is None:
            return False
        with self.engine.connect() as conn:
            row = conn.execute(text("""
                SELECT 1 FROM pinwheel_entries
                WHERE wallet_address = :wallet_address AND entry_date = :entry_date
            """), {'wallet_address': account_ref, 'entry_date': entry_date}).fetchone()
        return row is not None

    @db_error_handler
    def release(self, account_ref: str, window) -> bool:
        """Undo a reservation after a failed charge. Returns True if a row was removed."""
        entry_date = parse_window(window).isoformat()
        with self.engine.begin() as conn:
            result = conn.execute(text("""
                DELETE FROM pinwheel_entries
                WHERE wallet_address = :wallet_address AND entry_date = :entry_date
            """), {'wallet_address': account_ref, 'entry_date': entry_date})

        logger.warning(f"↩️ Released Pin Wheel entry for {account_ref} on {entry_date}")
        return result.rowcount > 0

    @db_error_handler
    def count_in_window(self, window) -> int:
        with self.engine.connect() as conn:
            return conn.execute(text("""
                SELECT COUNT(*) FROM pinwheel_entries WHERE entry_date = :entry_date
            """), {'entry_date': parse_window(window).isoformat()}).scalar() or 0

    @db_error_handler
    def entries_for_window(self, window) -> List[str]:
        """Account refs in entry order. Every row is one slot."""
        with self.engine.connect() as conn:
            result = conn.execute(text("""
                SELECT wallet_address FROM pinwheel_entries
                WHERE entry_date = :entry_date
                ORDER BY created_at, id
            """), {'entry_date': parse_window(window).isoformat()})
            return [row[0] for row in result]

    @db_error_handler
    def list_entries(self, window) -> List[Dict[str, Any]]:
        """Entries for the admin view, newest first"""
        with self.engine.connect() as conn:
            result = conn.execute(text("""
                SELECT id, wallet_address, entry_date, created_at
                FROM pinwheel_entries
                WHERE entry_date = :entry_date
                ORDER BY created_at DESC, id
            """), {'entry_date': parse_window(window).isoformat()})
            return [
                {
                    'id': row[0],
                    'wallet_address': row[1],
                    'entry_date': row[2],
                    'created_at': str(row[3]) if row[3] is not None else None,
                }
                for row in result
            ]
