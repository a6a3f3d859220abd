"""
Pin Wheel Auto-Entry
Opt-in storage and the daily batch that enters every opted-in account before the draw
"""

import logging
from typing import List, Dict, Any, Optional

from sqlalchemy import text

from core.drip_api import DripAPIError
from utils.error_helpers import db_error_handler
from .clock import Clock
from .identity import normalize_identifier
from .models import AutoEntryResult, BatchReport, EnterOutcome

logger = logging.getLogger(__name__)


class AutoEntryManager:
    """Manages auto-entry opt-ins and runs the batch"""

    def __init__(self, engine, service, clock=None, publisher=None):
        self.engine = engine
        self.service = service
        self.clock = clock or Clock()
        self.publisher = publisher

    def set_auto_entry(self, identifier: str, enabled: bool, hint: Optional[str] = None) -> Dict[str, Any]:
        """
        Turn auto-entry on or off

        The identifier must belong to a Drip account. Drip errors propagate.

        Returns:
            dict: success, code ('ok' / 'account_not_found'), enabled
        """
        normalized = normalize_identifier(identifier)

        account = self.service.resolver.resolve(identifier, hint)
        if account is None:
            return {
                'success': False,
                'code': EnterOutcome.ACCOUNT_NOT_FOUND.value,
                'error': 'Account not found in Drip',
                'enabled': self.is_auto_entry_enabled(normalized),
            }

        self._upsert(normalized, bool(enabled))
        logger.info(f"{'✅' if enabled else '⏸️'} Auto-entry {'enabled' if enabled else 'disabled'} for {normalized}")
        return {'success': True, 'code': EnterOutcome.OK.value, 'enabled': bool(enabled)}

    @db_error_handler
    def _upsert(self, normalized: str, enabled: bool):
        with self.engine.begin() as conn:
            conn.execute(text("""
                INSERT INTO pinwheel_auto_entries (wallet_address, enabled, updated_at)
                VALUES (:wallet_address, :enabled, CURRENT_TIMESTAMP)
                ON CONFLICT (wallet_address)
                DO UPDATE SET
                    enabled = :enabled,
                    updated_at = CURRENT_TIMESTAMP
            """), {'wallet_address': normalized, 'enabled': enabled})

    @db_error_handler
    def is_auto_entry_enabled(self, identifier: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(text("""
                SELECT enabled FROM pinwheel_auto_entries WHERE wallet_address = :wallet_address
            """), {'wallet_address': normalize_identifier(identifier)}).fetchone()
        return bool(row[0]) if row else False

    @db_error_handler
    def list_enabled(self) -> List[str]:
        with self.engine.connect() as conn:
            result = conn.execute(text("""
                SELECT wallet_address FROM pinwheel_auto_entries
                WHERE enabled = :enabled
                ORDER BY updated_at, wallet_address
            """), {'enabled': True})
            return [row[0] for row in result]

    def run_batch(self, now=None) -> BatchReport:
        """
        Enter every opted-in account into the open window

        Safe to re-run: accounts already entered are skipped. One account's
        failure never stops the rest of the batch.

        Returns:
            BatchReport
        """
        entries = self.service.entries
        window = entries.current_window(now or self.clock.now())
        report = BatchReport()
        processed_accounts = set()

        identifiers = self.list_enabled()
        logger.info(f"🎡 Auto-entry batch for {window.isoformat()}: {len(identifiers)} opted in")

        for identifier in identifiers:
            try:
                result = self._enter_one(identifier, window, processed_accounts)
            except Exception as e:
                logger.error(f"❌ Auto-entry failed for {identifier}: {e}", exc_info=True)
                result = AutoEntryResult(identifier=identifier, status='failed', reason=str(e))
            report.add(result)

        logger.info(
            f"✅ Auto-entry batch complete: {report.processed} processed, {report.succeeded} succeeded, "
            f"{report.failed} failed, {report.skipped} skipped"
        )

        if self.publisher is not None:
            try:
                self.publisher.publish_auto_entry_batch(window.isoformat(), report)
            except Exception as e:
                logger.error(f"Failed to publish auto-entry batch event: {e}")

        return report

    def _enter_one(self, identifier, window, processed_accounts) -> AutoEntryResult:
        try:
            account = self.service.resolver.resolve(identifier)
        except DripAPIError as e:
            return AutoEntryResult(identifier=identifier, status='failed', reason=f"Drip lookup failed: {e}")

        if account is None:
            return AutoEntryResult(identifier=identifier, status='skipped', reason='Account not found')

        account_ref = account.account_id
        if account_ref in processed_accounts:
            return AutoEntryResult(
                identifier=identifier, status='skipped', reason='Account already processed in this batch',
                account_ref=account_ref,
            )
        processed_accounts.add(account_ref)

        if self.service.entries.has_entry(account_ref, window, raw_identifier=identifier):
            return AutoEntryResult(
                identifier=identifier, status='skipped', reason='Already entered', account_ref=account_ref,
            )

        if account.points < self.service.entry_cost:
            return AutoEntryResult(
                identifier=identifier, status='skipped', reason='Insufficient balance', account_ref=account_ref,
            )

        entered = self.service.claim_and_charge(account, window)
        if entered.outcome is EnterOutcome.OK:
            return AutoEntryResult(
                identifier=identifier, status='succeeded', account_ref=account_ref, new_balance=entered.new_balance,
            )
        if entered.outcome is EnterOutcome.ALREADY_ENTERED:
            return AutoEntryResult(
                identifier=identifier, status='skipped', reason='Already entered', account_ref=account_ref,
            )
        return AutoEntryResult(identifier=identifier, status='failed', reason=entered.error, account_ref=account_ref)
