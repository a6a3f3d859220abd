"""
Pin Wheel Entry Service
Resolve identity, claim the daily slot, charge GRIT, and release the slot if the charge fails
"""

import logging
from typing import Optional, Dict, Any

from core.drip_api import Account, BalanceAdjustment, DripAPIError
from . import config
from .clock import Clock, next_draw_time, ms_until_next_draw
from .models import EnterOutcome, EnterResult, ReserveResult

logger = logging.getLogger(__name__)


class EntryService:
    """Orchestrates one entry attempt per request"""

    def __init__(self, resolver, entries, points, clock=None, entry_cost=None):
        self.resolver = resolver
        self.entries = entries
        self.points = points
        self.clock = clock or Clock()
        self.entry_cost = config.ENTRY_COST if entry_cost is None else entry_cost

    def enter(self, identifier: str, hint: Optional[str] = None) -> EnterResult:
        """
        Enter today's Pin Wheel draw

        Steps run strictly in order: resolve, window, duplicate pre-check,
        balance check, reserve, charge, release on charge failure.

        Args:
            identifier: wallet address, Drip account ID, email or Discord ID
            hint: optional identifier kind, see IdentityResolver.resolve

        Returns:
            EnterResult
        """
        try:
            account = self.resolver.resolve(identifier, hint)
        except DripAPIError as e:
            logger.error(f"Drip lookup failed during Pin Wheel entry: {e}")
            return EnterResult(outcome=EnterOutcome.TRANSIENT_FAILURE, error=str(e))

        if account is None:
            return EnterResult(outcome=EnterOutcome.ACCOUNT_NOT_FOUND, error="Account not found in Drip")

        window = self.entries.current_window(self.clock.now())

        # Fast path only, reserve() is the real guard
        if self.entries.has_entry(account.account_id, window, raw_identifier=identifier):
            return EnterResult(
                outcome=EnterOutcome.ALREADY_ENTERED,
                account_ref=account.account_id,
                window=window,
                error="Already entered today's draw",
            )

        if account.points < self.entry_cost:
            return EnterResult(
                outcome=EnterOutcome.INSUFFICIENT_BALANCE,
                account_ref=account.account_id,
                window=window,
                error=f"Insufficient GRIT balance. You need {self.entry_cost} GRIT to enter.",
            )

        return self.claim_and_charge(account, window)

    def claim_and_charge(self, account: Account, window) -> EnterResult:
        """
        Reserve the slot, then charge the entry cost

        An entry never outlives a failed charge: any exception from the
        ledger call (timeouts included) counts as a failed charge and the
        reservation is released.
        """
        account_ref = account.account_id

        if self.entries.reserve(account_ref, window) is ReserveResult.ALREADY_RESERVED:
            return EnterResult(
                outcome=EnterOutcome.ALREADY_ENTERED,
                account_ref=account_ref,
                window=window,
                error="Already entered today's draw",
            )

        try:
            adjustment = self.points.adjust_balance(
                account_ref, -self.entry_cost, config.ENTRY_MEMO, currency_ref=account.currency_ref
            )
        except Exception as e:
            adjustment = BalanceAdjustment(success=False, error=f"{type(e).__name__}: {e}")

        if not adjustment.success:
            logger.error(f"❌ Failed to deduct GRIT from {account_ref}: {adjustment.error}")
            self.entries.release(account_ref, window)
            return EnterResult(
                outcome=EnterOutcome.TRANSIENT_FAILURE,
                account_ref=account_ref,
                window=window,
                error=adjustment.error or "Failed to deduct GRIT",
            )

        new_balance = adjustment.new_balance
        if new_balance is None:
            new_balance = account.points - self.entry_cost

        logger.info(f"✅ Pin Wheel entry for {account_ref} on {window.isoformat()} (balance {new_balance})")
        return EnterResult(
            outcome=EnterOutcome.OK,
            account_ref=account_ref,
            window=window,
            new_balance=new_balance,
        )

    def status(self, identifier: Optional[str] = None, hint: Optional[str] = None) -> Dict[str, Any]:
        """
        Entry count and countdown for the open window

        Drip lookup errors propagate as DripAPIError.
        """
        now = self.clock.now()
        window = self.entries.current_window(now)

        has_entered = False
        account_found = None
        if identifier:
            account = self.resolver.resolve(identifier, hint)
            account_found = account is not None
            if account is not None:
                has_entered = self.entries.has_entry(account.account_id, window, raw_identifier=identifier)

        return {
            'window': window.isoformat(),
            'entry_count': self.entries.count_in_window(window),
            'has_entered': has_entered,
            'account_found': account_found,
            'entry_cost': self.entry_cost,
            'ms_until_draw': ms_until_next_draw(now),
            'draw_time': next_draw_time(now).isoformat(),
        }
