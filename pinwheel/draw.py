"""
Pin Wheel Draw Logic
Picks one entry slot and one pin per draw window using a provably fair SHA-256 proof
"""

import uuid
import logging
from typing import Optional, List, Dict, Any

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from utils.error_helpers import db_error_handler
from utils.provably_fair import generate_draw_proof
from . import config
from .clock import Clock, draw_window_for, parse_window
from .models import DrawOutcome, DrawResult, DrawRun

logger = logging.getLogger(__name__)

SHIPPING_FIELDS = (
    'shipping_name', 'shipping_email', 'shipping_phone', 'shipping_address',
    'shipping_city', 'shipping_state', 'shipping_zip', 'shipping_country',
)

WINNER_COLUMNS = """
    id, wallet_address, date_won, pin_won, spin_segment_index, total_entries,
    shipped, server_seed, client_seed, proof_hash, triggered_by, created_at
"""


def _winner_row_to_dict(row) -> Dict[str, Any]:
    return {
        'id': row[0],
        'wallet_address': row[1],
        'date_won': row[2],
        'pin_won': row[3],
        'spin_segment_index': row[4],
        'total_entries': row[5],
        'shipped': bool(row[6]),
        'server_seed': row[7],
        'client_seed': row[8],
        'proof_hash': row[9],
        'triggered_by': row[10],
        'created_at': str(row[11]) if row[11] is not None else None,
    }


class PinwheelDraw:
    """Runs the daily draw and serves winner history"""

    def __init__(self, engine, ledger, clock=None, notifier=None, publisher=None,
                 prizes=None, proof_generator=generate_draw_proof):
        self.engine = engine
        self.ledger = ledger
        self.clock = clock or Clock()
        self.notifier = notifier
        self.publisher = publisher
        self.prizes = list(prizes or config.PINS)
        self.proof_generator = proof_generator

    @db_error_handler
    def get_draw(self, window) -> Optional[Dict[str, Any]]:
        """Existing winner row for a window, or None"""
        with self.engine.connect() as conn:
            row = conn.execute(text(f"""
                SELECT {WINNER_COLUMNS} FROM pinwheel_winners WHERE date_won = :date_won
            """), {'date_won': parse_window(window).isoformat()}).fetchone()
        return _winner_row_to_dict(row) if row else None

    @db_error_handler
    def run_draw(self, window=None, triggered_by=None) -> DrawRun:
        """
        Draw the winner for a window

        Args:
            window: Draw date (None = UTC date of the trigger time)
            triggered_by: 'scheduler', 'cron', or the admin who triggered it

        Returns:
            DrawRun with outcome DRAWN, NO_ENTRIES or ALREADY_DRAWN.
            Storage errors propagate.
        """
        window = parse_window(window) if window is not None else draw_window_for(self.clock.now())
        date_won = window.isoformat()

        existing = self.get_draw(window)
        if existing:
            logger.info(f"Pin Wheel draw for {date_won} already done ({existing['wallet_address']})")
            return DrawRun(outcome=DrawOutcome.ALREADY_DRAWN, window=window, existing=existing)

        entries = self.ledger.entries_for_window(window)
        if not entries:
            logger.info(f"No Pin Wheel entries for {date_won}, skipping draw")
            return DrawRun(outcome=DrawOutcome.NO_ENTRIES, window=window)

        proof = self.proof_generator(date_won, len(entries), len(self.prizes))
        winner_ref = entries[proof['winner_index']]
        prize = self.prizes[proof['prize_index']]

        result = DrawResult(
            id=str(uuid.uuid4()),
            window=window,
            winning_account_ref=winner_ref,
            prize=prize,
            prize_index=proof['prize_index'],
            total_entries=len(entries),
            server_seed=proof['server_seed'],
            client_seed=proof['client_seed'],
            proof_hash=proof['proof_hash'],
            triggered_by=triggered_by,
        )

        try:
            self._insert_result(result)
        except IntegrityError:
            # Only a row for this date_won means a concurrent trigger won the slot
            existing = self.get_draw(window)
            if existing is None:
                raise
            logger.warning(f"Pin Wheel draw for {date_won} raced with another trigger")
            return DrawRun(outcome=DrawOutcome.ALREADY_DRAWN, window=window, existing=existing)

        logger.info(
            f"🎉 Pin Wheel winner for {date_won}: {winner_ref} won {prize} "
            f"(slot {proof['winner_index'] + 1}/{len(entries)})"
        )
        logger.info(f"🎲 Server Seed: {result.server_seed}")
        logger.info(f"🎲 Proof Hash: {result.proof_hash}")

        self._announce(result)
        return DrawRun(outcome=DrawOutcome.DRAWN, window=window, result=result)

    def _insert_result(self, result: DrawResult):
        """Write the winner row. IntegrityError on date_won means the window was already drawn."""
        with self.engine.begin() as conn:
            conn.execute(text("""
                INSERT INTO pinwheel_winners
                    (id, wallet_address, date_won, pin_won, spin_segment_index, total_entries,
                     shipped, server_seed, client_seed, proof_hash, triggered_by)
                VALUES
                    (:id, :wallet_address, :date_won, :pin_won, :spin_segment_index, :total_entries,
                     :shipped, :server_seed, :client_seed, :proof_hash, :triggered_by)
            """), {
                'id': result.id,
                'wallet_address': result.winning_account_ref,
                'date_won': result.window.isoformat(),
                'pin_won': result.prize,
                'spin_segment_index': result.prize_index,
                'total_entries': result.total_entries,
                'shipped': False,
                'server_seed': result.server_seed,
                'client_seed': result.client_seed,
                'proof_hash': result.proof_hash,
                'triggered_by': result.triggered_by,
            })

    def _announce(self, result: DrawResult):
        """Webhook and dashboard event. Neither may fail the draw."""
        if self.notifier is not None:
            try:
                discord_id = self.discord_id_for_account(result.winning_account_ref)
                self.notifier.notify_winner(result, discord_id=discord_id)
            except Exception as e:
                logger.error(f"Failed to send Pin Wheel winner notification: {e}")

        if self.publisher is not None:
            try:
                self.publisher.publish_pinwheel_draw(
                    result.window.isoformat(), result.winning_account_ref, result.prize, result.total_entries
                )
            except Exception as e:
                logger.error(f"Failed to publish Pin Wheel draw event: {e}")

    # ========================================
    # WINNER LOOKUPS
    # ========================================

    def _find_user_for_account(self, conn, account_ref):
        """LocalUser holding the account, or owning a credential that matches it"""
        columns = "u.id, u.display_name, u.email, " + ", ".join(f"u.{f}" for f in SHIPPING_FIELDS)
        row = conn.execute(text(f"""
            SELECT {columns} FROM users u
            WHERE u.drip_account_id = :ref
            ORDER BY u.created_at, u.id
            LIMIT 1
        """), {'ref': account_ref}).fetchone()
        if row is None:
            row = conn.execute(text(f"""
                SELECT {columns} FROM users u
                JOIN connected_credentials c ON c.user_id = u.id
                WHERE c.identifier = :ref
                LIMIT 1
            """), {'ref': account_ref.lower()}).fetchone()
        return row

    @db_error_handler
    def discord_id_for_account(self, account_ref) -> Optional[str]:
        with self.engine.connect() as conn:
            user = self._find_user_for_account(conn, account_ref)
            if user is None:
                return None
            row = conn.execute(text("""
                SELECT identifier FROM connected_credentials
                WHERE user_id = :user_id AND credential_type = 'discord'
                LIMIT 1
            """), {'user_id': user[0]}).fetchone()
        return row[0] if row else None

    @db_error_handler
    def get_winners(self, limit=config.RECENT_WINNERS_LIMIT) -> List[Dict[str, Any]]:
        """Most recent winners, newest first"""
        with self.engine.connect() as conn:
            result = conn.execute(text(f"""
                SELECT {WINNER_COLUMNS} FROM pinwheel_winners
                ORDER BY date_won DESC
                LIMIT :limit
            """), {'limit': int(limit)})
            return [_winner_row_to_dict(row) for row in result]

    @db_error_handler
    def get_admin_winners(self, limit=config.ADMIN_WINNERS_LIMIT) -> List[Dict[str, Any]]:
        """Winners with member name and shipping address for fulfillment"""
        winners = self.get_winners(limit)
        with self.engine.connect() as conn:
            for winner in winners:
                user = self._find_user_for_account(conn, winner['wallet_address'])
                if user is None:
                    winner.update({'user_id': None, 'member_name': None, 'email': None, 'shipping': None})
                    continue

                shipping = dict(zip(SHIPPING_FIELDS, user[3:]))
                winner.update({
                    'user_id': user[0],
                    'member_name': user[1],
                    'email': user[2],
                    'shipping': shipping if shipping.get('shipping_address') else None,
                })
        return winners

    @db_error_handler
    def mark_shipped(self, winner_id, shipped=True) -> bool:
        """Toggle the fulfillment flag. Returns False if no such winner."""
        with self.engine.begin() as conn:
            result = conn.execute(text("""
                UPDATE pinwheel_winners SET shipped = :shipped WHERE id = :id
            """), {'shipped': bool(shipped), 'id': winner_id})

        if result.rowcount:
            logger.info(f"📦 Winner {winner_id} marked {'shipped' if shipped else 'not shipped'}")
        return result.rowcount > 0

    @db_error_handler
    def get_last_spin(self, account_ref=None) -> Optional[Dict[str, Any]]:
        """
        Latest draw result

        Args:
            account_ref: When given, adds 'you_won' for that account

        Returns:
            dict or None if no draw has happened yet
        """
        with self.engine.connect() as conn:
            row = conn.execute(text(f"""
                SELECT {WINNER_COLUMNS} FROM pinwheel_winners
                ORDER BY date_won DESC
                LIMIT 1
            """)).fetchone()
        if row is None:
            return None

        spin = _winner_row_to_dict(row)
        if account_ref is not None:
            spin['you_won'] = spin['wallet_address'] == account_ref
        return spin

    @db_error_handler
    def get_prizes_for_user(self, user_id) -> List[Dict[str, Any]]:
        """Pins won by the user's Drip account or any of their credentials"""
        with self.engine.connect() as conn:
            user = conn.execute(text("""
                SELECT drip_account_id FROM users WHERE id = :id
            """), {'id': user_id}).fetchone()
            if user is None:
                return []

            refs = {row[0] for row in conn.execute(text("""
                SELECT identifier FROM connected_credentials WHERE user_id = :id
            """), {'id': user_id})}
            if user[0]:
                refs.add(user[0])
            if not refs:
                return []

            refs = sorted(refs)
            placeholders = ", ".join(f":ref_{i}" for i in range(len(refs)))
            params = {f"ref_{i}": ref for i, ref in enumerate(refs)}
            result = conn.execute(text(f"""
                SELECT {WINNER_COLUMNS} FROM pinwheel_winners
                WHERE wallet_address IN ({placeholders})
                ORDER BY date_won DESC
            """), params)
            return [_winner_row_to_dict(row) for row in result]
