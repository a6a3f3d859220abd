"""
Duplicate Account Reconciliation
Find local users sharing one Drip account and merge them into a single record
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List, Dict, Any

from sqlalchemy import text

from core.drip_api import DripAPIError
from .users import UserStore, PROFILE_FIELDS, SHIPPING_FIELDS, fetch_user

logger = logging.getLogger(__name__)


class MergeOutcome(Enum):
    MERGED = "merged"
    NOT_FOUND = "not_found"
    SELF_MERGE = "self_merge"
    FAILED = "failed"  # only reported by merge_all


class MergeError(Exception):
    """A storage error stopped the merge. The transaction was rolled back."""

    def __init__(self, message, log=None, step=None):
        super().__init__(message)
        self.log = list(log or [])
        self.step = step


@dataclass
class MergeResult:
    outcome: MergeOutcome
    keep_user_id: str
    delete_user_id: str
    log: List[str] = field(default_factory=list)
    error: Optional[str] = None
    failed_step: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.outcome is MergeOutcome.MERGED,
            'code': self.outcome.value,
            'keep_user_id': self.keep_user_id,
            'delete_user_id': self.delete_user_id,
            'log': self.log,
            'error': self.error,
            'failed_step': self.failed_step,
        }


@dataclass
class DuplicateGroup:
    account_ref: str
    users: List[Dict[str, Any]]
    grit_balance: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'account_ref': self.account_ref, 'users': self.users, 'grit_balance': self.grit_balance}


def merge_score(user) -> int:
    """credentials + 10 for an email + 1 for a display name"""
    score = len(user.get('credentials') or [])
    if user.get('email'):
        score += 10
    if user.get('display_name'):
        score += 1
    return score


def rank_group(users) -> List[Dict[str, Any]]:
    """Highest score first. Equal scores keep their input order."""
    return sorted(users, key=merge_score, reverse=True)


class AccountMerger:
    """Detects and merges duplicate local users"""

    def __init__(self, engine, points=None, users=None):
        self.engine = engine
        self.points = points
        self.users = users or UserStore(engine)

    def find_duplicates(self, with_balances=False) -> List[DuplicateGroup]:
        """
        Group users sharing a non-null Drip account ID

        Args:
            with_balances: Also fetch each account's GRIT balance (best-effort)

        Returns:
            list: DuplicateGroup with users (credentials attached), groups of 2+ only
        """
        grouped = {}
        for user in self.users.users_with_account():
            grouped.setdefault(user['drip_account_id'], []).append(user)

        groups = [
            DuplicateGroup(account_ref=account_ref, users=members)
            for account_ref, members in grouped.items()
            if len(members) > 1
        ]

        user_ids = [user['id'] for group in groups for user in group.users]
        credentials = self.users.credentials_for_users(user_ids)
        for group in groups:
            for user in group.users:
                user['credentials'] = credentials.get(user['id'], [])

        if with_balances and self.points is not None:
            for group in groups:
                try:
                    group.grit_balance = self.points.get_balance(group.account_ref)
                except DripAPIError as e:
                    logger.error(f"Error fetching GRIT for {group.account_ref}: {e}")

        logger.info(f"Found {len(groups)} duplicate account groups")
        return groups

    def merge(self, keep_user_id, delete_user_id) -> MergeResult:
        """
        Merge delete_user_id into keep_user_id

        Runs in one transaction. Credentials and owned rows move to the kept
        user; a credential the kept user already holds is discarded. Profile
        fields are copied only where the kept user's value is empty, and the
        shipping address is copied whole only when the kept user has none.
        The losing user is deleted last.

        Returns:
            MergeResult with the operation log

        Raises:
            MergeError: storage failure, nothing was changed
        """
        if keep_user_id == delete_user_id:
            return MergeResult(MergeOutcome.SELF_MERGE, keep_user_id, delete_user_id,
                               error="Cannot merge user with itself")

        log = []
        step = 'load users'
        try:
            with self.engine.begin() as conn:
                keep_user = fetch_user(conn, keep_user_id)
                if keep_user is None:
                    return MergeResult(MergeOutcome.NOT_FOUND, keep_user_id, delete_user_id,
                                       error="Keep user not found")
                delete_user = fetch_user(conn, delete_user_id)
                if delete_user is None:
                    return MergeResult(MergeOutcome.NOT_FOUND, keep_user_id, delete_user_id,
                                       error="Delete user not found")

                step = 'load credentials'
                params = {'keep': keep_user_id, 'delete': delete_user_id}

                existing = {
                    (row[0], row[1]) for row in conn.execute(text("""
                        SELECT credential_type, identifier FROM connected_credentials WHERE user_id = :keep
                    """), params)
                }
                to_move = conn.execute(text("""
                    SELECT id, credential_type, identifier FROM connected_credentials
                    WHERE user_id = :delete
                    ORDER BY created_at, id
                """), params).fetchall()

                for credential_id, credential_type, identifier in to_move:
                    if (credential_type, identifier) in existing:
                        step = f"discard credential {credential_type} {identifier}"
                        conn.execute(text("DELETE FROM connected_credentials WHERE id = :id"),
                                     {'id': credential_id})
                        log.append(f"Skipped duplicate credential: {credential_type} {identifier}")
                    else:
                        step = f"move credential {credential_type} {identifier}"
                        conn.execute(text("UPDATE connected_credentials SET user_id = :keep WHERE id = :id"),
                                     {'keep': keep_user_id, 'id': credential_id})
                        log.append(f"Moved credential: {credential_type} {identifier}")

                step = 'move submissions'
                moved = conn.execute(text("""
                    UPDATE submissions SET user_id = :keep WHERE user_id = :delete
                """), params).rowcount
                if moved:
                    log.append(f"Moved {moved} submissions")

                step = 'move email verifications'
                moved = conn.execute(text("""
                    UPDATE email_verifications SET user_id = :keep WHERE user_id = :delete
                """), params).rowcount
                if moved:
                    log.append(f"Moved {moved} email verifications")

                step = 'copy user fields'
                updates = {
                    name: delete_user[name]
                    for name in PROFILE_FIELDS
                    if not keep_user.get(name) and delete_user.get(name)
                }
                if updates:
                    # COALESCE keeps a value written after the read above
                    assignments = ", ".join(f"{name} = COALESCE(NULLIF({name}, ''), :{name})" for name in updates)
                    conn.execute(text(f"""
                        UPDATE users SET {assignments}, updated_at = CURRENT_TIMESTAMP WHERE id = :keep
                    """), {**updates, 'keep': keep_user_id})
                    for name, value in updates.items():
                        log.append(f"Copied {name}: {value}")

                # Shipping is copied whole or not at all
                if not keep_user.get('shipping_address') and delete_user.get('shipping_address'):
                    step = 'copy shipping address'
                    assignments = ", ".join(f"{name} = :{name}" for name in SHIPPING_FIELDS)
                    copied = conn.execute(text(f"""
                        UPDATE users SET {assignments}, updated_at = CURRENT_TIMESTAMP
                        WHERE id = :keep AND COALESCE(shipping_address, '') = ''
                    """), {**{name: delete_user[name] for name in SHIPPING_FIELDS}, 'keep': keep_user_id}).rowcount
                    if copied:
                        log.append("Copied shipping address")

                step = 'delete user'
                conn.execute(text("DELETE FROM users WHERE id = :delete"), params)
                log.append(f"Deleted user: {delete_user_id}")

        except Exception as e:
            logger.error(f"❌ Merge of {delete_user_id} into {keep_user_id} failed at '{step}': {e}")
            raise MergeError(f"Merge failed at '{step}' and was rolled back: {e}", log=log, step=step) from e

        logger.info(f"✅ Merged user {delete_user_id} into {keep_user_id} ({len(log)} operations)")
        return MergeResult(MergeOutcome.MERGED, keep_user_id, delete_user_id, log=log)

    def merge_all(self) -> List[MergeResult]:
        """
        Merge every duplicate group into its highest-scoring user

        A failed merge is reported and the remaining merges still run.
        """
        results = []
        for group in self.find_duplicates():
            ranked = rank_group(group.users)
            keep = ranked[0]
            logger.info(
                f"Merging {len(ranked) - 1} duplicate(s) of {group.account_ref} into {keep['id']} "
                f"(score {merge_score(keep)})"
            )
            for loser in ranked[1:]:
                try:
                    results.append(self.merge(keep['id'], loser['id']))
                except MergeError as e:
                    results.append(MergeResult(
                        MergeOutcome.FAILED, keep['id'], loser['id'],
                        log=e.log, error=str(e), failed_step=e.step,
                    ))
        return results
