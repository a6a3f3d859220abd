"""
Admin authorization policy
Allow-lists of admin emails and wallets, built once at startup from the environment
"""

import hmac
import os
import logging

logger = logging.getLogger(__name__)


def _parse_list(raw):
    return frozenset(item.strip().lower() for item in (raw or '').split(',') if item.strip())


class AdminPolicy:
    """Decides whether a principal may use the admin endpoints"""

    def __init__(self, emails=(), wallets=(), api_key=None):
        self.emails = frozenset(e.strip().lower() for e in emails if e and e.strip())
        self.wallets = frozenset(w.strip().lower() for w in wallets if w and w.strip())
        self.api_key = api_key or None

    @classmethod
    def from_env(cls):
        policy = cls(
            emails=_parse_list(os.getenv('ADMIN_EMAILS')),
            wallets=_parse_list(os.getenv('ADMIN_WALLETS')),
            api_key=os.getenv('CRON_SECRET') or os.getenv('ADMIN_API_KEY'),
        )
        logger.info(f"Admin policy loaded: {len(policy.emails)} emails, {len(policy.wallets)} wallets")
        return policy

    def is_admin(self, identifiers) -> bool:
        """True if any of the principal's emails or wallets is allow-listed"""
        for identifier in identifiers or ():
            if not identifier:
                continue
            value = str(identifier).strip().lower()
            if value in self.emails or value in self.wallets:
                return True
        return False

    def check_api_key(self, token) -> bool:
        """Constant-time comparison against CRON_SECRET / ADMIN_API_KEY"""
        if not self.api_key or not token:
            return False
        return hmac.compare_digest(str(token), self.api_key)
