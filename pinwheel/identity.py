"""
Identity Resolver
Maps a wallet address, Drip account ID, email or Discord ID to a canonical Drip account
"""

import re
import logging
from typing import Optional

from core.drip_api import Account

logger = logging.getLogger(__name__)

WALLET_PATTERN = re.compile(r'^0x[0-9a-fA-F]{40}$')

HINTS = ('wallet', 'accountId', 'email', 'discord')


def normalize_identifier(value) -> str:
    """Trim and lowercase. Raises ValueError on an empty identifier."""
    if value is None:
        raise ValueError("Identifier is required")
    normalized = str(value).strip().lower()
    if not normalized:
        raise ValueError("Identifier is required")
    return normalized


def is_wallet_address(value: str) -> bool:
    return bool(WALLET_PATTERN.match(value.strip()))


class IdentityResolver:
    """
    Read-only lookups against the points ledger

    Never creates accounts or credentials. Returns None when the identifier
    is not onboarded; ledger transport errors propagate as DripAPIError.
    """

    def __init__(self, ledger):
        self.ledger = ledger

    def classify(self, identifier: str, hint: Optional[str] = None) -> str:
        if hint is not None:
            if hint not in HINTS:
                raise ValueError(f"Unsupported identifier hint: {hint}")
            return hint
        return 'wallet' if is_wallet_address(identifier) else 'accountId'

    def resolve(self, identifier: str, hint: Optional[str] = None) -> Optional[Account]:
        """
        Resolve an identifier to a Drip account

        Args:
            identifier: wallet address, Drip account ID, email or Discord ID
            hint: 'wallet', 'accountId', 'email' or 'discord' (None = classify by shape)

        Returns:
            Account or None if not onboarded
        """
        kind = self.classify(identifier, hint)

        if kind == 'accountId':
            # Drip account IDs are case sensitive, only trim
            account_ref = str(identifier).strip()
            if not account_ref:
                raise ValueError("Identifier is required")
            account = self.ledger.find_account_by_id(account_ref)
        else:
            account = self.ledger.find_account_by_credential(kind, normalize_identifier(identifier))

        if account is None:
            logger.debug(f"No Drip account for {kind} identifier")
        return account
