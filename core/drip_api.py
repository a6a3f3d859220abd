"""
Drip Points Ledger Client
Wraps the Drip REST API that holds GRIT balances and member credentials

The ledger is an external service reached over the network. Every call has a
bounded timeout. Lookups distinguish "no such member" (None) from "the ledger
could not be reached" (DripAPIError) so callers never mistake an outage for an
account that does not exist.
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional, Dict, Any
from urllib.parse import quote

import requests

logger = logging.getLogger(__name__)

DRIP_API_BASE = os.getenv("DRIP_API_BASE", "https://api.drip.re/api/v1")
DRIP_API_KEY = os.getenv("DRIP_API_KEY", "")
DRIP_REALM_ID = os.getenv("DRIP_REALM_ID", "")
DRIP_GRIT_CURRENCY_ID = os.getenv("DRIP_GRIT_CURRENCY_ID", "")
DRIP_CURRENCY_NAME = "GRIT"
DRIP_TIMEOUT_SECONDS = float(os.getenv("DRIP_TIMEOUT_SECONDS", "10"))

# Local credential type -> Drip member search type
SEARCH_TYPES = {
    'wallet': 'wallet',
    'email': 'email',
    'discord': 'discord-id',
}


class DripAPIError(Exception):
    """The ledger could not be reached or answered with an error"""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class DripConfigError(DripAPIError):
    """DRIP_API_KEY / DRIP_REALM_ID missing"""


@dataclass
class Account:
    """Canonical identity in the Drip ledger"""
    account_id: str
    points: int = 0
    currency_ref: Optional[str] = None
    display_name: Optional[str] = None
    wallet: Optional[str] = None
    email: Optional[str] = None
    discord_id: Optional[str] = None


@dataclass
class BalanceAdjustment:
    """Result of a balance mutation"""
    success: bool
    new_balance: Optional[int] = None
    error: Optional[str] = None


class DripClient:
    """HTTP client for the Drip points ledger"""

    def __init__(self, api_key=None, realm_id=None, base_url=None, currency_id=None,
                 timeout=None, session=None):
        self.api_key = api_key if api_key is not None else DRIP_API_KEY
        self.realm_id = realm_id if realm_id is not None else DRIP_REALM_ID
        self.base_url = (base_url or DRIP_API_BASE).rstrip('/')
        self.currency_id = currency_id if currency_id is not None else DRIP_GRIT_CURRENCY_ID
        self.timeout = timeout if timeout is not None else DRIP_TIMEOUT_SECONDS
        self.session = session or requests.Session()

    # ========================================
    # TRANSPORT
    # ========================================

    def _realm_path(self, endpoint: str) -> str:
        if not self.realm_id:
            raise DripConfigError("DRIP_REALM_ID is not configured")
        return f"{self.base_url}/realms/{self.realm_id}{endpoint}"

    def _request(self, method: str, endpoint: str, **kwargs) -> Dict[str, Any]:
        """
        Send a request to the realm API

        Raises:
            DripConfigError: credentials not configured
            DripAPIError: timeout, connection failure, or non-2xx status
        """
        if not self.api_key:
            raise DripConfigError("DRIP_API_KEY is not configured")

        url = self._realm_path(endpoint)
        headers = {
            'Authorization': f'Bearer {self.api_key}',
            'Content-Type': 'application/json',
        }

        try:
            response = self.session.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.Timeout:
            raise DripAPIError(f"Drip API timeout after {self.timeout}s: {method} {endpoint}")
        except requests.RequestException as e:
            raise DripAPIError(f"Drip API request failed: {type(e).__name__}: {e}")

        if not response.ok:
            body = response.text[:200]
            logger.error(f"Drip API error details: {response.status_code} {body}")
            raise DripAPIError(
                f"Drip API error: {response.status_code} {response.reason} - {body}",
                status_code=response.status_code,
            )

        if not response.content:
            return {}
        return response.json()

    # ========================================
    # PARSING
    # ========================================

    def _member_to_account(self, member: Dict[str, Any]) -> Account:
        balances = member.get('balances') or []
        grit = next((b for b in balances if b.get('currencyName') == DRIP_CURRENCY_NAME), None)

        credentials = member.get('credentials') or []
        wallet = next(
            (c.get('publicIdentifier') for c in credentials if c.get('format') == 'blockchain'),
            None,
        )
        discord_id = member.get('discordId') or next(
            (c.get('publicIdentifier') for c in credentials if c.get('provider') == 'discord'),
            None,
        )

        if grit is not None:
            points = int(grit.get('balance') or 0)
            currency_ref = grit.get('currencyId') or self.currency_id or None
        else:
            points = int(member.get('balance') or 0)
            currency_ref = self.currency_id or None

        return Account(
            account_id=str(member.get('accountId') or member.get('id')),
            points=points,
            currency_ref=currency_ref,
            display_name=member.get('displayName') or member.get('username'),
            wallet=wallet.lower() if wallet else None,
            email=member.get('email'),
            discord_id=str(discord_id) if discord_id else None,
        )

    # ========================================
    # LOOKUPS
    # ========================================

    def find_account_by_credential(self, credential_type: str, value: str) -> Optional[Account]:
        """
        Find the member holding a wallet / email / Discord credential

        Returns:
            Account or None if no member holds the credential
        """
        search_type = SEARCH_TYPES.get(credential_type)
        if not search_type:
            raise ValueError(f"Unsupported credential type: {credential_type}")

        try:
            response = self._request(
                'GET',
                f"/members/search?type={search_type}&values={quote(value.strip().lower())}",
            )
        except DripAPIError as e:
            if e.status_code == 404:
                return None
            raise

        members = response.get('data') or []
        if not members:
            return None
        return self._member_to_account(members[0])

    def find_account_by_id(self, account_ref: str) -> Optional[Account]:
        """
        Find a member by Drip account ID

        Drip has no direct member endpoint, so the leaderboard is scanned.
        """
        try:
            response = self._request('GET', "/members/leaderboard?limit=100")
        except DripAPIError as e:
            if e.status_code == 404:
                return None
            raise

        for member in response.get('data') or []:
            if str(member.get('accountId', '')).lower() == account_ref.strip().lower():
                return self._member_to_account(member)
        return None

    def get_balance(self, account_ref: str) -> Optional[int]:
        """GRIT balance, or None if the account does not exist"""
        account = self.find_account_by_id(account_ref)
        return account.points if account else None

    # ========================================
    # MUTATIONS
    # ========================================

    def adjust_balance(self, account_ref: str, delta: int, memo: str, currency_ref=None) -> BalanceAdjustment:
        """
        Apply `delta` to a member's GRIT balance

        Never raises for ledger failures: timeouts and HTTP errors come back as
        success=False so the caller can run its compensating action.
        """
        body = {'amount': delta, 'note': memo}
        currency = currency_ref or self.currency_id
        if currency:
            body['currencyId'] = currency

        try:
            response = self._request('PATCH', f"/members/{account_ref}/balance", json=body)
        except DripAPIError as e:
            logger.error(f"Failed to adjust balance for {account_ref} by {delta}: {e}")
            return BalanceAdjustment(success=False, error=str(e))

        new_balance = response.get('balance')
        return BalanceAdjustment(
            success=True,
            new_balance=int(new_balance) if new_balance is not None else None,
        )

    def link_credential_to_account(self, credential_type: str, value: str, account_ref: str) -> bool:
        """
        Attach a credential to an account in Drip

        Any balance accrued under the bare ("ghost") credential moves to the
        account. Best-effort: failures are logged and reported as False.
        """
        search_type = SEARCH_TYPES.get(credential_type, credential_type)
        try:
            self._request(
                'POST',
                f"/credentials/link?type={search_type}&value={quote(value.strip().lower())}"
                f"&accountId={quote(account_ref)}",
            )
            return True
        except DripAPIError as e:
            logger.error(f"Failed to link {credential_type} credential to Drip account {account_ref}: {e}")
            return False

    def update_display_name(self, account_ref: str, display_name: str) -> bool:
        """Rename a member in Drip. Best-effort: failures are logged and reported as False."""
        try:
            self._request('PATCH', f"/members/{account_ref}", json={'name': display_name})
            return True
        except DripAPIError as e:
            logger.error(f"Failed to update display name for Drip account {account_ref}: {e}")
            return False
