"""
Core modules for the Pin Wheel portal

Modules:
- drip_api: Drip points ledger client (balances, member lookup, credential linking)
- api_server: Flask API for entries, draws, account linking and admin tools
"""

from .drip_api import (
    DripClient,
    DripAPIError,
    DripConfigError,
    Account,
    BalanceAdjustment,
)

__all__ = [
    'DripClient',
    'DripAPIError',
    'DripConfigError',
    'Account',
    'BalanceAdjustment',
]
