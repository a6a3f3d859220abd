"""
Account Linking Feature

Credential linking and duplicate account reconciliation.
"""

from .users import UserStore
from .credentials import CredentialLinker, LinkOutcome, LinkResult
from .merge import AccountMerger, MergeError, MergeOutcome, MergeResult, DuplicateGroup, rank_group

__all__ = [
    'UserStore',
    'CredentialLinker',
    'LinkOutcome',
    'LinkResult',
    'AccountMerger',
    'MergeError',
    'MergeOutcome',
    'MergeResult',
    'DuplicateGroup',
    'rank_group',
]
