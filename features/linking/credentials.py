"""
Credential Linking
Attach wallet / email / Discord credentials to a local user, adopting the Drip account they already hold
"""

import uuid
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, List, Dict, Any

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from core.drip_api import DripAPIError
from pinwheel.identity import normalize_identifier, is_wallet_address
from .users import CREDENTIAL_TYPES, UserStore

logger = logging.getLogger(__name__)


class LinkOutcome(Enum):
    LINKED = "linked"
    ALREADY_LINKED_SELF = "already_linked_self"
    ALREADY_LINKED_OTHER = "already_linked_other"
    USER_NOT_FOUND = "user_not_found"


@dataclass
class LinkResult:
    outcome: LinkOutcome
    credential_type: str
    identifier: str
    adopted_account_ref: Optional[str] = None
    propagated: Optional[bool] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome in (LinkOutcome.LINKED, LinkOutcome.ALREADY_LINKED_SELF)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.ok,
            'code': self.outcome.value,
            'credential_type': self.credential_type,
            'identifier': self.identifier,
            'adopted_account_ref': self.adopted_account_ref,
            'propagated': self.propagated,
            'error': self.error,
        }


def validate_credential(credential_type, identifier) -> str:
    """Check the type and return the normalized identifier"""
    if credential_type not in CREDENTIAL_TYPES:
        raise ValueError(f"Unsupported credential type: {credential_type}")
    normalized = normalize_identifier(identifier)
    if credential_type == 'wallet' and not is_wallet_address(normalized):
        raise ValueError("Invalid wallet address")
    if credential_type == 'email' and '@' not in normalized:
        raise ValueError("Invalid email address")
    return normalized


class CredentialLinker:
    """Links credentials to local users"""

    def __init__(self, engine, points, users=None):
        self.engine = engine
        self.points = points
        self.users = users or UserStore(engine)

    def link_credential(self, user_id, credential_type, identifier, display_name=None) -> LinkResult:
        """
        Link a credential to a user

        A credential is owned by at most one user. If the credential already
        holds a Drip account and the user has none yet, the user adopts it.
        Propagating the link to Drip is best-effort.

        Returns:
            LinkResult
        """
        normalized = validate_credential(credential_type, identifier)

        def result(outcome, **kwargs):
            return LinkResult(outcome=outcome, credential_type=credential_type, identifier=normalized, **kwargs)

        user = self.users.get_user(user_id)
        if user is None:
            return result(LinkOutcome.USER_NOT_FOUND, error="User not found")

        owner = self.users.get_credential_owner(credential_type, normalized)
        if owner == user_id:
            return result(LinkOutcome.ALREADY_LINKED_SELF)
        if owner is not None:
            logger.warning(f"{credential_type} credential already linked to another user")
            return result(LinkOutcome.ALREADY_LINKED_OTHER, error=f"This {credential_type} is already linked to another account")

        try:
            account = self.points.find_account_by_credential(credential_type, normalized)
        except DripAPIError as e:
            # Local link still proceeds, adoption can be repaired later
            logger.error(f"Drip lookup failed while linking {credential_type}: {e}")
            account = None

        adopt_ref = account.account_id if account and not user.get('drip_account_id') else None

        try:
            adopted = self._insert_credential(user_id, credential_type, normalized, display_name, adopt_ref)
        except IntegrityError:
            # Another request linked the same credential first
            owner = self.users.get_credential_owner(credential_type, normalized)
            if owner == user_id:
                return result(LinkOutcome.ALREADY_LINKED_SELF)
            return result(LinkOutcome.ALREADY_LINKED_OTHER, error=f"This {credential_type} is already linked to another account")

        account_ref = user.get('drip_account_id') or (adopt_ref if adopted else None)
        if adopted:
            logger.info(f"👻 User {user_id} adopted Drip account {adopt_ref} via {credential_type}")

        propagated = None
        if account_ref and (account is None or account.account_id != account_ref):
            propagated = self._propagate(credential_type, normalized, account_ref)

        logger.info(f"🔗 Linked {credential_type} credential to user {user_id}")
        return result(
            LinkOutcome.LINKED,
            adopted_account_ref=adopt_ref if adopted else None,
            propagated=propagated,
        )

    def _insert_credential(self, user_id, credential_type, identifier, display_name, adopt_ref) -> bool:
        """Insert the credential and adopt the account in one transaction. Returns True if adopted."""
        with self.engine.begin() as conn:
            conn.execute(text("""
                INSERT INTO connected_credentials
                    (id, user_id, credential_type, identifier, display_name, verified)
                VALUES
                    (:id, :user_id, :credential_type, :identifier, :display_name, :verified)
            """), {
                'id': str(uuid.uuid4()),
                'user_id': user_id,
                'credential_type': credential_type,
                'identifier': identifier,
                'display_name': display_name,
                'verified': True,
            })

            if not adopt_ref:
                return False

            updated = conn.execute(text("""
                UPDATE users SET drip_account_id = :ref, updated_at = CURRENT_TIMESTAMP
                WHERE id = :id AND drip_account_id IS NULL
            """), {'ref': adopt_ref, 'id': user_id})
            return updated.rowcount > 0

    def _propagate(self, credential_type, identifier, account_ref) -> bool:
        try:
            linked = self.points.link_credential_to_account(credential_type, identifier, account_ref)
        except Exception as e:
            logger.error(f"Failed to propagate {credential_type} link to Drip account {account_ref}: {e}")
            return False
        if not linked:
            logger.warning(f"⚠️ {credential_type} link not propagated to Drip account {account_ref}, kept locally")
        return bool(linked)

    def unlink_credential(self, user_id, credential_type, identifier) -> bool:
        """Remove one of the user's own credentials. Returns False if they don't hold it."""
        normalized = validate_credential(credential_type, identifier)
        removed = self.users.delete_credential(user_id, credential_type, normalized)
        if removed:
            logger.info(f"Unlinked {credential_type} credential from user {user_id}")
        return removed

    def list_credentials(self, user_id, credential_type=None) -> List[Dict[str, Any]]:
        if credential_type is not None and credential_type not in CREDENTIAL_TYPES:
            raise ValueError(f"Unsupported credential type: {credential_type}")
        return self.users.get_credentials(user_id, credential_type)
