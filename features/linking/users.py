"""
Local user and credential storage
Rows in users and connected_credentials, plus profile edits and admin user management
"""

import uuid
import logging
from typing import Optional, List, Dict, Any

from sqlalchemy import text

from utils.error_helpers import db_error_handler

logger = logging.getLogger(__name__)

CREDENTIAL_TYPES = ('wallet', 'email', 'discord')

PROFILE_FIELDS = ('email', 'display_name', 'drip_account_id')

SHIPPING_FIELDS = (
    'shipping_name', 'shipping_email', 'shipping_phone', 'shipping_address',
    'shipping_city', 'shipping_state', 'shipping_zip', 'shipping_country',
)

USER_FIELDS = PROFILE_FIELDS + SHIPPING_FIELDS

# Shipping form field -> column
ADDRESS_FIELDS = {
    'name': 'shipping_name',
    'address': 'shipping_address',
    'city': 'shipping_city',
    'state': 'shipping_state',
    'zip': 'shipping_zip',
    'country': 'shipping_country',
}
REQUIRED_ADDRESS_FIELDS = ('name', 'address', 'city', 'state', 'zip')
DEFAULT_COUNTRY = "United States"

DISPLAY_NAME_MIN = 2
DISPLAY_NAME_MAX = 30
SEARCH_MIN_LENGTH = 3
SEARCH_LIMIT = 20


def _row_to_user(row) -> Dict[str, Any]:
    user = {'id': row[0]}
    user.update(zip(USER_FIELDS, row[1:1 + len(USER_FIELDS)]))
    user['created_at'] = str(row[-1]) if row[-1] is not None else None
    return user


def _row_to_credential(row) -> Dict[str, Any]:
    return {
        'id': row[0],
        'user_id': row[1],
        'credential_type': row[2],
        'identifier': row[3],
        'display_name': row[4],
        'verified': bool(row[5]),
        'created_at': str(row[6]) if row[6] is not None else None,
    }


USER_SELECT = f"SELECT id, {', '.join(USER_FIELDS)}, created_at FROM users"
CREDENTIAL_SELECT = """
    SELECT id, user_id, credential_type, identifier, display_name, verified, created_at
    FROM connected_credentials
"""


def fetch_user(conn, user_id) -> Optional[Dict[str, Any]]:
    """Read a user on an open connection, inside the caller's transaction"""
    row = conn.execute(text(f"{USER_SELECT} WHERE id = :id"), {'id': user_id}).fetchone()
    return _row_to_user(row) if row else None


class UserStore:
    """Reads and writes LocalUser and Credential rows"""

    def __init__(self, engine):
        self.engine = engine

    @db_error_handler
    def create_user(self, **fields) -> str:
        """
        Insert a LocalUser

        Args:
            **fields: any of USER_FIELDS

        Returns:
            str: new user id
        """
        unknown = set(fields) - set(USER_FIELDS)
        if unknown:
            raise ValueError(f"Unknown user fields: {', '.join(sorted(unknown))}")

        user_id = str(uuid.uuid4())
        columns = ['id'] + list(fields)
        with self.engine.begin() as conn:
            conn.execute(text(f"""
                INSERT INTO users ({', '.join(columns)})
                VALUES ({', '.join(':' + c for c in columns)})
            """), {'id': user_id, **fields})
        return user_id

    @db_error_handler
    def get_user(self, user_id) -> Optional[Dict[str, Any]]:
        with self.engine.connect() as conn:
            return fetch_user(conn, user_id)

    # ========================================
    # PROFILE
    # ========================================

    @db_error_handler
    def get_shipping_address(self, user_id) -> Optional[Dict[str, Any]]:
        """Saved address in form fields, or None if the user has not saved one"""
        user = self.get_user(user_id)
        if user is None or not user.get('shipping_address'):
            return None
        return {field: user[column] for field, column in ADDRESS_FIELDS.items()}

    @db_error_handler
    def set_shipping_address(self, user_id, address) -> bool:
        """
        Replace the user's whole shipping address

        Args:
            user_id: LocalUser id
            address: dict with name, address, city, state, zip and optional country

        Returns:
            bool: False if the user does not exist

        Raises:
            ValueError: a required field is missing
        """
        missing = [f for f in REQUIRED_ADDRESS_FIELDS if not str(address.get(f) or '').strip()]
        if missing:
            raise ValueError(f"All address fields are required (missing: {', '.join(missing)})")

        values = {column: str(address.get(field) or '').strip() for field, column in ADDRESS_FIELDS.items()}
        values['shipping_country'] = values['shipping_country'] or DEFAULT_COUNTRY

        assignments = ", ".join(f"{column} = :{column}" for column in values)
        with self.engine.begin() as conn:
            result = conn.execute(text(f"""
                UPDATE users SET {assignments}, updated_at = CURRENT_TIMESTAMP WHERE id = :id
            """), {**values, 'id': user_id})

        if result.rowcount:
            logger.info(f"📦 Saved shipping address for user {user_id}")
        return result.rowcount > 0

    @db_error_handler
    def set_display_name(self, user_id, display_name) -> Optional[str]:
        """
        Store a trimmed display name

        Returns:
            str: the stored name, or None if the user does not exist

        Raises:
            ValueError: not a string, or outside 2-30 characters after trimming
        """
        if not isinstance(display_name, str) or not display_name.strip():
            raise ValueError("Display name is required")
        display_name = display_name.strip()
        if not DISPLAY_NAME_MIN <= len(display_name) <= DISPLAY_NAME_MAX:
            raise ValueError(f"Display name must be {DISPLAY_NAME_MIN}-{DISPLAY_NAME_MAX} characters")

        with self.engine.begin() as conn:
            result = conn.execute(text("""
                UPDATE users SET display_name = :display_name, updated_at = CURRENT_TIMESTAMP WHERE id = :id
            """), {'display_name': display_name, 'id': user_id})
        return display_name if result.rowcount else None

    # ========================================
    # ADMIN
    # ========================================

    @db_error_handler
    def count_submissions(self, user_id) -> int:
        with self.engine.connect() as conn:
            return conn.execute(text("""
                SELECT COUNT(*) FROM submissions WHERE user_id = :user_id
            """), {'user_id': user_id}).scalar() or 0

    @db_error_handler
    def delete_user(self, user_id) -> Optional[List[str]]:
        """
        Delete a user and every row they own, in one transaction

        Returns:
            list: operation log, or None if the user does not exist
        """
        params = {'user_id': user_id}
        log = []
        with self.engine.begin() as conn:
            if fetch_user(conn, user_id) is None:
                return None

            deleted = conn.execute(text("""
                DELETE FROM connected_credentials WHERE user_id = :user_id
            """), params).rowcount
            log.append(f"Deleted {deleted} credentials")

            deleted = conn.execute(text("""
                DELETE FROM email_verifications WHERE user_id = :user_id
            """), params).rowcount
            log.append(f"Deleted {deleted} email verifications")

            deleted = conn.execute(text("""
                DELETE FROM submissions WHERE user_id = :user_id
            """), params).rowcount
            if deleted:
                log.append(f"Deleted {deleted} submissions")

            conn.execute(text("DELETE FROM users WHERE id = :user_id"), params)
            log.append(f"Deleted user: {user_id}")

        logger.warning(f"🗑️ Deleted user {user_id} ({len(log)} operations)")
        return log

    @db_error_handler
    def search_users(self, query, limit=SEARCH_LIMIT) -> List[Dict[str, Any]]:
        """
        Find users by email, display name, exact id, or a credential identifier

        Raises:
            ValueError: query shorter than 3 characters
        """
        query = (query or '').strip().lower()
        if len(query) < SEARCH_MIN_LENGTH:
            raise ValueError(f"Search query must be at least {SEARCH_MIN_LENGTH} characters")

        params = {'pattern': f"%{query}%", 'query': query, 'limit': int(limit)}
        with self.engine.connect() as conn:
            found = [_row_to_user(row) for row in conn.execute(text(f"""
                {USER_SELECT}
                WHERE LOWER(email) LIKE :pattern OR LOWER(display_name) LIKE :pattern OR id = :query
                ORDER BY created_at, id
                LIMIT :limit
            """), params)]
            found += [_row_to_user(row) for row in conn.execute(text(f"""
                {USER_SELECT}
                WHERE id IN (
                    SELECT user_id FROM connected_credentials WHERE identifier LIKE :pattern
                )
                ORDER BY created_at, id
                LIMIT :limit
            """), params)]

        users, seen = [], set()
        for user in found:
            if user['id'] not in seen:
                seen.add(user['id'])
                users.append(user)

        credentials = self.credentials_for_users([u['id'] for u in users])
        for user in users:
            user['credentials'] = credentials[user['id']]
        return users

    @db_error_handler
    def users_with_account(self) -> List[Dict[str, Any]]:
        """Every user holding a Drip account, grouped by account then creation order"""
        with self.engine.connect() as conn:
            result = conn.execute(text(f"""
                {USER_SELECT}
                WHERE drip_account_id IS NOT NULL
                ORDER BY drip_account_id, created_at, id
            """))
            return [_row_to_user(row) for row in result]

    @db_error_handler
    def find_user_by_credential(self, credential_type, identifier) -> Optional[Dict[str, Any]]:
        owner = self.get_credential_owner(credential_type, identifier)
        return self.get_user(owner) if owner else None

    @db_error_handler
    def get_credential_owner(self, credential_type, identifier) -> Optional[str]:
        with self.engine.connect() as conn:
            row = conn.execute(text("""
                SELECT user_id FROM connected_credentials
                WHERE credential_type = :credential_type AND identifier = :identifier
            """), {'credential_type': credential_type, 'identifier': identifier.strip().lower()}).fetchone()
        return row[0] if row else None

    @db_error_handler
    def get_credentials(self, user_id, credential_type=None) -> List[Dict[str, Any]]:
        query = f"{CREDENTIAL_SELECT} WHERE user_id = :user_id"
        params = {'user_id': user_id}
        if credential_type:
            query += " AND credential_type = :credential_type"
            params['credential_type'] = credential_type
        query += " ORDER BY created_at, id"

        with self.engine.connect() as conn:
            return [_row_to_credential(row) for row in conn.execute(text(query), params)]

    @db_error_handler
    def credentials_for_users(self, user_ids) -> Dict[str, List[Dict[str, Any]]]:
        """Credentials keyed by owner"""
        credentials = {user_id: [] for user_id in user_ids}
        if not user_ids:
            return credentials

        placeholders = ", ".join(f":u_{i}" for i in range(len(user_ids)))
        params = {f"u_{i}": user_id for i, user_id in enumerate(user_ids)}
        with self.engine.connect() as conn:
            result = conn.execute(text(f"""
                {CREDENTIAL_SELECT}
                WHERE user_id IN ({placeholders})
                ORDER BY created_at, id
            """), params)
            for row in result:
                credential = _row_to_credential(row)
                credentials[credential['user_id']].append(credential)
        return credentials

    @db_error_handler
    def delete_credential(self, user_id, credential_type, identifier) -> bool:
        with self.engine.begin() as conn:
            result = conn.execute(text("""
                DELETE FROM connected_credentials
                WHERE user_id = :user_id
                  AND credential_type = :credential_type
                  AND identifier = :identifier
            """), {
                'user_id': user_id,
                'credential_type': credential_type,
                'identifier': identifier.strip().lower(),
            })
        return result.rowcount > 0
