"""
Database Schema Setup for the Pin Wheel portal
Creates the user, credential, entry, winner and auto-entry tables
"""

import os
import logging

from sqlalchemy import create_engine, event, text

logger = logging.getLogger(__name__)

# Portable between PostgreSQL (production) and SQLite (tests).
# Row ids are uuid strings generated by the application.
PORTAL_SCHEMA_SQL = """
-- ============================================
-- LOCAL USERS & CREDENTIALS
-- ============================================

CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT,
    display_name TEXT,
    drip_account_id TEXT,  -- accountRef in the Drip ledger, NULL until linked
    shipping_name TEXT,
    shipping_email TEXT,
    shipping_phone TEXT,
    shipping_address TEXT,
    shipping_city TEXT,
    shipping_state TEXT,
    shipping_zip TEXT,
    shipping_country TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS connected_credentials (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users(id),
    credential_type VARCHAR(20) NOT NULL,  -- wallet, email, discord
    identifier TEXT NOT NULL,  -- always lowercase
    display_name TEXT,
    verified BOOLEAN DEFAULT FALSE,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(credential_type, identifier)
);

-- User-owned rows migrated by account merge
CREATE TABLE IF NOT EXISTS submissions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users(id),
    content_url TEXT,
    status VARCHAR(20) DEFAULT 'pending',
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS email_verifications (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users(id),
    email TEXT NOT NULL,
    token TEXT,
    expires_at TIMESTAMP,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- ============================================
-- PIN WHEEL
-- ============================================

-- One entry per account per draw date
CREATE TABLE IF NOT EXISTS pinwheel_entries (
    id TEXT PRIMARY KEY,
    wallet_address TEXT NOT NULL,  -- Drip account ID (legacy rows: raw identifier)
    entry_date VARCHAR(10) NOT NULL,  -- YYYY-MM-DD
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(wallet_address, entry_date)
);

-- One winner per draw date
CREATE TABLE IF NOT EXISTS pinwheel_winners (
    id TEXT PRIMARY KEY,
    wallet_address TEXT NOT NULL,  -- winning Drip account ID
    date_won VARCHAR(10) NOT NULL UNIQUE,
    pin_won TEXT NOT NULL,
    spin_segment_index INTEGER NOT NULL,
    total_entries INTEGER NOT NULL,
    shipped BOOLEAN DEFAULT FALSE,
    server_seed TEXT,
    client_seed TEXT,
    proof_hash TEXT,
    triggered_by TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS pinwheel_auto_entries (
    wallet_address TEXT PRIMARY KEY,  -- normalized identifier as opted in
    enabled BOOLEAN DEFAULT TRUE,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- ============================================
-- INDICES FOR PERFORMANCE
-- ============================================

CREATE INDEX IF NOT EXISTS idx_users_drip_account ON users(drip_account_id);
CREATE INDEX IF NOT EXISTS idx_credentials_user ON connected_credentials(user_id);
CREATE INDEX IF NOT EXISTS idx_submissions_user ON submissions(user_id);
CREATE INDEX IF NOT EXISTS idx_email_verifications_user ON email_verifications(user_id);
CREATE INDEX IF NOT EXISTS idx_pinwheel_entries_date ON pinwheel_entries(entry_date);
CREATE INDEX IF NOT EXISTS idx_pinwheel_winners_wallet ON pinwheel_winners(wallet_address);
"""


def create_portal_engine(database_url=None):
    """
    Build the SQLAlchemy engine from DATABASE_URL

    Args:
        database_url: Override for the DATABASE_URL environment variable

    Returns:
        Engine
    """
    database_url = database_url or os.getenv('DATABASE_URL')
    if not database_url:
        raise ValueError("DATABASE_URL is not set")

    # Fix postgres:// to postgresql://
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)

    if database_url.startswith("sqlite"):
        return _create_sqlite_engine(database_url)
    return create_engine(database_url, pool_pre_ping=True)


def _create_sqlite_engine(database_url):
    # Requests and the scheduler share the engine across threads
    engine = create_engine(database_url, connect_args={"check_same_thread": False, "timeout": 30})

    # Take the write lock when a transaction starts so concurrent writers
    # wait on the busy timeout instead of failing on a lock upgrade
    @event.listens_for(engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def _split_statements(schema_sql):
    statements = []
    current_statement = []

    for line in schema_sql.split('\n'):
        # Skip comments and empty lines
        stripped = line.strip()
        if not stripped or stripped.startswith('--'):
            continue

        current_statement.append(line)

        if stripped.endswith(';'):
            statements.append('\n'.join(current_statement))
            current_statement = []

    return statements


def setup_portal_database(engine):
    """
    Create all portal tables and indices

    SQLite can only execute one statement at a time, so the schema is split
    and run statement by statement inside one transaction.

    Args:
        engine: SQLAlchemy engine instance

    Returns:
        bool: True once the schema exists
    """
    logger.info("Setting up Pin Wheel database schema...")

    try:
        with engine.begin() as conn:
            for statement in _split_statements(PORTAL_SCHEMA_SQL):
                conn.execute(text(statement))
    except Exception as e:
        logger.error(f"❌ Failed to setup portal database: {e}")
        raise

    logger.info("✅ Pin Wheel database schema created successfully")
    return True
