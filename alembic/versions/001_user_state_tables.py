"""User state tables.

Creates users, user_xp, user_activity and wallet_connections, keyed by
wallet address.

Revision ID: 001_user_state_tables
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_user_state_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            wallet_address VARCHAR(128) PRIMARY KEY,
            display_name VARCHAR(128),
            squad VARCHAR(64),
            profile_completed BOOLEAN NOT NULL DEFAULT false,
            squad_test_completed BOOLEAN NOT NULL DEFAULT false,
            placement_test_completed BOOLEAN NOT NULL DEFAULT false,
            is_admin BOOLEAN NOT NULL DEFAULT false,
            bio TEXT,
            profile_picture TEXT,
            username VARCHAR(64),
            created_at TIMESTAMPTZ,
            last_active TIMESTAMPTZ,
            last_seen TIMESTAMPTZ,
            updated_at TIMESTAMPTZ
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_users_last_active
        ON users(last_active DESC)
    """)

    # --- XP ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_xp (
            wallet_address VARCHAR(128) PRIMARY KEY,
            total_xp INTEGER NOT NULL DEFAULT 0 CHECK (total_xp >= 0),
            bounty_xp INTEGER NOT NULL DEFAULT 0,
            course_xp INTEGER NOT NULL DEFAULT 0,
            streak_xp INTEGER NOT NULL DEFAULT 0,
            level INTEGER NOT NULL DEFAULT 1,
            updated_at TIMESTAMPTZ
        )
    """)

    # --- Activity ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_activity (
            id BIGSERIAL PRIMARY KEY,
            wallet_address VARCHAR(128) NOT NULL,
            activity_type VARCHAR(64) NOT NULL,
            metadata JSONB NOT NULL DEFAULT '{}',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_user_activity_wallet_created
        ON user_activity(wallet_address, created_at)
    """)

    # --- Wallet connections ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS wallet_connections (
            id BIGSERIAL PRIMARY KEY,
            wallet_address VARCHAR(128) NOT NULL,
            connection_type VARCHAR(32) NOT NULL,
            provider VARCHAR(32) NOT NULL DEFAULT 'unknown',
            session_data JSONB NOT NULL DEFAULT '{}',
            verification_result JSONB,
            notes TEXT,
            connection_timestamp TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_wallet_connections_ts
        ON wallet_connections(connection_timestamp)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_wallet_connections_wallet
        ON wallet_connections(wallet_address, connection_timestamp)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS wallet_connections CASCADE")
    op.execute("DROP TABLE IF EXISTS user_activity CASCADE")
    op.execute("DROP TABLE IF EXISTS user_xp CASCADE")
    op.execute("DROP TABLE IF EXISTS users CASCADE")
