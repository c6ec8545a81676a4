"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-02-01

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


# Ownership, timestamps and Notion sync status shared by every entity table
RECORD_COLUMNS = """
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            created_by VARCHAR(255) NOT NULL,
            created_at TIMESTAMP NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMP NOT NULL DEFAULT NOW(),
            notion_page_id VARCHAR(255) UNIQUE,
            notion_sync_status VARCHAR(20),
            notion_synced_at TIMESTAMP,
            notion_sync_error TEXT
"""

ENTITY_TABLES = {
    'tasks': """
            title VARCHAR(500) NOT NULL,
            description TEXT,
            priority VARCHAR(20),
            status VARCHAR(30),
            due_date TIMESTAMP,
            point_value INTEGER,
            proof_required BOOLEAN,
            proof_type VARCHAR(20),
            completed_at TIMESTAMP,
            approved_at TIMESTAMP,
            completion_notes TEXT
    """,
    'rules': """
            title VARCHAR(500) NOT NULL,
            description TEXT,
            category VARCHAR(30),
            status VARCHAR(20),
            effective_from TIMESTAMP,
            effective_until TIMESTAMP
    """,
    'contracts': """
            title VARCHAR(500) NOT NULL,
            content TEXT,
            version INTEGER DEFAULT 1,
            status VARCHAR(30),
            effective_from TIMESTAMP,
            effective_until TIMESTAMP
    """,
    'journal_entries': """
            title VARCHAR(500) NOT NULL,
            content TEXT,
            entry_type VARCHAR(30),
            tags JSON
    """,
    'calendar_events': """
            title VARCHAR(500) NOT NULL,
            description TEXT,
            start_time TIMESTAMP,
            end_time TIMESTAMP,
            all_day BOOLEAN,
            location VARCHAR(500)
    """,
    'kinksters': """
            name VARCHAR(255) NOT NULL,
            bio TEXT,
            backstory TEXT,
            avatar_url TEXT,
            dominance INTEGER,
            submission INTEGER,
            charisma INTEGER,
            stamina INTEGER,
            creativity INTEGER,
            control INTEGER,
            appearance_description TEXT,
            kink_interests JSON,
            hard_limits JSON,
            soft_limits JSON,
            personality_traits JSON,
            role_preferences JSON,
            archetype VARCHAR(100),
            is_primary BOOLEAN
    """,
    'app_ideas': """
            title VARCHAR(500) NOT NULL,
            description TEXT,
            category VARCHAR(30),
            priority VARCHAR(20),
            status VARCHAR(30),
            tags JSON
    """,
    'image_generations': """
            prompt TEXT,
            model VARCHAR(100),
            type VARCHAR(50),
            aspect_ratio VARCHAR(20),
            tags JSON
    """,
}


def upgrade() -> None:
    # Create entity tables
    for table, columns in ENTITY_TABLES.items():
        op.execute(f"""
            CREATE TABLE IF NOT EXISTS {table} (
                {RECORD_COLUMNS.strip()},
                {columns.strip()}
            )
        """)

        op.execute(f"""
            CREATE INDEX IF NOT EXISTS idx_{table}_created_by
            ON {table}(created_by)
        """)

    # Create credentials table
    op.execute("""
        CREATE TABLE IF NOT EXISTS credentials (
            user_id VARCHAR(255) PRIMARY KEY,
            notion_api_token TEXT NOT NULL,
            updated_at TIMESTAMP NOT NULL DEFAULT NOW()
        )
    """)

    # Create notion_databases registry table
    op.execute("""
        CREATE TABLE IF NOT EXISTS notion_databases (
            id SERIAL PRIMARY KEY,
            user_id VARCHAR(255) NOT NULL,
            database_type VARCHAR(50) NOT NULL,
            database_id VARCHAR(255) NOT NULL,
            database_name VARCHAR(255),
            parent_page_id VARCHAR(255)
        )
    """)

    op.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS idx_notion_databases_user_type
        ON notion_databases(user_id, database_type)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS notion_databases")
    op.execute("DROP TABLE IF EXISTS credentials")
    for table in reversed(list(ENTITY_TABLES)):
        op.execute(f"DROP TABLE IF EXISTS {table}")
