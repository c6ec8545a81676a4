"""SQLAlchemy database models for the Notion to Postgres sync engine."""

from sqlalchemy import (
    Boolean, Column, DateTime, Index, Integer, JSON, String, Text, TypeDecorator
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func
import uuid

from shared.models import EntityType


class UUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses PostgreSQL's UUID type when available, otherwise uses
    CHAR(36), storing as stringified hex values.
    """
    impl = String
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        else:
            return dialect.type_descriptor(String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if not isinstance(value, uuid.UUID):
            value = uuid.UUID(str(value))
        if dialect.name == 'postgresql':
            return value
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))


Base = declarative_base()


class NotionSyncMixin:
    """Ownership, timestamps and the Notion sync-status side channel."""
    id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    created_by = Column(String(255), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    # Set explicitly on content writes only; sync-status writes leave it alone
    updated_at = Column(DateTime, nullable=False, server_default=func.now())

    notion_page_id = Column(String(255), nullable=True, unique=True)
    notion_sync_status = Column(String(20), nullable=True)  # synced, pending, failed, error
    notion_synced_at = Column(DateTime, nullable=True)
    notion_sync_error = Column(Text, nullable=True)


class Task(NotionSyncMixin, Base):
    """Model for tasks table."""
    __tablename__ = 'tasks'

    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    priority = Column(String(20), nullable=True)
    status = Column(String(30), nullable=True)
    due_date = Column(DateTime, nullable=True)
    point_value = Column(Integer, nullable=True)
    proof_required = Column(Boolean, nullable=True)
    proof_type = Column(String(20), nullable=True)
    completed_at = Column(DateTime, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    completion_notes = Column(Text, nullable=True)


class Rule(NotionSyncMixin, Base):
    """Model for rules table."""
    __tablename__ = 'rules'

    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(30), nullable=True)
    status = Column(String(20), nullable=True)
    effective_from = Column(DateTime, nullable=True)
    effective_until = Column(DateTime, nullable=True)


class Contract(NotionSyncMixin, Base):
    """Model for contracts table."""
    __tablename__ = 'contracts'

    title = Column(String(500), nullable=False)
    content = Column(Text, nullable=True)
    version = Column(Integer, nullable=True, default=1)
    status = Column(String(30), nullable=True)
    effective_from = Column(DateTime, nullable=True)
    effective_until = Column(DateTime, nullable=True)


class JournalEntry(NotionSyncMixin, Base):
    """Model for journal_entries table."""
    __tablename__ = 'journal_entries'

    title = Column(String(500), nullable=False)
    content = Column(Text, nullable=True)
    entry_type = Column(String(30), nullable=True)
    tags = Column(JSON, nullable=True)


class CalendarEvent(NotionSyncMixin, Base):
    """Model for calendar_events table."""
    __tablename__ = 'calendar_events'

    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    start_time = Column(DateTime, nullable=True)
    end_time = Column(DateTime, nullable=True)
    all_day = Column(Boolean, nullable=True)
    location = Column(String(500), nullable=True)


class Kinkster(NotionSyncMixin, Base):
    """Model for kinksters table."""
    __tablename__ = 'kinksters'

    name = Column(String(255), nullable=False)
    bio = Column(Text, nullable=True)
    backstory = Column(Text, nullable=True)
    avatar_url = Column(Text, nullable=True)
    dominance = Column(Integer, nullable=True)
    submission = Column(Integer, nullable=True)
    charisma = Column(Integer, nullable=True)
    stamina = Column(Integer, nullable=True)
    creativity = Column(Integer, nullable=True)
    control = Column(Integer, nullable=True)
    appearance_description = Column(Text, nullable=True)
    kink_interests = Column(JSON, nullable=True)
    hard_limits = Column(JSON, nullable=True)
    soft_limits = Column(JSON, nullable=True)
    personality_traits = Column(JSON, nullable=True)
    role_preferences = Column(JSON, nullable=True)
    archetype = Column(String(100), nullable=True)
    is_primary = Column(Boolean, nullable=True)


class AppIdea(NotionSyncMixin, Base):
    """Model for app_ideas table."""
    __tablename__ = 'app_ideas'

    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(30), nullable=True)
    priority = Column(String(20), nullable=True)
    status = Column(String(30), nullable=True)
    tags = Column(JSON, nullable=True)


class ImageGeneration(NotionSyncMixin, Base):
    """Model for image_generations table."""
    __tablename__ = 'image_generations'

    prompt = Column(Text, nullable=True)
    model = Column(String(100), nullable=True)
    type = Column(String(50), nullable=True)
    aspect_ratio = Column(String(20), nullable=True)
    tags = Column(JSON, nullable=True)


class Credential(Base):
    """Model for credentials table."""
    __tablename__ = 'credentials'

    user_id = Column(String(255), primary_key=True)
    notion_api_token = Column(Text, nullable=False)    # Encrypted
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())


class NotionDatabase(Base):
    """Model for notion_databases table (which Notion database backs which entity)."""
    __tablename__ = 'notion_databases'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(255), nullable=False)
    database_type = Column(String(50), nullable=False)
    database_id = Column(String(255), nullable=False)
    database_name = Column(String(255), nullable=True)
    parent_page_id = Column(String(255), nullable=True)

    __table_args__ = (
        Index('idx_notion_databases_user_type', 'user_id', 'database_type', unique=True),
    )


ENTITY_MODELS = {
    EntityType.TASKS: Task,
    EntityType.RULES: Rule,
    EntityType.CONTRACTS: Contract,
    EntityType.JOURNAL: JournalEntry,
    EntityType.CALENDAR: CalendarEvent,
    EntityType.KINKSTERS: Kinkster,
    EntityType.IDEAS: AppIdea,
    EntityType.IMAGE_GENERATIONS: ImageGeneration,
}


def get_model(entity_type) -> type:
    """Return the table model backing an entity type."""
    return ENTITY_MODELS[EntityType(entity_type)]
