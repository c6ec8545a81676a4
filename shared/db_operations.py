"""Database operations for the Notion to Postgres sync engine."""

import uuid
from typing import Any, Dict, List, Optional
from sqlalchemy import DateTime, create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from shared.db_models import Base, Credential, NotionDatabase, get_model
from shared.config import get_database_url
from shared.models import SyncStatus
from shared.timestamps import to_naive_utc, utcnow

SYNC_COLUMNS = ('notion_page_id', 'notion_sync_status', 'notion_synced_at', 'notion_sync_error')
PROTECTED_COLUMNS = ('id', 'created_by', 'created_at')


class RecordNotFoundError(LookupError):
    """Raised when a local record does not exist."""


class DatabaseOperations:
    """Handles all database operations for the sync engine."""

    def __init__(self, database_url: Optional[str] = None):
        """Initialize database connection."""
        self.database_url = database_url or get_database_url()
        if self.database_url.startswith("sqlite") and ":memory:" in self.database_url:
            # One shared connection so every thread sees the same in-memory database
            self.engine = create_engine(
                self.database_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool
            )
        else:
            self.engine = create_engine(self.database_url, pool_pre_ping=True)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def create_tables(self):
        """Create all tables in the database."""
        Base.metadata.create_all(bind=self.engine)

    def get_session(self) -> Session:
        """Get a new database session."""
        return self.SessionLocal()

    # Entity Record Operations

    def get_record(self, entity_type, record_id: str) -> Optional[Dict[str, Any]]:
        """
        Get a single local record by ID.

        Args:
            entity_type: Entity type whose table to query
            record_id: The record's primary key

        Returns:
            Record as a dict keyed by column name, or None if not found
        """
        model = get_model(entity_type)
        with self.get_session() as session:
            row = session.get(model, _as_uuid(record_id))
            return _row_to_dict(row) if row else None

    def get_records_for_user(self, entity_type, user_id: str) -> List[Dict[str, Any]]:
        """
        Get all local records of an entity type owned by a user.

        Args:
            entity_type: Entity type whose table to query
            user_id: The owning user ID

        Returns:
            List of records as dicts
        """
        model = get_model(entity_type)
        with self.get_session() as session:
            stmt = select(model).where(model.created_by == user_id).order_by(model.created_at.asc())
            result = session.execute(stmt)
            return [_row_to_dict(row) for row in result.scalars().all()]

    def update_record(
        self,
        entity_type,
        record_id: str,
        values: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        Update content columns of a local record and bump updated_at.

        Unknown keys, sync columns and ownership columns are ignored.

        Args:
            entity_type: Entity type whose table to update
            record_id: The record's primary key
            values: Column values to write

        Returns:
            The updated record as a dict

        Raises:
            RecordNotFoundError: If the record does not exist
        """
        model = get_model(entity_type)
        with self.get_session() as session:
            row = session.get(model, _as_uuid(record_id))
            if row is None:
                raise RecordNotFoundError(f"{model.__tablename__} record {record_id} not found")

            for key, value in _content_values(model, values).items():
                setattr(row, key, value)
            row.updated_at = utcnow()

            session.commit()
            session.refresh(row)
            return _row_to_dict(row)

    def insert_record(
        self,
        entity_type,
        user_id: str,
        values: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        Insert a new local record owned by a user.

        Args:
            entity_type: Entity type whose table to insert into
            user_id: The owning user ID
            values: Column values for the new record

        Returns:
            The created record as a dict
        """
        model = get_model(entity_type)
        now = utcnow()
        with self.get_session() as session:
            row = model(
                **_content_values(model, values),
                created_by=user_id,
                created_at=now,
                updated_at=now
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _row_to_dict(row)

    # Sync Status Operations

    def update_sync_status(
        self,
        entity_type,
        record_id: str,
        status: SyncStatus,
        notion_page_id: Optional[str] = None,
        error: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Update the Notion sync columns of a record.

        Marking synced stamps notion_synced_at and links the page ID;
        marking pending clears notion_synced_at. updated_at is left alone
        so a status write never looks like a local edit.

        Args:
            entity_type: Entity type whose table to update
            record_id: The record's primary key
            status: New sync status
            notion_page_id: Notion page ID to link (synced only)
            error: Error message (failed/error only)

        Returns:
            The updated record as a dict

        Raises:
            RecordNotFoundError: If the record does not exist
        """
        model = get_model(entity_type)
        status = SyncStatus(status)
        with self.get_session() as session:
            row = session.get(model, _as_uuid(record_id))
            if row is None:
                raise RecordNotFoundError(f"{model.__tablename__} record {record_id} not found")

            row.notion_sync_status = status.value
            row.notion_sync_error = error or None

            if status == SyncStatus.SYNCED:
                row.notion_synced_at = utcnow()
                if notion_page_id:
                    row.notion_page_id = notion_page_id
            elif status == SyncStatus.PENDING:
                row.notion_synced_at = None

            session.commit()
            session.refresh(row)
            return _row_to_dict(row)

    # Credential Management Operations

    def store_credentials(
        self,
        user_id: str,
        notion_api_token: str,
        encryption_service: 'EncryptionService'
    ) -> Credential:
        """
        Store or update a user's Notion token with encryption.

        Args:
            user_id: The user ID
            notion_api_token: Notion API token (will be encrypted)
            encryption_service: Encryption service for encrypting tokens

        Returns:
            The created or updated Credential record
        """
        with self.get_session() as session:
            encrypted_token = encryption_service.encrypt(notion_api_token)

            credential = session.get(Credential, user_id)
            if credential:
                credential.notion_api_token = encrypted_token
                credential.updated_at = utcnow()
            else:
                credential = Credential(user_id=user_id, notion_api_token=encrypted_token)
                session.add(credential)

            session.commit()
            session.refresh(credential)
            return credential

    def get_notion_token(
        self,
        user_id: str,
        encryption_service: 'EncryptionService'
    ) -> Optional[str]:
        """
        Retrieve and decrypt a user's Notion token.

        Returns:
            Decrypted token or None if not stored
        """
        with self.get_session() as session:
            credential = session.get(Credential, user_id)
            if not credential:
                return None
            return encryption_service.decrypt(credential.notion_api_token)

    # Notion Database Registry Operations

    def register_notion_database(
        self,
        user_id: str,
        entity_type,
        database_id: str,
        database_name: Optional[str] = None
    ) -> NotionDatabase:
        """Link a Notion database to one of a user's entity types."""
        database_type = _entity_value(entity_type)
        with self.get_session() as session:
            stmt = select(NotionDatabase).where(
                NotionDatabase.user_id == user_id,
                NotionDatabase.database_type == database_type
            )
            entry = session.execute(stmt).scalar_one_or_none()
            if entry:
                entry.database_id = database_id
                entry.database_name = database_name
            else:
                entry = NotionDatabase(
                    user_id=user_id,
                    database_type=database_type,
                    database_id=database_id,
                    database_name=database_name
                )
                session.add(entry)

            session.commit()
            session.refresh(entry)
            return entry

    def get_notion_database(self, user_id: str, entity_type) -> Optional[NotionDatabase]:
        """
        Look up the Notion database linked to a user's entity type.

        Returns:
            NotionDatabase entry or None if the entity type is not linked
        """
        with self.get_session() as session:
            stmt = select(NotionDatabase).where(
                NotionDatabase.user_id == user_id,
                NotionDatabase.database_type == _entity_value(entity_type)
            )
            return session.execute(stmt).scalar_one_or_none()


def _entity_value(entity_type) -> str:
    return getattr(entity_type, 'value', entity_type)


def _as_uuid(record_id) -> uuid.UUID:
    if isinstance(record_id, uuid.UUID):
        return record_id
    return uuid.UUID(str(record_id))


def _row_to_dict(row) -> Dict[str, Any]:
    data = {}
    for column in row.__table__.columns:
        value = getattr(row, column.key)
        if isinstance(value, uuid.UUID):
            value = str(value)
        data[column.key] = value
    return data


def _content_values(model, values: Dict[str, Any]) -> Dict[str, Any]:
    """Keep only writable content columns, coercing timestamps for DateTime columns."""
    columns = model.__table__.columns
    content = {}
    for key, value in values.items():
        if key not in columns or key in SYNC_COLUMNS or key in PROTECTED_COLUMNS:
            continue
        if key == 'updated_at':
            continue
        if isinstance(columns[key].type, DateTime) and value is not None:
            value = to_naive_utc(value)
        content[key] = value
    return content
