"""Shared data models for the Notion to Postgres sync engine."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class EntityType(str, Enum):
    """Kinds of records that can be synced with a Notion database."""
    TASKS = "tasks"
    RULES = "rules"
    CONTRACTS = "contracts"
    JOURNAL = "journal"
    CALENDAR = "calendar"
    KINKSTERS = "kinksters"
    IDEAS = "app_ideas"
    IMAGE_GENERATIONS = "image_generations"


class SyncStatus(str, Enum):
    """Per-record outcome of the last reconciliation attempt."""
    SYNCED = "synced"
    PENDING = "pending"
    FAILED = "failed"
    ERROR = "error"


class MatchType(str, Enum):
    NOTION_PAGE_ID = "notion_page_id"
    TITLE = "title"
    NONE = "none"


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ConflictType(str, Enum):
    RECORD = "record"
    FIELD = "field"
    MISSING = "missing"


class Severity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ResolutionStrategy(str, Enum):
    PREFER_LOCAL = "prefer_local"
    PREFER_REMOTE = "prefer_remote"
    MERGE = "merge"
    SKIP = "skip"


class FieldSide(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


@dataclass(frozen=True)
class RemotePage:
    """A page (database row) as retrieved from Notion."""
    id: str
    url: str
    last_edited_time: str
    created_time: str
    properties: Dict[str, Any]
    archived: bool = False

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "RemotePage":
        """Build a RemotePage from a Notion API page object."""
        return cls(
            id=data["id"],
            url=data.get("url", ""),
            last_edited_time=data.get("last_edited_time", ""),
            created_time=data.get("created_time", ""),
            properties=data.get("properties") or {},
            archived=bool(data.get("archived", False)),
        )


@dataclass
class RetrieveResult:
    """Outcome of paging through a whole Notion database."""
    pages: List[RemotePage]
    total_retrieved: int
    errors: List[Exception]
    rate_limit_hits: int


@dataclass
class MatchResult:
    """Pairing of one remote page with zero or one local record."""
    remote_page: RemotePage
    local_record: Optional[Dict[str, Any]]
    match_type: MatchType
    confidence: Confidence
    title_similarity: Optional[float] = None
    duplicate: bool = False


@dataclass
class Conflict:
    """A difference between Notion and the local store awaiting a decision."""
    id: str
    type: ConflictType
    remote_value: Any
    local_value: Any
    remote_timestamp: str
    local_timestamp: str
    severity: Severity
    description: str
    page_id: str
    record_id: Optional[str] = None
    field: Optional[str] = None
    duplicate: bool = False


@dataclass
class ConflictDetectionResult:
    """Aggregate of conflicts found across a sync cycle."""
    conflicts: List[Conflict]
    has_conflicts: bool
    record_level_conflicts: int
    field_level_conflicts: int
    missing_records: int


@dataclass
class ResolutionChoice:
    """The user's decision for the record a conflict belongs to."""
    conflict_id: str
    strategy: ResolutionStrategy
    field_choices: Dict[str, FieldSide] = field(default_factory=dict)


@dataclass
class ResolutionError:
    conflict_id: str
    error: str


@dataclass
class ResolutionResult:
    """Summary of applying resolution choices."""
    success: bool = True
    records_updated: int = 0
    records_skipped: int = 0
    errors: List[ResolutionError] = field(default_factory=list)
