"""Fixed vocabularies shared by both transform directions.

Every select property that maps onto a local enum column has a closed
``Enum`` and a label table keyed by it. Inbound, a Notion label that is not
in the table falls back to its lower-cased text; outbound, a local value
that is not a member falls back to the table's default label.
"""

from enum import Enum
from typing import Dict, List, Optional, Type

from shared.models import EntityType


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    APPROVED = "approved"
    CANCELLED = "cancelled"


class ProofType(str, Enum):
    PHOTO = "photo"
    VIDEO = "video"
    TEXT = "text"


class RuleCategory(str, Enum):
    STANDING = "standing"
    SITUATIONAL = "situational"
    TEMPORARY = "temporary"
    PROTOCOL = "protocol"


class ContractStatus(str, Enum):
    DRAFT = "draft"
    PENDING_SIGNATURE = "pending_signature"
    ACTIVE = "active"
    ARCHIVED = "archived"
    SUPERSEDED = "superseded"


class JournalEntryType(str, Enum):
    PERSONAL = "personal"
    SHARED = "shared"
    GRATITUDE = "gratitude"
    SCENE_LOG = "scene_log"


class IdeaPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class IdeaStatus(str, Enum):
    NEW = "new"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ARCHIVED = "archived"


TASK_PRIORITY_LABELS: Dict[TaskPriority, str] = {
    TaskPriority.LOW: "Low",
    TaskPriority.MEDIUM: "Medium",
    TaskPriority.HIGH: "High",
    TaskPriority.URGENT: "Urgent",
}

TASK_STATUS_LABELS: Dict[TaskStatus, str] = {
    TaskStatus.PENDING: "Pending",
    TaskStatus.IN_PROGRESS: "In Progress",
    TaskStatus.COMPLETED: "Completed",
    TaskStatus.APPROVED: "Approved",
    TaskStatus.CANCELLED: "Cancelled",
}

PROOF_TYPE_LABELS: Dict[ProofType, str] = {
    ProofType.PHOTO: "Photo",
    ProofType.VIDEO: "Video",
    ProofType.TEXT: "Text",
}

# "Optional" in the Notion template is the protocol category locally
RULE_CATEGORY_LABELS: Dict[RuleCategory, str] = {
    RuleCategory.STANDING: "Standing",
    RuleCategory.SITUATIONAL: "Situational",
    RuleCategory.TEMPORARY: "Temporary",
    RuleCategory.PROTOCOL: "Optional",
}

CONTRACT_STATUS_LABELS: Dict[ContractStatus, str] = {
    ContractStatus.DRAFT: "Draft",
    ContractStatus.PENDING_SIGNATURE: "Pending Signature",
    ContractStatus.ACTIVE: "Active",
    ContractStatus.ARCHIVED: "Archived",
    ContractStatus.SUPERSEDED: "Superseded",
}

JOURNAL_ENTRY_TYPE_LABELS: Dict[JournalEntryType, str] = {
    JournalEntryType.PERSONAL: "Personal",
    JournalEntryType.SHARED: "Shared",
    JournalEntryType.GRATITUDE: "Gratitude",
    JournalEntryType.SCENE_LOG: "Scene Log",
}

IDEA_PRIORITY_LABELS: Dict[IdeaPriority, str] = {
    IdeaPriority.LOW: "Low",
    IdeaPriority.MEDIUM: "Medium",
    IdeaPriority.HIGH: "High",
}

IDEA_STATUS_LABELS: Dict[IdeaStatus, str] = {
    IdeaStatus.NEW: "New",
    IdeaStatus.IN_PROGRESS: "In Progress",
    IdeaStatus.COMPLETED: "Completed",
    IdeaStatus.ARCHIVED: "Archived",
}


def label_to_value(label: Optional[str], labels: Dict[Enum, str]) -> Optional[str]:
    """Map a Notion select label to the local enum value.

    Unrecognized labels become their lower-cased text rather than an error.
    """
    if not label:
        return None
    for member, member_label in labels.items():
        if member_label == label:
            return member.value
    return label.lower()


def value_to_label(
    value: Optional[str],
    labels: Dict[Enum, str],
    enum_type: Type[Enum],
    default: Optional[str] = None
) -> Optional[str]:
    """Map a local enum value to its Notion select label.

    Values outside the enum map to ``default``, or to the raw value when no
    default is given.
    """
    if not value:
        return None
    try:
        return labels[enum_type(value)]
    except (ValueError, KeyError):
        return default if default is not None else str(value)


IMPORTANT_FIELDS: Dict[EntityType, List[str]] = {
    EntityType.TASKS: ["title", "description", "priority", "status", "due_date"],
    EntityType.RULES: ["title", "description", "category", "status"],
    EntityType.CONTRACTS: ["title", "content", "version", "status"],
    EntityType.JOURNAL: ["title", "content", "entry_type", "tags"],
    EntityType.CALENDAR: ["title", "description", "start_time", "end_time"],
    EntityType.KINKSTERS: ["name", "bio", "backstory", "archetype"],
    EntityType.IDEAS: ["title", "description", "category", "priority", "status"],
    EntityType.IMAGE_GENERATIONS: ["prompt", "model", "type"],
}

DEFAULT_IMPORTANT_FIELDS = ["title", "description"]

HIGH_SEVERITY_FIELDS = frozenset({"title", "name", "status", "priority", "category"})


def important_fields(entity_type) -> List[str]:
    """Fields compared when deciding whether two versions of a record differ."""
    try:
        return IMPORTANT_FIELDS[EntityType(entity_type)]
    except ValueError:
        return DEFAULT_IMPORTANT_FIELDS


UNTITLED = "Untitled"


def fill_blank_title(values: Dict) -> Dict:
    """Give a blank title or name column the Untitled placeholder, in place."""
    for key in ("title", "name"):
        if key in values and not (isinstance(values[key], str) and values[key].strip()):
            values[key] = UNTITLED
    return values


def record_title(record: Dict) -> Optional[str]:
    """The human-facing title of a local record (title, then name, then prompt)."""
    for key in ("title", "name", "prompt"):
        value = record.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return None
