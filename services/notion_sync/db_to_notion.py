"""Transform local records into Notion page properties.

This is the reverse of notion_to_db. A property is only emitted when the
local value is set, so a page update never blanks a Notion property with an
empty payload.
"""

from typing import Any, Callable, Dict

from shared.models import EntityType
from services.notion_sync.field_maps import (
    CONTRACT_STATUS_LABELS,
    IDEA_PRIORITY_LABELS,
    IDEA_STATUS_LABELS,
    JOURNAL_ENTRY_TYPE_LABELS,
    PROOF_TYPE_LABELS,
    RULE_CATEGORY_LABELS,
    TASK_PRIORITY_LABELS,
    TASK_STATUS_LABELS,
    ContractStatus,
    IdeaPriority,
    IdeaStatus,
    JournalEntryType,
    ProofType,
    RuleCategory,
    TaskPriority,
    TaskStatus,
    value_to_label,
)
from services.notion_sync.notion_to_db import KINKSTER_LIST_PROPERTIES, KINKSTER_STATS
from services.notion_sync.properties import (
    checkbox_value,
    date_value,
    multi_select_value,
    number_value,
    rich_text_value,
    sanitize_options,
    select_value,
    title_value,
    url_value,
)


def to_remote(record: Dict[str, Any], entity_type) -> Dict[str, Any]:
    """
    Transform a local record into Notion page properties.

    Args:
        record: Local record dict keyed by column name
        entity_type: Entity type of the record

    Returns:
        Dictionary suitable for the Notion API ``properties`` parameter
    """
    try:
        transform = _TRANSFORMS[EntityType(entity_type)]
    except ValueError:
        return {}

    properties: Dict[str, Any] = {}
    transform(record, properties)
    return properties


def _set(value: Any) -> bool:
    return value is not None and value != ""


def _text(properties, name, value):
    if _set(value):
        properties[name] = rich_text_value(str(value))


def _title(properties, name, value):
    if _set(value):
        properties[name] = title_value(str(value))


def _date(properties, name, value, day_only=False):
    if _set(value):
        built = date_value(value, day_only=day_only)
        if built:
            properties[name] = built


def _number(properties, name, value):
    if value is not None:
        properties[name] = number_value(value)


def _checkbox(properties, name, value):
    if value is not None:
        properties[name] = checkbox_value(value)


def _select(properties, name, label):
    if label:
        properties[name] = select_value(label)


def _options(properties, name, values):
    cleaned = sanitize_options(values)
    if cleaned:
        properties[name] = multi_select_value(cleaned)


def _task(record, properties):
    _title(properties, "Title", record.get("title"))
    _text(properties, "Description", record.get("description"))
    _select(properties, "Priority", value_to_label(
        record.get("priority"), TASK_PRIORITY_LABELS, TaskPriority, default="Medium"))
    _select(properties, "Status", value_to_label(
        record.get("status"), TASK_STATUS_LABELS, TaskStatus, default="Pending"))
    _date(properties, "Due Date", record.get("due_date"), day_only=True)
    _number(properties, "Point Value", record.get("point_value"))
    _checkbox(properties, "Proof Required", record.get("proof_required"))
    _select(properties, "Proof Type", value_to_label(
        record.get("proof_type"), PROOF_TYPE_LABELS, ProofType))
    _date(properties, "Completed At", record.get("completed_at"))
    _date(properties, "Approved At", record.get("approved_at"))
    _text(properties, "Completion Notes", record.get("completion_notes"))


def _rule(record, properties):
    _title(properties, "Title", record.get("title"))
    _text(properties, "Description", record.get("description"))
    _select(properties, "Rule Type", value_to_label(
        record.get("category"), RULE_CATEGORY_LABELS, RuleCategory, default="Standing"))
    if record.get("status") is not None:
        properties["Active"] = checkbox_value(record.get("status") == "active")
    _date(properties, "Effective From", record.get("effective_from"), day_only=True)
    _date(properties, "Effective Until", record.get("effective_until"), day_only=True)


def _contract(record, properties):
    _title(properties, "Title", record.get("title"))
    _text(properties, "Content", record.get("content"))
    _select(properties, "Status", value_to_label(
        record.get("status"), CONTRACT_STATUS_LABELS, ContractStatus, default="Draft"))
    if record.get("version") is not None:
        properties["Version"] = number_value(record.get("version") or 1)
    _date(properties, "Effective From", record.get("effective_from"), day_only=True)
    _date(properties, "Effective Until", record.get("effective_until"), day_only=True)


def _journal(record, properties):
    _title(properties, "Title", record.get("title"))
    _text(properties, "Content", record.get("content"))
    _select(properties, "Entry Type", value_to_label(
        record.get("entry_type"), JOURNAL_ENTRY_TYPE_LABELS, JournalEntryType, default="Personal"))
    _options(properties, "Tags", record.get("tags"))


def _calendar(record, properties):
    _title(properties, "Title", record.get("title"))
    _text(properties, "Description", record.get("description"))
    _date(properties, "Start Time", record.get("start_time"))
    _date(properties, "End Time", record.get("end_time"))
    _checkbox(properties, "All Day", record.get("all_day"))
    _text(properties, "Location", record.get("location"))


def _kinkster(record, properties):
    _title(properties, "Name", record.get("name"))
    _text(properties, "Bio", record.get("bio"))
    _text(properties, "Backstory", record.get("backstory"))
    if _set(record.get("avatar_url")):
        properties["Avatar URL"] = url_value(record["avatar_url"])
    for stat in KINKSTER_STATS:
        _number(properties, stat.capitalize(), record.get(stat))
    _text(properties, "Appearance", record.get("appearance_description"))
    for field, property_name in KINKSTER_LIST_PROPERTIES.items():
        _options(properties, property_name, record.get(field))
    _select(properties, "Archetype", record.get("archetype"))
    _checkbox(properties, "Is Primary", record.get("is_primary"))


def _idea(record, properties):
    _title(properties, "Title", record.get("title"))
    _text(properties, "Description", record.get("description"))
    _select(properties, "Category", record.get("category"))
    _select(properties, "Priority", value_to_label(
        record.get("priority"), IDEA_PRIORITY_LABELS, IdeaPriority, default="Medium"))
    _select(properties, "Status", value_to_label(
        record.get("status"), IDEA_STATUS_LABELS, IdeaStatus, default="New"))
    _options(properties, "Tags", record.get("tags"))


def _image_generation(record, properties):
    _text(properties, "Prompt", record.get("prompt"))
    _select(properties, "Model", record.get("model"))
    _select(properties, "Type", record.get("type"))
    _select(properties, "Aspect Ratio", record.get("aspect_ratio"))
    _options(properties, "Tags", record.get("tags"))


_TRANSFORMS: Dict[EntityType, Callable[[Dict[str, Any], Dict[str, Any]], None]] = {
    EntityType.TASKS: _task,
    EntityType.RULES: _rule,
    EntityType.CONTRACTS: _contract,
    EntityType.JOURNAL: _journal,
    EntityType.CALENDAR: _calendar,
    EntityType.KINKSTERS: _kinkster,
    EntityType.IDEAS: _idea,
    EntityType.IMAGE_GENERATIONS: _image_generation,
}
