"""Transform Notion pages into local record shape."""

import logging
from typing import Any, Callable, Dict

from shared.models import EntityType, RemotePage
from services.notion_sync.field_maps import (
    CONTRACT_STATUS_LABELS,
    IDEA_PRIORITY_LABELS,
    IDEA_STATUS_LABELS,
    JOURNAL_ENTRY_TYPE_LABELS,
    PROOF_TYPE_LABELS,
    RULE_CATEGORY_LABELS,
    TASK_PRIORITY_LABELS,
    TASK_STATUS_LABELS,
    label_to_value,
)
from services.notion_sync.properties import (
    extract_checkbox,
    extract_date,
    extract_multi_select,
    extract_number,
    extract_select,
    extract_text,
    extract_url,
)

logger = logging.getLogger(__name__)

KINKSTER_STATS = ("dominance", "submission", "charisma", "stamina", "creativity", "control")

KINKSTER_LIST_PROPERTIES = {
    "kink_interests": "Kink Interests",
    "hard_limits": "Hard Limits",
    "soft_limits": "Soft Limits",
    "personality_traits": "Personality Traits",
    "role_preferences": "Role Preferences",
}


def to_local(page: RemotePage, entity_type) -> Dict[str, Any]:
    """
    Transform a Notion page into the local record shape for an entity type.

    The result always carries notion_page_id, last_edited_time and
    created_time alongside the entity fields. Properties that are missing
    or have an unexpected shape come out as None; this never raises.

    Args:
        page: Page retrieved from Notion
        entity_type: Entity type the page's database holds

    Returns:
        Dictionary keyed by local column name
    """
    base = {
        "notion_page_id": page.id,
        "last_edited_time": page.last_edited_time,
        "created_time": page.created_time,
    }

    try:
        transform = _TRANSFORMS[EntityType(entity_type)]
    except ValueError:
        logger.warning(f"No Notion transform for entity type {entity_type!r}")
        return base

    properties = page.properties if isinstance(page.properties, dict) else {}
    base.update(transform(properties))
    return base


def _task(properties: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "title": extract_text(properties.get("Title")) or extract_text(properties.get("Task Name")),
        "description": extract_text(properties.get("Description")),
        "priority": label_to_value(extract_select(properties.get("Priority")), TASK_PRIORITY_LABELS),
        "status": label_to_value(extract_select(properties.get("Status")), TASK_STATUS_LABELS),
        "due_date": extract_date(properties.get("Due Date")),
        "point_value": extract_number(properties.get("Point Value")),
        "proof_required": extract_checkbox(properties.get("Proof Required")),
        "proof_type": label_to_value(extract_select(properties.get("Proof Type")), PROOF_TYPE_LABELS),
        "completed_at": extract_date(properties.get("Completed At")),
        "approved_at": extract_date(properties.get("Approved At")),
        "completion_notes": extract_text(properties.get("Completion Notes")),
    }


def _rule(properties: Dict[str, Any]) -> Dict[str, Any]:
    active = extract_checkbox(properties.get("Active"))
    return {
        "title": extract_text(properties.get("Title")),
        "description": extract_text(properties.get("Description")),
        "category": label_to_value(extract_select(properties.get("Rule Type")), RULE_CATEGORY_LABELS),
        "status": "active" if active else "inactive",
        "effective_from": extract_date(properties.get("Effective From")),
        "effective_until": extract_date(properties.get("Effective Until")),
    }


def _contract(properties: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "title": extract_text(properties.get("Title")),
        "content": extract_text(properties.get("Content")),
        "version": extract_number(properties.get("Version")) or 1,
        "status": label_to_value(extract_select(properties.get("Status")), CONTRACT_STATUS_LABELS),
        "effective_from": extract_date(properties.get("Effective From")),
        "effective_until": extract_date(properties.get("Effective Until")),
    }


def _journal(properties: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "title": extract_text(properties.get("Title")),
        "content": extract_text(properties.get("Content")),
        "entry_type": label_to_value(extract_select(properties.get("Entry Type")), JOURNAL_ENTRY_TYPE_LABELS),
        "tags": extract_multi_select(properties.get("Tags")),
    }


def _calendar(properties: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "title": extract_text(properties.get("Title")),
        "description": extract_text(properties.get("Description")),
        "start_time": extract_date(properties.get("Start Time")),
        "end_time": extract_date(properties.get("End Time")),
        "all_day": extract_checkbox(properties.get("All Day")),
        "location": extract_text(properties.get("Location")),
    }


def _kinkster(properties: Dict[str, Any]) -> Dict[str, Any]:
    record = {
        "name": extract_text(properties.get("Name")),
        "bio": extract_text(properties.get("Bio")),
        "backstory": extract_text(properties.get("Backstory")),
        "avatar_url": extract_url(properties.get("Avatar URL")),
        "appearance_description": extract_text(properties.get("Appearance")),
        "archetype": extract_select(properties.get("Archetype")),
        "is_primary": extract_checkbox(properties.get("Is Primary")),
    }
    for stat in KINKSTER_STATS:
        record[stat] = extract_number(properties.get(stat.capitalize()))
    for field, property_name in KINKSTER_LIST_PROPERTIES.items():
        record[field] = extract_multi_select(properties.get(property_name))
    return record


def _idea(properties: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "title": extract_text(properties.get("Title")),
        "description": extract_text(properties.get("Description")),
        "category": extract_select(properties.get("Category")) or "feature",
        "priority": label_to_value(extract_select(properties.get("Priority")), IDEA_PRIORITY_LABELS) or "medium",
        "status": label_to_value(extract_select(properties.get("Status")), IDEA_STATUS_LABELS) or "new",
        "tags": extract_multi_select(properties.get("Tags")),
    }


def _image_generation(properties: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "prompt": extract_text(properties.get("Prompt")),
        "model": extract_select(properties.get("Model")),
        "type": extract_select(properties.get("Type")),
        "aspect_ratio": extract_select(properties.get("Aspect Ratio")),
        "tags": extract_multi_select(properties.get("Tags")),
    }


_TRANSFORMS: Dict[EntityType, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    EntityType.TASKS: _task,
    EntityType.RULES: _rule,
    EntityType.CONTRACTS: _contract,
    EntityType.JOURNAL: _journal,
    EntityType.CALENDAR: _calendar,
    EntityType.KINKSTERS: _kinkster,
    EntityType.IDEAS: _idea,
    EntityType.IMAGE_GENERATIONS: _image_generation,
}
