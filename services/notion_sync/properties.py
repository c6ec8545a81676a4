"""Reading and building Notion page property values.

A property value is a dict tagged by its ``type`` key ("title", "rich_text",
"select", "multi_select", "number", "checkbox", "date", "url"). Property
objects we build ourselves for page updates carry no ``type`` key, so the
tag falls back to whichever known payload key is present.

Extractors never raise: an absent property, a payload of the wrong tag or a
malformed payload all read as None.
"""

from datetime import date, datetime, time
from typing import Any, Dict, List, Optional

KNOWN_TYPES = ("title", "rich_text", "select", "multi_select", "number", "checkbox", "date", "url")


def property_type(prop: Any) -> Optional[str]:
    """Return the tag of a property value, or None if it has none we know."""
    if not isinstance(prop, dict):
        return None
    declared = prop.get("type")
    if declared:
        return declared
    for tag in KNOWN_TYPES:
        if tag in prop:
            return tag
    return None


def _payload(prop: Any, expected: str) -> Any:
    if property_type(prop) != expected:
        return None
    return prop.get(expected)


def _plain_text(fragment: Any) -> Optional[str]:
    if not isinstance(fragment, dict):
        return None
    if fragment.get("plain_text"):
        return fragment["plain_text"]
    text = fragment.get("text")
    if isinstance(text, dict) and text.get("content"):
        return text["content"]
    return None


def extract_text(prop: Any) -> Optional[str]:
    """Read a title or rich_text property as a single string."""
    tag = property_type(prop)
    if tag not in ("title", "rich_text"):
        return None
    fragments = prop.get(tag)
    if not isinstance(fragments, list) or not fragments:
        return None
    parts = [_plain_text(fragment) for fragment in fragments]
    text = "".join(part for part in parts if part)
    return text or None


def extract_select(prop: Any) -> Optional[str]:
    option = _payload(prop, "select")
    if not isinstance(option, dict):
        return None
    return option.get("name") or None


def extract_multi_select(prop: Any) -> Optional[List[str]]:
    options = _payload(prop, "multi_select")
    if not isinstance(options, list) or not options:
        return None
    names = [option.get("name") for option in options if isinstance(option, dict) and option.get("name")]
    return names or None


def extract_number(prop: Any) -> Optional[float]:
    value = _payload(prop, "number")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def extract_checkbox(prop: Any) -> Optional[bool]:
    value = _payload(prop, "checkbox")
    return value if isinstance(value, bool) else None


def extract_date(prop: Any) -> Optional[str]:
    """Read the start of a date property as the ISO string Notion sent."""
    value = _payload(prop, "date")
    if not isinstance(value, dict):
        return None
    return value.get("start") or None


def extract_url(prop: Any) -> Optional[str]:
    value = _payload(prop, "url")
    return value if isinstance(value, str) and value else None


# Builders for page update payloads

def title_value(text: str) -> Dict[str, Any]:
    return {"title": [{"text": {"content": text}}]}


def rich_text_value(text: str) -> Dict[str, Any]:
    return {"rich_text": [{"text": {"content": text}}]}


def select_value(name: str) -> Dict[str, Any]:
    return {"select": {"name": name}}


def multi_select_value(names: List[str]) -> Dict[str, Any]:
    return {"multi_select": [{"name": name} for name in names]}


def number_value(number: Any) -> Dict[str, Any]:
    return {"number": number}


def checkbox_value(checked: bool) -> Dict[str, Any]:
    return {"checkbox": bool(checked)}


def url_value(url: str) -> Dict[str, Any]:
    return {"url": url}


def date_value(value: Any, day_only: bool = False) -> Optional[Dict[str, Any]]:
    """Build a date property; date-only strings stay date-only.

    With ``day_only`` a midnight UTC datetime, which is how the database
    stores a Notion day, is sent as a plain date.
    """
    if isinstance(value, datetime):
        offset = value.utcoffset()
        if day_only and value.time() == time(0, 0) and not offset:
            start = value.date().isoformat()
        else:
            start = value.isoformat()
    elif isinstance(value, date):
        start = value.isoformat()
    elif isinstance(value, str) and value.strip():
        start = value.strip()
    else:
        return None
    return {"date": {"start": start}}


def sanitize_options(values: Any) -> List[str]:
    """Prepare multi_select option names: Notion rejects commas in them."""
    if not isinstance(values, (list, tuple)):
        return []
    cleaned = []
    for value in values:
        if value is None:
            continue
        name = str(value).replace(",", "").strip()
        if name:
            cleaned.append(name)
    return cleaned
