"""Match Notion pages to local records.

Each remote page is paired with at most one local record: first by the
Notion page ID stored on the record, then by fuzzy title similarity among
records that are not linked to any page yet. A final pass makes sure no
local record is claimed by more than one page.
"""

import logging
import re
from collections import defaultdict
from typing import Any, Dict, List, Optional, Tuple

from shared.models import Confidence, MatchResult, MatchType, RemotePage
from services.notion_sync.field_maps import record_title
from services.notion_sync.notion_to_db import to_local

logger = logging.getLogger(__name__)

MIN_SIMILARITY = 0.70
HIGH_CONFIDENCE = 0.95
MEDIUM_CONFIDENCE = 0.80

EXACT_SCORE = 1.0
CASE_INSENSITIVE_SCORE = 0.95
CONTAINMENT_SCORE = 0.85

_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")

_CONFIDENCE_RANK = {Confidence.HIGH: 2, Confidence.MEDIUM: 1, Confidence.LOW: 0}


def normalize_title(title: Optional[str]) -> str:
    """Lower-case, trim, strip punctuation and collapse whitespace."""
    if not title:
        return ""
    normalized = _NON_WORD.sub("", title.lower().strip())
    return _WHITESPACE.sub(" ", normalized).strip()


def levenshtein_distance(a: str, b: str) -> int:
    """Number of single-character edits turning ``a`` into ``b``."""
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (char_a != char_b)
            ))
        previous = current
    return previous[-1]


def calculate_similarity(title1: Optional[str], title2: Optional[str]) -> float:
    """
    Score how alike two titles are, from 0.0 to 1.0.

    Identical titles score 1.0, titles that only differ in case or
    punctuation score 0.95, and a title contained in the other scores
    0.85. Anything else is scored by edit distance.
    """
    raw1 = (title1 or "").strip()
    raw2 = (title2 or "").strip()
    if not raw1 or not raw2:
        return 0.0
    if raw1 == raw2:
        return EXACT_SCORE

    norm1 = normalize_title(raw1)
    norm2 = normalize_title(raw2)
    if not norm1 or not norm2:
        return 0.0
    if norm1 == norm2:
        return CASE_INSENSITIVE_SCORE
    if norm1 in norm2 or norm2 in norm1:
        return CONTAINMENT_SCORE

    longest = max(len(norm1), len(norm2))
    return 1.0 - levenshtein_distance(norm1, norm2) / longest


def confidence_for(similarity: float) -> Confidence:
    if similarity >= HIGH_CONFIDENCE:
        return Confidence.HIGH
    if similarity >= MEDIUM_CONFIDENCE:
        return Confidence.MEDIUM
    return Confidence.LOW


def match_page(
    page: RemotePage,
    local_records: List[Dict[str, Any]],
    entity_type
) -> MatchResult:
    """
    Find the local record a single Notion page corresponds to.

    Args:
        page: Page retrieved from Notion
        local_records: The user's local records of the same entity type
        entity_type: Entity type both sides hold

    Returns:
        MatchResult, with match_type NONE when nothing qualifies
    """
    for record in local_records:
        if record.get("notion_page_id") and record.get("notion_page_id") == page.id:
            return MatchResult(
                remote_page=page,
                local_record=record,
                match_type=MatchType.NOTION_PAGE_ID,
                confidence=Confidence.HIGH
            )

    remote_title = record_title(to_local(page, entity_type))
    if remote_title:
        best_record = None
        best_score = 0.0
        for record in local_records:
            if record.get("notion_page_id"):
                continue
            score = calculate_similarity(remote_title, record_title(record))
            if score > best_score:
                best_record, best_score = record, score

        if best_record is not None and best_score >= MIN_SIMILARITY:
            return MatchResult(
                remote_page=page,
                local_record=best_record,
                match_type=MatchType.TITLE,
                confidence=confidence_for(best_score),
                title_similarity=best_score
            )

    return MatchResult(
        remote_page=page,
        local_record=None,
        match_type=MatchType.NONE,
        confidence=Confidence.LOW
    )


def _precedence(match: MatchResult) -> Tuple[int, int, float]:
    return (
        1 if match.match_type == MatchType.NOTION_PAGE_ID else 0,
        _CONFIDENCE_RANK[match.confidence],
        match.title_similarity or 0.0
    )


def detect_duplicate_matches(matches: List[MatchResult]) -> List[MatchResult]:
    """
    Keep one remote page per local record.

    When several pages point at the same local record, the strongest match
    keeps its confidence and the rest are demoted to low and flagged as
    duplicates so resolution leaves them alone.
    """
    by_record: Dict[str, List[MatchResult]] = defaultdict(list)
    for match in matches:
        if match.local_record is not None and match.local_record.get("id") is not None:
            by_record[str(match.local_record["id"])].append(match)

    for record_id, candidates in by_record.items():
        if len(candidates) < 2:
            continue
        ranked = sorted(candidates, key=_precedence, reverse=True)
        for loser in ranked[1:]:
            loser.confidence = Confidence.LOW
            loser.duplicate = True
        logger.warning(
            f"{len(candidates)} Notion pages matched local record {record_id}; "
            f"keeping page {ranked[0].remote_page.id}"
        )

    return matches


def match_all(
    remote_pages: List[RemotePage],
    local_records: List[Dict[str, Any]],
    entity_type
) -> List[MatchResult]:
    """
    Match every Notion page against the user's local records.

    Args:
        remote_pages: Pages retrieved from the Notion database
        local_records: The user's local records of the same entity type
        entity_type: Entity type both sides hold

    Returns:
        One MatchResult per remote page, in input order
    """
    matches = [match_page(page, local_records, entity_type) for page in remote_pages]
    detect_duplicate_matches(matches)

    matched = sum(1 for m in matches if m.match_type != MatchType.NONE)
    logger.info(f"Matched {matched}/{len(matches)} Notion pages to local {entity_type} records")
    return matches
