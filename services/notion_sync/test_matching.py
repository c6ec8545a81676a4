"""Unit tests for matching Notion pages to local records."""

import sys
import os
import pytest

# Add repository root to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), '../../'))

from shared.models import Confidence, EntityType, MatchResult, MatchType, RemotePage
from services.notion_sync.matching import (
    calculate_similarity,
    confidence_for,
    detect_duplicate_matches,
    levenshtein_distance,
    match_all,
    match_page,
    normalize_title,
)


def make_page(page_id, title_text, title_property="Title"):
    return RemotePage(
        id=page_id,
        url="",
        last_edited_time="2024-01-02T00:00:00.000Z",
        created_time="2024-01-01T00:00:00.000Z",
        properties={title_property: {"type": "title", "title": [{"plain_text": title_text}]}}
    )


def make_record(record_id, title_text, notion_page_id=None):
    return {"id": record_id, "title": title_text, "notion_page_id": notion_page_id}


class TestSimilarity:
    """Tests for title normalization and similarity scoring."""

    def test_normalize_title(self):
        assert normalize_title("  Weekly   Chores! ") == "weekly chores"
        assert normalize_title(None) == ""

    def test_levenshtein_distance(self):
        assert levenshtein_distance("kitten", "sitting") == 3
        assert levenshtein_distance("", "abc") == 3
        assert levenshtein_distance("same", "same") == 0

    def test_identical(self):
        assert calculate_similarity("Weekly Chores", "Weekly Chores") == 1.0

    def test_case_insensitive(self):
        assert calculate_similarity("Weekly Chores", "weekly chores") == 0.95
        assert confidence_for(0.95) == Confidence.HIGH

    def test_containment(self):
        assert calculate_similarity("Clean Kitchen", "Kitchen") == 0.85
        assert confidence_for(0.85) == Confidence.MEDIUM

    def test_unrelated(self):
        assert calculate_similarity("Clean Kitchen", "Buy Groceries") < 0.70

    def test_edit_distance(self):
        similarity = calculate_similarity("Walk the dog", "Walk the dogs!")

        # normalized "walk the dog" is contained in "walk the dogs"
        assert similarity == 0.85
        assert calculate_similarity("Water plants", "Water plans") == pytest.approx(1 - 1 / 12)

    def test_empty_titles(self):
        assert calculate_similarity("", "Task") == 0.0
        assert calculate_similarity(None, None) == 0.0
        assert calculate_similarity("!!!", "???") == 0.0


class TestMatchPage:
    """Tests for matching a single page."""

    def test_case_insensitive_title_match_is_high(self):
        result = match_page(make_page("p1", "weekly chores"), [make_record("r1", "Weekly Chores")], EntityType.TASKS)

        assert result.match_type == MatchType.TITLE
        assert result.local_record["id"] == "r1"
        assert result.title_similarity == 0.95
        assert result.confidence == Confidence.HIGH

    def test_containment_match_is_medium(self):
        result = match_page(make_page("p1", "Clean Kitchen"), [make_record("r1", "Kitchen")], EntityType.TASKS)

        assert result.match_type == MatchType.TITLE
        assert result.confidence == Confidence.MEDIUM

    def test_below_threshold_is_no_match(self):
        result = match_page(make_page("p1", "Clean Kitchen"), [make_record("r1", "Buy Groceries")], EntityType.TASKS)

        assert result.match_type == MatchType.NONE
        assert result.local_record is None

    def test_page_id_match_wins_over_title(self):
        records = [
            make_record("r1", "Completely different", notion_page_id="abc"),
            make_record("r2", "Weekly Chores"),
        ]

        result = match_page(make_page("abc", "Weekly Chores"), records, EntityType.TASKS)

        assert result.match_type == MatchType.NOTION_PAGE_ID
        assert result.local_record["id"] == "r1"
        assert result.confidence == Confidence.HIGH

    def test_linked_records_are_not_title_candidates(self):
        records = [make_record("r1", "Weekly Chores", notion_page_id="other-page")]

        result = match_page(make_page("p1", "Weekly Chores"), records, EntityType.TASKS)

        assert result.match_type == MatchType.NONE

    def test_best_candidate_is_chosen(self):
        records = [make_record("r1", "Kitchen"), make_record("r2", "clean kitchen")]

        result = match_page(make_page("p1", "Clean Kitchen"), records, EntityType.TASKS)

        assert result.local_record["id"] == "r2"

    def test_kinkster_matches_on_name(self):
        page = make_page("p1", "Alex", title_property="Name")

        result = match_page(page, [{"id": "k1", "name": "alex", "notion_page_id": None}], EntityType.KINKSTERS)

        assert result.local_record["id"] == "k1"

    def test_untitled_page_is_no_match(self):
        page = RemotePage(id="p1", url="", last_edited_time="", created_time="", properties={})

        result = match_page(page, [make_record("r1", "Untitled")], EntityType.TASKS)

        assert result.match_type == MatchType.NONE


class TestDuplicates:
    """Tests for the duplicate-claim pass."""

    def test_two_pages_claiming_one_record(self):
        records = [make_record("r1", "Clean Kitchen")]
        pages = [make_page("p1", "Kitchen"), make_page("p2", "Clean the Kitchen")]

        matches = match_all(pages, records, EntityType.TASKS)

        assert all(m.local_record["id"] == "r1" for m in matches)
        demoted = [m for m in matches if m.duplicate]
        assert len(demoted) == 1
        assert demoted[0].confidence == Confidence.LOW
        kept = [m for m in matches if not m.duplicate]
        assert kept[0].confidence == Confidence.MEDIUM

    def test_page_id_match_beats_title_match(self):
        records = [make_record("r1", "Clean Kitchen", notion_page_id="p1")]
        pages = [make_page("p2", "Clean Kitchen"), make_page("p1", "Something else")]
        matches = match_all(pages, records, EntityType.TASKS)

        # p2 cannot title-match a linked record
        assert matches[0].match_type == MatchType.NONE
        assert matches[1].match_type == MatchType.NOTION_PAGE_ID
        assert not any(m.duplicate for m in matches)

    def test_ranking_prefers_page_id_then_similarity(self):
        record = make_record("r1", "Clean Kitchen", notion_page_id="p1")
        by_title = MatchResult(make_page("p2", "Clean Kitchen"), record, MatchType.TITLE, Confidence.HIGH, 1.0)
        by_id = MatchResult(make_page("p1", "Other"), record, MatchType.NOTION_PAGE_ID, Confidence.HIGH)

        detect_duplicate_matches([by_title, by_id])

        assert by_id.duplicate is False
        assert by_id.confidence == Confidence.HIGH
        assert by_title.duplicate is True
        assert by_title.confidence == Confidence.LOW

    def test_unmatched_pages_are_untouched(self):
        matches = match_all([make_page("p1", "A"), make_page("p2", "B")], [], EntityType.TASKS)

        assert [m.match_type for m in matches] == [MatchType.NONE, MatchType.NONE]
        assert not any(m.duplicate for m in matches)
