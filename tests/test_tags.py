"""Tests for tag naming, ordering and the interactive selector."""

import time

import pytest

from concrete_sync.exceptions import OperationCancelled
from concrete_sync.sync.tags import (
    LATEST,
    TagSelector,
    choose_tag,
    snapshot_tag_name,
    sort_tags,
    tag_sort_key,
)

TWO_TAGS = ["snapshot-2024-02-01_00-00-00", "snapshot-2024-01-01_00-00-00"]


def answers(*values):
    """Input function replaying canned answers."""
    pending = list(values)
    return lambda prompt="": pending.pop(0)


class TestTagNames:
    def test_snapshot_tag_name_format(self):
        now = time.mktime((2024, 2, 1, 13, 45, 7, 0, 0, -1))
        assert snapshot_tag_name(now=now) == "snapshot-2024-02-01_13-45-07"
        assert snapshot_tag_name("db", now=now) == "db-2024-02-01_13-45-07"

    def test_sort_key_recognises_legacy_suffixes(self):
        assert tag_sort_key("snapshot-2024-02-01_13-45-07") == "20240201134507"
        assert tag_sort_key("db-20240115-143022") == "20240115143022"
        assert tag_sort_key("files-20240115_143022") == "20240115143022"
        assert tag_sort_key("v1.0") is None

    def test_sort_newest_first_across_types(self):
        tags = [
            "config-20231231-235959",
            "snapshot-2024-01-01_00-00-00",
            "release",
            "snapshot-2024-02-01_00-00-00",
            "db-20240115-000000",
        ]
        assert sort_tags(tags) == [
            "snapshot-2024-02-01_00-00-00",
            "db-20240115-000000",
            "snapshot-2024-01-01_00-00-00",
            "config-20231231-235959",
            "release",
        ]

    def test_sort_drops_duplicates(self):
        assert sort_tags(TWO_TAGS + TWO_TAGS[:1]) == TWO_TAGS


class TestResolve:
    def test_zero_selects_latest(self):
        assert TagSelector(TWO_TAGS).resolve("0", 0).chosen == LATEST

    def test_literal_latest(self):
        assert TagSelector(TWO_TAGS).resolve(" latest ", 0).chosen == LATEST

    def test_number_selects_by_position(self):
        assert TagSelector(TWO_TAGS).resolve("2", 0).chosen == "snapshot-2024-01-01_00-00-00"

    def test_numbering_is_global_across_pages(self):
        tags = [f"snapshot-2024-01-{day:02d}_00-00-00" for day in range(25, 0, -1)]
        selector = TagSelector(tags, page_size=10)
        assert selector.page_entries(1)[0] == (11, tags[10])
        assert selector.resolve("11", 0).chosen == tags[10]

    def test_empty_advances_and_wraps(self):
        tags = [f"t-2024-01-{day:02d}_00-00-00" for day in range(1, 26)]
        selector = TagSelector(tags, page_size=10)
        assert selector.page_count == 3
        assert selector.resolve("", 0).next_page == 1
        assert selector.resolve("", 2).next_page == 0

    @pytest.mark.parametrize("answer", ["3", "-1", "abc", "1.5"])
    def test_invalid_answers(self, answer):
        selection = TagSelector(TWO_TAGS).resolve(answer, 0)
        assert selection.chosen is None
        assert selection.error


class TestChoose:
    def test_reprompts_after_invalid_input(self):
        echoed = []
        chosen = choose_tag(TWO_TAGS, ask=answers("9", "x", "1"), echo=echoed.append)
        assert chosen == "snapshot-2024-02-01_00-00-00"
        assert sum(1 for line in echoed if line.startswith("❌")) == 2

    def test_paging_then_choice(self):
        tags = [f"snapshot-2024-01-{day:02d}_00-00-00" for day in range(12, 0, -1)]
        echoed = []
        chosen = choose_tag(tags, page_size=5, ask=answers("", "", "", "7"), echo=echoed.append)
        assert chosen == tags[6]
        assert any("page 1/3" in line for line in echoed)
        assert any("page 3/3" in line for line in echoed)

    def test_deterministic(self):
        first = choose_tag(TWO_TAGS, ask=answers("", "2"), echo=lambda line: None)
        second = choose_tag(TWO_TAGS, ask=answers("", "2"), echo=lambda line: None)
        assert first == second == "snapshot-2024-01-01_00-00-00"

    def test_empty_list_defaults_to_latest(self):
        echoed = []
        assert choose_tag([], ask=answers(""), echo=echoed.append) == LATEST
        assert any("No snapshot tags found" in line for line in echoed)

    def test_empty_list_confirmed(self):
        assert choose_tag([], echo=lambda line: None, confirm_latest=lambda: True) == LATEST

    def test_empty_list_cancelled(self):
        with pytest.raises(OperationCancelled):
            choose_tag([], echo=lambda line: None, confirm_latest=lambda: False)
