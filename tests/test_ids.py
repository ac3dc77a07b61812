import unittest

from kanban_md.util.ids import parse_id, parse_ids
from kanban_md.util.slug import extract_id_from_filename, generate_filename, generate_slug


class TestParseId(unittest.TestCase):
    def test_empty(self) -> None:
        r = parse_id("  ")
        assert r.is_err()
        assert r.unwrap_err() == "Empty ID"

    def test_plain_and_hash(self) -> None:
        assert parse_id("12").unwrap() == 12
        assert parse_id("#12").unwrap() == 12

    def test_rejects_non_numeric(self) -> None:
        assert parse_id("abc").is_err()
        assert parse_id("1.5").is_err()
        assert parse_id("-3").is_err()

    def test_rejects_zero(self) -> None:
        r = parse_id("0")
        assert r.is_err()
        assert "positive" in r.unwrap_err()


class TestParseIds(unittest.TestCase):
    def test_comma_list_keeps_order_and_dedups(self) -> None:
        assert parse_ids("3,1,3, 2").unwrap() == [3, 1, 2]

    def test_any_invalid_fails(self) -> None:
        assert parse_ids("1,x,3").is_err()

    def test_empty(self) -> None:
        r = parse_ids(" , ")
        assert r.is_err()


class TestSlug(unittest.TestCase):
    def test_basic(self) -> None:
        assert generate_slug("Fix the Login Bug!") == "fix-the-login-bug"

    def test_collapses_separators(self) -> None:
        assert generate_slug("a  --  b__c") == "a-b-c"

    def test_truncates_at_word_boundary(self) -> None:
        title = "implement the extremely long and descriptive feature title for testing"
        slug = generate_slug(title)
        assert len(slug) <= 50
        assert not slug.endswith("-")
        assert title.lower().replace(" ", "-").startswith(slug)

    def test_non_ascii_title_falls_back(self) -> None:
        assert generate_slug("タスク") == "task"

    def test_filename(self) -> None:
        assert generate_filename(1, "first") == "001-first.md"
        assert generate_filename(1234, "big") == "1234-big.md"
        assert generate_filename(7, "dup", 2) == "007-dup-2.md"

    def test_extract_id(self) -> None:
        assert extract_id_from_filename("042-answer.md").unwrap() == 42
        assert extract_id_from_filename("notes.md").is_err()
