import unittest
from datetime import date, datetime, timezone

import pytest

from kanban_md.core.models import LogEntry, Task
from kanban_md.util import frontmatter


class TestTask(unittest.TestCase):
    def test_to_dict_omits_empty_optional_fields(self) -> None:
        t = Task(id=1, title="First", status="backlog", priority="medium")
        d = t.to_dict()
        assert list(d) == ["id", "title", "status", "priority", "created", "updated"]

    def test_to_dict_keeps_field_order(self) -> None:
        t = Task(
            id=2,
            title="Second",
            status="todo",
            priority="high",
            class_="expedite",
            tags=["a", "b"],
            depends_on=[1],
            blocked=True,
            block_reason="waiting",
        )
        d = t.to_dict()
        assert d["class"] == "expedite"
        assert list(d).index("tags") < list(d).index("depends_on") < list(d).index("blocked")

    def test_from_dict_coerces_yaml_values(self) -> None:
        """yaml が datetime / date に変換した値を文字列に戻すことを確認"""
        d = {
            "id": "3",
            "title": "Third",
            "status": "done",
            "priority": "low",
            "due": date(2025, 5, 1),
            "created": datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc),
            "updated": "2025-01-02T00:00:00Z",
            "tags": "x, y",
            "depends_on": 1,
        }
        t = Task.from_dict(d, body="hello")
        assert t.id == 3
        assert t.due == "2025-05-01"
        assert t.created == "2025-01-01T12:00:00Z"
        assert t.tags == ["x", "y"]
        assert t.depends_on == [1]
        assert t.body == "hello"

    def test_from_dict_requires_id_and_title(self) -> None:
        with pytest.raises(ValueError, match="id"):
            Task.from_dict({"title": "x"})
        with pytest.raises(ValueError, match="title"):
            Task.from_dict({"id": 1})
        with pytest.raises(ValueError, match="invalid id"):
            Task.from_dict({"id": 0, "title": "x"})

    def test_to_json_includes_body(self) -> None:
        t = Task(id=1, title="t", status="todo", priority="low", body="notes")
        assert t.to_json()["body"] == "notes"


class TestFrontmatter(unittest.TestCase):
    def test_split_and_join(self) -> None:
        t = Task(id=5, title="Write docs", status="todo", priority="medium", tags=["docs"], body="Some body")
        text = frontmatter.join(t.to_dict(), t.body)
        assert text.startswith("---\nid: 5\n")
        meta, body = frontmatter.split(text).unwrap()
        assert Task.from_dict(meta, body=body) == t

    def test_missing_delimiter(self) -> None:
        r = frontmatter.split("id: 1\n")
        assert r.is_err()
        assert "line 1" in r.unwrap_err()

    def test_unclosed(self) -> None:
        assert frontmatter.split("---\nid: 1\n").is_err()

    def test_invalid_yaml_reports_line(self) -> None:
        r = frontmatter.split("---\nid: 1\ntitle: [unclosed\n---\n")
        assert r.is_err()
        assert r.unwrap_err().startswith("line ")

    def test_non_mapping(self) -> None:
        r = frontmatter.split("---\n- a\n- b\n---\n")
        assert r.is_err()


class TestLogEntry(unittest.TestCase):
    def test_agent_only_when_set(self) -> None:
        e = LogEntry(action="create", task_id=1, detail="First", timestamp="2025-01-01T00:00:00Z")
        assert "agent" not in e.to_dict()
        e.agent = "bot"
        assert e.to_dict()["agent"] == "bot"
        assert LogEntry.from_dict(e.to_dict()) == e
