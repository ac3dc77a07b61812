import tempfile
import unittest
from datetime import date, datetime, timezone
from pathlib import Path

from kanban_md.core.board import Board
from kanban_md.core.config import new_default
from kanban_md.core.context import BEGIN_MARKER, END_MARKER, generate_context, render_markdown, write_context_file
from kanban_md.core.models import Task
from kanban_md.core.sort import NO_TAG, ListOptions, filter_tasks, group_tasks
from kanban_md.core.summary import board_summary, compute_metrics, is_overdue

NOW = datetime(2025, 6, 10, 12, 0, tzinfo=timezone.utc)


def _task(tid: int, status: str = "backlog", **kw) -> Task:  # noqa: ANN003
    kw.setdefault("priority", "medium")
    kw.setdefault("created", "2025-06-01T00:00:00Z")
    return Task(id=tid, title=f"task {tid}", status=status, **kw)


class TestFilterAndGroup(unittest.TestCase):
    def setUp(self) -> None:
        self.cfg = new_default("test")
        self.board = Board.build(
            self.cfg,
            [
                _task(1, "todo", tags=["api"], assignee="ann"),
                _task(2, "in-progress", blocked=True, block_reason="x"),
                _task(3, "archived"),
                _task(4, "backlog", depends_on=[1], parent=1),
            ],
        )

    def test_archived_hidden_by_default(self) -> None:
        ids = [t.id for t in filter_tasks(self.board, ListOptions(), NOW)]
        assert ids == [1, 2, 4]
        ids = [t.id for t in filter_tasks(self.board, ListOptions(statuses=["archived"]), NOW)]
        assert ids == [3]

    def test_filters(self) -> None:
        def ids(**kw) -> list[int]:  # noqa: ANN003
            return [t.id for t in filter_tasks(self.board, ListOptions(**kw), NOW)]

        assert ids(blocked=True) == [2]
        assert ids(blocked=False) == [1, 4]
        assert ids(parent=1) == [4]
        assert ids(unblocked=True) == [1, 2]
        assert ids(tag="api") == [1]
        assert ids(assignee="ann") == [1]
        assert ids(sort="status", reverse=True) == [2, 1, 4]
        assert ids(limit=1) == [1]

    def test_group_by_tag(self) -> None:
        tasks = filter_tasks(self.board, ListOptions(), NOW)
        groups = group_tasks(self.cfg, tasks, "tag").unwrap()
        assert list(groups) == ["api", NO_TAG]

    def test_group_by_status_drops_empty(self) -> None:
        tasks = filter_tasks(self.board, ListOptions(), NOW)
        groups = group_tasks(self.cfg, tasks, "status").unwrap()
        assert list(groups) == ["backlog", "todo", "in-progress"]


class TestBoardSummary(unittest.TestCase):
    def test_counts(self) -> None:
        cfg = new_default("test", wip_limits={"in-progress": 3})
        tasks = [
            _task(1, "in-progress", blocked=True),
            _task(2, "in-progress", due="2025-06-01"),
            _task(3, "done", due="2025-06-01"),
            _task(4, "archived"),
        ]
        ov = board_summary(cfg, tasks, NOW)
        assert ov.total_tasks == 3
        ip = next(s for s in ov.statuses if s.status == "in-progress")
        assert (ip.count, ip.wip_limit, ip.blocked, ip.overdue) == (2, 3, 1, 1)
        assert "archived" not in [s.status for s in ov.statuses]
        assert ov.classes["standard"] == 3

    def test_overdue_ignores_done(self) -> None:
        cfg = new_default("test")
        assert is_overdue(cfg, _task(1, due="2025-01-01"), date(2025, 6, 1))
        assert not is_overdue(cfg, _task(1, "done", due="2025-01-01"), date(2025, 6, 1))


class TestMetrics(unittest.TestCase):
    def test_lead_cycle_and_aging(self) -> None:
        cfg = new_default("test")
        tasks = [
            _task(
                1,
                "done",
                started="2025-06-05T00:00:00Z",
                completed="2025-06-09T00:00:00Z",
            ),
            _task(2, "in-progress", started="2025-06-08T12:00:00Z"),
            _task(3, "review", started="2025-06-10T00:00:00Z"),
        ]
        m = compute_metrics(cfg, tasks, NOW)
        assert m.throughput_7d == 1
        assert m.throughput_30d == 1
        assert m.avg_lead_time_hours == 192.0
        assert m.avg_cycle_time_hours == 96.0
        assert m.flow_efficiency == 0.5
        assert [a.id for a in m.aging_items] == [2, 3]
        assert m.aging_items[0].age_hours == 48.0

    def test_since(self) -> None:
        cfg = new_default("test")
        tasks = [_task(1, "done", completed="2025-05-01T00:00:00Z")]
        m = compute_metrics(cfg, tasks, NOW, since=date(2025, 6, 1))
        assert m.throughput_30d == 0
        assert m.avg_lead_time_hours is None


class TestContext(unittest.TestCase):
    def setUp(self) -> None:
        self.cfg = new_default("demo")
        self.board = Board.build(
            self.cfg,
            [
                _task(1, "in-progress", priority="low"),
                _task(2, "in-progress", priority="high", assignee="ann"),
                _task(3, "todo", blocked=True, block_reason="waiting"),
                _task(4, "todo"),
                _task(5, "done", completed="2025-06-09T00:00:00Z"),
                _task(6, "backlog", due="2025-06-01"),
            ],
        )

    def test_sections(self) -> None:
        data = generate_context(self.board, NOW)
        by_name = {s.name: [i.id for i in s.items] for s in data.sections}
        assert by_name["in-progress"] == [2, 4, 1]
        assert by_name["blocked"] == [3]
        assert by_name["ready"] == [4]
        assert by_name["overdue"] == [6]
        assert by_name["recently-completed"] == [5]
        assert data.total_tasks == 6
        assert data.active == 4

    def test_markdown(self) -> None:
        text = render_markdown(generate_context(self.board, NOW, sections=["blocked"]))
        assert text.startswith(BEGIN_MARKER)
        assert text.rstrip().endswith(END_MARKER)
        assert "### Blocked" in text
        assert "- **#3** task 3 (medium): waiting" in text

    def test_write_replaces_block(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            path = Path(d) / "AGENTS.md"
            path.write_text("# Notes\n", encoding="utf-8")
            write_context_file(path, f"{BEGIN_MARKER}\nold\n{END_MARKER}\n")
            write_context_file(path, f"{BEGIN_MARKER}\nnew\n{END_MARKER}\n")
            text = path.read_text(encoding="utf-8")
            assert text.startswith("# Notes\n\n")
            assert "new" in text
            assert "old" not in text
            assert text.count(BEGIN_MARKER) == 1
