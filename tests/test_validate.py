import unittest

from kanban_md.core.config import new_default
from kanban_md.core.errors import ErrorCode
from kanban_md.core.models import Task
from kanban_md.core.validate import (
    depends_edges,
    detect_cycles,
    parent_edges,
    validate_class,
    validate_date,
    validate_estimate,
    validate_no_cycle,
    validate_priority,
    validate_references,
    validate_status,
    validate_timestamp,
    validate_title,
)


def _task(tid: int, depends_on: list[int] | None = None, parent: int | None = None) -> Task:
    return Task(id=tid, title=f"t{tid}", status="backlog", priority="medium", depends_on=depends_on or [], parent=parent)


class TestValueValidation(unittest.TestCase):
    def setUp(self) -> None:
        self.cfg = new_default("test")

    def test_title(self) -> None:
        assert validate_title("  hi ").unwrap() == "hi"
        assert validate_title("   ").unwrap_err().code == ErrorCode.INVALID_INPUT

    def test_status(self) -> None:
        assert validate_status(self.cfg, "todo").is_ok()
        err = validate_status(self.cfg, "doing").unwrap_err()
        assert err.code == ErrorCode.INVALID_STATUS
        assert "todo" in err.details["allowed"]

    def test_priority(self) -> None:
        assert validate_priority(self.cfg, "high").is_ok()
        assert validate_priority(self.cfg, "urgent").unwrap_err().code == ErrorCode.INVALID_PRIORITY

    def test_class(self) -> None:
        assert validate_class(self.cfg, "").is_ok()
        assert validate_class(self.cfg, "expedite").is_ok()
        assert validate_class(self.cfg, "vip").unwrap_err().code == ErrorCode.INVALID_CLASS

    def test_date(self) -> None:
        assert validate_date("due", "2025-02-03").unwrap() == "2025-02-03"
        err = validate_date("due", "03/02/2025").unwrap_err()
        assert err.code == ErrorCode.INVALID_DATE
        assert err.details["field"] == "due"

    def test_timestamp_normalized(self) -> None:
        assert validate_timestamp("started", "2025-02-03").unwrap() == "2025-02-03T00:00:00Z"
        assert validate_timestamp("started", "nope").unwrap_err().code == ErrorCode.INVALID_DATE

    def test_estimate(self) -> None:
        assert validate_estimate("4h").unwrap() == "4h"
        assert validate_estimate("4 hours").is_err()


class TestReferences(unittest.TestCase):
    def setUp(self) -> None:
        self.tasks = {1: _task(1), 2: _task(2)}

    def test_ok(self) -> None:
        assert validate_references(self.tasks, 3, [1, 2]).is_ok()

    def test_self_reference(self) -> None:
        err = validate_references(self.tasks, 2, [2]).unwrap_err()
        assert err.code == ErrorCode.SELF_REFERENCE

    def test_parent_self_reference(self) -> None:
        err = validate_references(self.tasks, 2, [2], field="parent").unwrap_err()
        assert err.code == ErrorCode.SELF_REFERENCE
        assert "parent" in err.message

    def test_missing(self) -> None:
        err = validate_references(self.tasks, 3, [9]).unwrap_err()
        assert err.code == ErrorCode.DEPENDENCY_NOT_FOUND
        assert err.details["id"] == 9


class TestDetectCycles(unittest.TestCase):
    def test_no_cycle(self) -> None:
        tasks = {1: _task(1), 2: _task(2, [1]), 3: _task(3, [2])}
        assert detect_cycles(tasks, depends_edges) == []

    def test_simple_cycle(self) -> None:
        tasks = {1: _task(1, [2]), 2: _task(2, [1])}
        cycles = detect_cycles(tasks, depends_edges)
        assert len(cycles) == 1
        assert cycles[0] == [1, 2, 1]

    def test_missing_targets_are_ignored(self) -> None:
        tasks = {1: _task(1, [42])}
        assert detect_cycles(tasks, depends_edges) == []

    def test_parent_cycle(self) -> None:
        tasks = {1: _task(1, parent=2), 2: _task(2, parent=1)}
        assert detect_cycles(tasks, parent_edges) != []

    def test_long_chain(self) -> None:
        n = 5000
        tasks = {i: _task(i, [i + 1] if i < n else []) for i in range(1, n + 1)}
        assert detect_cycles(tasks, depends_edges) == []
        tasks[n] = _task(n, [1])
        cycles = detect_cycles(tasks, depends_edges, roots=[n])
        assert len(cycles) == 1
        assert cycles[0][0] == n
        assert len(cycles[0]) == n + 1

    def test_roots_limit_the_walk(self) -> None:
        tasks = {1: _task(1, [2]), 2: _task(2, [1]), 3: _task(3)}
        assert detect_cycles(tasks, depends_edges, roots=[3]) == []


class TestValidateNoCycle(unittest.TestCase):
    def test_transitive_dependency_cycle(self) -> None:
        """A→B→C があるとき C→A の追加は拒否される"""
        tasks = {1: _task(1, [2]), 2: _task(2, [3]), 3: _task(3)}
        candidate = _task(3, [1])
        err = validate_no_cycle(tasks, candidate).unwrap_err()
        assert err.code == ErrorCode.SELF_REFERENCE
        assert err.details["field"] == "depends_on"
        assert 3 in err.details["cycle"]

    def test_unrelated_change_ok(self) -> None:
        tasks = {1: _task(1, [2]), 2: _task(2)}
        assert validate_no_cycle(tasks, _task(3, [1])).is_ok()

    def test_long_chain_does_not_recurse(self) -> None:
        tasks = {i: _task(i, [i - 1] if i > 1 else []) for i in range(1, 3001)}
        assert validate_no_cycle(tasks, _task(3001, [3000])).is_ok()
        err = validate_no_cycle(tasks, _task(1, [3000])).unwrap_err()
        assert err.code == ErrorCode.SELF_REFERENCE
