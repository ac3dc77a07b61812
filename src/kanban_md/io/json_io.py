# ruff: noqa: T201

import json
from typing import Any

from kanban_md.core.errors import KanbanError
from kanban_md.core.models import LogEntry, Task


def dumps(data: Any) -> str:  # noqa: ANN401
    return json.dumps(data, ensure_ascii=False, indent=2)


def print_json(data: Any) -> None:  # noqa: ANN401
    print(dumps(data))


def print_tasks_json(tasks: list[Task]) -> None:
    print_json([t.to_json() for t in tasks])


def print_groups_json(groups: dict[str, list[Task]]) -> None:
    print_json([{"group": name, "tasks": [t.to_json() for t in tasks]} for name, tasks in groups.items()])


def print_log_json(entries: list[LogEntry]) -> None:
    print_json([e.to_dict() for e in entries])


def print_error_json(err: KanbanError) -> None:
    """構造化エラーは stdout に 1 つの JSON オブジェクトとして出す。"""
    print(json.dumps(err.to_dict(), ensure_ascii=False))
