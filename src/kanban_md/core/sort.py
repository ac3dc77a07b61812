from dataclasses import dataclass, field
from datetime import datetime, timedelta

from pyresults import Err, Ok, Result

from kanban_md.core.board import Board
from kanban_md.core.claims import is_active_claim
from kanban_md.core.config import BoardConfig
from kanban_md.core.errors import ErrorCode, KanbanError
from kanban_md.core.models import Task

SORT_KEYS = ("id", "status", "priority", "created", "updated", "due")
GROUP_KEYS = ("status", "priority", "assignee", "tag", "class")

NO_ASSIGNEE = "(unassigned)"
NO_TAG = "(untagged)"
NO_CLASS = "(none)"


@dataclass
class ListOptions:
    statuses: list[str] = field(default_factory=list)
    priorities: list[str] = field(default_factory=list)
    assignee: str = ""
    tag: str = ""
    class_: str = ""
    search: str = ""
    blocked: bool | None = None
    parent: int | None = None
    unblocked: bool = False
    unclaimed: bool = False
    claimed_by: str = ""
    archived: bool = False
    sort: str = "id"
    reverse: bool = False
    limit: int = 0


def matches_search(t: Task, query: str) -> bool:
    """title / body / tags に対する大文字小文字を区別しない部分一致。"""
    q = query.lower()
    return q in t.title.lower() or q in t.body.lower() or any(q in tag.lower() for tag in t.tags)


def _matches(board: Board, t: Task, opts: ListOptions, now: datetime, timeout: timedelta) -> bool:  # noqa: C901, PLR0911
    cfg = board.config
    # archived は明示的に指定されたときだけ表示する
    if cfg.is_archived(t.status) and not (opts.archived or t.status in opts.statuses):
        return False
    if opts.statuses and t.status not in opts.statuses:
        return False
    if opts.priorities and t.priority not in opts.priorities:
        return False
    if opts.assignee and t.assignee != opts.assignee:
        return False
    if opts.tag and opts.tag not in t.tags:
        return False
    if opts.class_ and t.class_ != opts.class_:
        return False
    if opts.blocked is not None and t.blocked != opts.blocked:
        return False
    if opts.parent is not None and t.parent != opts.parent:
        return False
    if opts.search and not matches_search(t, opts.search):
        return False
    if opts.unblocked and not board.is_unblocked(t):
        return False
    if opts.unclaimed and is_active_claim(t, now, timeout):
        return False
    if opts.claimed_by and not (t.claimed_by == opts.claimed_by and is_active_claim(t, now, timeout)):
        return False
    return True


def filter_tasks(board: Board, opts: ListOptions, now: datetime) -> list[Task]:
    timeout = board.config.claim_timeout_delta()
    tasks = [t for t in board.all() if _matches(board, t, opts, now, timeout)]
    tasks = sort_tasks(board.config, tasks, opts.sort, reverse=opts.reverse)
    if opts.limit > 0:
        tasks = tasks[: opts.limit]
    return tasks


def task_sort_key(cfg: BoardConfig, t: Task, key: str) -> tuple:  # type: ignore[type-arg]
    # 未設定の due は最後に並べる
    match key:
        case "status":
            return (cfg.status_index(t.status), t.id)
        case "priority":
            return (-cfg.priority_index(t.priority), t.id)
        case "created":
            return (t.created, t.id)
        case "updated":
            return (t.updated, t.id)
        case "due":
            return (t.due is None, t.due or "", t.id)
        case _:
            return (t.id,)


def sort_tasks(cfg: BoardConfig, tasks: list[Task], key: str = "id", *, reverse: bool = False) -> list[Task]:
    return sorted(tasks, key=lambda t: task_sort_key(cfg, t, key), reverse=reverse)


def validate_sort_key(key: str) -> Result[str, KanbanError]:
    if key in SORT_KEYS:
        return Ok[str, KanbanError](key)
    return Err[str, KanbanError](
        KanbanError(ErrorCode.INVALID_INPUT, f"invalid sort key {key!r}", {"sort": key, "allowed": list(SORT_KEYS)}),
    )


def group_tasks(cfg: BoardConfig, tasks: list[Task], by: str) -> Result[dict[str, list[Task]], KanbanError]:
    """タスクをグループ化する。グループの順序は設定の並び順に従う。"""
    groups: dict[str, list[Task]] = {}
    match by:
        case "status":
            for s in cfg.statuses:
                groups[s] = [t for t in tasks if t.status == s]
        case "priority":
            for p in reversed(cfg.priorities):
                groups[p] = [t for t in tasks if t.priority == p]
        case "class":
            for c in cfg.class_names():
                groups[c] = [t for t in tasks if t.class_ == c]
            groups[NO_CLASS] = [t for t in tasks if not t.class_ or t.class_ not in cfg.class_names()]
        case "assignee":
            for name in sorted({t.assignee for t in tasks if t.assignee}):
                groups[name] = [t for t in tasks if t.assignee == name]
            groups[NO_ASSIGNEE] = [t for t in tasks if not t.assignee]
        case "tag":
            for tag in sorted({tag for t in tasks for tag in t.tags}):
                groups[tag] = [t for t in tasks if tag in t.tags]
            groups[NO_TAG] = [t for t in tasks if not t.tags]
        case _:
            return Err[dict[str, list[Task]], KanbanError](
                KanbanError(
                    ErrorCode.INVALID_GROUP_BY,
                    f"invalid group-by field {by!r}",
                    {"group_by": by, "allowed": list(GROUP_KEYS)},
                ),
            )
    return Ok[dict[str, list[Task]], KanbanError]({k: v for k, v in groups.items() if v})
