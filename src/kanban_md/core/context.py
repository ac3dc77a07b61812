from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from pyresults import Err, Ok, Result

from kanban_md.core.board import Board
from kanban_md.core.errors import ErrorCode, KanbanError, io_error
from kanban_md.core.models import Task
from kanban_md.core.summary import is_overdue
from kanban_md.util.time import parse_time

BEGIN_MARKER = "<!-- BEGIN kanban-md context -->"
END_MARKER = "<!-- END kanban-md context -->"

SECTION_IN_PROGRESS = "in-progress"
SECTION_BLOCKED = "blocked"
SECTION_READY = "ready"
SECTION_OVERDUE = "overdue"
SECTION_RECENTLY_COMPLETED = "recently-completed"

SECTIONS = (
    SECTION_IN_PROGRESS,
    SECTION_BLOCKED,
    SECTION_READY,
    SECTION_OVERDUE,
    SECTION_RECENTLY_COMPLETED,
)
SECTION_TITLES = {
    SECTION_IN_PROGRESS: "In Progress",
    SECTION_BLOCKED: "Blocked",
    SECTION_READY: "Ready to Start",
    SECTION_OVERDUE: "Overdue",
    SECTION_RECENTLY_COMPLETED: "Recently Completed",
}
DEFAULT_DAYS = 7


@dataclass
class ContextItem:
    id: int
    title: str
    status: str
    priority: str
    assignee: str = ""
    note: str = ""


@dataclass
class ContextSection:
    name: str
    items: list[ContextItem] = field(default_factory=list)


@dataclass
class ContextData:
    board_name: str
    total_tasks: int = 0
    active: int = 0
    blocked: int = 0
    overdue: int = 0
    wip_warning: str = ""
    sections: list[ContextSection] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def validate_sections(names: list[str]) -> Result[list[str], KanbanError]:
    for n in names:
        if n not in SECTIONS:
            return Err[list[str], KanbanError](
                KanbanError(
                    ErrorCode.INVALID_INPUT,
                    f"unknown context section {n!r}",
                    {"section": n, "allowed": list(SECTIONS)},
                ),
            )
    return Ok[list[str], KanbanError](names)


def _item(t: Task, note: str = "") -> ContextItem:
    return ContextItem(t.id, t.title, t.status, t.priority, t.assignee, note)


def generate_context(
    board: Board,
    now: datetime,
    *,
    sections: list[str] | None = None,
    days: int = DEFAULT_DAYS,
) -> ContextData:
    """エージェント向けのボード概要を作る。archived のタスクは含めない。"""
    cfg = board.config
    tasks = [t for t in board.all() if not cfg.is_archived(t.status)]
    today = now.date()
    days = days if days > 0 else DEFAULT_DAYS

    def is_active(t: Task) -> bool:
        return t.status != cfg.initial_status() and not cfg.is_terminal(t.status)

    def by_priority(items: list[Task]) -> list[Task]:
        return sorted(items, key=lambda t: -cfg.priority_index(t.priority))

    data = ContextData(
        board_name=cfg.name,
        total_tasks=len(tasks),
        active=sum(1 for t in tasks if is_active(t)),
        blocked=sum(1 for t in tasks if t.blocked),
        overdue=sum(1 for t in tasks if is_overdue(cfg, t, today)),
    )
    full = [
        f"{s} ({board.count_in_status(s)}/{cfg.wip_limit(s)})"
        for s in cfg.board_statuses()
        if 0 < cfg.wip_limit(s) <= board.count_in_status(s)
    ]
    if full:
        data.wip_warning = "WIP limit reached: " + ", ".join(full)

    cols = cfg.board_statuses()
    ready_status = cols[1] if len(cols) > 1 else ""
    cutoff = now - timedelta(days=days)

    for name in sections or list(SECTIONS):
        items: list[ContextItem] = []
        match name:
            case "in-progress":
                items = [_item(t) for t in by_priority([t for t in tasks if is_active(t) and not t.blocked])]
            case "blocked":
                items = [_item(t, t.block_reason) for t in tasks if t.blocked]
            case "ready":
                items = [
                    _item(t)
                    for t in by_priority(tasks)
                    if t.status == ready_status and not t.blocked and board.is_unblocked(t)
                ]
            case "overdue":
                items = [_item(t, f"due {t.due}") for t in tasks if is_overdue(cfg, t, today)]
            case "recently-completed":
                for t in tasks:
                    done_at = parse_time(t.completed).unwrap_or(default=None) if t.completed else None
                    if cfg.is_terminal(t.status) and done_at is not None and done_at > cutoff:
                        items.append(_item(t, f"completed {done_at.date().isoformat()}"))
        if items:
            data.sections.append(ContextSection(name, items))
    return data


def render_markdown(data: ContextData) -> str:
    lines = [
        BEGIN_MARKER,
        f"## Board: {data.board_name}",
        "",
        f"**{data.total_tasks} tasks** | {data.active} active | {data.blocked} blocked | {data.overdue} overdue",
    ]
    if data.wip_warning:
        lines += ["", f"> {data.wip_warning}"]
    for sec in data.sections:
        lines += ["", f"### {SECTION_TITLES.get(sec.name, sec.name)}", ""]
        for item in sec.items:
            parts = [item.priority]
            if item.assignee:
                parts.append("@" + item.assignee)
            line = f"- **#{item.id}** {item.title} ({', '.join(parts)})"
            if item.note:
                line += f": {item.note}"
            lines.append(line)
    lines.append(END_MARKER)
    return "\n".join(lines) + "\n"


def write_context_file(path: Path, content: str) -> None:
    """マーカーで囲まれた既存ブロックを置き換える。なければ末尾に追記する。"""
    try:
        text = path.read_text(encoding="utf-8") if path.exists() else ""
        begin = text.find(BEGIN_MARKER)
        end = text.find(END_MARKER)
        if begin >= 0 and end > begin:
            stop = end + len(END_MARKER)
            if text[stop : stop + 1] == "\n":
                stop += 1
            updated = text[:begin] + content + text[stop:]
        elif text:
            sep = "\n" if text.endswith("\n") else "\n\n"
            updated = text + sep + content
        else:
            updated = content
        path.write_text(updated, encoding="utf-8")
    except OSError as e:
        raise io_error(path.as_posix(), e) from e
