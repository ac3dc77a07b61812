# ruff: noqa: T201

from typing import Any

from kanban_md.core.models import LogEntry, Task
from kanban_md.core.ops import BatchResult
from kanban_md.core.summary import Metrics, Overview
from kanban_md.util.time import hours_between

TABLE_COLUMNS = ("ID", "STATUS", "PRIORITY", "TITLE", "ASSIGNEE", "TAGS", "DUE")
MAX_TITLE_WIDTH = 50


def _truncate(s: str, width: int) -> str:
    if len(s) <= width:
        return s
    return s[: width - 3] + "..."


def _row(t: Task) -> list[str]:
    title = _truncate(t.title, MAX_TITLE_WIDTH)
    if t.blocked:
        title = "[B] " + title
    if t.claimed_by:
        title += f" (@{t.claimed_by})"
    return [f"#{t.id}", t.status, t.priority, title, t.assignee, ",".join(t.tags), t.due or ""]


def print_table(header: list[str] | tuple[str, ...], rows: list[list[str]]) -> None:
    widths = [len(h) for h in header]
    for r in rows:
        widths = [max(w, len(c)) for w, c in zip(widths, r, strict=True)]
    print("  ".join(h.ljust(w) for h, w in zip(header, widths, strict=True)).rstrip())
    for r in rows:
        print("  ".join(c.ljust(w) for c, w in zip(r, widths, strict=True)).rstrip())


def print_task_table(tasks: list[Task]) -> None:
    if not tasks:
        print("No tasks found.")
        return
    print_table(TABLE_COLUMNS, [_row(t) for t in tasks])


def compact_line(t: Task) -> str:
    parts = [f"#{t.id}", f"[{t.status}/{t.priority}]", t.title]
    if t.assignee:
        parts.append(f"@{t.assignee}")
    if t.tags:
        parts.append("(" + ", ".join(t.tags) + ")")
    if t.due:
        parts.append(f"due:{t.due}")
    if t.blocked:
        parts.append("BLOCKED")
    if t.claimed_by:
        parts.append(f"claimed:{t.claimed_by}")
    return " ".join(parts)


def print_task_compact(tasks: list[Task]) -> None:
    for t in tasks:
        print(compact_line(t))


def print_groups(groups: dict[str, list[Task]], *, compact: bool = False) -> None:
    for i, (name, tasks) in enumerate(groups.items()):
        if i:
            print()
        print(f"== {name} ({len(tasks)}) ==")
        if compact:
            print_task_compact(tasks)
        else:
            print_task_table(tasks)


def print_task(t: Task) -> None:
    """タスクの詳細表示。完了済みなら lead / cycle time も出す。"""
    print(f"Task #{t.id}: {t.title}")
    print()
    print(f"  status:    {t.status}")
    print(f"  priority:  {t.priority}")
    if t.class_:
        print(f"  class:     {t.class_}")
    if t.assignee:
        print(f"  assignee:  {t.assignee}")
    if t.tags:
        print(f"  tags:      {', '.join(t.tags)}")
    if t.due:
        print(f"  due:       {t.due}")
    if t.estimate:
        print(f"  estimate:  {t.estimate}")
    if t.parent is not None:
        print(f"  parent:    #{t.parent}")
    if t.depends_on:
        print(f"  depends:   {', '.join(f'#{d}' for d in t.depends_on)}")
    if t.blocked:
        print(f"  blocked:   {t.block_reason or 'yes'}")
    if t.claimed_by:
        print(f"  claimed:   {t.claimed_by} (since {t.claimed_at})")
    print(f"  created:   {t.created}")
    print(f"  updated:   {t.updated}")
    if t.started:
        print(f"  started:   {t.started}")
    if t.completed:
        print(f"  completed: {t.completed}")
        if (lead := hours_between(t.created, t.completed)) is not None:
            print(f"  lead time: {lead:.1f}h")
        if (cycle := hours_between(t.started, t.completed)) is not None:
            print(f"  cycle time: {cycle:.1f}h")
    if t.body:
        print()
        print(t.body.rstrip())


def print_overview(ov: Overview) -> None:
    print(f"Board: {ov.board_name} ({ov.total_tasks} tasks)")
    print()
    rows = []
    for s in ov.statuses:
        wip = f"{s.count}/{s.wip_limit}" if s.wip_limit else str(s.count)
        rows.append([s.status, wip, str(s.blocked or ""), str(s.overdue or "")])
    print_table(("STATUS", "COUNT", "BLOCKED", "OVERDUE"), rows)
    counts = [f"{p}={n}" for p, n in ov.priorities.items() if n]
    if counts:
        print()
        print("Priorities: " + ", ".join(counts))
    counts = [f"{c}={n}" for c, n in ov.classes.items() if n]
    if counts:
        print("Classes:    " + ", ".join(counts))


def print_overview_compact(ov: Overview) -> None:
    cols = " | ".join(
        f"{s.status} {s.count}/{s.wip_limit}" if s.wip_limit else f"{s.status} {s.count}" for s in ov.statuses
    )
    print(f"{ov.board_name} ({ov.total_tasks}): {cols}")


def _hours(v: float | None) -> str:
    return "-" if v is None else f"{v:.1f}h"


def print_metrics(m: Metrics) -> None:
    print(f"Throughput (7d):   {m.throughput_7d}")
    print(f"Throughput (30d):  {m.throughput_30d}")
    print(f"Avg lead time:     {_hours(m.avg_lead_time_hours)}")
    print(f"Avg cycle time:    {_hours(m.avg_cycle_time_hours)}")
    eff = "-" if m.flow_efficiency is None else f"{m.flow_efficiency * 100:.0f}%"
    print(f"Flow efficiency:   {eff}")
    if m.aging_items:
        print()
        print("Aging work items:")
        print_table(
            ("ID", "STATUS", "AGE", "TITLE"),
            [[f"#{a.id}", a.status, _hours(a.age_hours), _truncate(a.title, MAX_TITLE_WIDTH)] for a in m.aging_items],
        )


def log_line(e: LogEntry) -> str:
    line = f"{e.timestamp}  {e.action:<8} #{e.task_id}  {e.detail}"
    if e.agent:
        line += f"  [{e.agent}]"
    return line.rstrip()


def print_log(entries: list[LogEntry]) -> None:
    if not entries:
        print("No log entries.")
        return
    for e in entries:
        print(log_line(e))


def format_config_value(v: Any) -> str:  # noqa: ANN401
    if isinstance(v, list):
        return ", ".join(x["name"] if isinstance(x, dict) else str(x) for x in v)
    if isinstance(v, dict):
        return ", ".join(f"{k}={val}" for k, val in v.items()) or "(none)"
    return str(v)


def print_config(values: dict[str, Any]) -> None:
    width = max(len(k) for k in values)
    for k, v in values.items():
        print(f"{k.ljust(width)}  {format_config_value(v)}")


def print_batch(results: list[BatchResult]) -> None:
    for r in results:
        if r.ok:
            print(f"#{r.id}: ok")
        else:
            print(f"#{r.id}: {r.code}: {r.error}")
