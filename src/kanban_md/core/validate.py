from collections.abc import Callable, Iterable, Iterator

from pyresults import Err, Ok, Result

from kanban_md.core.config import BoardConfig
from kanban_md.core.errors import ErrorCode, KanbanError
from kanban_md.core.models import Task
from kanban_md.util.time import DATE_FMT, format_time, is_estimate, parse_date, parse_duration, parse_time

WHITE = 0
GRAY = 1
BLACK = 2


# ---- 値の検証 ----


def validate_title(title: str) -> Result[str, KanbanError]:
    t = title.strip()
    if not t:
        return Err[str, KanbanError](KanbanError(ErrorCode.INVALID_INPUT, "title must not be empty"))
    return Ok[str, KanbanError](t)


def validate_status(cfg: BoardConfig, status: str) -> Result[str, KanbanError]:
    if status in cfg.statuses:
        return Ok[str, KanbanError](status)
    return Err[str, KanbanError](
        KanbanError(
            ErrorCode.INVALID_STATUS,
            f"invalid status {status!r}",
            {"status": status, "allowed": list(cfg.statuses)},
        ),
    )


def validate_priority(cfg: BoardConfig, priority: str) -> Result[str, KanbanError]:
    if priority in cfg.priorities:
        return Ok[str, KanbanError](priority)
    return Err[str, KanbanError](
        KanbanError(
            ErrorCode.INVALID_PRIORITY,
            f"invalid priority {priority!r}",
            {"priority": priority, "allowed": list(cfg.priorities)},
        ),
    )


def validate_class(cfg: BoardConfig, name: str) -> Result[str, KanbanError]:
    # 空文字はクラスなし
    if not name or name in cfg.class_names():
        return Ok[str, KanbanError](name)
    return Err[str, KanbanError](
        KanbanError(
            ErrorCode.INVALID_CLASS,
            f"invalid class {name!r}",
            {"class": name, "allowed": cfg.class_names()},
        ),
    )


def validate_date(field: str, value: str) -> Result[str, KanbanError]:
    """YYYY-MM-DD を検証し、正規化した文字列を返す。"""
    match parse_date(value):
        case Ok(d):
            return Ok[str, KanbanError](d.strftime(DATE_FMT))
        case Err(e):
            return Err[str, KanbanError](
                KanbanError(ErrorCode.INVALID_DATE, f"invalid {field} date: {e}", {"field": field, "input": value}),
            )
        case _:
            return Err[str, KanbanError](KanbanError(ErrorCode.INTERNAL_ERROR, "Unexpected error"))


def validate_timestamp(field: str, value: str) -> Result[str, KanbanError]:
    """RFC3339 または YYYY-MM-DD を受け付け、UTC の RFC3339 文字列に揃える。"""
    match parse_time(value):
        case Ok(dt):
            return Ok[str, KanbanError](format_time(dt))
        case Err(e):
            return Err[str, KanbanError](
                KanbanError(ErrorCode.INVALID_DATE, f"invalid {field} date: {e}", {"field": field, "input": value}),
            )
        case _:
            return Err[str, KanbanError](KanbanError(ErrorCode.INTERNAL_ERROR, "Unexpected error"))


def validate_estimate(value: str) -> Result[str, KanbanError]:
    if is_estimate(value):
        return Ok[str, KanbanError](value.strip())
    return Err[str, KanbanError](
        KanbanError(
            ErrorCode.INVALID_INPUT,
            f"invalid estimate {value!r} (expected e.g. 4h, 2d, 1w)",
            {"input": value},
        ),
    )


def validate_duration(field: str, value: str) -> Result[str, KanbanError]:
    match parse_duration(value):
        case Ok(_):
            return Ok[str, KanbanError](value.strip())
        case Err(e):
            return Err[str, KanbanError](
                KanbanError(ErrorCode.INVALID_INPUT, f"invalid {field}: {e}", {"field": field, "input": value}),
            )
        case _:
            return Err[str, KanbanError](KanbanError(ErrorCode.INTERNAL_ERROR, "Unexpected error"))


# ---- 参照の検証 ----


def validate_references(
    tasks: dict[int, Task],
    subject_id: int,
    ref_ids: Iterable[int],
    *,
    field: str = "depends_on",
) -> Result[None, KanbanError]:
    """参照先が存在し、自分自身でないことを確認する。"""
    for rid in ref_ids:
        if rid == subject_id:
            what = "be its own parent" if field == "parent" else "depend on itself"
            return Err[None, KanbanError](
                KanbanError(
                    ErrorCode.SELF_REFERENCE,
                    f"task cannot {what} (ID {rid})",
                    {"id": rid, "field": field},
                ),
            )
        if rid not in tasks:
            label = "parent" if field == "parent" else "dependency"
            return Err[None, KanbanError](
                KanbanError(
                    ErrorCode.DEPENDENCY_NOT_FOUND,
                    f"{label} task #{rid} not found",
                    {"id": rid, "field": field},
                ),
            )
    return Ok[None, KanbanError](None)


def detect_cycles(
    tasks: dict[int, Task],
    edges: Callable[[Task], list[int]],
    roots: Iterable[int] | None = None,
) -> list[list[int]]:
    """Detect all cycles in the graph given by ``edges`` using DFS.

    Returns a list of cycles, where each cycle is represented as a list of task IDs.
    ``roots`` limits the walk to what is reachable from those tasks.
    The walk keeps its own stack so long dependency chains do not hit the recursion limit.
    """
    cycles: list[list[int]] = []
    color: dict[int, int] = dict.fromkeys(tasks.keys(), WHITE)

    def targets(u: int) -> Iterator[int]:
        return iter([v for v in edges(tasks[u]) if v in tasks])

    for root in list(tasks) if roots is None else list(roots):
        if color.get(root, BLACK) != WHITE:
            continue
        color[root] = GRAY
        path = [root]
        stack = [targets(root)]
        while stack:
            v = next(stack[-1], None)
            if v is None:
                stack.pop()
                color[path.pop()] = BLACK
            elif color[v] == GRAY:
                # Cycle detected
                cycles.append([*path[path.index(v) :], v])
            elif color[v] == WHITE:
                color[v] = GRAY
                path.append(v)
                stack.append(targets(v))

    return cycles


def depends_edges(t: Task) -> list[int]:
    return list(t.depends_on)


def parent_edges(t: Task) -> list[int]:
    return [t.parent] if t.parent is not None else []


def validate_no_cycle(tasks: dict[int, Task], candidate: Task) -> Result[None, KanbanError]:
    """candidate を反映したグラフに、candidate を含む循環がないことを確認する。"""
    graph = {**tasks, candidate.id: candidate}
    for field, edges in (("depends_on", depends_edges), ("parent", parent_edges)):
        for cycle in detect_cycles(graph, edges, roots=[candidate.id]):
            if candidate.id in cycle:
                path = " -> ".join(f"#{i}" for i in cycle)
                return Err[None, KanbanError](
                    KanbanError(
                        ErrorCode.SELF_REFERENCE,
                        f"{field} would create a cycle: {path}",
                        {"id": candidate.id, "field": field, "cycle": cycle},
                    ),
                )
    return Ok[None, KanbanError](None)
