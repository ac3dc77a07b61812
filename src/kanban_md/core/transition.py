from datetime import datetime

from pyresults import Err, Ok, Result

from kanban_md.core.board import Board
from kanban_md.core.config import BoardConfig
from kanban_md.core.errors import ErrorCode, KanbanError
from kanban_md.core.models import Task
from kanban_md.core.validate import validate_status
from kanban_md.util.time import format_time

FORCE_SUFFIX = " (overridden with --force)"


def resolve_target(
    cfg: BoardConfig,
    task: Task,
    status: str | None = None,
    *,
    next_: bool = False,
    prev: bool = False,
) -> Result[str, KanbanError]:
    """移動先ステータスを決める。--next/--prev は archived を除いた列の順序で解決する。"""
    chosen = sum([status is not None, next_, prev])
    if chosen > 1:
        return Err[str, KanbanError](
            KanbanError(ErrorCode.STATUS_CONFLICT, "provide either a target status or one of --next/--prev"),
        )
    if status is not None:
        return validate_status(cfg, status)
    if not (next_ or prev):
        return Err[str, KanbanError](
            KanbanError(ErrorCode.INVALID_INPUT, "provide a target status or use --next/--prev"),
        )

    order = cfg.board_statuses()
    # archived は最後の列のさらに後ろにあるものとして扱う
    idx = len(order) if cfg.is_archived(task.status) else order.index(task.status) if task.status in order else -1
    if next_:
        if idx < 0 or idx >= len(order) - 1:
            return Err[str, KanbanError](_boundary(task, "last"))
        return Ok[str, KanbanError](order[idx + 1])
    if idx <= 0:
        return Err[str, KanbanError](_boundary(task, "first"))
    return Ok[str, KanbanError](order[idx - 1])


def _boundary(task: Task, direction: str) -> KanbanError:
    return KanbanError(
        ErrorCode.BOUNDARY_ERROR,
        f"task #{task.id} is already at the {direction} status ({task.status})",
        {"id": task.id, "status": task.status, "direction": direction},
    )


def check_wip(
    board: Board,
    task: Task,
    target: str,
    *,
    old_status: str = "",
    old_class: str | None = None,
    force: bool = False,
) -> Result[list[str], KanbanError]:
    """列の WIP 制限と class of service の全体制限を確認する。

    --force のときは違反を警告に変えて続行する。
    Returns:
        Ok(list[str]): 出すべき警告
        Err(KanbanError): WIP_LIMIT_EXCEEDED / CLASS_WIP_EXCEEDED
    """
    cfg = board.config
    warnings: list[str] = []
    if cfg.is_archived(target):
        return Ok[list[str], KanbanError](warnings)

    errors: list[KanbanError] = []
    cls = cfg.class_by_name(task.class_)

    if target != old_status and not (cls and cls.bypass_column_wip):
        limit = cfg.wip_limit(target)
        current = board.count_in_status(target, exclude=task.id)
        if limit > 0 and current >= limit:
            errors.append(
                KanbanError(
                    ErrorCode.WIP_LIMIT_EXCEEDED,
                    f"WIP limit reached for {target!r} ({current}/{limit})",
                    {"status": target, "limit": limit, "current": current},
                ),
            )

    class_changed = old_class is not None and old_class != task.class_
    if cls and cls.wip_limit > 0 and not cfg.is_done(target) and (target != old_status or class_changed):
        current = board.count_in_class(cls.name, exclude=task.id)
        if current >= cls.wip_limit:
            errors.append(
                KanbanError(
                    ErrorCode.CLASS_WIP_EXCEEDED,
                    f"class WIP limit reached for {cls.name!r} ({current}/{cls.wip_limit})",
                    {"class": cls.name, "limit": cls.wip_limit, "current": current},
                ),
            )

    if errors and not force:
        return Err[list[str], KanbanError](errors[0])
    warnings.extend(e.message + FORCE_SUFFIX for e in errors)
    return Ok[list[str], KanbanError](warnings)


def stamp_transition(cfg: BoardConfig, task: Task, old_status: str, new_status: str, now: datetime) -> None:
    """ステータス遷移に伴う started / completed の更新。

    - 初期ステータス以外 (archived を除く) に入ったとき started が未設定なら設定
    - terminal に入ったら completed を設定
    - terminal から出たら completed を消す (started は残す)
    """
    stamp = format_time(now)
    if old_status == new_status:
        return
    if new_status != cfg.initial_status() and not cfg.is_archived(new_status) and not task.started:
        task.started = stamp
    if cfg.is_terminal(new_status):
        task.completed = stamp
    elif cfg.is_terminal(old_status) or task.completed:
        task.completed = None


def blocked_warning(task: Task) -> list[str]:
    if not task.blocked:
        return []
    reason = task.block_reason or "no reason given"
    return [f"task #{task.id} is blocked ({reason})"]
