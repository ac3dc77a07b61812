from __future__ import annotations

import copy
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, TypeVar

from pyresults import Err, Ok, Result

from kanban_md.core.board import Board
from kanban_md.core.claims import Caller, apply_claim, authorize, is_active_claim
from kanban_md.core.config import REVIEW_STATUS, BoardConfig, new_default
from kanban_md.core.context import ContextData, generate_context, validate_sections
from kanban_md.core.errors import ErrorCode, KanbanError
from kanban_md.core.models import LogEntry, Task
from kanban_md.core.sort import ListOptions, filter_tasks, group_tasks, validate_sort_key
from kanban_md.core.summary import Metrics, Overview, board_summary, compute_metrics
from kanban_md.core.transition import blocked_warning, check_wip, resolve_target, stamp_transition
from kanban_md.core.validate import (
    validate_class,
    validate_date,
    validate_duration,
    validate_estimate,
    validate_no_cycle,
    validate_priority,
    validate_references,
    validate_status,
    validate_timestamp,
    validate_title,
)
from kanban_md.storage import Store, get_store
from kanban_md.util.logger import get_diagnostics, get_logger
from kanban_md.util.time import DATE_FMT, format_time, now

T = TypeVar("T")

logger = get_logger()
diagnostics = get_diagnostics()

# (action, detail) のリスト。ミューテーション関数が返し、アクティビティログに書かれる
Actions = list[tuple[str, str]]
Mutator = Callable[[Board, Task, datetime], "Actions | None"]
Precheck = Callable[[Board, Task], None]


@dataclass
class MutationResult:
    """書き込み系ユースケースの結果。

    changed はユーザーから見た変化 (move なら status が変わったか)、
    written は実際にファイルを書き換えたかどうか。
    """

    task: Task
    changed: bool
    written: bool = False


@dataclass
class BatchResult:
    id: int
    ok: bool
    error: str = ""
    code: str = ""

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"id": self.id, "ok": self.ok}
        if self.error:
            out["error"] = self.error
        if self.code:
            out["code"] = self.code
        return out


@dataclass
class EditRequest:
    """edit の入力。None は「指定なし」。"""

    title: str | None = None
    status: str | None = None
    priority: str | None = None
    class_: str | None = None
    assignee: str | None = None
    add_tags: list[str] = field(default_factory=list)
    remove_tags: list[str] = field(default_factory=list)
    due: str | None = None
    clear_due: bool = False
    estimate: str | None = None
    body: str | None = None
    append_body: str | None = None
    timestamp: bool = False
    started: str | None = None
    clear_started: bool = False
    completed: str | None = None
    parent: int | None = None
    clear_parent: bool = False
    add_deps: list[int] = field(default_factory=list)
    remove_deps: list[int] = field(default_factory=list)
    depends_on: list[int] | None = None
    block: str | None = None
    unblock: bool = False

    def has_changes(self) -> bool:
        return any(
            [
                self.title is not None,
                self.status is not None,
                self.priority is not None,
                self.class_ is not None,
                self.assignee is not None,
                self.add_tags,
                self.remove_tags,
                self.due is not None,
                self.clear_due,
                self.estimate is not None,
                self.body is not None,
                self.append_body is not None,
                self.started is not None,
                self.clear_started,
                self.completed is not None,
                self.parent is not None,
                self.clear_parent,
                self.add_deps,
                self.remove_deps,
                self.depends_on is not None,
                self.block is not None,
                self.unblock,
            ],
        )

    def conflicts(self) -> list[str]:
        pairs = [
            ("--block", "--unblock", self.block is not None and self.unblock),
            ("--parent", "--clear-parent", self.parent is not None and self.clear_parent),
            ("--due", "--clear-due", self.due is not None and self.clear_due),
            ("--started", "--clear-started", self.started is not None and self.clear_started),
            ("--body", "--append-body", self.body is not None and self.append_body is not None),
            ("--depends-on", "--add-dep/--remove-dep", self.depends_on is not None and bool(self.add_deps or self.remove_deps)),
        ]
        return [f"{a} and {b}" for a, b, hit in pairs if hit]


# ---- 内部ユーティリティ ----------------------------------------------------


def _unwrap(res: Result[T, KanbanError]) -> T:
    """Err なら中の KanbanError を送出する。"""
    match res:
        case Ok(v):
            return v  # type: ignore[no-any-return]
        case Err(e):
            raise e
        case _:
            raise KanbanError(ErrorCode.INTERNAL_ERROR, "Unexpected error")


def _warn(messages: list[str]) -> None:
    for msg in messages:
        diagnostics.warning(msg)


def _store(root: str | Path) -> Store:
    store = get_store(root)
    if not store.exists():
        raise KanbanError(
            ErrorCode.BOARD_NOT_FOUND,
            "no kanban board found (run 'kanban-md init' to create one)",
            {"dir": Path(root).as_posix()},
        )
    return store


def _load(store: Store) -> Board:
    match store.load_all():
        case Ok(res):
            _warn(res.warnings)
            return Board.build(res.config, res.tasks)
        case Err(e):
            raise KanbanError(ErrorCode.INVALID_CONFIG, f"invalid config: {e}")
        case _:
            raise KanbanError(ErrorCode.INTERNAL_ERROR, "Unexpected error")


@contextmanager
def _open_board(root: str | Path) -> Iterator[tuple[Store, Board]]:
    """ロックを取ってボードを読み込む (読み込み時の自動修復もロック内で行う)。"""
    store = _store(root)
    with store.lock():
        yield store, _load(store)


def _log(store: Store, task: Task, actions: Actions, agent: str, now_: datetime) -> None:
    stamp = format_time(now_)
    for action, detail in actions:
        store.append_log(LogEntry(action=action, task_id=task.id, detail=detail, agent=agent, timestamp=stamp))


def _persist(store: Store, board: Board, original: Task, task: Task) -> None:
    """タスクを書き込む。タイトルが変わった場合は新しいファイル名に移す。"""
    cfg = board.config
    if task.title != original.title and original.file is not None:
        target = store.choose_task_path(cfg, task)
        if target != original.file:
            task.file = target
            store.write_task(cfg, task)
            store.delete_task_file(original.file)
            board.put(task)
            return
    store.write_task(cfg, task)
    board.put(task)


def _claim_actions(original: Task, task: Task, caller: Caller, now_: datetime, cfg: BoardConfig) -> Actions:
    actions: Actions = []
    held = is_active_claim(original, now_, cfg.claim_timeout_delta())
    if task.claimed_by and not (held and original.claimed_by == task.claimed_by):
        actions.append(("claim", task.claimed_by))
    if caller.release and not task.claimed_by and (held or caller.claim):
        actions.append(("release", original.claimed_by if held else caller.claim))
    return actions


def _mutate(
    root: str | Path,
    task_id: int,
    caller: Caller,
    mutator: Mutator,
    precheck: Precheck | None = None,
) -> MutationResult:
    """単一タスクの変更パイプライン。

    ロック → 読み込み(+修復) → 取得 → 入力検証 (precheck) → claim 判定 → 変更 → claim 反映 → 書き込み → ログ
    mutator が None を返した場合は何も書かない。
    """
    with _open_board(root) as (store, board):
        cfg = board.config
        original = _unwrap(board.get(task_id))
        ts = now()
        timeout = cfg.claim_timeout_delta()
        if precheck is not None:
            precheck(board, original)
        _unwrap(authorize(original, caller, ts, timeout))

        task = copy.deepcopy(original)
        actions = mutator(board, task, ts)
        if actions is None:
            return MutationResult(original, changed=False)

        apply_claim(task, caller, ts, timeout)
        if task == original:
            logger.debug("task #%d unchanged", task_id)
            return MutationResult(original, changed=False)

        task.updated = format_time(ts)
        _persist(store, board, original, task)
        _log(store, task, actions + _claim_actions(original, task, caller, ts, cfg), caller.claim, ts)
        logger.debug("task #%d written (%s)", task_id, ", ".join(a for a, _ in actions) or "claim")
        return MutationResult(task, changed=True, written=True)


def _append_body(body: str, text: str, *, timestamp: bool, now_: datetime) -> str:
    if timestamp:
        text = f"[{now_.strftime('%Y-%m-%d %H:%M')}] {text}"
    if not body:
        return text
    return f"{body.rstrip()}\n\n{text}"


# ---- init / config ---------------------------------------------------------


def init_board(
    root: str | Path,
    *,
    name: str | None = None,
    statuses: list[str] | None = None,
    wip_limits: dict[str, int] | None = None,
) -> BoardConfig:
    """ボードを新規作成するユースケース。既に存在する場合は BOARD_ALREADY_EXISTS。"""
    store = get_store(root)
    if store.exists():
        raise KanbanError(
            ErrorCode.BOARD_ALREADY_EXISTS,
            f"board already initialized in {Path(root).as_posix()}",
            {"dir": Path(root).as_posix()},
        )
    board_name = name or Path(root).resolve().parent.name or "kanban"
    cfg = new_default(board_name, statuses=statuses, wip_limits=wip_limits)
    match cfg.validate():
        case Err(e):
            raise KanbanError(ErrorCode.INVALID_CONFIG, f"invalid config: {e}")
    store.initialize(cfg)
    logger.debug("initialized board %r at %s", board_name, root)
    return cfg


CONFIG_KEYS = (
    "version",
    "board.name",
    "board.description",
    "tasks_dir",
    "statuses",
    "priorities",
    "classes",
    "defaults.status",
    "defaults.priority",
    "defaults.class",
    "wip_limits",
    "claim_timeout",
    "next_id",
)
WRITABLE_KEYS = (
    "board.name",
    "board.description",
    "defaults.status",
    "defaults.priority",
    "defaults.class",
    "claim_timeout",
)
WIP_PREFIX = "wip_limits."


def _config_value(cfg: BoardConfig, key: str) -> Any:  # noqa: PLR0911
    match key:
        case "version":
            return cfg.version
        case "board.name":
            return cfg.name
        case "board.description":
            return cfg.description
        case "tasks_dir":
            return cfg.tasks_dir
        case "statuses":
            return list(cfg.statuses)
        case "priorities":
            return list(cfg.priorities)
        case "classes":
            return [c.to_dict() for c in cfg.classes]
        case "defaults.status":
            return cfg.default_status
        case "defaults.priority":
            return cfg.default_priority
        case "defaults.class":
            return cfg.default_class
        case "wip_limits":
            return dict(cfg.wip_limits)
        case "claim_timeout":
            return cfg.claim_timeout
        case "next_id":
            return cfg.next_id
    if key.startswith(WIP_PREFIX) and key[len(WIP_PREFIX) :] in cfg.statuses:
        return cfg.wip_limit(key[len(WIP_PREFIX) :])
    raise KanbanError(ErrorCode.INVALID_INPUT, f"unknown config key {key!r}", {"key": key})


def show_config(root: str | Path) -> dict[str, Any]:
    with _open_board(root) as (_, board):
        return {k: _config_value(board.config, k) for k in CONFIG_KEYS}


def get_config_value(root: str | Path, key: str) -> Any:
    with _open_board(root) as (_, board):
        return _config_value(board.config, key)


def set_config_value(root: str | Path, key: str, value: str) -> Any:  # noqa: C901
    """書き込み可能なキーを更新し、検証してから保存する。"""
    with _open_board(root) as (store, board):
        cfg = copy.deepcopy(board.config)
        _config_value(cfg, key)
        match key:
            case "board.name":
                if not value.strip():
                    raise KanbanError(ErrorCode.INVALID_INPUT, "board.name must not be empty")
                cfg.name = value.strip()
            case "board.description":
                cfg.description = value
            case "defaults.status":
                cfg.default_status = _unwrap(validate_status(cfg, value))
            case "defaults.priority":
                cfg.default_priority = _unwrap(validate_priority(cfg, value))
            case "defaults.class":
                cfg.default_class = _unwrap(validate_class(cfg, value))
            case "claim_timeout":
                cfg.claim_timeout = _unwrap(validate_duration("claim_timeout", value))
            case _ if key.startswith(WIP_PREFIX):
                status = key[len(WIP_PREFIX) :]
                try:
                    limit = int(value)
                except ValueError:
                    raise KanbanError(
                        ErrorCode.INVALID_INPUT,
                        f"invalid WIP limit {value!r} (expected a non-negative integer)",
                        {"key": key, "value": value},
                    ) from None
                if limit < 0:
                    raise KanbanError(ErrorCode.INVALID_INPUT, f"WIP limit for {status!r} must be >= 0")
                if limit == 0:
                    cfg.wip_limits.pop(status, None)
                else:
                    cfg.wip_limits[status] = limit
            case _:
                raise KanbanError(ErrorCode.INVALID_INPUT, f"config key {key!r} is read-only", {"key": key})
        match cfg.validate():
            case Err(e):
                raise KanbanError(ErrorCode.INVALID_CONFIG, f"invalid config: {e}")
        store.save_config(cfg)
        return _config_value(cfg, key)


# ---- 一覧取得 / 個別取得 ----------------------------------------------------


def load_board(root: str | Path) -> Board:
    with _open_board(root) as (_, board):
        return board


def list_tasks(root: str | Path, opts: ListOptions | None = None) -> list[Task]:
    opts = opts or ListOptions()
    with _open_board(root) as (_, board):
        cfg = board.config
        for s in opts.statuses:
            _unwrap(validate_status(cfg, s))
        for p in opts.priorities:
            _unwrap(validate_priority(cfg, p))
        if opts.class_:
            _unwrap(validate_class(cfg, opts.class_))
        _unwrap(validate_sort_key(opts.sort))
        return filter_tasks(board, opts, now())


def list_grouped(root: str | Path, opts: ListOptions, group_by: str) -> dict[str, list[Task]]:
    tasks = list_tasks(root, opts)
    cfg = load_board(root).config
    return _unwrap(group_tasks(cfg, tasks, group_by))


def get_task(root: str | Path, task_id: int) -> Task:
    """単一タスクを取得するユースケース。見つからない場合は TASK_NOT_FOUND。"""
    with _open_board(root) as (_, board):
        return _unwrap(board.get(task_id))


def summarize(root: str | Path) -> Overview:
    with _open_board(root) as (_, board):
        return board_summary(board.config, board.all(), now())


def metrics(root: str | Path, since: str | None = None) -> Metrics:
    since_date: date | None = None
    if since:
        since_date = datetime.strptime(_unwrap(validate_date("since", since)), DATE_FMT).date()  # noqa: DTZ007
    with _open_board(root) as (_, board):
        return compute_metrics(board.config, board.all(), now(), since_date)


def read_log(
    root: str | Path,
    *,
    since: str | None = None,
    limit: int = 0,
    action: str = "",
    task_id: int | None = None,
) -> list[LogEntry]:
    """アクティビティログを古い順に返す。limit は新しい側から N 件。"""
    since_str = _unwrap(validate_date("since", since)) if since else ""
    store = _store(root)
    entries, warnings = store.read_log()
    _warn(warnings)
    if since_str:
        entries = [e for e in entries if e.timestamp[:10] >= since_str]
    if action:
        entries = [e for e in entries if e.action == action]
    if task_id is not None:
        entries = [e for e in entries if e.task_id == task_id]
    if limit > 0:
        entries = entries[-limit:]
    return entries


def board_context(root: str | Path, *, sections: list[str] | None = None, days: int = 7) -> ContextData:
    wanted = _unwrap(validate_sections(sections or []))
    with _open_board(root) as (_, board):
        return generate_context(board, now(), sections=wanted or None, days=days)


# ---- 追加 ------------------------------------------------------------------


def create_task(  # noqa: C901, PLR0913
    root: str | Path,
    title: str,
    *,
    status: str | None = None,
    priority: str | None = None,
    class_: str | None = None,
    assignee: str = "",
    tags: list[str] | None = None,
    due: str | None = None,
    estimate: str | None = None,
    body: str = "",
    parent: int | None = None,
    depends_on: list[int] | None = None,
    caller: Caller | None = None,
) -> Task:
    """新規タスクを追加するユースケース。

    初期ステータスに対しても WIP 制限 (列・クラス) を確認する。
    """
    caller = caller or Caller()
    with _open_board(root) as (store, board):
        cfg = board.config
        ts = now()
        t = Task(
            id=max(cfg.next_id, board.max_id() + 1),
            title=_unwrap(validate_title(title)),
            status=_unwrap(validate_status(cfg, status or cfg.default_status)),
            priority=_unwrap(validate_priority(cfg, priority or cfg.default_priority)),
            class_=_unwrap(validate_class(cfg, cfg.default_class if class_ is None else class_)),
            assignee=assignee,
            tags=list(dict.fromkeys(tags or [])),
            due=_unwrap(validate_date("due", due)) if due else None,
            estimate=_unwrap(validate_estimate(estimate)) if estimate else None,
            body=body,
            parent=parent,
            depends_on=list(dict.fromkeys(depends_on or [])),
            created=format_time(ts),
            updated=format_time(ts),
        )
        if parent is not None:
            _unwrap(validate_references(board.tasks, t.id, [parent], field="parent"))
        _unwrap(validate_references(board.tasks, t.id, t.depends_on))
        _unwrap(validate_no_cycle(board.tasks, t))

        _warn(_unwrap(check_wip(board, t, t.status, force=caller.force)))
        stamp_transition(cfg, t, "", t.status, ts)
        if caller.claim:
            t.claimed_by = caller.claim
            t.claimed_at = format_time(ts)

        store.write_task(cfg, t)
        cfg.next_id = t.id + 1
        store.save_config(cfg)
        actions: Actions = [("create", t.title)]
        if caller.claim:
            actions.append(("claim", caller.claim))
        _log(store, t, actions, caller.claim, ts)
        logger.debug("created task #%d", t.id)
        return t


# ---- 更新 ------------------------------------------------------------------


def _move_to(board: Board, task: Task, target: str, ts: datetime, *, force: bool) -> Actions:
    """Transition Engine を通したステータス変更。同じステータスなら何もしない。"""
    if target == task.status:
        return []
    _warn(_unwrap(check_wip(board, task, target, old_status=task.status, force=force)))
    _warn(blocked_warning(task))
    old = task.status
    stamp_transition(board.config, task, old, target, ts)
    task.status = target
    return [("move", f"{old} -> {target}")]


def move_task(
    root: str | Path,
    task_id: int,
    status: str | None = None,
    *,
    next_: bool = False,
    prev: bool = False,
    caller: Caller | None = None,
) -> MutationResult:
    """ステータスを変更するユースケース。同じステータスへの移動は changed=False。"""
    caller = caller or Caller()
    old_status: list[str] = []

    def precheck(board: Board, task: Task) -> None:
        _unwrap(resolve_target(board.config, task, status, next_=next_, prev=prev))

    def mutator(board: Board, task: Task, ts: datetime) -> Actions:
        old_status.append(task.status)
        target = _unwrap(resolve_target(board.config, task, status, next_=next_, prev=prev))
        return _move_to(board, task, target, ts, force=caller.force)

    res = _mutate(root, task_id, caller, mutator, precheck)
    res.changed = bool(old_status) and res.task.status != old_status[0]
    return res


def edit_task(root: str | Path, task_id: int, req: EditRequest, caller: Caller | None = None) -> MutationResult:
    """タスクのフィールドを更新するユースケース。"""
    caller = caller or Caller()
    if conflicts := req.conflicts():
        raise KanbanError(
            ErrorCode.STATUS_CONFLICT,
            f"cannot use {conflicts[0]} together",
            {"conflicts": conflicts},
        )
    if not req.has_changes() and not caller.claim and not caller.release:
        raise KanbanError(ErrorCode.NO_CHANGES, "no changes specified", {"id": task_id})

    def precheck(board: Board, _task: Task) -> None:
        _check_edit(board.config, req)

    def mutator(board: Board, task: Task, ts: datetime) -> Actions:
        return _apply_edit(board, task, req, ts, force=caller.force)

    return _mutate(root, task_id, caller, mutator, precheck)


def _check_edit(cfg: BoardConfig, req: EditRequest) -> None:
    """タスクに依存しない値の検証。claim の判定より先に行う。"""
    if req.title is not None:
        _unwrap(validate_title(req.title))
    if req.status is not None:
        _unwrap(validate_status(cfg, req.status))
    if req.priority is not None:
        _unwrap(validate_priority(cfg, req.priority))
    if req.class_ is not None:
        _unwrap(validate_class(cfg, req.class_))
    if req.due is not None:
        _unwrap(validate_date("due", req.due))
    if req.estimate:
        _unwrap(validate_estimate(req.estimate))
    if req.started is not None:
        _unwrap(validate_timestamp("started", req.started))
    if req.completed is not None:
        _unwrap(validate_timestamp("completed", req.completed))


def _apply_edit(  # noqa: C901, PLR0912
    board: Board,
    task: Task,
    req: EditRequest,
    ts: datetime,
    *,
    force: bool,
) -> Actions:
    cfg = board.config
    actions: Actions = []
    fields: list[str] = []
    old_class = task.class_

    if req.title is not None:
        task.title = _unwrap(validate_title(req.title))
        fields.append("title")
    if req.priority is not None:
        task.priority = _unwrap(validate_priority(cfg, req.priority))
        fields.append("priority")
    if req.class_ is not None:
        task.class_ = _unwrap(validate_class(cfg, req.class_))
        fields.append("class")
    if req.assignee is not None:
        task.assignee = req.assignee
        fields.append("assignee")
    if req.add_tags or req.remove_tags:
        tags = list(dict.fromkeys([*task.tags, *req.add_tags]))
        task.tags = [t for t in tags if t not in req.remove_tags]
        fields.append("tags")
    if req.due is not None:
        task.due = _unwrap(validate_date("due", req.due))
        fields.append("due")
    if req.clear_due:
        task.due = None
        fields.append("due")
    if req.estimate is not None:
        task.estimate = _unwrap(validate_estimate(req.estimate)) if req.estimate else None
        fields.append("estimate")
    if req.body is not None:
        task.body = req.body
        fields.append("body")
    if req.append_body is not None:
        task.body = _append_body(task.body, req.append_body, timestamp=req.timestamp, now_=ts)
        fields.append("body")

    # 依存関係
    if req.parent is not None:
        task.parent = req.parent
        _unwrap(validate_references(board.tasks, task.id, [req.parent], field="parent"))
        fields.append("parent")
    if req.clear_parent:
        task.parent = None
        fields.append("parent")
    if req.depends_on is not None:
        _unwrap(validate_references(board.tasks, task.id, req.depends_on))
        task.depends_on = list(dict.fromkeys(req.depends_on))
        fields.append("depends_on")
    if req.add_deps:
        _unwrap(validate_references(board.tasks, task.id, req.add_deps))
        task.depends_on = list(dict.fromkeys([*task.depends_on, *req.add_deps]))
        fields.append("depends_on")
    if req.remove_deps:
        task.depends_on = [d for d in task.depends_on if d not in req.remove_deps]
        fields.append("depends_on")
    if req.parent is not None or req.depends_on is not None or req.add_deps:
        _unwrap(validate_no_cycle(board.tasks, task))

    # ステータス
    if req.status is not None:
        target = _unwrap(validate_status(cfg, req.status))
        actions += _move_to(board, task, target, ts, force=force)
    elif task.class_ != old_class:
        _warn(_unwrap(check_wip(board, task, task.status, old_status=task.status, old_class=old_class, force=force)))

    # 手動の timestamp 補正
    if req.started is not None:
        task.started = _unwrap(validate_timestamp("started", req.started))
        fields.append("started")
    if req.clear_started:
        task.started = None
        fields.append("started")
    if req.completed is not None:
        if not cfg.is_terminal(task.status):
            raise KanbanError(
                ErrorCode.INVALID_INPUT,
                f"--completed requires the task to be in {cfg.terminal_status()!r}",
                {"id": task.id, "status": task.status},
            )
        task.completed = _unwrap(validate_timestamp("completed", req.completed))
        fields.append("completed")

    # ブロック
    if req.block is not None:
        if not req.block.strip():
            raise KanbanError(ErrorCode.INVALID_INPUT, "block reason is required (use --block REASON)")
        task.blocked = True
        task.block_reason = req.block
        actions.append(("block", req.block))
    if req.unblock:
        if task.blocked:
            actions.append(("unblock", task.block_reason))
        task.blocked = False
        task.block_reason = ""

    if fields:
        actions.insert(0, ("edit", ", ".join(dict.fromkeys(fields))))
    return actions


def archive_task(root: str | Path, task_id: int, caller: Caller | None = None, *, action: str = "archive") -> MutationResult:
    """archived への遷移。delete --yes も同じ遷移 (ファイルは残す)。"""
    caller = caller or Caller()

    def mutator(board: Board, task: Task, ts: datetime) -> Actions | None:
        cfg = board.config
        if cfg.is_archived(task.status):
            return None
        warnings = [f"task #{d.id} ({d.title}) depends on this task" for d in board.dependents_of(task.id)]
        warnings += [f"task #{c.id} ({c.title}) has this as parent" for c in board.children_of(task.id)]
        _warn(warnings)
        old = task.status
        target = cfg.statuses[-1]
        stamp_transition(cfg, task, old, target, ts)
        task.status = target
        return [(action, task.title)]

    return _mutate(root, task_id, caller, mutator)


def handoff_task(
    root: str | Path,
    task_id: int,
    caller: Caller,
    *,
    note: str = "",
    timestamp: bool = False,
    block: str | None = None,
) -> MutationResult:
    """review に移し、メモを追記し、必要ならブロック・claim 解放を行う。"""
    if not caller.claim:
        raise KanbanError(ErrorCode.CLAIM_REQUIRED, "handoff requires --claim NAME", {"id": task_id})
    if block is not None and not block.strip():
        raise KanbanError(ErrorCode.INVALID_INPUT, "block reason is required (use --block REASON)")

    def precheck(board: Board, _task: Task) -> None:
        if REVIEW_STATUS not in board.config.statuses:
            raise KanbanError(ErrorCode.INVALID_INPUT, "board has no 'review' status; add one to use handoff")

    def mutator(board: Board, task: Task, ts: datetime) -> Actions:
        actions = _move_to(board, task, REVIEW_STATUS, ts, force=caller.force)
        if note:
            task.body = _append_body(task.body, note, timestamp=timestamp, now_=ts)
        actions.append(("handoff", note or task.title))
        if block is not None:
            task.blocked = True
            task.block_reason = block
            actions.append(("block", block))
        return actions

    return _mutate(root, task_id, caller, mutator, precheck)


def pick_task(
    root: str | Path,
    caller: Caller,
    *,
    statuses: list[str] | None = None,
    move_to: str | None = None,
    tags: list[str] | None = None,
) -> MutationResult:
    """条件に合う最優先のタスクを 1 件選び、同じ書き込みで claim する。"""
    if not caller.claim:
        raise KanbanError(ErrorCode.CLAIM_REQUIRED, "pick requires --claim NAME")
    with _open_board(root) as (store, board):
        cfg = board.config
        for s in statuses or []:
            _unwrap(validate_status(cfg, s))
        target = _unwrap(validate_status(cfg, move_to)) if move_to else None
        ts = now()
        picked = select_pick(board, ts, statuses=statuses, tags=tags)
        if picked is None:
            raise KanbanError(ErrorCode.NOTHING_TO_PICK, "no unblocked, unclaimed tasks found")

        task = copy.deepcopy(picked)
        actions: Actions = []
        if target is not None:
            actions += _move_to(board, task, target, ts, force=caller.force)
        task.claimed_by = caller.claim
        task.claimed_at = format_time(ts)
        task.updated = format_time(ts)
        store.write_task(cfg, task)
        board.put(task)
        _log(store, task, [("claim", caller.claim), *actions], caller.claim, ts)
        return MutationResult(task, changed=True, written=True)


def select_pick(
    board: Board,
    ts: datetime,
    *,
    statuses: list[str] | None = None,
    tags: list[str] | None = None,
) -> Task | None:
    """pick の候補選定。

    候補: 対象ステータス (既定は terminal / archived 以外)、有効な claim なし、
    ブロックなし、タグのいずれかに一致、依存関係がすべて完了。
    順序: class の並び順 → (fixed-date 同士なら) 期限の早い順 → 優先度の高い順 → ID。
    """
    cfg = board.config
    wanted = statuses or [s for s in cfg.board_statuses() if not cfg.is_terminal(s)]
    timeout = cfg.claim_timeout_delta()
    candidates = [
        t
        for t in board.all()
        if t.status in wanted
        and not is_active_claim(t, ts, timeout)
        and not t.blocked
        and (not tags or any(tag in t.tags for tag in tags))
        and board.is_unblocked(t)
    ]
    if not candidates:
        return None

    standard = max(cfg.class_index(cfg.default_class), 0)

    def key(t: Task) -> tuple[int, int, str, int, int]:
        idx = cfg.class_index(t.class_) if t.class_ else -1
        cls = idx if idx >= 0 else standard
        fixed = t.class_ == "fixed-date"
        return (cls, 0 if fixed and t.due else 1, (t.due or "") if fixed else "", -cfg.priority_index(t.priority), t.id)

    return min(candidates, key=key)


# ---- バッチ ----------------------------------------------------------------


def run_batch(ids: list[int], fn: Callable[[int], Any]) -> list[BatchResult]:
    """ID ごとに独立して fn を実行する。先に成功したものは後の失敗で巻き戻さない。"""
    results: list[BatchResult] = []
    for tid in ids:
        try:
            fn(tid)
        except KanbanError as e:
            results.append(BatchResult(tid, ok=False, error=e.message, code=e.code))
        else:
            results.append(BatchResult(tid, ok=True))
    return results
