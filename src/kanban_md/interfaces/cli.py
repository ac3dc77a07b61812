# ruff: noqa: C901, T201

import argparse
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

from pyresults import Err, Ok

from kanban_md import __version__
from kanban_md.core.claims import Caller
from kanban_md.core.context import render_markdown, write_context_file
from kanban_md.core.errors import ErrorCode, KanbanError, io_error
from kanban_md.core.models import Task
from kanban_md.core.ops import (
    BatchResult,
    EditRequest,
    MutationResult,
    archive_task,
    board_context,
    create_task,
    edit_task,
    get_config_value,
    get_task,
    handoff_task,
    init_board,
    list_grouped,
    list_tasks,
    metrics,
    move_task,
    pick_task,
    read_log,
    run_batch,
    set_config_value,
    show_config,
    summarize,
)
from kanban_md.core.sort import GROUP_KEYS, SORT_KEYS, ListOptions
from kanban_md.io.json_io import (
    print_error_json,
    print_groups_json,
    print_json,
    print_log_json,
    print_tasks_json,
)
from kanban_md.io.std_io import (
    compact_line,
    format_config_value,
    print_batch,
    print_config,
    print_groups,
    print_log,
    print_metrics,
    print_overview,
    print_overview_compact,
    print_task,
    print_task_compact,
    print_task_table,
)
from kanban_md.util.dirs import init_target_dir, load_env, resolve_board_dir
from kanban_md.util.ids import parse_id, parse_ids
from kanban_md.util.logger import get_logger, setup_mode

logger = get_logger()

FORMAT_JSON = "json"
FORMAT_TABLE = "table"
FORMAT_COMPACT = "compact"
FORMATS = (FORMAT_JSON, FORMAT_TABLE, FORMAT_COMPACT)


# ---- 引数の解釈 ------------------------------------------------------------


def output_format(args: argparse.Namespace) -> str:
    """--json > --table > --compact/--oneline > KANBAN_OUTPUT > table"""
    if getattr(args, "json", False):
        return FORMAT_JSON
    if getattr(args, "table", False):
        return FORMAT_TABLE
    if getattr(args, "compact", False):
        return FORMAT_COMPACT
    env = load_env()["OUTPUT"].strip().lower()
    if env in FORMATS:
        return env
    return FORMAT_TABLE


def _board(args: argparse.Namespace) -> Path:
    match resolve_board_dir(args.dir):
        case Ok(path):
            return path  # type: ignore[no-any-return]
        case Err(e):
            raise KanbanError(ErrorCode.BOARD_NOT_FOUND, e)
        case _:
            raise KanbanError(ErrorCode.INTERNAL_ERROR, "Unexpected error")


def _id(s: str) -> int:
    match parse_id(s):
        case Ok(tid):
            return tid  # type: ignore[no-any-return]
        case Err(e):
            raise KanbanError(ErrorCode.INVALID_TASK_ID, e, {"id": s})
        case _:
            raise KanbanError(ErrorCode.INTERNAL_ERROR, "Unexpected error")


def _ids(s: str) -> list[int]:
    match parse_ids(s):
        case Ok(ids):
            return ids  # type: ignore[no-any-return]
        case Err(e):
            raise KanbanError(ErrorCode.INVALID_TASK_ID, e, {"ids": s})
        case _:
            raise KanbanError(ErrorCode.INTERNAL_ERROR, "Unexpected error")


def _id_list(values: list[str] | None) -> list[int]:
    """--add-dep 1 --add-dep 2,3 のような繰り返し指定をまとめる。"""
    out: list[int] = []
    for v in values or []:
        out += [i for i in _ids(v) if i not in out]
    return out


def _split(s: str | None) -> list[str]:
    if not s:
        return []
    return [p.strip() for p in s.split(",") if p.strip()]


def _wip_limits(values: list[str] | None) -> dict[str, int]:
    limits: dict[str, int] = {}
    for v in values or []:
        status, sep, n = v.rpartition(":")
        if not sep or not status or not n.isdigit():
            raise KanbanError(
                ErrorCode.INVALID_INPUT,
                f"invalid WIP limit {v!r} (expected STATUS:N)",
                {"value": v},
            )
        limits[status] = int(n)
    return limits


def _caller(args: argparse.Namespace) -> Caller:
    return Caller(claim=args.claim or "", release=args.release, force=args.force)


# ---- 出力 ------------------------------------------------------------------


def _print_tasks(args: argparse.Namespace, tasks: list[Task]) -> None:
    match output_format(args):
        case "json":
            print_tasks_json(tasks)
        case "compact":
            print_task_compact(tasks)
        case _:
            print_task_table(tasks)


def _print_result(args: argparse.Namespace, res: MutationResult, message: str) -> None:
    if output_format(args) == FORMAT_JSON:
        print_json({**res.task.to_json(), "changed": res.changed})
    else:
        print(message)


def _run_ids(
    args: argparse.Namespace,
    ids: list[int],
    fn: Callable[[int], MutationResult],
    message: Callable[[MutationResult], str],
) -> int:
    """単一 ID なら従来通りの出力、複数 ID ならバッチ結果の配列を出す。"""
    if len(ids) == 1:
        res = fn(ids[0])
        _print_result(args, res, message(res))
        return 0

    def step(tid: int) -> None:
        res = fn(tid)
        if output_format(args) != FORMAT_JSON:
            print(message(res))

    results: list[BatchResult] = run_batch(ids, step)
    failed = [r for r in results if not r.ok]
    if output_format(args) == FORMAT_JSON:
        print_json([r.to_dict() for r in results])
    elif failed:
        print_batch(failed)
    return 1 if failed else 0


# ---- コマンド --------------------------------------------------------------


def cmd_init(args: argparse.Namespace) -> int:
    root = init_target_dir(args.dir)
    cfg = init_board(
        root,
        name=args.name,
        statuses=_split(args.statuses) or None,
        wip_limits=_wip_limits(args.wip_limit),
    )
    if output_format(args) == FORMAT_JSON:
        print_json({"dir": root.as_posix(), **cfg.to_dict()})
    else:
        print(f"Initialized board {cfg.name!r} in {root.as_posix()}")
    return 0


def cmd_create(args: argparse.Namespace) -> int:
    t = create_task(
        _board(args),
        args.title,
        status=args.status,
        priority=args.priority,
        class_=args.class_,
        assignee=args.assignee or "",
        tags=_split(args.tags),
        due=args.due,
        estimate=args.estimate,
        body=args.body or "",
        parent=_id(args.parent) if args.parent else None,
        depends_on=_id_list(args.depends_on),
        caller=_caller(args),
    )
    match output_format(args):
        case "json":
            print_json(t.to_json())
        case "compact":
            print(compact_line(t))
        case _:
            print(f"Created task #{t.id}: {t.title}")
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    opts = ListOptions(
        statuses=_split(args.status),
        priorities=_split(args.priority),
        assignee=args.assignee or "",
        tag=args.tag or "",
        class_=args.class_ or "",
        search=args.search or "",
        blocked=args.blocked,
        parent=_id(args.parent) if args.parent else None,
        unblocked=args.unblocked,
        unclaimed=args.unclaimed,
        claimed_by=args.claimed_by or "",
        archived=args.archived,
        sort=args.sort,
        reverse=args.reverse,
        limit=args.limit,
    )
    root = _board(args)
    if args.group_by:
        groups = list_grouped(root, opts, args.group_by)
        if output_format(args) == FORMAT_JSON:
            print_groups_json(groups)
        else:
            print_groups(groups, compact=output_format(args) == FORMAT_COMPACT)
        return 0
    _print_tasks(args, list_tasks(root, opts))
    return 0


def cmd_show(args: argparse.Namespace) -> int:
    t = get_task(_board(args), _id(args.id))
    match output_format(args):
        case "json":
            print_json(t.to_json())
        case "compact":
            print(compact_line(t))
        case _:
            print_task(t)
    return 0


def cmd_edit(args: argparse.Namespace) -> int:
    root = _board(args)
    req = EditRequest(
        title=args.title,
        status=args.status,
        priority=args.priority,
        class_=args.class_,
        assignee=args.assignee,
        add_tags=_split(",".join(args.add_tag or [])),
        remove_tags=_split(",".join(args.remove_tag or [])),
        due=args.due,
        clear_due=args.clear_due,
        estimate=args.estimate,
        body=args.body,
        append_body=args.append_body,
        timestamp=args.timestamp,
        started=args.started,
        clear_started=args.clear_started,
        completed=args.completed,
        parent=_id(args.parent) if args.parent else None,
        clear_parent=args.clear_parent,
        add_deps=_id_list(args.add_dep),
        remove_deps=_id_list(args.remove_dep),
        depends_on=_id_list([args.depends_on]) if args.depends_on else None,
        block=args.block,
        unblock=args.unblock,
    )
    caller = _caller(args)

    def message(res: MutationResult) -> str:
        if not res.changed:
            return f"No changes to task #{res.task.id}"
        return f"Updated task #{res.task.id}: {res.task.title}"

    return _run_ids(args, _ids(args.ids), lambda tid: edit_task(root, tid, req, caller), message)


def cmd_move(args: argparse.Namespace) -> int:
    root = _board(args)
    caller = _caller(args)

    def message(res: MutationResult) -> str:
        if not res.changed:
            return f"Task #{res.task.id} is already in {res.task.status!r}"
        return f"Moved task #{res.task.id} to {res.task.status!r}"

    return _run_ids(
        args,
        _ids(args.ids),
        lambda tid: move_task(root, tid, args.status, next_=args.next, prev=args.prev, caller=caller),
        message,
    )


def cmd_archive(args: argparse.Namespace) -> int:
    root = _board(args)
    caller = _caller(args)

    def message(res: MutationResult) -> str:
        if not res.changed:
            return f"Task #{res.task.id} is already archived"
        return f"Archived task #{res.task.id}: {res.task.title}"

    return _run_ids(args, _ids(args.ids), lambda tid: archive_task(root, tid, caller), message)


def cmd_delete(args: argparse.Namespace) -> int:
    ids = _ids(args.ids)
    if not args.yes:
        raise KanbanError(
            ErrorCode.CONFIRMATION_REQUIRED,
            "delete requires --yes (the task is archived, its file is kept)",
            {"ids": ids},
        )
    root = _board(args)
    caller = _caller(args)

    def message(res: MutationResult) -> str:
        if not res.changed:
            return f"Task #{res.task.id} is already deleted"
        return f"Deleted task #{res.task.id}: {res.task.title}"

    return _run_ids(args, ids, lambda tid: archive_task(root, tid, caller, action="delete"), message)


def cmd_handoff(args: argparse.Namespace) -> int:
    res = handoff_task(
        _board(args),
        _id(args.id),
        _caller(args),
        note=args.note or "",
        timestamp=args.timestamp,
        block=args.block,
    )
    _print_result(args, res, f"Handed off task #{res.task.id} for {res.task.status}")
    return 0


def cmd_pick(args: argparse.Namespace) -> int:
    res = pick_task(
        _board(args),
        _caller(args),
        statuses=_split(args.status) or None,
        move_to=args.move,
        tags=_split(args.tags) or None,
    )
    t = res.task
    match output_format(args):
        case "json":
            print_json(t.to_json())
        case "compact":
            print(compact_line(t))
        case _:
            print(f"Picked task #{t.id}: {t.title} ({t.status}, claimed by {t.claimed_by})")
    return 0


def cmd_board(args: argparse.Namespace) -> int:
    ov = summarize(_board(args))
    match output_format(args):
        case "json":
            print_json(ov.to_dict())
        case "compact":
            print_overview_compact(ov)
        case _:
            print_overview(ov)
    return 0


def cmd_metrics(args: argparse.Namespace) -> int:
    m = metrics(_board(args), since=args.since)
    if output_format(args) == FORMAT_JSON:
        print_json(m.to_dict())
    else:
        print_metrics(m)
    return 0


def cmd_log(args: argparse.Namespace) -> int:
    entries = read_log(
        _board(args),
        since=args.since,
        limit=args.limit,
        action=args.action or "",
        task_id=_id(args.task) if args.task else None,
    )
    if output_format(args) == FORMAT_JSON:
        print_log_json(entries)
    else:
        print_log(entries)
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    root = _board(args)
    is_json = output_format(args) == FORMAT_JSON
    match args.action:
        case None | "show":
            values = show_config(root)
            if is_json:
                print_json(values)
            else:
                print_config(values)
        case "get":
            if not args.key:
                raise KanbanError(ErrorCode.INVALID_INPUT, "config get requires a KEY")
            value = get_config_value(root, args.key)
            if is_json:
                print_json({"key": args.key, "value": value})
            else:
                print(format_config_value(value))
        case "set":
            if not args.key or args.value is None:
                raise KanbanError(ErrorCode.INVALID_INPUT, "config set requires KEY and VALUE")
            value = set_config_value(root, args.key, args.value)
            if is_json:
                print_json({"key": args.key, "value": value})
            else:
                print(f"Set {args.key} = {format_config_value(value)}")
        case _:
            raise KanbanError(ErrorCode.INVALID_INPUT, f"unknown config action {args.action!r}")
    return 0


def cmd_context(args: argparse.Namespace) -> int:
    data = board_context(_board(args), sections=_split(args.sections), days=args.days)
    content = render_markdown(data)
    if args.write_to:
        write_context_file(Path(args.write_to), content)
        if output_format(args) == FORMAT_JSON:
            print_json({"path": args.write_to, **data.to_dict()})
        else:
            print(f"Wrote context to {args.write_to}")
        return 0
    if output_format(args) == FORMAT_JSON:
        print_json(data.to_dict())
    else:
        print(content, end="")
    return 0


# ---- パーサ ----------------------------------------------------------------


def _global_flags(p: argparse.ArgumentParser, *, suppress: bool) -> None:
    """全サブコマンド共通のフラグ。

    ルートでは既定値を持ち、サブコマンド側は SUPPRESS にして
    どちらの位置に書いても同じ値になるようにする。
    """

    def default(v: Any) -> Any:  # noqa: ANN401
        return argparse.SUPPRESS if suppress else v

    p.add_argument("--dir", default=default(None), help="board directory (default: $KANBAN_DIR or auto-detect)")
    p.add_argument("--json", action="store_true", default=default(False), help="JSON output")
    p.add_argument("--table", action="store_true", default=default(False), help="table output")
    p.add_argument(
        "--compact",
        "--oneline",
        dest="compact",
        action="store_true",
        default=default(False),
        help="one line per item",
    )
    p.add_argument("--force", action="store_true", default=default(False), help="override WIP limits and claims")
    p.add_argument("--yes", action="store_true", default=default(False), help="confirm destructive operations")
    p.add_argument("--claim", default=default(None), metavar="AGENT", help="claim the task for AGENT")
    p.add_argument("--release", action="store_true", default=default(False), help="release the claim")
    p.add_argument("--debug", action="store_true", default=default(False), help="debug mode")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="kanban-md", description="File-backed Kanban board for humans and agents")
    p.add_argument("--version", action="version", version=f"kanban-md {__version__}")
    _global_flags(p, suppress=False)

    common = argparse.ArgumentParser(add_help=False)
    _global_flags(common, suppress=True)

    sub = p.add_subparsers(dest="cmd", required=True)

    def add(name: str, func: Callable[[argparse.Namespace], int], help_: str) -> argparse.ArgumentParser:
        sp = sub.add_parser(name, help=help_, parents=[common])
        sp.set_defaults(func=func)
        return sp

    # init
    sp = add("init", cmd_init, "create a new board")
    sp.add_argument("--name", help="board name (default: parent directory name)")
    sp.add_argument("--statuses", help="comma-separated status columns")
    sp.add_argument("--wip-limit", action="append", metavar="STATUS:N", help="WIP limit for a status (repeatable)")

    # create
    sp = add("create", cmd_create, "create a task")
    sp.add_argument("title")
    sp.add_argument("--status")
    sp.add_argument("--priority")
    sp.add_argument("--class", dest="class_")
    sp.add_argument("--assignee")
    sp.add_argument("--tags", help="comma-separated tags")
    sp.add_argument("--due", help="due date (YYYY-MM-DD)")
    sp.add_argument("--estimate", help="estimate (e.g. 4h, 2d, 1w)")
    sp.add_argument("--body")
    sp.add_argument("--parent", metavar="ID")
    sp.add_argument("--depends-on", action="append", metavar="IDS", help="comma-separated task IDs")

    # list
    sp = add("list", cmd_list, "list tasks")
    sp.add_argument("--status", help="comma-separated statuses")
    sp.add_argument("--priority", help="comma-separated priorities")
    sp.add_argument("--assignee")
    sp.add_argument("--tag")
    sp.add_argument("--class", dest="class_")
    sp.add_argument("--search")
    sp.add_argument("--blocked", dest="blocked", action="store_const", const=True, default=None)
    sp.add_argument("--not-blocked", dest="blocked", action="store_const", const=False)
    sp.add_argument("--parent", metavar="ID")
    sp.add_argument("--unblocked", action="store_true", help="only tasks whose dependencies are satisfied")
    sp.add_argument("--unclaimed", action="store_true")
    sp.add_argument("--claimed-by", metavar="AGENT")
    sp.add_argument("--archived", action="store_true", help="include archived tasks")
    sp.add_argument("--sort", default="id", choices=SORT_KEYS)
    sp.add_argument("--reverse", action="store_true")
    sp.add_argument("--limit", type=int, default=0)
    sp.add_argument("--group-by", help=f"one of {', '.join(GROUP_KEYS)}")

    # show
    sp = add("show", cmd_show, "show a task")
    sp.add_argument("id")

    # edit
    sp = add("edit", cmd_edit, "edit tasks")
    sp.add_argument("ids", metavar="ID[,ID...]")
    sp.add_argument("--title")
    sp.add_argument("--status")
    sp.add_argument("--priority")
    sp.add_argument("--class", dest="class_")
    sp.add_argument("--assignee")
    sp.add_argument("--add-tag", action="append")
    sp.add_argument("--remove-tag", action="append")
    sp.add_argument("--due")
    sp.add_argument("--clear-due", action="store_true")
    sp.add_argument("--estimate")
    sp.add_argument("--body")
    sp.add_argument("--append-body")
    sp.add_argument("--timestamp", action="store_true", help="prefix appended text with the current time")
    sp.add_argument("--started", help="back-fill the started timestamp")
    sp.add_argument("--clear-started", action="store_true")
    sp.add_argument("--completed", help="back-fill the completed timestamp")
    sp.add_argument("--parent", metavar="ID")
    sp.add_argument("--clear-parent", action="store_true")
    sp.add_argument("--add-dep", action="append", metavar="IDS")
    sp.add_argument("--remove-dep", action="append", metavar="IDS")
    sp.add_argument("--depends-on", metavar="IDS", help="replace dependencies")
    sp.add_argument("--block", metavar="REASON")
    sp.add_argument("--unblock", action="store_true")

    # move
    sp = add("move", cmd_move, "move tasks to another status")
    sp.add_argument("ids", metavar="ID[,ID...]")
    sp.add_argument("status", nargs="?")
    sp.add_argument("--next", action="store_true")
    sp.add_argument("--prev", action="store_true")

    # archive / delete
    sp = add("archive", cmd_archive, "archive tasks")
    sp.add_argument("ids", metavar="ID[,ID...]")

    sp = add("delete", cmd_delete, "soft-delete tasks (requires --yes)")
    sp.add_argument("ids", metavar="ID[,ID...]")

    # handoff
    sp = add("handoff", cmd_handoff, "hand a task off for review")
    sp.add_argument("id")
    sp.add_argument("--note")
    sp.add_argument("--timestamp", action="store_true")
    sp.add_argument("--block", metavar="REASON")

    # pick
    sp = add("pick", cmd_pick, "claim the next available task")
    sp.add_argument("--status", help="comma-separated statuses to pick from")
    sp.add_argument("--move", metavar="STATUS", help="move the picked task")
    sp.add_argument("--tags", help="comma-separated tags (any match)")

    # board / metrics / log
    add("board", cmd_board, "board summary")

    sp = add("metrics", cmd_metrics, "flow metrics")
    sp.add_argument("--since", help="only tasks completed on or after DATE")

    sp = add("log", cmd_log, "activity log")
    sp.add_argument("--since", help="entries on or after DATE")
    sp.add_argument("--limit", type=int, default=0)
    sp.add_argument("--action")
    sp.add_argument("--task", metavar="ID")

    # config
    sp = add("config", cmd_config, "show or change board configuration")
    sp.add_argument("action", nargs="?", choices=["show", "get", "set"])
    sp.add_argument("key", nargs="?")
    sp.add_argument("value", nargs="?")

    # context
    sp = add("context", cmd_context, "markdown board context for agents")
    sp.add_argument("--sections", help="comma-separated sections")
    sp.add_argument("--days", type=int, default=7, help="window for recently completed tasks")
    sp.add_argument("--write-to", metavar="FILE", help="write into FILE between context markers")

    return p


def main(argv: list[str] | None = None) -> int:
    argv = argv if argv is not None else sys.argv[1:]
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_mode(is_debug=args.debug or bool(load_env()["DEBUG"]))
    try:
        return args.func(args)  # type: ignore[no-any-return]
    except KanbanError as e:
        return _report(args, e)
    except OSError as e:
        return _report(args, io_error(str(e.filename or ""), e))
    except Exception as e:
        logger.exception("unexpected error")
        return _report(args, KanbanError(ErrorCode.INTERNAL_ERROR, str(e) or type(e).__name__))


def _report(args: argparse.Namespace, err: KanbanError) -> int:
    logger.debug("%s: %s", err.code, err.message)
    if output_format(args) == FORMAT_JSON:
        print_error_json(err)
    else:
        print(f"Error: {err.message}", file=sys.stderr)
    return err.exit_code
