from __future__ import annotations

from collections import Counter
from typing import TYPE_CHECKING

from kanban_md.util.logger import get_logger
from kanban_md.util.slug import extract_id_from_filename
from kanban_md.util.time import now_iso

if TYPE_CHECKING:
    from kanban_md.core.config import BoardConfig
    from kanban_md.core.models import Task
    from kanban_md.storage.base import Store

REPAIR_PREFIX = "auto-repaired: "

logger = get_logger()


def repair(store: Store, cfg: BoardConfig, tasks: list[Task]) -> list[str]:
    """ディスク上の ID の不整合を修復し、修復内容を警告文として返す。

    1. 重複 ID: mtime の古いファイルが ID を保持し、他は未使用の ID に振り直す
    2. ファイル名と frontmatter の ID の不一致: frontmatter を正としてリネーム
    3. next_id が既存 ID 以下: max + 1 まで引き上げる

    tasks と cfg はその場で更新される。
    """
    repairs: list[str] = []
    if tasks:
        used = {t.id for t in tasks}
        next_id = max(cfg.next_id, max(used) + 1)
        next_id, dirty = _repair_duplicate_ids(store, tasks, next_id, used, repairs)
        _repair_filenames(store, cfg, tasks, dirty, repairs)
        _sync_next_id(store, cfg, tasks, next_id, repairs)
    for r in repairs:
        logger.debug("repair: %s", r)
    return [REPAIR_PREFIX + r for r in repairs]


def _filename_id(t: Task) -> int | None:
    if t.file is None:
        return None
    return extract_id_from_filename(t.file.name).unwrap_or(default=None)


def _repair_duplicate_ids(
    store: Store,
    tasks: list[Task],
    next_id: int,
    used: set[int],
    repairs: list[str],
) -> tuple[int, set[int]]:
    dirty: set[int] = set()
    counts = Counter(t.id for t in tasks)
    for dup_id in sorted(i for i, n in counts.items() if n > 1):
        group = [t for t in tasks if t.id == dup_id]
        # mtime が古い順、同時刻ならファイル名の ID が一致するもの、最後にパス順
        group.sort(
            key=lambda t: (
                store.mtime(t.file) if t.file else 0.0,
                _filename_id(t) != dup_id,
                t.file.as_posix() if t.file else "",
            ),
        )
        keeper = group[0]
        for t in group[1:]:
            while next_id in used:
                next_id += 1
            used.add(next_id)
            t.id = next_id
            t.updated = now_iso()
            dirty.add(id(t))
            name = t.file.name if t.file else "?"
            kept = keeper.file.name if keeper.file else "?"
            repairs.append(f"reassigned duplicate ID {dup_id} in {name} to {t.id} (kept by {kept})")
            next_id += 1
    return next_id, dirty


def _repair_filenames(
    store: Store,
    cfg: BoardConfig,
    tasks: list[Task],
    dirty: set[int],
    repairs: list[str],
) -> None:
    for t in sorted(tasks, key=lambda t: t.file.as_posix() if t.file else ""):
        if t.file is None:
            continue
        if _filename_id(t) == t.id:
            if id(t) in dirty:
                store.write_task(cfg, t)
            continue
        old = t.file
        target = store.choose_task_path(cfg, t)
        t.file = target
        t.updated = now_iso()
        store.write_task(cfg, t)
        if old != target:
            store.delete_task_file(old)
        repairs.append(f"renamed {old.name} to {target.name} to match task ID {t.id}")


def _sync_next_id(
    store: Store,
    cfg: BoardConfig,
    tasks: list[Task],
    candidate: int,
    repairs: list[str],
) -> None:
    desired = max(cfg.next_id, max(t.id for t in tasks) + 1, candidate)
    if desired == cfg.next_id:
        return
    old = cfg.next_id
    cfg.next_id = desired
    store.save_config(cfg)
    repairs.append(f"updated next_id from {old} to {desired}")
