from dataclasses import dataclass
from datetime import datetime, timedelta

from pyresults import Err, Ok, Result

from kanban_md.core.errors import ErrorCode, KanbanError
from kanban_md.core.models import Task
from kanban_md.util.time import format_duration, format_time, parse_time


@dataclass
class Caller:
    """書き込み操作の呼び出し元 (--claim / --release / --force)。"""

    claim: str = ""
    release: bool = False
    force: bool = False


def claimed_at(task: Task) -> datetime | None:
    if not task.claimed_at:
        return None
    return parse_time(task.claimed_at).unwrap_or(default=None)


def is_active_claim(task: Task, now: datetime, timeout: timedelta) -> bool:
    """claimed_by と claimed_at が揃い、かつ期限内なら True。timeout 0 は期限なし。"""
    at = claimed_at(task)
    if not task.claimed_by or at is None:
        return False
    if timeout <= timedelta(0):
        return True
    return now - at < timeout


def claim_remaining(task: Task, now: datetime, timeout: timedelta) -> str:
    at = claimed_at(task)
    if at is None or timeout <= timedelta(0):
        return "unknown"
    left = timeout - (now - at)
    # 分単位に切り捨てる
    return format_duration(timedelta(minutes=int(left.total_seconds() // 60)))


def authorize(task: Task, caller: Caller, now: datetime, timeout: timedelta) -> Result[None, KanbanError]:
    """書き込みを許可してよいか判定する。タスクは変更しない。"""
    if caller.force:
        return Ok[None, KanbanError](None)
    if not is_active_claim(task, now, timeout):
        return Ok[None, KanbanError](None)
    if caller.claim and caller.claim == task.claimed_by:
        return Ok[None, KanbanError](None)
    details = {
        "id": task.id,
        "claimed_by": task.claimed_by,
        "claimed_at": task.claimed_at,
        "remaining": claim_remaining(task, now, timeout),
    }
    if caller.release and not caller.claim:
        return Err[None, KanbanError](
            KanbanError(
                ErrorCode.CLAIM_REQUIRED,
                f"task #{task.id} is claimed by {task.claimed_by}; releasing requires --claim {task.claimed_by}",
                details,
            ),
        )
    return Err[None, KanbanError](
        KanbanError(
            ErrorCode.TASK_CLAIMED,
            f"task #{task.id} is claimed by {task.claimed_by} (expires in {details['remaining']})",
            details,
        ),
    )


def apply_claim(task: Task, caller: Caller, now: datetime, timeout: timedelta) -> None:
    """変更後のタスクに claim の結果を反映する。

    期限切れの claim は消し、--claim があれば取り直し、--release なら解放する。
    """
    if task.claimed_by and not is_active_claim(task, now, timeout):
        clear_claim(task)
    if caller.claim:
        task.claimed_by = caller.claim
        task.claimed_at = format_time(now)
    if caller.release:
        clear_claim(task)


def clear_claim(task: Task) -> None:
    task.claimed_by = ""
    task.claimed_at = None
