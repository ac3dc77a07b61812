from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any

from kanban_md.util.time import DATE_FMT, format_time, now_iso

# frontmatter に書き出すキーの順序
FIELD_ORDER = (
    "id",
    "title",
    "status",
    "priority",
    "class",
    "assignee",
    "tags",
    "due",
    "estimate",
    "parent",
    "depends_on",
    "blocked",
    "block_reason",
    "claimed_by",
    "claimed_at",
    "created",
    "updated",
    "started",
    "completed",
)


@dataclass
class Task:
    id: int
    title: str
    status: str
    priority: str
    class_: str = ""
    assignee: str = ""
    tags: list[str] = field(default_factory=list)
    due: str | None = None
    estimate: str | None = None
    parent: int | None = None
    depends_on: list[int] = field(default_factory=list)
    blocked: bool = False
    block_reason: str = ""
    claimed_by: str = ""
    claimed_at: str | None = None
    created: str = field(default_factory=now_iso)
    updated: str = field(default_factory=now_iso)
    started: str | None = None
    completed: str | None = None
    body: str = ""
    # 読み込み元のファイル (永続化はしない)
    file: Path | None = field(default=None, compare=False, repr=False)

    def to_dict(self) -> dict[str, Any]:
        """frontmatter 用の dict を返す。空の任意フィールドは省く。"""
        raw: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "status": self.status,
            "priority": self.priority,
            "class": self.class_,
            "assignee": self.assignee,
            "tags": list(self.tags),
            "due": self.due,
            "estimate": self.estimate,
            "parent": self.parent,
            "depends_on": list(self.depends_on),
            "blocked": self.blocked,
            "block_reason": self.block_reason,
            "claimed_by": self.claimed_by,
            "claimed_at": self.claimed_at,
            "created": self.created,
            "updated": self.updated,
            "started": self.started,
            "completed": self.completed,
        }
        required = {"id", "title", "status", "priority", "created", "updated"}
        return {k: raw[k] for k in FIELD_ORDER if k in required or raw[k] not in (None, "", [], False)}

    def to_json(self) -> dict[str, Any]:
        """JSON 出力用。body とファイル名も含める。"""
        out = self.to_dict()
        if self.body:
            out["body"] = self.body
        if self.file is not None:
            out["file"] = self.file.as_posix()
        return out

    @staticmethod
    def from_dict(d: dict[str, Any], body: str = "", file: Path | None = None) -> "Task":
        """frontmatter の dict から Task を作る。型の合わない値は ValueError。"""
        if "id" not in d:
            _msg = "missing required field 'id'"
            raise ValueError(_msg)
        tid = _as_int(d["id"], "id")
        if tid is None or tid <= 0:
            _msg = f"invalid id {d['id']!r}"
            raise ValueError(_msg)
        title = _as_str(d.get("title"))
        if not title:
            _msg = "missing required field 'title'"
            raise ValueError(_msg)

        tags = d.get("tags") or []
        if isinstance(tags, str):
            tags = [s.strip() for s in tags.split(",") if s.strip()]
        if not isinstance(tags, list):
            _msg = f"invalid tags {tags!r} (expected a list)"
            raise ValueError(_msg)
        deps = d.get("depends_on") or []
        if not isinstance(deps, list):
            deps = [deps]

        return Task(
            id=tid,
            title=title,
            status=_as_str(d.get("status")),
            priority=_as_str(d.get("priority")),
            class_=_as_str(d.get("class")),
            assignee=_as_str(d.get("assignee")),
            tags=[str(t) for t in tags],
            due=_as_date(d.get("due")),
            estimate=_as_str(d.get("estimate")) or None,
            parent=_as_int(d.get("parent"), "parent"),
            depends_on=[i for i in (_as_int(x, "depends_on") for x in deps) if i is not None],
            blocked=bool(d.get("blocked", False)),
            block_reason=_as_str(d.get("block_reason")),
            claimed_by=_as_str(d.get("claimed_by")),
            claimed_at=_as_time(d.get("claimed_at")),
            created=_as_time(d.get("created")) or now_iso(),
            updated=_as_time(d.get("updated")) or now_iso(),
            started=_as_time(d.get("started")),
            completed=_as_time(d.get("completed")),
            body=body,
            file=file,
        )


# ---- YAML 値の正規化 ----
# yaml.safe_load はクォートされていない日時を datetime/date に変換するので文字列に戻す


def _as_str(v: Any) -> str:
    if v is None:
        return ""
    return str(v)


def _as_int(v: Any, name: str) -> int | None:
    if v is None or v == "":
        return None
    if isinstance(v, bool):
        _msg = f"invalid {name} {v!r}"
        raise ValueError(_msg)
    if isinstance(v, int):
        return v
    try:
        return int(str(v).strip().lstrip("#"))
    except ValueError:
        _msg = f"invalid {name} {v!r}"
        raise ValueError(_msg) from None


def _as_time(v: Any) -> str | None:
    if v is None or v == "":
        return None
    if isinstance(v, datetime):
        return format_time(v)
    if isinstance(v, date):
        return format_time(datetime(v.year, v.month, v.day))
    return str(v)


def _as_date(v: Any) -> str | None:
    if v is None or v == "":
        return None
    if isinstance(v, datetime):
        return v.date().strftime(DATE_FMT)
    if isinstance(v, date):
        return v.strftime(DATE_FMT)
    return str(v)


@dataclass
class LogEntry:
    """activity.jsonl の 1 行。"""

    action: str
    task_id: int
    detail: str = ""
    agent: str = ""
    timestamp: str = field(default_factory=now_iso)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "timestamp": self.timestamp,
            "action": self.action,
            "task_id": self.task_id,
            "detail": self.detail,
        }
        if self.agent:
            out["agent"] = self.agent
        return out

    @staticmethod
    def from_dict(d: dict[str, Any]) -> "LogEntry":
        return LogEntry(
            action=str(d.get("action") or ""),
            task_id=int(d.get("task_id") or 0),
            detail=str(d.get("detail") or ""),
            agent=str(d.get("agent") or ""),
            timestamp=str(d.get("timestamp") or ""),
        )
