import copy
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from pyresults import Err, Ok, Result

from kanban_md.util.dirs import DEFAULT_TASKS_DIR
from kanban_md.util.time import parse_duration

CURRENT_VERSION = 3
ARCHIVED_STATUS = "archived"

DEFAULT_STATUSES = ["backlog", "todo", "in-progress", "review", "done", ARCHIVED_STATUS]
DEFAULT_PRIORITIES = ["low", "medium", "high", "critical"]
DEFAULT_PRIORITY = "medium"
DEFAULT_CLASS = "standard"
DEFAULT_CLAIM_TIMEOUT = "1h"
REVIEW_STATUS = "review"


@dataclass
class ClassConfig:
    """Class of service. bypass_column_wip のクラスは列の WIP 制限を無視する。"""

    name: str
    wip_limit: int = 0
    bypass_column_wip: bool = False

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": self.name}
        if self.wip_limit:
            out["wip_limit"] = self.wip_limit
        if self.bypass_column_wip:
            out["bypass_column_wip"] = True
        return out

    @staticmethod
    def from_dict(d: dict[str, Any]) -> "ClassConfig":
        return ClassConfig(
            name=str(d.get("name") or ""),
            wip_limit=int(d.get("wip_limit") or 0),
            bypass_column_wip=bool(d.get("bypass_column_wip", False)),
        )


def default_classes() -> list[ClassConfig]:
    return [
        ClassConfig("expedite", wip_limit=1, bypass_column_wip=True),
        ClassConfig("fixed-date"),
        ClassConfig("standard"),
        ClassConfig("intangible"),
    ]


@dataclass
class BoardConfig:
    name: str
    description: str = ""
    version: int = CURRENT_VERSION
    tasks_dir: str = DEFAULT_TASKS_DIR
    statuses: list[str] = field(default_factory=lambda: list(DEFAULT_STATUSES))
    priorities: list[str] = field(default_factory=lambda: list(DEFAULT_PRIORITIES))
    classes: list[ClassConfig] = field(default_factory=default_classes)
    default_status: str = ""
    default_priority: str = DEFAULT_PRIORITY
    default_class: str = DEFAULT_CLASS
    wip_limits: dict[str, int] = field(default_factory=dict)
    claim_timeout: str = DEFAULT_CLAIM_TIMEOUT
    next_id: int = 1

    def __post_init__(self) -> None:
        if not self.default_status and self.statuses:
            self.default_status = self.statuses[0]

    # ---- ステータス ----

    def board_statuses(self) -> list[str]:
        """archived を除いた、ボードの列として表示するステータス。"""
        return [s for s in self.statuses if s != ARCHIVED_STATUS]

    def terminal_status(self) -> str:
        cols = self.board_statuses()
        return cols[-1] if cols else ""

    def initial_status(self) -> str:
        return self.statuses[0] if self.statuses else ""

    def is_terminal(self, status: str) -> bool:
        return status == self.terminal_status()

    def is_archived(self, status: str) -> bool:
        return status == ARCHIVED_STATUS

    def is_done(self, status: str) -> bool:
        """完了扱い (terminal または archived) かどうか。"""
        return self.is_terminal(status) or self.is_archived(status)

    def status_index(self, status: str) -> int:
        return _index_of(self.statuses, status)

    def priority_index(self, priority: str) -> int:
        return _index_of(self.priorities, priority)

    # ---- class of service ----

    def class_names(self) -> list[str]:
        return [c.name for c in self.classes]

    def class_index(self, name: str) -> int:
        return _index_of(self.class_names(), name)

    def class_by_name(self, name: str) -> ClassConfig | None:
        for c in self.classes:
            if c.name == name:
                return c
        return None

    # ---- 制限値 ----

    def wip_limit(self, status: str) -> int:
        """列の WIP 制限。0 は無制限。"""
        return self.wip_limits.get(status, 0)

    def claim_timeout_delta(self) -> timedelta:
        """claim_timeout を timedelta で返す。空・不正値は 0 (期限なし)。"""
        if not self.claim_timeout:
            return timedelta(0)
        return parse_duration(self.claim_timeout).unwrap_or(default=timedelta(0))

    # ---- 検証 ----

    def validate(self) -> Result[None, str]:  # noqa: C901, PLR0911
        if self.version != CURRENT_VERSION:
            return Err[None, str](f"unsupported version {self.version} (expected {CURRENT_VERSION})")
        if not self.name:
            return Err[None, str]("board.name is required")
        if not self.tasks_dir:
            return Err[None, str]("tasks_dir is required")
        if len(self.statuses) < 2:  # noqa: PLR2004
            return Err[None, str]("at least 2 statuses are required")
        if _has_duplicates(self.statuses):
            return Err[None, str]("statuses contain duplicates")
        if len(self.priorities) < 1:
            return Err[None, str]("at least 1 priority is required")
        if _has_duplicates(self.priorities):
            return Err[None, str]("priorities contain duplicates")
        if self.default_status not in self.statuses:
            return Err[None, str](f"default status {self.default_status!r} not in statuses list")
        if self.default_priority not in self.priorities:
            return Err[None, str](f"default priority {self.default_priority!r} not in priorities list")
        for status, limit in self.wip_limits.items():
            if status not in self.statuses:
                return Err[None, str](f"wip_limits references unknown status {status!r}")
            if limit < 0:
                return Err[None, str](f"wip_limits for {status!r} must be >= 0")
        seen: set[str] = set()
        for c in self.classes:
            if not c.name:
                return Err[None, str]("class name is required")
            if c.name in seen:
                return Err[None, str](f"duplicate class name {c.name!r}")
            seen.add(c.name)
            if c.wip_limit < 0:
                return Err[None, str](f"class {c.name!r} wip_limit must be >= 0")
        if self.default_class and self.classes and self.default_class not in seen:
            return Err[None, str](f"default class {self.default_class!r} not in classes list")
        if self.claim_timeout and parse_duration(self.claim_timeout).is_err():
            return Err[None, str](f"invalid claim_timeout {self.claim_timeout!r}")
        if self.next_id < 1:
            return Err[None, str]("next_id must be >= 1")
        return Ok[None, str](None)

    # ---- シリアライズ ----

    def to_dict(self) -> dict[str, Any]:
        board: dict[str, Any] = {"name": self.name}
        if self.description:
            board["description"] = self.description
        defaults: dict[str, Any] = {"status": self.default_status, "priority": self.default_priority}
        if self.default_class:
            defaults["class"] = self.default_class
        out: dict[str, Any] = {
            "version": self.version,
            "board": board,
            "tasks_dir": self.tasks_dir,
            "statuses": list(self.statuses),
            "priorities": list(self.priorities),
            "classes": [c.to_dict() for c in self.classes],
            "defaults": defaults,
        }
        if self.wip_limits:
            out["wip_limits"] = dict(self.wip_limits)
        if self.claim_timeout:
            out["claim_timeout"] = self.claim_timeout
        out["next_id"] = self.next_id
        return out

    @staticmethod
    def from_dict(d: dict[str, Any]) -> Result["BoardConfig", str]:
        """生の YAML dict から設定を作る。旧バージョンはここでマイグレーションする。"""
        match migrate(d):
            case Ok(raw):
                pass
            case Err(e):
                return Err[BoardConfig, str](e)
        try:
            board = raw.get("board") or {}
            defaults = raw.get("defaults") or {}
            cfg = BoardConfig(
                name=str(board.get("name") or ""),
                description=str(board.get("description") or ""),
                version=int(raw.get("version", 0)),
                tasks_dir=str(raw.get("tasks_dir") or ""),
                statuses=[str(s) for s in raw.get("statuses") or []],
                priorities=[str(p) for p in raw.get("priorities") or []],
                classes=[ClassConfig.from_dict(c) for c in raw.get("classes") or []],
                default_status=str(defaults.get("status") or ""),
                default_priority=str(defaults.get("priority") or ""),
                default_class=str(defaults.get("class") or ""),
                wip_limits={str(k): int(v) for k, v in (raw.get("wip_limits") or {}).items()},
                claim_timeout=str(raw.get("claim_timeout") or ""),
                next_id=int(raw.get("next_id", 1)),
            )
        except (TypeError, ValueError, AttributeError) as e:
            return Err[BoardConfig, str](f"malformed config: {e!s}")
        match cfg.validate():
            case Err(e):
                return Err[BoardConfig, str](e)
        return Ok[BoardConfig, str](cfg)


# ---- マイグレーション ----


def _migrate_v1(d: dict[str, Any]) -> None:
    d.setdefault("wip_limits", {})
    d["version"] = 2


def _migrate_v2(d: dict[str, Any]) -> None:
    d.setdefault("claim_timeout", DEFAULT_CLAIM_TIMEOUT)
    if not d.get("classes"):
        d["classes"] = [c.to_dict() for c in default_classes()]
    defaults = d.setdefault("defaults", {})
    defaults.setdefault("class", DEFAULT_CLASS)
    statuses = d.get("statuses") or []
    if ARCHIVED_STATUS not in statuses:
        d["statuses"] = [*statuses, ARCHIVED_STATUS]
    d["version"] = 3


_MIGRATIONS = {
    1: _migrate_v1,
    2: _migrate_v2,
}


def migrate(d: dict[str, Any]) -> Result[dict[str, Any], str]:
    """設定 dict を CURRENT_VERSION まで 1 段ずつ引き上げる。入力は変更しない。"""
    raw = copy.deepcopy(d)
    try:
        version = int(raw.get("version", 0))
    except (TypeError, ValueError):
        return Err[dict[str, Any], str](f"config version {raw.get('version')!r} is invalid")
    if version > CURRENT_VERSION:
        return Err[dict[str, Any], str](
            f"config version {version} is newer than supported version {CURRENT_VERSION} (upgrade kanban-md)",
        )
    if version < 1:
        return Err[dict[str, Any], str](f"config version {version} is invalid")
    while version < CURRENT_VERSION:
        _MIGRATIONS[version](raw)
        version = raw["version"]
    return Ok[dict[str, Any], str](raw)


def new_default(
    name: str,
    *,
    statuses: list[str] | None = None,
    wip_limits: dict[str, int] | None = None,
) -> BoardConfig:
    """init 用の新しい設定。archived がなければ末尾に追加する。"""
    cols = list(statuses) if statuses else list(DEFAULT_STATUSES)
    cols = [s for s in cols if s != ARCHIVED_STATUS] + [ARCHIVED_STATUS]
    return BoardConfig(
        name=name,
        statuses=cols,
        default_status=cols[0],
        wip_limits=dict(wip_limits or {}),
    )


def _index_of(items: list[str], item: str) -> int:
    try:
        return items.index(item)
    except ValueError:
        return -1


def _has_duplicates(items: list[str]) -> bool:
    return len(set(items)) != len(items)
