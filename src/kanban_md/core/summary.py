from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta
from typing import Any

from kanban_md.core.config import BoardConfig
from kanban_md.core.models import Task
from kanban_md.util.time import format_time, hours_between, parse_time


def is_overdue(cfg: BoardConfig, t: Task, today: date) -> bool:
    if not t.due or cfg.is_done(t.status):
        return False
    return t.due < today.isoformat()


# ---- board ----


@dataclass
class StatusSummary:
    status: str
    count: int = 0
    wip_limit: int = 0
    blocked: int = 0
    overdue: int = 0


@dataclass
class Overview:
    board_name: str
    total_tasks: int
    statuses: list[StatusSummary] = field(default_factory=list)
    priorities: dict[str, int] = field(default_factory=dict)
    classes: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def board_summary(cfg: BoardConfig, tasks: list[Task], now: datetime) -> Overview:
    """列ごとの件数・WIP 制限・ブロック数・期限切れ数と、優先度・クラス別件数。

    archived のタスクは数えない。
    """
    active = [t for t in tasks if not cfg.is_archived(t.status)]
    today = now.date()
    by_status = {s: StatusSummary(status=s, wip_limit=cfg.wip_limit(s)) for s in cfg.board_statuses()}
    for t in active:
        ss = by_status.get(t.status)
        if ss is None:
            continue
        ss.count += 1
        if t.blocked:
            ss.blocked += 1
        if is_overdue(cfg, t, today):
            ss.overdue += 1

    priorities = {p: sum(1 for t in active if t.priority == p) for p in cfg.priorities}
    # クラス未設定は既定クラスとして数える
    classes = {c: sum(1 for t in active if (t.class_ or cfg.default_class) == c) for c in cfg.class_names()}
    return Overview(
        board_name=cfg.name,
        total_tasks=len(active),
        statuses=list(by_status.values()),
        priorities=priorities,
        classes=classes,
    )


# ---- metrics ----


@dataclass
class AgingItem:
    id: int
    title: str
    status: str
    age_hours: float


@dataclass
class Metrics:
    throughput_7d: int = 0
    throughput_30d: int = 0
    avg_lead_time_hours: float | None = None
    avg_cycle_time_hours: float | None = None
    flow_efficiency: float | None = None
    aging_items: list[AgingItem] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _average(values: list[float]) -> float | None:
    if not values:
        return None
    return round(sum(values) / len(values), 1)


def compute_metrics(cfg: BoardConfig, tasks: list[Task], now: datetime, since: date | None = None) -> Metrics:
    """throughput / lead time / cycle time / flow efficiency / aging を計算する。

    since を指定した場合、それ以前に完了したタスクは除く (未完了のものは残す)。
    """
    if since is not None:
        tasks = [t for t in tasks if not t.completed or t.completed[:10] >= since.isoformat()]

    m = Metrics()
    lead: list[float] = []
    cycle: list[float] = []
    for t in tasks:
        if not t.completed:
            continue
        done_at = parse_time(t.completed).unwrap_or(default=None)
        if done_at is None:
            continue
        if now - done_at <= timedelta(days=7):
            m.throughput_7d += 1
        if now - done_at <= timedelta(days=30):
            m.throughput_30d += 1
        if (h := hours_between(t.created, t.completed)) is not None:
            lead.append(h)
        if (h := hours_between(t.started, t.completed)) is not None:
            cycle.append(h)

    m.avg_lead_time_hours = _average(lead)
    m.avg_cycle_time_hours = _average(cycle)
    if m.avg_lead_time_hours and m.avg_cycle_time_hours is not None:
        m.flow_efficiency = round(m.avg_cycle_time_hours / m.avg_lead_time_hours, 2)

    stamp = format_time(now)
    for t in tasks:
        if t.started and not t.completed and not cfg.is_archived(t.status):
            age = hours_between(t.started, stamp)
            if age is not None:
                m.aging_items.append(AgingItem(t.id, t.title, t.status, round(age, 1)))
    m.aging_items.sort(key=lambda a: a.age_hours, reverse=True)
    return m
