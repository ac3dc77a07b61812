from collections import defaultdict
from dataclasses import dataclass, field

from pyresults import Err, Ok, Result

from kanban_md.core.config import BoardConfig
from kanban_md.core.errors import ErrorCode, KanbanError
from kanban_md.core.models import Task


@dataclass
class Board:
    """読み込んだタスク群と、そこから導出した索引。

    索引は構築時点のスナップショット。タスクを変更した後は reindex() を呼ぶ。
    """

    config: BoardConfig
    tasks: dict[int, Task] = field(default_factory=dict)
    by_status: dict[str, list[int]] = field(default_factory=dict)
    by_claim: dict[str, list[int]] = field(default_factory=dict)
    children: dict[int, list[int]] = field(default_factory=dict)
    dependents: dict[int, list[int]] = field(default_factory=dict)

    @staticmethod
    def build(config: BoardConfig, tasks: list[Task]) -> "Board":
        b = Board(config=config, tasks={t.id: t for t in tasks})
        b.reindex()
        return b

    def reindex(self) -> None:
        by_status: dict[str, list[int]] = defaultdict(list)
        by_claim: dict[str, list[int]] = defaultdict(list)
        children: dict[int, list[int]] = defaultdict(list)
        dependents: dict[int, list[int]] = defaultdict(list)
        for tid in sorted(self.tasks):
            t = self.tasks[tid]
            by_status[t.status].append(tid)
            if t.claimed_by:
                by_claim[t.claimed_by].append(tid)
            if t.parent is not None:
                children[t.parent].append(tid)
            for dep in t.depends_on:
                dependents[dep].append(tid)
        self.by_status = dict(by_status)
        self.by_claim = dict(by_claim)
        self.children = dict(children)
        self.dependents = dict(dependents)

    # ---- 取得 ----

    def get(self, task_id: int) -> Result[Task, KanbanError]:
        t = self.tasks.get(task_id)
        if t is None:
            return Err[Task, KanbanError](
                KanbanError(ErrorCode.TASK_NOT_FOUND, f"task not found: #{task_id}", {"id": task_id}),
            )
        return Ok[Task, KanbanError](t)

    def all(self) -> list[Task]:
        return [self.tasks[tid] for tid in sorted(self.tasks)]

    def put(self, task: Task) -> None:
        self.tasks[task.id] = task
        self.reindex()

    def max_id(self) -> int:
        return max(self.tasks, default=0)

    # ---- 依存関係 ----

    def is_unblocked(self, task: Task) -> bool:
        """依存先がすべて存在しないか、完了 (terminal / archived) なら True。"""
        for dep in task.depends_on:
            d = self.tasks.get(dep)
            if d is not None and not self.config.is_done(d.status):
                return False
        return True

    def unmet_dependencies(self, task: Task) -> list[int]:
        return [
            dep for dep in task.depends_on if dep in self.tasks and not self.config.is_done(self.tasks[dep].status)
        ]

    def dependents_of(self, task_id: int) -> list[Task]:
        return [self.tasks[i] for i in self.dependents.get(task_id, []) if i in self.tasks]

    def children_of(self, task_id: int) -> list[Task]:
        return [self.tasks[i] for i in self.children.get(task_id, []) if i in self.tasks]

    # ---- 集計 ----

    def count_in_status(self, status: str, *, exclude: int | None = None) -> int:
        return sum(1 for tid in self.by_status.get(status, []) if tid != exclude)

    def count_in_class(self, class_name: str, *, exclude: int | None = None) -> int:
        """完了・アーカイブ以外で、指定クラスに属するタスク数 (全列合計)。"""
        return sum(
            1
            for t in self.tasks.values()
            if t.id != exclude and t.class_ == class_name and not self.config.is_done(t.status)
        )
