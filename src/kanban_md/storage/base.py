from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from pathlib import Path

from pyresults import Err, Ok, Result

from kanban_md.core.config import BoardConfig
from kanban_md.core.models import LogEntry, Task
from kanban_md.core.repair import repair


@dataclass
class LoadResult:
    """load_all() の戻り値。warnings は診断ストリームに出す文言。"""

    config: BoardConfig
    tasks: list[Task] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class Store(ABC):
    """ボードのストレージ抽象基底クラス。

    実装クラスは、設定・タスク・アクティビティログの永続化を提供する。

    Public API:
        - load_config(): 設定を読み込む
        - save_config(): 設定を原子的に保存する
        - read_tasks(): 全タスクを読み込む (壊れたファイルは警告として返す)
        - write_task(): タスクを原子的に書き込む
        - delete_task_file(): タイトル変更に伴う旧ファイルの削除
        - append_log() / read_log(): アクティビティログの追記と読み込み
        - lock(): 変更操作を直列化する排他ロック
        - load_all(): 読み込みと自動修復をまとめて行う

    注意: ユーザー操作の delete はファイルを削除しない (archived への遷移)。
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    @abstractmethod
    def exists(self) -> bool:
        """ボードが初期化済みかどうか。"""
        raise NotImplementedError

    @abstractmethod
    def initialize(self, cfg: BoardConfig) -> None:
        """ディレクトリ構成と設定ファイルを作成する。"""
        raise NotImplementedError

    @abstractmethod
    def load_config(self) -> Result[BoardConfig, str]:
        raise NotImplementedError

    @abstractmethod
    def save_config(self, cfg: BoardConfig) -> None:
        raise NotImplementedError

    @abstractmethod
    def tasks_path(self, cfg: BoardConfig) -> Path:
        raise NotImplementedError

    @abstractmethod
    def read_tasks(self, cfg: BoardConfig) -> tuple[list[Task], list[str]]:
        """全タスクを読み込む。

        Returns:
            (tasks, warnings): 解析できなかったファイルは warnings に入る
        """
        raise NotImplementedError

    @abstractmethod
    def write_task(self, cfg: BoardConfig, task: Task) -> Path:
        """タスクを書き込む。task.file が未設定ならファイル名を決めて設定する。"""
        raise NotImplementedError

    @abstractmethod
    def delete_task_file(self, path: Path) -> None:
        raise NotImplementedError

    @abstractmethod
    def append_log(self, entry: LogEntry) -> None:
        raise NotImplementedError

    @abstractmethod
    def read_log(self) -> tuple[list[LogEntry], list[str]]:
        raise NotImplementedError

    @abstractmethod
    def lock(self) -> AbstractContextManager[None]:
        raise NotImplementedError

    @abstractmethod
    def mtime(self, path: Path) -> float:
        raise NotImplementedError

    @abstractmethod
    def choose_task_path(self, cfg: BoardConfig, task: Task) -> Path:
        """タスクの ID とタイトルから、既存ファイルと衝突しないパスを選ぶ。"""
        raise NotImplementedError

    # ---- 読み込み + 修復 ----

    def load_all(self) -> Result[LoadResult, str]:
        """設定とタスクを読み込み、ID の重複などを自動修復した結果を返す。"""
        match self.load_config():
            case Ok(cfg):
                tasks, warnings = self.read_tasks(cfg)
                warnings.extend(repair(self, cfg, tasks))
                return Ok[LoadResult, str](LoadResult(cfg, tasks, warnings))
            case Err(e):
                return Err[LoadResult, str](e)
            case _:
                return Err[LoadResult, str]("Unexpected error")
