import os
from pathlib import Path

from pyresults import Err, Ok, Result

DEFAULT_DIR = "kanban"
DEFAULT_TASKS_DIR = "tasks"
CONFIG_FILE_NAME = "config.yml"
LOG_FILE_NAME = "activity.jsonl"
LOCK_FILE_NAME = ".lock"

BOARD_NOT_FOUND_MSG = "no kanban board found (run 'kanban-md init' to create one)"


def load_env() -> dict[str, str]:
    """KANBAN_* 環境変数をまとめて返す。"""
    return {
        "DIR": os.environ.get("KANBAN_DIR", ""),
        "OUTPUT": os.environ.get("KANBAN_OUTPUT", ""),
        "DEBUG": os.environ.get("KANBAN_DEBUG", ""),
        "LOG_DIR": os.environ.get("KANBAN_LOG_DIR", ""),
    }


def find_board_dir(start: str | Path) -> Result[Path, str]:
    """start から親方向へ config.yml を持つボードディレクトリを探す。

    <dir>/kanban/config.yml と <dir>/config.yml の両方を候補にする。
    """
    current = Path(start).resolve()
    while True:
        if (current / DEFAULT_DIR / CONFIG_FILE_NAME).is_file():
            return Ok[Path, str](current / DEFAULT_DIR)
        if (current / CONFIG_FILE_NAME).is_file():
            return Ok[Path, str](current)
        if current.parent == current:
            return Err[Path, str](BOARD_NOT_FOUND_MSG)
        current = current.parent


def resolve_board_dir(flag_dir: str | None) -> Result[Path, str]:
    # --dir > KANBAN_DIR > カレントディレクトリからの探索
    explicit = flag_dir or load_env()["DIR"]
    if explicit:
        path = Path(explicit).resolve()
        if not (path / CONFIG_FILE_NAME).is_file():
            return Err[Path, str](BOARD_NOT_FOUND_MSG)
        return Ok[Path, str](path)
    return find_board_dir(Path.cwd())


def init_target_dir(flag_dir: str | None) -> Path:
    explicit = flag_dir or load_env()["DIR"]
    if explicit:
        return Path(explicit).resolve()
    return (Path.cwd() / DEFAULT_DIR).resolve()
