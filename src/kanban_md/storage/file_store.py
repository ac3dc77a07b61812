import json
import os
import sys
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import yaml  # type: ignore[import-untyped]
from pyresults import Err, Ok, Result

from kanban_md.core.config import BoardConfig
from kanban_md.core.errors import io_error
from kanban_md.core.models import LogEntry, Task
from kanban_md.storage.base import Store
from kanban_md.util import frontmatter
from kanban_md.util.dirs import CONFIG_FILE_NAME, LOCK_FILE_NAME, LOG_FILE_NAME
from kanban_md.util.logger import get_logger
from kanban_md.util.slug import TASK_FILE_EXT, generate_filename, generate_slug

if sys.platform != "win32":
    import fcntl

logger = get_logger()


class StoreToFiles(Store):
    """1 タスク 1 ファイル (YAML frontmatter + markdown) のバックエンド実装.

    - config.yml: ボード設定
    - tasks/NNN-<slug>.md: タスク本体
    - activity.jsonl: 追記専用のアクティビティログ
    """

    @property
    def config_path(self) -> Path:
        return self.root / CONFIG_FILE_NAME

    @property
    def log_path(self) -> Path:
        return self.root / LOG_FILE_NAME

    @property
    def lock_path(self) -> Path:
        return self.root / LOCK_FILE_NAME

    def tasks_path(self, cfg: BoardConfig) -> Path:
        return self.root / cfg.tasks_dir

    def exists(self) -> bool:
        return self.config_path.is_file()

    def initialize(self, cfg: BoardConfig) -> None:
        try:
            self.tasks_path(cfg).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise io_error(self.tasks_path(cfg).as_posix(), e) from e
        self.save_config(cfg)

    # ---- 設定 ----

    def load_config(self) -> Result[BoardConfig, str]:
        try:
            with self.config_path.open(encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
        except OSError as e:
            return Err[BoardConfig, str](f"reading config: {e.strerror or e!s}")
        except UnicodeDecodeError as e:
            return Err[BoardConfig, str](f"reading config: not valid UTF-8 (byte {e.start})")
        except yaml.YAMLError as e:
            return Err[BoardConfig, str](f"parsing config: {e!s}")
        if not isinstance(raw, dict):
            return Err[BoardConfig, str]("parsing config: top level must be a mapping")
        return BoardConfig.from_dict(raw)

    def save_config(self, cfg: BoardConfig) -> None:
        text = yaml.safe_dump(cfg.to_dict(), allow_unicode=True, sort_keys=False, default_flow_style=False)
        self._atomic_write(self.config_path, text)

    # ---- タスク ----

    def _task_files(self, cfg: BoardConfig) -> list[Path]:
        tasks_dir = self.tasks_path(cfg)
        if not tasks_dir.is_dir():
            return []
        return sorted(p for p in tasks_dir.iterdir() if p.is_file() and p.suffix == TASK_FILE_EXT)

    def read_task(self, path: Path) -> Result[Task, str]:
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            return Err[Task, str](e.strerror or str(e))
        except UnicodeDecodeError as e:
            return Err[Task, str](f"not valid UTF-8 (byte {e.start})")
        match frontmatter.split(text):
            case Ok((meta, body)):
                try:
                    return Ok[Task, str](Task.from_dict(meta, body=body, file=path))
                except (TypeError, ValueError) as e:
                    return Err[Task, str](str(e))
            case Err(e):
                return Err[Task, str](e)
            case _:
                return Err[Task, str]("Unexpected error")

    def read_tasks(self, cfg: BoardConfig) -> tuple[list[Task], list[str]]:
        tasks: list[Task] = []
        warnings: list[str] = []
        for path in self._task_files(cfg):
            match self.read_task(path):
                case Ok(t):
                    tasks.append(t)
                case Err(e):
                    warnings.append(f"skipping malformed file {path.name}: {e}")
        return tasks, warnings

    def choose_task_path(self, cfg: BoardConfig, task: Task) -> Path:
        tasks_dir = self.tasks_path(cfg)
        occupied = set(self._task_files(cfg))
        slug = generate_slug(task.title)
        candidate = tasks_dir / generate_filename(task.id, slug)
        suffix = 1
        while candidate != task.file and candidate in occupied:
            candidate = tasks_dir / generate_filename(task.id, slug, suffix)
            suffix += 1
        return candidate

    def write_task(self, cfg: BoardConfig, task: Task) -> Path:
        if task.file is None:
            task.file = self.choose_task_path(cfg, task)
        self._atomic_write(task.file, frontmatter.join(task.to_dict(), task.body))
        logger.debug("wrote task #%d to %s", task.id, task.file.name)
        return task.file

    def delete_task_file(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise io_error(path.as_posix(), e) from e

    def mtime(self, path: Path) -> float:
        try:
            return path.stat().st_mtime
        except OSError:
            return 0.0

    # ---- アクティビティログ ----

    def append_log(self, entry: LogEntry) -> None:
        line = json.dumps(entry.to_dict(), ensure_ascii=False)
        try:
            with self.log_path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as e:
            raise io_error(self.log_path.as_posix(), e) from e

    def read_log(self) -> tuple[list[LogEntry], list[str]]:
        """JSON Lines を読む。タブ区切りの平文行も受け付け、壊れた行は警告にする。"""
        entries: list[LogEntry] = []
        warnings: list[str] = []
        if not self.log_path.is_file():
            return entries, warnings
        try:
            # UTF-8 として壊れたバイトは置換文字として読む
            lines = self.log_path.read_text(encoding="utf-8", errors="replace").splitlines()
        except OSError as e:
            raise io_error(self.log_path.as_posix(), e) from e
        for n, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            match _parse_log_line(line):
                case Ok(entry):
                    entries.append(entry)
                case Err(e):
                    warnings.append(f"skipping malformed log line {n}: {e}")
        return entries, warnings

    # ---- 排他制御 ----

    @contextmanager
    def lock(self) -> Iterator[None]:
        """<root>/.lock への advisory lock。fcntl のない環境では何もしない。"""
        if sys.platform == "win32":
            yield
            return
        try:
            f = self.lock_path.open("a")
        except OSError as e:
            raise io_error(self.lock_path.as_posix(), e) from e
        with f:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)

    # ---- low-level helpers ---------------------------------------------

    def _atomic_write(self, path: Path, text: str) -> None:
        # 同じディレクトリの一時ファイルに書いてから rename する
        tmp_name = ""
        try:
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=path.parent,
                prefix=f".{path.name}.",
                suffix=".tmp",
                delete=False,
            ) as f:
                tmp_name = f.name
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            Path(tmp_name).replace(path)
        except OSError as e:
            if tmp_name:
                Path(tmp_name).unlink(missing_ok=True)
            raise io_error(path.as_posix(), e) from e


def _parse_log_line(line: str) -> Result[LogEntry, str]:
    stripped = line.strip()
    if stripped.startswith("{"):
        try:
            raw = json.loads(stripped)
        except json.JSONDecodeError as e:
            return Err[LogEntry, str](e.msg)
        if not isinstance(raw, dict):
            return Err[LogEntry, str]("not an object")
        try:
            return Ok[LogEntry, str](LogEntry.from_dict(raw))
        except (TypeError, ValueError) as e:
            return Err[LogEntry, str](str(e))
    # 平文: timestamp <TAB> action <TAB> #id <TAB> detail [<TAB> agent]
    parts = stripped.split("\t")
    if len(parts) < 3:  # noqa: PLR2004
        return Err[LogEntry, str]("unrecognized format")
    try:
        tid = int(parts[2].lstrip("#"))
    except ValueError:
        return Err[LogEntry, str](f"invalid task id {parts[2]!r}")
    return Ok[LogEntry, str](
        LogEntry(
            timestamp=parts[0],
            action=parts[1],
            task_id=tid,
            detail=parts[3] if len(parts) > 3 else "",  # noqa: PLR2004
            agent=parts[4] if len(parts) > 4 else "",  # noqa: PLR2004
        ),
    )
