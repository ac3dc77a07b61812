import json
import tempfile
import unittest
from pathlib import Path

from kanban_md.core.config import new_default
from kanban_md.core.models import LogEntry, Task
from kanban_md.storage import StoreToFiles, get_store


class _StoreCase(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name) / "kanban"
        self.store = StoreToFiles(self.root)
        self.cfg = new_default("test")
        self.store.initialize(self.cfg)

    def tearDown(self) -> None:
        self.tmp.cleanup()

    def _task(self, tid: int, title: str, **kw) -> Task:  # noqa: ANN003
        return Task(id=tid, title=title, status=kw.pop("status", "backlog"), priority="medium", **kw)


class TestStoreConfig(_StoreCase):
    def test_initialize_creates_layout(self) -> None:
        """config.yml と tasks/ が作られることを確認"""
        assert self.store.exists()
        assert (self.root / "config.yml").is_file()
        assert (self.root / "tasks").is_dir()

    def test_load_config_round_trip(self) -> None:
        cfg = self.store.load_config().unwrap()
        assert cfg == self.cfg

    def test_load_config_invalid_yaml(self) -> None:
        (self.root / "config.yml").write_text("version: [\n", encoding="utf-8")
        r = self.store.load_config()
        assert r.is_err()
        assert "parsing config" in r.unwrap_err()

    def test_get_store(self) -> None:
        assert isinstance(get_store(self.root), StoreToFiles)


class TestStoreTasks(_StoreCase):
    def test_write_uses_slug_filename(self) -> None:
        t = self._task(1, "First Task")
        path = self.store.write_task(self.cfg, t)
        assert path.name == "001-first-task.md"
        assert t.file == path

    def test_write_then_read(self) -> None:
        t = self._task(2, "Second", tags=["a"], body="body text")
        self.store.write_task(self.cfg, t)
        tasks, warnings = self.store.read_tasks(self.cfg)
        assert warnings == []
        assert tasks == [t]

    def test_no_temp_files_left(self) -> None:
        self.store.write_task(self.cfg, self._task(1, "x"))
        names = [p.name for p in (self.root / "tasks").iterdir()]
        assert names == ["001-x.md"]

    def test_malformed_file_is_a_warning(self) -> None:
        self.store.write_task(self.cfg, self._task(1, "good"))
        (self.root / "tasks" / "002-bad.md").write_text("no frontmatter here\n", encoding="utf-8")
        tasks, warnings = self.store.read_tasks(self.cfg)
        assert [t.id for t in tasks] == [1]
        assert len(warnings) == 1
        assert "002-bad.md" in warnings[0]

    def test_undecodable_file_is_a_warning(self) -> None:
        self.store.write_task(self.cfg, self._task(1, "good"))
        (self.root / "tasks" / "002-bad.md").write_bytes(b"---\nid: 2\ntitle: \xff\xfe\n---\n")
        tasks, warnings = self.store.read_tasks(self.cfg)
        assert [t.id for t in tasks] == [1]
        assert len(warnings) == 1
        assert "002-bad.md" in warnings[0]
        assert "UTF-8" in warnings[0]

    def test_wrongly_typed_field_is_a_warning(self) -> None:
        self.store.write_task(self.cfg, self._task(1, "good"))
        (self.root / "tasks" / "002-bad.md").write_text(
            "---\nid: 2\ntitle: bad\nstatus: backlog\npriority: medium\ntags: 5\n---\n",
            encoding="utf-8",
        )
        tasks, warnings = self.store.read_tasks(self.cfg)
        assert [t.id for t in tasks] == [1]
        assert "invalid tags" in warnings[0]

    def test_choose_path_avoids_collision(self) -> None:
        a = self._task(3, "same")
        self.store.write_task(self.cfg, a)
        b = self._task(3, "same")
        assert self.store.choose_task_path(self.cfg, b).name == "003-same-1.md"
        # 自分自身のファイルは衝突扱いしない
        assert self.store.choose_task_path(self.cfg, a) == a.file

    def test_delete_task_file_missing_ok(self) -> None:
        self.store.delete_task_file(self.root / "tasks" / "999-none.md")


class TestActivityLog(_StoreCase):
    def test_append_and_read(self) -> None:
        self.store.append_log(LogEntry(action="create", task_id=1, detail="First"))
        self.store.append_log(LogEntry(action="claim", task_id=1, detail="bot", agent="bot"))
        entries, warnings = self.store.read_log()
        assert warnings == []
        assert [e.action for e in entries] == ["create", "claim"]
        assert entries[1].agent == "bot"

    def test_one_json_object_per_line(self) -> None:
        self.store.append_log(LogEntry(action="create", task_id=1, detail="First"))
        lines = (self.root / "activity.jsonl").read_text(encoding="utf-8").splitlines()
        assert len(lines) == 1
        assert json.loads(lines[0])["action"] == "create"

    def test_plain_rows_and_malformed_lines(self) -> None:
        (self.root / "activity.jsonl").write_text(
            "2025-01-01T00:00:00Z\tmove\t#3\tbacklog -> todo\tbot\n{broken\n\n",
            encoding="utf-8",
        )
        entries, warnings = self.store.read_log()
        assert len(entries) == 1
        assert entries[0].task_id == 3
        assert entries[0].agent == "bot"
        assert len(warnings) == 1
        assert "line 2" in warnings[0]

    def test_undecodable_bytes(self) -> None:
        good = json.dumps(LogEntry(action="create", task_id=1, detail="A").to_dict())
        (self.root / "activity.jsonl").write_bytes(good.encode() + b"\n\xff\xfe\n")
        entries, warnings = self.store.read_log()
        assert [e.task_id for e in entries] == [1]
        assert len(warnings) == 1
        assert "line 2" in warnings[0]

    def test_missing_log(self) -> None:
        assert self.store.read_log() == ([], [])


class TestLock(_StoreCase):
    def test_lock_is_reentrant_across_uses(self) -> None:
        with self.store.lock():
            pass
        with self.store.lock():
            pass
