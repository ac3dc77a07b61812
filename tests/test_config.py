import unittest

from kanban_md.core.config import (
    ARCHIVED_STATUS,
    CURRENT_VERSION,
    BoardConfig,
    migrate,
    new_default,
)


class TestNewDefault(unittest.TestCase):
    def test_default_statuses(self) -> None:
        cfg = new_default("demo")
        assert cfg.statuses == ["backlog", "todo", "in-progress", "review", "done", "archived"]
        assert cfg.default_status == "backlog"
        assert cfg.terminal_status() == "done"
        assert cfg.initial_status() == "backlog"
        assert cfg.validate().is_ok()

    def test_custom_statuses_get_archived_sink(self) -> None:
        cfg = new_default("demo", statuses=["open", "closed"])
        assert cfg.statuses == ["open", "closed", ARCHIVED_STATUS]
        assert cfg.terminal_status() == "closed"
        assert cfg.board_statuses() == ["open", "closed"]

    def test_done_includes_archived(self) -> None:
        cfg = new_default("demo")
        assert cfg.is_done("done")
        assert cfg.is_done("archived")
        assert not cfg.is_done("review")

    def test_claim_timeout(self) -> None:
        cfg = new_default("demo")
        assert cfg.claim_timeout_delta().total_seconds() == 3600


class TestValidate(unittest.TestCase):
    def test_rejects_unknown_wip_status(self) -> None:
        cfg = new_default("demo", wip_limits={"nope": 1})
        r = cfg.validate()
        assert r.is_err()
        assert "unknown status" in r.unwrap_err()

    def test_rejects_duplicate_statuses(self) -> None:
        cfg = new_default("demo", statuses=["a", "a"])
        assert cfg.validate().is_err()

    def test_rejects_bad_claim_timeout(self) -> None:
        cfg = new_default("demo")
        cfg.claim_timeout = "soon"
        assert cfg.validate().is_err()

    def test_rejects_unknown_default_priority(self) -> None:
        cfg = new_default("demo")
        cfg.default_priority = "urgent"
        assert cfg.validate().is_err()


class TestSerialization(unittest.TestCase):
    def test_round_trip(self) -> None:
        cfg = new_default("demo", wip_limits={"in-progress": 2})
        cfg.next_id = 7
        back = BoardConfig.from_dict(cfg.to_dict()).unwrap()
        assert back == cfg

    def test_classes(self) -> None:
        cfg = new_default("demo")
        expedite = cfg.class_by_name("expedite")
        assert expedite is not None
        assert expedite.wip_limit == 1
        assert expedite.bypass_column_wip
        assert cfg.class_names() == ["expedite", "fixed-date", "standard", "intangible"]


class TestMigrate(unittest.TestCase):
    def test_v1_to_current(self) -> None:
        raw = {
            "version": 1,
            "board": {"name": "old"},
            "tasks_dir": "tasks",
            "statuses": ["backlog", "doing", "done"],
            "priorities": ["low", "high"],
            "defaults": {"status": "backlog", "priority": "low"},
            "next_id": 4,
        }
        cfg = BoardConfig.from_dict(raw).unwrap()
        assert cfg.version == CURRENT_VERSION
        assert cfg.statuses[-1] == ARCHIVED_STATUS
        assert cfg.default_class == "standard"
        assert cfg.claim_timeout == "1h"
        assert cfg.wip_limits == {}
        # 入力は変更しない
        assert raw["version"] == 1

    def test_newer_version_rejected(self) -> None:
        r = migrate({"version": CURRENT_VERSION + 1})
        assert r.is_err()
        assert "newer" in r.unwrap_err()

    def test_invalid_version(self) -> None:
        assert migrate({"version": 0}).is_err()
        assert migrate({"version": "x"}).is_err()
