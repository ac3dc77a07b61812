import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from kanban_md.util.dirs import load_env

APP_LOGGER = "kanban_md"
DIAGNOSTICS_LOGGER = "kanban_md.warnings"


class _StderrHandler(logging.StreamHandler):  # type: ignore[type-arg]
    """emit 時点の sys.stderr に書き出す StreamHandler。

    redirect_stderr などで差し替えられた stderr にも追従する。
    """

    def __init__(self) -> None:
        super().__init__(sys.stderr)

    @property  # type: ignore[override]
    def stream(self):  # noqa: ANN201
        return sys.stderr

    @stream.setter
    def stream(self, value) -> None:  # noqa: ANN001
        pass


def setup_mode(*, is_debug: bool) -> None:
    level = logging.DEBUG if is_debug else logging.WARNING
    logging.getLogger(APP_LOGGER).setLevel(level)


def setup_logger(
    name: str,
    *,
    is_stream: bool = True,
    is_file: bool = False,
    fmt: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level: int = logging.DEBUG,
) -> logging.Logger:
    logger = logging.getLogger(name)
    # 何度 import されてもハンドラを重複させない
    if logger.handlers:
        return logger
    logger.setLevel(level)

    if is_stream:
        stream_handler = _StderrHandler()
        stream_handler.setLevel(level)
        stream_handler.setFormatter(logging.Formatter(fmt))
        logger.addHandler(stream_handler)

    log_dir = load_env()["LOG_DIR"]
    if is_file and log_dir:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        time_rotate_file_handler = TimedRotatingFileHandler(
            (Path(log_dir) / f"{name.lower()}.log").as_posix(),
            when="MIDNIGHT",
            interval=1,
            backupCount=7,
            encoding="utf-8",
        )
        time_rotate_file_handler.setLevel(logging.DEBUG)
        time_rotate_file_handler.setFormatter(logging.Formatter(fmt))
        logger.addHandler(time_rotate_file_handler)

    return logger


def get_logger() -> logging.Logger:
    logger = setup_logger(APP_LOGGER, is_stream=True, is_file=True)
    if not load_env()["DEBUG"]:
        logger.setLevel(logging.WARNING)
    return logger


def get_diagnostics() -> logging.Logger:
    """非致命的な警告 ("Warning: ...") を stderr に出すロガー。"""
    logger = setup_logger(
        DIAGNOSTICS_LOGGER,
        is_stream=True,
        is_file=False,
        fmt="Warning: %(message)s",
        level=logging.WARNING,
    )
    logger.propagate = False
    return logger
