from typing import Any


class ErrorCode:
    """構造化エラーの安定したコード文字列。"""

    INVALID_INPUT = "INVALID_INPUT"
    INVALID_STATUS = "INVALID_STATUS"
    INVALID_PRIORITY = "INVALID_PRIORITY"
    INVALID_CLASS = "INVALID_CLASS"
    INVALID_DATE = "INVALID_DATE"
    INVALID_TASK_ID = "INVALID_TASK_ID"
    INVALID_GROUP_BY = "INVALID_GROUP_BY"
    INVALID_CONFIG = "INVALID_CONFIG"
    TASK_NOT_FOUND = "TASK_NOT_FOUND"
    NO_CHANGES = "NO_CHANGES"
    BOUNDARY_ERROR = "BOUNDARY_ERROR"
    WIP_LIMIT_EXCEEDED = "WIP_LIMIT_EXCEEDED"
    CLASS_WIP_EXCEEDED = "CLASS_WIP_EXCEEDED"
    SELF_REFERENCE = "SELF_REFERENCE"
    DEPENDENCY_NOT_FOUND = "DEPENDENCY_NOT_FOUND"
    STATUS_CONFLICT = "STATUS_CONFLICT"
    CONFIRMATION_REQUIRED = "CONFIRMATION_REQUIRED"
    TASK_CLAIMED = "TASK_CLAIMED"
    CLAIM_REQUIRED = "CLAIM_REQUIRED"
    NOTHING_TO_PICK = "NOTHING_TO_PICK"
    BOARD_NOT_FOUND = "BOARD_NOT_FOUND"
    BOARD_ALREADY_EXISTS = "BOARD_ALREADY_EXISTS"
    IO_ERROR = "IO_ERROR"
    PARSE_ERROR = "PARSE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class KanbanError(Exception):
    """ユースケース実行失敗を表す構造化例外。

    code は機械可読な安定文字列、message は人間向けの短い説明、
    details は JSON 出力にそのまま載る補足情報。
    """

    def __init__(self, code: str, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    @property
    def exit_code(self) -> int:
        return 2 if self.code == ErrorCode.INTERNAL_ERROR else 1

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details:
            out["details"] = self.details
        return out

    def __repr__(self) -> str:
        return f"KanbanError({self.code!r}, {self.message!r})"


def io_error(path: str, err: OSError) -> KanbanError:
    return KanbanError(
        ErrorCode.IO_ERROR,
        f"{path}: {err.strerror or err!s}",
        {"path": path},
    )
