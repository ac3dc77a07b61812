import re

from pyresults import Err, Ok, Result

MAX_SLUG_LENGTH = 50
TASK_FILE_EXT = ".md"
FALLBACK_SLUG = "task"

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_FILENAME_ID = re.compile(r"^(\d+)-")


def generate_slug(title: str, max_length: int = MAX_SLUG_LENGTH) -> str:
    """タイトルからファイル名用の slug を生成する。

    英数字以外の連続は "-" 1 文字にまとめ、max_length を超える場合は
    直前の単語境界で切り詰める。
    """
    slug = _NON_ALNUM.sub("-", title.lower()).strip("-")
    if len(slug) > max_length:
        cut = slug[:max_length]
        # 単語の途中で切れる場合は直前の "-" まで戻す
        if slug[max_length] != "-" and "-" in cut:
            cut = cut[: cut.rfind("-")]
        slug = cut.strip("-")
    return slug or FALLBACK_SLUG


def generate_filename(task_id: int, slug: str, suffix: int | None = None) -> str:
    if suffix is None:
        return f"{task_id:03d}-{slug}{TASK_FILE_EXT}"
    return f"{task_id:03d}-{slug}-{suffix}{TASK_FILE_EXT}"


def extract_id_from_filename(filename: str) -> Result[int, str]:
    m = _FILENAME_ID.match(filename)
    if m is None:
        return Err[int, str](f"cannot extract ID from filename {filename!r}")
    return Ok[int, str](int(m.group(1)))
