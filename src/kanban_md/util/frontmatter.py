from typing import Any

import yaml  # type: ignore[import-untyped]
from pyresults import Err, Ok, Result

DELIMITER = "---"


def split(text: str) -> Result[tuple[dict[str, Any], str], str]:
    """Split a ``---`` delimited YAML frontmatter document into (meta, body).

    Errors carry the 1-based line number of the problem.
    """
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].rstrip("\r\n") != DELIMITER:
        return Err("line 1: missing opening frontmatter delimiter '---'")
    end = None
    for i, line in enumerate(lines[1:], start=1):
        if line.rstrip("\r\n") == DELIMITER:
            end = i
            break
    if end is None:
        return Err("line 1: missing closing frontmatter delimiter '---'")

    raw_meta = "".join(lines[1:end])
    try:
        meta = yaml.safe_load(raw_meta)
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        line_no = mark.line + 2 if mark is not None else 1
        problem = getattr(e, "problem", None) or str(e)
        return Err(f"line {line_no}: invalid YAML frontmatter: {problem}")
    if meta is None:
        meta = {}
    if not isinstance(meta, dict):
        return Err("line 2: frontmatter must be a mapping")

    body = "".join(lines[end + 1 :])
    # 区切り直後の空行 1 つは書き出し時に挿入したものなので取り除く
    if body.startswith("\n"):
        body = body[1:]
    return Ok((meta, body.rstrip("\n")))


def join(meta: dict[str, Any], body: str) -> str:
    dumped = yaml.safe_dump(
        meta,
        allow_unicode=True,
        sort_keys=False,
        default_flow_style=False,
    )
    out = f"{DELIMITER}\n{dumped}{DELIMITER}\n"
    if body:
        out += f"\n{body.rstrip()}\n"
    return out
