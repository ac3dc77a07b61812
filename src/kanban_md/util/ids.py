from pyresults import Err, Ok, Result


def parse_id(s: str) -> Result[int, str]:
    s = s.strip()
    if len(s) == 0:
        return Err[int, str]("Empty ID")
    # "#12" 形式も許容する
    if s.startswith("#"):
        s = s[1:]
    if not (s.isascii() and s.isdigit()):
        return Err[int, str](f"invalid task ID {s!r}")
    tid = int(s)
    if tid <= 0:
        return Err[int, str](f"invalid task ID {s!r} (must be positive)")
    return Ok[int, str](tid)


def parse_ids(s: str, *, sep: str = ",") -> Result[list[int], str]:
    """カンマ区切りの ID リストを重複なし・入力順で返す。"""
    ids: list[int] = []
    for part in s.split(sep):
        if not part.strip():
            continue
        match parse_id(part):
            case Ok(tid):
                if tid not in ids:
                    ids.append(tid)
            case Err(e):
                return Err[list[int], str](e)
    if len(ids) == 0:
        return Err[list[int], str]("no valid task IDs provided")
    return Ok[list[int], str](ids)
