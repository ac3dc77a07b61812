import re
from datetime import date, datetime, timedelta, timezone

from pyresults import Err, Ok, Result

RFC3339_FMT = "%Y-%m-%dT%H:%M:%SZ"
DATE_FMT = "%Y-%m-%d"
UTC = timezone.utc

_DURATION_PART = re.compile(r"(\d+)([wdhms])")
_ESTIMATE = re.compile(r"^\d+[hdw]$")
_UNIT_SECONDS = {
    "w": 7 * 24 * 3600,
    "d": 24 * 3600,
    "h": 3600,
    "m": 60,
    "s": 1,
}


def now() -> datetime:
    return datetime.now(UTC).replace(microsecond=0)


def now_iso() -> str:
    return format_time(now())


def format_time(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).strftime(RFC3339_FMT)


def parse_time(s: str) -> Result[datetime, str]:
    """RFC3339 文字列 (Z / オフセット付き) を UTC の datetime に変換する。

    日付のみ (YYYY-MM-DD) の場合はその日の 00:00:00Z として扱う。
    """
    raw = s.strip()
    if not raw:
        return Err[datetime, str]("empty timestamp")
    if raw.endswith(("Z", "z")):
        raw = raw[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(raw)
    except ValueError as e:
        return Err[datetime, str](f"invalid timestamp {s!r}: {e!s}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return Ok[datetime, str](dt.astimezone(UTC))


def parse_date(s: str) -> Result[date, str]:
    try:
        return Ok[date, str](datetime.strptime(s.strip(), DATE_FMT).date())  # noqa: DTZ007
    except ValueError:
        return Err[date, str](f"invalid date {s!r} (expected YYYY-MM-DD)")


def parse_duration(s: str) -> Result[timedelta, str]:
    """Parse durations such as ``1h``, ``90m``, ``2d`` or ``1h30m``."""
    raw = s.strip().lower()
    if not raw:
        return Err[timedelta, str]("empty duration")
    if raw == "0":
        return Ok[timedelta, str](timedelta(0))
    pos = 0
    seconds = 0
    for m in _DURATION_PART.finditer(raw):
        if m.start() != pos:
            break
        seconds += int(m.group(1)) * _UNIT_SECONDS[m.group(2)]
        pos = m.end()
    if pos != len(raw):
        return Err[timedelta, str](f"invalid duration {s!r} (expected e.g. 30m, 1h, 2d)")
    return Ok[timedelta, str](timedelta(seconds=seconds))


def is_estimate(s: str) -> bool:
    return _ESTIMATE.match(s.strip()) is not None


def format_duration(d: timedelta) -> str:
    """経過時間を "Xd Yh" または "Xh Ym" 形式で返す。"""
    total_hours = int(d.total_seconds() // 3600)
    days, hours = divmod(total_hours, 24)
    if days > 0:
        return f"{days}d {hours}h"
    minutes = int(d.total_seconds() // 60) % 60
    return f"{hours}h {minutes}m"


def hours_between(start: str | None, end: str | None) -> float | None:
    if not start or not end:
        return None
    match (parse_time(start), parse_time(end)):
        case (Ok(s), Ok(e)):
            return (e - s).total_seconds() / 3600
        case _:
            return None
