# src/lightrecord/helpers.py
import datetime
from typing import Any, Optional, Union

from zoneinfo import ZoneInfo

DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"

TimezoneLike = Union[str, datetime.tzinfo, None]


def get_timezone(tz: TimezoneLike) -> datetime.tzinfo:
    """Resolve a timezone name or tzinfo object.

    ``None`` and ``"UTC"`` resolve to :data:`datetime.timezone.utc` so that
    the default does not depend on the system tz database.
    """
    if tz is None:
        return datetime.timezone.utc
    if isinstance(tz, datetime.tzinfo):
        return tz
    if tz.upper() == "UTC":
        return datetime.timezone.utc
    return ZoneInfo(tz)


def now(tz: TimezoneLike = None) -> datetime.datetime:
    """Current time, aware, in the given timezone."""
    return datetime.datetime.now(get_timezone(tz))


def format_datetime(value: datetime.datetime) -> str:
    return value.strftime(DATETIME_FORMAT)


def is_empty(value: Any) -> bool:
    """True for ``None``, empty strings/bytes and empty containers.

    Zero and ``False`` are regular values here.
    """
    if value is None:
        return True
    if isinstance(value, (str, bytes, bytearray)):
        return len(value) == 0
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


def bare_column_name(expression: str) -> str:
    """Name under which a select expression shows up in a result row.

    ``"`posts`.`title` AS t"`` gives ``"t"``, ``"`posts`.`title`"`` gives
    ``"title"``.
    """
    name = expression.strip()
    lowered = name.lower()
    if " as " in lowered:
        name = name[lowered.rindex(" as ") + 4:].strip()
    name = name.replace("`", "")
    if "." in name and "(" not in name:
        name = name.rsplit(".", 1)[-1]
    return name


def optional_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
