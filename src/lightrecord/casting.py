# src/lightrecord/casting.py
"""Cast adapters and the registry that resolves them by type tag.

A cast turns the raw value stored in a record (as the driver returned it or
as it will be written) into the typed value handed to callers; a decast is
the inverse. Adapters are looked up by a case-insensitive tag, with aliases
such as ``integer`` for ``int``. Unknown tags pass values through unchanged.
"""
import datetime
import json
import logging
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union

from .helpers import DATETIME_FORMAT, TimezoneLike, get_timezone, is_empty

logger = logging.getLogger(__name__)


class CastAdapter:
    """Converts one attribute between its raw and typed representation.

    The base implementation is the identity in both directions.
    """

    tag: Optional[str] = None

    def cast(self, value: Any) -> Any:
        return value

    def decast(self, value: Any) -> Any:
        return value

    def __repr__(self):
        return f"{self.__class__.__name__}(tag={self.tag!r})"


class IntAdapter(CastAdapter):
    """Adapts database integers; empty or unparsable values become None.

    Numeric strings with a fractional part are truncated (``"5.7"`` gives 5).
    """
    tag = "int"

    def cast(self, value: Any) -> Optional[int]:
        if is_empty(value):
            return None
        if isinstance(value, (bytes, bytearray)):
            value = value.decode()
        try:
            return int(value)
        except (TypeError, ValueError):
            pass
        try:
            return int(float(value))
        except (TypeError, ValueError, OverflowError):
            logger.debug(f"Could not cast {value!r} to int")
            return None

    def decast(self, value: Any) -> Optional[str]:
        number = self.cast(value)
        return None if number is None else str(number)


class FloatAdapter(CastAdapter):
    tag = "float"

    def cast(self, value: Any) -> Optional[float]:
        if is_empty(value):
            return None
        if isinstance(value, (bytes, bytearray)):
            value = value.decode()
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.debug(f"Could not cast {value!r} to float")
            return None

    def decast(self, value: Any) -> Optional[str]:
        number = self.cast(value)
        return None if number is None else str(number)


class BooleanAdapter(CastAdapter):
    """
    Adapts Python bool to MySQL TINYINT(1) and vice-versa.
    """
    tag = "boolean"

    def cast(self, value: Any) -> bool:
        if isinstance(value, (bytes, bytearray)):
            if not value.isdigit():
                # BIT(1) columns come back as b'\x00' / b'\x01'
                return any(value)
            value = value.decode()
        if isinstance(value, str):
            return value.strip() not in ("", "0")
        return bool(value)

    def decast(self, value: Any) -> int:
        return 1 if self.cast(value) else 0


class JSONAdapter(CastAdapter):
    """
    Adapts Python dict/list to MySQL JSON and vice-versa.
    Serializes to JSON string when writing, deserializes from JSON string when reading.
    """
    tag = "json"

    def cast(self, value: Any) -> Union[dict, list]:
        # MySQL connector might return str for JSON, or already dict/list for some drivers
        if isinstance(value, (dict, list)):
            return value
        if value is None:
            return {}
        try:
            decoded = json.loads(value)
        except (TypeError, ValueError):
            logger.debug(f"Could not decode JSON value {value!r}, using empty object")
            return {}
        return decoded if isinstance(decoded, (dict, list)) else {}

    def decast(self, value: Any) -> Optional[str]:
        if is_empty(value):
            return None
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


class DatetimeAdapter(CastAdapter):
    """
    Adapts MySQL DATETIME/TIMESTAMP values to aware datetimes in a fixed
    timezone and back to ``YYYY-MM-DD HH:MM:SS`` strings.
    """
    tag = "datetime"

    def __init__(self, timezone: TimezoneLike = "UTC"):
        self.timezone = timezone

    @property
    def tzinfo(self) -> datetime.tzinfo:
        return get_timezone(self.timezone)

    def cast(self, value: Any) -> Optional[datetime.datetime]:
        if is_empty(value):
            return None
        if isinstance(value, (bytes, bytearray)):
            value = value.decode()
        if isinstance(value, datetime.datetime):
            dt = value
        elif isinstance(value, datetime.date):
            dt = datetime.datetime.combine(value, datetime.time())
        else:
            try:
                dt = datetime.datetime.fromisoformat(str(value).strip())
            except ValueError:
                logger.debug(f"Could not parse datetime value {value!r}")
                return None
        if dt.tzinfo is None:
            # The driver returns naive values; they are in the configured timezone.
            return dt.replace(tzinfo=self.tzinfo)
        return dt.astimezone(self.tzinfo)

    def decast(self, value: Any) -> Optional[str]:
        if is_empty(value) or not isinstance(value, datetime.datetime):
            return None
        if value.tzinfo is not None:
            value = value.astimezone(self.tzinfo)
        return value.strftime(DATETIME_FORMAT)


class CallableCast(CastAdapter):
    """Adapter built from a pair of plain functions; a missing function is
    the identity."""

    def __init__(self, cast: Optional[Callable[[Any], Any]] = None,
                 decast: Optional[Callable[[Any], Any]] = None):
        self._cast = cast
        self._decast = decast

    def cast(self, value: Any) -> Any:
        return self._cast(value) if self._cast else value

    def decast(self, value: Any) -> Any:
        return self._decast(value) if self._decast else value

    def __repr__(self):
        return f"CallableCast(cast={self._cast!r}, decast={self._decast!r})"


CastSpec = Union[str, CastAdapter, Tuple[Callable, Callable], Mapping[str, Callable]]


class CastRegistry:
    """Registry of cast adapters keyed by type tag.

    Example::

        registry = CastRegistry(timezone="Europe/Berlin")
        registry.cast("integer", "5")      # 5
        registry.decast("bool", True)      # 1
        registry.cast("unknown", "x")      # "x"
    """

    default_aliases: Dict[str, str] = {
        "integer": "int",
        "number": "float",
        "bool": "boolean",
    }

    def __init__(self, timezone: TimezoneLike = "UTC"):
        self.aliases: Dict[str, str] = dict(self.default_aliases)
        self._adapters: Dict[str, CastAdapter] = {}
        self._identity = CastAdapter()
        self._datetime = DatetimeAdapter(timezone)
        for adapter in (IntAdapter(), FloatAdapter(), BooleanAdapter(), JSONAdapter(), self._datetime):
            self.register(adapter.tag, adapter)

    @property
    def timezone(self) -> TimezoneLike:
        return self._datetime.timezone

    @timezone.setter
    def timezone(self, value: TimezoneLike) -> None:
        # Adapters resolved into record cast tables share this instance.
        self._datetime.timezone = value

    def register(self, tag: str, adapter: CastAdapter) -> None:
        """Register (or replace) the adapter for ``tag``."""
        self._adapters[tag.lower()] = adapter
        logger.debug(f"Registered cast adapter {adapter!r} for '{tag}'")

    def add_alias(self, alias: str, tag: str) -> None:
        self.aliases[alias.lower()] = tag.lower()

    def resolve_alias(self, tag: str) -> str:
        tag = tag.lower()
        return self.aliases.get(tag, tag)

    def resolve(self, tag: str) -> CastAdapter:
        """Adapter for ``tag``; the identity adapter when none is registered."""
        return self._adapters.get(self.resolve_alias(tag), self._identity)

    def has(self, tag: str) -> bool:
        return self.resolve_alias(tag) in self._adapters

    def cast(self, tag: str, value: Any) -> Any:
        return self.resolve(tag).cast(value)

    def decast(self, tag: str, value: Any) -> Any:
        return self.resolve(tag).decast(value)

    def adapter_for(self, spec: CastSpec) -> CastAdapter:
        """Turn an entry of a cast table into an adapter.

        Accepts a type tag, an adapter instance, a ``(cast, decast)`` tuple
        or a ``{"cast": ..., "decast": ...}`` mapping.
        """
        if isinstance(spec, str):
            return self.resolve(spec)
        if isinstance(spec, CastAdapter):
            return spec
        if isinstance(spec, Mapping):
            return CallableCast(spec.get("cast"), spec.get("decast"))
        if isinstance(spec, (tuple, list)) and len(spec) == 2:
            return CallableCast(spec[0], spec[1])
        raise TypeError(f"Unsupported cast definition: {spec!r}")


default_registry = CastRegistry()
