# src/lightrecord/record.py
"""Active record base class.

A record class names its table and, optionally, a cast table::

    class Post(ActiveRecord):
        __table__ = "posts"
        __casts__ = {
            "published": "boolean",
            "meta": "json",
        }

    Post.configure(backend)

    post = Post.create(title="Hello", published=1)
    post.published          # True
    post.meta = {"tags": ["a"]}
    post.save()

Columns are read from the database the first time a record class is
instantiated and cached for the lifetime of the process (see
:class:`lightrecord.schema.SchemaCache`).
"""
import datetime
import logging
from enum import Enum
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Tuple, Type, TypeVar

from .backend import StorageBackend
from .casting import CastAdapter, CastRegistry, CastSpec, DatetimeAdapter, default_registry
from .errors import DatabaseError, InvalidOperation, PersistenceFailure, UnknownProperty
from .helpers import TimezoneLike, format_datetime, is_empty, now, optional_int
from .query import QueryBuilder
from .schema import SchemaCache, schema_cache

logger = logging.getLogger(__name__)

T = TypeVar("T", bound="ActiveRecord")


class RecordState(Enum):
    """Initialization state of a record class."""
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


class ActiveRecord:
    """Base class for row-backed entities."""

    __table__: ClassVar[Optional[str]] = None
    __casts__: ClassVar[Dict[str, CastSpec]] = {}
    # Timezone of the timestamps written by save() and of this class's datetime
    # casts; defaults to the registry timezone
    __timezone__: ClassVar[TimezoneLike] = None
    __cast_registry__: ClassVar[CastRegistry] = default_registry
    __schema_cache__: ClassVar[SchemaCache] = schema_cache
    __backend__: ClassVar[Optional[StorageBackend]] = None

    id_attribute: ClassVar[str] = "id"
    created_at_attribute: ClassVar[Optional[str]] = "created_at"
    updated_at_attribute: ClassVar[Optional[str]] = "updated_at"

    # Exception swallowed by the last call to save(), if any
    last_error: Optional[Exception] = None

    def __init__(self, attributes: Optional[Mapping[str, Any]] = None, **kwargs):
        cls = type(self)
        cls.initialize()

        object.__setattr__(self, "_attributes", dict.fromkeys(cls.__schema_cache__.columns(cls)))
        object.__setattr__(self, "_casted", {})
        object.__setattr__(self, "last_error", None)

        values = dict(attributes or {})
        values.update(kwargs)
        self._load_attributes(values)

    # region Initialization

    @classmethod
    def state(cls) -> RecordState:
        return cls.__dict__.get("_record_state", RecordState.UNINITIALIZED)

    @classmethod
    def initialize(cls) -> None:
        """Resolve the cast table and load the column list of this class."""
        if cls.state() is RecordState.READY:
            return

        cls._record_state = RecordState.INITIALIZING
        try:
            cls._cast_table()
            cls.__schema_cache__.columns(cls)
        except Exception:
            cls._record_state = RecordState.UNINITIALIZED
            raise
        cls._record_state = RecordState.READY
        logger.debug(f"Initialized record class {cls.__name__}")

    def _load_attributes(self, values: Mapping[str, Any]) -> None:
        for key, value in values.items():
            if key in self._attributes:
                self._write_raw(key, value)

    # endregion

    # region Backend & table

    @classmethod
    def configure(cls, backend: StorageBackend) -> None:
        """Bind a database backend to this class and its subclasses."""
        cls.__backend__ = backend
        cls.__schema_cache__.refresh(cls)

    @classmethod
    def backend(cls) -> StorageBackend:
        if cls.__backend__ is None:
            raise DatabaseError(f"No backend configured for {cls.__name__}; call {cls.__name__}.configure()")
        return cls.__backend__

    @classmethod
    def table_name(cls) -> Optional[str]:
        """Table name with the backend's prefix applied."""
        if not cls.__table__:
            return None
        prefix = cls.__backend__.table_prefix if cls.__backend__ is not None else ""
        return f"{prefix}{cls.__table__}"

    @classmethod
    def now(cls) -> datetime.datetime:
        return now(cls.__timezone__ or cls.__cast_registry__.timezone)

    # endregion

    # region Attributes

    def has_attribute(self, name: str) -> bool:
        return name in self._attributes

    @property
    def attributes(self) -> Dict[str, Any]:
        """Copy of the raw attribute values."""
        return dict(self._attributes)

    def to_dict(self) -> Dict[str, Any]:
        """Cast values of all attributes."""
        return {name: self.get(name) for name in self._attributes}

    def get(self, name: str) -> Any:
        if name in self._attributes:
            if name not in self._casted:
                self._casted[name] = type(self).casted_value(name, self._attributes[name])
            return self._casted[name]
        try:
            return object.__getattribute__(self, name)
        except AttributeError:
            raise UnknownProperty(f"Getting unknown property: {type(self).__name__}.{name}")

    def set(self, name: str, value: Any) -> None:
        if name in self._attributes:
            self._write_raw(name, type(self).decasted_value(name, value))
            return
        if name.startswith("_") or name in self.__dict__ or hasattr(type(self), name):
            object.__setattr__(self, name, value)
            return
        raise UnknownProperty(f"Setting unknown property: {type(self).__name__}.{name}")

    def unset(self, name: str) -> None:
        if name in self._attributes:
            raise InvalidOperation(f"Unsetting database property: {type(self).__name__}.{name}")
        try:
            object.__delattr__(self, name)
        except AttributeError:
            raise UnknownProperty(f"Unsetting unknown property: {type(self).__name__}.{name}")

    def _write_raw(self, name: str, value: Any) -> None:
        self._casted.pop(name, None)
        self._attributes[name] = value

    def __getattr__(self, name: str) -> Any:
        # Only reached when regular lookup fails
        if name.startswith("_"):
            raise AttributeError(name)
        attributes = self.__dict__.get("_attributes")
        if attributes is not None and name in attributes:
            return self.get(name)
        raise UnknownProperty(f"Getting unknown property: {type(self).__name__}.{name}")

    def __setattr__(self, name: str, value: Any) -> None:
        if "_attributes" not in self.__dict__:
            object.__setattr__(self, name, value)
            return
        self.set(name, value)

    def __delattr__(self, name: str) -> None:
        self.unset(name)

    def __repr__(self):
        return f"{type(self).__name__}({self._attributes!r})"

    def __eq__(self, other):
        if not isinstance(other, ActiveRecord):
            return NotImplemented
        return type(self) is type(other) and self._attributes == other._attributes

    __hash__ = None

    # endregion

    # region Casting

    @classmethod
    def _cast_table(cls) -> Dict[str, CastAdapter]:
        """Adapters per attribute, resolved once per class."""
        table = cls.__dict__.get("_resolved_casts")
        if table is None:
            casts: Dict[str, CastSpec] = dict(cls.__casts__)
            casts[cls.id_attribute] = "int"
            if cls.created_at_attribute is not None:
                casts[cls.created_at_attribute] = "datetime"
            if cls.updated_at_attribute is not None:
                casts[cls.updated_at_attribute] = "datetime"

            registry = cls.__cast_registry__
            table = {name: registry.adapter_for(spec) for name, spec in casts.items()}
            if cls.__timezone__ is not None:
                # Timestamps written by save() are naive strings in __timezone__
                class_datetime = DatetimeAdapter(cls.__timezone__)
                table = {
                    name: class_datetime if isinstance(adapter, DatetimeAdapter) else adapter
                    for name, adapter in table.items()
                }
            cls._resolved_casts = table
        return table

    @classmethod
    def casted_value(cls, name: str, value: Any) -> Any:
        """Typed value of attribute ``name`` for the raw ``value``."""
        adapter = cls._cast_table().get(name)
        return adapter.cast(value) if adapter else value

    @classmethod
    def decasted_value(cls, name: str, value: Any) -> Any:
        """Raw value of attribute ``name`` for the typed ``value``."""
        adapter = cls._cast_table().get(name)
        return adapter.decast(value) if adapter else value

    # endregion

    # region Lifecycle

    def is_new_record(self) -> bool:
        """True when the identifier is empty or not positive."""
        raw = self._attributes.get(type(self).id_attribute)
        if is_empty(raw):
            return True
        record_id = optional_int(raw)
        return record_id is None or record_id <= 0

    def _timestamp_attributes(self) -> Tuple[Optional[str], Optional[str]]:
        cls = type(self)
        created = cls.created_at_attribute if cls.created_at_attribute in self._attributes else None
        updated = cls.updated_at_attribute if cls.updated_at_attribute in self._attributes else None
        return created, updated

    def save(self) -> bool:
        """Insert or update the record.

        Returns:
            bool: False if anything failed; the exception is kept in
            :attr:`last_error`
        """
        cls = type(self)
        id_attribute = cls.id_attribute
        self.last_error = None

        try:
            is_new_record = self.is_new_record()

            self.before_save(is_new_record)

            timestamp = format_datetime(cls.now())
            created_at, updated_at = self._timestamp_attributes()

            if is_new_record:
                if created_at:
                    self._write_raw(created_at, timestamp)
                if updated_at:
                    self._write_raw(updated_at, timestamp)

                data = {k: v for k, v in self._attributes.items() if k != id_attribute}
                self._write_raw(id_attribute, cls.insert(data))
            else:
                if updated_at:
                    self._write_raw(updated_at, timestamp)

                data = {k: v for k, v in self._attributes.items() if k != created_at}
                cls.update(data).where(id_attribute, self._attributes[id_attribute]).execute()

            self.after_save(is_new_record)
            return True
        except Exception as e:
            self.last_error = e
            logger.warning(f"Could not save {cls.__name__}: {e}")

        return False

    def delete(self: T) -> T:
        """Delete the row of this record and detach it.

        Does nothing when the record has no identifier.
        """
        cls = type(self)
        record_id = self._attributes.get(cls.id_attribute)

        if not is_empty(record_id):
            self.before_delete()

            cls.delete_by_id(record_id)

            self._write_raw(cls.id_attribute, None)

            self.after_delete()

        return self

    # endregion

    # region Queries

    @classmethod
    def query(cls) -> QueryBuilder:
        """Query builder bound to this class."""
        return QueryBuilder(cls.backend(), model=cls, registry=cls.__cast_registry__)

    @classmethod
    def create(cls: Type[T], attributes: Optional[Mapping[str, Any]] = None, **kwargs) -> Optional[T]:
        """Instantiate and save; None when saving failed."""
        instance = cls(attributes, **kwargs)

        if instance.save():
            return instance

        return None

    @classmethod
    def insert(cls, data: Mapping[str, Any]) -> int:
        """Insert a row and return its generated identifier.

        Raises:
            PersistenceFailure: If no positive identifier was generated
        """
        cls.query().insert(data).execute()

        new_id = optional_int(cls.backend().last_insert_id)
        if new_id is not None and new_id > 0:
            return new_id

        raise PersistenceFailure(f"The system could not save the {cls.__name__} record.")

    @classmethod
    def update(cls, *args) -> QueryBuilder:
        """UPDATE builder with ``set(*args)`` applied when arguments are given."""
        return cls.query().update(*args)

    @classmethod
    def delete_by_id(cls, record_id: Any) -> int:
        return cls.query().delete().where(cls.id_attribute, record_id).execute()

    @classmethod
    def find(cls: Type[T], conditions: Optional[List[Mapping[str, Any]]] = None, use_or: bool = False) -> List[T]:
        """Records matching all (or, with ``use_or``, any) conditions.

        Args:
            conditions: e.g. ``[{"attribute": "status", "operator": "=", "value": "draft"}]``;
                ``type`` is accepted in place of ``operator``. Entries missing
                any of the three keys are ignored.
            use_or: Combine the conditions with OR instead of AND
        """
        query = cls.query()

        for condition in conditions or []:
            attribute = condition.get("attribute")
            operator = condition.get("operator", condition.get("type"))
            value = condition.get("value")
            if attribute is None or operator is None or value is None:
                continue
            if use_or:
                query.or_where(attribute, operator, value)
            else:
                query.and_where(attribute, operator, value)

        return [result for result in query.get() if isinstance(result, ActiveRecord)]

    @classmethod
    def find_one(cls: Type[T], record_id: Any, attribute: Optional[str] = None) -> Optional[T]:
        """Record whose ``attribute`` (the identifier by default) equals
        ``record_id``; None if absent or on error."""
        try:
            result = cls.query().and_where(attribute or cls.id_attribute, int(record_id)).one()
            if isinstance(result, ActiveRecord):
                return result
        except Exception as e:
            logger.debug(f"{cls.__name__}.find_one({record_id!r}) failed: {e}")

        return None

    @classmethod
    def find_one_or_new(cls: Type[T], record_id: Any, attribute: Optional[str] = None) -> T:
        """Like :meth:`find_one`, returning a blank instance instead of None."""
        result = cls.find_one(record_id, attribute)
        if result is not None:
            return result
        return cls()

    # endregion

    # region Events

    def before_save(self, insert: bool) -> None:
        pass

    def after_save(self, insert: bool) -> None:
        pass

    def before_delete(self) -> None:
        pass

    def after_delete(self) -> None:
        pass

    # endregion
