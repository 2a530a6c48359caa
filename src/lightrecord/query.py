# src/lightrecord/query.py
"""Fluent SQL query builder.

A :class:`QueryBuilder` accumulates the clauses of exactly one statement
(SELECT, INSERT, UPDATE or DELETE) and compiles them into a list of SQL
fragments plus positional arguments. Values are always passed as ``%s``
placeholders unless wrapped in :class:`~lightrecord.dialect.SQLExpression`.

Example::

    query = Post.query().where("status", "published").or_where({"author_id": [1, 2]})
    query.order_by("created_at", "DESC").limit(10)
    posts = query.get()

compiles to::

    SELECT *
    FROM `wp_posts`
    WHERE ( `status` = %s ) OR ( `author_id` IN (%s, %s) )
    ORDER BY `created_at` DESC
    LIMIT %d
"""
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Type, Union

from .casting import CastRegistry, CastSpec, default_registry
from .dialect import MAX_LIMIT, NULL, MySQLDialect, SQLExpression
from .errors import ArgumentError, ConflictingStatementType
from .helpers import bare_column_name

if TYPE_CHECKING:
    from .backend import StorageBackend
    from .record import ActiveRecord

logger = logging.getLogger(__name__)

_UNSET = object()

SELECT = "SELECT"
INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"

# First items of an (operator, value) pair in the mapping shape of where()
COMPARISON_OPERATORS = frozenset({
    "=", "!=", "<>", "<", "<=", ">", ">=",
    "LIKE", "NOT LIKE", "IN", "NOT IN", "IS", "IS NOT", "REGEXP",
})


def _is_operator_pair(item: Any) -> bool:
    return (
        isinstance(item, (list, tuple))
        and len(item) == 2
        and isinstance(item[0], str)
        and " ".join(item[0].split()).upper() in COMPARISON_OPERATORS
    )


@dataclass
class RawCondition:
    """A condition embedded verbatim, with its own positional arguments."""
    sql: str
    args: List[Any] = field(default_factory=list)


@dataclass
class Condition:
    """A ``column OPERATOR value`` comparison."""
    column: Union[str, SQLExpression]
    operator: str
    value: Any


@dataclass
class Ordering:
    column: str
    order: Optional[str]


@dataclass
class Join:
    table: str
    local_attribute: str
    foreign_attribute: str
    join_type: str = "INNER"


@dataclass
class Preparation:
    """Compiled statement: ordered SQL fragments and positional arguments."""
    fragments: List[str]
    args: List[Any]

    @property
    def sql(self) -> str:
        return "\n".join(self.fragments)


class QueryBuilder:
    """Builder for one SQL statement against one table.

    Args:
        backend: Database handle used to prepare and run the statement
        model: Record class the builder is bound to; rows are decoded into
            instances of it and its table name is used
        table: Table name for builders that are not bound to a record class
        casts: Cast table applied to rows of an unbound builder
        registry: Registry resolving the tags of ``casts``
    """

    dialect = MySQLDialect()

    def __init__(self, backend: "StorageBackend", model: Optional[Type["ActiveRecord"]] = None,
                 table: Optional[str] = None, casts: Optional[Dict[str, CastSpec]] = None,
                 registry: Optional[CastRegistry] = None):
        self.backend = backend
        self.model = model
        self._table = table
        self._registry = registry or default_registry
        self._casts = {
            name: self._registry.adapter_for(spec) for name, spec in (casts or {}).items()
        }

        self._type: Optional[str] = None
        self._select: List[str] = []
        self._set: Dict[str, Any] = {}
        self._insert: List[Dict[str, Any]] = []
        self._where: List[List[Union[RawCondition, Condition]]] = []
        self._having: List[List[Union[RawCondition, Condition]]] = []
        self._group_by: List[Union[Ordering, SQLExpression]] = []
        self._order_by: List[Union[Ordering, SQLExpression]] = []
        self._limit: Union[int, SQLExpression, None] = None
        self._offset: Union[int, SQLExpression, None] = None
        self._join: List[Join] = []

    # region Model

    def has_model(self) -> bool:
        from .record import ActiveRecord
        return isinstance(self.model, type) and issubclass(self.model, ActiveRecord)

    @property
    def table(self) -> Optional[str]:
        """Physical table name the statement runs against."""
        if self.has_model():
            return self.model.table_name()
        return self._table

    @property
    def type(self) -> Optional[str]:
        return self._type

    # endregion

    # region Statement type

    def _set_type(self, statement_type: str) -> "QueryBuilder":
        if self._type and self._type != statement_type:
            raise ConflictingStatementType(
                f"The type of query is already '{self._type}', cannot change it to '{statement_type}'"
            )
        self._type = statement_type
        return self

    def select(self, *columns: str) -> "QueryBuilder":
        """Add select expressions (embedded as written)."""
        self._set_type(SELECT)
        self._select.extend(columns)
        return self

    def delete(self) -> "QueryBuilder":
        return self._set_type(DELETE)

    def update(self, column: Any = _UNSET, value: Any = _UNSET) -> "QueryBuilder":
        """Turn the builder into an UPDATE; with arguments, same as :meth:`set`."""
        if column is _UNSET:
            return self._set_type(UPDATE)
        return self.set(column, value)

    def set(self, column: Union[str, Mapping[str, Any]], value: Any = _UNSET) -> "QueryBuilder":
        """Assign a column, or several columns from a mapping."""
        self._set_type(UPDATE)

        if value is _UNSET:
            if not isinstance(column, Mapping):
                raise ArgumentError("set() with a single argument expects a mapping of column to value")
            for key, item in column.items():
                self.set(key, item)
            return self

        self._set[column] = NULL if value is None else value
        return self

    def insert(self, data: Union[Mapping[str, Any], List[Mapping[str, Any]]]) -> "QueryBuilder":
        """Insert one row (a mapping) or several rows (a list of mappings)."""
        self._set_type(INSERT)

        rows = [data] if isinstance(data, Mapping) else list(data)
        if not rows:
            raise ArgumentError("insert() needs at least one row")
        for row in rows:
            if not isinstance(row, Mapping):
                raise ArgumentError(f"Insert rows must be mappings, got {type(row).__name__}")
            self._insert.append({key: NULL if value is None else value for key, value in row.items()})
        return self

    # endregion

    # region Where / Having

    def where(self, column: Any, op_or_value: Any = _UNSET, value: Any = _UNSET) -> "QueryBuilder":
        """Add a condition to the current AND group.

        Call shapes:

        * ``where("active")`` - raw SQL embedded verbatim
        * ``where(SQLExpression("a > %s", 5))`` or ``where(["a > %s", 5])`` - raw SQL with arguments
        * ``where({"a": 1, "b": (">", 5)})`` - one condition per item
        * ``where("a", 1)`` - ``=`` (``IS`` for None, ``IN`` for lists)
        * ``where("a", ">", 1)`` - explicit operator
        """
        return self._add_condition(self._where, "where", column, op_or_value, value)

    def and_where(self, column: Any, op_or_value: Any = _UNSET, value: Any = _UNSET) -> "QueryBuilder":
        """Alias for :meth:`where`."""
        return self.where(column, op_or_value, value)

    def or_where(self, column: Any, op_or_value: Any = _UNSET, value: Any = _UNSET) -> "QueryBuilder":
        """Start a new OR group, then add the condition to it."""
        self._where.append([])
        return self.where(column, op_or_value, value)

    def having(self, column: Any, op_or_value: Any = _UNSET, value: Any = _UNSET) -> "QueryBuilder":
        """Like :meth:`where`, for the HAVING clause."""
        return self._add_condition(self._having, "having", column, op_or_value, value)

    def and_having(self, column: Any, op_or_value: Any = _UNSET, value: Any = _UNSET) -> "QueryBuilder":
        return self.having(column, op_or_value, value)

    def or_having(self, column: Any, op_or_value: Any = _UNSET, value: Any = _UNSET) -> "QueryBuilder":
        self._having.append([])
        return self.having(column, op_or_value, value)

    def _add_condition(self, groups, method: str, column, op_or_value, value) -> "QueryBuilder":
        if op_or_value is _UNSET:
            if isinstance(column, str):
                condition = RawCondition(column)
            elif isinstance(column, SQLExpression):
                condition = RawCondition(column.expression, list(column.args))
            elif isinstance(column, Mapping):
                add = getattr(self, method)
                for key, item in column.items():
                    if _is_operator_pair(item):
                        add(key, item[0], item[1])
                    else:
                        add(key, item)
                return self
            elif isinstance(column, (list, tuple)):
                try:
                    expression = SQLExpression.coerce(column)
                except TypeError as e:
                    raise ArgumentError(str(e))
                condition = RawCondition(expression.expression, list(expression.args))
            else:
                raise ArgumentError(
                    f"Only one argument provided for {method}(), but it is not a string, "
                    f"raw fragment or mapping: {column!r}"
                )
        else:
            if value is _UNSET:
                value = op_or_value
                if value is None:
                    operator = "IS"
                elif isinstance(value, (list, tuple, set, frozenset)):
                    operator = "IN"
                else:
                    operator = "="
            else:
                operator = str(op_or_value)

            condition = Condition(
                column=column,
                operator=operator.strip().upper(),
                value=NULL if value is None else value,
            )

        if not groups:
            groups.append([])
        groups[-1].append(condition)
        return self

    def _compile_conditions(self, keyword: str, groups, fragments: List[str], args: List[Any]) -> None:
        compiled_groups = []
        for group in groups:
            if not group:
                continue
            items = []
            for item in group:
                if isinstance(item, RawCondition):
                    items.append(item.sql)
                    args.extend(item.args)
                    continue

                if isinstance(item.column, SQLExpression):
                    column = item.column.expression
                    args.extend(item.column.args)
                else:
                    column = self.dialect.format_identifier(item.column)

                if isinstance(item.value, SQLExpression):
                    placeholder = item.value.expression
                    args.extend(item.value.args)
                elif isinstance(item.value, (list, tuple, set, frozenset)):
                    placeholder, values = self.dialect.format_value_list(item.value)
                    args.extend(values)
                else:
                    placeholder = self.dialect.get_placeholder()
                    args.append(item.value)

                items.append(f"{column} {item.operator} {placeholder}")
            compiled_groups.append(f"( {' AND '.join(items)} )")

        if compiled_groups:
            fragments.append(f"{keyword} {' OR '.join(compiled_groups)}")

    # endregion

    # region Group By / Order By

    def group_by(self, column: Any, order: Any = None) -> "QueryBuilder":
        """Add a GROUP BY item; no direction keyword unless ``order`` is given."""
        # MySQL 8 removed ASC/DESC on GROUP BY, so none is emitted by default
        return self._add_ordering(self._group_by, "group_by", column, order, default=None)

    def order_by(self, column: Any, order: Any = "ASC") -> "QueryBuilder":
        """Add an ORDER BY item. ``order`` may be ``"ASC"``/``True`` or
        ``"DESC"``/``False``."""
        return self._add_ordering(self._order_by, "order_by", column, order, default="ASC")

    def _add_ordering(self, items, method: str, column, order, default) -> "QueryBuilder":
        if isinstance(column, SQLExpression):
            items.append(column)
        elif isinstance(column, Mapping):
            add = getattr(self, method)
            for key, item in column.items():
                add(key, item)
        elif isinstance(column, (list, tuple)):
            try:
                items.append(SQLExpression.coerce(column))
            except TypeError as e:
                raise ArgumentError(str(e))
        else:
            direction = default if order is None else self.dialect.format_order(order)
            items.append(Ordering(column, direction))
        return self

    def _compile_orderings(self, keyword: str, items, fragments: List[str], args: List[Any]) -> None:
        compiled = []
        for item in items:
            if isinstance(item, SQLExpression):
                compiled.append(item.expression)
                args.extend(item.args)
            elif item.order:
                compiled.append(f"{self.dialect.format_identifier(item.column)} {item.order}")
            else:
                compiled.append(self.dialect.format_identifier(item.column))
        fragments.append(f"{keyword} {', '.join(compiled)}")

    # endregion

    # region Limit / Offset

    def limit(self, limit: Union[int, SQLExpression, list, tuple]) -> "QueryBuilder":
        self._limit = self._limit_value(limit)
        return self

    def offset(self, offset: Union[int, SQLExpression, list, tuple]) -> "QueryBuilder":
        self._offset = self._limit_value(offset)
        return self

    @staticmethod
    def _limit_value(value):
        if value is None or isinstance(value, SQLExpression):
            return value
        if isinstance(value, (list, tuple)):
            return SQLExpression.coerce(value)
        return int(value)

    def _compile_limit(self, keyword: str, value, fragments: List[str], args: List[Any]) -> None:
        if isinstance(value, SQLExpression):
            fragments.append(f"{keyword} {value.expression}")
            args.extend(value.args)
        else:
            fragments.append(f"{keyword} {self.dialect.integer_placeholder}")
            args.append(int(value))

    # endregion

    # region Join

    def join(self, table: str, local_attribute: str, foreign_attribute: str,
             join_type: str = "inner") -> "QueryBuilder":
        """Add an equi-join of ``table`` on ``base.local_attribute = table.foreign_attribute``."""
        self._join.append(Join(table, local_attribute, foreign_attribute, join_type.strip().upper()))
        return self

    def _compile_joins(self, table: Optional[str], fragments: List[str]) -> None:
        if not table:
            raise ArgumentError("A table is required for JOIN clauses")
        quote = self.dialect.format_identifier
        for join in self._join:
            fragments.append(
                f"{join.join_type} JOIN {quote(join.table)} "
                f"ON {quote(table)}.{quote(join.local_attribute)} = "
                f"{quote(join.table)}.{quote(join.foreign_attribute)}"
            )

    # endregion

    # region Prepare & SQL

    def prepare(self) -> Preparation:
        """Compile the accumulated clauses into SQL fragments and arguments."""
        table = self.table
        quote = self.dialect.format_identifier
        fragments: List[str] = []
        args: List[Any] = []

        if self._type in (DELETE, UPDATE, INSERT) and not table:
            raise ArgumentError(f"A table is required for {self._type} statements")

        # SELECT, UPDATE, INSERT or DELETE
        if self._type == DELETE:
            fragments.append(f"DELETE FROM {quote(table)}")
        elif self._type == UPDATE:
            fragments.append(f"UPDATE {quote(table)}")
        elif self._type == INSERT:
            fragments.append(f"INSERT INTO {quote(table)}")
        else:
            fragments.append(f"SELECT {', '.join(self._select) if self._select else '*'}")
            if table:
                fragments.append(f"FROM {quote(table)}")

        if self._set:
            self._compile_set(fragments, args)

        if self._insert:
            self._compile_insert(fragments, args)

        if self._join:
            self._compile_joins(table, fragments)

        if self._where:
            self._compile_conditions("WHERE", self._where, fragments, args)

        if self._group_by:
            self._compile_orderings("GROUP BY", self._group_by, fragments, args)

        if self._having:
            self._compile_conditions("HAVING", self._having, fragments, args)

        if self._order_by:
            self._compile_orderings("ORDER BY", self._order_by, fragments, args)

        if self._limit is not None:
            self._compile_limit("LIMIT", self._limit, fragments, args)
        elif self._offset is not None:
            fragments.append(f"LIMIT {MAX_LIMIT}")

        if self._offset is not None:
            self._compile_limit("OFFSET", self._offset, fragments, args)

        return Preparation(fragments, args)

    def _compile_set(self, fragments: List[str], args: List[Any]) -> None:
        assignments = []
        for column, value in self._set.items():
            if isinstance(value, SQLExpression):
                assignments.append(f"{self.dialect.format_identifier(column)} = {value.expression}")
                args.extend(value.args)
            else:
                assignments.append(f"{self.dialect.format_identifier(column)} = {self.dialect.get_placeholder()}")
                args.append(value)
        fragments.append(f"SET {', '.join(assignments)}")

    def _compile_insert(self, fragments: List[str], args: List[Any]) -> None:
        # Union of the keys of all rows, in first-seen order
        columns = list(dict.fromkeys(key for row in self._insert for key in row))
        rows = []
        for row in self._insert:
            values = []
            for column in columns:
                value = row.get(column, NULL)
                if isinstance(value, SQLExpression):
                    values.append(value.expression)
                    args.extend(value.args)
                else:
                    values.append(self.dialect.get_placeholder())
                    args.append(value)
            rows.append(f"({', '.join(values)})")

        column_list = ", ".join(self.dialect.format_identifier(column) for column in columns)
        fragments.append(f"({column_list}) VALUES {', '.join(rows)}")

    def sql(self) -> str:
        """Final SQL with arguments substituted by the backend."""
        preparation = self.prepare()
        if preparation.args:
            return self.backend.prepare(preparation.sql, preparation.args)
        return preparation.sql

    def __str__(self):
        return self.prepare().sql

    # endregion

    # region Execution

    def execute(self) -> int:
        """Run the statement for its effect; returns the affected row count."""
        sql = self.sql()
        logger.debug(f"Executing {self._type or SELECT} statement on '{self.table}'")
        return self.backend.query(sql)

    def execute_query(self, sql: str) -> int:
        """Run a raw SQL statement."""
        return self.backend.query(sql)

    def raw_results(self) -> List[Dict[str, Any]]:
        return self.backend.fetch_all(self.sql())

    def raw_row(self) -> Optional[Dict[str, Any]]:
        return self.backend.fetch_row(self.sql())

    def results(self) -> List[Dict[str, Any]]:
        """All rows with their values cast."""
        return [self._casted_row(row) for row in self.raw_results()]

    def row(self) -> Optional[Dict[str, Any]]:
        """First row with its values cast, or None."""
        row = self.raw_row()
        if not row:
            return None
        return self._casted_row(row)

    def get(self) -> List[Union["ActiveRecord", Dict[str, Any]]]:
        """All rows, as record instances when the builder is bound to a model."""
        if not self.has_model():
            return self.results()

        return [self.model(row) for row in self.raw_results() if row]

    def one(self) -> Union["ActiveRecord", Dict[str, Any], None]:
        """First row, as a record instance when bound to a model; None if absent."""
        if not self.has_model():
            return self.row()

        row = self.raw_row()
        if row:
            return self.model(row)
        return None

    def column(self) -> List[Any]:
        """Values of the single select expression for every row.

        Raises:
            ArgumentError: If not exactly one select expression is set
        """
        prop = self._single_select("column")
        return [self._casted_value(prop, value) for value in self.backend.fetch_column(self.sql())]

    def var(self, sql: Optional[str] = None) -> Any:
        """Scalar result; runs ``sql`` as-is when given.

        Raises:
            ArgumentError: If ``sql`` is not given and not exactly one select
                expression is set
        """
        if sql:
            return self.backend.fetch_scalar(sql)

        prop = self._single_select("var")
        return self._casted_value(prop, self.backend.fetch_scalar(self.sql()))

    def _single_select(self, method: str) -> str:
        if len(self._select) != 1:
            raise ArgumentError(
                f"QueryBuilder.{method}: exactly one select expression is required, got {len(self._select)}"
            )
        return bare_column_name(self._select[0])

    # endregion

    # region Casting

    def _casted_row(self, row: Mapping[str, Any]) -> Dict[str, Any]:
        return {key: self._casted_value(key, value) for key, value in row.items()}

    def _casted_value(self, prop: str, value: Any) -> Any:
        if self.has_model():
            return self.model.casted_value(prop, value)
        adapter = self._casts.get(prop)
        return adapter.cast(value) if adapter else value

    # endregion
