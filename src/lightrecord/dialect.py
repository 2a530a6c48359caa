# src/lightrecord/dialect.py
"""MySQL dialect pieces used by the query builder.

The builder only needs a handful of dialect rules: how identifiers are
quoted, which placeholders are emitted and the LIMIT value MySQL expects
when an OFFSET is used on its own.
"""
from typing import Any, List, Sequence, Tuple, Union

# MySQL requires LIMIT when using OFFSET; this is the largest unsigned BIGINT.
MAX_LIMIT = 18446744073709551615


class SQLExpression:
    """A literal SQL fragment that is embedded verbatim instead of being
    passed as a parameter.

    Placeholders inside the fragment are filled from ``args``::

        SQLExpression("NOW()")
        SQLExpression("DATE(`created_at`) > %s", "2024-01-01")
    """

    __slots__ = ("expression", "args")

    def __init__(self, expression: str, *args: Any):
        self.expression = expression
        self.args = list(args)

    def format(self, dialect: "MySQLDialect") -> str:
        return self.expression

    @classmethod
    def coerce(cls, value: Union["SQLExpression", Sequence[Any]]) -> "SQLExpression":
        """Build an expression from the ``[sql, *args]`` list shape."""
        if isinstance(value, SQLExpression):
            return value
        items = list(value)
        if not items or not isinstance(items[0], str):
            raise TypeError("A raw SQL fragment must start with the SQL string")
        return cls(items[0], *items[1:])

    def __eq__(self, other):
        if not isinstance(other, SQLExpression):
            return NotImplemented
        return self.expression == other.expression and self.args == other.args

    def __hash__(self):
        return hash((self.expression, tuple(map(repr, self.args))))

    def __repr__(self):
        if self.args:
            return f"SQLExpression({self.expression!r}, {', '.join(map(repr, self.args))})"
        return f"SQLExpression({self.expression!r})"


NULL = SQLExpression("NULL")


class MySQLDialect:
    """MySQL dialect implementation"""

    value_placeholder = "%s"
    integer_placeholder = "%d"

    def get_placeholder(self) -> str:
        """Get MySQL parameter placeholder"""
        return self.value_placeholder

    def format_identifier(self, identifier: str) -> str:
        """Quote identifier (table/column name)

        MySQL uses backticks for identifiers. Dotted names are quoted per
        segment so ``posts.id`` becomes ``` `posts`.`id` ```.
        """
        parts = identifier.split(".")
        return ".".join(self._quote_part(part) for part in parts)

    @staticmethod
    def _quote_part(part: str) -> str:
        if len(part) >= 2 and part.startswith("`") and part.endswith("`"):
            return part
        if part == "*":
            return part
        if '`' in part:
            escaped = part.replace('`', '``')
            return f"`{escaped}`"
        return f"`{part}`"

    def format_value_list(self, values: Sequence[Any]) -> Tuple[str, List[Any]]:
        """Placeholder tuple for an IN-style comparison.

        An empty list compiles to ``(NULL)`` since ``IN ()`` is a syntax error.
        """
        values = list(values)
        if not values:
            return "(NULL)", []
        placeholders = ", ".join(self.get_placeholder() for _ in values)
        return f"({placeholders})", values

    def format_order(self, order: Any) -> str:
        """Normalize an ordering direction to ``ASC`` or ``DESC``."""
        if order is None or order is True:
            return "ASC"
        if not order:
            return "DESC"
        if isinstance(order, str) and order.strip().upper() != "ASC":
            return "DESC"
        return "ASC"
