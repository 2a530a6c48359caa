# src/lightrecord/errors.py
"""Exception hierarchy for lightrecord.

Record and builder errors describe programming mistakes made against the
active-record and query builder APIs. Database errors wrap failures reported
by the underlying MySQL driver.
"""


class ActiveRecordError(Exception):
    """Base class for every error raised by lightrecord."""
    pass


class UnknownProperty(ActiveRecordError, AttributeError):
    """Raised when reading or writing a name that is neither a database
    attribute nor a regular attribute of the record."""
    pass


class InvalidOperation(ActiveRecordError):
    """Raised when unsetting a database attribute of a record."""
    pass


class ConflictingStatementType(ActiveRecordError):
    """Raised when one query builder is asked for two statement types."""
    pass


class ArgumentError(ActiveRecordError, ValueError):
    """Raised when a builder call receives arguments of the wrong shape."""
    pass


class PersistenceFailure(ActiveRecordError):
    """Raised when an insert did not produce a positive identifier."""
    pass


class DatabaseError(ActiveRecordError):
    """Base class for errors reported by the storage backend."""
    pass


class ConnectionError(DatabaseError):
    """Connection could not be established or was lost."""
    pass


class QueryError(DatabaseError):
    """Statement was rejected by the server."""
    pass


class OperationalError(DatabaseError):
    pass


class DeadlockError(OperationalError):
    pass


class IntegrityError(DatabaseError):
    """Unique, foreign key or NOT NULL constraint violation."""
    pass
