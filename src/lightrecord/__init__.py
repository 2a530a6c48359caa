# src/lightrecord/__init__.py
"""
Lightweight active-record layer and fluent query builder for MySQL.

This package provides:
- ActiveRecord: row-backed entities with schema-derived attributes,
  type casting and save/delete/find operations
- QueryBuilder: composable SELECT/INSERT/UPDATE/DELETE statements compiled
  to parameterized SQL
- CastRegistry: cast adapters for int, float, boolean, json and datetime
  values, resolved by type tag
- MySQLBackend: database handle built on mysql-connector-python
"""

__version__ = "1.0.0"

from .backend import MySQLBackend, QueryResult, StorageBackend
from .casting import (
    CallableCast,
    CastAdapter,
    CastRegistry,
    default_registry,
)
from .config import MySQLConnectionConfig
from .dialect import MAX_LIMIT, NULL, MySQLDialect, SQLExpression
from .errors import (
    ActiveRecordError,
    ArgumentError,
    ConflictingStatementType,
    ConnectionError,
    DatabaseError,
    DeadlockError,
    IntegrityError,
    InvalidOperation,
    OperationalError,
    PersistenceFailure,
    QueryError,
    UnknownProperty,
)
from .query import Preparation, QueryBuilder
from .record import ActiveRecord, RecordState
from .schema import SchemaCache, schema_cache


__all__ = [
    # Records
    'ActiveRecord',
    'RecordState',

    # Query building
    'QueryBuilder',
    'Preparation',
    'SQLExpression',
    'NULL',
    'MAX_LIMIT',
    'MySQLDialect',

    # Casting
    'CastAdapter',
    'CallableCast',
    'CastRegistry',
    'default_registry',

    # Schema
    'SchemaCache',
    'schema_cache',

    # Backend
    'StorageBackend',
    'MySQLBackend',
    'QueryResult',
    'MySQLConnectionConfig',

    # Errors
    'ActiveRecordError',
    'UnknownProperty',
    'InvalidOperation',
    'ConflictingStatementType',
    'ArgumentError',
    'PersistenceFailure',
    'DatabaseError',
    'ConnectionError',
    'QueryError',
    'OperationalError',
    'DeadlockError',
    'IntegrityError',
]
