# src/lightrecord/config.py
"""MySQL connection configuration

This module provides the connection configuration consumed by
:class:`lightrecord.backend.MySQLBackend`.
"""
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class MySQLConnectionConfig:
    """MySQL connection configuration.

    Besides the driver parameters this carries the table prefix applied to
    every record table name and the query logging switches of the backend.
    """

    host: str = "localhost"
    port: int = 3306
    database: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None

    charset: str = "utf8mb4"
    collation: Optional[str] = None
    # Session time zone, e.g. '+00:00'
    timezone: Optional[str] = None

    autocommit: bool = True
    init_command: Optional[str] = "SET sql_mode='STRICT_TRANS_TABLES'"
    connect_timeout: Optional[int] = 10
    ssl_disabled: Optional[bool] = None

    table_prefix: str = ""
    log_queries: bool = False
    log_level: int = logging.INFO

    # Extra keyword arguments passed to mysql.connector.connect as-is
    options: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to ``mysql.connector.connect`` keyword arguments."""
        params = {
            'host': self.host,
            'port': self.port,
            'database': self.database,
            'user': self.username,
            'password': self.password,
            'charset': self.charset,
            'collation': self.collation,
            'autocommit': self.autocommit,
            'init_command': self.init_command,
            'connection_timeout': self.connect_timeout,
            'ssl_disabled': self.ssl_disabled,
        }

        # Only include non-None values
        config_dict = {key: value for key, value in params.items() if value is not None}
        config_dict.update(self.options)
        return config_dict

    @classmethod
    def from_env(cls, prefix: str = "MYSQL_", **overrides) -> "MySQLConnectionConfig":
        """Build a configuration from ``MYSQL_*`` environment variables."""
        env = os.environ
        params: Dict[str, Any] = {
            'host': env.get(f"{prefix}HOST", "localhost"),
            'port': int(env.get(f"{prefix}PORT", 3306)),
            'database': env.get(f"{prefix}DATABASE"),
            'username': env.get(f"{prefix}USER"),
            'password': env.get(f"{prefix}PASSWORD"),
            'charset': env.get(f"{prefix}CHARSET", "utf8mb4"),
            'table_prefix': env.get(f"{prefix}TABLE_PREFIX", ""),
        }
        if env.get(f"{prefix}TIMEZONE"):
            params['timezone'] = env[f"{prefix}TIMEZONE"]
        params.update(overrides)
        return cls(**params)
