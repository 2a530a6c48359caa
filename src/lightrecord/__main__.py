# src/lightrecord/__main__.py
import argparse
import datetime
import decimal
import json
import logging
import os
import sys

from .backend import MySQLBackend
from .config import MySQLConnectionConfig
from .errors import ConnectionError, QueryError

# Configure basic logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Execute SQL queries or inspect tables against a MySQL database.",
        formatter_class=argparse.RawTextHelpFormatter
    )

    # Connection parameters with defaults from environment variables
    parser.add_argument(
        '--host',
        default=os.getenv('MYSQL_HOST', 'localhost'),
        help='Database host (default: MYSQL_HOST environment variable or localhost)'
    )
    parser.add_argument(
        '--port',
        type=int,
        default=int(os.getenv('MYSQL_PORT', 3306)),
        help='Database port (default: MYSQL_PORT environment variable or 3306)'
    )
    parser.add_argument(
        '--database',
        default=os.getenv('MYSQL_DATABASE'),
        help='Database name (optional, default: MYSQL_DATABASE environment variable)'
    )
    parser.add_argument(
        '--user',
        default=os.getenv('MYSQL_USER', 'root'),
        help='Database user (default: MYSQL_USER environment variable or root)'
    )
    parser.add_argument(
        '--password',
        default=os.getenv('MYSQL_PASSWORD', ''),
        help='Database password (default: MYSQL_PASSWORD environment variable or empty string)'
    )
    parser.add_argument(
        '--charset',
        default=os.getenv('MYSQL_CHARSET', 'utf8mb4'),
        help='Connection charset (default: MYSQL_CHARSET environment variable or utf8mb4)'
    )
    parser.add_argument(
        '--table-prefix',
        default=os.getenv('MYSQL_TABLE_PREFIX', ''),
        help='Prefix applied to table names (default: MYSQL_TABLE_PREFIX environment variable)'
    )

    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument(
        'query',
        nargs='?',
        help='SQL query to execute. Must be enclosed in quotes.'
    )
    group.add_argument(
        '--describe',
        metavar='TABLE',
        help='List the columns of TABLE (the table prefix is applied)'
    )

    parser.add_argument('--log-level', default='INFO', help='Set logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)')

    return parser.parse_args(argv)


def json_serializer(obj):
    """Handles serialization of types not supported by default JSON encoder."""
    if isinstance(obj, (datetime.datetime, datetime.date)):
        return obj.isoformat()
    if isinstance(obj, datetime.timedelta):
        return str(obj)
    if isinstance(obj, decimal.Decimal):
        return str(obj)
    if isinstance(obj, (bytes, bytearray)):
        return obj.decode('utf-8', errors='replace')
    raise TypeError(f"Object of type {obj.__class__.__name__} is not JSON serializable")


def handle_result(result):
    logger.info(f"Query executed successfully. Affected rows: {result.affected_rows}, Duration: {result.duration:.4f}s")
    if result.data:
        logger.info("Results:")
        for row in result.data:
            print(json.dumps(row, indent=2, ensure_ascii=False, default=json_serializer))
    else:
        logger.info("No data returned.")


def run(args, backend):
    try:
        if args.describe:
            table = f"{backend.table_prefix}{args.describe}"
            columns = backend.list_columns(backend.database, table)
            if not columns:
                logger.warning(f"Table '{table}' has no columns or does not exist")
            for column in columns:
                print(column)
        else:
            logger.info(f"Executing query: {args.query}")
            handle_result(backend.execute(args.query))
    except ConnectionError as e:
        logger.error(f"Database connection error: {e}")
        return 1
    except QueryError as e:
        logger.error(f"Database query error: {e}")
        return 1
    except Exception as e:
        logger.error(f"An unexpected error occurred: {e}", exc_info=True)
        return 1
    finally:
        backend.disconnect()
    return 0


def main(argv=None):
    args = parse_args(argv)

    # Set logging level
    numeric_level = getattr(logging, args.log_level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f'Invalid log level: {args.log_level}')
    logging.getLogger().setLevel(numeric_level)

    config = MySQLConnectionConfig(
        host=args.host,
        port=args.port,
        database=args.database,
        username=args.user,
        password=args.password,
        charset=args.charset,
        table_prefix=args.table_prefix,
        log_level=numeric_level
    )

    backend = MySQLBackend(connection_config=config)
    sys.exit(run(args, backend))


if __name__ == "__main__":
    main()
