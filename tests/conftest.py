# tests/conftest.py
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# Add src to Python path so the package can be imported without installing it
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from lightrecord import ActiveRecord, QueryResult, StorageBackend, schema_cache  # noqa: E402

POST_COLUMNS = ["id", "title", "status", "published", "meta", "created_at", "updated_at"]


class FakeBackend(StorageBackend):
    """In-memory backend that records statements instead of running them.

    SELECT statements pop the next queued result set (an empty result when
    none is queued); every INSERT hands out the next identifier.
    """

    def __init__(self, tables: Optional[Dict[str, List[str]]] = None, table_prefix: str = "wp_"):
        super().__init__(table_prefix=table_prefix, database="test_db")
        self.tables = tables if tables is not None else {}
        self.statements: List[str] = []
        self.results: List[QueryResult] = []
        self.next_insert_id = 1
        self.fail_with: Optional[Exception] = None
        self.list_columns_calls = 0

    def queue(self, *row_sets: List[Dict[str, Any]]) -> None:
        for rows in row_sets:
            self.results.append(QueryResult(data=list(rows), affected_rows=len(rows)))

    def execute(self, sql: str) -> QueryResult:
        self.statements.append(sql)
        if self.fail_with is not None:
            raise self.fail_with

        if sql.startswith("INSERT"):
            self._last_insert_id = self.next_insert_id
            self.next_insert_id += 1
            return QueryResult(affected_rows=1, last_insert_id=self._last_insert_id)
        if sql.startswith("SELECT"):
            if self.results:
                return self.results.pop(0)
            return QueryResult(data=[])
        return QueryResult(affected_rows=1)

    def list_columns(self, schema: Optional[str], table: str) -> List[str]:
        self.list_columns_calls += 1
        return list(self.tables.get(table, []))

    @property
    def last_statement(self) -> str:
        return self.statements[-1]


@pytest.fixture
def backend():
    return FakeBackend({"wp_posts": list(POST_COLUMNS)})


@pytest.fixture
def post_class(backend):
    class Post(ActiveRecord):
        __table__ = "posts"
        __casts__ = {
            "published": "boolean",
            "meta": "json",
        }

    Post.configure(backend)
    yield Post
    schema_cache.refresh(Post)
