# tests/test_mysql_integration.py
"""Round trips against a live MySQL server.

Skipped unless a server is configured (see ``config_manager.load_config``).
"""
import pytest

from config_manager import get_connection_config
from lightrecord import ActiveRecord, ConnectionError, IntegrityError, MySQLBackend, schema_cache

TABLE_SQL = """
CREATE TABLE `{table}` (
    `id` INT UNSIGNED NOT NULL AUTO_INCREMENT,
    `slug` VARCHAR(64) NOT NULL,
    `title` VARCHAR(255) NULL,
    `published` TINYINT(1) NOT NULL DEFAULT 0,
    `meta` JSON NULL,
    `created_at` DATETIME NULL,
    `updated_at` DATETIME NULL,
    PRIMARY KEY (`id`),
    UNIQUE KEY `slug` (`slug`)
) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4
"""


@pytest.fixture(scope="module")
def mysql_backend():
    config = get_connection_config()
    if config is None:
        pytest.skip("No MySQL server configured")

    backend = MySQLBackend(connection_config=config)
    try:
        backend.connect()
    except ConnectionError as e:
        pytest.skip(f"MySQL server not reachable: {e}")

    yield backend
    backend.disconnect()


@pytest.fixture
def article_class(mysql_backend):
    table = f"{mysql_backend.table_prefix}articles"
    mysql_backend.execute(f"DROP TABLE IF EXISTS `{table}`")
    mysql_backend.execute(TABLE_SQL.format(table=table))

    class Article(ActiveRecord):
        __table__ = "articles"
        __casts__ = {
            "published": "boolean",
            "meta": "json",
        }

    Article.configure(mysql_backend)
    yield Article

    schema_cache.refresh(Article)
    mysql_backend.execute(f"DROP TABLE IF EXISTS `{table}`")


def test_columns_follow_table_definition(article_class):
    assert article_class().attributes.keys() == {
        "id", "slug", "title", "published", "meta", "created_at", "updated_at",
    }


def test_create_and_find(article_class):
    article = article_class.create(slug="hello", title="Hello", published=True, meta='{"tags": ["a"]}')
    assert article is not None
    assert article.id > 0

    found = article_class.find_one(article.id)
    assert found.title == "Hello"
    assert found.published is True
    assert found.meta == {"tags": ["a"]}
    assert found.created_at == found.updated_at
    assert found.created_at is not None


def test_update_and_delete(article_class):
    article = article_class.create(slug="update-me", title="Old")
    article.title = "New"
    assert article.save()
    assert article_class.find_one(article.id).title == "New"

    record_id = article.id
    article.delete()
    assert article_class.find_one(record_id) is None


def test_query_builder(article_class):
    for index in range(5):
        article_class.create(slug=f"post-{index}", title=f"Post {index}", published=index % 2)

    query = article_class.query().where("published", True).order_by("slug", "DESC")
    assert [article.slug for article in query.get()] == ["post-3", "post-1"]

    assert article_class.query().select("COUNT(*)").var() == 5
    assert article_class.query().select("id").order_by("id").offset(3).column() == [4, 5]
    assert article_class.query().select("slug").where("id", [1, 2]).order_by("id").column() == ["post-0", "post-1"]


def test_duplicate_key_fails_save(article_class):
    article_class.create(slug="dup")
    duplicate = article_class(slug="dup")
    assert duplicate.save() is False
    assert isinstance(duplicate.last_error, IntegrityError)
