# tests/test_query_builder.py
import pytest

from lightrecord import (
    MAX_LIMIT,
    ArgumentError,
    ConflictingStatementType,
    QueryBuilder,
    SQLExpression,
)


@pytest.fixture
def query(backend):
    return QueryBuilder(backend, table="posts")


class TestSelect:
    def test_default_select(self, query):
        preparation = query.prepare()
        assert preparation.fragments == ["SELECT *", "FROM `posts`"]
        assert preparation.args == []
        assert preparation.sql == "SELECT *\nFROM `posts`"

    def test_select_expressions_are_embedded_as_written(self, query):
        query.select("id", "COUNT(*) AS total")
        assert query.prepare().fragments[0] == "SELECT id, COUNT(*) AS total"

    def test_select_without_table(self, backend):
        assert QueryBuilder(backend).select("NOW()").prepare().fragments == ["SELECT NOW()"]

    def test_type_is_select_only_once_requested(self, query):
        assert query.type is None
        query.select("id")
        assert query.type == "SELECT"

    def test_str_gives_placeholder_sql(self, query):
        query.where("id", 1)
        assert str(query) == "SELECT *\nFROM `posts`\nWHERE ( `id` = %s )"


class TestWhere:
    def test_two_arguments_compare_with_equals(self, query):
        preparation = query.where("status", "draft").prepare()
        assert preparation.fragments[-1] == "WHERE ( `status` = %s )"
        assert preparation.args == ["draft"]

    def test_explicit_operator_is_uppercased(self, query):
        preparation = query.where("title", "like", "%news%").prepare()
        assert preparation.fragments[-1] == "WHERE ( `title` LIKE %s )"
        assert preparation.args == ["%news%"]

    def test_and_where_joins_with_and(self, query):
        preparation = query.where("a", 1).and_where("b", ">", 5).prepare()
        assert preparation.fragments[-1] == "WHERE ( `a` = %s AND `b` > %s )"
        assert preparation.args == [1, 5]

    def test_or_where_starts_a_new_group(self, query):
        preparation = query.where("a", 1).or_where("b", 2).prepare()
        assert preparation.fragments[-1] == "WHERE ( `a` = %s ) OR ( `b` = %s )"
        assert preparation.args == [1, 2]

    def test_or_where_groups_keep_their_and_items(self, query):
        query.where("a", 1).and_where("b", 2).or_where("c", 3).and_where("d", 4)
        assert query.prepare().fragments[-1] == "WHERE ( `a` = %s AND `b` = %s ) OR ( `c` = %s AND `d` = %s )"

    def test_leading_or_where(self, query):
        assert query.or_where("a", 1).prepare().fragments[-1] == "WHERE ( `a` = %s )"

    def test_mapping_is_equivalent_to_chained_calls(self, backend):
        mapped = QueryBuilder(backend, table="posts").where({"a": 1, "b": (">", 5)})
        chained = QueryBuilder(backend, table="posts").where("a", 1).and_where("b", ">", 5)
        assert mapped.prepare() == chained.prepare()

    def test_mapping_pair_without_operator_is_a_list(self, query):
        preparation = query.where({"id": [3, 4]}).prepare()
        assert preparation.fragments[-1] == "WHERE ( `id` IN (%s, %s) )"
        assert preparation.args == [3, 4]

    def test_mapping_pair_of_values_is_a_list(self, backend):
        mapped = QueryBuilder(backend, table="posts").where({"status": ["draft", "published"]})
        chained = QueryBuilder(backend, table="posts").where("status", ["draft", "published"])

        preparation = mapped.prepare()
        assert preparation == chained.prepare()
        assert preparation.fragments[-1] == "WHERE ( `status` IN (%s, %s) )"
        assert preparation.args == ["draft", "published"]

    @pytest.mark.parametrize("operator,expected", [
        ("not like", "NOT LIKE"),
        ("<>", "<>"),
        ("is not", "IS NOT"),
        ("regexp", "REGEXP"),
    ])
    def test_mapping_pair_with_operator(self, query, operator, expected):
        preparation = query.where({"title": (operator, "x")}).prepare()
        assert preparation.fragments[-1] == f"WHERE ( `title` {expected} %s )"
        assert preparation.args == ["x"]

    def test_none_compares_with_is_null(self, query):
        preparation = query.where("deleted_at", None).prepare()
        assert preparation.fragments[-1] == "WHERE ( `deleted_at` IS NULL )"
        assert preparation.args == []

    def test_list_compares_with_in(self, query):
        preparation = query.where("id", [1, 2, 3]).prepare()
        assert preparation.fragments[-1] == "WHERE ( `id` IN (%s, %s, %s) )"
        assert preparation.args == [1, 2, 3]

    def test_explicit_not_in(self, query):
        preparation = query.where("id", "not in", [1]).prepare()
        assert preparation.fragments[-1] == "WHERE ( `id` NOT IN (%s) )"
        assert preparation.args == [1]

    def test_empty_list_compiles_to_null_list(self, query):
        preparation = query.where("id", []).prepare()
        assert preparation.fragments[-1] == "WHERE ( `id` IN (NULL) )"
        assert preparation.args == []

    def test_single_string_is_raw(self, query):
        assert query.where("active").prepare().fragments[-1] == "WHERE ( active )"

    def test_raw_list_carries_arguments(self, query):
        preparation = query.where(["views > %s", 10]).prepare()
        assert preparation.fragments[-1] == "WHERE ( views > %s )"
        assert preparation.args == [10]

    def test_raw_expression(self, query):
        preparation = query.where(SQLExpression("DATE(created_at) = %s", "2024-01-01")).prepare()
        assert preparation.fragments[-1] == "WHERE ( DATE(created_at) = %s )"
        assert preparation.args == ["2024-01-01"]

    def test_expression_value_is_embedded(self, query):
        preparation = query.where("created_at", "<", SQLExpression("NOW()")).prepare()
        assert preparation.fragments[-1] == "WHERE ( `created_at` < NOW() )"
        assert preparation.args == []

    def test_expression_column(self, query):
        preparation = query.where(SQLExpression("LOWER(`title`)"), "hello").prepare()
        assert preparation.fragments[-1] == "WHERE ( LOWER(`title`) = %s )"

    def test_dotted_column_is_quoted_per_segment(self, query):
        assert query.where("posts.id", 1).prepare().fragments[-1] == "WHERE ( `posts`.`id` = %s )"

    def test_invalid_single_argument(self, query):
        with pytest.raises(ArgumentError):
            query.where(5)

    def test_raw_list_must_start_with_sql(self, query):
        with pytest.raises(ArgumentError):
            query.where([1, 2])


class TestGroupingAndOrdering:
    def test_group_by_without_direction(self, query):
        assert query.group_by("status").prepare().fragments[-1] == "GROUP BY `status`"

    def test_group_by_with_direction(self, query):
        assert query.group_by("status", "DESC").prepare().fragments[-1] == "GROUP BY `status` DESC"

    def test_having(self, query):
        query.select("status", "COUNT(*) AS total").group_by("status")
        preparation = query.having(["COUNT(*) > %s", 2]).or_having("status", "draft").prepare()
        assert preparation.fragments[-2:] == [
            "GROUP BY `status`",
            "HAVING ( COUNT(*) > %s ) OR ( `status` = %s )",
        ]
        assert preparation.args == [2, "draft"]

    @pytest.mark.parametrize("order,expected", [
        ("ASC", "ASC"),
        ("asc", "ASC"),
        (True, "ASC"),
        ("DESC", "DESC"),
        ("desc", "DESC"),
        (False, "DESC"),
        ("sideways", "DESC"),
    ])
    def test_order_direction(self, query, order, expected):
        assert query.order_by("created_at", order).prepare().fragments[-1] == f"ORDER BY `created_at` {expected}"

    def test_order_by_defaults_to_ascending(self, query):
        assert query.order_by("id").prepare().fragments[-1] == "ORDER BY `id` ASC"

    def test_order_by_mapping(self, query):
        assert query.order_by({"a": "ASC", "b": "DESC"}).prepare().fragments[-1] == "ORDER BY `a` ASC, `b` DESC"

    def test_raw_order_by(self, query):
        preparation = query.order_by(["FIELD(`id`, %s, %s)", 3, 1]).prepare()
        assert preparation.fragments[-1] == "ORDER BY FIELD(`id`, %s, %s)"
        assert preparation.args == [3, 1]


class TestLimitAndOffset:
    def test_limit_and_offset(self, query):
        preparation = query.limit(10).offset(20).prepare()
        assert preparation.fragments[-2:] == ["LIMIT %d", "OFFSET %d"]
        assert preparation.args == [10, 20]

    def test_offset_alone_injects_max_limit(self, query):
        preparation = query.offset(5).prepare()
        assert preparation.fragments[-2:] == [f"LIMIT {MAX_LIMIT}", "OFFSET %d"]
        assert preparation.args == [5]

    def test_raw_limit(self, query):
        preparation = query.limit(["%d", 3]).prepare()
        assert preparation.fragments[-1] == "LIMIT %d"
        assert preparation.args == [3]

    def test_limit_is_substituted_as_integer(self, query):
        assert query.limit("10").sql() == "SELECT *\nFROM `posts`\nLIMIT 10"


class TestJoin:
    def test_inner_join(self, query):
        preparation = query.join("users", "author_id", "id").prepare()
        assert preparation.fragments[-1] == "INNER JOIN `users` ON `posts`.`author_id` = `users`.`id`"

    def test_join_type(self, query):
        fragment = query.join("users", "author_id", "id", "left").prepare().fragments[-1]
        assert fragment.startswith("LEFT JOIN `users`")

    def test_join_requires_table(self, backend):
        query = QueryBuilder(backend).join("users", "author_id", "id")
        with pytest.raises(ArgumentError):
            query.prepare()

    def test_fragment_order(self, query):
        query.select("status")
        query.join("users", "author_id", "id")
        query.where("a", 1)
        query.group_by("status")
        query.having("status", "draft")
        query.order_by("status")
        query.limit(5)
        query.offset(10)

        keywords = [fragment.split(" ")[0] for fragment in query.prepare().fragments]
        assert keywords == ["SELECT", "FROM", "INNER", "WHERE", "GROUP", "HAVING", "ORDER", "LIMIT", "OFFSET"]


class TestWriteStatements:
    def test_insert(self, query):
        preparation = query.insert({"title": "a", "status": None}).prepare()
        assert preparation.fragments == ["INSERT INTO `posts`", "(`title`, `status`) VALUES (%s, NULL)"]
        assert preparation.args == ["a"]

    def test_insert_several_rows(self, query):
        preparation = query.insert([{"title": "a", "status": "x"}, {"title": "b"}]).prepare()
        assert preparation.fragments[-1] == "(`title`, `status`) VALUES (%s, %s), (%s, NULL)"
        assert preparation.args == ["a", "x", "b"]

    def test_insert_columns_are_the_union_of_row_keys(self, query):
        preparation = query.insert([{"title": "a"}, {"title": "b", "status": "x"}]).prepare()
        assert preparation.fragments[-1] == "(`title`, `status`) VALUES (%s, NULL), (%s, %s)"
        assert preparation.args == ["a", "b", "x"]

    def test_insert_without_rows(self, query):
        with pytest.raises(ArgumentError):
            query.insert([])

    def test_insert_rejects_non_mappings(self, query):
        with pytest.raises(ArgumentError):
            query.insert(["a", "b"])

    def test_update_with_mapping(self, query):
        preparation = query.update({"title": "b", "status": None}).where("id", 1).prepare()
        assert preparation.fragments == [
            "UPDATE `posts`",
            "SET `title` = %s, `status` = NULL",
            "WHERE ( `id` = %s )",
        ]
        assert preparation.args == ["b", 1]

    def test_update_with_pair(self, query):
        preparation = query.update("title", "x").prepare()
        assert preparation.fragments == ["UPDATE `posts`", "SET `title` = %s"]
        assert preparation.args == ["x"]

    def test_set_expression(self, query):
        preparation = query.set("views", SQLExpression("`views` + %s", 1)).prepare()
        assert preparation.fragments[-1] == "SET `views` = `views` + %s"
        assert preparation.args == [1]

    def test_set_with_single_non_mapping_argument(self, query):
        with pytest.raises(ArgumentError):
            query.set("title")

    def test_delete(self, query):
        preparation = query.delete().where("id", 3).prepare()
        assert preparation.fragments == ["DELETE FROM `posts`", "WHERE ( `id` = %s )"]
        assert preparation.args == [3]

    def test_write_statement_requires_table(self, backend):
        with pytest.raises(ArgumentError):
            QueryBuilder(backend).delete().prepare()

    @pytest.mark.parametrize("first,second", [
        (lambda q: q.select("id"), lambda q: q.delete()),
        (lambda q: q.insert({"a": 1}), lambda q: q.set("a", 1)),
        (lambda q: q.update(), lambda q: q.insert({"a": 1})),
        (lambda q: q.delete(), lambda q: q.select("id")),
    ])
    def test_conflicting_statement_types(self, query, first, second):
        first(query)
        with pytest.raises(ConflictingStatementType):
            second(query)

    def test_same_type_may_be_requested_again(self, query):
        query.update("a", 1).set("b", 2)
        assert query.prepare().fragments[-1] == "SET `a` = %s, `b` = %s"


class TestSql:
    def test_values_are_escaped(self, query):
        sql = query.where("title", "O'Neil").sql()
        assert sql == "SELECT *\nFROM `posts`\nWHERE ( `title` = 'O\\'Neil' )"

    def test_sql_without_arguments(self, query):
        assert query.where("active").sql() == "SELECT *\nFROM `posts`\nWHERE ( active )"

    def test_percent_in_raw_sql_without_arguments_is_kept(self, query):
        assert query.where("title LIKE 'a%'").sql().endswith("WHERE ( title LIKE 'a%' )")


class TestExecution:
    def test_execute_returns_affected_rows(self, backend, query):
        assert query.delete().where("id", 1).execute() == 1
        assert backend.last_statement == "DELETE FROM `posts`\nWHERE ( `id` = 1 )"

    def test_results_apply_casts(self, backend):
        backend.queue([{"id": "1", "title": "a"}, {"id": "2", "title": "b"}])
        rows = QueryBuilder(backend, table="posts", casts={"id": "int"}).results()
        assert rows == [{"id": 1, "title": "a"}, {"id": 2, "title": "b"}]

    def test_get_without_model_returns_rows(self, backend, query):
        backend.queue([{"id": 1}])
        assert query.get() == [{"id": 1}]

    def test_one_without_rows(self, query):
        assert query.one() is None

    def test_one_returns_first_row(self, backend):
        backend.queue([{"published": "1"}, {"published": "0"}])
        assert QueryBuilder(backend, table="posts", casts={"published": "bool"}).one() == {"published": True}

    def test_column(self, backend):
        backend.queue([{"id": "1"}, {"id": "2"}])
        values = QueryBuilder(backend, table="posts", casts={"id": "int"}).select("id").column()
        assert values == [1, 2]
        assert backend.last_statement == "SELECT id\nFROM `posts`"

    def test_column_uses_alias_for_casting(self, backend):
        backend.queue([{"n": "7"}])
        query = QueryBuilder(backend, table="posts", casts={"n": "int"}).select("`posts`.`id` AS n")
        assert query.column() == [7]

    def test_var(self, backend):
        backend.queue([{"COUNT(*)": 3}])
        assert QueryBuilder(backend, table="posts").select("COUNT(*)").var() == 3

    def test_var_without_rows(self, backend):
        assert QueryBuilder(backend, table="posts").select("id").var() is None

    def test_var_with_raw_sql(self, backend, query):
        backend.queue([{"1": 1}])
        assert query.var("SELECT 1") == 1
        assert backend.last_statement == "SELECT 1"

    @pytest.mark.parametrize("columns", [(), ("id", "title")])
    def test_single_value_fetches_need_one_select_expression(self, query, columns):
        if columns:
            query.select(*columns)
        with pytest.raises(ArgumentError):
            query.column()
        with pytest.raises(ArgumentError):
            query.var()
