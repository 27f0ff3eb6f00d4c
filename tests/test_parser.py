"""
Tests for the statement parser and text helpers
"""

import pytest

from sqlsim.errors import ParseError, UnsupportedFeatureError
from sqlsim.expressions import Arithmetic, Comparison
from sqlsim.parser import (
    AggregateItem, ColumnItem, CreateTableQuery, CreateViewQuery, DropTableQuery,
    InsertQuery, OrderItem, SelectQuery, SQLParser, StarItem, UpdateQuery,
    split_statements, strip_comments,
)
from sqlsim.types import ReferentialAction


# ==================== text helpers ====================

def test_strip_line_comments():
    assert strip_comments("SELECT * FROM t -- note\nWHERE a = 1") == "SELECT * FROM t \nWHERE a = 1"
    assert strip_comments("SELECT * FROM t # note") == "SELECT * FROM t "
    assert strip_comments("SELECT * FROM t // note") == "SELECT * FROM t "
    assert strip_comments("SELECT * FROM t －－ note") == "SELECT * FROM t "


def test_strip_block_comments():
    stripped = strip_comments("SELECT /* all\ncolumns */ * FROM t")
    assert '/*' not in stripped
    assert stripped.split() == ['SELECT', '*', 'FROM', 't']


def test_comment_markers_inside_quotes_are_kept():
    assert strip_comments("SELECT '--x' FROM t") == "SELECT '--x' FROM t"


def test_split_statements_respects_quotes():
    parts = split_statements("INSERT INTO t VALUES ('a;b'); SELECT * FROM t;")
    assert parts == ["INSERT INTO t VALUES ('a;b')", "SELECT * FROM t"]


def test_get_query_type():
    assert SQLParser.get_query_type("create table x (a INT)") == 'CREATE_TABLE'
    assert SQLParser.get_query_type("CREATE VIEW v AS SELECT * FROM t") == 'CREATE_VIEW'
    assert SQLParser.get_query_type("drop table x") == 'DROP_TABLE'
    assert SQLParser.get_query_type("  select 1") == 'SELECT'
    assert SQLParser.get_query_type("ALTER TABLE t") == 'UNKNOWN'


# ==================== CREATE / DROP ====================

def test_create_table_with_table_constraints():
    query = SQLParser.parse("""
        CREATE TABLE IF NOT EXISTS orders (
            order_id INT,
            customer_id INT,
            amount DECIMAL(10, 2),
            PRIMARY KEY (order_id),
            UNIQUE (customer_id, amount),
            CONSTRAINT fk_customer FOREIGN KEY (customer_id) REFERENCES customers(id)
                ON DELETE CASCADE ON UPDATE SET NULL
        );
    """)
    assert isinstance(query, CreateTableQuery)
    assert query.if_not_exists
    assert [c.name for c in query.columns] == ['order_id', 'customer_id', 'amount']
    assert query.columns[2].type_name == 'DECIMAL'
    assert query.columns[2].params == [10, 2]
    assert query.primary_key == ['order_id']
    assert query.unique_keys == [['customer_id', 'amount']]

    fk = query.foreign_keys[0]
    assert fk.name == 'fk_customer'
    assert fk.columns == ['customer_id']
    assert fk.ref_table == 'customers'
    assert fk.ref_columns == ['id']
    assert fk.on_delete == ReferentialAction.CASCADE
    assert fk.on_update == ReferentialAction.SET_NULL


def test_create_table_column_flags_and_inline_reference():
    query = SQLParser.parse(
        "CREATE TABLE c (id INT PRIMARY KEY, code VARCHAR(5) UNIQUE NOT NULL, "
        "p INT REFERENCES parent(id) ON DELETE NO ACTION)")
    id_col, code, p = query.columns
    assert id_col.primary
    assert code.unique and code.not_null
    assert code.params == [5]
    assert query.foreign_keys[0].columns == ['p']
    assert query.foreign_keys[0].on_delete == ReferentialAction.RESTRICT


def test_create_table_errors():
    with pytest.raises(ParseError, match="needs a type"):
        SQLParser.parse("CREATE TABLE t (a)")
    with pytest.raises(ParseError, match="more than one PRIMARY KEY"):
        SQLParser.parse("CREATE TABLE t (a INT, PRIMARY KEY (a), PRIMARY KEY (a))")
    with pytest.raises(ParseError, match="Unsupported column syntax"):
        SQLParser.parse("CREATE TABLE t (a INT DEFAULT 1)")


def test_create_view():
    query = SQLParser.parse("CREATE VIEW rich AS SELECT name FROM emp WHERE salary > 100")
    assert isinstance(query, CreateViewQuery)
    assert query.view_name == 'rich'
    assert isinstance(query.select, SelectQuery)
    assert query.select.table_name == 'emp'


def test_drop_table():
    query = SQLParser.parse("DROP TABLE IF EXISTS old")
    assert isinstance(query, DropTableQuery)
    assert query.table_name == 'old'
    assert query.if_exists


# ==================== INSERT / UPDATE ====================

def test_insert_multiple_tuples():
    query = SQLParser.parse("INSERT INTO t (a, b) VALUES (1, 'x'), (-2.5, NULL), (TRUE, word)")
    assert isinstance(query, InsertQuery)
    assert query.columns == ['a', 'b']
    assert query.rows == [[1, 'x'], [-2.5, None], [True, 'word']]


def test_insert_without_column_list():
    query = SQLParser.parse("insert into t values (1)")
    assert query.columns is None
    assert query.rows == [[1]]


def test_insert_select_is_unsupported():
    with pytest.raises(UnsupportedFeatureError):
        SQLParser.parse("INSERT INTO t SELECT * FROM u")


def test_update_assignments():
    query = SQLParser.parse("UPDATE t SET a = a + 1, t.b = 'z' WHERE id = 3")
    assert isinstance(query, UpdateQuery)
    assert [a.column for a in query.assignments] == ['a', 'b']
    assert isinstance(query.assignments[0].expr, Arithmetic)
    assert isinstance(query.where, Comparison)


def test_bad_set_items():
    with pytest.raises(ParseError, match="Bad SET item"):
        SQLParser.parse("UPDATE t SET a = = 1")
    with pytest.raises(ParseError, match="Bad SET item"):
        SQLParser.parse("UPDATE t SET a = 1 2")


# ==================== SELECT ====================

def test_select_all_clauses():
    query = SQLParser.parse(
        "SELECT DISTINCT dept, COUNT(*) AS cnt FROM emp e WHERE salary > 10 "
        "GROUP BY dept HAVING cnt > 1 ORDER BY cnt DESC, dept LIMIT 5 OFFSET 2")
    assert query.distinct
    assert query.items == [ColumnItem('dept', 'dept'), AggregateItem('COUNT', '*', 'cnt')]
    assert query.table_name == 'emp'
    assert query.alias == 'e'
    assert query.group_by == ['dept']
    assert query.having is not None
    assert query.order_by == [OrderItem('cnt', True), OrderItem('dept', False)]
    assert query.limit == 5
    assert query.offset == 2


def test_select_star_forms_and_default_aliases():
    query = SQLParser.parse("SELECT *, e.*, e.name, SUM(salary) FROM emp AS e")
    assert query.items[0] == StarItem()
    assert query.items[1] == StarItem(table='e')
    assert query.items[2] == ColumnItem('e.name', 'e.name')
    assert query.items[3] == AggregateItem('SUM', 'salary', 'sum')
    assert query.alias == 'e'


def test_limit_forms():
    assert SQLParser.parse("SELECT * FROM t LIMIT 3").limit == 3
    query = SQLParser.parse("SELECT * FROM t LIMIT 2, 3")
    assert (query.offset, query.limit) == (2, 3)
    query = SQLParser.parse("SELECT * FROM t LIMIT 3 OFFSET 2")
    assert (query.offset, query.limit) == (2, 3)
    query = SQLParser.parse("SELECT * FROM t OFFSET 4")
    assert (query.offset, query.limit) == (4, None)


def test_join_is_rejected():
    with pytest.raises(UnsupportedFeatureError, match="JOIN"):
        SQLParser.parse("SELECT * FROM a JOIN b ON a.id = b.a_id")
    with pytest.raises(UnsupportedFeatureError, match="single-table"):
        SQLParser.parse("SELECT * FROM a, b")


def test_unsupported_statements_list_supported_set():
    with pytest.raises(UnsupportedFeatureError, match="Supported statements"):
        SQLParser.parse("ALTER TABLE t ADD x INT")
    with pytest.raises(UnsupportedFeatureError, match="Transactions"):
        SQLParser.parse("BEGIN")
    with pytest.raises(UnsupportedFeatureError):
        SQLParser.parse("CREATE INDEX i ON t (a)")


def test_one_statement_at_a_time():
    with pytest.raises(ParseError, match="Only one statement"):
        SQLParser.parse("SELECT * FROM t; SELECT * FROM u")


def test_malformed_select():
    with pytest.raises(ParseError, match="expected FROM"):
        SQLParser.parse("SELECT a b c")
