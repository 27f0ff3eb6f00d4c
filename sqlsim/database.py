"""
Public entry points: run SQL text against a Database snapshot
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlsim.errors import ParseError, SQLSimError, TableNotFoundError
from sqlsim.parser import (
    CreateTableQuery, ParsedQuery, SQLParser, split_statements, strip_comments,
)
from sqlsim.query_executor import QueryExecutor
from sqlsim.types import Database, QueryResult, error_result, message_result

logger = logging.getLogger(__name__)

_executor = QueryExecutor()


def execute(sql: str, database: Optional[Database] = None,
            executor: Optional[QueryExecutor] = None) -> Tuple[Database, QueryResult]:
    """Run one statement (or one CREATE TABLE batch) and return the next snapshot.

    Engine errors propagate; the snapshot passed in is never modified.
    """
    database = Database.empty() if database is None else database
    executor = executor or _executor

    text = strip_comments(sql).strip()
    if not text:
        return database, message_result('Empty SQL')

    if SQLParser.get_query_type(text) == 'CREATE_TABLE':
        queries = [SQLParser.parse(statement) for statement in split_statements(text)]
        for query in queries:
            if not isinstance(query, CreateTableQuery):
                raise ParseError("Only one statement can run at a time (CREATE TABLE batches excepted)")
        return executor.execute_create_tables(queries, database)

    return executor.execute(SQLParser.parse(text), database)


def run_sql(sql: str, database: Database, set_db: Callable[[Database], Any]) -> QueryResult:
    """Execute and publish the next snapshot through set_db when it changed"""
    new_db, result = execute(sql, database)
    if new_db is not database:
        set_db(new_db)
    return result


class Session:
    """A named database whose snapshot is swapped atomically after each statement"""

    def __init__(self, name: str, database: Optional[Database] = None):
        self.name = name
        self.database = Database.empty() if database is None else database
        self.statements = 0
        self._lock = threading.Lock()

    def run(self, sql: str) -> QueryResult:
        """Run SQL and publish the next snapshot; engine errors propagate"""
        with self._lock:
            self.statements += 1
            return run_sql(sql, self.database, self._publish)

    def run_query(self, query: ParsedQuery) -> QueryResult:
        """Run an already parsed statement and publish the next snapshot"""
        with self._lock:
            self.statements += 1
            new_db, result = _executor.execute(query, self.database)
            if new_db is not self.database:
                self._publish(new_db)
            return result

    def execute(self, sql: str) -> Dict[str, Any]:
        """Run SQL and return the result as a dict; engine errors become error rows"""
        try:
            result = self.run(sql)
        except SQLSimError as e:
            logger.warning("Rejected statement in %s: %s", self.name, e)
            result = error_result(str(e))
        return result.to_dict()

    def execute_batch(self, statements: List[str]) -> List[Dict[str, Any]]:
        return [self.execute(sql) for sql in statements]

    def _publish(self, database: Database):
        self.database = database

    # ---------- read helpers for the API ----------

    def table_names(self) -> List[str]:
        return self.database.table_names()

    def schema(self, table: str) -> Dict[str, Any]:
        schema = self.database.schemas.get(table)
        if schema is None:
            raise TableNotFoundError(f"Table '{table}' does not exist")
        return schema.to_dict()

    def rows(self, table: str) -> List[Dict[str, Any]]:
        if table not in self.database.rows:
            raise TableNotFoundError(f"Table '{table}' does not exist")
        return [dict(row) for row in self.database.rows[table]]

    def info(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'active': self.database.active,
            'tables': self.table_names(),
            'statements': self.statements,
        }
