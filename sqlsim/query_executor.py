"""
Query Executor for sqlsim
Handles execution of parsed queries against a Database snapshot
"""

import logging
from typing import List, Optional, Tuple

from sqlsim.constraints import IntegrityEngine
from sqlsim.ddl import build_schema, build_view_schema
from sqlsim.errors import (
    ReferentialActionError, SchemaError, TableNotFoundError, UnsupportedFeatureError,
)
from sqlsim.expressions import evaluate, evaluate_set
from sqlsim.parser import (
    CreateTableQuery, CreateViewQuery, DeleteQuery, DropTableQuery, InsertQuery,
    ParsedQuery, SelectQuery, UpdateQuery,
)
from sqlsim.select_executor import SelectExecutor
from sqlsim.types import (
    Database, PrimaryKeySource, QueryResult, TableSchema, message_result,
)
from sqlsim.values import cast_row_types

logger = logging.getLogger(__name__)

Outcome = Tuple[Database, QueryResult]


class QueryExecutor:
    """Executes parsed queries; every call returns the next snapshot and a result"""

    def __init__(self, depth_limit: Optional[int] = None):
        self.depth_limit = depth_limit
        self.selector = SelectExecutor()

    def execute(self, parsed_query: ParsedQuery, database: Database) -> Outcome:
        """Execute a parsed query"""
        logger.debug("Executing %s", parsed_query.query_type)

        if isinstance(parsed_query, CreateTableQuery):
            return self.execute_create_tables([parsed_query], database)
        elif isinstance(parsed_query, CreateViewQuery):
            return self._execute_create_view(parsed_query, database)
        elif isinstance(parsed_query, DropTableQuery):
            return self._execute_drop_table(parsed_query, database)
        elif isinstance(parsed_query, InsertQuery):
            return self._execute_insert(parsed_query, database)
        elif isinstance(parsed_query, UpdateQuery):
            return self._execute_update(parsed_query, database)
        elif isinstance(parsed_query, DeleteQuery):
            return self._execute_delete(parsed_query, database)
        elif isinstance(parsed_query, SelectQuery):
            return database, self.selector.execute(parsed_query, database)
        raise UnsupportedFeatureError(f"Unsupported query type: {type(parsed_query).__name__}")

    def _require_table(self, database: Database, name: str) -> TableSchema:
        schema = database.schemas.get(name)
        if schema is None:
            raise TableNotFoundError(f"Table '{name}' does not exist")
        return schema

    def _engine(self, database: Database) -> IntegrityEngine:
        return IntegrityEngine(database, self.depth_limit)

    # ---------- DDL ----------

    def execute_create_tables(self, queries: List[CreateTableQuery], database: Database) -> Outcome:
        """Validate every CREATE TABLE of a batch, then commit them together"""
        known = dict(database.schemas)
        created: List[TableSchema] = []

        for query in queries:
            if query.table_name in known:
                if query.if_not_exists and query.table_name in database.schemas:
                    logger.debug("Table %s exists, skipping", query.table_name)
                    continue
                raise SchemaError(f"Table '{query.table_name}' already exists")
            schema = build_schema(query, known)
            known[schema.name] = schema
            created.append(schema)

        if not created:
            return database, message_result(f"Created 0 table(s). Active: {database.active or '-'}")

        schemas = dict(database.schemas)
        rows = dict(database.rows)
        for schema in created:
            schemas[schema.name] = schema
            rows[schema.name] = []

        active = created[-1].name
        new_db = Database(active=active, schemas=schemas, rows=rows)
        new_db.check_invariants()

        logger.info("Created table(s) %s", ', '.join(s.name for s in created))
        return new_db, message_result(f"Created {len(created)} table(s). Active: {active}")

    def _execute_create_view(self, query: CreateViewQuery, database: Database) -> Outcome:
        existing = database.schemas.get(query.view_name)
        if existing is not None and not existing.is_view:
            raise SchemaError(f"Cannot create view '{query.view_name}': a table with that name exists")

        result = self.selector.execute(query.select, database)
        schema = build_view_schema(query.view_name, result)

        schemas = dict(database.schemas)
        rows = dict(database.rows)
        schemas[schema.name] = schema
        rows[schema.name] = [dict(row) for row in result.rows]

        new_db = Database(active=schema.name, schemas=schemas, rows=rows)
        new_db.check_invariants()

        logger.info("Created view %s with %d row(s)", schema.name, len(result.rows))
        return new_db, message_result(
            f"Created view {schema.name} (materialized) with {len(result.rows)} row(s).")

    def _execute_drop_table(self, query: DropTableQuery, database: Database) -> Outcome:
        name = query.table_name
        if name not in database.schemas:
            if query.if_exists:
                return database, message_result(f"Table {name} does not exist; nothing dropped.")
            raise TableNotFoundError(f"Table '{name}' does not exist")

        blockers = [fk.describe(child) for child, fk in database.referencing(name) if child != name]
        if blockers:
            raise ReferentialActionError(
                f"Cannot drop table '{name}': referenced by {'; '.join(blockers)}")

        schemas = {k: v for k, v in database.schemas.items() if k != name}
        rows = {k: v for k, v in database.rows.items() if k != name}
        active = database.active
        if active == name or active not in schemas:
            active = list(schemas)[-1] if schemas else ''

        new_db = Database(active=active, schemas=schemas, rows=rows)
        new_db.check_invariants()

        logger.info("Dropped table %s", name)
        return new_db, message_result(f"Dropped table {name}.")

    # ---------- INSERT / UPDATE / DELETE ----------

    def _execute_insert(self, query: InsertQuery, database: Database) -> Outcome:
        schema = self._require_table(database, query.table_name)

        if query.columns is not None:
            for name in query.columns:
                schema.require_column(name)
            if len(set(query.columns)) != len(query.columns):
                raise SchemaError(f"Column listed twice in INSERT INTO {schema.name}")

        typed_rows = []
        for number, values in enumerate(query.rows, start=1):
            columns = self._insert_columns(schema, query.columns, len(values))
            if len(columns) != len(values):
                raise SchemaError(
                    f"Column count doesn't match value count in row {number}: "
                    f"expected {len(columns)}, got {len(values)}")
            typed_rows.append(cast_row_types(dict(zip(columns, values)), schema))

        engine = self._engine(database)
        inserted = engine.insert(schema.name, typed_rows)
        new_db = engine.commit()
        new_db.check_invariants()

        logger.info("Inserted %d row(s) into %s", len(inserted), schema.name)
        if len(inserted) == 1:
            row = inserted[0]
            return new_db, QueryResult(columns=list(row.keys()), rows=[dict(row)])
        return new_db, message_result(
            f"Inserted {len(inserted)} row(s) into {schema.name}.", len(inserted))

    def _insert_columns(self, schema: TableSchema, columns: Optional[List[str]],
                        count: int) -> List[str]:
        if columns is not None:
            return columns
        names = schema.column_names
        # positional tuples may leave out a synthesized id
        if schema.pk_source == PrimaryKeySource.SYNTHESIZED and count == len(names) - 1:
            return [name for name in names if name != 'id']
        return names

    def _execute_update(self, query: UpdateQuery, database: Database) -> Outcome:
        schema = self._require_table(database, query.table_name)
        for assignment in query.assignments:
            schema.require_column(assignment.column)

        changes = []
        for index, row in enumerate(database.rows[schema.name]):
            if query.where is not None and not evaluate(query.where, row):
                continue
            updated = dict(row)
            for assignment in query.assignments:
                updated[assignment.column] = evaluate_set(assignment.expr, row)
            changes.append((index, row, cast_row_types(updated, schema)))

        engine = self._engine(database)
        count = engine.update(schema.name, changes)
        new_db = engine.commit()
        new_db.check_invariants()

        logger.info("Updated %d row(s) in %s", count, schema.name)
        return new_db, message_result(f"Updated {count} row(s) in {schema.name}.", count)

    def _execute_delete(self, query: DeleteQuery, database: Database) -> Outcome:
        schema = self._require_table(database, query.table_name)
        indices = [index for index, row in enumerate(database.rows[schema.name])
                   if query.where is None or evaluate(query.where, row)]

        engine = self._engine(database)
        count = engine.delete(schema.name, indices)
        new_db = engine.commit()
        new_db.check_invariants()

        logger.info("Deleted %d row(s) from %s", count, schema.name)
        return new_db, message_result(f"Deleted {count} row(s) from {schema.name}.", count)
