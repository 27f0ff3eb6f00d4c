"""
Schema construction for CREATE TABLE and CREATE VIEW
"""

import logging
from typing import Dict, List, Optional

from sqlsim.errors import ParseError, SchemaError
from sqlsim.parser import ColumnSpec, CreateTableQuery
from sqlsim.types import (
    ColumnDefinition, DataType, PrimaryKeySource, QueryResult,
    ReferentialAction, TableSchema,
)
from sqlsim.values import infer_type_from_values

logger = logging.getLogger(__name__)


def _is_whole(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def build_column(spec: ColumnSpec) -> ColumnDefinition:
    """Validate type parameters and turn a parsed column into a definition"""
    data_type = DataType.from_sql(spec.type_name)
    col = ColumnDefinition(
        name=spec.name,
        data_type=data_type,
        primary=spec.primary,
        unique=spec.unique,
        not_null=spec.not_null,
        auto_increment=spec.auto_increment,
    )

    if data_type in (DataType.CHAR, DataType.VARCHAR):
        if len(spec.params) != 1 or not _is_whole(spec.params[0]) or spec.params[0] < 1:
            raise ParseError(f"{data_type.value} requires length, e.g. {data_type.value}(20)")
        col.length = spec.params[0]
    elif data_type == DataType.DECIMAL:
        if len(spec.params) != 2 or not all(_is_whole(p) for p in spec.params):
            raise ParseError('DECIMAL requires (precision, scale), e.g. DECIMAL(10,2)')
        col.precision, col.scale = spec.params
    elif spec.params:
        raise ParseError(f"{data_type.value} does not take parameters (column {spec.name})")

    if col.auto_increment and data_type != DataType.INT:
        raise SchemaError(f"AUTO_INCREMENT column {spec.name} must be INT")
    return col


def _check_columns(schema_name: str, names: List[str], available: List[str], what: str):
    for name in names:
        if name not in available:
            raise SchemaError(f"Unknown column '{name}' in {what} of table '{schema_name}'")
    if len(set(names)) != len(names):
        raise SchemaError(f"Duplicate column in {what} of table '{schema_name}'")


def _resolve_primary_key(query: CreateTableQuery, columns: List[ColumnDefinition]):
    """Pick the primary key: table-level, flagged columns, existing id, synthesized id"""
    names = [col.name for col in columns]

    if query.primary_key:
        _check_columns(query.table_name, query.primary_key, names, 'PRIMARY KEY')
        return list(query.primary_key), PrimaryKeySource.DECLARED, columns

    flagged = [col.name for col in columns if col.primary]
    if flagged:
        return flagged, PrimaryKeySource.COLUMN, columns

    for col in columns:
        if col.name.lower() == 'id':
            if col.data_type == DataType.INT:
                col.auto_increment = True
            return [col.name], PrimaryKeySource.EXISTING_ID, columns

    synthetic = ColumnDefinition(name='id', data_type=DataType.INT,
                                 primary=True, auto_increment=True)
    return ['id'], PrimaryKeySource.SYNTHESIZED, [synthetic] + columns


def build_schema(query: CreateTableQuery,
                 known_schemas: Optional[Dict[str, TableSchema]] = None) -> TableSchema:
    """Build and validate a TableSchema from a parsed CREATE TABLE.

    known_schemas holds every table a foreign key may point at: the current
    database plus tables created earlier in the same batch.
    """
    known_schemas = known_schemas or {}
    columns = [build_column(spec) for spec in query.columns]

    names = [col.name for col in columns]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise SchemaError(f"Duplicate column name(s) {duplicates} in table '{query.table_name}'")

    primary_key, pk_source, columns = _resolve_primary_key(query, columns)
    names = [col.name for col in columns]
    for col in columns:
        col.primary = col.name in primary_key

    unique_keys: List[List[str]] = []
    for col in columns:
        if col.unique:
            unique_keys.append([col.name])
    for key in query.unique_keys:
        _check_columns(query.table_name, key, names, 'UNIQUE')
        if key not in unique_keys:
            unique_keys.append(list(key))

    schema = TableSchema(
        name=query.table_name,
        columns=columns,
        primary_key=primary_key,
        unique_keys=unique_keys,
        foreign_keys=[],
        pk_source=pk_source,
    )

    for fk in query.foreign_keys:
        _check_columns(query.table_name, fk.columns, names, 'FOREIGN KEY')
        if len(fk.columns) != len(fk.ref_columns):
            raise SchemaError(
                f"Foreign key on {query.table_name}({', '.join(fk.columns)}) must list as many "
                f"referenced columns as local columns")

        if fk.ref_table == query.table_name:
            target = schema
        elif fk.ref_table in known_schemas:
            target = known_schemas[fk.ref_table]
        else:
            raise SchemaError(f"Foreign key references unknown table '{fk.ref_table}'")
        for ref_col in fk.ref_columns:
            if target.get_column(ref_col) is None:
                raise SchemaError(
                    f"Foreign key references unknown column '{ref_col}' in table '{fk.ref_table}'")

        nullable_violation = [
            name for name in fk.columns
            if name in primary_key or schema.get_column(name).not_null
        ]
        if nullable_violation and ReferentialAction.SET_NULL in (fk.on_delete, fk.on_update):
            raise SchemaError(
                f"SET NULL is impossible on {query.table_name}({', '.join(nullable_violation)}): "
                f"column is part of the primary key or NOT NULL")

        schema.foreign_keys.append(fk)

    logger.debug("Built schema %s (primary key %s, %s)",
                 schema.name, primary_key, pk_source.value)
    return schema


def build_view_schema(view_name: str, result: QueryResult) -> TableSchema:
    """Infer a schema for a materialized view from the values it holds"""
    columns = []
    for name in result.columns:
        present = [row.get(name) for row in result.rows if row.get(name) is not None]
        columns.append(ColumnDefinition(name=name, data_type=infer_type_from_values(present)))
    return TableSchema(name=view_name, columns=columns, is_view=True)
