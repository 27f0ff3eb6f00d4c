"""
Type definitions and data structures for sqlsim
"""

from typing import Dict, List, Any, Optional, Tuple
from dataclasses import dataclass, field
from enum import Enum

from sqlsim.errors import ParseError, SchemaError

Row = Dict[str, Any]


class DataType(Enum):
    """Supported column types"""
    INT = "INT"
    REAL = "REAL"
    DECIMAL = "DECIMAL"
    TEXT = "TEXT"
    CHAR = "CHAR"
    VARCHAR = "VARCHAR"
    BOOLEAN = "BOOLEAN"

    @classmethod
    def from_sql(cls, name: str) -> 'DataType':
        """Resolve a SQL type name, including synonyms, to a DataType"""
        upper = name.upper()
        upper = _TYPE_SYNONYMS.get(upper, upper)
        try:
            return cls(upper)
        except ValueError:
            raise ParseError(f"Unsupported type: {name}")


_TYPE_SYNONYMS = {
    'INTEGER': 'INT',
    'FLOAT': 'REAL',
    'DOUBLE': 'REAL',
    'DEC': 'DECIMAL',
    'NUMERIC': 'DECIMAL',
    'BOOL': 'BOOLEAN',
}


class ReferentialAction(Enum):
    """ON DELETE / ON UPDATE actions"""
    RESTRICT = "RESTRICT"
    CASCADE = "CASCADE"
    SET_NULL = "SET NULL"


class PrimaryKeySource(Enum):
    """Why a table ended up with its primary key"""
    DECLARED = "declared"        # table-level PRIMARY KEY (...)
    COLUMN = "column"            # column flagged PRIMARY KEY
    EXISTING_ID = "existing_id"  # an existing column named id
    SYNTHESIZED = "synthesized"  # injected id column
    NONE = "none"                # views


@dataclass
class ColumnDefinition:
    """Column definition for table schema"""
    name: str
    data_type: DataType
    length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    primary: bool = False
    unique: bool = False
    not_null: bool = False
    auto_increment: bool = False

    def type_sql(self) -> str:
        if self.data_type in (DataType.CHAR, DataType.VARCHAR):
            return f"{self.data_type.value}({self.length})"
        if self.data_type == DataType.DECIMAL:
            return f"DECIMAL({self.precision},{self.scale})"
        return self.data_type.value

    def __str__(self) -> str:
        text = f"{self.name} {self.type_sql()}"
        if self.not_null:
            text += " NOT NULL"
        return text


@dataclass
class ForeignKey:
    """FOREIGN KEY (columns) REFERENCES ref_table(ref_columns)"""
    columns: List[str]
    ref_table: str
    ref_columns: List[str]
    on_delete: ReferentialAction = ReferentialAction.RESTRICT
    on_update: ReferentialAction = ReferentialAction.RESTRICT
    name: Optional[str] = None

    def describe(self, table: str) -> str:
        label = self.name or f"fk_{table}_{'_'.join(self.columns)}"
        return (f"{label} ({table}({', '.join(self.columns)}) -> "
                f"{self.ref_table}({', '.join(self.ref_columns)}))")

    def __str__(self) -> str:
        text = (f"FOREIGN KEY ({', '.join(self.columns)}) REFERENCES "
                f"{self.ref_table}({', '.join(self.ref_columns)})")
        if self.on_delete != ReferentialAction.RESTRICT:
            text += f" ON DELETE {self.on_delete.value}"
        if self.on_update != ReferentialAction.RESTRICT:
            text += f" ON UPDATE {self.on_update.value}"
        return text


@dataclass
class TableSchema:
    """Complete table schema"""
    name: str
    columns: List[ColumnDefinition]
    primary_key: Optional[List[str]] = None
    unique_keys: List[List[str]] = field(default_factory=list)
    foreign_keys: List[ForeignKey] = field(default_factory=list)
    pk_source: PrimaryKeySource = PrimaryKeySource.NONE
    is_view: bool = False

    @property
    def column_names(self) -> List[str]:
        return [col.name for col in self.columns]

    def get_column(self, name: str) -> Optional[ColumnDefinition]:
        for col in self.columns:
            if col.name == name:
                return col
        return None

    def require_column(self, name: str) -> ColumnDefinition:
        col = self.get_column(name)
        if col is None:
            raise SchemaError(f"Unknown column '{name}' in table '{self.name}'")
        return col

    def to_sql(self) -> str:
        """Regenerate the CREATE TABLE statement for this schema"""
        parts = [f"  {col}" for col in self.columns]
        if self.primary_key:
            parts.append(f"  PRIMARY KEY ({', '.join(self.primary_key)})")
        for key in self.unique_keys:
            parts.append(f"  UNIQUE ({', '.join(key)})")
        for fk in self.foreign_keys:
            parts.append(f"  {fk}")
        return f"CREATE TABLE {self.name} (\n" + ',\n'.join(parts) + "\n);"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'columns': [
                {
                    'name': col.name,
                    'type': col.data_type.value,
                    'length': col.length,
                    'precision': col.precision,
                    'scale': col.scale,
                    'primary': col.primary,
                    'not_null': col.not_null,
                    'auto_increment': col.auto_increment,
                }
                for col in self.columns
            ],
            'primary_key': self.primary_key,
            'pk_source': self.pk_source.value,
            'unique_keys': self.unique_keys,
            'foreign_keys': [
                {
                    'columns': fk.columns,
                    'ref_table': fk.ref_table,
                    'ref_columns': fk.ref_columns,
                    'on_delete': fk.on_delete.value,
                    'on_update': fk.on_update.value,
                }
                for fk in self.foreign_keys
            ],
            'is_view': self.is_view,
            'sql': None if self.is_view else self.to_sql(),
        }


@dataclass
class Database:
    """In-memory snapshot of every table.

    A snapshot is never modified once published: statements build a new
    Database that shares untouched row lists with the previous one.
    """
    active: str = ''
    schemas: Dict[str, TableSchema] = field(default_factory=dict)
    rows: Dict[str, List[Row]] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> 'Database':
        return cls()

    def table_names(self) -> List[str]:
        return list(self.schemas.keys())

    def referencing(self, table: str) -> List[Tuple[str, ForeignKey]]:
        """All (child_table, foreign_key) pairs that point at table"""
        refs = []
        for child_name, schema in self.schemas.items():
            for fk in schema.foreign_keys:
                if fk.ref_table == table:
                    refs.append((child_name, fk))
        return refs

    def check_invariants(self) -> None:
        schema_names = set(self.schemas)
        row_names = set(self.rows)
        if schema_names != row_names:
            missing_rows = sorted(schema_names - row_names)
            missing_schemas = sorted(row_names - schema_names)
            raise SchemaError(
                f"Database is inconsistent: tables without rows {missing_rows}, "
                f"rows without schema {missing_schemas}"
            )


@dataclass
class QueryResult:
    """Tabular result of one statement"""
    columns: List[str]
    rows: List[Row]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to API-friendly dictionary"""
        return {
            'columns': list(self.columns),
            'rows': [dict(row) for row in self.rows],
        }


def message_result(message: str, affected: Optional[int] = None) -> QueryResult:
    if affected is None:
        return QueryResult(columns=['message'], rows=[{'message': message}])
    return QueryResult(columns=['message', 'affected'],
                       rows=[{'message': message, 'affected': affected}])


def error_result(message: str) -> QueryResult:
    return QueryResult(columns=['error'], rows=[{'error': message}])
