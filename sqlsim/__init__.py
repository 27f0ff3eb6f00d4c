"""
sqlsim Engine Package
"""

from sqlsim.database import Session, execute, run_sql
from sqlsim.parser import SQLParser, SUPPORTED_STATEMENTS
from sqlsim.query_executor import QueryExecutor
from sqlsim.select_executor import SelectExecutor
from sqlsim.constraints import IntegrityEngine
from sqlsim.types import Database, DataType, QueryResult, TableSchema
from sqlsim.errors import (
    SQLSimError, ParseError, UnsupportedFeatureError, TableNotFoundError,
    SchemaError, ConstraintError, ReferentialActionError,
)

__version__ = "1.0.0"

__all__ = [
    'Session',
    'execute',
    'run_sql',
    'SQLParser',
    'SUPPORTED_STATEMENTS',
    'QueryExecutor',
    'SelectExecutor',
    'IntegrityEngine',
    'Database',
    'DataType',
    'QueryResult',
    'TableSchema',
    'SQLSimError',
    'ParseError',
    'UnsupportedFeatureError',
    'TableNotFoundError',
    'SchemaError',
    'ConstraintError',
    'ReferentialActionError',
]
