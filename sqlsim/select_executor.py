"""
SELECT execution pipeline for sqlsim
WHERE -> GROUP BY / aggregates -> HAVING -> DISTINCT -> ORDER BY -> LIMIT
"""

import logging
from functools import cmp_to_key
from typing import Any, Dict, List, Optional, Tuple

from sqlsim.errors import SchemaError, TableNotFoundError
from sqlsim.expressions import evaluate, resolve
from sqlsim.parser import AggregateItem, ColumnItem, SelectQuery, StarItem
from sqlsim.types import Database, QueryResult, Row, TableSchema
from sqlsim import values

logger = logging.getLogger(__name__)

# (projected output row, representative source row)
Projected = Tuple[Row, Row]


def _present(rows: List[Row], column: str) -> List[Any]:
    found = []
    for row in rows:
        value = resolve(column, row)
        if value is not None:
            found.append(value)
    return found


def aggregate(fn: str, arg: str, rows: List[Row]) -> Any:
    """Apply COUNT/SUM/AVG/MIN/MAX over rows.

    NULLs are ignored except by COUNT(*). SUM and AVG count non-numeric
    values as 0. AVG of nothing is 0; MIN and MAX of nothing are NULL.
    """
    if fn == 'COUNT':
        if arg == '*':
            return len(rows)
        return len(_present(rows, arg))

    present = _present(rows, arg)

    if fn in ('SUM', 'AVG'):
        total = 0
        for value in present:
            number = values.to_number(value)
            if values.is_nan(number):
                continue
            if isinstance(number, float) or isinstance(total, float):
                total = values.to_float(total) + values.to_float(number)
            else:
                total += number
        if fn == 'SUM':
            return total
        return values.to_float(total) / len(present) if present else 0

    if not present:
        return None
    best = present[0]
    for value in present[1:]:
        if fn == 'MIN' and values.less_than(value, best):
            best = value
        elif fn == 'MAX' and values.greater_than(value, best):
            best = value
    return best


class SelectExecutor:
    """Runs a parsed single-table SELECT against a Database snapshot"""

    def execute(self, query: SelectQuery, database: Database) -> QueryResult:
        schema = database.schemas.get(query.table_name)
        if schema is None:
            raise TableNotFoundError(f"Table '{query.table_name}' does not exist")
        self._validate_items(query, schema)

        source = database.rows[query.table_name]
        rows = self._apply_where(source, query.where)

        if query.group_by:
            projected = self._apply_group_by(rows, query, schema)
        elif query.has_aggregates:
            rep = rows[0] if rows else {}
            projected = [(self._project(query, schema, rep, rows), rep)]
        else:
            projected = [(self._project(query, schema, row, None), row) for row in rows]

        if query.having is not None:
            projected = [pair for pair in projected if evaluate(query.having, pair[0])]

        columns = self._result_columns(query, schema)

        if query.distinct:
            projected = self._apply_distinct(projected, columns)

        if query.order_by:
            projected = self._apply_order_by(projected, query)

        projected = self._apply_limit(projected, query.limit, query.offset)

        logger.debug("SELECT from %s returned %d row(s)", query.table_name, len(projected))
        return QueryResult(columns=columns, rows=[out for out, _ in projected])

    def _validate_items(self, query: SelectQuery, schema: TableSchema):
        qualifiers = {query.table_name}
        if query.alias:
            qualifiers.add(query.alias)

        def check(name: str):
            if '.' in name:
                qualifier, name = name.rsplit('.', 1)
                if qualifier not in qualifiers:
                    raise SchemaError(f"Unknown table or alias '{qualifier}' in SELECT")
            schema.require_column(name)

        for item in query.items:
            if isinstance(item, StarItem) and item.table and item.table not in qualifiers:
                raise SchemaError(f"Unknown table or alias '{item.table}' in {item.table}.*")
            elif isinstance(item, ColumnItem):
                check(item.expr)
            elif isinstance(item, AggregateItem) and item.arg != '*':
                check(item.arg)

    def _apply_where(self, rows: List[Row], where) -> List[Row]:
        if where is None:
            return list(rows)
        return [row for row in rows if evaluate(where, row)]

    def _project(self, query: SelectQuery, schema: TableSchema,
                 row: Row, group: Optional[List[Row]]) -> Row:
        """Build one output row; group is set when aggregating"""
        out: Row = {}
        for item in query.items:
            if isinstance(item, StarItem):
                if group is not None:
                    continue
                for name in schema.column_names:
                    out[name] = row.get(name)
            elif isinstance(item, AggregateItem):
                out[item.alias] = aggregate(item.fn, item.arg, group or [])
            else:
                out[item.alias] = resolve(item.expr, row)
        return out

    def _apply_group_by(self, rows: List[Row], query: SelectQuery,
                        schema: TableSchema) -> List[Projected]:
        groups: Dict[str, List[Row]] = {}
        for row in rows:
            key = values.tuple_key(resolve(col, row) for col in query.group_by)
            groups.setdefault(key, []).append(row)

        return [(self._project(query, schema, members[0], members), members[0])
                for members in groups.values()]

    def _result_columns(self, query: SelectQuery, schema: TableSchema) -> List[str]:
        grouped = bool(query.group_by) or query.has_aggregates
        columns: List[str] = []
        for item in query.items:
            if isinstance(item, StarItem):
                names = [] if grouped else schema.column_names
            else:
                names = [item.alias]
            for name in names:
                if name not in columns:
                    columns.append(name)
        return columns

    def _apply_distinct(self, projected: List[Projected], columns: List[str]) -> List[Projected]:
        seen = set()
        unique = []
        for out, src in projected:
            key = values.tuple_key(out.get(col) for col in columns)
            if key not in seen:
                seen.add(key)
                unique.append((out, src))
        return unique

    def _apply_order_by(self, projected: List[Projected], query: SelectQuery) -> List[Projected]:
        """Stable multi-key sort using the loose relational operators.

        Keys are looked up in the output row first and then in the source
        row, so columns that were not selected can still drive the order.
        Values that cannot be ordered against each other (NaN, or text
        against a number it does not convert to) compare as a tie on that
        key, so they keep their input order.
        """
        def sort_value(pair: Projected, column: str):
            out, src = pair
            if column in out:
                return out[column]
            bare = column.rsplit('.', 1)[-1]
            if bare in out:
                return out[bare]
            return resolve(column, src)

        def compare(a: Projected, b: Projected) -> int:
            for item in query.order_by:
                left = sort_value(a, item.column)
                right = sort_value(b, item.column)
                if values.greater_than(left, right):
                    result = 1
                elif values.less_than(left, right):
                    result = -1
                else:
                    continue
                return -result if item.descending else result
            return 0

        return sorted(projected, key=cmp_to_key(compare))

    def _apply_limit(self, projected: List[Projected], limit: Optional[int], offset: int):
        offset = offset or 0
        if limit is None:
            return projected[offset:]
        return projected[offset:offset + limit]
