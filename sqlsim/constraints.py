"""
Integrity engine: key validation and referential actions.

All work happens on a scratch map of table -> rows. Tables are copied into
the scratch map the first time they change, so the Database snapshot the
engine was built from is never modified. Nothing is visible to callers until
commit() builds the next snapshot.
"""

import logging
from collections import deque
from typing import Any, Dict, List, Optional, Set, Tuple

from sqlsim import config
from sqlsim.errors import ConstraintError, ReferentialActionError
from sqlsim.types import Database, ForeignKey, ReferentialAction, Row, TableSchema
from sqlsim.values import has_null, tuple_key

logger = logging.getLogger(__name__)


def key_of(row: Row, columns: List[str]) -> List[Any]:
    return [row.get(col) for col in columns]


def _show(key: List[Any]) -> str:
    return ', '.join(repr(v) for v in key)


class _KeyTracker:
    """Seen primary/unique keys of one table, for incremental checks"""

    def __init__(self, schema: TableSchema):
        self.schema = schema
        self.primary: Set[str] = set()
        self.unique: List[Set[str]] = [set() for _ in schema.unique_keys]

    def add(self, row: Row):
        schema = self.schema
        for col in schema.columns:
            if col.not_null and row.get(col.name) is None:
                raise ConstraintError(f"Column '{col.name}' of table '{schema.name}' cannot be NULL")

        if schema.primary_key:
            pk = key_of(row, schema.primary_key)
            if has_null(pk):
                raise ConstraintError(
                    f"Primary key ({', '.join(schema.primary_key)}) of table '{schema.name}' "
                    f"cannot contain NULL")
            key = tuple_key(pk)
            if key in self.primary:
                raise ConstraintError(
                    f"Duplicate primary key ({_show(pk)}) in table '{schema.name}'")
            self.primary.add(key)

        for columns, seen in zip(schema.unique_keys, self.unique):
            values = key_of(row, columns)
            if has_null(values):
                continue
            key = tuple_key(values)
            if key in seen:
                raise ConstraintError(
                    f"Duplicate value ({_show(values)}) for UNIQUE ({', '.join(columns)}) "
                    f"in table '{schema.name}'")
            seen.add(key)


class IntegrityEngine:
    """Stages one statement's changes and enforces every table constraint"""

    def __init__(self, database: Database, depth_limit: Optional[int] = None):
        self.database = database
        self.depth_limit = config.CASCADE_DEPTH_LIMIT if depth_limit is None else depth_limit
        self.scratch: Dict[str, List[Row]] = {}

    # ---------- scratch map ----------

    def rows(self, table: str) -> List[Row]:
        if table in self.scratch:
            return self.scratch[table]
        return self.database.rows[table]

    def _writable(self, table: str) -> List[Row]:
        if table not in self.scratch:
            self.scratch[table] = list(self.database.rows[table])
        return self.scratch[table]

    def commit(self) -> Database:
        """Build the next snapshot; untouched tables share their row lists"""
        rows = dict(self.database.rows)
        rows.update(self.scratch)
        return Database(active=self.database.active,
                        schemas=dict(self.database.schemas),
                        rows=rows)

    # ---------- validation ----------

    def validate_keys(self, table: str):
        """Primary key, unique and NOT NULL checks over a whole table"""
        tracker = _KeyTracker(self.database.schemas[table])
        for row in self.rows(table):
            tracker.add(row)

    def _parent_keys(self, fk: ForeignKey) -> Set[str]:
        return {tuple_key(key_of(row, fk.ref_columns)) for row in self.rows(fk.ref_table)}

    def check_foreign_keys(self, table: str, rows: List[Row]):
        """Every non-null foreign key of rows must match a parent row"""
        schema = self.database.schemas[table]
        for fk in schema.foreign_keys:
            parents = self._parent_keys(fk)
            for row in rows:
                local = key_of(row, fk.columns)
                if has_null(local):
                    continue
                if tuple_key(local) not in parents:
                    raise ConstraintError(
                        f"Foreign key violation on {fk.describe(table)}: "
                        f"no row in '{fk.ref_table}' has ({_show(local)})")

    def _null_out(self, row: Row, fk: ForeignKey) -> Row:
        # build_schema keeps SET NULL away from key and NOT NULL columns
        nulled = dict(row)
        for col in fk.columns:
            nulled[col] = None
        return nulled

    def _check_depth(self, depth: int, action: str):
        if depth > self.depth_limit:
            raise ReferentialActionError(
                f"{action} cascade exceeded the depth limit of {self.depth_limit}; "
                f"check for cyclic foreign keys")

    # ---------- INSERT ----------

    def insert(self, table: str, new_rows: List[Row]) -> List[Row]:
        """Append rows in order; each row is checked against those before it"""
        schema = self.database.schemas[table]
        staged = self._writable(table)
        tracker = _KeyTracker(schema)
        for row in staged:
            tracker.add(row)

        inserted = []
        for row in new_rows:
            row = self._fill_auto_increment(schema, staged, row)
            tracker.add(row)
            staged.append(row)
            self.check_foreign_keys(table, [row])
            inserted.append(row)
        return inserted

    def _fill_auto_increment(self, schema: TableSchema, staged: List[Row], row: Row) -> Row:
        filled = None
        for col in schema.columns:
            if not col.auto_increment or row.get(col.name) is not None:
                continue
            current = [r.get(col.name) for r in staged]
            highest = max((v for v in current if isinstance(v, int) and not isinstance(v, bool)),
                          default=0)
            filled = dict(row) if filled is None else filled
            filled[col.name] = highest + 1
        if filled is None:
            return row
        return {name: filled[name] for name in schema.column_names if name in filled}

    # ---------- DELETE ----------

    def delete(self, table: str, indices: List[int]) -> int:
        """Remove rows by index, applying ON DELETE actions transitively.

        Returns the number of rows removed from table itself; cascaded
        removals in other tables are not counted.
        """
        doomed: Dict[str, Set[int]] = {table: set(indices)}
        queue = deque([(table, set(indices), 0)])

        while queue:
            parent, wave, depth = queue.popleft()
            self._check_depth(depth, 'DELETE')
            parent_rows = self.rows(parent)

            for child, fk in self.database.referencing(parent):
                gone = {tuple_key(key_of(parent_rows[i], fk.ref_columns)) for i in wave
                        if not has_null(key_of(parent_rows[i], fk.ref_columns))}
                surviving = {tuple_key(key_of(row, fk.ref_columns))
                             for i, row in enumerate(parent_rows)
                             if i not in doomed.get(parent, ())}
                gone -= surviving
                if not gone:
                    continue

                child_doomed = doomed.setdefault(child, set())
                matches = [i for i, row in enumerate(self.rows(child))
                           if i not in child_doomed
                           and not has_null(key_of(row, fk.columns))
                           and tuple_key(key_of(row, fk.columns)) in gone]
                if not matches:
                    continue

                if fk.on_delete == ReferentialAction.RESTRICT:
                    raise ReferentialActionError(
                        f"Cannot delete from '{parent}': {len(matches)} row(s) in '{child}' "
                        f"still reference it via {fk.describe(child)} (ON DELETE RESTRICT)")
                elif fk.on_delete == ReferentialAction.CASCADE:
                    child_doomed.update(matches)
                    queue.append((child, set(matches), depth + 1))
                    logger.debug("DELETE cascades to %d row(s) of %s", len(matches), child)
                else:
                    staged = self._writable(child)
                    for i in matches:
                        staged[i] = self._null_out(staged[i], fk)
                    logger.debug("DELETE sets NULL in %d row(s) of %s", len(matches), child)

        for name, positions in doomed.items():
            if positions:
                kept = [row for i, row in enumerate(self.rows(name)) if i not in positions]
                self.scratch[name] = kept
        return len(indices)

    # ---------- UPDATE ----------

    def update(self, table: str, changes: List[Tuple[int, Row, Row]]) -> int:
        """Replace rows and propagate changed keys through ON UPDATE actions.

        changes holds (index, old_row, new_row) triples. Referenced key
        changes are derived from the positional old/new pairing.
        """
        staged = self._writable(table)
        for index, _, new in changes:
            staged[index] = new

        touched = {table}
        queue = deque([(table, [(old, new) for _, old, new in changes], 0)])

        while queue:
            parent, pairs, depth = queue.popleft()
            self._check_depth(depth, 'UPDATE')

            for child, fk in self.database.referencing(parent):
                key_map: Dict[str, List[Any]] = {}
                for old, new in pairs:
                    old_key = key_of(old, fk.ref_columns)
                    new_key = key_of(new, fk.ref_columns)
                    if has_null(old_key) or tuple_key(old_key) == tuple_key(new_key):
                        continue
                    key_map[tuple_key(old_key)] = new_key
                if not key_map:
                    continue

                child_rows = self.rows(child)
                matches = [i for i, row in enumerate(child_rows)
                           if not has_null(key_of(row, fk.columns))
                           and tuple_key(key_of(row, fk.columns)) in key_map]
                if not matches:
                    continue

                if fk.on_update == ReferentialAction.RESTRICT:
                    raise ReferentialActionError(
                        f"Cannot update '{parent}': {len(matches)} row(s) in '{child}' "
                        f"still reference the old key via {fk.describe(child)} (ON UPDATE RESTRICT)")

                staged_child = self._writable(child)
                child_pairs = []
                for i in matches:
                    old_row = staged_child[i]
                    if fk.on_update == ReferentialAction.CASCADE:
                        new_row = dict(old_row)
                        new_key = key_map[tuple_key(key_of(old_row, fk.columns))]
                        for col, value in zip(fk.columns, new_key):
                            new_row[col] = value
                    else:
                        new_row = self._null_out(old_row, fk)
                    staged_child[i] = new_row
                    child_pairs.append((old_row, new_row))

                touched.add(child)
                queue.append((child, child_pairs, depth + 1))
                logger.debug("UPDATE %s %d row(s) of %s",
                             fk.on_update.value, len(matches), child)

        for name in touched:
            self.validate_keys(name)
            self.check_foreign_keys(name, self.rows(name))
        return len(changes)
