"""
Relation store for quintet.

This module keeps every row, schema and data alike, in a single DuckDB table
and offers the small set of primitives the rest of the package composes:
point lookups, (parent, type) scans, inserts, updates, non-recursive deletes,
batched streaming and transactions.
"""

import duckdb
import logging
import queue
import re
import threading
from contextlib import contextmanager
from enum import IntEnum
from typing import Iterable, Iterator, List, Optional, Sequence

from ..config import config
from ..constants import (
    BaseType, ROOT, LEVEL, SYSTEM_TYPES, TABLE_NAME_PATTERN
)
from ..errors import InvalidArgument, StorageFailure
from ..models import Row


def _plain(values: Iterable) -> list:
    """Unwrap enum members so the driver binds plain ints."""
    return [int(v) if isinstance(v, IntEnum) else v for v in values]


class RelationStore:
    """
    Manages the DuckDB relation {id, up, t, ord, val}.
    """

    def __init__(self, db_path: Optional[str] = None, table: Optional[str] = None,
                 pool_size: Optional[int] = None):
        """
        Initialize the store.

        Args:
            db_path: Path to the DuckDB database file, or ":memory:"
            table: Relation table name
            pool_size: Number of cursors shared between callers
        """
        self.db_path = db_path or config.database_filename
        self.table = table or config.table_name
        if not re.match(TABLE_NAME_PATTERN, self.table):
            raise InvalidArgument(f"Invalid table name: {self.table!r}")
        self.pool_size = max(1, pool_size or config.pool_size)
        self.connection = None
        self._pool: Optional[queue.Queue] = None
        self._write_lock = threading.RLock()
        self._local = threading.local()

    def connect(self):
        """Establish the connection and fill the cursor pool."""
        self.connection = duckdb.connect(self.db_path)
        self._pool = queue.Queue(maxsize=self.pool_size)
        for _ in range(self.pool_size):
            self._pool.put(self.connection.cursor())
        logging.debug(f"Connected to {self.db_path} with {self.pool_size} pooled cursors")

    def disconnect(self):
        """Close pooled cursors and the database connection."""
        if self._pool is not None:
            while not self._pool.empty():
                self._pool.get_nowait().close()
            self._pool = None
        if self.connection:
            self.connection.close()
            self.connection = None

    def __enter__(self):
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.disconnect()

    @contextmanager
    def _cursor(self):
        active = getattr(self._local, "cursor", None)
        if active is not None:
            yield active
            return
        if self._pool is None:
            raise RuntimeError("Database connection not established")
        cursor = self._pool.get()
        try:
            yield cursor
        finally:
            self._pool.put(cursor)

    def _run(self, operation: str, target, sql: str, params: Sequence = (), fetch: str = "all"):
        with self._cursor() as cursor:
            try:
                result = cursor.execute(sql, _plain(params)) if params else cursor.execute(sql)
                if fetch == "one":
                    return result.fetchone()
                if fetch == "all":
                    return result.fetchall()
                return None
            except duckdb.Error as e:
                logging.error(f"Storage failure during {operation} on {target}: {e}")
                raise StorageFailure(operation, target) from e

    def _write(self, operation: str, target, sql: str, params: Sequence = (), fetch: str = "all"):
        with self._write_lock:
            return self._run(operation, target, sql, params, fetch)

    @contextmanager
    def transaction(self):
        """
        Run the enclosed writes atomically.

        Every store call made by this thread inside the block shares one cursor.
        Any exception rolls the whole block back. Nested blocks join the outer one.
        """
        if getattr(self._local, "cursor", None) is not None:
            yield self
            return
        if self._pool is None:
            raise RuntimeError("Database connection not established")

        with self._write_lock:
            cursor = self._pool.get()
            self._local.cursor = cursor
            try:
                try:
                    cursor.execute("BEGIN TRANSACTION")
                except duckdb.Error as e:
                    raise StorageFailure("begin transaction") from e
                try:
                    yield self
                    cursor.execute("COMMIT")
                except BaseException:
                    try:
                        cursor.execute("ROLLBACK")
                    except duckdb.Error as rollback_error:
                        logging.error(f"Rollback failed: {rollback_error}")
                    raise
            finally:
                self._local.cursor = None
                self._pool.put(cursor)

    def initialize_database(self):
        """
        Create the relation table and seed the system rows.

        Seeding only adds missing rows, so calling this on an existing store is safe.
        """
        self._write("initialize", self.table, f"""
            CREATE TABLE IF NOT EXISTS {self.table} (
                id BIGINT PRIMARY KEY,
                up BIGINT NOT NULL DEFAULT 0,
                t BIGINT NOT NULL DEFAULT 0,
                ord INTEGER NOT NULL DEFAULT 1,
                val VARCHAR NOT NULL DEFAULT ''
            )
        """, fetch="none")

        seed = [Row(id=ROOT, up=0, t=ROOT, ord=1, val="root")]
        seed.extend(Row(id=int(b), up=0, t=int(b), ord=0, val=b.name) for b in BaseType)
        seed.extend(
            Row(id=type_id, up=0, t=int(BaseType.CHARS), ord=0, val=name)
            for type_id, name in SYSTEM_TYPES.items()
        )
        with self.transaction():
            added = self.insert_rows_ignore(seed)
            existing = {row.val for row in self.children(ROOT, LEVEL)}
            for level in ("READ", "WRITE"):
                if level not in existing:
                    self.insert(ROOT, self.next_order(ROOT, LEVEL), LEVEL, level)
                    added += 1
        logging.info(f"Initialized relation '{self.table}' ({added} seed rows added)")

    # Reads

    def get(self, row_id: int) -> Optional[Row]:
        """
        Retrieve a row by id.

        Args:
            row_id: Identity of the row

        Returns:
            The row if found, None otherwise
        """
        record = self._run("get", row_id, f"""
            SELECT id, up, t, ord, val FROM {self.table} WHERE id = ?
        """, [row_id], fetch="one")
        return Row.from_record(record) if record else None

    def children(self, parent: int, type_id: Optional[int] = None) -> List[Row]:
        """
        List the children of a row, ordered by their sibling sequence.

        Args:
            parent: Parent identity
            type_id: Optional filter on the children's type pointer

        Returns:
            List of rows
        """
        if type_id is None:
            records = self._run("children", parent, f"""
                SELECT id, up, t, ord, val FROM {self.table}
                WHERE up = ?
                ORDER BY ord, id
            """, [parent])
        else:
            records = self._run("children", parent, f"""
                SELECT id, up, t, ord, val FROM {self.table}
                WHERE up = ? AND t = ?
                ORDER BY ord, id
            """, [parent, type_id])
        return [Row.from_record(r) for r in records]

    def first_child(self, parent: int, type_id: int) -> Optional[Row]:
        rows = self.children(parent, type_id)
        return rows[0] if rows else None

    def rows_by_type(self, type_id: int) -> List[Row]:
        """List every row whose type pointer is type_id, in id order."""
        records = self._run("rows_by_type", type_id, f"""
            SELECT id, up, t, ord, val FROM {self.table} WHERE t = ? ORDER BY id
        """, [type_id])
        return [Row.from_record(r) for r in records]

    def rows_with_value(self, value: str, type_ids: Iterable[int]) -> List[Row]:
        """List rows of the given kinds holding exactly this value."""
        type_ids = list(type_ids)
        if not type_ids:
            return []
        marks = ", ".join("?" for _ in type_ids)
        records = self._run("rows_with_value", value, f"""
            SELECT id, up, t, ord, val FROM {self.table}
            WHERE val = ? AND t IN ({marks})
            ORDER BY id
        """, [value, *type_ids])
        return [Row.from_record(r) for r in records]

    def query(self, sql: str, params: Sequence = (), operation: str = "query", target=None) -> list:
        """
        Run a read-only joined query. The relation is available as {table}.

        Args:
            sql: Query text; the literal "{table}" is replaced with the relation name
            params: Positional parameters

        Returns:
            List of result tuples
        """
        return self._run(operation, target, sql.replace("{table}", self.table), params)

    def next_order(self, parent: int, type_id: Optional[int] = None) -> int:
        """Return the order value that appends after the current last sibling."""
        if type_id is None:
            record = self._run("next_order", parent, f"""
                SELECT COALESCE(MAX(ord), 0) + 1 FROM {self.table} WHERE up = ?
            """, [parent], fetch="one")
        else:
            record = self._run("next_order", parent, f"""
                SELECT COALESCE(MAX(ord), 0) + 1 FROM {self.table} WHERE up = ? AND t = ?
            """, [parent, type_id], fetch="one")
        return int(record[0])

    def count_rows(self) -> int:
        return int(self._run("count_rows", self.table,
                             f"SELECT COUNT(*) FROM {self.table}", fetch="one")[0])

    def iter_rows(self, batch_size: Optional[int] = None) -> Iterator[Row]:
        """
        Stream every row in ascending id order, one bounded batch at a time.

        Args:
            batch_size: Rows fetched per query

        Yields:
            Rows in id order
        """
        batch_size = batch_size or config.dump_read_batch
        last_id = -1
        while True:
            records = self._run("iter_rows", last_id, f"""
                SELECT id, up, t, ord, val FROM {self.table}
                WHERE id > ?
                ORDER BY id
                LIMIT ?
            """, [last_id, batch_size])
            for record in records:
                yield Row.from_record(record)
            if len(records) < batch_size:
                return
            last_id = records[-1][0]

    # Writes

    def insert(self, parent: int, order: int, type_id: int, value: str = "") -> int:
        """
        Insert a row and return its new id.

        Args:
            parent: Parent identity
            order: Sibling sequence
            type_id: Type pointer
            value: Text payload

        Returns:
            The allocated id (one past the current maximum)
        """
        record = self._write("insert", parent, f"""
            INSERT INTO {self.table} (id, up, t, ord, val)
            SELECT COALESCE(MAX(id), 0) + 1, ?, ?, ?, ? FROM {self.table}
            RETURNING id
        """, [parent, type_id, order, value or ""], fetch="one")
        return int(record[0])

    def update_value(self, row_id: int, value: str) -> bool:
        rows = self._write("update_value", row_id, f"""
            UPDATE {self.table} SET val = ? WHERE id = ? RETURNING id
        """, [value or "", row_id])
        return len(rows) > 0

    def update_position(self, row_id: int, parent: int, order: int) -> bool:
        rows = self._write("update_position", row_id, f"""
            UPDATE {self.table} SET up = ?, ord = ? WHERE id = ? RETURNING id
        """, [parent, order, row_id])
        return len(rows) > 0

    def update_order(self, row_id: int, order: int) -> bool:
        rows = self._write("update_order", row_id, f"""
            UPDATE {self.table} SET ord = ? WHERE id = ? RETURNING id
        """, [order, row_id])
        return len(rows) > 0

    def update_type(self, row_id: int, type_id: int) -> bool:
        rows = self._write("update_type", row_id, f"""
            UPDATE {self.table} SET t = ? WHERE id = ? RETURNING id
        """, [type_id, row_id])
        return len(rows) > 0

    def shift_orders(self, parent: int, type_id: Optional[int], low: int, high: int, delta: int) -> int:
        """
        Add delta to the order of siblings whose order lies in [low, high].

        Args:
            parent: Parent identity of the siblings
            type_id: Type pointer of the siblings, or None for every child
            low: Lowest order affected
            high: Highest order affected
            delta: Amount added (usually +1 or -1)

        Returns:
            Number of rows shifted
        """
        if type_id is None:
            rows = self._write("shift_orders", parent, f"""
                UPDATE {self.table} SET ord = ord + ?
                WHERE up = ? AND ord BETWEEN ? AND ?
                RETURNING id
            """, [delta, parent, low, high])
        else:
            rows = self._write("shift_orders", parent, f"""
                UPDATE {self.table} SET ord = ord + ?
                WHERE up = ? AND t = ? AND ord BETWEEN ? AND ?
                RETURNING id
            """, [delta, parent, type_id, low, high])
        return len(rows)

    def delete(self, row_id: int) -> bool:
        """Delete one row; its children are left untouched."""
        rows = self._write("delete", row_id, f"""
            DELETE FROM {self.table} WHERE id = ? RETURNING id
        """, [row_id])
        return len(rows) > 0

    def delete_children(self, parent: int) -> int:
        """Delete the direct children of a row; grandchildren are left untouched."""
        rows = self._write("delete_children", parent, f"""
            DELETE FROM {self.table} WHERE up = ? RETURNING id
        """, [parent])
        return len(rows)

    def rewrite_identity(self, old_id: int, new_id: int) -> int:
        """
        Replace old_id with new_id wherever it appears as id, parent or type pointer.

        Callers run this inside a transaction so the three rewrites land together.
        """
        changed = 0
        for column, operation in (("id", "renumber id"), ("up", "renumber parent"), ("t", "renumber type")):
            rows = self._write(operation, old_id, f"""
                UPDATE {self.table} SET {column} = ? WHERE {column} = ? RETURNING id
            """, [new_id, old_id])
            changed += len(rows)
        return changed

    def insert_rows_ignore(self, rows: Iterable[Row]) -> int:
        """
        Insert rows with explicit ids, skipping ids that already exist.

        Args:
            rows: Rows to insert

        Returns:
            Number of rows actually inserted
        """
        records = [tuple(_plain(row.as_tuple())) for row in rows]
        if not records:
            return 0
        with self._write_lock:
            before = self.count_rows()
            with self._cursor() as cursor:
                try:
                    cursor.executemany(f"""
                        INSERT OR IGNORE INTO {self.table} (id, up, t, ord, val)
                        VALUES (?, ?, ?, ?, ?)
                    """, records)
                except duckdb.Error as e:
                    logging.error(f"Storage failure during batch insert of {len(records)} rows: {e}")
                    raise StorageFailure("insert_rows_ignore", f"{len(records)} rows") from e
            return self.count_rows() - before
