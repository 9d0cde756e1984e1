import collections
import contextlib
import ctypes
import logging
import os
import weakref

from . import native
from .errors import (
    ConnectionClosedError, EmptyStatementError, Error, MultipleStatementsError,
    PrepareError, ProgrammingError, error_message, translate,
)
from .native import Engine, OpenFlags
from .statement import Statement

logger = logging.getLogger(__name__)

_TRANSACTION_BEHAVIORS = ("DEFERRED", "IMMEDIATE", "EXCLUSIVE")


class Connection:
    """Owns one engine connection handle.

    Statements prepared here keep a reference back to the connection and must
    be finalized before it is closed; :meth:`close` reports the engine's
    ``SQLITE_BUSY`` otherwise and leaves the connection open. Pass
    ``deferred=True`` to let the engine finish the close once the last
    statement is finalized.

    ``changes()`` and ``last_insert_row_id()`` describe the most recently
    completed statement on this connection, so read them right after the
    statement you care about.
    """

    def __init__(self, engine, handle, path, stmt_cache_size=16):
        self.engine = engine
        self._lib = engine.lib
        self._db = handle
        self.path = path
        self._statements = weakref.WeakSet()

        # Prepared statement cache
        self._stmt_cache = collections.OrderedDict()
        self._stmt_cache_size = stmt_cache_size

        # Statistics for testing
        self._stats = collections.Counter()

    @classmethod
    def open(cls, path, flags=OpenFlags.DEFAULT, *, engine=None, vfs=None, busy_timeout=None, stmt_cache_size=16):
        if engine is None:
            engine = Engine.shared()
        lib = engine.lib
        path = os.fspath(path)
        db = ctypes.c_void_p()
        rc = lib.sqlite3_open_v2(
            path.encode("utf-8"),
            ctypes.byref(db),
            int(flags),
            vfs.encode("utf-8") if vfs else None,
        )
        if rc != native.OK:
            # The engine usually hands back a handle even on failure; it holds the message.
            error = translate(engine, db.value, rc)
            if db.value:
                lib.sqlite3_close(db.value)
            raise error

        conn = cls(engine, db.value, path, stmt_cache_size=stmt_cache_size)
        logger.debug("opened %s (flags=%#x)", path, int(flags))
        if busy_timeout is not None:
            conn.set_busy_timeout(busy_timeout)
        return conn

    def __repr__(self):
        state = "closed" if self._db is None else "open"
        return f"<Connection {state} {self.path!r}>"

    @property
    def closed(self):
        return self._db is None

    def _check_open(self):
        if self._db is None:
            raise ConnectionClosedError()

    def raise_if_error(self, code):
        if code == native.OK:
            return
        raise translate(self.engine, self._db, code)

    # Statements

    def _prepare_raw(self, sql_bytes):
        buf = ctypes.create_string_buffer(sql_bytes)
        handle = ctypes.c_void_p()
        tail = ctypes.c_void_p()
        rc = self._lib.sqlite3_prepare_v2(
            self._db, buf, len(sql_bytes), ctypes.byref(handle), ctypes.byref(tail)
        )
        consumed = tail.value - ctypes.addressof(buf) if tail.value else len(sql_bytes)
        return rc, handle.value, sql_bytes[consumed:]

    def prepare(self, sql):
        self._check_open()
        sql_bytes = sql.encode("utf-8")
        self._stats["prepare_count"] += 1
        rc, handle, rest = self._prepare_raw(sql_bytes)
        if rc != native.OK:
            raise translate(self.engine, self._db, rc, sql=sql, error_class=PrepareError)
        if not handle:
            raise EmptyStatementError(sql)

        if rest.strip():
            # Whatever follows may only be comments or whitespace.
            extra_rc, extra, _ = self._prepare_raw(rest)
            if extra:
                self._lib.sqlite3_finalize(extra)
            if extra_rc != native.OK or extra:
                self._lib.sqlite3_finalize(handle)
                raise MultipleStatementsError(sql)

        stmt = Statement(self, handle, sql)
        self._statements.add(stmt)
        logger.debug("prepared %r", sql)
        return stmt

    def prepare_cached(self, sql):
        """Like :meth:`prepare`, but closing the statement returns it to an LRU cache."""
        self._check_open()
        stmt = self._stmt_cache.pop(sql, None)
        if stmt is not None:
            self._stats["cache_hit"] += 1
            return stmt
        self._stats["cache_miss"] += 1
        stmt = self.prepare(sql)
        stmt._cached = True
        return stmt

    def _recycle_statement(self, stmt):
        """
        Return a statement to the cache.
        Resets execution state and clears bindings.
        """
        try:
            stmt.reset()
            stmt.clear_bindings()
        except Error:
            stmt._finalize_quietly()
            raise

        # If cache is disabled (size 0), finalize immediately
        if self._stmt_cache_size <= 0:
            stmt.finalize()
            return

        old = self._stmt_cache.pop(stmt.sql, None)
        if old is not None and old is not stmt:
            old.finalize()
        self._stmt_cache[stmt.sql] = stmt

        # Evict if full
        while len(self._stmt_cache) > self._stmt_cache_size:
            _, evicted = self._stmt_cache.popitem(last=False)
            evicted.finalize()

    def execute(self, sql, params=None):
        with self.prepare(sql) as stmt:
            return stmt.execute(params)

    def execute_batch(self, script):
        """Run every statement in ``script``, discarding any rows."""
        self._check_open()
        rest = script.encode("utf-8")
        while rest.strip():
            before = rest
            rc, handle, rest = self._prepare_raw(before)
            chunk = before[:len(before) - len(rest)].decode("utf-8").strip()
            if rc != native.OK:
                raise translate(self.engine, self._db, rc, sql=chunk, error_class=PrepareError)
            if not handle:
                continue
            stmt = Statement(self, handle, chunk)
            self._statements.add(stmt)
            with stmt:
                while stmt.step():
                    pass

    def query_row(self, sql, params=None, transform=None):
        with self.prepare(sql) as stmt:
            return stmt.query_row(params, transform)

    @contextlib.contextmanager
    def transaction(self, behavior="DEFERRED"):
        behavior = behavior.upper()
        if behavior not in _TRANSACTION_BEHAVIORS:
            raise ProgrammingError(f"unknown transaction behavior {behavior!r}")
        self.execute(f"BEGIN {behavior}")
        try:
            yield self
        except BaseException:
            if not self.is_autocommit():
                self.execute("ROLLBACK")
            raise
        self.execute("COMMIT")

    # Engine state

    def changes(self):
        self._check_open()
        if self.engine.has("sqlite3_changes64"):
            return self._lib.sqlite3_changes64(self._db)
        return self._lib.sqlite3_changes(self._db)

    def total_changes(self):
        self._check_open()
        if self.engine.has("sqlite3_total_changes64"):
            return self._lib.sqlite3_total_changes64(self._db)
        return self._lib.sqlite3_total_changes(self._db)

    def last_insert_row_id(self):
        self._check_open()
        return self._lib.sqlite3_last_insert_rowid(self._db)

    def is_autocommit(self):
        self._check_open()
        return bool(self._lib.sqlite3_get_autocommit(self._db))

    def interrupt(self):
        """Abort any in-flight step on this connection; safe from another thread."""
        self._check_open()
        self._lib.sqlite3_interrupt(self._db)

    def set_busy_timeout(self, ms):
        self._check_open()
        self.raise_if_error(self._lib.sqlite3_busy_timeout(self._db, int(ms)))

    # Schema introspection

    def list_tables(self):
        with self.prepare(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite~_%' ESCAPE '~' ORDER BY name"
        ) as stmt:
            return list(stmt.query_map(None, lambda row: row[0]))

    def get_table_columns(self, table_name: str):
        with self.prepare(
            'SELECT name, type, "notnull", dflt_value, pk FROM pragma_table_info(?) ORDER BY cid'
        ) as stmt:
            return list(stmt.query_map((table_name,), lambda row: {
                "name": row[0],
                "type": row[1],
                "not_null": bool(row[2]),
                "default": row[3],
                "primary_key": bool(row[4]),
            }))

    def list_indexes(self):
        with self.prepare(
            "SELECT name, tbl_name, sql FROM sqlite_master WHERE type = 'index' ORDER BY name"
        ) as stmt:
            return list(stmt.query_map(None, lambda row: {
                "name": row[0],
                "table": row[1],
                "sql": row[2],
            }))

    # Teardown

    def close(self, deferred=False):
        if self._db is None:
            return
        # Finalize all cached statements
        for stmt in self._stmt_cache.values():
            stmt.finalize()
        self._stmt_cache.clear()

        if deferred:
            live = [s for s in self._statements if not s.finalized]
            if live:
                logger.warning("deferring close of %s until %d statement(s) are finalized", self.path, len(live))
            rc = self._lib.sqlite3_close_v2(self._db)
        else:
            rc = self._lib.sqlite3_close(self._db)

        if rc != native.OK:
            raise translate(self.engine, self._db, rc)
        self._db = None
        logger.debug("closed %s", self.path)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.close()
            return
        try:
            self.close()
        except Error as e:
            logger.warning("closing %s after %s failed: %s", self.path, exc_type.__name__, e)

    def __del__(self):
        db = getattr(self, "_db", None)
        if db is None:
            return
        for stmt in self._stmt_cache.values():
            stmt._finalize_quietly()
        self._stmt_cache.clear()
        rc = self._lib.sqlite3_close_v2(db)
        if rc != native.OK:
            logger.warning("close of %s failed: %s", self.path, error_message(self.engine, db, rc))
        self._db = None


connect = Connection.open
