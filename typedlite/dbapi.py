"""DB-API 2.0 (PEP 249) interface on top of the typed connection layer."""

import datetime
import re
import weakref

from .connection import Connection as _Connection
from .errors import (
    DataError, DatabaseError, Error, IntegrityError, InterfaceError,
    InternalError, NotSupportedError, OperationalError, ProgrammingError,
    Warning,
)
from .native import Engine, OpenFlags

# DB-API 2.0 Globals
apilevel = "2.0"
threadsafety = 1  # Threads may share the module, but not connections
paramstyle = "qmark"  # named (:name) parameters are accepted too


def __getattr__(name):
    # Resolved lazily so importing the module does not load the library.
    if name == "sqlite_version":
        return Engine.shared().version
    if name == "sqlite_version_info":
        return Engine.shared().version_info
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


# Types
Date = datetime.date
Time = datetime.time
Timestamp = datetime.datetime
def DateFromTicks(ticks): return datetime.date.fromtimestamp(ticks)
def TimeFromTicks(ticks): return datetime.datetime.fromtimestamp(ticks).time()
def TimestampFromTicks(ticks): return datetime.datetime.fromtimestamp(ticks)
def Binary(string): return bytes(string)
STRING = str
BINARY = bytes
NUMBER = float
DATETIME = datetime.datetime
ROWID = int

_DML = re.compile(r"^\s*(INSERT|UPDATE|DELETE|REPLACE)\b", re.IGNORECASE)

_ISOLATION_LEVELS = ("", "DEFERRED", "IMMEDIATE", "EXCLUSIVE")


def _is_dml(sql):
    return _DML.match(sql) is not None


class Cursor:
    def __init__(self, connection):
        self._connection = connection
        self._stmt = None
        self._rows = None
        self.description = None
        self.rowcount = -1
        self.lastrowid = None
        self.arraysize = 1
        self._closed = False

    @property
    def connection(self):
        return self._connection

    def _check_open(self):
        if self._closed:
            raise ProgrammingError("Cursor is closed")
        self._connection._check_open()

    def _release_statement(self):
        self._rows = None
        if self._stmt is not None:
            # Return to cache instead of finalizing directly
            self._stmt.close()
            self._stmt = None

    def close(self):
        if self._closed:
            return
        self._release_statement()
        self.description = None
        self._closed = True

    def execute(self, operation, parameters=None):
        self._check_open()
        conn = self._connection

        self._rows = None
        if self._stmt is not None and self._stmt.sql != operation:
            self._release_statement()
        if self._stmt is None:
            self._stmt = conn._conn.prepare_cached(operation)

        if parameters is None:
            parameters = ()
        stmt = self._stmt

        dml = _is_dml(operation)
        if dml:
            conn._begin_if_needed()

        if stmt.column_count():
            self._rows = stmt.query(parameters)
            # Step once so a statement recompiled after a schema change reports its current columns.
            self._rows.has_next()
            # Type info is only known per row, so type_code stays None.
            self.description = tuple((name, None, None, None, None, None, None) for name in stmt.column_names())
            self.rowcount = -1
        else:
            self.description = None
            changes = stmt.execute(parameters)
            self.rowcount = changes if dml else -1
            self.lastrowid = conn._conn.last_insert_row_id()
        return self

    def executemany(self, operation, seq_of_parameters):
        self._check_open()
        total = 0
        for params in seq_of_parameters:
            self.execute(operation, params)
            if self.description is not None:
                raise ProgrammingError("executemany() can only execute DML statements.")
            if self.rowcount > 0:
                total += self.rowcount
        self.rowcount = total if _is_dml(operation) else -1
        return self

    def fetchone(self):
        self._check_open()
        if self._rows is None:
            return None
        row = self._rows.next()
        if row is None:
            self._rows = None
            return None
        return row.as_tuple()

    def fetchmany(self, size=None):
        if size is None:
            size = self.arraysize
        rows = []
        for _ in range(size):
            r = self.fetchone()
            if r is None:
                break
            rows.append(r)
        return rows

    def fetchall(self):
        rows = []
        while True:
            r = self.fetchone()
            if r is None:
                break
            rows.append(r)
        return rows

    def setinputsizes(self, sizes):
        pass

    def setoutputsize(self, size, column=None):
        pass

    def __iter__(self):
        return self

    def __next__(self):
        r = self.fetchone()
        if r is None:
            raise StopIteration
        return r


class Connection:
    Error = Error
    Warning = Warning
    InterfaceError = InterfaceError
    DatabaseError = DatabaseError
    InternalError = InternalError
    OperationalError = OperationalError
    ProgrammingError = ProgrammingError
    IntegrityError = IntegrityError
    DataError = DataError
    NotSupportedError = NotSupportedError

    def __init__(self, conn, isolation_level="DEFERRED"):
        self._conn = conn
        self._isolation_level = None
        self.isolation_level = isolation_level
        # Level to go back to when leaving autocommit.
        self.default_isolation_level = "DEFERRED" if self._isolation_level is None else self._isolation_level
        self._cursors = weakref.WeakSet()

    def _check_open(self):
        if self._conn.closed:
            raise ProgrammingError("Connection closed")

    @property
    def isolation_level(self):
        return self._isolation_level

    @isolation_level.setter
    def isolation_level(self, level):
        if level is not None:
            level = level.upper()
            if level not in _ISOLATION_LEVELS:
                raise ProgrammingError(f"invalid isolation level {level!r}")
        elif not self._conn.closed and self.in_transaction:
            # Switching to autocommit ends the open transaction.
            self.commit()
        self._isolation_level = level

    @property
    def in_transaction(self):
        self._check_open()
        return not self._conn.is_autocommit()

    @property
    def total_changes(self):
        return self._conn.total_changes()

    def _begin_if_needed(self):
        if self._isolation_level is None or not self._conn.is_autocommit():
            return
        self._conn.execute(f"BEGIN {self._isolation_level}".strip())

    def cursor(self):
        self._check_open()
        c = Cursor(self)
        self._cursors.add(c)
        return c

    def execute(self, operation, parameters=None):
        # Convenience method
        c = self.cursor()
        c.execute(operation, parameters)
        return c

    def executemany(self, operation, seq_of_parameters):
        c = self.cursor()
        c.executemany(operation, seq_of_parameters)
        return c

    def commit(self):
        self._check_open()
        if not self._conn.is_autocommit():
            self._conn.execute("COMMIT")

    def rollback(self):
        self._check_open()
        if not self._conn.is_autocommit():
            self._conn.execute("ROLLBACK")

    def interrupt(self):
        self._conn.interrupt()

    def close(self):
        if self._conn.closed:
            return
        for c in list(self._cursors):
            c.close()
        self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            self.rollback()
        else:
            self.commit()
        self.close()


def connect(database, *, timeout=5.0, isolation_level="DEFERRED", uri=False, stmt_cache_size=128, engine=None, flags=None):
    """Open a DB-API connection.

    ``timeout`` is the busy timeout in seconds. ``isolation_level=None``
    selects autocommit mode; any other level makes INSERT/UPDATE/DELETE/REPLACE
    open a transaction (``BEGIN <level>``) that lasts until commit/rollback.
    """
    if flags is None:
        flags = OpenFlags.READWRITE | OpenFlags.CREATE
        if uri:
            flags |= OpenFlags.URI
    conn = _Connection.open(
        database,
        flags,
        engine=engine,
        busy_timeout=int(float(timeout) * 1000),
        stmt_cache_size=int(stmt_cache_size),
    )
    return Connection(conn, isolation_level=isolation_level)
