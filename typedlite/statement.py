import collections
import collections.abc
import ctypes
import enum
import logging

from . import native
from .errors import (
    Error, InvalidColumnIndexError, InvalidColumnNameError, InvalidTextError, NoRowsReturnedError,
    NotSupportedError, ParameterCountMismatchError, ParameterNotFoundError,
    StaleRowError, UnexpectedChangeCountError, UnexpectedRowsError,
    UnknownColumnTypeError, UnsupportedParameterTypeError, UseAfterFinalizeError,
    error_message, translate,
)
from .rows import Row, Rows
from .values import NULL, Blob, Integer, Null, Real, Text, ValueType, to_value

logger = logging.getLogger(__name__)


class StatementState(enum.Enum):
    PREPARED = "prepared"
    ROW_READY = "row_ready"
    EXHAUSTED = "exhausted"
    FINALIZED = "finalized"


Column = collections.namedtuple("Column", ["name", "decl_type"])

# Named parameters may be written with any of these prefixes.
_NAME_PREFIXES = (":", "@", "$")


class Statement:
    """A prepared statement borrowed from a :class:`Connection`.

    The statement moves through ``PREPARED -> ROW_READY -> EXHAUSTED`` as it
    is stepped and returns to ``PREPARED`` on :meth:`reset`. Bindings survive
    a reset and are only dropped by :meth:`clear_bindings`. Once finalized,
    every method except :meth:`finalize` and :meth:`close` raises
    :class:`UseAfterFinalizeError`.

    Instances are not thread-safe.
    """

    def __init__(self, connection, handle, sql):
        self._connection = connection
        self._engine = connection.engine
        self._lib = connection.engine.lib
        self._handle = handle
        self._sql = sql
        self._state = StatementState.PREPARED
        # Bumped on every cursor movement; rows compare against it.
        self._generation = 0
        # Bumped on every reset; row sequences compare against it.
        self._epoch = 0
        self._surfaced_error = None
        self._last_params = None
        self._cached = False

    def __repr__(self):
        return f"<Statement {self._state.value} {self._sql!r}>"

    @property
    def sql(self):
        return self._sql

    @property
    def state(self):
        return self._state

    @property
    def finalized(self):
        return self._state is StatementState.FINALIZED

    @property
    def connection(self):
        return self._connection

    def _check(self):
        if self._state is StatementState.FINALIZED:
            raise UseAfterFinalizeError(self._sql)

    def _raise(self, code):
        raise translate(
            self._engine,
            self._connection._db,
            code,
            sql=self._sql,
            params=self._last_params,
        )

    def _already_surfaced(self, code):
        return self._surfaced_error is not None and (self._surfaced_error & 0xFF) == (code & 0xFF)

    # Binding

    def parameter_count(self):
        self._check()
        return self._lib.sqlite3_bind_parameter_count(self._handle)

    def parameter_name(self, index):
        self._check()
        raw = self._lib.sqlite3_bind_parameter_name(self._handle, index)
        return raw.decode("utf-8") if raw else None

    def _lookup_parameter(self, name):
        if name[:1] in _NAME_PREFIXES:
            candidates = [name]
        else:
            candidates = [prefix + name for prefix in _NAME_PREFIXES]
        for candidate in candidates:
            index = self._lib.sqlite3_bind_parameter_index(self._handle, candidate.encode("utf-8"))
            if index:
                return index
        return 0

    def parameter_index(self, name):
        """1-based index of a named parameter, with or without its prefix."""
        self._check()
        index = self._lookup_parameter(name)
        if index == 0:
            raise ParameterNotFoundError(name)
        return index

    def bind_parameter(self, index, param):
        """Bind one positional slot. ``index`` is 1-based."""
        self._check()
        self._bind_value(index, to_value(param))

    def _bind_value(self, index, value):
        lib = self._lib
        handle = self._handle
        if isinstance(value, Null):
            rc = lib.sqlite3_bind_null(handle, index)
        elif isinstance(value, Integer):
            rc = lib.sqlite3_bind_int64(handle, index, value.value)
        elif isinstance(value, Real):
            rc = lib.sqlite3_bind_double(handle, index, value.value)
        elif isinstance(value, Text):
            b = value.value.encode("utf-8")
            rc = lib.sqlite3_bind_text(handle, index, b, len(b), native.SQLITE_TRANSIENT)
        elif isinstance(value, Blob):
            b = value.value
            rc = lib.sqlite3_bind_blob(handle, index, b, len(b), native.SQLITE_TRANSIENT)
        else:
            raise UnsupportedParameterTypeError(type(value))

        if rc != native.OK:
            self._raise(rc)

    def bind(self, params):
        """Bind a sequence (positional) or a mapping (named) of parameters.

        ``None`` leaves the current bindings untouched.
        """
        self._check()
        if params is None:
            return
        self._last_params = params
        if isinstance(params, collections.abc.Mapping):
            for name, param in params.items():
                index = self._lookup_parameter(name)
                if index == 0:
                    raise ParameterNotFoundError(name)
                self._bind_value(index, to_value(param))
            return

        if isinstance(params, (str, bytes, bytearray)):
            raise UnsupportedParameterTypeError(type(params))

        values = [to_value(p) for p in params]
        expected = self.parameter_count()
        if len(values) != expected:
            raise ParameterCountMismatchError(len(values), expected)
        for i, value in enumerate(values):
            self._bind_value(i + 1, value)

    def clear_bindings(self):
        self._check()
        rc = self._lib.sqlite3_clear_bindings(self._handle)
        if rc != native.OK:
            self._raise(rc)

    # Cursor movement

    def step(self):
        """Advance once. Returns True when a row is ready, False when done."""
        self._check()
        rc = self._lib.sqlite3_step(self._handle)
        self._generation += 1
        if rc == native.ROW:
            self._state = StatementState.ROW_READY
            return True
        if rc == native.DONE:
            self._state = StatementState.EXHAUSTED
            return False
        self._surfaced_error = rc
        self._raise(rc)

    def reset(self):
        self._check()
        rc = self._lib.sqlite3_reset(self._handle)
        self._generation += 1
        self._epoch += 1
        self._state = StatementState.PREPARED
        if rc != native.OK and not self._already_surfaced(rc):
            self._surfaced_error = None
            self._raise(rc)
        self._surfaced_error = None

    def _rewind(self):
        if self._state is not StatementState.PREPARED or self._surfaced_error is not None:
            self.reset()

    def _release(self):
        handle = self._handle
        self._handle = None
        self._state = StatementState.FINALIZED
        self._generation += 1
        self._epoch += 1
        return self._lib.sqlite3_finalize(handle)

    def finalize(self):
        """Release the engine handle. A second call is a no-op.

        Raises an engine error only for a failure that an earlier ``step``
        has not already reported.
        """
        if self._state is StatementState.FINALIZED:
            return
        rc = self._release()
        if rc != native.OK and not self._already_surfaced(rc):
            raise translate(self._engine, self._connection._db, rc, sql=self._sql)

    def close(self):
        """Finalize, or hand a cached statement back to its connection."""
        if self._state is StatementState.FINALIZED:
            return
        if self._cached and not self._connection.closed:
            self._connection._recycle_statement(self)
        else:
            self.finalize()

    def _finalize_quietly(self):
        if self._state is StatementState.FINALIZED or self._handle is None:
            return
        rc = self._release()
        if rc != native.OK and not self._already_surfaced(rc):
            logger.warning(
                "finalize of %r failed: %s",
                self._sql,
                error_message(self._engine, self._connection._db, rc),
            )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.close()
            return
        # Do not mask the exception already in flight.
        try:
            self.close()
        except Error as e:
            logger.warning("closing %r after %s failed: %s", self._sql, exc_type.__name__, e)

    def __del__(self):
        if getattr(self, "_handle", None) is None:
            return
        self._finalize_quietly()

    # Convenience operations

    def execute(self, params=None):
        """Run a statement that produces no rows; returns the change count."""
        self._check()
        self._rewind()
        self.bind(params)
        if self.step():
            self.reset()
            raise UnexpectedRowsError(self._sql)
        return self._connection.changes()

    def insert(self, params=None):
        """Run a single-row INSERT and return the new row id."""
        changes = self.execute(params)
        if changes != 1:
            raise UnexpectedChangeCountError(1, changes)
        return self._connection.last_insert_row_id()

    def query(self, params=None):
        """Bind and return a lazy :class:`Rows`; nothing is stepped yet."""
        self._check()
        self._rewind()
        self.bind(params)
        return Rows(self)

    def query_map(self, params, transform):
        return self.query(params).map(transform)

    def query_row(self, params=None, transform=None):
        rows = self.query(params)
        row = rows.next()
        if row is None:
            raise NoRowsReturnedError()
        if transform is None:
            return row.as_tuple()
        return transform(row)

    def exists(self, params=None):
        return self.query(params).has_next()

    # Columns

    def column_count(self):
        self._check()
        return self._lib.sqlite3_column_count(self._handle)

    def _check_column(self, index):
        count = self.column_count()
        if not 0 <= index < count:
            raise InvalidColumnIndexError(index, count)

    def column_name(self, index):
        self._check_column(index)
        raw = self._lib.sqlite3_column_name(self._handle, index)
        return raw.decode("utf-8") if raw else ""

    def column_names(self):
        # Read fresh each time: a schema change recompiles the statement on its next step.
        self._check()
        return [self.column_name(i) for i in range(self.column_count())]

    def column_index(self, name):
        """Case-insensitive lookup; the first matching column wins."""
        wanted = name.lower()
        for i, column in enumerate(self.column_names()):
            if column.lower() == wanted:
                return i
        raise InvalidColumnNameError(name)

    def column_decltype(self, index):
        self._check_column(index)
        raw = self._lib.sqlite3_column_decltype(self._handle, index)
        return raw.decode("utf-8") if raw else None

    def columns(self):
        return [Column(name, self.column_decltype(i)) for i, name in enumerate(self.column_names())]

    def readonly(self):
        self._check()
        return bool(self._lib.sqlite3_stmt_readonly(self._handle))

    def is_explain(self):
        """0 for a plain statement, 1 for EXPLAIN, 2 for EXPLAIN QUERY PLAN."""
        self._check()
        if not self._engine.has("sqlite3_stmt_isexplain"):
            raise NotSupportedError("sqlite3_stmt_isexplain requires SQLite 3.28 or newer")
        return self._lib.sqlite3_stmt_isexplain(self._handle)

    def expanded_sql(self):
        self._check()
        ptr = self._lib.sqlite3_expanded_sql(self._handle)
        if not ptr:
            return None
        try:
            return ctypes.string_at(ptr).decode("utf-8", errors="replace")
        finally:
            # Free engine-allocated memory
            self._lib.sqlite3_free(ptr)

    # Row decoding

    def _check_row(self, generation):
        if (
            self._state is not StatementState.ROW_READY
            or generation != self._generation
        ):
            raise StaleRowError("row is no longer valid: the statement has moved on")

    def _column_value(self, index):
        self._check_column(index)
        lib = self._lib
        handle = self._handle
        kind = lib.sqlite3_column_type(handle, index)
        if kind == ValueType.INTEGER:
            return Integer(lib.sqlite3_column_int64(handle, index))
        if kind == ValueType.REAL:
            return Real(lib.sqlite3_column_double(handle, index))
        if kind == ValueType.TEXT:
            # Text pointer first, then its length.
            ptr = lib.sqlite3_column_text(handle, index)
            n = lib.sqlite3_column_bytes(handle, index)
            if not ptr or n <= 0:
                return Text("")
            raw = ctypes.string_at(ptr, n)
            try:
                return Text(raw.decode("utf-8"))
            except UnicodeDecodeError as e:
                raise InvalidTextError(index, raw) from e
        if kind == ValueType.BLOB:
            ptr = lib.sqlite3_column_blob(handle, index)
            n = lib.sqlite3_column_bytes(handle, index)
            if ptr and n > 0:
                return Blob(ctypes.string_at(ptr, n))
            return Blob(b"")
        if kind == ValueType.NULL:
            return NULL
        raise UnknownColumnTypeError(kind)

    def _advance(self):
        if self.step():
            return Row(self, self._generation)
        return None
