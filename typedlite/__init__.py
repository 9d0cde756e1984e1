"""Typed client layer over the SQLite C API.

    >>> import typedlite
    >>> with typedlite.connect(":memory:") as conn:
    ...     conn.execute("CREATE TABLE t (a INT, b TEXT)")
    ...     with conn.prepare("INSERT INTO t (a, b) VALUES (?, ?)") as stmt:
    ...         stmt.insert((1, "x"))
    ...     conn.query_row("SELECT a, b FROM t")
    0
    1
    (1, 'x')
"""

from .connection import Connection, connect
from .errors import (
    BindingError, CardinalityError, ConnectionClosedError, DataError,
    DatabaseError, EmptyStatementError, EngineDataError, EngineError,
    EngineIntegrityError, EngineInternalError, EngineNotSupportedError,
    EngineOperationalError, EngineProgrammingError, Error, IntegrityError,
    InterfaceError, InternalError, InvalidColumnIndexError,
    InvalidColumnNameError, InvalidTextError, MisuseError, MultipleStatementsError,
    NoRowsReturnedError, NotSupportedError, OperationalError,
    ParameterCountMismatchError, ParameterNotFoundError, ParameterOverflowError,
    PrepareError, ProgrammingError, StaleRowError, UnexpectedChangeCountError,
    UnexpectedRowsError, UnknownColumnTypeError, UnsupportedParameterTypeError,
    UseAfterFinalizeError, Warning, translate,
)
from .native import Engine, OpenFlags
from .rows import MappedRows, Row, Rows
from .statement import Column, Statement, StatementState
from .values import NULL, Blob, Integer, Null, Real, Text, Value, ValueType, to_value

__version__ = "0.1.0"
