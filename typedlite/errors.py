"""Error taxonomy and translation of engine result codes.

The class names at the top of the hierarchy follow DB-API 2.0 so that
``typedlite.dbapi`` (and SQLAlchemy on top of it) can classify any error
raised by the typed layer without another mapping step.
"""

import collections.abc
import json

from . import native


class Warning(Exception):
    pass


class Error(Exception):
    pass


class InterfaceError(Error):
    pass


class DatabaseError(Error):
    pass


class InternalError(DatabaseError):
    pass


class OperationalError(DatabaseError):
    pass


class ProgrammingError(DatabaseError):
    pass


class IntegrityError(DatabaseError):
    pass


class DataError(DatabaseError):
    pass


class NotSupportedError(DatabaseError):
    pass


# Engine errors

class EngineError(DatabaseError):
    """A non-OK result code returned by the engine."""

    def __init__(self, message, code, extended_code=None, context=None):
        self.message = message
        self.code = code & 0xFF
        self.extended_code = code if extended_code is None else extended_code
        self.name = native.result_code_name(self.code)
        self.context = context
        text = message
        if context is not None:
            text = text + "\nContext: " + json.dumps(context, ensure_ascii=False)
        super().__init__(text)


class EngineOperationalError(EngineError, OperationalError):
    pass


class EngineIntegrityError(EngineError, IntegrityError):
    pass


class EngineProgrammingError(EngineError, ProgrammingError):
    pass


class EngineDataError(EngineError, DataError):
    pass


class EngineInternalError(EngineError, InternalError):
    pass


class EngineNotSupportedError(EngineError, NotSupportedError):
    pass


class PrepareError(EngineProgrammingError):
    pass


_CATEGORY = {
    native.CONSTRAINT: EngineIntegrityError,
    native.BUSY: EngineOperationalError,
    native.LOCKED: EngineOperationalError,
    native.IOERR: EngineOperationalError,
    native.FULL: EngineOperationalError,
    native.CANTOPEN: EngineOperationalError,
    native.PROTOCOL: EngineOperationalError,
    native.READONLY: EngineOperationalError,
    native.INTERRUPT: EngineOperationalError,
    native.PERM: EngineOperationalError,
    native.ABORT: EngineOperationalError,
    native.NOMEM: EngineOperationalError,
    native.AUTH: EngineOperationalError,
    native.NOTFOUND: EngineOperationalError,
    native.TOOBIG: EngineDataError,
    native.MISMATCH: EngineDataError,
    native.INTERNAL: EngineInternalError,
    native.CORRUPT: EngineInternalError,
    native.NOTADB: EngineInternalError,
    native.FORMAT: EngineInternalError,
    native.NOLFS: EngineNotSupportedError,
}


# Protocol / misuse errors

class ConnectionClosedError(InterfaceError):
    def __init__(self):
        super().__init__("connection closed")


class MisuseError(InterfaceError):
    pass


class UseAfterFinalizeError(MisuseError):
    def __init__(self, sql=None):
        self.sql = sql
        super().__init__("statement used after finalize")


class UnexpectedRowsError(MisuseError):
    def __init__(self, sql=None):
        self.sql = sql
        super().__init__("execute() produced rows; use query() for row-returning statements")


class UnknownColumnTypeError(MisuseError):
    def __init__(self, code):
        self.code = code
        super().__init__(f"unknown column type code {code}")


class InvalidColumnIndexError(MisuseError):
    def __init__(self, index, count):
        self.index = index
        self.count = count
        super().__init__(f"column index {index} out of range (column count {count})")


class InvalidColumnNameError(MisuseError):
    def __init__(self, name):
        self.name = name
        super().__init__(f"no such column: {name!r}")


class StaleRowError(MisuseError):
    pass


class InvalidTextError(DataError):
    def __init__(self, index, raw):
        self.index = index
        self.raw = raw
        super().__init__(f"column {index} holds text that is not valid UTF-8; read it as a blob instead")


# Binding errors

class BindingError(ProgrammingError):
    pass


class ParameterCountMismatchError(BindingError):
    def __init__(self, got, expected):
        self.got = got
        self.expected = expected
        super().__init__(f"Incorrect number of parameters: expected {expected}, got {got}")


class ParameterNotFoundError(BindingError):
    def __init__(self, name):
        self.name = name
        super().__init__(f"Missing parameter '{name}'")


class UnsupportedParameterTypeError(BindingError):
    def __init__(self, type_):
        self.type = type_
        super().__init__(f"unsupported parameter type: {type_.__name__}")


class ParameterOverflowError(BindingError):
    def __init__(self, value):
        self.value = value
        super().__init__("integer parameter does not fit in 64 bits")


class MultipleStatementsError(ProgrammingError):
    def __init__(self, sql=None):
        self.sql = sql
        super().__init__("You can only execute one statement at a time.")


class EmptyStatementError(ProgrammingError):
    def __init__(self, sql=None):
        self.sql = sql
        super().__init__("SQL contains no statement")


# Cardinality errors

class CardinalityError(DatabaseError):
    pass


class NoRowsReturnedError(CardinalityError):
    def __init__(self):
        super().__init__("query returned no rows")


class UnexpectedChangeCountError(CardinalityError):
    def __init__(self, expected, actual):
        self.expected = expected
        self.actual = actual
        super().__init__(f"expected {expected} changed row(s), got {actual}")


def _format_value_for_error(v, *, max_str=200, max_bytes=64):
    if v is None:
        return None
    if isinstance(v, (bool, int, float)):
        return v
    if isinstance(v, (bytes, bytearray, memoryview)):
        b = bytes(v)
        if len(b) <= max_bytes:
            return {"_type": "bytes", "hex": b.hex(), "len": len(b)}
        head = b[:max_bytes]
        return {"_type": "bytes", "hex_prefix": head.hex(), "len": len(b)}
    if isinstance(v, str):
        if len(v) <= max_str:
            return v
        return v[:max_str] + "…"
    # Fall back to capped repr
    s = repr(v)
    if len(s) <= max_str:
        return s
    return s[:max_str] + "…"


def _format_params_for_error(params, *, max_items=50):
    if params is None:
        return None
    if isinstance(params, collections.abc.Mapping):
        out = {}
        for i, (k, v) in enumerate(params.items()):
            if i >= max_items:
                out["_truncated"] = True
                break
            out[str(k)] = _format_value_for_error(v)
        return out
    # Sequence-like
    try:
        seq = list(params)
    except TypeError:
        return _format_value_for_error(params)
    if len(seq) > max_items:
        seq = seq[:max_items] + ["<truncated>"]
    return [_format_value_for_error(v) for v in seq]


def error_message(engine, db_handle, code):
    """Best-effort description of ``code``; never raises."""
    lib = engine.lib
    if db_handle:
        if lib.sqlite3_errcode(db_handle) & 0xFF == code & 0xFF:
            msg = lib.sqlite3_errmsg(db_handle)
            if msg:
                return msg.decode("utf-8", errors="replace")
    description = engine.errstr(code)
    if description:
        return description
    return f"unknown engine error (code {code})"


def translate(engine, db_handle, code, *, sql=None, params=None, error_class=None):
    """Build the structured error for a non-OK result ``code``.

    ``db_handle`` may be None (for instance when ``open`` failed before a
    handle existed). When ``sql`` is given, a JSON ``Context:`` suffix carrying
    the native code, the SQL text and the (size-capped) parameters is added
    to the message.
    """
    message = error_message(engine, db_handle, code)

    extended = code
    if db_handle and engine.lib.sqlite3_errcode(db_handle) & 0xFF == code & 0xFF:
        extended = engine.lib.sqlite3_extended_errcode(db_handle)

    context = None
    if sql is not None:
        context = {
            "native_code": int(code),
            "sql": sql,
            "params": _format_params_for_error(params),
        }

    if error_class is None:
        error_class = _CATEGORY.get(code & 0xFF, EngineProgrammingError)
    return error_class(message, code, extended, context)
