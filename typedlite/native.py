import ctypes
import ctypes.util
import enum
import os
import threading
from ctypes import c_int, c_int64, c_double, c_char_p, c_void_p, POINTER

# Primary result codes (must match sqlite3.h).
OK = 0
ERROR = 1
INTERNAL = 2
PERM = 3
ABORT = 4
BUSY = 5
LOCKED = 6
NOMEM = 7
READONLY = 8
INTERRUPT = 9
IOERR = 10
CORRUPT = 11
NOTFOUND = 12
FULL = 13
CANTOPEN = 14
PROTOCOL = 15
EMPTY = 16
SCHEMA = 17
TOOBIG = 18
CONSTRAINT = 19
MISMATCH = 20
MISUSE = 21
NOLFS = 22
AUTH = 23
FORMAT = 24
RANGE = 25
NOTADB = 26
NOTICE = 27
WARNING = 28
ROW = 100
DONE = 101

_CODE_NAMES = {
    value: "SQLITE_" + name
    for name, value in dict(globals()).items()
    if name.isupper() and isinstance(value, int)
}


def result_code_name(code):
    """Symbolic name for a (possibly extended) result code."""
    name = _CODE_NAMES.get(code & 0xFF)
    if name is None:
        return f"SQLITE_UNKNOWN_{code}"
    return name


# Destructor sentinel: the engine copies the buffer before the bind call returns.
SQLITE_TRANSIENT = c_void_p(-1)

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1


class OpenFlags(enum.IntFlag):
    READONLY = 0x00000001
    READWRITE = 0x00000002
    CREATE = 0x00000004
    URI = 0x00000040
    MEMORY = 0x00000080
    NOMUTEX = 0x00008000
    FULLMUTEX = 0x00010000
    SHAREDCACHE = 0x00020000
    PRIVATECACHE = 0x00040000

    DEFAULT = READWRITE | CREATE | URI


_LIB_NAMES = [
    "libsqlite3.so.0",
    "libsqlite3.so",
    "libsqlite3.0.dylib",
    "libsqlite3.dylib",
    "sqlite3.dll",
]


def find_library_path():
    lib_path = os.environ.get("TYPEDLITE_NATIVE_LIB")
    if lib_path:
        return lib_path
    found = ctypes.util.find_library("sqlite3")
    if found:
        return found
    # Fall back to the loader's own search path.
    for name in _LIB_NAMES:
        try:
            ctypes.CDLL(name)
        except OSError:
            continue
        return name
    return None


def _declare(lib):
    # Connection lifecycle
    lib.sqlite3_open_v2.argtypes = [c_char_p, POINTER(c_void_p), c_int, c_char_p]
    lib.sqlite3_open_v2.restype = c_int

    lib.sqlite3_close.argtypes = [c_void_p]
    lib.sqlite3_close.restype = c_int

    lib.sqlite3_close_v2.argtypes = [c_void_p]
    lib.sqlite3_close_v2.restype = c_int

    lib.sqlite3_busy_timeout.argtypes = [c_void_p, c_int]
    lib.sqlite3_busy_timeout.restype = c_int

    lib.sqlite3_interrupt.argtypes = [c_void_p]
    lib.sqlite3_interrupt.restype = None

    lib.sqlite3_get_autocommit.argtypes = [c_void_p]
    lib.sqlite3_get_autocommit.restype = c_int

    # Errors
    lib.sqlite3_errcode.argtypes = [c_void_p]
    lib.sqlite3_errcode.restype = c_int

    lib.sqlite3_extended_errcode.argtypes = [c_void_p]
    lib.sqlite3_extended_errcode.restype = c_int

    lib.sqlite3_errmsg.argtypes = [c_void_p]
    lib.sqlite3_errmsg.restype = c_char_p

    lib.sqlite3_errstr.argtypes = [c_int]
    lib.sqlite3_errstr.restype = c_char_p

    # Change counters
    lib.sqlite3_changes.argtypes = [c_void_p]
    lib.sqlite3_changes.restype = c_int

    lib.sqlite3_total_changes.argtypes = [c_void_p]
    lib.sqlite3_total_changes.restype = c_int

    lib.sqlite3_last_insert_rowid.argtypes = [c_void_p]
    lib.sqlite3_last_insert_rowid.restype = c_int64

    # Statements
    lib.sqlite3_prepare_v2.argtypes = [c_void_p, c_void_p, c_int, POINTER(c_void_p), POINTER(c_void_p)]
    lib.sqlite3_prepare_v2.restype = c_int

    lib.sqlite3_finalize.argtypes = [c_void_p]
    lib.sqlite3_finalize.restype = c_int

    lib.sqlite3_reset.argtypes = [c_void_p]
    lib.sqlite3_reset.restype = c_int

    lib.sqlite3_clear_bindings.argtypes = [c_void_p]
    lib.sqlite3_clear_bindings.restype = c_int

    lib.sqlite3_step.argtypes = [c_void_p]
    lib.sqlite3_step.restype = c_int

    lib.sqlite3_sql.argtypes = [c_void_p]
    lib.sqlite3_sql.restype = c_char_p

    lib.sqlite3_expanded_sql.argtypes = [c_void_p]
    lib.sqlite3_expanded_sql.restype = c_void_p

    lib.sqlite3_free.argtypes = [c_void_p]
    lib.sqlite3_free.restype = None

    lib.sqlite3_stmt_readonly.argtypes = [c_void_p]
    lib.sqlite3_stmt_readonly.restype = c_int

    # Bindings
    lib.sqlite3_bind_parameter_count.argtypes = [c_void_p]
    lib.sqlite3_bind_parameter_count.restype = c_int

    lib.sqlite3_bind_parameter_index.argtypes = [c_void_p, c_char_p]
    lib.sqlite3_bind_parameter_index.restype = c_int

    lib.sqlite3_bind_parameter_name.argtypes = [c_void_p, c_int]
    lib.sqlite3_bind_parameter_name.restype = c_char_p

    lib.sqlite3_bind_null.argtypes = [c_void_p, c_int]
    lib.sqlite3_bind_null.restype = c_int

    lib.sqlite3_bind_int64.argtypes = [c_void_p, c_int, c_int64]
    lib.sqlite3_bind_int64.restype = c_int

    lib.sqlite3_bind_double.argtypes = [c_void_p, c_int, c_double]
    lib.sqlite3_bind_double.restype = c_int

    lib.sqlite3_bind_text.argtypes = [c_void_p, c_int, c_char_p, c_int, c_void_p]
    lib.sqlite3_bind_text.restype = c_int

    lib.sqlite3_bind_blob.argtypes = [c_void_p, c_int, c_char_p, c_int, c_void_p]
    lib.sqlite3_bind_blob.restype = c_int

    # Columns
    lib.sqlite3_column_count.argtypes = [c_void_p]
    lib.sqlite3_column_count.restype = c_int

    lib.sqlite3_column_name.argtypes = [c_void_p, c_int]
    lib.sqlite3_column_name.restype = c_char_p

    lib.sqlite3_column_decltype.argtypes = [c_void_p, c_int]
    lib.sqlite3_column_decltype.restype = c_char_p

    lib.sqlite3_column_type.argtypes = [c_void_p, c_int]
    lib.sqlite3_column_type.restype = c_int

    lib.sqlite3_column_int64.argtypes = [c_void_p, c_int]
    lib.sqlite3_column_int64.restype = c_int64

    lib.sqlite3_column_double.argtypes = [c_void_p, c_int]
    lib.sqlite3_column_double.restype = c_double

    # Text and blob come back as raw pointers; the length is read separately.
    lib.sqlite3_column_text.argtypes = [c_void_p, c_int]
    lib.sqlite3_column_text.restype = c_void_p

    lib.sqlite3_column_blob.argtypes = [c_void_p, c_int]
    lib.sqlite3_column_blob.restype = c_void_p

    lib.sqlite3_column_bytes.argtypes = [c_void_p, c_int]
    lib.sqlite3_column_bytes.restype = c_int

    lib.sqlite3_libversion.argtypes = []
    lib.sqlite3_libversion.restype = c_char_p

    # Optional entry points (newer libraries only)
    if hasattr(lib, "sqlite3_changes64"):
        lib.sqlite3_changes64.argtypes = [c_void_p]
        lib.sqlite3_changes64.restype = c_int64

    if hasattr(lib, "sqlite3_total_changes64"):
        lib.sqlite3_total_changes64.argtypes = [c_void_p]
        lib.sqlite3_total_changes64.restype = c_int64

    if hasattr(lib, "sqlite3_stmt_isexplain"):
        lib.sqlite3_stmt_isexplain.argtypes = [c_void_p]
        lib.sqlite3_stmt_isexplain.restype = c_int


class Engine:
    """Handle over the loaded SQLite library.

    Construct one per process and pass it to every connection. ``shared()``
    returns a process-wide instance for callers that do not manage their own.
    """

    _shared = None
    _shared_lock = threading.Lock()

    def __init__(self, lib_path=None):
        if not lib_path:
            lib_path = find_library_path()
        if not lib_path:
            raise RuntimeError("Could not find the sqlite3 native library. Set TYPEDLITE_NATIVE_LIB env var.")

        try:
            lib = ctypes.CDLL(lib_path)
        except OSError as e:
            raise RuntimeError(f"Failed to load sqlite3 native library at {lib_path}: {e}")

        _declare(lib)
        self.lib = lib
        self.path = lib_path

    @classmethod
    def shared(cls):
        with cls._shared_lock:
            if cls._shared is None:
                cls._shared = cls()
            return cls._shared

    def has(self, symbol):
        return hasattr(self.lib, symbol)

    @property
    def version(self):
        return self.lib.sqlite3_libversion().decode("ascii")

    @property
    def version_info(self):
        return tuple(int(part) for part in self.version.split("."))

    def errstr(self, code):
        raw = self.lib.sqlite3_errstr(code)
        if not raw:
            return None
        return raw.decode("utf-8", errors="replace")

    def __repr__(self):
        return f"<Engine {self.path!r}>"
