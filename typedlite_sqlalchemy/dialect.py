from sqlalchemy import exc
from sqlalchemy import pool
from sqlalchemy.dialects.sqlite.base import SQLiteDialect

import typedlite
from typedlite import dbapi as typedlite_dbapi


class TypedliteDialect(SQLiteDialect):
    driver = "typedlite"
    supports_statement_cache = True
    returns_native_bytes = True
    default_paramstyle = "qmark"

    _isolation_lookup = SQLiteDialect._isolation_lookup.union(
        {
            "AUTOCOMMIT": None,
        }
    )

    @classmethod
    def import_dbapi(cls):
        return typedlite_dbapi

    @classmethod
    def get_pool_class(cls, url):
        if url.database and url.database != ":memory:":
            return pool.QueuePool
        # One in-memory database per connection; keep it to one connection.
        return pool.SingletonThreadPool

    def _get_server_version_info(self, connection):
        return self.dbapi.sqlite_version_info

    def retrieve_dbapi_version(self, dbapi):
        return tuple(int(part) for part in typedlite.__version__.split("."))

    def set_isolation_level(self, dbapi_connection, level):
        if level == "AUTOCOMMIT":
            dbapi_connection.isolation_level = None
        else:
            dbapi_connection.isolation_level = dbapi_connection.default_isolation_level
            return super().set_isolation_level(dbapi_connection, level)

    def detect_autocommit_setting(self, dbapi_conn):
        return dbapi_conn.isolation_level is None

    def create_connect_args(self, url):
        # url is typedlite:////path/to.db
        if url.username or url.password or url.host or url.port:
            raise exc.ArgumentError(
                f"Invalid typedlite URL: {url}\n"
                "Valid forms are typedlite:// (in-memory) and typedlite:///path/to/file.db"
            )

        opts = dict(url.query)  # Convert to mutable dict
        path = url.database or ":memory:"

        kwargs = {}
        if "timeout" in opts:
            kwargs["timeout"] = float(opts.pop("timeout"))
        if "stmt_cache_size" in opts:
            kwargs["stmt_cache_size"] = int(opts.pop("stmt_cache_size"))
        if "isolation_level" in opts:
            level = opts.pop("isolation_level")
            kwargs["isolation_level"] = None if level.upper() in ("NONE", "AUTOCOMMIT") else level
        if "uri" in opts:
            kwargs["uri"] = opts.pop("uri").lower() in ("1", "true", "yes", "on")
        if opts:
            raise exc.ArgumentError(f"Unknown typedlite URL options: {', '.join(sorted(opts))}")

        return ([path], kwargs)


dialect = TypedliteDialect
