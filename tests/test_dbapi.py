import pytest
import typedlite
from typedlite import dbapi


def test_module_globals():
    assert dbapi.apilevel == "2.0"
    assert dbapi.paramstyle == "qmark"
    assert dbapi.sqlite_version_info >= (3, 0, 0)
    assert dbapi.sqlite_version.startswith("3.")
    with pytest.raises(AttributeError):
        dbapi.no_such_thing


def test_connect(db_path):
    conn = dbapi.connect(db_path)
    assert conn is not None
    conn.close()


def test_ddl_and_insert(db_path):
    conn = dbapi.connect(db_path)
    cur = conn.cursor()

    cur.execute("CREATE TABLE foo (id INTEGER, name TEXT)")
    cur.execute("INSERT INTO foo VALUES (1, 'alice')")
    cur.execute("INSERT INTO foo VALUES (2, 'bob')")

    conn.commit()
    conn.close()

    # Reopen and verify
    conn = dbapi.connect(db_path)
    cur = conn.cursor()
    cur.execute("SELECT * FROM foo ORDER BY id")
    rows = cur.fetchall()

    assert len(rows) == 2
    assert rows[0] == (1, 'alice')
    assert rows[1] == (2, 'bob')
    assert [d[0] for d in cur.description] == ["id", "name"]

    conn.close()


def test_parameters(db_path):
    conn = dbapi.connect(db_path)
    cur = conn.cursor()
    cur.execute("CREATE TABLE foo (id INTEGER, val TEXT)")

    cur.execute("INSERT INTO foo VALUES (?, ?)", (1, "a"))
    # Named args
    cur.execute("INSERT INTO foo VALUES (:id, :val)", {"id": 2, "val": "b"})

    conn.commit()

    cur.execute("SELECT * FROM foo WHERE id = ?", (1,))
    assert cur.fetchone() == (1, "a")

    cur.execute("SELECT * FROM foo WHERE id = :target", {"target": 2})
    assert cur.fetchone() == (2, "b")
    assert cur.fetchone() is None

    conn.close()


def test_parameter_count_mismatch(db_path):
    conn = dbapi.connect(db_path)
    cur = conn.cursor()
    with pytest.raises(dbapi.ProgrammingError) as excinfo:
        cur.execute("SELECT ?, ?", (1,))
    assert isinstance(excinfo.value, typedlite.ParameterCountMismatchError)
    conn.close()


def test_fetchmany(db_path):
    conn = dbapi.connect(db_path)
    cur = conn.cursor()
    cur.execute("CREATE TABLE foo (id INTEGER)")

    for i in range(10):
        cur.execute("INSERT INTO foo VALUES (?)", (i,))
    conn.commit()

    cur.execute("SELECT * FROM foo ORDER BY id")
    batch = cur.fetchmany(3)
    assert len(batch) == 3
    assert batch[0][0] == 0

    batch = cur.fetchmany(3)
    assert len(batch) == 3
    assert batch[0][0] == 3

    batch = cur.fetchmany(5)  # Remaining 4
    assert len(batch) == 4

    conn.close()


def test_types(db_path):
    conn = dbapi.connect(db_path)
    cur = conn.cursor()
    cur.execute("CREATE TABLE types (i INTEGER, f REAL, t TEXT, b BLOB, flag INTEGER, n TEXT)")

    blob_data = b'\x00\x01\x02'
    cur.execute("INSERT INTO types VALUES (?, ?, ?, ?, ?, ?)", (123, 3.14, "hello", blob_data, True, None))
    conn.commit()

    cur.execute("SELECT * FROM types")
    row = cur.fetchone()

    assert row[0] == 123
    assert abs(row[1] - 3.14) < 0.0001
    assert row[2] == "hello"
    assert row[3] == blob_data
    # Booleans are stored as integers.
    assert row[4] == 1
    assert row[5] is None

    conn.close()


def test_integrity_error_context(db_path):
    conn = dbapi.connect(db_path)
    cur = conn.cursor()
    cur.execute("CREATE TABLE foo (id INTEGER PRIMARY KEY)")
    cur.execute("INSERT INTO foo VALUES (?)", (1,))

    with pytest.raises(dbapi.IntegrityError) as excinfo:
        cur.execute("INSERT INTO foo VALUES (?)", (1,))
    msg = str(excinfo.value)
    assert "UNIQUE constraint failed" in msg
    assert "Context:" in msg
    assert "native_code" in msg
    assert "\"sql\":" in msg
    assert "\"params\":" in msg

    conn.close()


def test_rowcount_and_lastrowid(db_path):
    conn = dbapi.connect(db_path)
    cur = conn.cursor()
    cur.execute("CREATE TABLE foo (id INTEGER PRIMARY KEY, v INTEGER)")
    assert cur.rowcount == -1
    cur.execute("INSERT INTO foo (v) VALUES (10)")
    assert cur.rowcount == 1
    assert cur.lastrowid == 1
    cur.executemany("INSERT INTO foo (v) VALUES (?)", [(i,) for i in range(5)])
    assert cur.rowcount == 5
    cur.execute("UPDATE foo SET v = v + 1 WHERE v < ?", (3,))
    assert cur.rowcount == 3
    cur.execute("SELECT * FROM foo")
    assert cur.rowcount == -1
    conn.close()


def test_executemany_rejects_queries(db_path):
    conn = dbapi.connect(db_path)
    cur = conn.cursor()
    with pytest.raises(dbapi.ProgrammingError):
        cur.executemany("SELECT ?", [(1,), (2,)])
    conn.close()


def test_implicit_transaction_and_rollback(db_path):
    conn = dbapi.connect(db_path)
    cur = conn.cursor()
    cur.execute("CREATE TABLE foo (id INTEGER)")
    assert not conn.in_transaction

    cur.execute("INSERT INTO foo VALUES (1)")
    assert conn.in_transaction
    conn.rollback()
    assert not conn.in_transaction

    cur.execute("SELECT count(*) FROM foo")
    assert cur.fetchone() == (0,)

    cur.execute("INSERT INTO foo VALUES (2)")
    conn.commit()
    cur.execute("SELECT count(*) FROM foo")
    assert cur.fetchone() == (1,)
    conn.close()


def test_autocommit_mode(db_path):
    conn = dbapi.connect(db_path, isolation_level=None)
    assert conn.isolation_level is None
    conn.execute("CREATE TABLE foo (id INTEGER)")
    conn.execute("INSERT INTO foo VALUES (1)")
    assert not conn.in_transaction
    conn.close()

    conn = dbapi.connect(db_path)
    assert conn.execute("SELECT count(*) FROM foo").fetchone() == (1,)
    conn.close()


def test_switching_to_autocommit_commits(db_path):
    conn = dbapi.connect(db_path)
    conn.execute("CREATE TABLE foo (id INTEGER)")
    conn.execute("INSERT INTO foo VALUES (1)")
    assert conn.in_transaction
    conn.isolation_level = None
    assert not conn.in_transaction
    with pytest.raises(dbapi.ProgrammingError):
        conn.isolation_level = "SOMETIMES"
    conn.close()


def test_context_manager_commits(db_path):
    with dbapi.connect(db_path) as conn:
        conn.execute("CREATE TABLE foo (id INTEGER)")
        conn.execute("INSERT INTO foo VALUES (1)")

    with pytest.raises(RuntimeError):
        with dbapi.connect(db_path) as conn:
            conn.execute("INSERT INTO foo VALUES (2)")
            raise RuntimeError("abort")

    with dbapi.connect(db_path) as conn:
        assert conn.execute("SELECT id FROM foo").fetchall() == [(1,)]


def test_closed_cursor_and_connection(db_path):
    conn = dbapi.connect(db_path)
    cur = conn.cursor()
    cur.close()
    with pytest.raises(dbapi.ProgrammingError):
        cur.execute("SELECT 1")
    conn.close()
    with pytest.raises(dbapi.ProgrammingError):
        conn.cursor()
    # Closing twice is fine.
    conn.close()


def test_description_after_schema_change(db_path):
    conn = dbapi.connect(db_path)
    conn.execute("CREATE TABLE foo (a INTEGER)")
    conn.execute("INSERT INTO foo VALUES (1)")
    conn.commit()

    cur = conn.cursor()
    cur.execute("SELECT * FROM foo")
    assert [d[0] for d in cur.description] == ["a"]
    assert cur.fetchall() == [(1,)]

    conn.execute("ALTER TABLE foo ADD COLUMN b TEXT DEFAULT 'x'")

    cur.execute("SELECT * FROM foo")
    assert [d[0] for d in cur.description] == ["a", "b"]
    assert cur.fetchall() == [(1, "x")]
    conn.close()


def test_default_isolation_level(db_path):
    conn = dbapi.connect(db_path, isolation_level="immediate")
    assert conn.isolation_level == "IMMEDIATE"
    assert conn.default_isolation_level == "IMMEDIATE"
    conn.isolation_level = None
    assert conn.default_isolation_level == "IMMEDIATE"
    conn.close()

    conn = dbapi.connect(db_path, isolation_level=None)
    assert conn.default_isolation_level == "DEFERRED"
    conn.close()


def test_cursor_iteration(db_path):
    conn = dbapi.connect(db_path)
    cur = conn.execute("SELECT 1 UNION ALL SELECT 2")
    assert [row for row in cur] == [(1,), (2,)]
    conn.close()


def test_statement_cache_reuse(db_path):
    conn = dbapi.connect(db_path, stmt_cache_size=10)
    conn.execute("CREATE TABLE foo (id INTEGER)")
    conn.commit()
    stats = conn._conn._stats

    before = stats["prepare_count"]
    for i in range(3):
        cur = conn.cursor()
        cur.execute("INSERT INTO foo VALUES (?)", (i,))
        cur.close()
    # BEGIN is prepared once; the INSERT is prepared once and then served from the cache.
    assert stats["prepare_count"] == before + 2
    assert stats["cache_hit"] >= 2
    conn.commit()
    conn.close()
