import pytest
import typedlite
from sqlalchemy.dialects import registry

registry.register("typedlite", "typedlite_sqlalchemy.dialect", "TypedliteDialect")
registry.register("typedlite.typedlite", "typedlite_sqlalchemy.dialect", "TypedliteDialect")


@pytest.fixture(scope="session")
def engine():
    return typedlite.Engine()


@pytest.fixture
def conn(engine):
    conn = typedlite.connect(":memory:", engine=engine)
    yield conn
    conn.close(deferred=True)


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "test.db")
