# tests/plugins/sinks/test_database.py
"""Tests for the SQL destinations.

Uses a SQLite file through the `url` option; the PostgreSQL and MySQL
handlers share every code path except the URL they build.
"""

from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
from sqlalchemy import Column, Integer, MetaData, String, Table, create_engine, select
from sqlalchemy.engine import URL, Engine

from dataconductor.contracts import (
    ConfigurationError,
    ExternalCallError,
    InlineOutput,
    ItemStream,
    NodeExecutionContext,
    Summary,
)
from dataconductor.plugins.sinks.database import (
    DatabaseDestinationConfig,
    MySQLDestinationHandler,
    PostgresDestinationHandler,
)

MakeContext = Callable[..., NodeExecutionContext]

MAPPING = [
    {"column": "order_id", "sourcePath": "id"},
    {"column": "sku", "sourcePath": "lines[0].sku"},
    {"column": "ignored"},
]


@pytest.fixture
def db_url(tmp_path: Path) -> Iterator[str]:
    url = f"sqlite:///{tmp_path / 'dest.db'}"
    engine = create_engine(url)
    metadata = MetaData()
    Table(
        "orders",
        metadata,
        Column("order_id", Integer, nullable=False),
        Column("sku", String),
    )
    metadata.create_all(engine)
    engine.dispose()
    yield url


@pytest.fixture
def disposed(db_url: str, monkeypatch: pytest.MonkeyPatch) -> list[Engine]:
    """Engines disposed once the destination table exists."""
    calls: list[Engine] = []
    original = Engine.dispose

    def spy(self: Engine, close: bool = True) -> None:
        calls.append(self)
        original(self, close)

    monkeypatch.setattr(Engine, "dispose", spy)
    return calls


def _rows(url: str) -> list[tuple[Any, ...]]:
    engine = create_engine(url)
    try:
        with engine.connect() as conn:
            orders = Table("orders", MetaData(), autoload_with=conn)
            return [tuple(row) for row in conn.execute(select(orders.c.order_id, orders.c.sku))]
    finally:
        engine.dispose()


class TestSQLDestination:
    def test_inserts_one_row_per_item(self, make_context: MakeContext, db_url: str) -> None:
        items = [{"id": 1, "lines": [{"sku": "A"}]}, {"id": 2, "lines": []}]
        ctx = make_context({"url": db_url, "table": "orders", "mapping": MAPPING}, (ItemStream.of(items),))

        result = PostgresDestinationHandler().execute(ctx)

        assert result.output == Summary({"destination": "postgres", "inserted": 2, "table": "orders"})
        assert _rows(db_url) == [(1, "A"), (2, None)]

    def test_failure_keeps_committed_rows(self, make_context: MakeContext, db_url: str) -> None:
        # Second item has no id; order_id is NOT NULL
        items = [{"id": 1}, {"other": True}, {"id": 3}]
        ctx = make_context({"url": db_url, "table": "orders", "mapping": MAPPING}, (InlineOutput(items),))

        with pytest.raises(ExternalCallError, match="failed after 1 rows"):
            MySQLDestinationHandler().execute(ctx)

        assert _rows(db_url) == [(1, None)]

    def test_each_item_is_committed_before_the_next_is_pulled(self, make_context: MakeContext, db_url: str) -> None:
        def items() -> Iterator[dict[str, Any]]:
            for k in range(3):
                assert len(_rows(db_url)) == k
                yield {"id": k + 1}

        ctx = make_context({"url": db_url, "table": "orders", "mapping": MAPPING}, (ItemStream(items()),))

        result = PostgresDestinationHandler().execute(ctx)

        assert result.output == Summary({"destination": "postgres", "inserted": 3, "table": "orders"})

    def test_engine_disposed_after_insert_failure(
        self, make_context: MakeContext, db_url: str, disposed: list[Engine]
    ) -> None:
        ctx = make_context({"url": db_url, "table": "orders", "mapping": MAPPING}, (InlineOutput([{"other": True}]),))

        with pytest.raises(ExternalCallError):
            PostgresDestinationHandler().execute(ctx)

        assert len(disposed) == 1

    def test_engine_disposed_when_input_fails(
        self, make_context: MakeContext, db_url: str, disposed: list[Engine]
    ) -> None:
        def items() -> Iterator[dict[str, Any]]:
            yield {"id": 1}
            raise RuntimeError("upstream stream broke")

        ctx = make_context({"url": db_url, "table": "orders", "mapping": MAPPING}, (ItemStream(items()),))

        with pytest.raises(RuntimeError, match="upstream stream broke"):
            MySQLDestinationHandler().execute(ctx)

        assert len(disposed) == 1

    def test_missing_table_or_mapping(self, make_context: MakeContext, db_url: str) -> None:
        for config in ({"url": db_url, "mapping": MAPPING}, {"url": db_url, "table": "orders", "mapping": [{"column": "x"}]}):
            with pytest.raises(ConfigurationError, match="Table or mapping configuration missing"):
                PostgresDestinationHandler().execute(make_context(config, (InlineOutput([]),)))

    def test_no_input_is_failure_result(self, make_context: MakeContext, db_url: str) -> None:
        result = PostgresDestinationHandler().execute(make_context({"url": db_url, "table": "orders", "mapping": MAPPING}))

        assert not result.success
        assert result.error == "No input data received"


class TestConnectionUrl:
    def test_postgres_from_credentials(self) -> None:
        cfg = DatabaseDestinationConfig.from_dict({"host": "db", "database": "analytics", "user": "u", "password": "p"})

        url = PostgresDestinationHandler().connection_url(cfg)

        assert isinstance(url, URL)
        assert url.drivername == "postgresql+psycopg"
        assert url.port == 5432
        assert url.database == "analytics"

    def test_mysql_port_override(self) -> None:
        cfg = DatabaseDestinationConfig.from_dict({"host": "db", "port": 3307, "database": "shop"})

        url = MySQLDestinationHandler().connection_url(cfg)

        assert isinstance(url, URL)
        assert url.drivername == "mysql+pymysql"
        assert url.port == 3307

    def test_requires_url_or_host_and_database(self) -> None:
        with pytest.raises(ConfigurationError, match="requires either 'url'"):
            PostgresDestinationHandler().connection_url(DatabaseDestinationConfig.from_dict({"host": "db"}))
