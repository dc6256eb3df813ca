# src/dataconductor/plugins/sinks/database.py
"""Relational database destinations (PostgreSQL, MySQL).

Writes one row per upstream item using SQLAlchemy Core. Each item is
inserted and committed before the next one is pulled from the input
stream, so memory stays bounded by a single item however large the
input file is.

Each invocation creates its own engine with NullPool and disposes it on
every exit path; connections are never shared across nodes or runs.
"""

from __future__ import annotations

from typing import Any

import structlog
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from sqlalchemy import column, create_engine, insert, table
from sqlalchemy.engine import URL, Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from dataconductor.contracts import NodeExecutionContext, NodeResult, Summary
from dataconductor.contracts.errors import ConfigurationError, ExternalCallError
from dataconductor.plugins.base import BaseNodeHandler
from dataconductor.plugins.config_base import HandlerConfig
from dataconductor.plugins.utils import get_path

logger = structlog.get_logger(__name__)


class ColumnMapping(BaseModel):
    """One {column, source_path} pair. Incomplete pairs are ignored."""

    model_config = {"extra": "ignore", "alias_generator": to_camel, "populate_by_name": True}

    column: str | None = None
    source_path: str | None = None

    @property
    def is_complete(self) -> bool:
        return bool(self.column and self.source_path)


class DatabaseDestinationConfig(HandlerConfig):
    """Configuration for SQL destinations.

    Either `url` (any SQLAlchemy URL) or discrete credentials.

    Example YAML:
        type: postgres_destination
        config:
          host: db.internal
          database: analytics
          user: loader
          password: ${PG_PASSWORD}
          table: public.orders
          mapping:
            - {column: order_id, sourcePath: id}
            - {column: sku, sourcePath: "lines[0].sku"}
    """

    url: str | None = None
    host: str | None = None
    port: int | None = None
    database: str | None = None
    user: str | None = None
    password: str | None = None
    table: str | None = None
    mapping: list[ColumnMapping] = Field(default_factory=list)


class SQLDestinationHandler(BaseNodeHandler):
    """Base for SQL destinations; subclasses pick the dialect."""

    driver: str
    default_port: int
    destination: str

    def connection_url(self, cfg: DatabaseDestinationConfig) -> URL | str:
        if cfg.url:
            return cfg.url
        if not cfg.host or not cfg.database:
            raise ConfigurationError(f"{self.node_type} requires either 'url' or 'host' and 'database'")
        return URL.create(
            self.driver,
            username=cfg.user,
            password=cfg.password,
            host=cfg.host,
            port=cfg.port or self.default_port,
            database=cfg.database,
        )

    def create_engine(self, cfg: DatabaseDestinationConfig) -> Engine:
        try:
            return create_engine(self.connection_url(cfg), poolclass=NullPool)
        except ImportError as e:
            raise ConfigurationError(f"Database driver for {self.node_type} is not installed: {e}") from e
        except SQLAlchemyError as e:
            raise ConfigurationError(f"Invalid database URL for {self.node_type}: {e}") from e

    def execute(self, ctx: NodeExecutionContext) -> NodeResult:
        cfg = DatabaseDestinationConfig.from_dict(ctx.config)
        mapping = [m for m in cfg.mapping if m.is_complete]
        if not cfg.table or not mapping:
            raise ConfigurationError("Table or mapping configuration missing")
        if ctx.primary_input is None:
            return NodeResult.failure("No input data received")

        schema, _, name = cfg.table.rpartition(".")
        target = table(name, *(column(m.column) for m in mapping), schema=schema or None)  # type: ignore[arg-type]

        engine = self.create_engine(cfg)
        inserted = 0
        try:
            with engine.connect() as conn:
                for item in self.iter_input_items(ctx):
                    self._insert_one(conn, target, mapping, item)
                    inserted += 1
        except SQLAlchemyError as e:
            raise ExternalCallError(f"{self.destination} insert into {cfg.table} failed after {inserted} rows: {e}") from e
        finally:
            engine.dispose()

        logger.info("rows_inserted", node_id=ctx.node_id, destination=self.destination, table=cfg.table, inserted=inserted)
        return NodeResult.ok(Summary({"destination": self.destination, "inserted": inserted, "table": cfg.table}))

    @staticmethod
    def _insert_one(conn: Connection, target: Any, mapping: list[ColumnMapping], item: Any) -> None:
        # Unresolved paths insert NULL
        row = {m.column: get_path(item, m.source_path, default=None) for m in mapping}  # type: ignore[arg-type]
        conn.execute(insert(target).values(row))
        conn.commit()


class PostgresDestinationHandler(SQLDestinationHandler):
    node_type = "postgres_destination"
    description = "Inserts one row per item into a PostgreSQL table"
    driver = "postgresql+psycopg"
    default_port = 5432
    destination = "postgres"


class MySQLDestinationHandler(SQLDestinationHandler):
    node_type = "mysql_destination"
    description = "Inserts one row per item into a MySQL table"
    driver = "mysql+pymysql"
    default_port = 3306
    destination = "mysql"
