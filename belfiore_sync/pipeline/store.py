"""Persistent store for geo records with natural-key upserts."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import date, datetime
from typing import Any, Callable, ContextManager, Iterator, Protocol, Sequence

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    delete,
    func,
    select,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from belfiore_sync.common.errors import StoreError
from belfiore_sync.common.models import NATURAL_KEY


class Store(Protocol):
    def transaction(self) -> ContextManager[None]: ...

    def upsert(self, rows: Sequence[dict[str, Any]], unique_by: Sequence[str], update_columns: Sequence[str]) -> int: ...

    def delete(self, item_type: str, is_foreign_state: bool) -> int: ...

    def count(self, item_type: str | None = None, is_foreign_state: bool | None = None) -> int: ...


def build_geo_locations_table(metadata: MetaData, name: str = "geo_locations") -> Table:
    return Table(
        name,
        metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("item_type", String(50), nullable=False, index=True),
        Column("denominazione", String(255), nullable=False, index=True),
        Column("denominazione_de", String(255), nullable=True),
        Column("denominazione_en", String(255), nullable=True),
        Column("altra_denominazione", String(255), nullable=True),
        Column("codice_catastale", String(4), nullable=False, unique=True),
        Column("sigla_provincia", String(4), nullable=True),
        Column("id_provincia", String(10), nullable=True),
        Column("id_regione", String(10), nullable=True),
        Column("stato", String(255), nullable=True),
        Column("is_foreign_state", Boolean, nullable=False, default=False),
        Column("codice", String(255), nullable=True),
        Column("codice_mae", String(255), nullable=True),
        Column("codice_min", String(255), nullable=True),
        Column("codice_istat", String(255), nullable=True),
        Column("codice_iso3", String(3), nullable=True),
        Column("cittadinanza", Boolean, nullable=False, default=False),
        Column("nascita", Boolean, nullable=False, default=False),
        Column("residenza", Boolean, nullable=False, default=False),
        Column("tipo", String(255), nullable=True),
        Column("fonte", String(255), nullable=True),
        Column("cap", String(5), nullable=True),
        Column("valid_from", Date, nullable=True),
        Column("valid_to", Date, nullable=True),
        Column("last_change", DateTime, nullable=True),
        Column("created_at", DateTime, nullable=True),
        Column("updated_at", DateTime, nullable=True),
    )


def _coerce(column: Column, value: Any) -> Any:
    if value is None or value == "":
        return None
    if isinstance(column.type, DateTime) and isinstance(value, str):
        return datetime.fromisoformat(value)
    if isinstance(column.type, Date) and not isinstance(column.type, DateTime):
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, str):
            return date.fromisoformat(value)
    if isinstance(column.type, Boolean):
        return bool(value)
    return value


class SqlAlchemyStore:
    """Store backed by a SQLAlchemy engine (SQLite or PostgreSQL)."""

    INSERTS = {
        "sqlite": sqlite.insert,
        "postgresql": postgresql.insert,
    }

    def __init__(self, engine: Engine, table_name: str = "geo_locations") -> None:
        self.engine = engine
        self.metadata = MetaData()
        self.table = build_geo_locations_table(self.metadata, table_name)
        self._connection: Connection | None = None

    @classmethod
    def from_url(cls, database_url: str, table_name: str = "geo_locations") -> "SqlAlchemyStore":
        return cls(create_engine(database_url), table_name=table_name)

    def create_schema(self) -> None:
        try:
            self.metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            raise StoreError(f"Unable to create table {self.table.name}: {exc}") from exc

    def dispose(self) -> None:
        self.engine.dispose()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if self._connection is not None:
            yield
            return
        try:
            with self.engine.begin() as connection:
                self._connection = connection
                yield
        except SQLAlchemyError as exc:
            raise StoreError(f"Transaction on {self.table.name} failed: {exc}") from exc
        finally:
            self._connection = None

    def _execute(self, statement, handler: Callable[[Any], Any] = lambda result: result.rowcount):
        # Results are consumed by the handler before an ad-hoc connection closes.
        try:
            if self._connection is not None:
                return handler(self._connection.execute(statement))
            with self.engine.begin() as connection:
                return handler(connection.execute(statement))
        except SQLAlchemyError as exc:
            raise StoreError(f"Statement on {self.table.name} failed: {exc}") from exc

    def _insert_factory(self):
        dialect = self.engine.dialect.name
        factory = self.INSERTS.get(dialect)
        if factory is None:
            raise StoreError(f"Upsert is not supported for dialect: {dialect}")
        return factory

    def _prepare(self, row: dict[str, Any], present: tuple[str, ...]) -> dict[str, Any]:
        try:
            values = {name: _coerce(self.table.c[name], row.get(name)) for name in present}
        except ValueError as exc:
            raise StoreError(f"Invalid value for {self.table.name} row {row.get(NATURAL_KEY)!r}: {exc}") from exc
        for column in self.table.columns:
            if column.name in values or column.primary_key:
                continue
            if column.default is not None:
                values[column.name] = column.default.arg
        return values

    def upsert(
        self,
        rows: Sequence[dict[str, Any]],
        unique_by: Sequence[str] = (NATURAL_KEY,),
        update_columns: Sequence[str] = (),
    ) -> int:
        if not rows:
            return 0
        insert = self._insert_factory()

        # Multi-row VALUES need a uniform column set, so group rows by shape.
        groups: dict[tuple[str, ...], list[dict[str, Any]]] = {}
        for row in rows:
            present = tuple(name for name in self.table.c.keys() if name in row and name != "id")
            groups.setdefault(present, []).append(row)

        written = 0
        for present, group_rows in groups.items():
            statement = insert(self.table).values([self._prepare(row, present) for row in group_rows])
            set_ = {
                name: statement.excluded[name]
                for name in update_columns
                if name in present and name not in unique_by
            }
            if set_:
                statement = statement.on_conflict_do_update(index_elements=list(unique_by), set_=set_)
            else:
                statement = statement.on_conflict_do_nothing(index_elements=list(unique_by))
            self._execute(statement)
            written += len(group_rows)
        return written

    def delete(self, item_type: str, is_foreign_state: bool) -> int:
        statement = delete(self.table).where(
            self.table.c.item_type == item_type,
            self.table.c.is_foreign_state == is_foreign_state,
        )
        return self._execute(statement)

    def count(self, item_type: str | None = None, is_foreign_state: bool | None = None) -> int:
        statement = select(func.count()).select_from(self.table)
        if item_type is not None:
            statement = statement.where(self.table.c.item_type == item_type)
        if is_foreign_state is not None:
            statement = statement.where(self.table.c.is_foreign_state == is_foreign_state)
        return int(self._execute(statement, lambda result: result.scalar_one()))

    def get(self, codice_catastale: str) -> dict[str, Any] | None:
        statement = select(self.table).where(self.table.c.codice_catastale == codice_catastale)
        row = self._execute(statement, lambda result: result.mappings().first())
        return dict(row) if row is not None else None
