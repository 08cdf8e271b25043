"""SQL-backed record store.

One table per registered model, generated from its declaration with
SQLAlchemy Core. All methods are synchronous; the dispatcher runs them in
worker threads. Engines whose pool hands every thread the same connection
(in-memory SQLite) are used by one thread at a time.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Iterable, Iterator, Mapping
from contextlib import AbstractContextManager, contextmanager, nullcontext
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Connection,
    DateTime,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    delete,
    func,
    insert,
    select,
    update,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from dslkit.core.connection import DatabaseConnection
from dslkit.core.types import FieldSpec, FieldType, ModelSpec
from dslkit.data.filters import compile_filter, compile_order_by
from dslkit.data.values import to_output, to_storage
from dslkit.exceptions import FieldNotFoundError, QueryError, ValidationError

logger = logging.getLogger(__name__)

Row = dict[str, Any]

# Mapping from field types to SQLAlchemy column types
FIELD_TYPE_MAP = {
    "string": lambda: String(255),
    "text": lambda: Text(),
    "int": lambda: Integer(),
    "float": lambda: Float(),
    "bool": lambda: Boolean(),
    "datetime": lambda: DateTime(timezone=True),
    "uuid": lambda: String(36),
    "json": lambda: JSON().with_variant(JSONB(), "postgresql"),
}


def utc_now() -> datetime:
    return datetime.now(UTC)


def generate_uuid() -> str:
    return str(uuid.uuid4())


def build_column(field: FieldSpec) -> Column[Any]:
    """Build the column for a declared field."""
    column_type = FIELD_TYPE_MAP[field.type]()
    if field.primary_key:
        if field.type == FieldType.INT:
            return Column(field.name, Integer, primary_key=True, autoincrement=True)
        default = generate_uuid if field.type in (FieldType.UUID, FieldType.STRING) else None
        return Column(field.name, column_type, primary_key=True, default=default)
    return Column(
        field.name,
        column_type,
        nullable=not field.required,
        unique=field.unique,
        default=field.default,
    )


class SqlStore:
    """Record store over a DatabaseConnection.

    Every method accepts an optional ``conn`` so several calls can share the
    transaction opened by :meth:`transaction`. Without one, each call runs in
    its own connection (a transaction for writes).

    Example:
        store = SqlStore(DatabaseConnection("sqlite:///:memory:"))
        store.ensure_tables(registry.get_all_models())
        with store.transaction() as conn:
            row = store.insert(widget, {"name": "A"}, conn)
    """

    def __init__(self, connection: DatabaseConnection) -> None:
        self._connection = connection
        self._metadata = MetaData()
        self._tables: dict[str, Table] = {}
        self._lock = threading.RLock()

    @property
    def connection(self) -> DatabaseConnection:
        return self._connection

    # === Tables ===

    def table_for(self, model: ModelSpec) -> Table:
        """Get (or define) the table for a model."""
        table = self._tables.get(model.key)
        if table is None:
            name = model.table_name or model.name.lower()
            if name in self._metadata.tables:
                raise QueryError(
                    f"Table '{name}' of model '{model.key}' is already used by another model. "
                    f"Set a distinct tableName."
                )
            table = Table(name, self._metadata, *[build_column(f) for f in model.fields])
            self._tables[model.key] = table
        return table

    def ensure_tables(self, models: Iterable[ModelSpec]) -> list[str]:
        """Create missing tables for the given models.

        Returns:
            Table names covered
        """
        tables = [self.table_for(m) for m in models]
        try:
            with self._exclusive():
                self._metadata.create_all(
                    self._connection.engine, tables=tables, checkfirst=True
                )
        except SQLAlchemyError as e:
            raise QueryError(f"Failed to create tables: {e}") from e
        logger.debug(f"Ensured tables: {', '.join(t.name for t in tables)}")
        return [t.name for t in tables]

    def close(self) -> None:
        self._connection.close()

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """Run several store calls in one transaction.

        Commits when the block exits normally, rolls back on any exception.

        Raises:
            ValidationError: A constraint was violated on commit
            QueryError: The transaction could not be opened or committed
        """
        try:
            with self._exclusive(), self._connection.engine.begin() as conn:
                yield conn
        except IntegrityError as e:
            raise ValidationError(f"Constraint violated: {e.orig}") from e
        except SQLAlchemyError as e:
            logger.error(f"Store transaction failed: {e}")
            raise QueryError(f"Transaction failed: {e}") from e

    # === Reads ===

    def get(self, model: ModelSpec, record_id: Any, conn: Connection | None = None) -> Row | None:
        table = self.table_for(model)
        pk = model.primary_key
        stmt = select(table).where(table.c[pk.name] == to_storage(record_id, pk.type, pk.name))
        with self._run("get", model, conn) as active:
            row = active.execute(stmt).first()
        return self._to_dict(row) if row is not None else None

    def find(
        self,
        model: ModelSpec,
        where: Mapping[str, Any] | None = None,
        order_by: Any = None,
        limit: int | None = None,
        offset: int | None = None,
        conn: Connection | None = None,
    ) -> list[Row]:
        table = self.table_for(model)
        stmt = (
            select(table)
            .where(compile_filter(table, model, where))
            .order_by(*compile_order_by(table, model, order_by))
        )
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        with self._run("find", model, conn) as active:
            rows = active.execute(stmt).all()
        return [self._to_dict(r) for r in rows]

    def count(
        self,
        model: ModelSpec,
        where: Mapping[str, Any] | None = None,
        conn: Connection | None = None,
    ) -> int:
        table = self.table_for(model)
        stmt = select(func.count()).select_from(table).where(compile_filter(table, model, where))
        with self._run("count", model, conn) as active:
            return int(active.execute(stmt).scalar_one())

    # === Writes ===

    def insert(
        self, model: ModelSpec, values: Mapping[str, Any], conn: Connection | None = None
    ) -> Row:
        table = self.table_for(model)
        row_values = self._prepare(model, values)
        if model.config.timestamps:
            now = utc_now()
            row_values.setdefault(model.config.created_at_field, now)
            row_values.setdefault(model.config.updated_at_field, now)
        pk = model.primary_key.name

        with self._run("insert", model, conn, write=True) as active:
            result = active.execute(insert(table).values(**row_values))
            record_id = result.inserted_primary_key[0]
            row = active.execute(select(table).where(table.c[pk] == record_id)).one()
        return self._to_dict(row)

    def update(
        self,
        model: ModelSpec,
        record_id: Any,
        values: Mapping[str, Any],
        conn: Connection | None = None,
    ) -> Row | None:
        where = {model.primary_key.name: record_id}
        with self._run("update", model, conn, write=True) as active:
            if not self.update_where(model, where, values, active):
                return None
            return self.get(model, record_id, active)

    def update_where(
        self,
        model: ModelSpec,
        where: Mapping[str, Any] | None,
        values: Mapping[str, Any],
        conn: Connection | None = None,
    ) -> int:
        table = self.table_for(model)
        row_values = self._prepare(model, values)
        row_values.pop(model.primary_key.name, None)
        if model.config.timestamps:
            row_values[model.config.updated_at_field] = utc_now()
        condition = compile_filter(table, model, where)
        with self._run("update", model, conn, write=True) as active:
            if not row_values:
                return int(
                    active.execute(select(func.count()).select_from(table).where(condition))
                    .scalar_one()
                )
            result = active.execute(update(table).where(condition).values(**row_values))
            return int(result.rowcount)

    def delete(
        self, model: ModelSpec, record_id: Any, conn: Connection | None = None
    ) -> Row | None:
        with self._run("delete", model, conn, write=True) as active:
            row = self.get(model, record_id, active)
            if row is None:
                return None
            self.delete_where(model, {model.primary_key.name: record_id}, active)
        return row

    def delete_where(
        self, model: ModelSpec, where: Mapping[str, Any] | None, conn: Connection | None = None
    ) -> int:
        table = self.table_for(model)
        with self._run("delete", model, conn, write=True) as active:
            result = active.execute(delete(table).where(compile_filter(table, model, where)))
            return int(result.rowcount)

    # === Helpers ===

    def _prepare(self, model: ModelSpec, values: Mapping[str, Any]) -> dict[str, Any]:
        prepared: dict[str, Any] = {}
        for name, value in values.items():
            field = model.get_field(name)
            if field is None:
                raise FieldNotFoundError(name, model.name, model.field_names)
            prepared[name] = to_storage(value, field.type, name)
        return prepared

    def _to_dict(self, row: Any) -> Row:
        return {key: to_output(value) for key, value in row._mapping.items()}

    def _exclusive(self) -> AbstractContextManager[Any]:
        """Serialize access when every checkout shares one DBAPI connection."""
        if isinstance(self._connection.engine.pool, StaticPool):
            return self._lock
        return nullcontext()

    @contextmanager
    def _run(
        self,
        action: str,
        model: ModelSpec,
        conn: Connection | None = None,
        write: bool = False,
    ) -> Iterator[Connection]:
        """Use ``conn`` or open a connection (a transaction for writes); map driver errors."""
        try:
            if conn is not None:
                yield conn
            else:
                engine = self._connection.engine
                with self._exclusive(), engine.begin() if write else engine.connect() as own:
                    yield own
        except IntegrityError as e:
            raise ValidationError(
                f"Constraint violated during {action} on '{model.key}': {e.orig}"
            ) from e
        except SQLAlchemyError as e:
            logger.error(f"Store {action} on '{model.key}' failed: {e}")
            raise QueryError(
                f"Failed to {action} '{model.key}': {e}", {"model": model.key, "action": action}
            ) from e
