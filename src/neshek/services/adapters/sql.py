"""SQL storage adapter backed by SQLAlchemy Core.

Uses SQLAlchemy's native async support with aiosqlite for non-blocking
database operations. Tables are built from the compiled relational schema:
one table per class, one column per physical field, and the flattened key
fields as the primary key. Column types follow the compiled storage type of
each field.
"""

import re
from typing import Any

import structlog
from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    Integer,
    MetaData,
    Numeric,
    SmallInteger,
    String,
    Table,
    Text,
    Time,
    insert,
    select,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.types import TypeEngine

from neshek.errors import AdapterError, DuplicateKeyError
from neshek.models.enums import DataType
from neshek.models.relational import LinkRelationalProp, RelationalClass, RelationalSchema, ScalarRelationalProp
from neshek.models.schema import BitsPropDef, BoolPropDef, DecimalPropDef, PropDef, StringPropDef

_SIMPLE_COLUMN_TYPES: dict[DataType, type[TypeEngine[Any]]] = {
    DataType.CLOB: Text,
    DataType.BOOL: Boolean,
    DataType.INT: Integer,
    DataType.BIGINT: BigInteger,
    DataType.REAL: Float,
    DataType.DATE: Date,
    DataType.TIME: Time,
    DataType.DATETIME: DateTime,
    DataType.TIMESTAMP: DateTime,
    DataType.OBJ: JSON,
    DataType.ARR: JSON,
}

_STORAGE_TYPE_PATTERN = re.compile(r"^\s*([a-z][a-z ]*?)\s*(?:\(\s*([\d\s,]*)\))?\s*$", re.IGNORECASE)

_STORAGE_COLUMN_TYPES: dict[str, type[TypeEngine[Any]]] = {
    "smallint": SmallInteger,
    "int": Integer,
    "integer": Integer,
    "bigint": BigInteger,
    "float": Float,
    "real": Float,
    "double": Float,
    "double precision": Float,
    "date": Date,
    "time": Time,
    "datetime": DateTime,
    "timestamp": DateTime,
    "json": JSON,
}

_STRING_STORAGE_TYPES = frozenset({"varchar", "char", "nvarchar", "nchar", "character varying"})
_TEXT_STORAGE_TYPES = frozenset({"text", "clob", "mediumtext", "longtext"})
_DECIMAL_STORAGE_TYPES = frozenset({"decimal", "numeric"})
_INTEGER_STORAGE_TYPES = frozenset({"tinyint", "smallint", "int", "integer", "bigint", "bit"})


def column_type(prop_def: PropDef) -> TypeEngine[Any]:
    """Return the SQLAlchemy column type for a stored property."""
    if isinstance(prop_def, StringPropDef):
        return String(prop_def.maxlen) if prop_def.maxlen else String()
    if isinstance(prop_def, DecimalPropDef):
        if prop_def.precision is None:
            return Numeric()
        digits, scale = prop_def.precision
        return Numeric(digits, scale)
    if isinstance(prop_def, BitsPropDef):
        return BigInteger() if prop_def.size and prop_def.size > 32 else Integer()
    type_class = _SIMPLE_COLUMN_TYPES.get(prop_def.data_type)
    if type_class is None:
        raise ValueError(f"properties of type '{prop_def.dt}' are not stored")
    return type_class()


def storage_column_type(storage_type: str, prop_def: PropDef) -> TypeEngine[Any]:
    """Return the SQLAlchemy column type for a compiled storage type.

    The storage type is parsed as ``name`` or ``name(args)``, e.g.
    ``varchar(20)`` or ``decimal(10,2)``. Booleans keep a boolean column when
    stored in an integer type. Unrecognised storage types fall back to the
    column type of the property definition.
    """
    match = _STORAGE_TYPE_PATTERN.match(storage_type)
    if match is None:
        return column_type(prop_def)
    name = " ".join(match.group(1).lower().split())
    args = [int(arg) for arg in (match.group(2) or "").replace(" ", "").split(",") if arg]

    if isinstance(prop_def, BoolPropDef) and name in _INTEGER_STORAGE_TYPES:
        return Boolean()
    if name in _STRING_STORAGE_TYPES:
        return String(args[0]) if args else String()
    if name in _TEXT_STORAGE_TYPES:
        return Text(args[0]) if args else Text()
    if name in _DECIMAL_STORAGE_TYPES:
        if len(args) == 2:
            return Numeric(args[0], args[1])
        return Numeric(args[0]) if args else Numeric()
    if name == "tinyint":
        return SmallInteger()
    if name == "bit":
        return BigInteger() if args and args[0] > 32 else Integer()
    type_class = _STORAGE_COLUMN_TYPES.get(name)
    if type_class is None:
        return column_type(prop_def)
    return type_class()


class SqlStorageAdapter:
    """Persists rows to a SQL database via SQLAlchemy Core.

    Accepts an AsyncEngine via dependency injection to support both
    persistent and in-memory databases for testing.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._engine = engine
        self._logger = logger or structlog.get_logger(__name__)
        self._metadata = MetaData()

    @property
    def supports_referential_integrity(self) -> bool:
        return False

    async def initialize_schema(self, relational_schema: RelationalSchema) -> None:
        """Create tables for every class that has stored fields, if they don't exist."""
        self._metadata = MetaData()
        for rel_class in relational_schema.classes.values():
            columns = self._columns(rel_class)
            if not columns:
                self._logger.debug("table_skipped_no_fields", class_name=rel_class.name)
                continue
            Table(rel_class.table, self._metadata, *columns)

        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(self._metadata.create_all)
        except SQLAlchemyError as e:
            raise AdapterError(f"Failed to create tables: {e}") from e
        self._logger.info("sql_schema_initialized", table_count=len(self._metadata.tables))

    async def get(
        self,
        table: str,
        key_fields: dict[str, Any],
        field_names: list[str],
    ) -> dict[str, Any] | None:
        """Retrieve the requested fields of the row matching the key fields.

        Returns:
            The field values if a row matches, None otherwise.

        Raises:
            AdapterError: If the table or a field is unknown, or the query fails.
        """
        table_obj = self._table(table)
        columns = [self._column(table_obj, name) for name in field_names]
        conditions = [self._column(table_obj, name) == value for name, value in key_fields.items()]
        # an empty field list is an existence check; select the key columns instead
        selected = columns or [self._column(table_obj, name) for name in key_fields] or list(table_obj.c)
        statement = select(*selected).where(*conditions).limit(1)

        try:
            async with AsyncSession(self._engine) as session:
                result = await session.execute(statement)
                row = result.mappings().first()
        except SQLAlchemyError as e:
            raise AdapterError(f"Failed to read from table '{table}': {e}", table=table) from e

        if row is None:
            return None
        return {name: row[name] for name in field_names}

    async def insert(
        self,
        table: str,
        field_values: dict[str, Any],
        key_field_names: list[str],
    ) -> None:
        """Insert a row.

        Raises:
            DuplicateKeyError: If a row with the same key already exists.
            AdapterError: If the table or a field is unknown, or the insert fails.
        """
        table_obj = self._table(table)
        for name in field_values:
            self._column(table_obj, name)

        key_fields = {name: field_values.get(name) for name in key_field_names}
        statement = insert(table_obj).values(**field_values)
        try:
            async with AsyncSession(self._engine) as session:
                await session.execute(statement)
                await session.commit()
        except IntegrityError as e:
            if key_field_names and await self.get(table, key_fields, []) is not None:
                raise DuplicateKeyError(table, key_fields) from e
            raise AdapterError(
                f"Integrity violation in table '{table}': {e.orig}",
                code="INTEGRITY_ERROR",
                table=table,
            ) from e
        except SQLAlchemyError as e:
            raise AdapterError(f"Failed to insert into table '{table}': {e}", table=table) from e

        self._logger.debug("row_inserted", table=table, key_fields=key_fields)

    async def close(self) -> None:
        """Dispose of the engine's connection pool."""
        await self._engine.dispose()

    def _columns(self, rel_class: RelationalClass) -> list[Column[Any]]:
        key_fields = set(rel_class.key_field_names)
        columns: list[Column[Any]] = []
        for prop in rel_class.props.values():
            if isinstance(prop, ScalarRelationalProp):
                columns.append(
                    Column(
                        prop.field,
                        storage_column_type(prop.storage_type, prop.prop_def),
                        primary_key=prop.field in key_fields,
                        autoincrement=False,
                        nullable=prop.field not in key_fields and not prop.prop_def.required,
                    )
                )
            elif isinstance(prop, LinkRelationalProp):
                for field_name, link_field in prop.fields.items():
                    columns.append(
                        Column(
                            field_name,
                            storage_column_type(link_field.storage_type, link_field.leaf),
                            primary_key=field_name in key_fields,
                            autoincrement=False,
                            nullable=field_name not in key_fields and not prop.prop_def.required,
                        )
                    )
        return columns

    def _table(self, table: str) -> Table:
        table_obj = self._metadata.tables.get(table)
        if table_obj is None:
            raise AdapterError(f"Unknown table '{table}'", code="UNKNOWN_TABLE", table=table)
        return table_obj

    def _column(self, table_obj: Table, name: str) -> Column[Any]:
        if name not in table_obj.c:
            raise AdapterError(
                f"Unknown field '{name}' in table '{table_obj.name}'",
                code="UNKNOWN_FIELD",
                table=table_obj.name,
            )
        return table_obj.c[name]


def create_async_engine_from_path(db_path: str) -> AsyncEngine:
    """Create an async SQLAlchemy engine for the given database path.

    Args:
        db_path: Path to SQLite database file, or ":memory:" for in-memory.

    Returns:
        AsyncEngine instance configured for aiosqlite.
    """
    if db_path == ":memory:":
        # For in-memory async SQLite, we need special handling to share
        # the connection across the async session lifecycle
        url = "sqlite+aiosqlite:///:memory:"
    else:
        url = f"sqlite+aiosqlite:///{db_path}"
    return create_async_engine(url)


__all__ = ["SqlStorageAdapter", "column_type", "create_async_engine_from_path", "storage_column_type"]
