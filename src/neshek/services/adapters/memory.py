"""In-process storage adapter keeping rows in dictionaries.

Rows are indexed by their primary key fields. Lookups by any other set of
fields fall back to a scan of the table.
"""

import copy
from typing import Any

import structlog

from neshek.errors import DuplicateKeyError
from neshek.models.relational import RelationalSchema

RowKey = tuple[tuple[str, Any], ...]


def _row_key(key_fields: dict[str, Any]) -> RowKey:
    return tuple(sorted(key_fields.items()))


class MemoryStorageAdapter:
    """Stores rows per table in memory. Does not enforce referential integrity."""

    def __init__(self, logger: structlog.stdlib.BoundLogger | None = None) -> None:
        self._logger = logger or structlog.get_logger(__name__)
        self._tables: dict[str, dict[RowKey, dict[str, Any]]] = {}
        self._key_field_names: dict[str, frozenset[str]] = {}

    @property
    def supports_referential_integrity(self) -> bool:
        return False

    async def initialize_schema(self, relational_schema: RelationalSchema) -> None:
        for rel_class in relational_schema.classes.values():
            self._tables.setdefault(rel_class.table, {})
            self._key_field_names[rel_class.table] = frozenset(rel_class.key_field_names)
        self._logger.info("memory_store_initialized", table_count=len(self._tables))

    async def get(
        self,
        table: str,
        key_fields: dict[str, Any],
        field_names: list[str],
    ) -> dict[str, Any] | None:
        rows = self._tables.get(table)
        if not rows:
            return None

        if key_fields and frozenset(key_fields) == self._key_field_names.get(table):
            row = rows.get(_row_key(key_fields))
        else:
            row = next(
                (r for r in rows.values() if all(r.get(name) == value for name, value in key_fields.items())),
                None,
            )
        if row is None:
            return None
        return copy.deepcopy({name: row.get(name) for name in field_names})

    async def insert(
        self,
        table: str,
        field_values: dict[str, Any],
        key_field_names: list[str],
    ) -> None:
        rows = self._tables.setdefault(table, {})
        self._key_field_names.setdefault(table, frozenset(key_field_names))

        key_fields = {name: field_values.get(name) for name in key_field_names}
        if key_field_names:
            row_key = _row_key(key_fields)
        else:
            # keyless tables get a synthetic, always-unique row key
            row_key = (("", len(rows)),)
        if row_key in rows:
            raise DuplicateKeyError(table, key_fields)

        rows[row_key] = copy.deepcopy(field_values)
        self._logger.debug("row_inserted", table=table, key_fields=key_fields)

    async def close(self) -> None:
        pass

    def row_count(self, table: str) -> int:
        return len(self._tables.get(table, {}))


__all__ = ["MemoryStorageAdapter"]
