"""
Storage adapter protocol.

The repository talks to storage only through this protocol. An adapter knows
tables and fields; it never sees classes, properties or links.

Invariants:
    - ``get`` returns only the requested fields, or None if no row matches;
      empty ``key_fields`` match the first stored row of the table
    - ``insert`` raises DuplicateKeyError when the key fields already exist
    - Failures are raised as AdapterError; the repository never retries
"""

from typing import Any, Protocol, runtime_checkable

from neshek.models.relational import RelationalSchema


@runtime_checkable
class StorageAdapter(Protocol):
    @property
    def supports_referential_integrity(self) -> bool:
        """Whether the store enforces links between rows. Informational only."""
        ...

    async def initialize_schema(self, relational_schema: RelationalSchema) -> None:
        """Prepare storage for the compiled schema."""
        ...

    async def get(
        self,
        table: str,
        key_fields: dict[str, Any],
        field_names: list[str],
    ) -> dict[str, Any] | None:
        """Return the requested fields of the row matching ``key_fields``."""
        ...

    async def insert(
        self,
        table: str,
        field_values: dict[str, Any],
        key_field_names: list[str],
    ) -> None:
        """Insert a row; ``key_field_names`` identify its primary key."""
        ...

    async def close(self) -> None:
        """Release connections or other resources held by the adapter."""
        ...


__all__ = ["StorageAdapter"]
