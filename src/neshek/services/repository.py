"""Repository and session: the public get/insert surface.

The repository compiles the schema once and hands the compiled layout to
every session it creates. Sessions hold no state of their own beyond
references to the shared schema and adapter.
"""

from typing import Any

import structlog

from neshek.errors import AdapterError, ClassNotFoundError, NeshekError
from neshek.models.hints import RdbSchemaHints
from neshek.models.propset import PropSetSpec
from neshek.models.relational import RelationalClass, RelationalSchema
from neshek.models.schema import SchemaDef
from neshek.services.adapters.base import StorageAdapter
from neshek.services.compiler import SchemaCompiler
from neshek.services.converter import names_props_to_fields, props_to_fields
from neshek.services.resolver import FetchResolver


class Repository:
    """Owns the compiled relational schema and the storage adapter.

    Compilation happens in the constructor, so a repository that exists is
    always usable. Accepts the adapter and compiler via dependency injection.
    """

    def __init__(
        self,
        schema_def: SchemaDef,
        adapter: StorageAdapter,
        hints: RdbSchemaHints | None = None,
        compiler: SchemaCompiler | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._logger = logger or structlog.get_logger(__name__)
        self._schema_def = schema_def
        self._adapter = adapter
        compiler = compiler or SchemaCompiler(logger=self._logger)
        self._relational_schema = compiler.compile(schema_def, hints)

    @property
    def schema_def(self) -> SchemaDef:
        return self._schema_def

    @property
    def relational_schema(self) -> RelationalSchema:
        return self._relational_schema

    @property
    def adapter(self) -> StorageAdapter:
        return self._adapter

    async def initialize(self) -> None:
        """Prepare the adapter's storage for the compiled schema."""
        await self._adapter.initialize_schema(self._relational_schema)
        self._logger.info("repository_initialized", class_count=len(self._relational_schema.classes))

    def create_session(self) -> "RepoSession":
        return RepoSession(self._relational_schema, self._adapter, logger=self._logger)

    async def close(self) -> None:
        await self._adapter.close()


class RepoSession:
    """Performs get and insert operations against a repository's storage."""

    def __init__(
        self,
        relational_schema: RelationalSchema,
        adapter: StorageAdapter,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._schema = relational_schema
        self._adapter = adapter
        self._logger = logger or structlog.get_logger(__name__)
        self._resolver = FetchResolver(relational_schema, adapter, logger=self._logger)

    async def get(
        self,
        class_name: str,
        key: dict[str, Any],
        prop_set: PropSetSpec = None,
    ) -> dict[str, Any] | None:
        """Retrieve an instance of the class by its key.

        Args:
            class_name: Name of the class in the schema.
            key: Entity-shaped primary key values.
            prop_set: Properties to retrieve. None retrieves every property
                except multilinks.

        Returns:
            The entity, or None if not found.
        """
        return await self._resolver.get(class_name, key, prop_set)

    async def insert(self, class_name: str, values: dict[str, Any]) -> None:
        """Insert a new instance of the class.

        Args:
            class_name: Name of the class in the schema.
            values: Entity-shaped property values. Links hold the target's key.

        Raises:
            RequestError: If the class or a property is unknown, or a link
                value lacks part of its target's key.
            DuplicateKeyError: If an instance with the same key exists.
            AdapterError: If the storage adapter fails otherwise.
        """
        rel_class = self._get_class(class_name)
        field_values = props_to_fields(rel_class, values)
        key_field_names = names_props_to_fields(rel_class, rel_class.class_def.key or ())

        try:
            await self._adapter.insert(rel_class.table, field_values, key_field_names)
        except AdapterError as e:
            self._log_adapter_error(rel_class, e)
            e.add_note(f"while inserting an object of class '{class_name}' into table '{rel_class.table}'")
            raise
        except NeshekError:
            raise
        except Exception as e:
            self._log_adapter_error(rel_class, e)
            raise AdapterError(
                f"Unhandled adapter error while inserting class '{class_name}': {e}",
                code="UNHANDLED",
                table=rel_class.table,
                details={"operation": "insert", "class_name": class_name},
            ) from e

        self._logger.debug("entity_inserted", class_name=class_name, table=rel_class.table)

    def _log_adapter_error(self, rel_class: RelationalClass, error: Exception) -> None:
        self._logger.warning("adapter_error", operation="insert", class_name=rel_class.name, error=str(error))

    def _get_class(self, class_name: str) -> RelationalClass:
        rel_class = self._schema.get(class_name)
        if rel_class is None:
            raise ClassNotFoundError(class_name)
        return rel_class


__all__ = ["RepoSession", "Repository"]
