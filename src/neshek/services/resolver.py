"""Hierarchical fetch resolver.

Executes a normalized property set against the relational layout: one point
lookup per entity, then one further lookup for every link the property set
asks to expand, recursively. Each call builds a fresh result tree.
"""

from typing import Any

import structlog

from neshek.errors import AdapterError, ClassNotFoundError, NeshekError
from neshek.models.propset import PropRequest, PropSetSpec, normalize_prop_set
from neshek.models.relational import LinkRelationalProp, RelationalClass, RelationalSchema
from neshek.services.adapters.base import StorageAdapter
from neshek.services.converter import fields_to_props, names_props_to_fields, props_to_fields


class FetchResolver:
    """Retrieves entities, expanding links as the property set requests.

    Stateless apart from the shared, read-only relational schema, so one
    resolver may serve any number of concurrent calls.
    """

    def __init__(
        self,
        relational_schema: RelationalSchema,
        adapter: StorageAdapter,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._schema = relational_schema
        self._adapter = adapter
        self._logger = logger or structlog.get_logger(__name__)
        self._class_defs = {name: rel_class.class_def for name, rel_class in relational_schema.classes.items()}

    async def get(
        self,
        class_name: str,
        key: dict[str, Any],
        prop_set: PropSetSpec = None,
    ) -> dict[str, Any] | None:
        """Retrieve one entity by key.

        Args:
            class_name: Name of the class in the schema.
            key: Entity-shaped key values, e.g. ``{"order": {"id": 1}}``.
            prop_set: Which properties to retrieve; see
                :func:`~neshek.models.propset.normalize_prop_set`.

        Returns:
            The entity, or None if no row has the key. A missing linked entity
            leaves its bare key in place.

        Raises:
            RequestError: If a class or property name is unknown. Raised
                before any storage access.
            AdapterError: If the storage adapter fails.
        """
        rel_class = self._get_class(class_name)
        requests = normalize_prop_set(class_name, self._class_defs, prop_set)
        return await self._resolve(rel_class, key, requests)

    async def _resolve(
        self,
        rel_class: RelationalClass,
        key: dict[str, Any],
        requests: list[PropRequest],
    ) -> dict[str, Any] | None:
        prop_names = [request.name for request in requests]
        key_fields = props_to_fields(rel_class, key)
        field_names = names_props_to_fields(rel_class, prop_names)

        row = await self._fetch_row(rel_class, key_fields, field_names)
        if row is None:
            self._logger.debug("entity_not_found", class_name=rel_class.name, key=key)
            return None

        entity = fields_to_props(rel_class, prop_names, row)
        for request in requests:
            if not request.expands:
                continue
            prop = rel_class.props[request.name]
            link_key = entity.get(request.name)
            if not isinstance(prop, LinkRelationalProp) or link_key is None:
                continue

            try:
                linked = await self._resolve(self._get_class(prop.target), link_key, request.nested or [])
            except AdapterError as e:
                e.add_note(f"while expanding link '{rel_class.name}.{request.name}'")
                raise
            if linked is None:
                self._logger.debug(
                    "nested_link_not_found",
                    class_name=rel_class.name,
                    prop_name=request.name,
                    target=prop.target,
                )
                continue
            entity[request.name] = {**link_key, **linked}

        self._logger.debug("entity_fetched", class_name=rel_class.name, prop_count=len(prop_names))
        return entity

    async def _fetch_row(
        self,
        rel_class: RelationalClass,
        key_fields: dict[str, Any],
        field_names: list[str],
    ) -> dict[str, Any] | None:
        try:
            return await self._adapter.get(rel_class.table, key_fields, field_names)
        except AdapterError as e:
            self._logger.warning("adapter_error", operation="get", class_name=rel_class.name, error=str(e))
            e.add_note(f"while getting an object of class '{rel_class.name}' from table '{rel_class.table}'")
            raise
        except NeshekError:
            raise
        except Exception as e:
            self._logger.warning("adapter_error", operation="get", class_name=rel_class.name, error=str(e))
            raise AdapterError(
                f"Unhandled adapter error while getting class '{rel_class.name}': {e}",
                code="UNHANDLED",
                table=rel_class.table,
                details={"operation": "get", "class_name": rel_class.name},
            ) from e

    def _get_class(self, class_name: str) -> RelationalClass:
        rel_class = self._schema.get(class_name)
        if rel_class is None:
            raise ClassNotFoundError(class_name)
        return rel_class


__all__ = ["FetchResolver"]
