"""Optional hints controlling how a schema is laid out in a relational store.

Hints name tables and fields and pick storage types. Property hints are kept as
raw mappings because their shape depends on the property they describe: a
scalar property takes ``{"name": ..., "ft": ...}`` while a link property takes
a mapping keyed by the target class's key properties, nested once per link hop::

    {"order": {"id": {"name": "order_id"}}, "product": {"code": {"name": "product_code"}}}

The compiler interprets each mapping against the schema.
"""

from collections.abc import Callable
from typing import Any

from pydantic import Field, field_validator

from neshek.models.base import FrozenModel, RecordModel, ensure_non_empty_text

TableNameFunc = Callable[[str], str | None]
FieldTypeFunc = Callable[[Any], str | None]


class ScalarPropHints(FrozenModel):
    """Field name and storage type override for a single physical field."""

    name: str | None = None
    ft: str | None = None

    @field_validator("name", "ft")
    @classmethod
    def _ensure_non_empty(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return ensure_non_empty_text(value, "hint")


class RdbClassHints(RecordModel):
    table_name: str | None = Field(default=None, alias="tableName")
    props: dict[str, dict[str, Any]] = Field(default_factory=dict)

    @field_validator("table_name")
    @classmethod
    def _validate_table_name(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return ensure_non_empty_text(value, "table_name")


class RdbSchemaHints(RecordModel):
    """Schema-wide hints.

    ``table_name_func`` derives a table name from a class name and
    ``field_type_func`` derives a storage type from a property definition.
    Either may return ``None`` to fall through to the default.
    """

    table_name_func: TableNameFunc | None = Field(default=None, exclude=True)
    field_type_func: FieldTypeFunc | None = Field(default=None, exclude=True)
    classes: dict[str, RdbClassHints] = Field(default_factory=dict)

    def for_class(self, class_name: str) -> RdbClassHints | None:
        return self.classes.get(class_name)


__all__ = ["FieldTypeFunc", "RdbClassHints", "RdbSchemaHints", "ScalarPropHints", "TableNameFunc"]
