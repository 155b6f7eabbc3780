"""Conversion between entity-shaped values and flat field values.

These functions are the only place where link values are flattened into their
key fields and rebuilt from them. An entity value for a link is itself a
partial entity holding the target's key, for example ``{"order": {"id": 123}}``
for a field ``order_id``.
"""

from collections.abc import Iterable, Mapping
from typing import Any

from neshek.errors import InvalidKeyPathError, PropNotFoundError
from neshek.models.relational import (
    LinkRelationalProp,
    MultilinkRelationalProp,
    RelationalClass,
    RelationalProp,
    ScalarRelationalProp,
)


def _get_prop(rel_class: RelationalClass, prop_name: str) -> RelationalProp:
    prop = rel_class.props.get(prop_name)
    if prop is None:
        raise PropNotFoundError(rel_class.name, prop_name)
    return prop


def props_to_fields(rel_class: RelationalClass, values: Mapping[str, Any]) -> dict[str, Any]:
    """Flatten entity values into a mapping of physical field names to values.

    Raises:
        PropNotFoundError: If a key of ``values`` is not a property of the class.
        InvalidKeyPathError: If a link value lacks part of the target's key.
    """
    field_values: dict[str, Any] = {}
    for prop_name, value in values.items():
        prop = _get_prop(rel_class, prop_name)
        if isinstance(prop, ScalarRelationalProp):
            field_values[prop.field] = value
        elif isinstance(prop, LinkRelationalProp):
            for field_name, link_field in prop.fields.items():
                field_values[field_name] = _follow_chain(rel_class, values, link_field.prop_chain)
    return field_values


def _follow_chain(rel_class: RelationalClass, values: Mapping[str, Any], prop_chain: tuple[str, ...]) -> Any:
    # the chain starts at the link property, so it is present in values
    current: Any = values[prop_chain[0]]
    if current is None:
        return None
    for prop_name in prop_chain[1:]:
        if not isinstance(current, Mapping) or prop_name not in current:
            raise InvalidKeyPathError(rel_class.name, prop_chain)
        current = current[prop_name]
    if isinstance(current, Mapping):
        raise InvalidKeyPathError(rel_class.name, prop_chain)
    return current


def fields_to_props(
    rel_class: RelationalClass,
    prop_names: Iterable[str],
    field_values: Mapping[str, Any],
) -> dict[str, Any]:
    """Rebuild entity values for ``prop_names`` from physical field values.

    A link is rebuilt as a nested mapping along each field's prop chain. A link
    whose fields are all ``None`` becomes ``None``. Multilinks have no fields
    and are left out.
    """
    values: dict[str, Any] = {}
    for prop_name in prop_names:
        prop = _get_prop(rel_class, prop_name)
        if isinstance(prop, ScalarRelationalProp):
            values[prop_name] = field_values.get(prop.field)
        elif isinstance(prop, LinkRelationalProp):
            values[prop_name] = _build_link_value(prop, field_values)
    return values


def _build_link_value(prop: LinkRelationalProp, field_values: Mapping[str, Any]) -> dict[str, Any] | None:
    if all(field_values.get(field_name) is None for field_name in prop.fields):
        return None

    link_value: dict[str, Any] = {}
    for field_name, link_field in prop.fields.items():
        # skip the link's own name; intermediate links become nested mappings
        current = link_value
        for prop_name in link_field.prop_chain[1:-1]:
            current = current.setdefault(prop_name, {})
        current[link_field.prop_chain[-1]] = field_values.get(field_name)
    return link_value


def names_props_to_fields(rel_class: RelationalClass, prop_names: Iterable[str]) -> list[str]:
    """Expand property names into the physical fields needed to read them."""
    field_names: list[str] = []
    for prop_name in prop_names:
        prop = _get_prop(rel_class, prop_name)
        if isinstance(prop, MultilinkRelationalProp):
            continue
        for field_name in prop.field_names:
            if field_name not in field_names:
                field_names.append(field_name)
    return field_names


__all__ = ["fields_to_props", "names_props_to_fields", "props_to_fields"]
