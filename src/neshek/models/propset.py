"""Property sets: what to retrieve for an entity and for the entities it links to.

A property set arrives in one of four shapes:

- ``None`` or ``"*"``: the default set, every property except multilinks
- a comma-separated string or a list of names
- a mapping of property names to nested property sets, where ``None`` means
  "include, bare", ``"*"`` means "include with the target's default set", and a
  string, list or mapping is applied to the linked entity. The reserved ``"_"``
  key holds a base list merged under the mapping's own keys.

:func:`normalize_prop_set` turns any of these into a list of
:class:`PropRequest` objects, validating the whole tree against the schema
before any storage access happens.
"""

from collections.abc import Mapping, Sequence
from typing import Any, Union

from neshek.errors import InvalidPropSetError, PropNotFoundError
from neshek.models.base import FrozenModel
from neshek.models.schema import ClassDef, LinkPropDef

WILDCARD = "*"
BASE_KEY = "_"
NAME_DELIMITER = ","

PropSetSpec = Union[None, str, Sequence[str], Mapping[str, Any]]


class PropRequest(FrozenModel):
    """One property to fetch; ``nested`` is set when a link should be expanded."""

    name: str
    nested: list["PropRequest"] | None = None

    @property
    def expands(self) -> bool:
        return self.nested is not None


def normalize_prop_set(
    class_name: str,
    classes: Mapping[str, ClassDef],
    prop_set: PropSetSpec = None,
) -> list[PropRequest]:
    class_def = classes[class_name]

    if prop_set is None:
        return [PropRequest(name=name) for name in class_def.default_prop_names()]

    if isinstance(prop_set, Mapping):
        return _normalize_mapping(class_name, classes, prop_set)

    names = _normalize_names(class_name, class_def, prop_set)
    return [PropRequest(name=name) for name in names]


def _normalize_names(class_name: str, class_def: ClassDef, spec: Any) -> list[str]:
    if isinstance(spec, str):
        items: list[Any] = [part.strip() for part in spec.split(NAME_DELIMITER)]
        items = [item for item in items if item]
    elif isinstance(spec, Sequence):
        items = list(spec)
    else:
        raise InvalidPropSetError(
            f"Property set for class '{class_name}' must be a name, a list of names or a mapping",
            class_name=class_name,
        )

    names: list[str] = []
    for item in items:
        if not isinstance(item, str):
            raise InvalidPropSetError(
                f"Property names for class '{class_name}' must be strings, got {item!r}",
                class_name=class_name,
            )
        expanded = class_def.default_prop_names() if item == WILDCARD else [item]
        for name in expanded:
            if name not in class_def.props:
                raise PropNotFoundError(class_name, name)
            if name not in names:
                names.append(name)
    return names


def _normalize_mapping(
    class_name: str,
    classes: Mapping[str, ClassDef],
    spec: Mapping[str, Any],
) -> list[PropRequest]:
    class_def = classes[class_name]
    requests: dict[str, PropRequest] = {}

    base = spec.get(BASE_KEY)
    if base is not None:
        for name in _normalize_names(class_name, class_def, base):
            requests[name] = PropRequest(name=name)

    for name, nested_spec in spec.items():
        if name == BASE_KEY:
            continue
        prop_def = class_def.props.get(name)
        if prop_def is None:
            raise PropNotFoundError(class_name, name)

        nested: list[PropRequest] | None = None
        if nested_spec is not None:
            if not isinstance(prop_def, LinkPropDef):
                raise InvalidPropSetError(
                    f"Property '{name}' of class '{class_name}' is not a link and cannot take a nested property set",
                    class_name=class_name,
                    prop_name=name,
                )
            if prop_def.target not in classes:
                raise InvalidPropSetError(
                    f"Link '{name}' of class '{class_name}' targets unknown class '{prop_def.target}'",
                    class_name=class_name,
                    prop_name=name,
                )
            target_spec = None if nested_spec == WILDCARD else nested_spec
            nested = normalize_prop_set(prop_def.target, classes, target_spec)

        # assigning an existing key keeps its position from the base list
        requests[name] = PropRequest(name=name, nested=nested)

    return list(requests.values())


__all__ = ["BASE_KEY", "NAME_DELIMITER", "WILDCARD", "PropRequest", "PropSetSpec", "normalize_prop_set"]
