"""Compiled relational layout of a schema.

Produced once by :class:`~neshek.services.compiler.SchemaCompiler` and shared
read-only by every fetch and insert afterwards.
"""

from typing import Annotated, Literal, Union

from pydantic import Field

from neshek.models.base import RecordModel
from neshek.models.enums import RelationalPropKind
from neshek.models.schema import ClassDef, PropDef


class LinkField(RecordModel):
    """One physical field backing a link property.

    ``prop_chain`` starts with the link property itself and walks through the
    target's key, and through further links, down to the scalar ``leaf``.
    """

    prop_chain: tuple[str, ...]
    storage_type: str
    leaf: PropDef


class ScalarRelationalProp(RecordModel):
    kind: Literal[RelationalPropKind.SCALAR] = RelationalPropKind.SCALAR
    name: str
    prop_def: PropDef
    field: str
    storage_type: str

    @property
    def field_names(self) -> list[str]:
        return [self.field]


class LinkRelationalProp(RecordModel):
    kind: Literal[RelationalPropKind.LINK] = RelationalPropKind.LINK
    name: str
    prop_def: PropDef
    target: str
    fields: dict[str, LinkField]

    @property
    def field_names(self) -> list[str]:
        return list(self.fields)


class MultilinkRelationalProp(RecordModel):
    kind: Literal[RelationalPropKind.MULTILINK] = RelationalPropKind.MULTILINK
    name: str
    prop_def: PropDef

    @property
    def field_names(self) -> list[str]:
        return []


RelationalProp = Annotated[
    Union[ScalarRelationalProp, LinkRelationalProp, MultilinkRelationalProp],
    Field(discriminator="kind"),
]


class RelationalClass(RecordModel):
    name: str
    class_def: ClassDef
    table: str
    props: dict[str, RelationalProp]

    @property
    def key_field_names(self) -> list[str]:
        """Physical fields of the primary key, in key order."""
        names: list[str] = []
        for prop_name in self.class_def.key or ():
            names.extend(self.props[prop_name].field_names)
        return names

    @property
    def field_names(self) -> list[str]:
        names: list[str] = []
        for prop in self.props.values():
            names.extend(prop.field_names)
        return names


class RelationalSchema(RecordModel):
    classes: dict[str, RelationalClass]

    def __getitem__(self, class_name: str) -> RelationalClass:
        return self.classes[class_name]

    def __contains__(self, class_name: object) -> bool:
        return class_name in self.classes

    def get(self, class_name: str) -> RelationalClass | None:
        return self.classes.get(class_name)


__all__ = [
    "LinkField",
    "LinkRelationalProp",
    "MultilinkRelationalProp",
    "RelationalClass",
    "RelationalProp",
    "RelationalSchema",
    "ScalarRelationalProp",
]
