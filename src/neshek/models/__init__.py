from neshek.models.enums import DataType, RelationalPropKind
from neshek.models.hints import RdbClassHints, RdbSchemaHints, ScalarPropHints
from neshek.models.propset import PropRequest, normalize_prop_set
from neshek.models.relational import (
    LinkField,
    LinkRelationalProp,
    MultilinkRelationalProp,
    RelationalClass,
    RelationalSchema,
    ScalarRelationalProp,
)
from neshek.models.schema import ClassDef, SchemaDef

__all__ = [
    "ClassDef",
    "SchemaDef",
    "DataType",
    "RelationalPropKind",
    "RdbSchemaHints",
    "RdbClassHints",
    "ScalarPropHints",
    "PropRequest",
    "normalize_prop_set",
    "LinkField",
    "ScalarRelationalProp",
    "LinkRelationalProp",
    "MultilinkRelationalProp",
    "RelationalClass",
    "RelationalSchema",
]
