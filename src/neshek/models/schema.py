"""Schema definitions describing the model: classes, their properties and keys.

A schema is purely descriptive. Property definitions form a closed union
discriminated on the ``dt`` tag, so every consumer can match on
:class:`~neshek.models.enums.DataType` exhaustively. Cross-class rules (link
targets, key chains) are checked when the schema is compiled into its
relational form, not here.
"""

from collections.abc import Iterator
from typing import Annotated, Any, Literal, Union

from pydantic import Field, ValidationInfo, field_validator, model_validator

from neshek.models.base import FrozenModel, RecordModel, ensure_name_tuple, ensure_non_empty_text
from neshek.models.enums import OPAQUE_TYPES, DataType


class _PropDefBase(FrozenModel):
    dt: str
    unique: bool = False
    required: bool = False

    @property
    def data_type(self) -> DataType:
        return DataType(self.dt)


class StringPropDef(_PropDefBase):
    dt: Literal["str"] = "str"
    minlen: int | None = Field(default=None, ge=0)
    maxlen: int | None = Field(default=None, gt=0)
    regex: str | None = None
    choices: list[str] | None = None

    @model_validator(mode="after")
    def _validate_lengths(self) -> "StringPropDef":
        if self.minlen is not None and self.maxlen is not None and self.maxlen < self.minlen:
            raise ValueError("maxlen must be greater than or equal to minlen")
        return self


class ClobPropDef(_PropDefBase):
    dt: Literal["clob"] = "clob"


class BoolPropDef(_PropDefBase):
    dt: Literal["bool"] = "bool"


class IntPropDef(_PropDefBase):
    dt: Literal["int"] = "int"
    min: int | None = None
    max: int | None = None
    step: int | None = Field(default=None, gt=0)


class BigIntPropDef(_PropDefBase):
    dt: Literal["bigint"] = "bigint"
    min: int | None = None
    max: int | None = None


class RealPropDef(_PropDefBase):
    dt: Literal["real"] = "real"
    min: float | None = None
    max: float | None = None


class DecimalPropDef(_PropDefBase):
    dt: Literal["dec"] = "dec"
    precision: tuple[int, int] | None = None
    min: float | None = None
    max: float | None = None

    @field_validator("precision")
    @classmethod
    def _validate_precision(cls, value: tuple[int, int] | None) -> tuple[int, int] | None:
        if value is None:
            return None
        digits, scale = value
        if digits <= 0 or scale < 0 or scale > digits:
            raise ValueError("precision must be (digits, scale) with 0 <= scale <= digits")
        return value


class BitsPropDef(_PropDefBase):
    dt: Literal["bits"] = "bits"
    size: int | None = Field(default=None, gt=0)


class TemporalPropDef(_PropDefBase):
    dt: Literal["date", "time", "datetime", "timestamp"]
    precision: str | int | None = None


class LinkPropDef(_PropDefBase):
    dt: Literal["link"] = "link"
    target: str

    @field_validator("target")
    @classmethod
    def _validate_target(cls, value: str) -> str:
        return ensure_non_empty_text(value, "target")


class MultilinkPropDef(_PropDefBase):
    dt: Literal["multilink"] = "multilink"
    origin: str
    origin_key: str | None = Field(default=None, alias="originKey")

    @field_validator("origin")
    @classmethod
    def _validate_origin(cls, value: str) -> str:
        return ensure_non_empty_text(value, "origin")


class StructPropDef(_PropDefBase):
    dt: Literal["obj"] = "obj"
    name: str | None = None
    props: dict[str, "PropDef"] | None = None

    @model_validator(mode="after")
    def _validate_shape(self) -> "StructPropDef":
        if (self.name is None) == (self.props is None):
            raise ValueError("structure property needs either a struct name or inline props")
        return self


class ArrayPropDef(_PropDefBase):
    dt: Literal["arr"] = "arr"
    elm: "PropDef"


PropDef = Annotated[
    Union[
        StringPropDef,
        ClobPropDef,
        BoolPropDef,
        IntPropDef,
        BigIntPropDef,
        RealPropDef,
        DecimalPropDef,
        BitsPropDef,
        TemporalPropDef,
        LinkPropDef,
        MultilinkPropDef,
        StructPropDef,
        ArrayPropDef,
    ],
    Field(discriminator="dt"),
]

StructPropDef.model_rebuild()
ArrayPropDef.model_rebuild()


class ClassDef(RecordModel):
    props: dict[str, PropDef]
    key: tuple[str, ...] | None = None

    @field_validator("key", mode="before")
    @classmethod
    def _normalize_key(cls, value: Any, info: ValidationInfo) -> tuple[str, ...] | None:
        return ensure_name_tuple(value, info.field_name or "key")

    @model_validator(mode="after")
    def _validate_key(self) -> "ClassDef":
        if self.key is None:
            return self
        if not self.key:
            raise ValueError("key cannot be empty; omit it for classes without a key")
        if len(set(self.key)) != len(self.key):
            raise ValueError("key cannot list a property twice")
        for prop_name in self.key:
            prop_def = self.props.get(prop_name)
            if prop_def is None:
                raise ValueError(f"key property '{prop_name}' is not defined")
            if prop_def.data_type == DataType.MULTILINK or prop_def.data_type in OPAQUE_TYPES:
                raise ValueError(f"key property '{prop_name}' cannot be of type '{prop_def.dt}'")
        return self

    @property
    def has_key(self) -> bool:
        return bool(self.key)

    def default_prop_names(self) -> list[str]:
        """Names of every property except multilinks, in declaration order."""
        return [name for name, prop_def in self.props.items() if prop_def.data_type != DataType.MULTILINK]


class SchemaDef(RecordModel):
    classes: dict[str, ClassDef]
    structs: dict[str, dict[str, PropDef]] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _validate_struct_references(self) -> "SchemaDef":
        for owner, prop_name, struct_name in self._struct_references():
            if struct_name not in self.structs:
                raise ValueError(f"property '{owner}.{prop_name}' references unknown struct '{struct_name}'")
        return self

    def _struct_references(self) -> Iterator[tuple[str, str, str]]:
        owners: list[tuple[str, dict[str, Any]]] = [(name, c.props) for name, c in self.classes.items()]
        owners.extend(self.structs.items())
        for owner, props in owners:
            for prop_name, prop_def in props.items():
                for struct_name in _struct_names(prop_def):
                    yield owner, prop_name, struct_name

    def get_class(self, class_name: str) -> ClassDef | None:
        return self.classes.get(class_name)


def _struct_names(prop_def: Any) -> Iterator[str]:
    if isinstance(prop_def, ArrayPropDef):
        yield from _struct_names(prop_def.elm)
    elif isinstance(prop_def, StructPropDef):
        if prop_def.name is not None:
            yield prop_def.name
        for nested in (prop_def.props or {}).values():
            yield from _struct_names(nested)


__all__ = [
    "ArrayPropDef",
    "BigIntPropDef",
    "BitsPropDef",
    "BoolPropDef",
    "ClassDef",
    "ClobPropDef",
    "DecimalPropDef",
    "IntPropDef",
    "LinkPropDef",
    "MultilinkPropDef",
    "PropDef",
    "RealPropDef",
    "SchemaDef",
    "StringPropDef",
    "StructPropDef",
    "TemporalPropDef",
]
