from collections.abc import Sequence
from typing import Any, Mapping, Type, TypeVar

from pydantic import BaseModel, ConfigDict

T_Model = TypeVar("T_Model", bound="RecordModel")


class FrozenModel(BaseModel):
    """Base class enforcing immutability and strict field sets."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)


class RecordModel(FrozenModel):
    """Adds serialization helpers for schema files and CLI output."""

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True, by_alias=True)

    @classmethod
    def from_record(cls: Type[T_Model], data: Mapping[str, Any] | BaseModel) -> T_Model:
        return cls.model_validate(data)


def ensure_non_empty_text(value: str, field_name: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{field_name} must be a string")
    if not value.strip():
        raise ValueError(f"{field_name} cannot be empty")
    return value


def ensure_name_tuple(value: Any, field_name: str) -> tuple[str, ...] | None:
    """Accept a single name or a sequence of names and return a tuple."""
    if value is None:
        return None
    if isinstance(value, str):
        return (ensure_non_empty_text(value, field_name),)
    if isinstance(value, Sequence) and all(isinstance(item, str) for item in value):
        return tuple(ensure_non_empty_text(item, field_name) for item in value)
    # pydantic only turns ValueError into a ValidationError
    raise ValueError(f"{field_name} must be a name or a list of names")
