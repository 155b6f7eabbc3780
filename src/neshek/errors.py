"""
Error types raised by neshek.

- NeshekError: Base exception
- SchemaError: Defect in the schema or hints, raised while compiling
- RequestError: Bad class or property name in a get/insert call, raised before I/O
- AdapterError: Failure reported by the storage adapter

A missing entity is not an error: ``get`` returns ``None``.
"""

from typing import Any


class NeshekError(Exception):
    """Base exception for all neshek errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    default_code = "NESHEK_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}


class SchemaError(NeshekError):
    """The schema or its hints cannot be compiled.

    Raised when:
    - A link targets an unknown class or a class without a primary key
    - Key composition is cyclic
    - A hint names a class or property the schema does not define
    """

    default_code = "SCHEMA_ERROR"

    def __init__(
        self,
        message: str,
        class_name: str | None = None,
        prop_name: str | None = None,
    ) -> None:
        super().__init__(message, details={"class_name": class_name, "prop_name": prop_name})
        self.class_name = class_name
        self.prop_name = prop_name


class RequestError(NeshekError):
    """A get or insert call names something the schema does not define."""

    default_code = "REQUEST_ERROR"


class ClassNotFoundError(RequestError):
    default_code = "CLASS_NOT_FOUND"

    def __init__(self, class_name: str) -> None:
        super().__init__(f"Class '{class_name}' not found", details={"class_name": class_name})
        self.class_name = class_name


class PropNotFoundError(RequestError):
    default_code = "PROP_NOT_FOUND"

    def __init__(self, class_name: str, prop_name: str) -> None:
        super().__init__(
            f"Property '{prop_name}' not found in class '{class_name}'",
            details={"class_name": class_name, "prop_name": prop_name},
        )
        self.class_name = class_name
        self.prop_name = prop_name


class InvalidKeyPathError(RequestError):
    """A link value does not contain the key part a physical field needs."""

    default_code = "INVALID_KEY_PATH"

    def __init__(self, class_name: str, prop_chain: tuple[str, ...] | list[str]) -> None:
        chain = ".".join(prop_chain)
        super().__init__(
            f"Value for class '{class_name}' has no key part '{chain}'",
            details={"class_name": class_name, "prop_chain": list(prop_chain)},
        )
        self.class_name = class_name
        self.prop_chain = tuple(prop_chain)


class InvalidPropSetError(RequestError):
    default_code = "INVALID_PROP_SET"

    def __init__(self, message: str, class_name: str, prop_name: str | None = None) -> None:
        super().__init__(message, details={"class_name": class_name, "prop_name": prop_name})
        self.class_name = class_name
        self.prop_name = prop_name


class AdapterError(NeshekError):
    """The storage adapter failed.

    Adapter errors are never retried. The repository adds a note naming the
    operation and class before letting them propagate.
    """

    default_code = "ADAPTER_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        table: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code=code, details={"table": table, **(details or {})})
        self.table = table


class DuplicateKeyError(AdapterError):
    default_code = "DUPLICATE_KEY"

    def __init__(self, table: str, key_fields: dict[str, Any]) -> None:
        super().__init__(
            f"Object with key {key_fields!r} already exists in table '{table}'",
            table=table,
            details={"key_fields": key_fields},
        )
        self.key_fields = key_fields


__all__ = [
    "AdapterError",
    "ClassNotFoundError",
    "DuplicateKeyError",
    "InvalidKeyPathError",
    "InvalidPropSetError",
    "NeshekError",
    "PropNotFoundError",
    "RequestError",
    "SchemaError",
]
