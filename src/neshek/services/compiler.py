"""Compiles a schema definition and optional hints into a relational schema.

Compilation runs in two passes. The first pass assigns a table to every class
and a field and storage type to every property that is neither a link nor a
multilink. The second pass resolves link properties: the target class's primary
key is flattened into one physical field per scalar leaf, following links that
are themselves part of a key. The second pass reads storage types produced by
the first, so it can only start once every class has been through pass one.
"""

from collections.abc import Mapping
from typing import Any

import structlog
from pydantic import ValidationError

from neshek.errors import SchemaError
from neshek.models.enums import OPAQUE_TYPES, DataType
from neshek.models.hints import RdbClassHints, RdbSchemaHints, ScalarPropHints
from neshek.models.relational import (
    LinkField,
    LinkRelationalProp,
    MultilinkRelationalProp,
    RelationalClass,
    RelationalProp,
    RelationalSchema,
    ScalarRelationalProp,
)
from neshek.models.schema import (
    BitsPropDef,
    BoolPropDef,
    DecimalPropDef,
    IntPropDef,
    LinkPropDef,
    PropDef,
    SchemaDef,
    StringPropDef,
    TemporalPropDef,
)

# Strings longer than this are stored as text rather than varchar.
MAX_VARCHAR_LENGTH = 8000

LINK_FIELD_SEPARATOR = "_"


class SchemaCompiler:
    """Builds a :class:`RelationalSchema` from a :class:`SchemaDef`.

    The ``*_field_type`` methods supply default storage types and can be
    overridden by subclasses targeting a particular database.
    """

    def __init__(self, logger: structlog.stdlib.BoundLogger | None = None) -> None:
        self._logger = logger or structlog.get_logger(__name__)

    def compile(self, schema_def: SchemaDef, hints: RdbSchemaHints | None = None) -> RelationalSchema:
        """Compile the schema.

        Args:
            schema_def: Classes and structs to lay out.
            hints: Optional table, field and storage type overrides.

        Returns:
            The immutable relational schema.

        Raises:
            SchemaError: If a link cannot be resolved, key composition is
                cyclic, or hints reference something the schema lacks.
        """
        hints = hints or RdbSchemaHints()
        self._validate_hints(schema_def, hints)

        # first pass: tables and every property that is not a link
        tables: dict[str, str] = {}
        props: dict[str, dict[str, RelationalProp | None]] = {}
        for class_name, class_def in schema_def.classes.items():
            class_hints = hints.for_class(class_name)
            tables[class_name] = self._table_name(class_name, class_hints, hints)
            props[class_name] = {
                prop_name: self._compile_non_link_prop(class_name, prop_name, prop_def, class_hints, hints)
                for prop_name, prop_def in class_def.props.items()
            }

        # second pass: links, which need the target's scalar storage types
        for class_name, class_def in schema_def.classes.items():
            class_hints = hints.for_class(class_name)
            for prop_name, prop_def in class_def.props.items():
                if isinstance(prop_def, LinkPropDef):
                    props[class_name][prop_name] = self._compile_link_prop(
                        schema_def, props, class_name, prop_name, prop_def, class_hints
                    )

        classes: dict[str, RelationalClass] = {}
        for class_name, class_def in schema_def.classes.items():
            compiled_props: dict[str, RelationalProp] = {}
            field_owners: dict[str, str] = {}
            for prop_name, compiled in props[class_name].items():
                if compiled is None:
                    raise SchemaError(
                        f"Property '{class_name}.{prop_name}' was not compiled",
                        class_name=class_name,
                        prop_name=prop_name,
                    )
                for field_name in compiled.field_names:
                    if field_name in field_owners:
                        raise SchemaError(
                            f"Properties '{field_owners[field_name]}' and '{prop_name}' of class "
                            f"'{class_name}' both map to field '{field_name}'",
                            class_name=class_name,
                            prop_name=prop_name,
                        )
                    field_owners[field_name] = prop_name
                compiled_props[prop_name] = compiled
            classes[class_name] = RelationalClass(
                name=class_name,
                class_def=class_def,
                table=tables[class_name],
                props=compiled_props,
            )
            self._logger.debug(
                "relational_class_compiled",
                class_name=class_name,
                table=tables[class_name],
                field_count=len(classes[class_name].field_names),
            )

        self._logger.info("schema_compiled", class_count=len(classes))
        return RelationalSchema(classes=classes)

    def _table_name(
        self,
        class_name: str,
        class_hints: RdbClassHints | None,
        hints: RdbSchemaHints,
    ) -> str:
        if class_hints is not None and class_hints.table_name:
            return class_hints.table_name
        if hints.table_name_func is not None:
            derived = hints.table_name_func(class_name)
            if derived:
                return derived
        return class_name

    def _compile_non_link_prop(
        self,
        class_name: str,
        prop_name: str,
        prop_def: PropDef,
        class_hints: RdbClassHints | None,
        hints: RdbSchemaHints,
    ) -> RelationalProp | None:
        """Compile a property in the first pass; links yield ``None`` until pass two."""
        data_type = prop_def.data_type
        if data_type == DataType.LINK:
            return None
        if data_type == DataType.MULTILINK:
            return MultilinkRelationalProp(name=prop_name, prop_def=prop_def)

        prop_hints = self._scalar_hints(class_name, prop_name, class_hints)
        storage_type = prop_hints.ft
        if storage_type is None and hints.field_type_func is not None:
            storage_type = hints.field_type_func(prop_def)
        if storage_type is None:
            storage_type = self.field_type(prop_def)

        return ScalarRelationalProp(
            name=prop_name,
            prop_def=prop_def,
            field=prop_hints.name or prop_name,
            storage_type=storage_type,
        )

    def _compile_link_prop(
        self,
        schema_def: SchemaDef,
        props: Mapping[str, Mapping[str, RelationalProp | None]],
        class_name: str,
        prop_name: str,
        prop_def: LinkPropDef,
        class_hints: RdbClassHints | None,
    ) -> LinkRelationalProp:
        link_hints = class_hints.props.get(prop_name) if class_hints is not None else None
        fields: dict[str, LinkField] = {}
        self._fill_link_fields(
            schema_def,
            props,
            fields,
            leading_chain=(prop_name,),
            visiting=(),
            owner=class_name,
            link_def=prop_def,
            link_hints=link_hints,
        )
        return LinkRelationalProp(name=prop_name, prop_def=prop_def, target=prop_def.target, fields=fields)

    def _fill_link_fields(
        self,
        schema_def: SchemaDef,
        props: Mapping[str, Mapping[str, RelationalProp | None]],
        fields: dict[str, LinkField],
        leading_chain: tuple[str, ...],
        visiting: tuple[str, ...],
        owner: str,
        link_def: LinkPropDef,
        link_hints: Mapping[str, Any] | None,
    ) -> None:
        """Add one physical field per scalar leaf of the link target's key.

        Walks the target's key recursively; ``visiting`` holds the classes
        already entered along the current chain.
        """
        chain_text = ".".join(leading_chain)
        target_name = link_def.target
        target_def = schema_def.classes.get(target_name)
        if target_def is None:
            raise SchemaError(
                f"Link '{owner}.{chain_text}' targets unknown class '{target_name}'",
                class_name=owner,
                prop_name=leading_chain[0],
            )
        if not target_def.key:
            raise SchemaError(
                f"Link '{owner}.{chain_text}' targets class '{target_name}', which has no primary key",
                class_name=owner,
                prop_name=leading_chain[0],
            )
        if target_name in visiting:
            raise SchemaError(
                f"Key of class '{target_name}' includes itself through '{owner}.{chain_text}'",
                class_name=owner,
                prop_name=leading_chain[0],
            )

        for key_prop_name in target_def.key:
            chain = leading_chain + (key_prop_name,)
            key_prop_def = target_def.props[key_prop_name]
            key_hints = link_hints.get(key_prop_name) if link_hints is not None else None

            if isinstance(key_prop_def, LinkPropDef):
                self._fill_link_fields(
                    schema_def,
                    props,
                    fields,
                    leading_chain=chain,
                    visiting=visiting + (target_name,),
                    owner=owner,
                    link_def=key_prop_def,
                    link_hints=key_hints,
                )
                continue

            key_prop = props[target_name][key_prop_name]
            if not isinstance(key_prop, ScalarRelationalProp):
                raise SchemaError(
                    f"Key property '{target_name}.{key_prop_name}' has no storage field",
                    class_name=target_name,
                    prop_name=key_prop_name,
                )
            field_hints = self._parse_scalar_hints(owner, ".".join(chain), key_hints)
            field_name = field_hints.name or LINK_FIELD_SEPARATOR.join(chain)
            if field_name in fields:
                raise SchemaError(
                    f"Link '{owner}.{leading_chain[0]}' maps two key parts to field '{field_name}'",
                    class_name=owner,
                    prop_name=leading_chain[0],
                )
            fields[field_name] = LinkField(
                prop_chain=chain,
                storage_type=field_hints.ft or key_prop.storage_type,
                leaf=key_prop_def,
            )

    def _validate_hints(self, schema_def: SchemaDef, hints: RdbSchemaHints) -> None:
        for class_name, class_hints in hints.classes.items():
            class_def = schema_def.classes.get(class_name)
            if class_def is None:
                raise SchemaError(f"Hints given for unknown class '{class_name}'", class_name=class_name)
            for prop_name, prop_hints in class_hints.props.items():
                prop_def = class_def.props.get(prop_name)
                if prop_def is None:
                    raise SchemaError(
                        f"Hints given for unknown property '{class_name}.{prop_name}'",
                        class_name=class_name,
                        prop_name=prop_name,
                    )
                if prop_def.data_type == DataType.MULTILINK:
                    raise SchemaError(
                        f"Multilink '{class_name}.{prop_name}' has no storage and cannot take hints",
                        class_name=class_name,
                        prop_name=prop_name,
                    )
                if isinstance(prop_def, LinkPropDef):
                    self._validate_link_hints(schema_def, class_name, (prop_name,), prop_def, prop_hints, ())
                else:
                    self._parse_scalar_hints(class_name, prop_name, prop_hints)

    def _validate_link_hints(
        self,
        schema_def: SchemaDef,
        owner: str,
        chain: tuple[str, ...],
        link_def: LinkPropDef,
        link_hints: Any,
        visiting: tuple[str, ...],
    ) -> None:
        chain_text = ".".join(chain)
        if not isinstance(link_hints, Mapping):
            raise SchemaError(
                f"Hints for link '{owner}.{chain_text}' must map key properties of '{link_def.target}'",
                class_name=owner,
                prop_name=chain[0],
            )
        target_def = schema_def.classes.get(link_def.target)
        # unknown targets and cycles are reported by the link pass
        if target_def is None or link_def.target in visiting:
            return
        key = target_def.key or ()
        for key_prop_name, key_hints in link_hints.items():
            if key_hints is None:
                continue
            if key_prop_name not in key:
                raise SchemaError(
                    f"Hints for link '{owner}.{chain_text}' name '{key_prop_name}', "
                    f"which is not a key property of '{link_def.target}'",
                    class_name=owner,
                    prop_name=chain[0],
                )
            key_prop_def = target_def.props[key_prop_name]
            if isinstance(key_prop_def, LinkPropDef):
                self._validate_link_hints(
                    schema_def,
                    owner,
                    chain + (key_prop_name,),
                    key_prop_def,
                    key_hints,
                    visiting + (link_def.target,),
                )
            else:
                self._parse_scalar_hints(owner, f"{chain_text}.{key_prop_name}", key_hints)

    def _scalar_hints(self, class_name: str, prop_name: str, class_hints: RdbClassHints | None) -> ScalarPropHints:
        raw = class_hints.props.get(prop_name) if class_hints is not None else None
        return self._parse_scalar_hints(class_name, prop_name, raw)

    def _parse_scalar_hints(self, class_name: str, prop_path: str, raw: Any) -> ScalarPropHints:
        if raw is None:
            return ScalarPropHints()
        if isinstance(raw, ScalarPropHints):
            return raw
        try:
            return ScalarPropHints.model_validate(raw)
        except ValidationError as e:
            raise SchemaError(
                f"Invalid hints for '{class_name}.{prop_path}': {e.errors()[0]['msg']}",
                class_name=class_name,
                prop_name=prop_path.split(".")[0],
            ) from e

    def field_type(self, prop_def: PropDef) -> str:
        """Return the default storage type for a property definition."""
        data_type = prop_def.data_type
        if isinstance(prop_def, StringPropDef):
            return self.string_field_type(prop_def)
        if isinstance(prop_def, BoolPropDef):
            return self.bool_field_type(prop_def)
        if isinstance(prop_def, IntPropDef):
            return self.int_field_type(prop_def)
        if isinstance(prop_def, DecimalPropDef):
            return self.decimal_field_type(prop_def)
        if isinstance(prop_def, BitsPropDef):
            return f"bit({prop_def.size})" if prop_def.size else "bit"
        if isinstance(prop_def, TemporalPropDef):
            return self.temporal_field_type(prop_def)
        if data_type == DataType.BIGINT:
            return "bigint"
        if data_type == DataType.REAL:
            return "float"
        if data_type == DataType.CLOB:
            return "clob"
        if data_type in OPAQUE_TYPES:
            return "json"
        return "varchar"

    def string_field_type(self, prop_def: StringPropDef) -> str:
        if not prop_def.maxlen:
            return "varchar"
        if prop_def.maxlen > MAX_VARCHAR_LENGTH:
            return f"text({prop_def.maxlen})"
        return f"varchar({prop_def.maxlen})"

    def bool_field_type(self, prop_def: BoolPropDef) -> str:
        return "tinyint"

    def int_field_type(self, prop_def: IntPropDef) -> str:
        return "int"

    def decimal_field_type(self, prop_def: DecimalPropDef) -> str:
        if prop_def.precision is None:
            return "decimal"
        digits, scale = prop_def.precision
        return f"decimal({digits},{scale})"

    def temporal_field_type(self, prop_def: TemporalPropDef) -> str:
        if isinstance(prop_def.precision, int):
            return f"{prop_def.dt}({prop_def.precision})"
        return prop_def.dt


def compile_schema(schema_def: SchemaDef, hints: RdbSchemaHints | None = None) -> RelationalSchema:
    """Compile with the default storage types."""
    return SchemaCompiler().compile(schema_def, hints)


__all__ = ["SchemaCompiler", "compile_schema"]
