"""Unit tests for the SchemaCompiler service."""

import pytest

from neshek.errors import SchemaError
from neshek.models.enums import RelationalPropKind
from neshek.models.hints import RdbSchemaHints
from neshek.models.relational import (
    LinkRelationalProp,
    MultilinkRelationalProp,
    RelationalSchema,
    ScalarRelationalProp,
)
from neshek.models.schema import BoolPropDef, SchemaDef
from neshek.services.compiler import SchemaCompiler, compile_schema


def _make_schema(extra_classes: dict | None = None) -> SchemaDef:
    """Create the order/product/item schema used across compiler tests."""
    classes = {
        "Order": {
            "props": {
                "id": {"dt": "int"},
                "customer": {"dt": "str", "maxlen": 100},
                "items": {"dt": "multilink", "origin": "Item", "originKey": "order"},
            },
            "key": ["id"],
        },
        "Product": {
            "props": {
                "code": {"dt": "str", "maxlen": 20},
                "name": {"dt": "str"},
            },
            "key": ["code"],
        },
        "Item": {
            "props": {
                "order": {"dt": "link", "target": "Order"},
                "product": {"dt": "link", "target": "Product"},
                "price": {"dt": "real"},
            },
            "key": ["order", "product"],
        },
        "ExtraItemInfo": {
            "props": {
                "item": {"dt": "link", "target": "Item"},
                "note": {"dt": "clob"},
            },
            "key": ["item"],
        },
    }
    classes.update(extra_classes or {})
    return SchemaDef.model_validate({"classes": classes})


def _make_hints() -> RdbSchemaHints:
    return RdbSchemaHints.model_validate(
        {
            "classes": {
                "Order": {"tableName": "orders"},
                "Item": {
                    "props": {
                        "order": {"id": {"name": "order_id"}},
                        "product": {"code": {"name": "product_code"}},
                    }
                },
                "ExtraItemInfo": {
                    "tableName": "extra_info_objects",
                    "props": {
                        "item": {
                            "order": {"id": {"name": "orderId"}},
                            "product": {"code": {"name": "productCode"}},
                        }
                    },
                },
            }
        }
    )


def _make_single_prop_schema(prop_def: dict) -> SchemaDef:
    return SchemaDef.model_validate({"classes": {"Thing": {"props": {"value": prop_def}}}})


def _storage_type(prop_def: dict, compiler: SchemaCompiler | None = None) -> str:
    relational = (compiler or SchemaCompiler()).compile(_make_single_prop_schema(prop_def))
    prop = relational["Thing"].props["value"]
    assert isinstance(prop, ScalarRelationalProp)
    return prop.storage_type


class TestTableNames:
    def test_defaults_to_class_name(self) -> None:
        relational = compile_schema(_make_schema())

        assert relational["Item"].table == "Item"

    def test_class_hint_sets_table_name(self) -> None:
        relational = compile_schema(_make_schema(), _make_hints())

        assert relational["Order"].table == "orders"
        assert relational["ExtraItemInfo"].table == "extra_info_objects"

    def test_table_name_func_applies_when_no_class_hint(self) -> None:
        hints = _make_hints().model_copy(update={"table_name_func": lambda name: f"t_{name.lower()}"})

        relational = compile_schema(_make_schema(), hints)

        assert relational["Product"].table == "t_product"
        assert relational["Order"].table == "orders"

    def test_table_name_func_returning_none_falls_through(self) -> None:
        hints = RdbSchemaHints(table_name_func=lambda name: None)

        relational = compile_schema(_make_schema(), hints)

        assert relational["Product"].table == "Product"


class TestScalarProps:
    def test_field_defaults_to_prop_name(self) -> None:
        relational = compile_schema(_make_schema())

        prop = relational["Order"].props["customer"]
        assert isinstance(prop, ScalarRelationalProp)
        assert prop.field == "customer"
        assert prop.storage_type == "varchar(100)"

    def test_hints_set_field_name_and_type(self) -> None:
        hints = RdbSchemaHints.model_validate(
            {"classes": {"Order": {"props": {"customer": {"name": "customer_name", "ft": "nvarchar(80)"}}}}}
        )

        prop = compile_schema(_make_schema(), hints)["Order"].props["customer"]

        assert isinstance(prop, ScalarRelationalProp)
        assert prop.field == "customer_name"
        assert prop.storage_type == "nvarchar(80)"

    @pytest.mark.parametrize(
        ("prop_def", "expected"),
        [
            ({"dt": "str"}, "varchar"),
            ({"dt": "str", "maxlen": 255}, "varchar(255)"),
            ({"dt": "str", "maxlen": 10000}, "text(10000)"),
            ({"dt": "bool"}, "tinyint"),
            ({"dt": "int"}, "int"),
            ({"dt": "bigint"}, "bigint"),
            ({"dt": "real"}, "float"),
            ({"dt": "dec", "precision": [12, 4]}, "decimal(12,4)"),
            ({"dt": "dec"}, "decimal"),
            ({"dt": "clob"}, "clob"),
            ({"dt": "bits", "size": 8}, "bit(8)"),
            ({"dt": "date"}, "date"),
            ({"dt": "timestamp", "precision": 3}, "timestamp(3)"),
            ({"dt": "datetime", "precision": "second"}, "datetime"),
            ({"dt": "obj", "props": {"x": {"dt": "int"}}}, "json"),
            ({"dt": "arr", "elm": {"dt": "str"}}, "json"),
        ],
    )
    def test_default_storage_types(self, prop_def: dict, expected: str) -> None:
        assert _storage_type(prop_def) == expected

    def test_field_type_func_overrides_default(self) -> None:
        hints = RdbSchemaHints(field_type_func=lambda prop_def: "text" if prop_def.dt == "str" else None)

        relational = compile_schema(_make_schema(), hints)

        assert relational["Product"].props["code"].storage_type == "text"
        assert relational["Order"].props["id"].storage_type == "int"

    def test_subclass_overrides_storage_type(self) -> None:
        class PostgresCompiler(SchemaCompiler):
            def bool_field_type(self, prop_def: BoolPropDef) -> str:
                return "boolean"

        assert _storage_type({"dt": "bool"}, PostgresCompiler()) == "boolean"

    def test_multilink_has_no_fields(self) -> None:
        relational = compile_schema(_make_schema())

        prop = relational["Order"].props["items"]
        assert isinstance(prop, MultilinkRelationalProp)
        assert prop.field_names == []
        assert relational["Order"].field_names == ["id", "customer"]


class TestLinkProps:
    def test_link_flattens_target_key(self) -> None:
        relational = compile_schema(_make_schema())

        item = relational["Item"]
        order = item.props["order"]
        assert isinstance(order, LinkRelationalProp)
        assert order.target == "Order"
        assert list(order.fields) == ["order_id"]
        assert order.fields["order_id"].prop_chain == ("order", "id")
        assert order.fields["order_id"].storage_type == "int"
        assert item.props["product"].fields["product_code"].storage_type == "varchar(20)"
        assert item.field_names == ["order_id", "product_code", "price"]
        assert item.key_field_names == ["order_id", "product_code"]

    def test_key_through_links_yields_one_field_per_leaf(self) -> None:
        relational = compile_schema(_make_schema())

        info = relational["ExtraItemInfo"]
        item = info.props["item"]
        assert isinstance(item, LinkRelationalProp)
        assert {name: field.prop_chain for name, field in item.fields.items()} == {
            "item_order_id": ("item", "order", "id"),
            "item_product_code": ("item", "product", "code"),
        }
        assert info.key_field_names == ["item_order_id", "item_product_code"]

    def test_nested_link_hints_name_fields(self) -> None:
        relational = compile_schema(_make_schema(), _make_hints())

        assert relational["Item"].key_field_names == ["order_id", "product_code"]
        item = relational["ExtraItemInfo"].props["item"]
        assert list(item.fields) == ["orderId", "productCode"]
        assert item.fields["productCode"].prop_chain == ("item", "product", "code")

    def test_link_hint_overrides_storage_type(self) -> None:
        hints = RdbSchemaHints.model_validate(
            {"classes": {"Item": {"props": {"order": {"id": {"ft": "bigint"}}}}}}
        )

        relational = compile_schema(_make_schema(), hints)

        assert relational["Item"].props["order"].fields["order_id"].storage_type == "bigint"

    def test_target_storage_type_hint_is_inherited(self) -> None:
        hints = RdbSchemaHints.model_validate({"classes": {"Order": {"props": {"id": {"ft": "bigint"}}}}})

        relational = compile_schema(_make_schema(), hints)

        assert relational["Item"].props["order"].fields["order_id"].storage_type == "bigint"
        assert relational["ExtraItemInfo"].props["item"].fields["item_order_id"].storage_type == "bigint"

    def test_self_link_outside_key_is_allowed(self) -> None:
        schema = _make_schema(
            {
                "Person": {
                    "props": {"id": {"dt": "int"}, "manager": {"dt": "link", "target": "Person"}},
                    "key": ["id"],
                }
            }
        )

        relational = compile_schema(schema)

        assert relational["Person"].props["manager"].fields["manager_id"].prop_chain == ("manager", "id")


class TestCompileErrors:
    def test_unknown_link_target(self) -> None:
        schema = _make_schema({"Note": {"props": {"order": {"dt": "link", "target": "Invoice"}}}})

        with pytest.raises(SchemaError, match="unknown class 'Invoice'") as exc_info:
            compile_schema(schema)

        assert exc_info.value.class_name == "Note"
        assert exc_info.value.prop_name == "order"
        assert exc_info.value.code == "SCHEMA_ERROR"

    def test_link_target_without_key(self) -> None:
        schema = _make_schema(
            {
                "Log": {"props": {"line": {"dt": "str"}}},
                "Entry": {"props": {"log": {"dt": "link", "target": "Log"}}},
            }
        )

        with pytest.raises(SchemaError, match="no primary key"):
            compile_schema(schema)

    def test_cyclic_key_composition(self) -> None:
        schema = _make_schema(
            {
                "A": {"props": {"b": {"dt": "link", "target": "B"}}, "key": ["b"]},
                "B": {"props": {"a": {"dt": "link", "target": "A"}}, "key": ["a"]},
            }
        )

        with pytest.raises(SchemaError, match="includes itself"):
            compile_schema(schema)

    def test_self_link_in_key(self) -> None:
        schema = _make_schema({"Node": {"props": {"parent": {"dt": "link", "target": "Node"}}, "key": ["parent"]}})

        with pytest.raises(SchemaError, match="includes itself"):
            compile_schema(schema)

    def test_hints_for_unknown_class(self) -> None:
        hints = RdbSchemaHints.model_validate({"classes": {"Invoice": {"tableName": "invoices"}}})

        with pytest.raises(SchemaError, match="unknown class 'Invoice'"):
            compile_schema(_make_schema(), hints)

    def test_hints_for_unknown_prop(self) -> None:
        hints = RdbSchemaHints.model_validate({"classes": {"Order": {"props": {"total": {"name": "t"}}}}})

        with pytest.raises(SchemaError, match="unknown property 'Order.total'"):
            compile_schema(_make_schema(), hints)

    def test_hints_for_multilink(self) -> None:
        hints = RdbSchemaHints.model_validate({"classes": {"Order": {"props": {"items": {"name": "x"}}}}})

        with pytest.raises(SchemaError, match="Multilink"):
            compile_schema(_make_schema(), hints)

    def test_link_hints_naming_non_key_prop(self) -> None:
        hints = RdbSchemaHints.model_validate(
            {"classes": {"Item": {"props": {"product": {"name": {"name": "product_name"}}}}}}
        )

        with pytest.raises(SchemaError, match="not a key property of 'Product'"):
            compile_schema(_make_schema(), hints)

    def test_link_leaf_hints_must_be_mapping(self) -> None:
        hints = RdbSchemaHints.model_validate({"classes": {"Item": {"props": {"order": {"id": "order_id"}}}}})

        with pytest.raises(SchemaError, match="Invalid hints"):
            compile_schema(_make_schema(), hints)

    def test_malformed_scalar_hints(self) -> None:
        hints = RdbSchemaHints.model_validate({"classes": {"Order": {"props": {"id": {"column": "order_id"}}}}})

        with pytest.raises(SchemaError, match="Invalid hints for 'Order.id'"):
            compile_schema(_make_schema(), hints)

    def test_two_props_mapping_to_same_field(self) -> None:
        schema = _make_schema(
            {
                "Shipment": {
                    "props": {
                        "order": {"dt": "link", "target": "Order"},
                        "order_id": {"dt": "int"},
                    }
                }
            }
        )

        with pytest.raises(SchemaError, match="both map to field 'order_id'"):
            compile_schema(schema)


class TestDeterminism:
    def test_same_input_compiles_to_identical_output(self) -> None:
        first = compile_schema(_make_schema(), _make_hints())
        second = compile_schema(_make_schema(), _make_hints())

        assert first == second
        assert first.model_dump_json() == second.model_dump_json()

    def test_layout_record_restores_prop_kinds(self) -> None:
        relational = compile_schema(_make_schema(), _make_hints())

        restored = RelationalSchema.from_record(relational.to_record())

        assert restored == relational
        assert [prop.kind for prop in restored["Item"].props.values()] == [
            RelationalPropKind.LINK,
            RelationalPropKind.LINK,
            RelationalPropKind.SCALAR,
        ]
        assert restored["Order"].props["items"].kind is RelationalPropKind.MULTILINK
