"""Tests for the service factory module."""

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from neshek.models.schema import SchemaDef
from neshek.services.adapters.memory import MemoryStorageAdapter
from neshek.services.adapters.sql import SqlStorageAdapter
from neshek.services.compiler import SchemaCompiler
from neshek.services.factory import (
    create_repository,
    create_test_repository,
    load_hints_file,
    load_schema_file,
)
from neshek.services.repository import Repository

SCHEMA_RECORD = {
    "classes": {
        "Order": {"props": {"id": {"dt": "int"}, "customer": {"dt": "str"}}, "key": ["id"]},
        "Product": {"props": {"code": {"dt": "str"}}, "key": ["code"]},
    }
}


def _make_schema() -> SchemaDef:
    return SchemaDef.model_validate(SCHEMA_RECORD)


class TestCreateRepository:
    """Tests for create_repository factory."""

    def test_creates_repository_instance(self, tmp_path: Path) -> None:
        repository = create_repository(_make_schema(), tmp_path / "neshek.db")

        assert isinstance(repository, Repository)
        assert isinstance(repository.adapter, SqlStorageAdapter)

    def test_creates_parent_directory(self, tmp_path: Path) -> None:
        db_path = tmp_path / "nested" / "data" / "neshek.db"
        assert not db_path.parent.exists()

        create_repository(_make_schema(), db_path)

        assert db_path.parent.exists()

    def test_uses_supplied_compiler(self, tmp_path: Path) -> None:
        class PrefixedTables(SchemaCompiler):
            def _table_name(self, class_name, class_hints, hints) -> str:
                return f"app_{class_name.lower()}"

        repository = create_repository(_make_schema(), tmp_path / "neshek.db", compiler=PrefixedTables())

        assert repository.relational_schema["Order"].table == "app_order"

    async def test_database_file_created_on_initialize(self, tmp_path: Path) -> None:
        db_path = tmp_path / "neshek.db"
        repository = create_repository(_make_schema(), db_path)

        await repository.initialize()

        assert db_path.exists()


class TestCreateTestRepository:
    """Tests for create_test_repository factory."""

    def test_uses_memory_adapter_by_default(self) -> None:
        repository = create_test_repository(_make_schema())

        assert isinstance(repository.adapter, MemoryStorageAdapter)

    def test_can_use_in_memory_sqlite(self) -> None:
        repository = create_test_repository(_make_schema(), use_sqlite=True)

        assert isinstance(repository.adapter, SqlStorageAdapter)

    def test_repositories_do_not_share_storage(self) -> None:
        first = create_test_repository(_make_schema())
        second = create_test_repository(_make_schema())

        assert first.adapter is not second.adapter

    @pytest.mark.parametrize("use_sqlite", [False, True])
    async def test_can_store_and_fetch(self, use_sqlite: bool) -> None:
        repository = create_test_repository(_make_schema(), use_sqlite=use_sqlite)
        await repository.initialize()
        session = repository.create_session()

        await session.insert("Order", {"id": 7, "customer": "Ada"})

        assert await session.get("Order", {"id": 7}) == {"id": 7, "customer": "Ada"}


class TestLoadFiles:
    """Tests for schema and hints file loading."""

    def test_loads_schema_file(self, tmp_path: Path) -> None:
        path = tmp_path / "schema.json"
        path.write_text(json.dumps(SCHEMA_RECORD), encoding="utf-8")

        assert load_schema_file(path) == _make_schema()

    def test_invalid_schema_file_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "schema.json"
        path.write_text(json.dumps({"classes": {"Order": {"props": {}, "key": ["id"]}}}), encoding="utf-8")

        with pytest.raises(ValidationError):
            load_schema_file(path)

    def test_loads_hints_file(self, tmp_path: Path) -> None:
        path = tmp_path / "hints.json"
        path.write_text(json.dumps({"classes": {"Order": {"tableName": "orders"}}}), encoding="utf-8")

        hints = load_hints_file(path)

        assert hints.classes["Order"].table_name == "orders"
        assert hints.table_name_func is None

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_schema_file(tmp_path / "missing.json")
