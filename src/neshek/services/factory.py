"""Factory functions for creating and wiring repositories.

Provides a production factory that creates a repository with persistent
SQLite storage and a test factory that uses in-memory stores for fast,
isolated testing.
"""

from pathlib import Path

import structlog

from neshek.models.hints import RdbSchemaHints
from neshek.models.schema import SchemaDef
from neshek.services.adapters.memory import MemoryStorageAdapter
from neshek.services.adapters.sql import SqlStorageAdapter, create_async_engine_from_path
from neshek.services.compiler import SchemaCompiler
from neshek.services.repository import Repository


def create_repository(
    schema_def: SchemaDef,
    db_path: Path,
    hints: RdbSchemaHints | None = None,
    compiler: SchemaCompiler | None = None,
) -> Repository:
    """Create a production Repository with persistent SQLite storage.

    Args:
        schema_def: Schema to compile.
        db_path: Path of the SQLite database file.
        hints: Optional table, field and storage type overrides.
        compiler: Compiler to use instead of the default one.

    Returns:
        Configured Repository. Call ``initialize()`` before first use.
    """
    logger = structlog.get_logger(__name__)

    db_path.parent.mkdir(parents=True, exist_ok=True)

    engine = create_async_engine_from_path(str(db_path))
    adapter = SqlStorageAdapter(engine=engine, logger=logger)

    return Repository(
        schema_def=schema_def,
        adapter=adapter,
        hints=hints,
        compiler=compiler,
        logger=logger,
    )


def create_test_repository(
    schema_def: SchemaDef,
    hints: RdbSchemaHints | None = None,
    use_sqlite: bool = False,
) -> Repository:
    """Create a Repository with in-memory storage for testing.

    Each call creates independent storage, so tests don't interfere.

    Args:
        schema_def: Schema to compile.
        hints: Optional table, field and storage type overrides.
        use_sqlite: Use an in-memory SQLite database instead of the
            dictionary-backed adapter.

    Returns:
        Configured Repository with in-memory storage.
    """
    logger = structlog.get_logger(__name__)

    if use_sqlite:
        adapter: MemoryStorageAdapter | SqlStorageAdapter = SqlStorageAdapter(
            engine=create_async_engine_from_path(":memory:"),
            logger=logger,
        )
    else:
        adapter = MemoryStorageAdapter(logger=logger)

    return Repository(schema_def=schema_def, adapter=adapter, hints=hints, logger=logger)


def load_schema_file(path: Path) -> SchemaDef:
    """Load and validate a schema definition from a JSON file."""
    return SchemaDef.model_validate_json(path.read_text(encoding="utf-8"))


def load_hints_file(path: Path) -> RdbSchemaHints:
    """Load and validate schema hints from a JSON file.

    Function hooks cannot be expressed in JSON; only explicit names and types
    are loaded.
    """
    return RdbSchemaHints.model_validate_json(path.read_text(encoding="utf-8"))


__all__ = ["create_repository", "create_test_repository", "load_hints_file", "load_schema_file"]
