"""Schema compilation and object storage CLI.

Compiles schema files into their relational layout and stores or retrieves
objects in a SQLite database laid out from that schema.
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Optional

import structlog
import typer
from pydantic import ValidationError

from neshek.errors import NeshekError
from neshek.models.hints import RdbSchemaHints
from neshek.models.propset import PropSetSpec
from neshek.models.schema import SchemaDef
from neshek.services.compiler import SchemaCompiler
from neshek.services.factory import create_repository, load_hints_file, load_schema_file

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    logger_factory=lambda name: structlog.PrintLogger(file=sys.stderr),
    wrapper_class=structlog.BoundLogger,
    context_class=dict,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)

# layout output omits property definitions
_LAYOUT_EXCLUDE: dict[str, Any] = {"prop_def": True, "fields": {"__all__": {"leaf": True}}}

app = typer.Typer(
    name="neshek",
    help="""Compile object schemas to relational layouts and store objects with them.

Examples:

  # Show tables and fields for a schema
  uv run neshek compile schema.json --hints hints.json

  # Insert an object
  uv run neshek insert schema.json Item '{"order": {"id": 1}, "product": {"code": "A1"}, "price": 7.5}'

  # Get an object, expanding its product link
  uv run neshek get schema.json Item '{"order": {"id": 1}, "product": {"code": "A1"}}' --props '{"product": "*"}'""",
    rich_markup_mode="markdown",
)


def _load_inputs(schema_path: str, hints_path: Optional[str]) -> tuple[SchemaDef, RdbSchemaHints | None]:
    try:
        schema_def = load_schema_file(Path(schema_path))
        hints = load_hints_file(Path(hints_path)) if hints_path else None
    except OSError as e:
        logger.error("input_file_unreadable", error=str(e))
        raise typer.Exit(1)
    except ValidationError as e:
        logger.error("input_file_invalid", error_count=e.error_count())
        typer.echo(str(e), err=True)
        raise typer.Exit(1)
    return schema_def, hints


def _parse_json_object(text: str, what: str) -> dict[str, Any]:
    try:
        value = json.loads(text)
    except json.JSONDecodeError as e:
        logger.error("invalid_json_argument", argument=what, error=str(e))
        raise typer.Exit(1)
    if not isinstance(value, dict):
        logger.error("invalid_json_argument", argument=what, error="expected a JSON object")
        raise typer.Exit(1)
    return value


def _parse_prop_set(text: Optional[str]) -> PropSetSpec:
    if text is None:
        return None
    if text.lstrip().startswith(("{", "[")):
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            logger.error("invalid_json_argument", argument="props", error=str(e))
            raise typer.Exit(1)
    return text


@app.command(name="compile")
def compile_schema(
    schema: str = typer.Argument(
        ...,
        help="JSON file with the schema definition",
    ),
    hints: Optional[str] = typer.Option(
        None,
        "--hints",
        "-H",
        help="JSON file with table and field hints",
    ),
) -> None:
    """Print the relational layout of a schema."""
    schema_def, schema_hints = _load_inputs(schema, hints)

    try:
        relational_schema = SchemaCompiler().compile(schema_def, schema_hints)
    except NeshekError as e:
        logger.error("schema_compile_failed", code=e.code, error=e.message)
        raise typer.Exit(1)

    layout = {
        class_name: {
            "table": rel_class.table,
            "key": rel_class.key_field_names,
            "props": {
                prop_name: prop.model_dump(mode="json", exclude=_LAYOUT_EXCLUDE, exclude_none=True)
                for prop_name, prop in rel_class.props.items()
            },
        }
        for class_name, rel_class in relational_schema.classes.items()
    }
    typer.echo(json.dumps(layout, indent=2))


@app.command()
def insert(
    schema: str = typer.Argument(
        ...,
        help="JSON file with the schema definition",
    ),
    class_name: str = typer.Argument(
        ...,
        help="Class of the object to insert",
    ),
    values: str = typer.Argument(
        ...,
        help="Object property values as a JSON object",
    ),
    db: str = typer.Option(
        "neshek.db",
        "--db",
        "-d",
        help="SQLite database file",
    ),
    hints: Optional[str] = typer.Option(
        None,
        "--hints",
        "-H",
        help="JSON file with table and field hints",
    ),
) -> None:
    """Insert an object into the database."""
    schema_def, schema_hints = _load_inputs(schema, hints)
    prop_values = _parse_json_object(values, "values")

    async def run_insert() -> None:
        repository = create_repository(schema_def, Path(db), hints=schema_hints)
        try:
            await repository.initialize()
            await repository.create_session().insert(class_name, prop_values)
        finally:
            await repository.close()

    try:
        asyncio.run(run_insert())
    except NeshekError as e:
        logger.error("insert_failed", class_name=class_name, code=e.code, error=e.message)
        raise typer.Exit(1)

    typer.echo(f"Inserted {class_name}")


@app.command()
def get(
    schema: str = typer.Argument(
        ...,
        help="JSON file with the schema definition",
    ),
    class_name: str = typer.Argument(
        ...,
        help="Class of the object to retrieve",
    ),
    key: str = typer.Argument(
        ...,
        help="Object key as a JSON object",
    ),
    props: Optional[str] = typer.Option(
        None,
        "--props",
        "-p",
        help="Properties to retrieve: comma-separated names, '*', or a JSON property set",
    ),
    db: str = typer.Option(
        "neshek.db",
        "--db",
        "-d",
        help="SQLite database file",
    ),
    hints: Optional[str] = typer.Option(
        None,
        "--hints",
        "-H",
        help="JSON file with table and field hints",
    ),
) -> None:
    """Retrieve an object from the database by its key."""
    schema_def, schema_hints = _load_inputs(schema, hints)
    key_values = _parse_json_object(key, "key")
    prop_set = _parse_prop_set(props)

    async def run_get() -> dict[str, Any] | None:
        repository = create_repository(schema_def, Path(db), hints=schema_hints)
        try:
            await repository.initialize()
            return await repository.create_session().get(class_name, key_values, prop_set)
        finally:
            await repository.close()

    try:
        entity = asyncio.run(run_get())
    except NeshekError as e:
        logger.error("get_failed", class_name=class_name, code=e.code, error=e.message)
        raise typer.Exit(1)

    if entity is None:
        typer.echo(f"No {class_name} with key {key}")
        raise typer.Exit(1)
    typer.echo(json.dumps(entity, indent=2, default=str))


@app.command()
def version() -> None:
    """Show version information."""
    from neshek import __version__

    typer.echo(f"neshek {__version__}")
