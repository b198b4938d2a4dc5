"""
Schema designer tools - command line entry point.

Commands:
    version FILE            Print the version token of a schema file
    overview FILE           Print the bounded overview of a schema file
    apply FILE EDITS        Apply an edit batch to a schema file
    serve                   Serve the tools over HTTP

Usage:
    python -m sqltools.schema_designer.main version schema.yaml
    python -m sqltools.schema_designer.main apply schema.yaml edits.json --output new.yaml
    python -m sqltools.schema_designer.main serve --schema schema.yaml

Schema files are YAML or JSON in the editor's camelCase format
({"tables": [...], "schemaNames": [...]}). Configuration comes from
SCHEMA_DESIGNER_* environment variables; see config.py.

Invariants:
    - Exit code 0 means the command (and every edit) succeeded
    - Output documents are deterministic (sorted keys)
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

import json_log_formatter
import uvicorn
import yaml

from .api.http_app import create_app
from .config import DesignerSettings
from .schema.hashing import compute_schema_version
from .schema.projection import OVERVIEW_LEVELS, ColumnDetail, build_overview
from .schema.types import Schema
from .session.connections import InMemoryConnectionProvider
from .session.registry import DocumentRegistry
from .tools.schema_designer_tool import SchemaDesignerTool

logger = logging.getLogger(__name__)


def setup_logging(settings: DesignerSettings) -> None:
    """Configure root logging from settings.

    Args:
        settings: Designer settings (log_level, log_format)
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def load_document(path: str | Path) -> tuple[Schema, list[str]]:
    """Load a schema file.

    Returns:
        (schema, schema names declared by the file)
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected an object with a 'tables' list")
    return Schema.from_dict(data), list(data.get("schemaNames") or [])


def load_edits(path: str | Path) -> list[Any]:
    """Load an edit batch: a list, or an object with an ``edits`` list."""
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if isinstance(data, dict):
        data = data.get("edits")
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list of edits")
    return data


def dump_document(schema: Schema, schema_names: list[str], path: str | Path) -> None:
    data = schema.to_dict()
    if schema_names:
        data["schemaNames"] = schema_names
    text = (
        json.dumps(data, indent=2, sort_keys=True)
        if str(path).endswith(".json")
        else yaml.safe_dump(data, sort_keys=True)
    )
    Path(path).write_text(text, encoding="utf-8")


class DesignerCLI:
    """Offline access to the designer operations for schema files.

    Example:
        >>> cli = DesignerCLI(DesignerSettings())
        >>> cli.version("schema.yaml")
    """

    def __init__(self, settings: DesignerSettings) -> None:
        self.settings = settings

    def version(self, path: str) -> int:
        schema, _ = load_document(path)
        print(compute_schema_version(schema))
        return 0

    def overview(self, path: str, columns: str, include_foreign_keys: bool) -> int:
        schema, _ = load_document(path)
        overview = build_overview(
            schema,
            column_detail=ColumnDetail.from_str(columns, ColumnDetail.NAMES, OVERVIEW_LEVELS),
            include_foreign_keys=include_foreign_keys,
            max_tables=self.settings.overview_max_tables,
            max_columns=self.settings.overview_max_columns,
        )
        output = {
            "version": compute_schema_version(schema),
            "overview": overview.to_dict(),
            "columnsOmitted": overview.columns_omitted,
        }
        print(json.dumps(output, indent=2, sort_keys=True))
        return 0

    def apply(
        self,
        path: str,
        edits_path: str,
        expected_version: str | None,
        output: str | None,
    ) -> int:
        schema, schema_names = load_document(path)
        edits = load_edits(edits_path)

        registry = DocumentRegistry(settings=self.settings)
        document = registry.open("local", Path(path).name, schema, schema_names)
        tool = SchemaDesignerTool(registry)
        response = asyncio.run(
            tool.call(
                {
                    "operation": "apply_edits",
                    "payload": {
                        "expectedVersion": expected_version or document.version,
                        "edits": edits,
                    },
                    "options": {"returnState": "summary"},
                }
            )
        )
        print(json.dumps(response, indent=2, sort_keys=True))

        if output and response.get("appliedEdits"):
            dump_document(document.schema, list(document.schema_names), output)
            logger.info(f"Wrote {output}")
        return 0 if response.get("success") else 1

    def serve(self, schema_path: str | None, server: str, database: str) -> int:
        connections = InMemoryConnectionProvider()
        if schema_path:
            schema, schema_names = load_document(schema_path)
            connections.register("local", server, database, schema, schema_names or ("dbo",))
            logger.info(f"Registered connection 'local' for {server}/{database}")

        registry = DocumentRegistry(settings=self.settings, connections=connections)
        uvicorn.run(create_app(registry), host=self.settings.host, port=self.settings.port)
        return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="schema-designer",
        description="Schema designer version, overview and edit tools",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    version_parser = subparsers.add_parser("version", help="Print the version token")
    version_parser.add_argument("file", help="Schema file (YAML or JSON)")

    overview_parser = subparsers.add_parser("overview", help="Print the bounded overview")
    overview_parser.add_argument("file", help="Schema file (YAML or JSON)")
    overview_parser.add_argument(
        "--columns",
        default="names",
        choices=[level.value for level in OVERVIEW_LEVELS],
        help="Column detail",
    )
    overview_parser.add_argument(
        "--foreign-keys", action="store_true", help="Include foreign keys"
    )

    apply_parser = subparsers.add_parser("apply", help="Apply an edit batch")
    apply_parser.add_argument("file", help="Schema file (YAML or JSON)")
    apply_parser.add_argument("edits", help="Edit batch file (YAML or JSON)")
    apply_parser.add_argument(
        "--expected-version", help="Fail as stale unless the file hashes to this token"
    )
    apply_parser.add_argument("--output", "-o", help="Write the edited schema here")

    serve_parser = subparsers.add_parser("serve", help="Serve the tools over HTTP")
    serve_parser.add_argument("--schema", help="Schema file to expose as connection 'local'")
    serve_parser.add_argument("--server", default="localhost", help="Server name for --schema")
    serve_parser.add_argument("--database", default="local", help="Database name for --schema")

    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    settings = DesignerSettings()
    setup_logging(settings)
    cli = DesignerCLI(settings)

    try:
        if args.command == "version":
            return cli.version(args.file)
        if args.command == "overview":
            return cli.overview(args.file, args.columns, args.foreign_keys)
        if args.command == "apply":
            return cli.apply(args.file, args.edits, args.expected_version, args.output)
        settings.log_config()
        return cli.serve(args.schema, args.server, args.database)
    except (OSError, ValueError, yaml.YAMLError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
