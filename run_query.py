#!/usr/bin/env python3
"""
CLI entry point for advanced Taiga queries.

Runs a single query against a live Taiga project or, with --records,
against a JSON export of issues, user stories and tasks. Results are
printed as JSON.
"""

import argparse
import asyncio
import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional

from taiga_query import (
    InMemoryRecordSource,
    QueryError,
    QueryService,
    TaigaClient,
    configure_logging,
    load_settings,
)


def serialize_for_json(obj: Any) -> Any:
    """Recursively serialize objects for JSON output.

    Args:
        obj: Object to serialize

    Returns:
        JSON-serializable version of the object
    """
    if isinstance(obj, datetime):
        return obj.isoformat()
    elif isinstance(obj, dict):
        return {k: serialize_for_json(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [serialize_for_json(item) for item in obj]
    else:
        return obj


def validate_query(service: QueryService, query: str, entity_type: str) -> dict:
    """Parse a query and return its structure and statistics."""
    spec = service.validate(query, entity_type)
    return {
        "valid": True,
        "query": spec.to_dict(),
        "stats": service.stats(spec).to_dict(),
    }


async def run_search(
    service: QueryService,
    project: Optional[str],
    query: str,
    entity_type: str,
) -> dict:
    """Resolve the project and execute a query."""
    service.validate(query, entity_type)
    project_id = await service.resolve_project(project) if project else None
    result = await service.search(project_id, query, entity_type)
    return result.to_dict()


async def execute(args: argparse.Namespace) -> dict:
    """Build the record source from the arguments and run the command."""
    settings = load_settings(args.config)

    if args.records:
        if not Path(args.records).exists():
            raise ValueError(f"Records file not found: {args.records}")
        source = InMemoryRecordSource.from_file(args.records)
        service = QueryService(source, settings)
        if args.validate:
            return validate_query(service, args.query, args.type)
        return await run_search(service, args.project, args.query, args.type)

    async with TaigaClient(settings) as client:
        service = QueryService(client, settings)
        if args.validate:
            return validate_query(service, args.query, args.type)
        if not args.project:
            raise ValueError("--project is required when querying the Taiga API")
        return await run_search(service, args.project, args.query, args.type)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Taiga Query - Run advanced queries against Taiga projects"
    )

    parser.add_argument(
        "query",
        help='Query string, e.g. "status:open AND priority:high LIMIT 10"',
    )

    parser.add_argument(
        "-t", "--type",
        choices=["issues", "user_stories", "tasks"],
        default="issues",
        help="Entity type to search (default: issues)",
    )

    parser.add_argument(
        "-p", "--project",
        help="Project id or slug",
    )

    parser.add_argument(
        "--records",
        help="Path to a JSON file with issues/user_stories/tasks to query offline",
    )

    parser.add_argument(
        "--validate",
        action="store_true",
        help="Only validate the query and print its statistics",
    )

    parser.add_argument(
        "-c", "--config",
        help="Path to YAML config file",
    )

    parser.add_argument(
        "-o", "--output",
        help="Output file path for results",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output",
    )

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)
    configure_logging(debug=args.verbose)

    try:
        result = asyncio.run(execute(args))
    except (QueryError, ValueError, OSError) as e:
        print(json.dumps({"error": str(e), "error_code": getattr(e, "error_code", None)}), file=sys.stderr)
        sys.exit(1)

    output = json.dumps(serialize_for_json(result), indent=2)

    if args.output:
        Path(args.output).write_text(output)
        if args.verbose:
            print(f"Results saved to {args.output}", file=sys.stderr)
    else:
        print(output)


if __name__ == "__main__":
    main()
