#!/usr/bin/env python3
"""
tmcore command line: terminology CSV and columnar archive maintenance.

Usage:
    python -m tmcore.cli import-terms <project_id> terms.csv
    python -m tmcore.cli export-terms <project_id> [--output terms.csv]
    python -m tmcore.cli archive-refresh <project_id>
    python -m tmcore.cli archive-optimize <project_id>
    python -m tmcore.cli archive-list [--project <project_id>]
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

from tmcore.config.logging_config import get_logger, setup_logging
from tmcore.engine import TMEngine, close_engine, get_engine
from tmcore.exceptions import TMEngineError

logger = get_logger(__name__)


async def import_terms(engine: TMEngine, project_id: str, path: Path) -> int:
    content = path.read_text(encoding="utf-8")
    result = await engine.terminology.import_terms_csv(project_id, content)
    print(result.summary())
    for conflict in result.conflicts:
        print(f"  conflict row {conflict.row}: '{conflict.term}' already defined")
    for issue in result.warnings + result.errors:
        print(f"  row {issue.row} [{issue.field}]: {issue.message}")
    return 0 if not result.errors else 1


async def export_terms(engine: TMEngine, project_id: str, output: Optional[Path]) -> int:
    content = await engine.terminology.export_terms_csv(project_id)
    if output is None:
        sys.stdout.write(content)
    else:
        output.write_text(content, encoding="utf-8")
        print(f"Exported terms of {project_id} to {output}")
    return 0


async def archive_refresh(engine: TMEngine, project_id: str) -> int:
    await engine.refresh_archive(project_id)
    for entry in engine.archive.list_files(project_id):
        print(f"  {entry['entity']:<8} {entry['size_bytes']:>10} bytes  {entry['path']}")
    return 0


async def archive_optimize(engine: TMEngine, project_id: str) -> int:
    removed = await engine.archive.optimize_async(project_id)
    if not removed:
        print(f"No archive files for project {project_id}")
    for entity, count in removed.items():
        print(f"  {entity}: removed {count} duplicate rows")
    return 0


def archive_list(engine: TMEngine, project_id: Optional[str]) -> int:
    files = engine.archive.list_files(project_id)
    if not files:
        print("No archive files found.")
    for entry in files:
        print(f"  {entry['project_id']}/{entry['entity']}  {entry['size_bytes']} bytes  {entry['modified']}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="tmcore - Translation Memory Engine")
    parser.add_argument("--log-level", default=None, help="Override log level")
    commands = parser.add_subparsers(dest="command", required=True)

    cmd = commands.add_parser("import-terms", help="Import a terminology CSV")
    cmd.add_argument("project_id")
    cmd.add_argument("path", type=Path)

    cmd = commands.add_parser("export-terms", help="Export terminology as CSV")
    cmd.add_argument("project_id")
    cmd.add_argument("--output", "-o", type=Path, default=None)

    cmd = commands.add_parser("archive-refresh", help="Regenerate a project's archive files")
    cmd.add_argument("project_id")

    cmd = commands.add_parser("archive-optimize", help="Deduplicate a project's archive files")
    cmd.add_argument("project_id")

    cmd = commands.add_parser("archive-list", help="List archive files")
    cmd.add_argument("--project", default=None)

    return parser


async def run(args: argparse.Namespace) -> int:
    engine = get_engine()
    try:
        if args.command == "import-terms":
            return await import_terms(engine, args.project_id, args.path)
        if args.command == "export-terms":
            return await export_terms(engine, args.project_id, args.output)
        if args.command == "archive-refresh":
            return await archive_refresh(engine, args.project_id)
        if args.command == "archive-optimize":
            return await archive_optimize(engine, args.project_id)
        return archive_list(engine, args.project)
    finally:
        await close_engine()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(level=args.log_level, force=args.log_level is not None)

    try:
        return asyncio.run(run(args))
    except TMEngineError as e:
        logger.error(f"{args.command} failed: {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
