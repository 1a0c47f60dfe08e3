#!/usr/bin/env python3
"""
CLI tool for interacting with the script flatten service.

Usage:
    sql-flatten run change.sql
    sql-flatten run change.sql --no-execute
    sql-flatten text change.sql > flattened.sql
    cat change.sql | sql-flatten run -
    sql-flatten cache status|refresh|clear
    sql-flatten serve
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

import httpx
from colorama import Fore, Style, init as colorama_init


DEFAULT_BASE_URL = "http://localhost:8060"

# Executions can take as long as the server's script timeout
DEFAULT_TIMEOUT_SECONDS = 330.0

MAX_CELL_WIDTH = 40


def colorize(text: str, color: str) -> str:
    return f"{color}{text}{Style.RESET_ALL}"


def print_json(data: Any, indent: int = 2) -> None:
    """Print JSON with optional color."""
    output = json.dumps(data, indent=indent, default=str)
    print(output)


def read_script(source: str) -> str:
    """Read script text from a file path, or stdin for ``-``."""
    if source == "-":
        return sys.stdin.read()
    with open(source, "r", encoding="utf-8") as f:
        return f.read()


def _cell(value: Any) -> str:
    text = "NULL" if value is None else str(value)
    if len(text) > MAX_CELL_WIDTH:
        text = text[: MAX_CELL_WIDTH - 1] + "…"
    return text


def format_rows(columns: list[str], rows: list[dict], changed: set[tuple[int, str]] | None = None) -> list[str]:
    """Render rows as an aligned text table, highlighting changed cells."""
    if not columns:
        return [colorize("  (no columns)", Style.DIM)]

    cells = [[_cell(row.get(col)) for col in columns] for row in rows]
    widths = [
        max([len(col)] + [len(r[i]) for r in cells])
        for i, col in enumerate(columns)
    ]

    lines = ["  " + " | ".join(colorize(col.ljust(w), Style.BRIGHT) for col, w in zip(columns, widths))]
    lines.append("  " + "-+-".join("-" * w for w in widths))

    for row_idx, row_cells in enumerate(cells):
        rendered = []
        for col, text, w in zip(columns, row_cells, widths):
            padded = text.ljust(w)
            if changed and (row_idx, col) in changed:
                padded = colorize(padded, Fore.YELLOW)
            rendered.append(padded)
        lines.append("  " + " | ".join(rendered))

    if not rows:
        lines.append(colorize("  (no rows)", Style.DIM))

    return lines


def changed_cells(before: dict | None, after: dict | None) -> set[tuple[int, str]]:
    """Cells in ``after`` whose value differs from the matching ``before`` row by ID."""
    if not before or not after:
        return set()

    before_by_id = {row.get("ID"): row for row in before.get("rows", [])}
    changed = set()
    for idx, row in enumerate(after.get("rows", [])):
        previous = before_by_id.get(row.get("ID"))
        for col in after.get("columns", []):
            if previous is None or previous.get(col) != row.get(col):
                changed.add((idx, col))
    return changed


def print_comparison(comparison: dict) -> None:
    before = comparison.get("before")
    after = comparison.get("after")

    print(colorize(f"\n{comparison.get('table_name', 'Unknown')}", Fore.CYAN + Style.BRIGHT))

    print(colorize(" Before:", Fore.RED))
    if before:
        for line in format_rows(before.get("columns", []), before.get("rows", [])):
            print(line)
    else:
        print(colorize("  (none)", Style.DIM))

    print(colorize(" After:", Fore.GREEN))
    if after:
        for line in format_rows(after.get("columns", []), after.get("rows", []), changed_cells(before, after)):
            print(line)
    else:
        print(colorize("  (none)", Style.DIM))


def _client(args) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=args.base_url,
        timeout=args.timeout,
        transport=getattr(args, "transport", None),
    )


def _report_http_error(response: httpx.Response) -> int:
    print(colorize(f"Error: {response.status_code}", Fore.RED), file=sys.stderr)
    print(response.text, file=sys.stderr)
    return 1


async def cmd_run(args) -> int:
    """Flatten and execute a script, then print per-table changes."""
    script = read_script(args.script)

    async with _client(args) as client:
        response = await client.post(
            "/script",
            content=script.encode("utf-8"),
            params={"execute": str(not args.no_execute).lower()},
            headers={"Content-Type": "text/plain"},
        )

    if response.status_code != 200:
        return _report_http_error(response)

    data = response.json()

    if args.json:
        print_json(data)
        return 0 if data.get("success") else 2

    tables = data.get("tables", [])
    print(colorize("\nTables:", Style.BRIGHT), ", ".join(t["name"] for t in tables) or "(none)")
    print(colorize("Executed:", Style.BRIGHT), data.get("executed", False))
    print(colorize("Time:", Style.BRIGHT), f"{data.get('execution_time_ms', 0)}ms")

    if not data.get("success"):
        print(colorize(f"\nFailed ({data.get('error_kind') or 'error'}):", Fore.RED), data.get("error_message"))
        sql_error = data.get("sql_error")
        if sql_error:
            print(
                colorize("  SQL error", Style.DIM),
                f"{sql_error['number']}, state {sql_error['state']}, line {sql_error['line_number']}",
            )
        return 2

    comparisons = data.get("table_comparisons", [])
    if not comparisons:
        print(colorize("\nNo table changes.", Style.DIM))
    for comparison in comparisons:
        print_comparison(comparison)

    return 0


async def cmd_text(args) -> int:
    """Print the flattened script without executing it."""
    script = read_script(args.script)

    async with _client(args) as client:
        response = await client.post(
            "/script/text",
            content=script.encode("utf-8"),
            headers={"Content-Type": "text/plain"},
        )

    if response.status_code != 200:
        return _report_http_error(response)

    print(response.text)
    return 0


async def cmd_cache(args) -> int:
    """Show, refresh or clear the table name cache."""
    async with _client(args) as client:
        if args.action == "refresh":
            response = await client.post("/cache/refresh")
        elif args.action == "clear":
            response = await client.delete("/cache")
        else:
            response = await client.get("/cache/status")

    if response.status_code != 200:
        return _report_http_error(response)

    print_json(response.json())
    return 0


def cmd_serve(args) -> int:
    """Run the service in this process."""
    from .main import run
    run()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="CLI tool for the SQL Script Flatten Service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--base-url",
        default=DEFAULT_BASE_URL,
        help="Base URL of the flatten service",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT_SECONDS,
        help="HTTP timeout in seconds",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    run_parser = subparsers.add_parser("run", help="Execute a script and show table changes")
    run_parser.add_argument("script", help="SQL file path, or - for stdin")
    run_parser.add_argument("--no-execute", action="store_true", help="Flatten only, do not execute")
    run_parser.add_argument("--json", action="store_true", help="Print the raw JSON response")

    text_parser = subparsers.add_parser("text", help="Print the flattened script")
    text_parser.add_argument("script", help="SQL file path, or - for stdin")

    cache_parser = subparsers.add_parser("cache", help="Table name cache operations")
    cache_parser.add_argument("action", choices=["status", "refresh", "clear"], nargs="?", default="status")

    subparsers.add_parser("serve", help="Start the flatten service")

    return parser


def main(argv: list[str] | None = None) -> int:
    colorama_init()

    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    if args.command == "run":
        return asyncio.run(cmd_run(args))
    elif args.command == "text":
        return asyncio.run(cmd_text(args))
    elif args.command == "cache":
        return asyncio.run(cmd_cache(args))
    elif args.command == "serve":
        return cmd_serve(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main() or 0)
