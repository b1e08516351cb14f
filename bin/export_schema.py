#!/usr/bin/env python3
"""Export the testsuite schema SQL by concatenating migrations."""
from __future__ import annotations

import argparse
from pathlib import Path
import re
import textwrap
from typing import List

ROOT = Path(__file__).resolve().parent.parent

CREATE_TABLE_RE = re.compile(
    r"CREATE\s+TABLE\s+(?:IF\s+NOT\s+EXISTS\s+)?([a-zA-Z0-9_\.]+)", re.IGNORECASE
)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Generate test schema SQL from migration files."
    )
    parser.add_argument(
        "--migrations-dir",
        "-m",
        type=Path,
        default=ROOT / "migrations",
        help="Directory with *.sql migrations.",
    )
    parser.add_argument(
        "--output",
        "-o",
        type=Path,
        default=ROOT / "tests" / "schemas" / "postgresql" / "automation_service.sql",
        help="Target SQL file (testsuite schema).",
    )
    return parser.parse_args()


def collect_tables(sql: str) -> List[str]:
    tables: List[str] = []
    for match in CREATE_TABLE_RE.finditer(sql):
        if match.group(1) not in tables:
            tables.append(match.group(1))
    return tables


def main() -> None:
    args = parse_args()
    migrations = sorted(args.migrations_dir.glob("*.sql"))
    if not migrations:
        raise SystemExit(f"No migrations found in {args.migrations_dir}")

    tables: List[str] = []
    body_parts: List[str] = []
    for path in migrations:
        sql = path.read_text(encoding="utf-8")
        tables.extend(t for t in collect_tables(sql) if t not in tables)
        body_parts.append(f"-- Migration: {path.name}\n{sql.strip()}\n")

    header = textwrap.dedent(
        """\
        -- Auto-generated from migrations.
        -- Run `python bin/export_schema.py` after editing migrations.
        """
    )
    drop_section = "\n".join(f"DROP TABLE IF EXISTS {t} CASCADE;" for t in reversed(tables))
    content = "\n".join(
        [
            header,
            "BEGIN;",
            drop_section,
            "",
            "\n".join(body_parts).strip(),
            "COMMIT;",
            "",
        ]
    )
    args.output.parent.mkdir(parents=True, exist_ok=True)
    args.output.write_text(content, encoding="utf-8")
    print(f"Wrote schema to {args.output}")


if __name__ == "__main__":
    main()
