import argparse
import os
import sys
from importlib.util import find_spec
from pathlib import Path

_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Apply forward-only PostgreSQL migrations for the financial reporting store."
    )
    parser.add_argument(
        "--dsn",
        default=os.getenv("FINANCIAL_REPORT_POSTGRES_DSN", "").strip(),
        help="PostgreSQL DSN for the financial reporting store.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List pending migrations without applying them.",
    )
    args = parser.parse_args()

    if not args.dsn:
        raise RuntimeError("POSTGRES_MIGRATION_DSN_REQUIRED:reporting")
    if find_spec("psycopg") is None:
        raise RuntimeError("POSTGRES_MIGRATION_DRIVER_MISSING")
    import psycopg
    from psycopg.rows import dict_row

    from src.infrastructure.postgres_migrations import (
        REPORTING_NAMESPACE,
        apply_postgres_migrations,
        list_pending_migrations,
    )

    with psycopg.connect(args.dsn, row_factory=dict_row) as connection:
        if args.dry_run:
            pending = list_pending_migrations(connection=connection)
            for migration in pending:
                print(f"Pending migration {migration.ledger_key}")
            print(f"{len(pending)} pending migration(s) for namespace={REPORTING_NAMESPACE}")
            return 0
        applied = apply_postgres_migrations(connection=connection, namespace=REPORTING_NAMESPACE)
    for version in applied:
        print(f"Applied migration {REPORTING_NAMESPACE}:{version}")
    print(f"{len(applied)} migration(s) applied for namespace={REPORTING_NAMESPACE}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
