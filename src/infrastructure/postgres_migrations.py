from __future__ import annotations

import hashlib
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

logger = logging.getLogger(__name__)

REPORTING_NAMESPACE = "reporting"
MIGRATIONS_ROOT = Path(__file__).with_name("postgres_migrations")

_LEDGER_DDL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    version TEXT PRIMARY KEY,
    namespace TEXT NOT NULL,
    checksum TEXT NOT NULL,
    applied_at TEXT NOT NULL
)
"""


@dataclass(frozen=True)
class PostgresMigration:
    namespace: str
    version: str
    sql_path: Path
    checksum: str

    @property
    def ledger_key(self) -> str:
        return f"{self.namespace}:{self.version}"

    def statements(self) -> Iterator[str]:
        # Split on ';' only, so migration files keep semicolons out of literals.
        for chunk in self.sql_path.read_text(encoding="utf-8").split(";"):
            statement = chunk.strip()
            if statement:
                yield statement


def apply_postgres_migrations(
    *, connection: Any, namespace: str = REPORTING_NAMESPACE
) -> list[str]:
    """Apply forward-only migrations for ``namespace`` under an advisory lock.

    Each applied file is recorded with the SHA-256 of its SQL text; a recorded
    file whose text later changes aborts the run before anything executes.
    Returns the versions applied by this call.
    """
    with _advisory_lock(connection=connection, namespace=namespace):
        try:
            pending = _pending_migrations(connection=connection, namespace=namespace)
            for migration in pending:
                for statement in migration.statements():
                    connection.execute(statement)
                connection.execute(
                    """
                    INSERT INTO schema_migrations (version, namespace, checksum, applied_at)
                    VALUES (%s, %s, %s, %s)
                    """,
                    (
                        migration.ledger_key,
                        namespace,
                        migration.checksum,
                        datetime.now(timezone.utc).isoformat(),
                    ),
                )
                logger.info(
                    "postgres_migration_applied",
                    extra={"extra_fields": {"namespace": namespace, "version": migration.version}},
                )
            connection.commit()
        except Exception:
            connection.rollback()
            raise
    return [migration.version for migration in pending]


def list_pending_migrations(
    *, connection: Any, namespace: str = REPORTING_NAMESPACE
) -> list[PostgresMigration]:
    return _pending_migrations(connection=connection, namespace=namespace)


@contextmanager
def _advisory_lock(*, connection: Any, namespace: str) -> Iterator[None]:
    lock_key = _migration_lock_key(namespace=namespace)
    connection.execute("SELECT pg_advisory_lock(%s::bigint)", (lock_key,))
    try:
        yield
    finally:
        connection.execute("SELECT pg_advisory_unlock(%s::bigint)", (lock_key,))


def _pending_migrations(*, connection: Any, namespace: str) -> list[PostgresMigration]:
    available = _load_migrations(namespace=namespace)
    connection.execute(_LEDGER_DDL)
    recorded = _recorded_checksums(connection=connection, namespace=namespace)
    pending: list[PostgresMigration] = []
    for migration in available:
        checksum = recorded.get(migration.version)
        if checksum is None:
            pending.append(migration)
        elif checksum != migration.checksum:
            raise RuntimeError(
                f"POSTGRES_MIGRATION_CHECKSUM_MISMATCH:{namespace}:{migration.version}"
            )
    return pending


def _recorded_checksums(*, connection: Any, namespace: str) -> dict[str, str]:
    rows = connection.execute(
        "SELECT version, checksum FROM schema_migrations WHERE namespace = %s",
        (namespace,),
    ).fetchall()
    prefix = f"{namespace}:"
    return {str(row["version"]).removeprefix(prefix): str(row["checksum"]) for row in rows}


def _load_migrations(*, namespace: str) -> list[PostgresMigration]:
    namespace_path = MIGRATIONS_ROOT / namespace
    if not namespace_path.is_dir():
        raise RuntimeError(f"POSTGRES_MIGRATIONS_NAMESPACE_NOT_FOUND:{namespace}")
    return [
        PostgresMigration(
            namespace=namespace,
            version=sql_path.stem.partition("_")[0],
            sql_path=sql_path,
            checksum=hashlib.sha256(sql_path.read_bytes()).hexdigest(),
        )
        for sql_path in sorted(namespace_path.glob("*.sql"))
    ]


def _migration_lock_key(*, namespace: str) -> int:
    digest = hashlib.sha256(f"schema_migrations:{namespace}".encode("utf-8")).digest()
    return int.from_bytes(digest[:8], byteorder="big", signed=True)
