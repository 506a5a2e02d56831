"""
Schema migrations for the archive database.

Each version is a list of idempotent statements. Versions are applied in
ascending order, each one in its own transaction together with the row that
records it in the ``migration`` table, so a step is either applied wholly or
not at all.
"""
import logging

from sqlalchemy import Engine, text

logger = logging.getLogger(__name__)


class MigrationError(Exception):
    """A migration step failed; the database is left at the previous version."""


MIGRATIONS: dict[int, list[str]] = {
    1: [
        """
        CREATE TABLE IF NOT EXISTS archive_item (
            id VARCHAR(36) NOT NULL PRIMARY KEY,
            file_id VARCHAR(36) NOT NULL,
            archive TEXT NOT NULL,
            url TEXT NOT NULL,
            fingerprint VARCHAR(32) NOT NULL,
            deleted_at DATETIME,
            created_at DATETIME NOT NULL
        )
        """,
    ],
    2: [
        """
        CREATE INDEX IF NOT EXISTS archive_item_fingerprint
        ON archive_item (archive, fingerprint)
        """,
    ],
    # 只有拥有物理文件的行 (id = file_id) 参与唯一约束
    3: [
        """
        CREATE UNIQUE INDEX IF NOT EXISTS archive_item_canonical
        ON archive_item (archive, fingerprint)
        WHERE id = file_id AND deleted_at IS NULL
        """,
    ],
}

MIGRATION_TABLE = """
CREATE TABLE IF NOT EXISTS migration (
    version INTEGER NOT NULL PRIMARY KEY
)
"""


def get_applied_versions(engine: Engine) -> list[int]:
    with engine.begin() as conn:
        conn.execute(text(MIGRATION_TABLE))
        rows = conn.execute(text("SELECT version FROM migration ORDER BY version"))
        return [row[0] for row in rows]


def current_version(engine: Engine) -> int:
    applied = get_applied_versions(engine)
    return applied[-1] if applied else 0


def migrate_to_latest(
    engine: Engine, migrations: dict[int, list[str]] | None = None
) -> list[int]:
    """
    Bring the database to the latest version.

    Returns the versions applied by this call, an empty list when the
    database was already up to date.
    """
    if migrations is None:
        migrations = MIGRATIONS

    applied = set(get_applied_versions(engine))
    newly_applied = []

    for version in sorted(migrations):
        if version in applied:
            continue

        logger.info(f"Applying migration {version}")
        try:
            with engine.begin() as conn:
                for statement in migrations[version]:
                    conn.execute(text(statement))
                conn.execute(
                    text("INSERT INTO migration (version) VALUES (:version)"),
                    {"version": version},
                )
        except Exception as e:
            logger.error(f"Migration {version} failed: {e}")
            raise MigrationError(f"migration {version} failed: {e}") from e

        newly_applied.append(version)

    if newly_applied:
        logger.info(f"Database migrated to version {newly_applied[-1]}")
    return newly_applied
