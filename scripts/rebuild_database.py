#!/usr/bin/env python3
"""
Rebuild the local SQLite database from scratch.

This script:
1. Deletes the existing database file
2. Re-initializes the database using init_database()

WARNING: This will DELETE ALL SESSIONS, METRICS AND USAGE LOGS.
Use only for development/testing purposes.
"""

import asyncio

import structlog

from focuscore.core.config import settings
from focuscore.persistence.database import check_database_health, init_database

log = structlog.get_logger(__name__)


async def rebuild_database() -> None:
    """Delete the existing database and recreate it."""
    if settings.backend != "sqlite":
        log.error("database_rebuild_skipped", backend=settings.backend)
        return

    db_path = settings.database_path

    if not db_path.exists():
        log.info(
            "database_not_found",
            path=str(db_path),
            message="No existing database to delete",
        )
    else:
        file_size = db_path.stat().st_size
        log.warning(
            "deleting_database",
            path=str(db_path),
            size_bytes=file_size,
            size_mb=f"{file_size / (1024 * 1024):.2f}",
        )
        db_path.unlink()
        # WAL side files belong to the deleted database
        for suffix in ("-wal", "-shm"):
            side_file = db_path.with_name(db_path.name + suffix)
            if side_file.exists():
                side_file.unlink()
        log.info("database_deleted", path=str(db_path))

    log.info("reinitializing_database", path=str(db_path))
    await init_database(db_path)

    health = await check_database_health(db_path)
    if health["status"] == "healthy":
        log.info("database_rebuilt", path=str(db_path), integrity=health["integrity"])
    else:
        log.error("database_rebuild_failed", path=str(db_path), error=health.get("error"))


if __name__ == "__main__":
    log.info("starting_database_rebuild")
    asyncio.run(rebuild_database())
    log.info("database_rebuild_complete")
