"""Backend client factory: picks the record store and change feed from settings."""

from typing import Optional

import structlog

from focuscore.core.config import Settings, settings as default_settings
from focuscore.persistence.change_feed import LocalChangeFeed, PollingChangeFeed
from focuscore.persistence.database import SqliteRecordStore, init_database
from focuscore.persistence.rest_store import RestRecordStore
from focuscore.persistence.store import BackendClient

log = structlog.get_logger(__name__)


async def create_backend(settings: Optional[Settings] = None) -> BackendClient:
    """
    Build the BackendClient for the configured backend.

    - sqlite: initializes the database file and wires a LocalChangeFeed
    - rest: opens an httpx client against the hosted store and polls it
      for inserts

    Raises:
        ConfigurationError: rest backend without URL or API key
    """
    settings = settings or default_settings

    if settings.backend == "rest":
        store = RestRecordStore(
            base_url=settings.supabase_url or "",
            api_key=settings.supabase_anon_key or "",
            access_token=settings.supabase_access_token,
            timeout=settings.request_timeout_seconds,
        )
        feed = PollingChangeFeed(store, interval_seconds=settings.feed_poll_interval_seconds)
        log.info("backend_created", backend="rest", url=store.base_url)
        return BackendClient(store=store, feed=feed, close_callbacks=[store.aclose])

    await init_database(settings.database_path)
    local_feed = LocalChangeFeed()
    store = SqliteRecordStore(settings.database_path, feed=local_feed)
    log.info("backend_created", backend="sqlite", path=str(settings.database_path))
    return BackendClient(store=store, feed=local_feed)
