"""
Record store and change feed protocol definitions (interfaces).

The engine consumes the backing store only through these contracts:
equality/range queries, insert, conditional update-by-id, and insert
subscriptions filtered by an equality predicate. Concrete backends live
in database.py (SQLite), rest_store.py (hosted REST store) and
change_feed.py.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Protocol

Row = Dict[str, Any]

# Relation names
SESSIONS = "sessions"
ENERGY_METRICS = "energy_metrics"
TOOL_USAGE_LOGS = "tool_usage_logs"
ACHIEVEMENT_PROGRESS = "achievement_progress"

RELATIONS = (SESSIONS, ENERGY_METRICS, TOOL_USAGE_LOGS, ACHIEVEMENT_PROGRESS)


@dataclass(frozen=True)
class Query:
    """A read against one relation.

    ``equals`` filters by column equality; ``range_column`` with
    ``range_start`` (inclusive) and ``range_end`` (exclusive) filters a
    timestamp column.
    """

    relation: str
    equals: Dict[str, Any] = field(default_factory=dict)
    range_column: Optional[str] = None
    range_start: Optional[datetime] = None
    range_end: Optional[datetime] = None
    order_by: Optional[str] = None
    descending: bool = False
    limit: Optional[int] = None


class RecordStore(Protocol):
    """
    Protocol for the backing record store.

    Implementations raise PersistenceError for any read/write failure.
    """

    async def insert(self, relation: str, values: Row) -> Row:
        """Append a row and return it as stored (with id and defaults)."""
        ...

    async def update(
        self,
        relation: str,
        row_id: str,
        values: Row,
        match: Optional[Row] = None,
    ) -> Optional[Row]:
        """
        Update one row by id.

        Args:
            relation: Relation name
            row_id: Row id
            values: Columns to set
            match: Extra equality predicate the row must satisfy

        Returns:
            The updated row, or None when no row matched
        """
        ...

    async def get(self, relation: str, row_id: str) -> Optional[Row]:
        """Fetch a single row by id."""
        ...

    async def select(self, query: Query) -> List[Row]:
        """Run a filtered, ordered read."""
        ...


class FeedSubscription(Protocol):
    """Handle to a live change-feed listener."""

    async def unsubscribe(self) -> None:
        """Stop delivery and release server-side resources. Idempotent."""
        ...


InsertCallback = Callable[[Row], None]
ErrorCallback = Callable[[Exception], None]


class ChangeFeed(Protocol):
    """Protocol for insert subscriptions on a relation."""

    async def subscribe(
        self,
        relation: str,
        filters: Row,
        on_insert: InsertCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> FeedSubscription:
        """
        Start delivering inserts on ``relation`` that match ``filters``.

        Raises:
            SubscriptionError: If the listener cannot be opened
        """
        ...


@dataclass
class BackendClient:
    """Client capability object injected into every engine component."""

    store: RecordStore
    feed: ChangeFeed
    close_callbacks: List[Callable[[], Any]] = field(default_factory=list)

    async def aclose(self) -> None:
        """Release backend resources (HTTP pools, pollers)."""
        for callback in self.close_callbacks:
            result = callback()
            if hasattr(result, "__await__"):
                await result
        self.close_callbacks.clear()
