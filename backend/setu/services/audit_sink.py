"""
Audit sinks for broadcast events.

WHAT: Destinations for outgoing_listing / incoming_bid events
WHY: Every broadcast must leave a reviewable trace
HOW: Database sink writing network_logs rows; in-memory sink for tests
"""

from typing import Optional, Protocol

from sqlalchemy import func, select

from ..core.database import get_db
from ..core.models import NetworkLog
from ..models.broadcast import AuditEvent, AuditEventType
from ..utils.logger import get_logger

logger = get_logger(__name__)


class AuditSink(Protocol):
    """Anything that accepts audit events."""

    def record(self, event: AuditEvent) -> None:
        ...


class InMemoryAuditSink:
    """Keeps events in a list, in arrival order."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    def record(self, event: AuditEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: AuditEventType) -> list[AuditEvent]:
        return [e for e in self.events if e.type == event_type]

    def list_logs(
        self,
        event_type: Optional[AuditEventType] = None,
        page: int = 1,
        page_size: int = 50
    ) -> tuple[list[AuditEvent], int]:
        """Newest-first page of events, same contract as DatabaseAuditSink.list_logs."""
        matching = self.events if event_type is None else self.of_type(event_type)
        newest_first = list(reversed(matching))
        start = (max(page, 1) - 1) * page_size
        return newest_first[start:start + page_size], len(matching)


class DatabaseAuditSink:
    """
    Persist audit events to the network_logs table.

    WHAT: record() inserts one row; list_logs() pages through them
    WHY: The network log viewer reads history across restarts
    HOW: Sync SQLAlchemy session per call via get_db()
    """

    def record(self, event: AuditEvent) -> None:
        with get_db() as db:
            db.add(NetworkLog(
                type=event.type,
                payload=event.payload,
                timestamp=event.timestamp,
            ))
        logger.debug(f"Recorded {event.type} network log")

    def list_logs(
        self,
        event_type: Optional[AuditEventType] = None,
        page: int = 1,
        page_size: int = 50
    ) -> tuple[list[AuditEvent], int]:
        """
        Newest-first page of events.

        Returns:
            (events, total matching rows)
        """
        page = max(page, 1)
        with get_db() as db:
            query = select(NetworkLog)
            count_query = select(func.count()).select_from(NetworkLog)
            if event_type is not None:
                query = query.where(NetworkLog.type == event_type)
                count_query = count_query.where(NetworkLog.type == event_type)

            total = db.execute(count_query).scalar_one()
            rows = db.execute(
                query.order_by(NetworkLog.timestamp.desc(), NetworkLog.id.desc())
                .offset((page - 1) * page_size)
                .limit(page_size)
            ).scalars().all()

            events = [
                AuditEvent(type=row.type, payload=row.payload, timestamp=row.timestamp)
                for row in rows
            ]
        return events, total
