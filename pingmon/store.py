import logging
from typing import List

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from pingmon.config import HISTORY_LIMIT
from pingmon.errors import StorageError
from pingmon.models.PingResult import PingResult
from pingmon.models.probe import HistoryRecord, ProbeOutcome

log = logging.getLogger(__name__)


class ResultStore:
    """
    Append-only persistence for probe outcomes.

    Every call opens its own Session on the shared engine, so concurrent
    callers on worker threads never share a connection.
    """

    def __init__(self, engine: Engine):
        self.engine = engine

    def append(self, outcome: ProbeOutcome) -> None:
        row = PingResult(
            timestamp=outcome.timestamp,
            host=outcome.host,
            response_time=outcome.response_time_ms,
            packet_size=outcome.packet_size_bytes,
            timeout=outcome.timeout_ms,
            success=1 if outcome.success else 0,
        )
        try:
            with Session(self.engine) as session:
                session.add(row)
                session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to save ping result for {outcome.host}: {e}") from e
        log.debug("Saved ping result for %s (success=%s)", outcome.host, outcome.success)

    def query_recent(self, limit: int = HISTORY_LIMIT) -> List[HistoryRecord]:
        """Most recent results first, never more than HISTORY_LIMIT rows."""
        limit = max(0, min(limit, HISTORY_LIMIT))
        if limit == 0:
            return []
        statement = (
            select(PingResult)
            .order_by(PingResult.timestamp.desc(), PingResult.id.desc())
            .limit(limit)
        )
        try:
            with Session(self.engine) as session:
                rows = session.exec(statement).all()
                return [HistoryRecord.from_row(row) for row in rows]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read ping history: {e}") from e
