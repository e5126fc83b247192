from sqlmodel import SQLModel, Field
from sqlalchemy import text
from datetime import datetime
from typing import Optional

from pingmon.models.probe import utcnow

class PingResult(SQLModel, table=True):
    """One persisted probe outcome. Rows are append-only."""
    __tablename__ = "ping_results"

    id: Optional[int] = Field(default=None, primary_key=True)
    timestamp: datetime = Field(
        default_factory=utcnow,
        index=True,
        sa_column_kwargs={"server_default": text("CURRENT_TIMESTAMP")},
    )
    host: str
    response_time: Optional[float] = None
    packet_size: int
    timeout: int
    success: int  # 0/1
