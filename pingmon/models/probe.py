import ipaddress
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

from pingmon.config import (
    DEFAULT_DURATION_MS,
    DEFAULT_PACKET_SIZE,
    DEFAULT_TIMEOUT_MS,
    MAX_DURATION_MS,
    MAX_PACKET_SIZE,
    MAX_TIMEOUT_MS,
    MIN_DURATION_MS,
    MIN_PACKET_SIZE,
    MIN_TIMEOUT_MS,
)

_HOSTNAME_RE = re.compile(
    r"^(?=.{1,253}\.?$)(?!-)[A-Za-z0-9-]{1,63}(?<!-)(\.(?!-)[A-Za-z0-9-]{1,63}(?<!-))*\.?$"
)


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the form SQLite stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat_utc(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat() + "Z"


class ProbeRequest(BaseModel):
    """A validated monitoring request. Immutable once accepted."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    host: str = Field(validation_alias=AliasChoices("host", "ip"))
    timeout_ms: int = Field(DEFAULT_TIMEOUT_MS, alias="timeoutMs", ge=MIN_TIMEOUT_MS, le=MAX_TIMEOUT_MS)
    packet_size_bytes: int = Field(
        DEFAULT_PACKET_SIZE, alias="packetSizeBytes", ge=MIN_PACKET_SIZE, le=MAX_PACKET_SIZE
    )
    duration_ms: int = Field(DEFAULT_DURATION_MS, alias="durationMs", ge=MIN_DURATION_MS, le=MAX_DURATION_MS)

    @field_validator("host")
    @classmethod
    def _valid_host(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        try:
            ipaddress.ip_address(value)
            return value
        except ValueError:
            pass
        # a leading "-" would be read as a ping option
        if not _HOSTNAME_RE.match(value):
            raise ValueError("must be an IP address or hostname")
        return value

    def to_params(self) -> Dict[str, Any]:
        """Wire representation echoed back to the caller."""
        return self.model_dump(by_alias=True)


class ProbeOutcome(BaseModel):
    """The normalized result of one probe attempt."""

    timestamp: datetime = Field(default_factory=utcnow)
    host: str
    response_time_ms: Optional[float] = None
    packet_size_bytes: int
    timeout_ms: int
    success: bool
    error_detail: Optional[str] = None

    @model_validator(mode="after")
    def _failure_has_no_latency(self) -> "ProbeOutcome":
        if not self.success and self.response_time_ms is not None:
            raise ValueError("a failed probe cannot carry a response time")
        return self

    def to_event(self) -> Dict[str, Any]:
        return {
            "type": "ping",
            "timestamp": isoformat_utc(self.timestamp),
            "responseTime": self.response_time_ms,
            "success": self.success,
            "error": self.error_detail,
        }


class HistoryRecord(BaseModel):
    """Read-only projection of a persisted ping result."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    timestamp: datetime
    host: str
    response_time: Optional[float] = Field(default=None, alias="responseTime")
    packet_size: int = Field(alias="packetSize")
    timeout: int
    success: bool

    @field_serializer("timestamp")
    def _serialize_timestamp(self, value: datetime) -> str:
        return isoformat_utc(value)

    @classmethod
    def from_row(cls, row: Any) -> "HistoryRecord":
        return cls(
            timestamp=row.timestamp,
            host=row.host,
            response_time=row.response_time,
            packet_size=row.packet_size,
            timeout=row.timeout,
            success=bool(row.success),
        )

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")
