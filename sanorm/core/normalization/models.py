from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Dict, Mapping, Optional
from uuid import uuid4

API_VERSION = "v1"
REDACTED = "[REDACTED]"


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a Z suffix."""
    ts = now or datetime.now(UTC)
    return ts.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class RequestContext:
    """
    Per-request facts needed to build envelopes.

    start_time is a time.monotonic() reference used for processingTime.
    Created once per inbound request and never mutated.
    """

    request_id: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    start_time: Optional[float] = field(default_factory=time.monotonic)
    user_agent: Optional[str] = None
    ip: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.request_id, str) or not self.request_id:
            raise ValueError("request_id must be a non-empty string")

    @classmethod
    def create(
        cls,
        request_id: Optional[str] = None,
        *,
        user_agent: Optional[str] = None,
        ip: Optional[str] = None,
    ) -> "RequestContext":
        return cls(
            request_id=request_id or str(uuid4()),
            user_agent=user_agent,
            ip=ip,
        )

    def elapsed_ms(self) -> Optional[int]:
        if self.start_time is None:
            return None
        return max(0, int((time.monotonic() - self.start_time) * 1000))


@dataclass(frozen=True)
class PaginationLinks:
    first: Optional[str] = None
    prev: Optional[str] = None
    next: Optional[str] = None
    last: Optional[str] = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "PaginationLinks":
        return cls(
            first=raw.get("first"),
            prev=raw.get("prev"),
            next=raw.get("next"),
            last=raw.get("last"),
        )

    def to_dict(self) -> Dict[str, str]:
        out = {"first": self.first, "prev": self.prev, "next": self.next, "last": self.last}
        return {k: v for k, v in out.items() if v is not None}


@dataclass(frozen=True)
class PaginationMeta:
    """Pagination facts as supplied by a handler (not yet normalized)."""

    page: int
    limit: int
    total: int
    total_pages: int = 0
    has_next: bool = False
    has_prev: bool = False
    links: Optional[PaginationLinks] = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "PaginationMeta":
        """Build from a wire-shaped mapping (camelCase keys)."""

        links = raw.get("links")
        return cls(
            page=int(raw.get("page") or 0),
            limit=int(raw.get("limit") or 0),
            total=int(raw.get("total") or 0),
            total_pages=int(raw.get("totalPages") or 0),
            has_next=bool(raw.get("hasNext", False)),
            has_prev=bool(raw.get("hasPrev", False)),
            links=PaginationLinks.from_mapping(links) if isinstance(links, Mapping) else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "totalPages": self.total_pages,
            "hasNext": self.has_next,
            "hasPrev": self.has_prev,
        }
        if self.links is not None:
            out["links"] = self.links.to_dict()
        return out
