"""
Domain models for the scam listing cache.

Defines the cached `Entry`, the per-cycle `SnapshotRecord` exchanged with the
snapshot producer process, locally submitted `Report`s awaiting an upstream pull
request, and `PriceQuote`s from the price lookup. Column names follow the
`entries`, `nameservers`, `reports` and `prices` tables created by
`scamcache.infrastructure.store`.
"""
from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, Field, field_serializer, field_validator

STATUS_ACTIVE = "Active"
STATUS_INACTIVE = "Inactive"
STATUS_OFFLINE = "Offline"

NO_STATUS_CODE = -1


def entry_id_for_url(url: str) -> str:
    """Derive the stable id used for listings that do not carry one."""
    return hashlib.sha256(url.encode("utf-8")).hexdigest()[:16]


def _coerce_id(value: Any) -> Any:
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


class Entry(BaseModel):
    """
    Representation of a single row in the `entries` table.

    Static listing fields come from the upstream data file; `ip`, `status`,
    `status_code` and `updated` are owned by the reconciler.
    """

    id: str = Field(..., description="Opaque listing id.")
    name: Optional[str] = Field(None, description="Display name of the listing.")
    url: Optional[str] = Field(None, description="Listed URL.")
    category: Optional[str] = None
    subcategory: Optional[str] = None
    description: Optional[str] = None
    ip: Optional[str] = Field(None, description="Last resolved IPv4 address.")
    status: Optional[str] = Field(None, description="Active, Inactive or Offline.")
    status_code: Optional[int] = Field(None, description="Last HTTP status, -1 for none.")
    updated: Optional[datetime] = Field(None, description="Time of the last probe.")
    nameservers: List[str] = Field(default_factory=list)

    model_config = {
        "populate_by_name": True,
    }

    @field_validator("id", mode="before")
    @classmethod
    def normalize_id(cls, value: Any) -> Any:
        return _coerce_id(value)


class SnapshotRecord(BaseModel):
    """
    One entry of a snapshot as sent by the producer process.

    Wire names (`statusCode`) match the message contract; Python code uses the
    snake_case attribute names.
    """

    id: str
    ip: Optional[str] = None
    status: str
    status_code: int = Field(..., alias="statusCode")
    updated: datetime
    nameservers: FrozenSet[str] = Field(default_factory=frozenset)

    model_config = {
        "frozen": True,
        "populate_by_name": True,
    }

    @field_validator("id", mode="before")
    @classmethod
    def normalize_id(cls, value: Any) -> Any:
        return _coerce_id(value)

    @field_validator("nameservers", mode="before")
    @classmethod
    def normalize_nameservers(cls, value: Any) -> Any:
        if value is None:
            return frozenset()
        if isinstance(value, (list, tuple, set, frozenset)):
            return frozenset(str(ns).strip().rstrip(".").lower() for ns in value if str(ns).strip())
        return value

    @field_serializer("nameservers")
    def serialize_nameservers(self, value: FrozenSet[str]) -> List[str]:
        return sorted(value)

    def to_message(self) -> Dict[str, Any]:
        """Render the record with wire field names for the producer message."""
        return self.model_dump(by_alias=True)


class Report(BaseModel):
    """
    A listing submitted locally and waiting to be proposed upstream.
    """

    id: Optional[int] = Field(None, description="Primary key (BIGSERIAL).")
    url: str = Field(..., min_length=1)
    name: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    description: Optional[str] = None
    reporter: Optional[str] = None
    created_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    pull_request_url: Optional[str] = None

    def to_listing(self) -> Dict[str, Any]:
        """Render the report as an upstream data file record."""
        listing: Dict[str, Any] = {"id": entry_id_for_url(self.url), "url": self.url}
        for key in ("name", "category", "subcategory", "description", "reporter"):
            value = getattr(self, key)
            if value:
                listing[key] = value
        return listing


class PriceQuote(BaseModel):
    ticker: str
    usd: Decimal
    updated: datetime


@dataclass(frozen=True)
class ProbeTarget:
    """What the producer process needs to probe one entry."""

    entry_id: str
    url: str


__all__ = [
    "Entry",
    "NO_STATUS_CODE",
    "PriceQuote",
    "ProbeTarget",
    "Report",
    "STATUS_ACTIVE",
    "STATUS_INACTIVE",
    "STATUS_OFFLINE",
    "SnapshotRecord",
    "entry_id_for_url",
]
