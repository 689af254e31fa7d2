"""Record models for migration data."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum
from datetime import datetime
import logging

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

# Fields assigned and maintained by the store itself
SERVER_MANAGED_FIELDS = (
    "id",
    "collectionId",
    "collectionName",
    "created",
    "updated",
    "expand",
)


class TransferStatus(str, Enum):
    """Status of a single collection transfer."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Record:
    """A record as returned by a record store."""
    id: str
    collection: str
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, collection: str, payload: Dict[str, Any]) -> "Record":
        """Build a record from a raw API payload."""
        return cls(
            id=str(payload.get("id", "")),
            collection=payload.get("collectionName") or collection,
            data=dict(payload),
        )

    def get(self, name: str, default: Any = None) -> Any:
        """Get a field value."""
        return self.data.get(name, default)

    @property
    def created_at(self) -> Optional[datetime]:
        """Creation timestamp, if the store supplied a parseable one."""
        value = self.data.get("created")
        if not value:
            return None
        try:
            return date_parser.parse(str(value))
        except (ValueError, OverflowError):
            logger.debug(f"Unparseable created timestamp on {self.collection}/{self.id}: {value!r}")
            return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "collection": self.collection,
            "data": self.data,
        }


def sort_by_creation(records: List[Record]) -> List[Record]:
    """
    Sort records by creation time, oldest first.

    The sort is stable. If any record has no usable timestamp the
    input order is returned unchanged.
    """
    keys = [r.created_at for r in records]
    if any(k is None for k in keys):
        return list(records)
    # Mixed naive/aware timestamps cannot be compared
    if len({k.tzinfo is None for k in keys}) > 1:
        return list(records)
    order = sorted(range(len(records)), key=lambda i: keys[i])
    return [records[i] for i in order]


@dataclass
class TransferResult:
    """Outcome of transferring one collection."""
    collection: str
    hierarchical: bool = False
    status: TransferStatus = TransferStatus.PENDING
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    deleted: int = 0
    delete_failed: int = 0
    attachments_uploaded: int = 0
    attachments_failed: int = 0
    links_updated: int = 0
    links_dropped: int = 0
    links_failed: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    @property
    def success_rate(self) -> float:
        if self.total == 0:
            return 0.0
        return self.succeeded / self.total

    def add_error(
        self,
        error: Any,
        record_id: Optional[str] = None,
        field_name: Optional[str] = None,
        stage: str = "record"
    ) -> None:
        """Record an error with enough context to diagnose it."""
        self.errors.append({
            "collection": self.collection,
            "record_id": record_id,
            "field": field_name,
            "stage": stage,
            "error": str(error),
        })

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        data = {
            "collection": self.collection,
            "hierarchical": self.hierarchical,
            "status": self.status.value,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "deleted": self.deleted,
            "delete_failed": self.delete_failed,
            "attachments_uploaded": self.attachments_uploaded,
            "attachments_failed": self.attachments_failed,
            "success_rate": self.success_rate,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "errors": self.errors,
        }
        if self.hierarchical:
            data["links_updated"] = self.links_updated
            data["links_dropped"] = self.links_dropped
            data["links_failed"] = self.links_failed
        return data
