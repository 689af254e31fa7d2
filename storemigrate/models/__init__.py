"""Data models for the migration application."""

from .migration import (
    AttachmentCardinality,
    CollectionSpec,
    StoreEndpoint,
    MigrationConfig,
    MigrationRun,
    MigrationStatus,
)
from .record import (
    SERVER_MANAGED_FIELDS,
    Record,
    TransferResult,
    TransferStatus,
    sort_by_creation,
)

__all__ = [
    "AttachmentCardinality",
    "CollectionSpec",
    "StoreEndpoint",
    "MigrationConfig",
    "MigrationRun",
    "MigrationStatus",
    "SERVER_MANAGED_FIELDS",
    "Record",
    "TransferResult",
    "TransferStatus",
    "sort_by_creation",
]
