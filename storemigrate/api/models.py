"""Pydantic models for API requests and responses."""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field
from enum import Enum

from ..models.migration import MigrationConfig


class AttachmentCardinalityEnum(str, Enum):
    SINGLE = "single"
    MULTIPLE = "multiple"


class MigrationStatusEnum(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


# Request Models
class StoreEndpointCreate(BaseModel):
    url: str
    email: str
    password: str
    auth_path: Optional[str] = None
    timeout: float = Field(default=30.0, gt=0)


class CollectionCreate(BaseModel):
    name: str
    self_reference_field: Optional[str] = None
    attachment_fields: Optional[Dict[str, AttachmentCardinalityEnum]] = None


class MigrationCreate(BaseModel):
    name: str = "store-migration"
    source: StoreEndpointCreate
    destination: StoreEndpointCreate
    collections: List[CollectionCreate]
    attachment_fields: Dict[str, AttachmentCardinalityEnum] = Field(default_factory=dict)
    staging_dir: str = "./staging"
    batch_size: int = Field(default=100, gt=0)
    download_timeout: float = Field(default=30.0, gt=0)
    continue_on_error: bool = True
    report_dir: Optional[str] = None

    def to_config(self) -> MigrationConfig:
        """Convert to the internal migration configuration."""
        return MigrationConfig.from_dict(self.model_dump(mode="json"))


# Response Models
class MigrationStartResponse(BaseModel):
    migration_id: str
    status: str


class TransferResultResponse(BaseModel):
    collection: str
    hierarchical: bool
    status: str
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    deleted: int = 0
    delete_failed: int = 0
    attachments_uploaded: int = 0
    attachments_failed: int = 0
    links_updated: Optional[int] = None
    links_dropped: Optional[int] = None
    links_failed: Optional[int] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    errors: List[Dict[str, Any]] = Field(default_factory=list)


class MigrationResponse(BaseModel):
    id: str
    name: str
    status: MigrationStatusEnum
    created_at: str
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    current_collection: Optional[str] = None
    results: List[TransferResultResponse] = Field(default_factory=list)
    total_records_processed: int = 0
    total_records_succeeded: int = 0
    total_records_failed: int = 0
    errors: List[Dict[str, Any]] = Field(default_factory=list)


class MigrationListResponse(BaseModel):
    migrations: List[MigrationResponse]
    total: int
