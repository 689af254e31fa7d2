"""Migration execution models."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional
from enum import Enum
from datetime import datetime
import uuid

from ..errors import ConfigurationError
from .record import TransferResult, TransferStatus

DEFAULT_AUTH_PATH = "/api/collections/_superusers/auth-with-password"


class MigrationStatus(str, Enum):
    """Status of a migration run."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class AttachmentCardinality(str, Enum):
    """How many files an attachment field holds."""
    SINGLE = "single"
    MULTIPLE = "multiple"


def parse_attachment_fields(data: Optional[Mapping[str, Any]]) -> Dict[str, AttachmentCardinality]:
    """Parse a field name -> cardinality table."""
    fields = {}
    for name, cardinality in (data or {}).items():
        try:
            fields[name] = AttachmentCardinality(str(cardinality).strip().lower())
        except ValueError:
            raise ConfigurationError(
                f"Invalid cardinality for attachment field '{name}': {cardinality!r}",
                {"field": name},
            )
    return fields


@dataclass
class CollectionSpec:
    """A collection to migrate."""
    name: str
    self_reference_field: Optional[str] = None
    # Overrides the run-wide attachment table when set
    attachment_fields: Optional[Dict[str, AttachmentCardinality]] = None

    @property
    def has_self_reference(self) -> bool:
        return bool(self.self_reference_field)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "name": self.name,
            "self_reference_field": self.self_reference_field,
            "attachment_fields": (
                {k: v.value for k, v in self.attachment_fields.items()}
                if self.attachment_fields is not None else None
            ),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "CollectionSpec":
        """Create from a collection name or a dictionary."""
        if isinstance(data, str):
            return cls(name=data)
        attachment_fields = data.get("attachment_fields")
        return cls(
            name=data.get("name", ""),
            self_reference_field=data.get("self_reference_field") or None,
            attachment_fields=(
                parse_attachment_fields(attachment_fields)
                if attachment_fields is not None else None
            ),
        )


@dataclass
class StoreEndpoint:
    """Connection settings for one record store."""
    url: str
    email: str
    password: str
    auth_path: str = DEFAULT_AUTH_PATH
    timeout: float = 30.0
    retry_config: Dict[str, Any] = field(default_factory=lambda: {
        "max_retries": 3,
        "backoff_factor": 1.0,
    })

    def missing_settings(self) -> List[str]:
        """Names of required settings that are empty."""
        return [
            name for name in ("url", "email", "password")
            if not getattr(self, name)
        ]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation (password masked)."""
        return {
            "url": self.url,
            "email": self.email,
            "password": "***" if self.password else "",
            "auth_path": self.auth_path,
            "timeout": self.timeout,
            "retry_config": self.retry_config,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StoreEndpoint":
        """Create from dictionary representation."""
        retry_config = data.get("retry_config") or {"max_retries": 3, "backoff_factor": 1.0}
        return cls(
            url=data.get("url", ""),
            email=data.get("email", ""),
            password=data.get("password", ""),
            auth_path=data.get("auth_path") or DEFAULT_AUTH_PATH,
            timeout=float(data.get("timeout", 30.0)),
            retry_config=retry_config,
        )


@dataclass
class MigrationConfig:
    """Configuration for a migration."""
    source: StoreEndpoint
    destination: StoreEndpoint
    name: str = "store-migration"
    collections: List[CollectionSpec] = field(default_factory=list)

    # Run-wide attachment schema, field name -> cardinality
    attachment_fields: Dict[str, AttachmentCardinality] = field(default_factory=dict)

    # Execution options
    staging_dir: str = "./staging"
    batch_size: int = 100
    download_timeout: float = 30.0
    continue_on_error: bool = True

    # Output
    report_dir: Optional[str] = None

    def attachment_fields_for(self, spec: CollectionSpec) -> Dict[str, AttachmentCardinality]:
        """Attachment schema that applies to a collection."""
        if spec.attachment_fields is not None:
            return spec.attachment_fields
        return self.attachment_fields

    def validate(self) -> None:
        """Raise ConfigurationError if the configuration cannot be run."""
        for role, endpoint in (("source", self.source), ("destination", self.destination)):
            missing = endpoint.missing_settings()
            if missing:
                raise ConfigurationError(
                    f"Missing {role} store configuration: {', '.join(missing)}",
                    {"store": role},
                )
            if not endpoint.url.startswith(("http://", "https://")):
                raise ConfigurationError(
                    f"Invalid {role} store URL: {endpoint.url}",
                    {"store": role},
                )

        if not self.collections:
            raise ConfigurationError("No collections configured")

        seen = set()
        for spec in self.collections:
            if not spec.name:
                raise ConfigurationError("Collection name must not be empty")
            if spec.name in seen:
                raise ConfigurationError(
                    f"Collection configured twice: {spec.name}",
                    {"collection": spec.name},
                )
            seen.add(spec.name)
            if spec.self_reference_field and spec.self_reference_field in self.attachment_fields_for(spec):
                raise ConfigurationError(
                    f"Self-reference field '{spec.self_reference_field}' of {spec.name} "
                    f"is also configured as an attachment field",
                    {"collection": spec.name},
                )

        if self.batch_size <= 0:
            raise ConfigurationError(f"batch_size must be positive, got {self.batch_size}")
        if self.download_timeout <= 0:
            raise ConfigurationError(
                f"download_timeout must be positive, got {self.download_timeout}"
            )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "name": self.name,
            "source": self.source.to_dict(),
            "destination": self.destination.to_dict(),
            "collections": [c.to_dict() for c in self.collections],
            "attachment_fields": {k: v.value for k, v in self.attachment_fields.items()},
            "staging_dir": self.staging_dir,
            "batch_size": self.batch_size,
            "download_timeout": self.download_timeout,
            "continue_on_error": self.continue_on_error,
            "report_dir": self.report_dir,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MigrationConfig":
        """Create from dictionary representation."""
        try:
            return cls(
                name=data.get("name", "store-migration"),
                source=StoreEndpoint.from_dict(data.get("source") or {}),
                destination=StoreEndpoint.from_dict(data.get("destination") or {}),
                collections=[CollectionSpec.from_dict(c) for c in data.get("collections", [])],
                attachment_fields=parse_attachment_fields(data.get("attachment_fields")),
                staging_dir=data.get("staging_dir", "./staging"),
                batch_size=int(data.get("batch_size", 100)),
                download_timeout=float(data.get("download_timeout", 30.0)),
                continue_on_error=bool(data.get("continue_on_error", True)),
                report_dir=data.get("report_dir"),
            )
        except (TypeError, ValueError, AttributeError) as e:
            raise ConfigurationError(f"Invalid migration configuration: {e}")

    @classmethod
    def from_env(cls, environ: Mapping[str, str]) -> "MigrationConfig":
        """
        Create from environment variables.

        SOURCE_* / DESTINATION_* settings may also be given with the
        DONOR_* / RECIPIENT_* prefixes.
        """
        def setting(*names: str, default: str = "") -> str:
            for name in names:
                value = environ.get(name)
                if value:
                    return value.strip()
            return default

        def endpoint(prefix: str, alias: str) -> StoreEndpoint:
            return StoreEndpoint(
                url=setting(f"{prefix}_POCKETBASE_URL", f"{alias}_POCKETBASE_URL"),
                email=setting(f"{prefix}_SUPERUSER_EMAIL", f"{alias}_SUPERUSER_EMAIL"),
                password=setting(f"{prefix}_SUPERUSER_PASSWORD", f"{alias}_SUPERUSER_PASSWORD"),
                auth_path=setting("AUTH_PATH", default=DEFAULT_AUTH_PATH),
            )

        self_references = dict(
            _split_pairs(setting("SELF_REFERENCE_FIELDS", "SELF_REFERENCE_FIELD"), "SELF_REFERENCE_FIELDS")
        )
        names = [
            name.strip()
            for name in setting("COLLECTIONS", "COLLECTION_NAME", default="statuses").split(",")
            if name.strip()
        ]
        unknown = [name for name in self_references if name not in names]
        if unknown:
            raise ConfigurationError(
                f"SELF_REFERENCE_FIELDS names collections not in COLLECTIONS: {', '.join(unknown)}"
            )
        collections = [
            CollectionSpec(name=name, self_reference_field=self_references.get(name))
            for name in names
        ]

        try:
            return cls(
                name=setting("MIGRATION_NAME", default="store-migration"),
                source=endpoint("SOURCE", "DONOR"),
                destination=endpoint("DESTINATION", "RECIPIENT"),
                collections=collections,
                attachment_fields=parse_attachment_fields(
                    dict(_split_pairs(setting("ATTACHMENT_FIELDS"), "ATTACHMENT_FIELDS"))
                ),
                staging_dir=setting("STAGING_DIR", default="./staging"),
                batch_size=int(setting("BATCH_SIZE", default="100")),
                download_timeout=float(setting("DOWNLOAD_TIMEOUT", default="30")),
                report_dir=setting("REPORT_DIR") or None,
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid migration configuration: {e}")


def _split_pairs(value: str, setting_name: str) -> List[tuple]:
    """Parse 'key:value,key:value' into pairs."""
    pairs = []
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        key, sep, val = item.partition(":")
        if not sep or not key.strip() or not val.strip():
            raise ConfigurationError(
                f"Invalid entry in {setting_name}: {item!r} (expected name:value)"
            )
        pairs.append((key.strip(), val.strip()))
    return pairs


@dataclass
class MigrationRun:
    """A complete migration run."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    status: MigrationStatus = MigrationStatus.PENDING

    # Timing
    created_at: datetime = field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    # Progress
    results: List[TransferResult] = field(default_factory=list)
    current_collection: Optional[str] = None

    # Statistics
    total_records_processed: int = 0
    total_records_succeeded: int = 0
    total_records_failed: int = 0

    errors: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "current_collection": self.current_collection,
            "results": [r.to_dict() for r in self.results],
            "total_records_processed": self.total_records_processed,
            "total_records_succeeded": self.total_records_succeeded,
            "total_records_failed": self.total_records_failed,
            "errors": self.errors,
        }

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    @property
    def failed_collections(self) -> List[str]:
        return [r.collection for r in self.results if r.status == TransferStatus.FAILED]

    def get_result(self, collection: str) -> Optional[TransferResult]:
        """Get the result for a collection."""
        for result in self.results:
            if result.collection == collection:
                return result
        return None

    def update_totals(self) -> None:
        """Update total statistics from collection results."""
        self.total_records_processed = sum(r.total for r in self.results)
        self.total_records_succeeded = sum(r.succeeded for r in self.results)
        self.total_records_failed = sum(r.failed for r in self.results)
