"""Migration services."""

from .identity_map import IdentityMap
from .projector import project_record, attachment_names
from .staging import StagingArea
from .attachments import AttachmentMigrator, AttachmentOutcome
from .transfer import RecordTransferPipeline
from .hierarchy import HierarchicalTransfer

__all__ = [
    "IdentityMap",
    "project_record",
    "attachment_names",
    "StagingArea",
    "AttachmentMigrator",
    "AttachmentOutcome",
    "RecordTransferPipeline",
    "HierarchicalTransfer",
]
