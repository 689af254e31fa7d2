"""Attachment migration between record stores."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..clients.base import BaseStoreClient
from ..errors import AuthenticationError, DownloadError, StoreError
from ..models.migration import AttachmentCardinality
from ..models.record import Record
from .projector import attachment_names
from .staging import StagingArea

logger = logging.getLogger(__name__)


@dataclass
class AttachmentOutcome:
    """Result of migrating one attachment field of one record."""
    field: str
    uploaded: List[str] = field(default_factory=list)
    failed: List[Dict[str, str]] = field(default_factory=list)
    upload_error: Optional[str] = None

    @property
    def attempted(self) -> int:
        return len(self.uploaded) + len(self.failed)

    @property
    def failed_count(self) -> int:
        """Attachments that did not reach the destination."""
        return len(self.failed)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "field": self.field,
            "uploaded": self.uploaded,
            "failed": self.failed,
            "upload_error": self.upload_error,
        }


class AttachmentMigrator:
    """
    Moves the files of one record from the source store to the
    destination store.

    Each file is downloaded into the staging area on its own; a file
    that fails to download is left out, the rest of the field is still
    uploaded. Download failures are reported in the outcome, upload
    failures are raised. Staged files are removed after the upload
    attempt whatever its result.
    """

    def __init__(self, staging: StagingArea, download_timeout: float = 30.0):
        """
        Initialize the migrator.

        Args:
            staging: Where downloaded files are kept until uploaded
            download_timeout: Seconds allowed for each file download
        """
        self.staging = staging
        self.download_timeout = download_timeout

    def download(
        self,
        client: BaseStoreClient,
        collection: str,
        record_id: str,
        field_name: str,
        index: int,
        filename: str
    ) -> Path:
        """
        Download one attachment into the staging area.

        Raises:
            DownloadError: On timeout, error status or an empty payload
            OSError: If the bytes could not be staged
        """
        client.ensure_authenticated()
        url = client.file_url(collection, record_id, filename)
        logger.debug(f"Downloading {url}")

        content = client.retrieve_attachment(
            collection, record_id, filename, timeout=self.download_timeout
        )
        if not content:
            raise DownloadError(f"Empty payload for {url}")

        return self.staging.stage(record_id, field_name, index, filename, content)

    def migrate_field(
        self,
        source_client: BaseStoreClient,
        collection: str,
        source_id: str,
        field_name: str,
        cardinality: AttachmentCardinality,
        filenames: List[str],
        destination_client: BaseStoreClient,
        destination_id: str,
        destination_collection: Optional[str] = None
    ) -> AttachmentOutcome:
        """
        Migrate the files of one attachment field.

        Raises:
            UploadError: If the destination rejects the upload
            OSError: If a staged file cannot be read for the upload
        """
        destination_collection = destination_collection or collection
        outcome = AttachmentOutcome(field=field_name)

        if cardinality == AttachmentCardinality.SINGLE and len(filenames) > 1:
            logger.warning(
                f"{collection}/{source_id} field '{field_name}' is single but holds "
                f"{len(filenames)} files, migrating only {filenames[0]}"
            )
            filenames = filenames[:1]

        staged: List[Path] = []
        try:
            for index, filename in enumerate(filenames):
                try:
                    staged.append(
                        self.download(source_client, collection, source_id, field_name, index, filename)
                    )
                except (DownloadError, OSError) as e:
                    logger.error(
                        f"Failed to download {collection}/{source_id} '{field_name}' {filename}: {e}"
                    )
                    outcome.failed.append({"filename": filename, "error": str(e)})

            if not staged:
                if filenames:
                    logger.warning(
                        f"No files of {collection}/{source_id} '{field_name}' could be downloaded, "
                        f"skipping upload"
                    )
                return outcome

            destination_client.ensure_authenticated()
            destination_client.store_attachments(
                destination_collection, destination_id, field_name, staged
            )
            outcome.uploaded = [path.name for path in staged]
            logger.info(
                f"Uploaded {len(staged)} file(s) to {destination_collection}/{destination_id} "
                f"'{field_name}'"
            )
            return outcome

        finally:
            for path in staged:
                self.staging.discard(path)

    def migrate_record(
        self,
        source_client: BaseStoreClient,
        record: Record,
        destination_client: BaseStoreClient,
        destination_id: str,
        attachment_fields: Dict[str, AttachmentCardinality]
    ) -> List[AttachmentOutcome]:
        """
        Migrate every configured attachment field present on a record.

        A failed upload, whether rejected by the store or unreadable from
        staging, is confined to its field and reported in that field's
        outcome.
        """
        outcomes = []

        for field_name, cardinality in attachment_fields.items():
            filenames = attachment_names(record.get(field_name))
            if not filenames:
                continue

            try:
                outcome = self.migrate_field(
                    source_client,
                    record.collection,
                    record.id,
                    field_name,
                    cardinality,
                    filenames,
                    destination_client,
                    destination_id,
                )
            except AuthenticationError:
                raise
            except (StoreError, OSError) as e:
                logger.error(
                    f"Upload of {record.collection}/{record.id} '{field_name}' "
                    f"to {destination_id} failed: {e}"
                )
                if cardinality == AttachmentCardinality.SINGLE:
                    filenames = filenames[:1]
                outcome = AttachmentOutcome(field=field_name, upload_error=str(e))
                outcome.failed = [{"filename": name, "error": str(e)} for name in filenames]

            outcomes.append(outcome)

        return outcomes
