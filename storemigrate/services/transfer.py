"""Record transfer pipeline for flat collections."""

import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, Iterator, List, Optional

from ..clients.base import BaseStoreClient
from ..errors import AuthenticationError, CollectionError, StoreError
from ..models.migration import AttachmentCardinality, CollectionSpec, MigrationConfig
from ..models.record import Record, TransferResult, TransferStatus
from .attachments import AttachmentMigrator
from .projector import project_record
from .staging import StagingArea

logger = logging.getLogger(__name__)


class RecordTransferPipeline:
    """
    Copies one collection from the source store to the destination store.

    The destination collection is cleared first, then every source
    record is re-created in creation order, without its server-managed
    and attachment fields, and its attachments are migrated to the new
    record. A record that fails is counted and skipped; it never stops
    the rest of the collection.
    """

    def __init__(
        self,
        config: MigrationConfig,
        source_client: BaseStoreClient,
        destination_client: BaseStoreClient,
        attachment_migrator: Optional[AttachmentMigrator] = None
    ):
        """
        Initialize the pipeline.

        Args:
            config: Migration configuration
            source_client: Client for the store records are read from
            destination_client: Client for the store records are written to
            attachment_migrator: Attachment migrator (built from config if omitted)
        """
        self.config = config
        self.source = source_client
        self.destination = destination_client
        self.attachments = attachment_migrator or AttachmentMigrator(
            StagingArea(config.staging_dir),
            download_timeout=config.download_timeout,
        )

    def transfer(self, spec: CollectionSpec) -> TransferResult:
        """
        Transfer one collection.

        Failing to clear the destination or to list the source, or any
        other unexpected error outside a single record, marks the result
        as failed; per-record failures do not.

        Raises:
            AuthenticationError: If either store can no longer be authenticated
        """
        result = TransferResult(collection=spec.name, hierarchical=spec.has_self_reference)
        result.started_at = datetime.utcnow()
        result.status = TransferStatus.RUNNING
        attachment_fields = self.config.attachment_fields_for(spec)

        try:
            self.clear_collection(spec.name, result)

            records = self.fetch_records(spec.name)
            result.total = len(records)

            if not records:
                logger.info(f"No records found in source collection {spec.name}")
            else:
                logger.info(f"Found {len(records)} {spec.name} records to transfer")
                self._transfer_records(spec, records, attachment_fields, result)

            result.status = TransferStatus.COMPLETED

        except CollectionError as e:
            result.status = TransferStatus.FAILED
            result.add_error(e, stage="collection")
            logger.error(f"Transfer of {spec.name} aborted: {e}")

        except AuthenticationError:
            result.status = TransferStatus.FAILED
            raise

        except Exception as e:
            result.status = TransferStatus.FAILED
            result.add_error(f"Unexpected error: {e}", stage="collection")
            logger.exception(f"Transfer of {spec.name} aborted by unexpected error: {e}")

        finally:
            result.completed_at = datetime.utcnow()

        logger.info(
            f"Transferred {spec.name}: {result.succeeded}/{result.total} records succeeded, "
            f"{result.failed} failed"
        )
        return result

    def clear_collection(self, collection: str, result: TransferResult) -> None:
        """
        Delete every record of the destination collection.

        Raises:
            CollectionError: If the destination collection cannot be listed
        """
        logger.info(f"Clearing destination collection: {collection}")
        try:
            existing = self.destination.list_records(collection, batch_size=self.config.batch_size)
        except AuthenticationError:
            raise
        except StoreError as e:
            raise CollectionError(
                f"Failed to list destination collection {collection}: {e}",
                {"collection": collection},
            )

        for record in existing:
            try:
                self.destination.delete_record(collection, record.id)
                result.deleted += 1
            except AuthenticationError:
                raise
            except StoreError as e:
                result.delete_failed += 1
                result.add_error(e, record_id=record.id, stage="delete")
                logger.error(f"Failed to delete {collection}/{record.id} from destination: {e}")

        logger.info(f"Deleted {result.deleted} existing records from destination {collection}")

    def fetch_records(self, collection: str) -> List[Record]:
        """
        Fetch the source records in creation order.

        Raises:
            CollectionError: If the source collection cannot be listed
        """
        logger.info(f"Fetching records from source collection: {collection}")
        try:
            return self.source.list_ordered(collection, batch_size=self.config.batch_size)
        except AuthenticationError:
            raise
        except StoreError as e:
            raise CollectionError(
                f"Failed to list source collection {collection}: {e}",
                {"collection": collection},
            )

    def _transfer_records(
        self,
        spec: CollectionSpec,
        records: List[Record],
        attachment_fields: Dict[str, AttachmentCardinality],
        result: TransferResult
    ) -> None:
        """Re-create every record on the destination."""
        self._run_batches(
            spec,
            records,
            result,
            lambda record: self.transfer_record(spec, record, attachment_fields, result),
        )

    def _run_batches(
        self,
        spec: CollectionSpec,
        records: List[Record],
        result: TransferResult,
        handle: Callable[[Record], str]
    ) -> None:
        """Apply handle to every record, batch by batch, isolating failures."""
        batches = list(self._batch_iterator(records, self.config.batch_size))

        for number, batch in enumerate(batches, 1):
            succeeded, failed = result.succeeded, result.failed

            for record in batch:
                try:
                    handle(record)
                    result.succeeded += 1
                except AuthenticationError:
                    raise
                except Exception as e:
                    result.failed += 1
                    result.add_error(e, record_id=record.id, stage="create")
                    logger.error(f"Failed to transfer {spec.name}/{record.id}: {e}")

            logger.info(
                f"{spec.name} batch {number}/{len(batches)}: "
                f"{result.succeeded - succeeded} succeeded, {result.failed - failed} failed"
            )

    def transfer_record(
        self,
        spec: CollectionSpec,
        record: Record,
        attachment_fields: Dict[str, AttachmentCardinality],
        result: TransferResult,
        strip_fields: Iterable[str] = (),
        on_created: Optional[Callable[[str], None]] = None
    ) -> str:
        """
        Create one record on the destination and migrate its attachments.

        on_created is called with the new id as soon as the create
        returns, before any attachment is moved.

        Returns:
            The destination id of the new record

        Raises:
            StoreError: If the destination rejects the create
        """
        payload = project_record(record, attachment_fields, strip_fields)
        created = self.destination.create_record(spec.name, payload)
        logger.debug(f"Created {spec.name}/{record.id} as {created.id}")

        if on_created is not None:
            on_created(created.id)

        if attachment_fields:
            outcomes = self.attachments.migrate_record(
                self.source, record, self.destination, created.id, attachment_fields
            )
            for outcome in outcomes:
                result.attachments_uploaded += len(outcome.uploaded)
                result.attachments_failed += outcome.failed_count
                for failure in outcome.failed:
                    result.add_error(
                        failure["error"],
                        record_id=record.id,
                        field_name=outcome.field,
                        stage="attachment",
                    )

        return created.id

    def _batch_iterator(self, records: List[Record], batch_size: int) -> Iterator[List[Record]]:
        """Iterate over records in batches."""
        for i in range(0, len(records), batch_size):
            yield records[i:i + batch_size]
