"""Transfer of collections whose records point at a parent in the same collection."""

import logging
from typing import Any, Dict, List

from ..errors import AuthenticationError
from ..models.migration import AttachmentCardinality, CollectionSpec
from ..models.record import Record, TransferResult
from .identity_map import IdentityMap
from .transfer import RecordTransferPipeline

logger = logging.getLogger(__name__)


def reference_ids(value: Any) -> List[str]:
    """Record ids held by a self-reference field value."""
    if isinstance(value, str):
        return [value] if value else []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if v]
    return []


class HierarchicalTransfer(RecordTransferPipeline):
    """
    Transfer for self-referential collections.

    The destination assigns new ids, so parent pointers cannot be
    written while records are being created. Phase 1 creates every
    record without its self-reference and maps source ids to the new
    ids. Phase 2 walks the source records again and sets each
    self-reference to the mapped parent id.

    Links whose record or parent was not created in phase 1 are
    dropped, not retried. Cycles and self-loops are written as is.
    """

    def _transfer_records(
        self,
        spec: CollectionSpec,
        records: List[Record],
        attachment_fields: Dict[str, AttachmentCardinality],
        result: TransferResult
    ) -> None:
        identity_map = IdentityMap(spec.name)

        logger.info(f"Phase 1: creating {len(records)} {spec.name} records without links")
        self.create_without_links(spec, records, attachment_fields, result, identity_map)

        logger.info(f"Phase 2: relinking {spec.name} via '{spec.self_reference_field}'")
        self.relink(spec, records, result, identity_map)

    def create_without_links(
        self,
        spec: CollectionSpec,
        records: List[Record],
        attachment_fields: Dict[str, AttachmentCardinality],
        result: TransferResult,
        identity_map: IdentityMap
    ) -> None:
        """Phase 1: create records with the self-reference stripped."""
        def handle(record: Record) -> str:
            return self.transfer_record(
                spec,
                record,
                attachment_fields,
                result,
                strip_fields=(spec.self_reference_field,),
                on_created=lambda destination_id: identity_map.add(record.id, destination_id),
            )

        self._run_batches(spec, records, result, handle)
        logger.info(f"Mapped {len(identity_map)}/{len(records)} {spec.name} ids")

    def relink(
        self,
        spec: CollectionSpec,
        records: List[Record],
        result: TransferResult,
        identity_map: IdentityMap
    ) -> None:
        """Phase 2: point each created record at its created parent."""
        field_name = spec.self_reference_field

        for record in records:
            value = record.get(field_name)
            parent_ids = reference_ids(value)
            if not parent_ids:
                continue

            new_id = identity_map.get(record.id)
            if new_id is None:
                result.links_dropped += 1
                result.add_error(
                    "Record was not created, link dropped",
                    record_id=record.id,
                    field_name=field_name,
                    stage="relink",
                )
                logger.error(f"Dropping link of {spec.name}/{record.id}: record was not created")
                continue

            missing = [parent_id for parent_id in parent_ids if parent_id not in identity_map]
            if missing:
                result.links_dropped += 1
                result.add_error(
                    f"Parent {', '.join(missing)} not in identity map, link dropped",
                    record_id=record.id,
                    field_name=field_name,
                    stage="relink",
                )
                logger.error(
                    f"Dropping link of {spec.name}/{record.id}: parent "
                    f"{', '.join(missing)} was not created"
                )
                continue

            mapped = [identity_map.get(parent_id) for parent_id in parent_ids]
            new_value = mapped[0] if isinstance(value, str) else mapped

            try:
                self.destination.update_record(spec.name, new_id, {field_name: new_value})
                result.links_updated += 1
                logger.debug(f"Linked {spec.name}/{new_id} '{field_name}' -> {new_value}")
            except AuthenticationError:
                raise
            except Exception as e:
                result.links_failed += 1
                result.add_error(e, record_id=record.id, field_name=field_name, stage="relink")
                logger.error(f"Failed to relink {spec.name}/{record.id} ({new_id}): {e}")

        logger.info(
            f"Relinked {result.links_updated} {spec.name} records, "
            f"{result.links_dropped} links dropped, {result.links_failed} failed"
        )
