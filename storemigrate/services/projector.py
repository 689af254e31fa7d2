"""Field projection of source records into create payloads."""

from typing import Any, Dict, Iterable, List

from ..models.record import SERVER_MANAGED_FIELDS, Record


def project_record(
    record: Record,
    attachment_fields: Iterable[str] = (),
    strip_fields: Iterable[str] = ()
) -> Dict[str, Any]:
    """
    Build the payload used to re-create a record on the destination.

    Server-managed fields and attachment fields are dropped, as is
    anything in strip_fields. Every other field is copied unchanged,
    in source order. The source record is not modified.
    """
    excluded = set(SERVER_MANAGED_FIELDS)
    excluded.update(attachment_fields)
    excluded.update(strip_fields)
    return {name: value for name, value in record.data.items() if name not in excluded}


def attachment_names(value: Any) -> List[str]:
    """Filenames referenced by an attachment field value, in order."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value else []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if v]
    return []
