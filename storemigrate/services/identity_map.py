"""Source to destination record id translation."""

from typing import Dict, Iterator, Optional, Tuple


class IdentityMap:
    """
    Maps source record ids to the ids the destination assigned.

    Scoped to a single collection transfer. A source id can be added
    only once; destination ids are added only after their create call
    has returned.
    """

    def __init__(self, collection: str):
        self.collection = collection
        self._ids: Dict[str, str] = {}

    def add(self, source_id: str, destination_id: str) -> None:
        """Register the destination id of a created record."""
        if source_id in self._ids:
            raise ValueError(
                f"Source id {source_id} already mapped in {self.collection} "
                f"(to {self._ids[source_id]})"
            )
        self._ids[source_id] = destination_id

    def get(self, source_id: str) -> Optional[str]:
        """Destination id for a source id, or None if it was never created."""
        return self._ids.get(source_id)

    def __contains__(self, source_id: object) -> bool:
        return source_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[str]:
        return iter(self._ids)

    def items(self) -> Iterator[Tuple[str, str]]:
        return iter(self._ids.items())
