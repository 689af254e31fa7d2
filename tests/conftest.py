"""Shared fixtures: an in-memory record store and a ready-made configuration."""

import itertools
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import pytest

from storemigrate.clients.base import BaseStoreClient
from storemigrate.errors import AuthenticationError, DownloadError, StoreError, UploadError
from storemigrate.models.migration import (
    AttachmentCardinality,
    CollectionSpec,
    MigrationConfig,
    StoreEndpoint,
)
from storemigrate.models.record import Record


class InMemoryStoreClient(BaseStoreClient):
    """
    Record store kept in dictionaries.

    Assigns fresh ids on create, keeps uploaded file bytes and logs
    every call so tests can assert on what reached the store.
    """

    def __init__(self, name: str = "store", id_prefix: str = "rec"):
        super().__init__(name)
        self.id_prefix = id_prefix
        self.records: Dict[str, List[Dict[str, Any]]] = {}
        self.files: Dict[Tuple[str, str, str], bytes] = {}
        self.calls: List[Tuple[Any, ...]] = []
        self.authenticated = False
        self.auth_count = 0

        # Failure injection
        self.reject_auth = False
        self.create_error: Optional[Callable[[Dict[str, Any]], bool]] = None
        self.update_errors: Set[str] = set()
        self.delete_errors: Set[str] = set()
        self.list_errors: Set[str] = set()
        self.download_errors: Dict[str, Exception] = {}
        self.upload_error: Optional[Exception] = None

        self._ids = itertools.count(1)
        self._clock = itertools.count(1)

    # Helpers
    def _next_timestamp(self) -> str:
        tick = next(self._clock)
        return f"2024-01-01 00:{tick // 60:02d}:{tick % 60:02d}.000Z"

    def add_record(
        self,
        collection: str,
        data: Dict[str, Any],
        record_id: Optional[str] = None,
        files: Optional[Dict[str, bytes]] = None,
    ) -> str:
        """Seed a record, optionally with file contents keyed by filename."""
        record_id = record_id or f"{self.id_prefix}{next(self._ids)}"
        stored = {
            "id": record_id,
            "collectionId": f"col_{collection}",
            "collectionName": collection,
            "created": self._next_timestamp(),
            "updated": self._next_timestamp(),
        }
        stored.update(data)
        self.records.setdefault(collection, []).append(stored)
        for filename, content in (files or {}).items():
            self.files[(collection, record_id, filename)] = content
        return record_id

    def find(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        for record in self.records.get(collection, []):
            if record["id"] == record_id:
                return record
        return None

    def all(self, collection: str) -> List[Dict[str, Any]]:
        return list(self.records.get(collection, []))

    def calls_of(self, kind: str) -> List[Tuple[Any, ...]]:
        return [call for call in self.calls if call[0] == kind]

    # BaseStoreClient
    def authenticate(self) -> None:
        self.auth_count += 1
        if self.reject_auth:
            raise AuthenticationError(f"{self.name} rejected credentials", status_code=400)
        self.authenticated = True

    def is_session_valid(self) -> bool:
        return self.authenticated

    def list_records(self, collection: str, batch_size: int = 100) -> List[Record]:
        self.calls.append(("list", collection))
        if collection in self.list_errors:
            raise StoreError(f"Cannot list {collection}", status_code=500)
        return [Record(id=r["id"], collection=collection, data=dict(r)) for r in self.all(collection)]

    def create_record(self, collection: str, data: Dict[str, Any]) -> Record:
        self.calls.append(("create", collection, dict(data)))
        if self.create_error and self.create_error(data):
            raise StoreError("Failed to create record.", status_code=400)
        record_id = self.add_record(collection, dict(data))
        return Record(id=record_id, collection=collection, data=dict(self.find(collection, record_id)))

    def update_record(self, collection: str, record_id: str, data: Dict[str, Any]) -> Record:
        self.calls.append(("update", collection, record_id, dict(data)))
        if record_id in self.update_errors:
            raise StoreError("Failed to update record.", status_code=400)
        record = self.find(collection, record_id)
        if record is None:
            raise StoreError("The requested resource wasn't found.", status_code=404)
        record.update(data)
        return Record(id=record_id, collection=collection, data=dict(record))

    def delete_record(self, collection: str, record_id: str) -> None:
        self.calls.append(("delete", collection, record_id))
        if record_id in self.delete_errors:
            raise StoreError("Failed to delete record.", status_code=400)
        self.records[collection] = [r for r in self.all(collection) if r["id"] != record_id]

    def file_url(self, collection: str, record_id: str, filename: str) -> str:
        return f"memory://{collection}/{record_id}/{filename}"

    def retrieve_attachment(
        self,
        collection: str,
        record_id: str,
        filename: str,
        timeout: Optional[float] = None
    ) -> bytes:
        self.calls.append(("download", collection, record_id, filename, timeout))
        if filename in self.download_errors:
            raise self.download_errors[filename]
        try:
            return self.files[(collection, record_id, filename)]
        except KeyError:
            raise DownloadError(f"{filename} not found", status_code=404)

    def store_attachments(
        self,
        collection: str,
        record_id: str,
        field_name: str,
        paths: List[Path],
    ) -> Record:
        names = [Path(p).name for p in paths]
        contents = [Path(p).read_bytes() for p in paths]
        self.calls.append(("upload", collection, record_id, field_name, names, contents))
        if self.upload_error is not None:
            raise self.upload_error
        record = self.find(collection, record_id)
        if record is None:
            raise UploadError("The requested resource wasn't found.", status_code=404)
        record[field_name] = names
        for name, content in zip(names, contents):
            self.files[(collection, record_id, name)] = content
        return Record(id=record_id, collection=collection, data=dict(record))


@pytest.fixture
def source() -> InMemoryStoreClient:
    client = InMemoryStoreClient("source", id_prefix="src")
    client.authenticate()
    return client


@pytest.fixture
def destination() -> InMemoryStoreClient:
    client = InMemoryStoreClient("destination", id_prefix="dst")
    client.authenticate()
    return client


@pytest.fixture
def config(tmp_path) -> MigrationConfig:
    return MigrationConfig(
        name="test-migration",
        source=StoreEndpoint(url="http://source.test", email="admin@source.test", password="secret"),
        destination=StoreEndpoint(url="http://dest.test", email="admin@dest.test", password="secret"),
        collections=[
            CollectionSpec(name="statuses"),
            CollectionSpec(name="categories", self_reference_field="parent"),
        ],
        attachment_fields={
            "image": AttachmentCardinality.SINGLE,
            "gallery": AttachmentCardinality.MULTIPLE,
        },
        staging_dir=str(tmp_path / "staging"),
        batch_size=2,
        download_timeout=5.0,
    )
