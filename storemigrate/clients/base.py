"""Base client interface for record stores."""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional
import logging

from ..models.record import Record, sort_by_creation

logger = logging.getLogger(__name__)


class BaseStoreClient(ABC):
    """
    Base class for record store clients.

    A client is bound to one store endpoint and plays either the
    source or the destination role in a migration. Every call blocks
    until the store has answered.
    """

    def __init__(self, name: str):
        """
        Initialize the client.

        Args:
            name: Role or label used in log messages (e.g. "source")
        """
        self.name = name

    @abstractmethod
    def authenticate(self) -> None:
        """
        Exchange credentials for a session.

        Raises:
            AuthenticationError: If the store rejects the credentials
        """
        pass

    @abstractmethod
    def is_session_valid(self) -> bool:
        """Check whether the current session can still be used."""
        pass

    def ensure_authenticated(self) -> None:
        """Re-authenticate if the session is missing or expired."""
        if not self.is_session_valid():
            logger.info(f"Session for {self.name} store is not valid, re-authenticating")
            self.authenticate()

    @abstractmethod
    def list_records(self, collection: str, batch_size: int = 100) -> List[Record]:
        """
        Fetch every record of a collection, oldest first.

        Args:
            collection: Collection name
            batch_size: Page size hint for paginated fetching

        Returns:
            All records of the collection
        """
        pass

    def list_ordered(self, collection: str, batch_size: int = 100) -> List[Record]:
        """Fetch every record of a collection in creation order."""
        return sort_by_creation(self.list_records(collection, batch_size=batch_size))

    @abstractmethod
    def create_record(self, collection: str, data: Dict[str, Any]) -> Record:
        """
        Create a record.

        Returns:
            The created record, carrying its store-assigned id
        """
        pass

    @abstractmethod
    def update_record(self, collection: str, record_id: str, data: Dict[str, Any]) -> Record:
        """Apply a partial update to a record."""
        pass

    @abstractmethod
    def delete_record(self, collection: str, record_id: str) -> None:
        """Delete a record."""
        pass

    @abstractmethod
    def file_url(self, collection: str, record_id: str, filename: str) -> str:
        """Address from which an attachment can be retrieved."""
        pass

    @abstractmethod
    def retrieve_attachment(
        self,
        collection: str,
        record_id: str,
        filename: str,
        timeout: Optional[float] = None
    ) -> bytes:
        """
        Download the raw bytes of one attachment.

        Raises:
            DownloadError: On timeout or a non-success response
        """
        pass

    @abstractmethod
    def store_attachments(
        self,
        collection: str,
        record_id: str,
        field_name: str,
        paths: List[Path],
    ) -> Record:
        """
        Attach staged files to a record under one field.

        Files are sent in the given order.

        Raises:
            UploadError: If the store rejects the upload
        """
        pass

    def validate_connection(self) -> bool:
        """Validate the connection to the store."""
        return True
