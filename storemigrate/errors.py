"""
Exceptions for store migrations.

Each class corresponds to a failure tier:

- ConfigurationError, AuthenticationError: fatal, abort the run
- CollectionError: abort one collection, continue with the next
- StoreError: a single store call failed (create, update, delete)
- DownloadError, UploadError: abort one attachment or one field
"""

from typing import Any, Dict, Optional


class MigrationError(Exception):
    """Base exception for migration errors."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "type": type(self).__name__, **self.context}


class ConfigurationError(MigrationError):
    """Missing or invalid migration configuration."""
    pass


class CollectionError(MigrationError):
    """A collection could not be cleared or listed."""
    pass


class StoreError(MigrationError):
    """A request against a record store failed."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, context)
        self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.status_code is not None:
            data["status_code"] = self.status_code
        return data


class AuthenticationError(StoreError):
    """Credentials were rejected or no session could be established."""
    pass


class DownloadError(StoreError):
    """An attachment could not be retrieved from the source store."""
    pass


class UploadError(StoreError):
    """The destination store rejected an attachment upload."""
    pass
