"""Record store clients."""

from .base import BaseStoreClient
from .pocketbase_client import PocketBaseClient

__all__ = [
    "BaseStoreClient",
    "PocketBaseClient",
]
