"""Object store adapter for the storage network."""

from .context import Context, background
from .credentials import CredentialManager, build_share_url
from .object_store import ObjectStore
from .streams import ObjectReader

__all__ = [
    "Context",
    "CredentialManager",
    "ObjectReader",
    "ObjectStore",
    "background",
    "build_share_url",
]
