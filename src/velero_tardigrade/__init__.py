"""Object store adapter for a capability-secured storage network.

This package lets a backup/restore host treat the storage network as an
ordinary bucket/key object store. It validates the host configuration,
holds the root access grant, runs object operations through short-lived
project sessions, and derives narrowly scoped grants for shareable
read-only URLs.

Recommended Usage:
    >>> from velero_tardigrade import ObjectStore
    >>> store = ObjectStore()
    >>> store.init({"accessGrant": serialized_grant})
    >>> store.put_object("backups", "cluster/backup.tar.gz", stream)
    >>> store.list_common_prefixes("backups", "cluster/", "/")

Cancellation:
    Every operation accepts a context that can be cancelled or carry a
    deadline:

    >>> from velero_tardigrade import Context
    >>> store.list_objects("backups", "cluster/", ctx=Context(timeout=30))
"""

__version__ = "0.1.0"

from .objectstorage import (
    Context,
    CredentialManager,
    ObjectReader,
    ObjectStore,
    build_share_url,
)
from .schemas import DEFAULT_LINKSHARING_BASE_URL, ObjectStoreConfig

__all__ = [
    # Configuration
    "DEFAULT_LINKSHARING_BASE_URL",
    "ObjectStoreConfig",
    # Adapter
    "Context",
    "CredentialManager",
    "ObjectReader",
    "ObjectStore",
    "build_share_url",
]
