"""Test configuration and fixtures for velero-tardigrade."""

from unittest.mock import patch
from urllib.parse import unquote

import pytest

from velero_tardigrade.objectstorage import CredentialManager, ObjectStore

from memory_network import MemoryAccess, MemorySatellite, MemoryUplink

LISTING_KEYS = [
    "a-prefix/foo-1/bar",
    "a-prefix/foo-1/baz",
    "a-prefix/foo-2/baz",
    "a-prefix/bar",
    "some-other-prefix/foo-3/bar",
]


def root_access(satellite: MemorySatellite) -> MemoryAccess:
    """Unrestricted grant on the in-memory network."""
    return MemoryAccess(satellite, ())


def make_store(satellite: MemorySatellite, **kwargs) -> ObjectStore:
    """Uninitialized store wired to the in-memory network."""
    credentials = CredentialManager(uplink=MemoryUplink(satellite))
    return ObjectStore(credentials=credentials, **kwargs)


def resolve_share_url(url: str, base_url: str, satellite: MemorySatellite) -> bytes:
    """Fetch the bytes behind a share URL the way a link-sharing front-end does."""
    assert url.startswith(base_url.rstrip("/") + "/")
    path = url[len(base_url.rstrip("/")) + 1 :]
    token, bucket, key = (unquote(segment) for segment in path.split("/"))

    project = MemoryUplink(satellite).parse_access(token).open_project()
    try:
        download = project.download_object(bucket, key)
        data, _ = download.read(download.file_size())
        download.close()
        return data
    finally:
        project.close()


@pytest.fixture
def satellite():
    """In-memory network with one empty bucket."""
    network = MemorySatellite()
    network.create_bucket("bucket")
    return network


@pytest.fixture
def serialized_root_access(satellite):
    """Serialized unrestricted grant."""
    return root_access(satellite).serialize()


@pytest.fixture
def store(satellite, serialized_root_access):
    """Initialized store on the in-memory network."""
    object_store = make_store(satellite)
    object_store.init({"accessGrant": serialized_root_access})
    return object_store


@pytest.fixture
def default_uplink(satellite):
    """Route stores built without an explicit client to the in-memory network."""
    with patch(
        "velero_tardigrade.objectstorage.credentials.default_uplink",
        return_value=MemoryUplink(satellite),
    ) as mock_default:
        yield mock_default


@pytest.fixture
def temp_dir(tmp_path):
    """Create a temporary directory for testing."""
    return tmp_path
