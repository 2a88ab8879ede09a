"""Tests for the object store facade on the in-memory network."""

import io
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from unittest.mock import patch

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from uplink_python.errors import BucketNotFoundError, ObjectNotFoundError, StorjException

from velero_tardigrade.core.exceptions import (
    ConfigError,
    InvalidCredentialError,
    NotFoundError,
    NotInitializedError,
    OperationCancelledError,
    PermissionDeniedError,
    TransientError,
    ValidationError,
    WriteError,
)
from velero_tardigrade.objectstorage import Context, ObjectReader, object_store

from conftest import make_store, root_access
from memory_network import MemoryProject


class FailingStream(io.RawIOBase):
    """Source stream that breaks after the first read."""

    def __init__(self):
        self.reads = 0

    def readable(self):
        return True

    def read(self, size=-1):
        self.reads += 1
        if self.reads > 1:
            raise OSError("disk went away")
        return b"partial data"


class TestLifecycle:
    """Test init, close and the not-initialized guard."""

    def test_operations_before_init_fail(self, satellite):
        """Test every operation refuses to run without a grant."""
        store = make_store(satellite)

        with pytest.raises(NotInitializedError, match="not initialized"):
            store.put_object("bucket", "key", b"data")
        with pytest.raises(NotInitializedError):
            store.object_exists("bucket", "key")
        with pytest.raises(NotInitializedError):
            store.get_object("bucket", "key")
        with pytest.raises(NotInitializedError):
            store.list_objects("bucket", "")
        with pytest.raises(NotInitializedError):
            store.list_common_prefixes("bucket", "", "/")
        with pytest.raises(NotInitializedError):
            store.delete_object("bucket", "key")
        with pytest.raises(NotInitializedError):
            store.create_signed_url("bucket", "key", ttl=timedelta(minutes=1))
        assert satellite.opened_projects == 0

    def test_uninitialized_check_precedes_argument_validation(self, satellite):
        """Test an empty delimiter on an uninitialized store reports the state."""
        store = make_store(satellite)

        with pytest.raises(NotInitializedError):
            store.list_common_prefixes("bucket", "", "")

    def test_init_rejects_unknown_keys(self, satellite, serialized_root_access):
        """Test config validation happens before any network contact."""
        store = make_store(satellite)

        with pytest.raises(ConfigError, match="bucket"):
            store.init({"accessGrant": serialized_root_access, "bucket": "b"})

        assert satellite.opened_projects == 0

    def test_init_rejects_invalid_grant(self, satellite):
        """Test an unparsable grant fails init without network contact."""
        store = make_store(satellite)

        with pytest.raises(InvalidCredentialError):
            store.init({"accessGrant": "garbage"})

        assert satellite.opened_projects == 0
        with pytest.raises(NotInitializedError):
            store.object_exists("bucket", "key")

    def test_init_cancelled(self, satellite, serialized_root_access):
        """Test a cancelled context stops init."""
        store = make_store(satellite)
        ctx = Context()
        ctx.cancel()

        with pytest.raises(OperationCancelledError):
            store.init({"accessGrant": serialized_root_access}, ctx=ctx)

        with pytest.raises(NotInitializedError):
            store.object_exists("bucket", "key")

    def test_init_opens_and_releases_a_project(self, satellite, serialized_root_access):
        """Test init proves the grant by opening a session and closing it."""
        store = make_store(satellite)

        store.init({"accessGrant": serialized_root_access})

        assert satellite.opened_projects == 1
        assert satellite.open_projects == 0

    def test_init_project_failure(self, satellite, serialized_root_access):
        """Test a grant the network refuses leaves the store uninitialized."""
        store = make_store(satellite)

        with patch.object(
            MemoryProject,
            "__init__",
            side_effect=StorjException("internal error", 2, "dial tcp: timeout"),
        ):
            with pytest.raises(TransientError, match="dial tcp"):
                store.init({"accessGrant": serialized_root_access})

        with pytest.raises(NotInitializedError):
            store.object_exists("bucket", "key")

    def test_close_is_terminal(self, store):
        """Test operations fail after close."""
        store.close()
        store.close()

        with pytest.raises(NotInitializedError, match="closed"):
            store.object_exists("bucket", "key")


class TestObjectOperations:
    """Test object operations on the in-memory network."""

    @pytest.fixture(autouse=True)
    def setup(self, satellite, store):
        """Set up test environment."""
        self.satellite = satellite
        self.store = store

    def test_put_then_get(self):
        """Test a put object reads back byte for byte."""
        payload = bytes(range(256)) * 4

        self.store.put_object("bucket", "object", payload)

        with self.store.get_object("bucket", "object") as reader:
            assert reader.read() == payload

    def test_put_file_like_body(self, serialized_root_access):
        """Test put accepts a binary stream read in chunks."""
        store = make_store(self.satellite, chunk_size=3)

        store.init({"accessGrant": serialized_root_access})
        store.put_object("bucket", "dir/object", io.BytesIO(b"streamed content"))

        assert self.satellite.read("bucket", "dir/object") == b"streamed content"

    def test_put_empty_object(self):
        """Test zero-length objects are stored."""
        self.store.put_object("bucket", "empty", b"")

        assert self.store.object_exists("bucket", "empty") is True
        with self.store.get_object("bucket", "empty") as reader:
            assert reader.read() == b""

    def test_put_overwrites(self):
        """Test a second put replaces the content."""
        self.store.put_object("bucket", "object", b"old")
        self.store.put_object("bucket", "object", b"new")

        with self.store.get_object("bucket", "object") as reader:
            assert reader.read() == b"new"

    def test_put_source_failure_aborts(self):
        """Test a failing source stream leaves no object behind."""
        with pytest.raises(WriteError) as exc_info:
            self.store.put_object("bucket", "broken", FailingStream())

        assert isinstance(exc_info.value.__cause__, OSError)
        assert exc_info.value.key == "broken"
        assert self.store.object_exists("bucket", "broken") is False
        assert self.satellite.open_projects == 0

    def test_put_missing_bucket(self):
        """Test uploading into a missing bucket is a not-found error."""
        with pytest.raises(NotFoundError) as exc_info:
            self.store.put_object("no-such-bucket", "object", b"data")

        assert isinstance(exc_info.value.__cause__, BucketNotFoundError)

    def test_put_cancelled(self):
        """Test a cancelled context stops the upload."""
        ctx = Context()
        ctx.cancel()

        with pytest.raises(OperationCancelledError):
            self.store.put_object("bucket", "object", b"data", ctx=ctx)

        assert self.store.object_exists("bucket", "object") is False

    def test_exists(self):
        """Test existence checks for present and absent keys."""
        assert self.store.object_exists("bucket", "object") is False

        self.store.put_object("bucket", "object", b"data")

        assert self.store.object_exists("bucket", "object") is True
        assert self.store.object_exists("bucket", "object-2") is False

    def test_exists_missing_bucket(self):
        """Test a never-created bucket reports absence, not an error."""
        assert self.store.object_exists("never-created", "object") is False

    def test_get_missing_object(self):
        """Test reading a missing key raises NotFoundError."""
        with pytest.raises(NotFoundError) as exc_info:
            self.store.get_object("bucket", "missing")

        assert exc_info.value.bucket == "bucket"
        assert isinstance(exc_info.value.__cause__, ObjectNotFoundError)

    def test_get_is_lazy_and_releases_project(self):
        """Test partial reads and that close releases the session once."""
        self.store.put_object("bucket", "object", b"0123456789")

        reader = self.store.get_object("bucket", "object")
        assert isinstance(reader, ObjectReader)
        assert self.satellite.open_projects == 1
        assert reader.size == 10
        assert reader.read(4) == b"0123"

        reader.close()
        reader.close()

        assert reader.closed is True
        assert self.satellite.open_projects == 0
        with pytest.raises(ValueError):
            reader.read()

    def test_get_reads_in_chunks_up_to_size(self):
        """Test reads never ask the network for bytes past the end."""
        self.store.put_object("bucket", "object", b"abcdefg")

        with self.store.get_object("bucket", "object") as reader:
            assert reader.read(3) == b"abc"
            assert reader.read(10) == b"defg"
            assert reader.read(1) == b""

    def test_get_failure_releases_project(self):
        """Test the session is closed when the download cannot start."""
        with pytest.raises(NotFoundError):
            self.store.get_object("bucket", "missing")

        assert self.satellite.opened_projects == 2
        assert self.satellite.open_projects == 0

    def test_delete(self):
        """Test delete removes the object."""
        self.store.put_object("bucket", "object", b"data")

        self.store.delete_object("bucket", "object")

        assert self.store.object_exists("bucket", "object") is False

    def test_delete_is_idempotent(self):
        """Test deleting missing keys and buckets succeeds."""
        self.store.delete_object("bucket", "missing")
        self.store.delete_object("bucket", "missing")
        self.store.delete_object("no-such-bucket", "missing")

    def test_restricted_grant_is_refused(self):
        """Test a grant without upload permission cannot write."""
        read_only = self.store.credentials.derive_shareable_access(
            root_access(self.satellite), "bucket", "", timedelta(minutes=5)
        )
        store = make_store(self.satellite)
        store.init({"accessGrant": read_only.serialize()})

        with pytest.raises(PermissionDeniedError):
            store.put_object("bucket", "object", b"data")
        with pytest.raises(PermissionDeniedError):
            store.delete_object("bucket", "object")
        with pytest.raises(PermissionDeniedError):
            store.object_exists("other-bucket", "object")

    def test_network_failures_are_transient(self):
        """Test unclassified network errors are marked retryable."""
        error = StorjException("internal error", 2, "connection reset by peer")
        with patch.object(MemoryProject, "stat_object", side_effect=error):
            with pytest.raises(TransientError) as exc_info:
                self.store.object_exists("bucket", "object")

        assert exc_info.value.retryable is True
        assert exc_info.value.__cause__ is error
        assert self.satellite.open_projects == 0


class TestConcurrency:
    """Test concurrent calls on one store."""

    def test_concurrent_operations(self, satellite, store):
        """Test interleaved put, get, list and delete from many threads."""
        keys = [f"dir/object-{i}" for i in range(24)]

        def round_trip(key):
            payload = key.encode("utf-8") * 100
            store.put_object("bucket", key, payload)
            with store.get_object("bucket", key) as reader:
                read_back = reader.read()
            listed = key in store.list_objects("bucket", "dir/")
            exists = store.object_exists("bucket", key)
            store.delete_object("bucket", key)
            return read_back == payload, listed, exists

        with ThreadPoolExecutor(max_workers=8) as executor:
            results = dict(zip(keys, executor.map(round_trip, keys)))

        assert all(result == (True, True, True) for result in results.values())
        assert store.list_objects("bucket", "dir/") == []
        assert satellite.open_projects == 0
        assert satellite.opened_projects == 1 + 5 * len(keys) + 1


class TestTracing:
    """Test spans emitted per operation."""

    def test_operations_run_in_spans(self, store):
        """Test each facade call produces an objectstore span."""
        exporter = InMemorySpanExporter()
        provider = TracerProvider()
        provider.add_span_processor(SimpleSpanProcessor(exporter))

        with patch.object(object_store, "tracer", provider.get_tracer(__name__)):
            store.put_object("bucket", "object", b"data")
            store.object_exists("bucket", "object")
            with pytest.raises(NotFoundError):
                store.get_object("bucket", "missing")

        spans = exporter.get_finished_spans()
        assert [span.name for span in spans] == [
            "objectstore.put_object",
            "objectstore.object_exists",
            "objectstore.get_object",
        ]
        assert spans[0].attributes["key"] == "object"
        assert spans[2].status.is_ok is False


class TestValidation:
    """Test argument validation."""

    def test_empty_delimiter(self, store):
        """Test an empty delimiter is rejected on a ready store."""
        with pytest.raises(ValidationError):
            store.list_common_prefixes("bucket", "", "")
