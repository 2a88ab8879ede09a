"""Bucket/key object store facade over the storage network.

The host constructs an ObjectStore, calls ``init`` with its configuration
mapping, and then invokes operations in any order, possibly concurrently.
Each operation opens its own project session and releases it before
returning (or, for ``get_object``, when the returned stream is closed), so
the only shared state is the root access grant set at init.
"""

import io
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import BinaryIO, Iterable, Iterator, Mapping, Optional, Union

from uplink_python.access import Access
from uplink_python.errors import StorjException
from uplink_python.upload import Upload

from velero_tardigrade.core import get_logger, get_tracer, settings
from velero_tardigrade.core.exceptions import (
    NotInitializedError,
    OperationCancelledError,
    ValidationError,
    WriteError,
)
from velero_tardigrade.schemas import ObjectStoreConfig

from .context import Context, background
from .credentials import CredentialManager, build_share_url
from .errors import translate
from .network import NOT_FOUND_ERRORS, describe, list_items, open_session
from .streams import ObjectReader

logger = get_logger(__name__)
tracer = get_tracer(__name__)

Body = Union[bytes, bytearray, BinaryIO]


@dataclass(frozen=True)
class _Ready:
    config: ObjectStoreConfig
    access: Access


class ObjectStore:
    """Object-storage operations required by the backup host."""

    def __init__(
        self,
        credentials: Optional[CredentialManager] = None,
        chunk_size: Optional[int] = None,
    ):
        """Create an uninitialized object store.

        Args:
            credentials: Manager used to parse and restrict access grants
            chunk_size: Bytes read from the source stream per upload write
        """
        self.credentials = credentials or CredentialManager()
        self.chunk_size = chunk_size or settings.upload_chunk_size
        self._state: Optional[_Ready] = None
        self._closed = False

    @contextmanager
    def _operation(self, name: str, bucket: str = "", key: str = "") -> Iterator[None]:
        logger.debug(f"objectStore.{name} called", bucket=bucket, key=key)
        with tracer.start_as_current_span(
            f"objectstore.{name}", attributes={"bucket": bucket, "key": key}
        ):
            yield

    def _ready(self) -> _Ready:
        state = self._state
        if state is None:
            if self._closed:
                raise NotInitializedError("object store is closed")
            raise NotInitializedError("object store is not initialized")
        return state

    def init(self, config: Mapping[str, str], ctx: Optional[Context] = None) -> None:
        """Prepare the store from the host's configuration mapping.

        Config keys:
            accessGrant (required): serialized access grant
            linksharingBaseURL (optional): origin used for signed URLs

        Raises:
            ConfigError: If keys are missing or unknown, or the grant is invalid
        """
        with self._operation("init"):
            store_config = ObjectStoreConfig.from_mapping(config)
            access = self.credentials.parse_root_access(store_config.access_grant)

            try:
                with open_session(access, ctx):
                    pass
            except StorjException as e:
                logger.error("Failed to open project", error=describe(e))
                raise translate(e, "init", "") from e

            self._state = _Ready(config=store_config, access=access)
            self._closed = False
            logger.info(
                "Object store initialized",
                linksharing_base_url=store_config.linksharing_base_url,
            )

    def close(self) -> None:
        """Tear the store down. Later operations raise NotInitializedError."""
        self._state = None
        self._closed = True
        logger.info("Object store closed")

    def put_object(
        self,
        bucket: str,
        key: str,
        body: Body,
        ctx: Optional[Context] = None,
    ) -> None:
        """Upload body to bucket/key.

        The upload is committed only after the whole body was copied. If the
        copy fails the upload is aborted and nothing becomes visible.

        Raises:
            WriteError: If reading the body fails
            NotFoundError: If the bucket does not exist
            PermissionDeniedError: If the grant does not allow uploads
            TransientError: On network or unclassified failures
        """
        with self._operation("put_object", bucket, key):
            state = self._ready()
            ctx = ctx or background()
            if isinstance(body, (bytes, bytearray)):
                body = io.BytesIO(body)

            try:
                with open_session(state.access, ctx) as project:
                    upload = project.upload_object(bucket, key)
                    try:
                        self._copy(body, upload, ctx)
                    except Exception as e:
                        self._abort(upload, bucket, key)
                        if isinstance(e, (StorjException, OperationCancelledError)):
                            raise
                        logger.error(
                            "Reading upload source failed",
                            bucket=bucket,
                            key=key,
                            error=str(e),
                        )
                        raise WriteError(
                            f"put_object failed for '{bucket}/{key}': "
                            f"reading source failed: {e}",
                            bucket=bucket,
                            key=key,
                        ) from e
                    ctx.check()
                    upload.commit()
            except StorjException as e:
                logger.error("Upload failed", bucket=bucket, key=key, error=describe(e))
                raise translate(e, "put_object", bucket, key) from e

    def _copy(self, body: BinaryIO, upload: Upload, ctx: Context) -> None:
        while True:
            ctx.check()
            chunk = body.read(self.chunk_size)
            if not chunk:
                return
            view = memoryview(chunk)
            while view:
                written = upload.write(bytes(view), len(view))
                view = view[written:]

    @staticmethod
    def _abort(upload: Upload, bucket: str, key: str) -> None:
        try:
            upload.abort()
        except StorjException as e:
            # The original failure is what the caller needs to see.
            logger.warning(
                "Upload abort failed", bucket=bucket, key=key, error=describe(e)
            )

    def object_exists(
        self, bucket: str, key: str, ctx: Optional[Context] = None
    ) -> bool:
        """Check whether bucket/key exists.

        A missing object or bucket yields False. Any other failure raises.
        """
        with self._operation("object_exists", bucket, key):
            state = self._ready()
            try:
                with open_session(state.access, ctx) as project:
                    project.stat_object(bucket, key)
            except NOT_FOUND_ERRORS:
                return False
            except StorjException as e:
                logger.error("Stat failed", bucket=bucket, key=key, error=describe(e))
                raise translate(e, "object_exists", bucket, key) from e
            return True

    def get_object(
        self, bucket: str, key: str, ctx: Optional[Context] = None
    ) -> ObjectReader:
        """Open bucket/key for reading.

        The returned stream reads lazily. Close it (or use it as a context
        manager) to release the underlying session.

        Raises:
            NotFoundError: If the bucket or object does not exist
        """
        with self._operation("get_object", bucket, key):
            state = self._ready()
            ctx = ctx or background()
            ctx.check()
            try:
                project = state.access.open_project()
            except StorjException as e:
                raise translate(e, "get_object", bucket, key) from e

            try:
                ctx.check()
                download = project.download_object(bucket, key)
            except StorjException as e:
                project.close()
                logger.error(
                    "Download failed", bucket=bucket, key=key, error=describe(e)
                )
                raise translate(e, "get_object", bucket, key) from e
            except OperationCancelledError:
                project.close()
                raise

            return ObjectReader(project, download, bucket, key, ctx=ctx)

    def list_objects(
        self, bucket: str, prefix: str = "", ctx: Optional[Context] = None
    ) -> list[str]:
        """List every key under prefix, descending into nested prefixes."""
        with self._operation("list_objects", bucket, prefix):
            state = self._ready()
            try:
                with open_session(state.access, ctx) as project:
                    keys = [
                        item.key
                        for item in list_items(
                            project, bucket, prefix, recursive=True, ctx=ctx
                        )
                        if not item.is_prefix
                    ]
            except StorjException as e:
                logger.error(
                    "Listing failed", bucket=bucket, prefix=prefix, error=describe(e)
                )
                raise translate(e, "list_objects", bucket, prefix) from e

            logger.debug(
                "Objects listed", bucket=bucket, prefix=prefix, object_count=len(keys)
            )
            return keys

    def list_common_prefixes(
        self,
        bucket: str,
        prefix: str,
        delimiter: str = "/",
        ctx: Optional[Context] = None,
    ) -> list[str]:
        """List the prefixes one level below prefix.

        For example, if the bucket contains the keys:
            a-prefix/foo-1/bar
            a-prefix/foo-1/baz
            a-prefix/foo-2/baz
            a-prefix/bar
            some-other-prefix/foo-3/bar
        then prefix "a-prefix/" with delimiter "/" returns
        ["a-prefix/foo-1/", "a-prefix/foo-2/"]. Object keys at that level are
        not included.
        """
        with self._operation("list_common_prefixes", bucket, prefix):
            state = self._ready()
            if not delimiter:
                raise ValidationError("delimiter must not be empty")

            try:
                with open_session(state.access, ctx) as project:
                    if delimiter == "/":
                        prefixes = [
                            item.key
                            for item in list_items(
                                project, bucket, prefix, recursive=False, ctx=ctx
                            )
                            if item.is_prefix
                        ]
                    else:
                        prefixes = _group_by_delimiter(
                            list_items(project, bucket, prefix, recursive=True, ctx=ctx),
                            prefix,
                            delimiter,
                        )
            except StorjException as e:
                logger.error(
                    "Prefix listing failed",
                    bucket=bucket,
                    prefix=prefix,
                    error=describe(e),
                )
                raise translate(e, "list_common_prefixes", bucket, prefix) from e

            logger.debug(
                "Common prefixes listed",
                bucket=bucket,
                prefix=prefix,
                prefix_count=len(prefixes),
            )
            return prefixes

    def delete_object(
        self, bucket: str, key: str, ctx: Optional[Context] = None
    ) -> None:
        """Delete bucket/key. Missing objects and buckets are not an error."""
        with self._operation("delete_object", bucket, key):
            state = self._ready()
            try:
                with open_session(state.access, ctx) as project:
                    project.delete_object(bucket, key)
            except NOT_FOUND_ERRORS:
                logger.debug("Nothing to delete", bucket=bucket, key=key)
            except StorjException as e:
                logger.error("Delete failed", bucket=bucket, key=key, error=describe(e))
                raise translate(e, "delete_object", bucket, key) from e

    def create_signed_url(self, bucket: str, key: str, ttl: timedelta) -> str:
        """Create a link-sharing URL for bucket/key that expires after ttl.

        The URL embeds a grant restricted to downloading keys under ``key``
        in ``bucket``. A non-positive ttl yields a URL that is refused.

        Raises:
            CapabilityDerivationError: If the restricted grant cannot be built
        """
        with self._operation("create_signed_url", bucket, key):
            state = self._ready()
            derived = self.credentials.derive_shareable_access(
                state.access, bucket, key, ttl
            )
            token = self.credentials.serialize(derived)
            return build_share_url(
                state.config.linksharing_base_url, token, bucket, key
            )


def _group_by_delimiter(items: Iterable, prefix: str, delimiter: str) -> list[str]:
    """Collapse recursive listing keys to their next delimiter after prefix."""
    seen: dict[str, None] = {}
    for item in items:
        rest = item.key[len(prefix):]
        index = rest.find(delimiter)
        if index >= 0:
            seen.setdefault(prefix + rest[: index + len(delimiter)], None)
    return list(seen)
