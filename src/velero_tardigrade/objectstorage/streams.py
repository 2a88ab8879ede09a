"""Readable object streams returned by get_object."""

import io
from typing import Optional

from uplink_python.download import Download
from uplink_python.errors import StorjException
from uplink_python.project import Project

from velero_tardigrade.core import get_logger

from .context import Context, background
from .errors import translate

logger = get_logger(__name__)


class ObjectReader(io.RawIOBase):
    """Lazy binary stream over a download.

    The reader owns the project the download was opened on. Closing it
    releases the download and then the project, exactly once, however much
    of the object was read.
    """

    def __init__(
        self,
        project: Project,
        download: Download,
        bucket: str,
        key: str,
        ctx: Optional[Context] = None,
    ):
        super().__init__()
        self._project = project
        self._download = download
        self._ctx = ctx or background()
        self.bucket = bucket
        self.key = key
        self._size: Optional[int] = None
        self._position = 0

    @property
    def size(self) -> int:
        if self._size is None:
            try:
                self._size = self._download.file_size()
            except StorjException as e:
                raise translate(e, "stat", self.bucket, self.key) from e
        return self._size

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        if self.closed:
            raise ValueError("I/O operation on closed object stream")
        view = memoryview(buffer).cast("B")
        # Reading past the end is an error in libuplink, so stop at the size.
        wanted = min(len(view), self.size - self._position)
        if wanted <= 0:
            return 0

        self._ctx.check()
        try:
            data, count = self._download.read(wanted)
        except StorjException as e:
            raise translate(e, "read", self.bucket, self.key) from e
        view[:count] = data[:count]
        self._position += count
        return count

    def close(self) -> None:
        if self.closed:
            return
        try:
            self._download.close()
        finally:
            self._project.close()
            super().close()
            logger.debug("Object stream closed", bucket=self.bucket, key=self.key)
