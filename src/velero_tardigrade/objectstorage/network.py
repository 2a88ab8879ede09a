"""Seam between the object store and the storage network client.

The network is reached through ``uplink_python``, the Python binding of the
Storj ``libuplink`` library. Access grants are macaroon based: a restriction
added with ``Access.share`` is a caveat inside the grant that the satellite
checks on every request, so the holder of a derived grant cannot remove it.
"""

import functools
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional

from uplink_python.errors import BucketNotFoundError, ObjectNotFoundError, StorjException
from uplink_python.module_classes import ListObjectsOptions, Permission, SharePrefix
from uplink_python.uplink import Uplink

from velero_tardigrade.core.exceptions import ConfigError

from .context import Context, background

NOT_FOUND_ERRORS = (ObjectNotFoundError, BucketNotFoundError)


@functools.lru_cache(maxsize=None)
def default_uplink() -> Uplink:
    """Load the native uplink library once per process.

    Raises:
        ConfigError: If the shared library cannot be loaded
    """
    try:
        return Uplink()
    except StorjException as e:
        raise ConfigError(f"storage network client unavailable: {describe(e)}") from e


def describe(exc: StorjException) -> str:
    """Render a network error with its details."""
    if exc.details:
        return f"{exc.message}: {exc.details}"
    return str(exc.message)


def is_permission_denied(exc: StorjException) -> bool:
    """Tell whether the satellite refused the request for the grant used."""
    return "permission denied" in describe(exc).lower()


def read_permission(not_after: datetime, allow_list: bool = False) -> Permission:
    """Download permission, optionally with list, valid until not_after."""
    return Permission(
        allow_download=True,
        allow_list=allow_list,
        not_after=int(not_after.timestamp()),
    )


def share_prefix(bucket: str, prefix: str) -> SharePrefix:
    return SharePrefix(bucket=bucket, prefix=prefix)


@contextmanager
def open_session(access, ctx: Optional[Context] = None) -> Iterator:
    """Open a project on access and close it on every exit path."""
    ctx = ctx or background()
    ctx.check()
    project = access.open_project()
    try:
        yield project
    finally:
        project.close()


def list_items(
    project, bucket: str, prefix: str, recursive: bool, ctx: Optional[Context] = None
) -> Iterator:
    """Yield listing entries, checking ctx between them.

    Non-recursive listings group on "/" and report each group as an entry
    with ``is_prefix`` set.
    """
    ctx = ctx or background()
    ctx.check()
    options = ListObjectsOptions(prefix=prefix, recursive=recursive)
    for item in project.list_objects(bucket, options):
        ctx.check()
        yield item
