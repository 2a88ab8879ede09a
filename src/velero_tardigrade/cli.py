"""Command-line interface for velero-tardigrade.

This module exposes the object store adapter to operators, mainly to check a
grant and a bucket layout by hand before handing them to the backup host.

Commands:
    - grant: Request a root access grant from a satellite
    - put / get / exists / rm: Single object operations
    - ls: List every key under a prefix
    - prefixes: List the common prefixes one level below a prefix
    - share: Create a read-only link-sharing URL

Paths use the form sj://bucket/key. The access grant is read from
--access-grant or the VELERO_TARDIGRADE_ACCESS_GRANT environment variable.
"""

import shutil
from datetime import timedelta
from typing import Annotated, NoReturn, Optional
from urllib.parse import urlparse

import typer

from . import __version__
from .core.exceptions import TardigradeError, ValidationError
from .objectstorage import Context, CredentialManager, ObjectStore
from .schemas import DEFAULT_LINKSHARING_BASE_URL

app = typer.Typer(
    name="velero-tardigrade",
    help="Object store adapter for a capability-secured storage network.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Display version information."""
    if value:
        typer.echo(f"velero-tardigrade {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option("--version", callback=version_callback, help="Show version."),
    ] = None,
) -> None:
    """
    velero-tardigrade: bucket/key object store over access grants.
    """
    pass


AccessGrantOption = Annotated[
    str,
    typer.Option(
        "--access-grant",
        envvar="VELERO_TARDIGRADE_ACCESS_GRANT",
        help="Serialized access grant",
        show_default=False,
    ),
]

TimeoutOption = Annotated[
    Optional[float],
    typer.Option("--timeout", help="Operation timeout in seconds"),
]


def parse_sj_path(path: str, require_key: bool = False) -> tuple[str, str]:
    """Parse sj://bucket/key into bucket and key components.

    Raises:
        ValidationError: If the path format is invalid
    """
    if not path.startswith("sj://"):
        raise ValidationError(f"Path must start with 'sj://': {path}")

    parsed = urlparse(path)
    bucket = parsed.netloc
    key = parsed.path.lstrip("/")
    if not bucket:
        raise ValidationError(f"Invalid path, missing bucket: {path}")
    if require_key and not key:
        raise ValidationError(f"Invalid path, missing object key: {path}")
    return bucket, key


def _open_store(
    access_grant: str, linksharing_base_url: Optional[str] = None
) -> ObjectStore:
    config = {"accessGrant": access_grant}
    if linksharing_base_url:
        config["linksharingBaseURL"] = linksharing_base_url
    store = ObjectStore()
    store.init(config)
    return store


def _context(timeout: Optional[float]) -> Context:
    return Context(timeout=timeout)


def _fail(error: Exception) -> NoReturn:
    typer.echo(f"Error: {error}", err=True)
    raise typer.Exit(1)


@app.command("grant")
def grant_cmd(
    satellite: Annotated[
        str, typer.Option("--satellite", help="Satellite address, id@host:port")
    ],
    api_key: Annotated[str, typer.Option("--api-key", help="Project API key")],
    passphrase: Annotated[
        str,
        typer.Option(
            "--passphrase",
            prompt=True,
            hide_input=True,
            help="Encryption passphrase",
        ),
    ],
) -> None:
    """
    Request a root access grant from a satellite and print it.

    Example:
        velero-tardigrade grant --satellite 12Ex...@us1.storj.io:7777 \
            --api-key KEY
    """
    credentials = CredentialManager()
    try:
        access = credentials.request_root_access(satellite, api_key, passphrase)
        typer.echo(credentials.serialize(access))
    except TardigradeError as e:
        _fail(e)


@app.command("put")
def put_cmd(
    path: Annotated[str, typer.Argument(help="Destination sj://bucket/key")],
    source: Annotated[
        str, typer.Argument(help="Local file to upload, '-' for stdin")
    ] = "-",
    access_grant: AccessGrantOption = "",
    timeout: TimeoutOption = None,
) -> None:
    """
    Upload a local file or stdin to an object.
    """
    try:
        bucket, key = parse_sj_path(path, require_key=True)
        store = _open_store(access_grant)
        if source == "-":
            stdin = typer.get_binary_stream("stdin")
            store.put_object(bucket, key, stdin, ctx=_context(timeout))
        else:
            with open(source, "rb") as body:
                store.put_object(bucket, key, body, ctx=_context(timeout))
    except (TardigradeError, OSError) as e:
        _fail(e)

    typer.echo(f"Uploaded {path}", err=True)


@app.command("get")
def get_cmd(
    path: Annotated[str, typer.Argument(help="Source sj://bucket/key")],
    destination: Annotated[
        str, typer.Argument(help="Local file to write, '-' for stdout")
    ] = "-",
    access_grant: AccessGrantOption = "",
    timeout: TimeoutOption = None,
) -> None:
    """
    Download an object to a local file or stdout.
    """
    try:
        bucket, key = parse_sj_path(path, require_key=True)
        store = _open_store(access_grant)
        with store.get_object(bucket, key, ctx=_context(timeout)) as reader:
            if destination == "-":
                shutil.copyfileobj(reader, typer.get_binary_stream("stdout"))
            else:
                with open(destination, "wb") as out:
                    shutil.copyfileobj(reader, out)
    except (TardigradeError, OSError) as e:
        _fail(e)


@app.command("exists")
def exists_cmd(
    path: Annotated[str, typer.Argument(help="Object sj://bucket/key")],
    access_grant: AccessGrantOption = "",
    timeout: TimeoutOption = None,
) -> None:
    """
    Check whether an object exists. Exits with 1 when it does not.
    """
    try:
        bucket, key = parse_sj_path(path, require_key=True)
        store = _open_store(access_grant)
        found = store.object_exists(bucket, key, ctx=_context(timeout))
    except TardigradeError as e:
        _fail(e)

    if not found:
        typer.echo(f"✗ Not found: {path}", err=True)
        raise typer.Exit(1)
    typer.echo(f"✓ Exists: {path}")


@app.command("ls")
def ls_cmd(
    path: Annotated[str, typer.Argument(help="Prefix sj://bucket/prefix")],
    access_grant: AccessGrantOption = "",
    timeout: TimeoutOption = None,
) -> None:
    """
    List every object key under a prefix, recursively.
    """
    try:
        bucket, prefix = parse_sj_path(path)
        store = _open_store(access_grant)
        keys = store.list_objects(bucket, prefix, ctx=_context(timeout))
    except TardigradeError as e:
        _fail(e)

    for key in keys:
        typer.echo(key)


@app.command("prefixes")
def prefixes_cmd(
    path: Annotated[str, typer.Argument(help="Prefix sj://bucket/prefix")],
    delimiter: Annotated[
        str, typer.Option("--delimiter", help="Grouping delimiter")
    ] = "/",
    access_grant: AccessGrantOption = "",
    timeout: TimeoutOption = None,
) -> None:
    """
    List the common prefixes one level below a prefix.
    """
    try:
        bucket, prefix = parse_sj_path(path)
        store = _open_store(access_grant)
        prefixes = store.list_common_prefixes(
            bucket, prefix, delimiter, ctx=_context(timeout)
        )
    except TardigradeError as e:
        _fail(e)

    for prefix in prefixes:
        typer.echo(prefix)


@app.command("rm")
def rm_cmd(
    path: Annotated[str, typer.Argument(help="Object sj://bucket/key")],
    access_grant: AccessGrantOption = "",
    timeout: TimeoutOption = None,
) -> None:
    """
    Delete an object. Missing objects are not an error.
    """
    try:
        bucket, key = parse_sj_path(path, require_key=True)
        store = _open_store(access_grant)
        store.delete_object(bucket, key, ctx=_context(timeout))
    except TardigradeError as e:
        _fail(e)

    typer.echo(f"Deleted {path}", err=True)


@app.command("share")
def share_cmd(
    path: Annotated[str, typer.Argument(help="Object sj://bucket/key")],
    ttl: Annotated[
        int, typer.Option("--ttl", help="Seconds until the URL expires")
    ] = 3600,
    linksharing_base_url: Annotated[
        str,
        typer.Option("--linksharing-base-url", help="Link-sharing front-end origin"),
    ] = DEFAULT_LINKSHARING_BASE_URL,
    access_grant: AccessGrantOption = "",
) -> None:
    """
    Create a read-only URL for an object.

    Example:
        velero-tardigrade share sj://backups/cluster/backup.tar.gz --ttl 600
    """
    try:
        bucket, key = parse_sj_path(path, require_key=True)
        store = _open_store(access_grant, linksharing_base_url)
        url = store.create_signed_url(bucket, key, timedelta(seconds=ttl))
    except TardigradeError as e:
        _fail(e)

    typer.echo(url)


if __name__ == "__main__":
    app()
