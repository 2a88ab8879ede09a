"""Translation of storage network errors into adapter errors."""

from uplink_python.errors import StorjException

from velero_tardigrade.core.exceptions import (
    NotFoundError,
    PermissionDeniedError,
    TardigradeError,
    TransientError,
)

from .network import NOT_FOUND_ERRORS, describe, is_permission_denied


def translate(
    exc: StorjException, operation: str, bucket: str, key: str = ""
) -> TardigradeError:
    """Map a network error to the adapter taxonomy.

    The caller raises the result ``from exc`` so the cause stays attached.
    Unclassified errors become TransientError so the host may retry them.
    """
    where = f"{bucket}/{key}" if key else bucket
    message = f"{operation} failed for '{where}': {describe(exc)}"

    if isinstance(exc, NOT_FOUND_ERRORS):
        return NotFoundError(message, bucket=bucket, key=key)
    if is_permission_denied(exc):
        return PermissionDeniedError(message, bucket=bucket, key=key)
    return TransientError(message, bucket=bucket, key=key)
