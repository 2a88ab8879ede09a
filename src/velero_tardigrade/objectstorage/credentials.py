"""Derivation of narrowly scoped access grants for shareable URLs.

The root access grant handed to the adapter can usually read, write, list
and delete across a whole project. Signed URLs must not leak that power, so
each URL carries its own grant restricted at derivation time to:

    - download only (list only when explicitly enabled),
    - exactly one bucket and key prefix,
    - a validity window ending at now + ttl.

The restriction is a caveat in the derived grant and the satellite enforces
it. A ttl of zero or less is accepted; the resulting grant is already
expired and the network refuses it when the URL is used.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
from urllib.parse import quote

from uplink_python.access import Access
from uplink_python.errors import StorjException
from uplink_python.uplink import Uplink

from velero_tardigrade.core import get_logger
from velero_tardigrade.core.exceptions import (
    CapabilityDerivationError,
    InvalidCredentialError,
    SerializationError,
)

from .network import default_uplink, describe, read_permission, share_prefix

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CredentialManager:
    """Parses root grants and derives restricted grants from them."""

    def __init__(
        self,
        uplink: Optional[Uplink] = None,
        allow_list_on_share: bool = False,
        now: Callable[[], datetime] = _utcnow,
    ):
        """Initialize the credential manager.

        Args:
            uplink: Network client, loaded on first use when omitted
            allow_list_on_share: Also grant list on shared prefixes, for
                front-ends that browse directories instead of fetching one key
            now: Clock used to compute expiry
        """
        self._uplink = uplink
        self.allow_list_on_share = allow_list_on_share
        self._now = now

    @property
    def uplink(self) -> Uplink:
        if self._uplink is None:
            self._uplink = default_uplink()
        return self._uplink

    def parse_root_access(self, serialized: str) -> Access:
        """Parse a serialized root access grant. Does not contact the network.

        Raises:
            InvalidCredentialError: If the grant is malformed
        """
        uplink = self.uplink
        try:
            access = uplink.parse_access(serialized)
        except StorjException as e:
            raise InvalidCredentialError(
                f"invalid access grant: {describe(e)}"
            ) from e

        logger.debug("Root access parsed")
        return access

    def request_root_access(self, satellite: str, api_key: str, passphrase: str) -> Access:
        """Request an access grant from a satellite with an API key.

        Raises:
            InvalidCredentialError: If the satellite refuses the request
        """
        uplink = self.uplink
        try:
            access = uplink.request_access_with_passphrase(satellite, api_key, passphrase)
        except StorjException as e:
            logger.error("Access request failed", satellite=satellite, error=describe(e))
            raise InvalidCredentialError(
                f"access request to {satellite} failed: {describe(e)}"
            ) from e

        logger.info("Root access requested", satellite=satellite)
        return access

    def derive_shareable_access(
        self,
        root: Access,
        bucket: str,
        key_prefix: str,
        ttl: timedelta,
    ) -> Access:
        """Derive a read-only grant for one bucket and prefix, valid for ttl.

        Raises:
            CapabilityDerivationError: If the restriction cannot be built
        """
        if not bucket:
            raise CapabilityDerivationError("bucket is required to share access")

        not_after = self._now() + ttl
        permission = read_permission(not_after, allow_list=self.allow_list_on_share)

        try:
            derived = root.share(permission, [share_prefix(bucket, key_prefix)])
        except StorjException as e:
            logger.error(
                "Access derivation failed",
                bucket=bucket,
                prefix=key_prefix,
                error=describe(e),
            )
            raise CapabilityDerivationError(
                f"failed to restrict access to {bucket}/{key_prefix}: {describe(e)}"
            ) from e

        logger.debug(
            "Shareable access derived",
            bucket=bucket,
            prefix=key_prefix,
            not_after=not_after.isoformat(),
        )
        return derived

    def serialize(self, access: Access) -> str:
        """Render an access grant as a token.

        Raises:
            SerializationError: If the grant cannot be serialized
        """
        try:
            return access.serialize()
        except StorjException as e:
            raise SerializationError(
                f"failed to serialize access grant: {describe(e)}"
            ) from e


def build_share_url(base_url: str, token: str, bucket: str, key: str) -> str:
    """Compose ``base_url/token/bucket/key`` with every segment escaped.

    Each segment is escaped on its own, "/" included, so the URL always has
    exactly three path segments below ``base_url``.
    """
    segments = [quote(segment, safe="") for segment in (token, bucket, key)]
    return "/".join([base_url.rstrip("/")] + segments)
