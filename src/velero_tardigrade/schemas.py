"""Configuration schemas for the object store adapter."""

from typing import Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from velero_tardigrade.core.exceptions import ConfigError

DEFAULT_LINKSHARING_BASE_URL = "https://link.tardigradeshare.io"


class ObjectStoreConfig(BaseModel):
    """Configuration handed to the adapter by the host at init.

    Keys use the host's camelCase names. Unknown keys are rejected.
    """

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    access_grant: str = Field(
        ..., alias="accessGrant", min_length=1, description="Serialized access grant"
    )
    linksharing_base_url: str = Field(
        DEFAULT_LINKSHARING_BASE_URL,
        alias="linksharingBaseURL",
        min_length=1,
        description="Origin of the link-sharing front-end for signed URLs",
    )

    @classmethod
    def from_mapping(cls, config: Mapping[str, str]) -> "ObjectStoreConfig":
        """Validate a host configuration mapping.

        Raises:
            ConfigError: If accessGrant is missing or an unknown key is present
        """
        unknown = sorted(set(config) - {"accessGrant", "linksharingBaseURL"})
        if unknown:
            raise ConfigError(f"unknown configuration keys: {', '.join(unknown)}")
        if not config.get("accessGrant"):
            raise ConfigError("missing required configuration key: accessGrant")
        try:
            return cls.model_validate(dict(config))
        except ValidationError as e:
            raise ConfigError(f"invalid configuration: {e}") from e
