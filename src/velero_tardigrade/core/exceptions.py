"""Exception hierarchy for velero-tardigrade.

Every error that crosses the object store surface derives from
``TardigradeError``. The ``retryable`` flag tells the host whether its own
retry policy may help; the adapter never retries on its own. The original
network error is always chained as ``__cause__``.
"""


class TardigradeError(Exception):
    """Base exception for all velero-tardigrade errors."""

    retryable = False


class ConfigError(TardigradeError):
    """Raised when the adapter configuration is missing or malformed."""

    pass


class InvalidCredentialError(ConfigError):
    """Raised when an access grant cannot be parsed."""

    pass


class ValidationError(TardigradeError):
    """Raised when an operation argument fails validation."""

    pass


class NotInitializedError(TardigradeError):
    """Raised when an operation runs before init or after close."""

    pass


class ObjectAccessError(TardigradeError):
    """Base for failures of a single bucket/key operation."""

    def __init__(self, message: str, bucket: str = "", key: str = ""):
        super().__init__(message)
        self.bucket = bucket
        self.key = key


class NotFoundError(ObjectAccessError):
    """Raised when the bucket or object does not exist."""

    pass


class PermissionDeniedError(ObjectAccessError):
    """Raised when the access grant does not allow the operation."""

    pass


class TransientError(ObjectAccessError):
    """Raised for network, transport or unclassified failures."""

    retryable = True


class WriteError(ObjectAccessError):
    """Raised when the source stream fails while an object is uploaded."""

    pass


class OperationCancelledError(TardigradeError):
    """Raised when the caller cancelled the operation or its deadline passed."""

    pass


class CapabilityDerivationError(TardigradeError):
    """Raised when a restricted access grant cannot be derived."""

    pass


class SerializationError(CapabilityDerivationError):
    """Raised when a derived access grant cannot be serialized."""

    pass
