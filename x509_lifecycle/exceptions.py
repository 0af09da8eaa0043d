"""Custom exceptions for the X.509 certificate lifecycle handler."""


class X509LifecycleError(Exception):
    """Base exception for certificate lifecycle errors."""

    #: Message reported to the orchestrator. ``None`` means report ``str(self)``.
    public_reason: str | None = None

    @property
    def reason(self) -> str:
        """Reason string safe to send back in a response envelope."""
        return self.public_reason or str(self)


class UserInputError(X509LifecycleError):
    """Invalid input supplied by the caller. Reported verbatim, never retried."""


class InvalidSubject(UserInputError):
    """Certificate subject failed validation."""


class InvalidValidityPeriod(UserInputError):
    """Requested validity period is out of range."""


class InvalidProperties(UserInputError):
    """Resource properties could not be parsed."""


class InvalidCertificateMaterial(UserInputError):
    """Referenced secrets do not form a usable certificate/key pair."""


class UnsupportedResourceType(UserInputError):
    """No state machine is registered for the resource type."""


class InternalError(X509LifecycleError):
    """Internal failure. Reported with a generic message, retry will not help."""


class CryptoFailure(InternalError):
    """Key or certificate generation failed."""

    public_reason = "Cryptographic operation failed"


class EncodingFailure(InternalError):
    """Encoding certificate material failed."""

    public_reason = "Failed to encode certificate material"


class StoreError(X509LifecycleError):
    """Base exception for secret store and ACM errors."""


class StoreUnavailable(StoreError):
    """Transient store error. Callers retry with backoff."""


class AccessDenied(StoreError):
    """Store rejected the call for lack of permissions."""


class SecretNotFound(StoreError):
    """Requested secret does not exist."""
