"""
VaultAPI Client exceptions.

Transit (decryption core) failures and HTTP collaborator failures are kept
in separate branches so callers can decide what to retry and what to
report.
"""


class VaultAPIError(Exception):
    """Base class for every error raised by vaultapi_client."""


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

class ConfigurationError(VaultAPIError, ValueError):
    """Invalid transit or client configuration."""


# ---------------------------------------------------------------------------
# Transit decryption
# ---------------------------------------------------------------------------

class TransitError(VaultAPIError):
    """Base class for transit decryption failures."""

    retryable: bool = False


class ClockError(TransitError):
    """System clock reports a time before the UNIX epoch."""


class DecodeError(TransitError):
    """Envelope is not valid base64."""


class ShortEnvelopeError(TransitError):
    """Decoded envelope cannot hold a nonce."""


class CipherKeyError(TransitError):
    """Derived key has a length the AEAD cipher does not accept."""


class NonceError(TransitError):
    """Nonce extracted from the envelope is malformed."""


class AuthenticationError(TransitError):
    """AEAD tag did not verify.

    Raised both for tampered envelopes and for envelopes sealed under a
    different time bucket; the two cases are indistinguishable on purpose.
    A failure close to a bucket boundary may succeed once re-derived.
    """

    retryable = True


class PayloadFormatError(TransitError):
    """Authenticated plaintext is not a JSON document."""


# ---------------------------------------------------------------------------
# HTTP collaborator
# ---------------------------------------------------------------------------

class ClientError(VaultAPIError):
    """Base class for failures talking to the VaultAPI server."""


class ServerConnectionError(ClientError):
    """Server could not be reached."""


class ServerResponseError(ClientError):
    """Server answered with a non-success status code."""

    def __init__(self, status: int, message: str = ""):
        self.status = status
        self.message = message
        super().__init__(f"Server responded with {status}: {message}")


class ResponseFormatError(ClientError):
    """Server response body does not have the expected shape."""
