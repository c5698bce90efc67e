"""VaultAPI Client — Fetch and decrypt transit-encrypted secrets.

Security Note (Threat Model):
    Decrypted secrets live in process memory once returned. The API key
    is both the bearer token and the transit key-derivation input, so it
    must be protected like the secrets themselves.
"""

from .version import __version__
from .config import ClientConfig, TransitConfig, load_env_file
from .client import Endpoint, VaultClient, fetch_secret
from .transit import derive_key, decrypt_envelope, time_bucket, transit_decrypt
from .exceptions import (
    VaultAPIError,
    ConfigurationError,
    TransitError,
    ClockError,
    DecodeError,
    ShortEnvelopeError,
    CipherKeyError,
    NonceError,
    AuthenticationError,
    PayloadFormatError,
    ClientError,
    ServerConnectionError,
    ServerResponseError,
    ResponseFormatError,
)

__all__ = [
    "__version__",
    "ClientConfig",
    "TransitConfig",
    "load_env_file",
    "Endpoint",
    "VaultClient",
    "fetch_secret",
    "derive_key",
    "decrypt_envelope",
    "time_bucket",
    "transit_decrypt",
    "VaultAPIError",
    "ConfigurationError",
    "TransitError",
    "ClockError",
    "DecodeError",
    "ShortEnvelopeError",
    "CipherKeyError",
    "NonceError",
    "AuthenticationError",
    "PayloadFormatError",
    "ClientError",
    "ServerConnectionError",
    "ServerResponseError",
    "ResponseFormatError",
]
