"""
Transit Crypto Core — Time-bucketed key derivation and envelope decryption.

Implements the client side of VaultAPI transit encryption:
- Key: SHA256("{bucket}.{apikey}")[:key_length], bucket = unix_seconds // width
- Envelope: base64([nonce 12B][ciphertext + GCM tag 16B]), no associated data
- Payload: JSON document

The AES-GCM variant follows the key length (16 → AES-128, 24 → AES-192,
32 → AES-256).

Security Note:
    Never log keys, API keys, ciphertext or plaintext. Only bucket ids and
    lengths are logged.
"""
import time
import base64
import logging
from typing import Any, NamedTuple, Optional, Union

import orjson
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..config import TRANSIT_KEY_LENGTH, TRANSIT_TIME_BUCKET, TransitConfig
from ..exceptions import (
    AuthenticationError,
    CipherKeyError,
    ClockError,
    ConfigurationError,
    DecodeError,
    NonceError,
    PayloadFormatError,
    ShortEnvelopeError,
)

logger = logging.getLogger("vaultapi.transit")

NONCE_SIZE = 12  # 96-bit nonce
DIGEST_SIZE = 32  # SHA-256
BUCKET_SEPARATOR = b"."


class Envelope(NamedTuple):
    """Decoded transit envelope."""

    nonce: bytes
    sealed: bytes  # ciphertext || tag


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def time_bucket(bucket_width: int, now: Optional[float] = None) -> int:
    """Return the time bucket id for ``now``.

    Args:
        bucket_width: Bucket width in seconds.
        now: UNIX timestamp. Defaults to the current wall clock.

    Returns:
        ``floor(seconds / bucket_width)``.

    Raises:
        ConfigurationError: If bucket_width is not a positive integer.
        ClockError: If the clock reports a time before the UNIX epoch.
    """
    if isinstance(bucket_width, bool) or not isinstance(bucket_width, int) \
            or bucket_width < 1:
        raise ConfigurationError(
            f"Time bucket width must be a positive integer, got {bucket_width!r}"
        )
    if now is None:
        now = time.time()
    if now < 0:
        raise ClockError("System time is before the UNIX epoch")
    return int(now) // bucket_width


def derive_key(
    apikey: Union[str, bytes],
    bucket_width: int = TRANSIT_TIME_BUCKET,
    key_length: int = TRANSIT_KEY_LENGTH,
    now: Optional[float] = None,
    bucket: Optional[int] = None,
) -> bytes:
    """Derive the transit key for a time bucket.

    The digest input is the ASCII decimal bucket id, ``.``, then the raw
    secret bytes.

    Args:
        apikey: Shared secret. ``str`` is UTF-8 encoded; ``bytes`` used as is.
        bucket_width: Bucket width in seconds; ignored if ``bucket`` is given.
        key_length: Number of digest bytes to keep.
        now: UNIX timestamp used to compute the bucket.
        bucket: Explicit bucket id, bypassing the clock.

    Returns:
        ``key_length`` bytes of SHA-256 output.

    Raises:
        CipherKeyError: If key_length is outside 1..32.
        ClockError: If the clock is before the UNIX epoch.
    """
    if not 1 <= key_length <= DIGEST_SIZE:
        raise CipherKeyError(
            f"Key length must be between 1 and {DIGEST_SIZE} bytes, "
            f"got {key_length}"
        )
    if bucket is None:
        bucket = time_bucket(bucket_width, now)
    secret = apikey.encode("utf-8") if isinstance(apikey, str) else bytes(apikey)
    digest = hashes.Hash(hashes.SHA256())
    digest.update(str(bucket).encode("ascii") + BUCKET_SEPARATOR + secret)
    return digest.finalize()[:key_length]


# ---------------------------------------------------------------------------
# Envelope decryption
# ---------------------------------------------------------------------------

def parse_envelope(envelope: Union[str, bytes]) -> Envelope:
    """Decode a base64 envelope and split off the nonce.

    Raises:
        DecodeError: If the envelope is not valid standard base64.
        ShortEnvelopeError: If it decodes to fewer than 12 bytes.
        NonceError: If the nonce is not exactly 12 bytes.
    """
    try:
        raw = base64.b64decode(envelope, validate=True)
    except (ValueError, TypeError) as err:
        raise DecodeError("Failed to decode ciphertext") from err
    if len(raw) < NONCE_SIZE:
        raise ShortEnvelopeError(
            f"Ciphertext is too short: {len(raw)} bytes (minimum {NONCE_SIZE})"
        )
    nonce, sealed = raw[:NONCE_SIZE], raw[NONCE_SIZE:]
    if len(nonce) != NONCE_SIZE:
        raise NonceError(f"Nonce must be {NONCE_SIZE} bytes, got {len(nonce)}")
    return Envelope(nonce, sealed)


def _cipher(key: bytes) -> AESGCM:
    try:
        return AESGCM(key)
    except (ValueError, TypeError) as err:
        raise CipherKeyError(f"Failed to create AES key: {err}") from err


def open_envelope(key: bytes, envelope: Envelope) -> bytes:
    """Authenticate and decrypt a parsed envelope.

    Args:
        key: 16, 24 or 32 byte AES key.
        envelope: Parsed envelope.

    Returns:
        Authenticated plaintext bytes.

    Raises:
        CipherKeyError: If the key length is invalid for AES-GCM.
        NonceError: If the nonce is rejected.
        AuthenticationError: If the tag does not verify.
    """
    cipher = _cipher(key)
    if len(envelope.nonce) != NONCE_SIZE:
        raise NonceError(
            f"Nonce must be {NONCE_SIZE} bytes, got {len(envelope.nonce)}"
        )
    try:
        return cipher.decrypt(envelope.nonce, envelope.sealed, None)
    except InvalidTag:
        raise AuthenticationError("Failed to decrypt data") from None
    except ValueError as err:
        raise NonceError("Failed to create nonce") from err


def load_payload(plaintext: bytes) -> Any:
    """Parse decrypted bytes as JSON.

    Raises:
        PayloadFormatError: If the plaintext is not valid JSON.
    """
    try:
        return orjson.loads(plaintext)
    except orjson.JSONDecodeError as err:
        raise PayloadFormatError(
            "Failed to parse decrypted data as JSON"
        ) from err


def decrypt_envelope(key: bytes, envelope: Union[str, bytes]) -> Any:
    """Decrypt a base64 envelope with an already derived key."""
    return load_payload(open_envelope(key, parse_envelope(envelope)))


def transit_decrypt(
    apikey: Union[str, bytes],
    envelope: Union[str, bytes],
    config: Optional[TransitConfig] = None,
    now: Optional[float] = None,
) -> Any:
    """Decrypt a transit envelope issued for the current time bucket.

    The envelope is decoded before any key is derived, so malformed input
    fails without touching the clock or the cipher. With
    ``config.previous_bucket_grace`` enabled, an authentication failure is
    retried once with the previous bucket's key.

    Args:
        apikey: Shared secret used by the server to seal the envelope.
        envelope: Base64 envelope string.
        config: Transit parameters. Defaults to ``TransitConfig()``.
        now: UNIX timestamp. Defaults to the current wall clock.

    Returns:
        Decrypted JSON value.

    Raises:
        TransitError: Any of the typed transit failures.
    """
    config = config or TransitConfig()
    parsed = parse_envelope(envelope)
    bucket = time_bucket(config.time_bucket, now)
    key = derive_key(apikey, key_length=config.key_length, bucket=bucket)
    try:
        plaintext = open_envelope(key, parsed)
    except AuthenticationError:
        if not config.previous_bucket_grace or bucket == 0:
            raise
        logger.debug(
            "Authentication failed for bucket %d, retrying with bucket %d",
            bucket, bucket - 1,
        )
        key = derive_key(apikey, key_length=config.key_length, bucket=bucket - 1)
        plaintext = open_envelope(key, parsed)
    logger.debug(
        "Decrypted %d byte envelope for bucket %d", len(parsed.sealed), bucket
    )
    return load_payload(plaintext)
