"""Transit — Decryption of time-bucketed VaultAPI envelopes.

Security Note (Threat Model):
    The transit key is derived from the API key and the current time
    bucket only. Anyone holding the API key can decrypt an envelope
    captured within the same bucket; the bucket width bounds that window.
    Nonce uniqueness is the server's responsibility.
"""

from .crypto import (
    Envelope,
    time_bucket,
    derive_key,
    parse_envelope,
    open_envelope,
    load_payload,
    decrypt_envelope,
    transit_decrypt,
)

__all__ = [
    "Envelope",
    "time_bucket",
    "derive_key",
    "parse_envelope",
    "open_envelope",
    "load_payload",
    "decrypt_envelope",
    "transit_decrypt",
]
