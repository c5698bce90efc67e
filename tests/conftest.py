"""Shared fixtures: sealing helpers that play the VaultAPI server's role."""
import os
import time
import base64
import hashlib

import orjson
import pytest
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

APIKEY = "s3cr3t"
ZERO_NONCE = bytes(12)


def server_key(apikey: str, bucket: int, key_length: int = 32) -> bytes:
    """Server-side key derivation, written independently of the client."""
    return hashlib.sha256(f"{bucket}.{apikey}".encode("utf-8")).digest()[:key_length]


def seal(
    payload,
    apikey: str = APIKEY,
    bucket: int = None,
    bucket_width: int = 60,
    key_length: int = 32,
    nonce: bytes = None,
) -> str:
    """Encrypt payload the way the server does and return the envelope."""
    if bucket is None:
        bucket = int(time.time()) // bucket_width
    if nonce is None:
        nonce = os.urandom(12)
    key = server_key(apikey, bucket, key_length)
    plaintext = payload if isinstance(payload, bytes) else orjson.dumps(payload)
    sealed = AESGCM(key).encrypt(nonce, plaintext, None)
    return base64.b64encode(nonce + sealed).decode("ascii")


@pytest.fixture
def apikey():
    return APIKEY


@pytest.fixture
def sealer():
    """Return the envelope sealing helper."""
    return seal


@pytest.fixture
def key_for():
    """Return the server-side key derivation helper."""
    return server_key


@pytest.fixture
def zero_nonce():
    return ZERO_NONCE
