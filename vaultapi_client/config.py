"""
Client Configuration — Transit parameters and server settings.

Reads settings from environment variables (optionally loaded from a dotenv
file) exactly once and turns them into validated models:

    APIKEY = <shared secret used for bearer auth and key derivation>
    VAULT_SERVER = <base URL of the VaultAPI server>
    VAULT_TIMEOUT = <request timeout in seconds>
    TRANSIT_KEY_LENGTH = 16 | 24 | 32
    TRANSIT_TIME_BUCKET = <bucket width in seconds>
    TRANSIT_PREVIOUS_BUCKET = true | false

The decryption core only receives these models; it never reads the
environment itself.

Security Note:
    Never log the API key. ``ClientConfig.apikey`` is a ``SecretStr`` so it
    does not leak through ``repr()``.
"""
import os
import logging
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv
from pydantic import (
    AnyHttpUrl,
    BaseModel,
    Field,
    SecretStr,
    ValidationError,
    field_validator,
)

from .exceptions import ConfigurationError

logger = logging.getLogger("vaultapi.config")

TRANSIT_KEY_LENGTH = 32  # AES-256
TRANSIT_TIME_BUCKET = 60  # seconds
REQUEST_TIMEOUT = 10.0  # seconds

# AES-GCM accepts 128, 192 and 256 bit keys.
SUPPORTED_KEY_LENGTHS = (16, 24, 32)

_TRUTHY = frozenset({"1", "true", "yes", "on"})


def default_env_file(environ: Optional[Mapping[str, str]] = None) -> str:
    """Return the dotenv filename to load.

    ``env_file`` takes precedence over ``ENV_FILE``; ``.env`` otherwise.
    """
    env = os.environ if environ is None else environ
    return env.get("env_file") or env.get("ENV_FILE") or ".env"


def load_env_file(env_file: Optional[str] = None) -> bool:
    """Load a dotenv file into the process environment.

    Relative paths are resolved against the current working directory.
    Variables already present in the environment are not overridden.

    Args:
        env_file: Path to the dotenv file. Defaults to ``default_env_file()``.

    Returns:
        True if the file existed and was loaded.
    """
    path = Path(env_file or default_env_file())
    if not path.is_absolute():
        path = Path.cwd() / path
    if not path.is_file():
        logger.debug("Env file %s not found, skipping", path)
        return False
    loaded = load_dotenv(path, override=False)
    logger.debug("Loaded env file %s", path)
    return loaded


def _int_or_default(raw: Optional[str], default: int) -> int:
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        logger.warning(
            "Ignoring non-integer value %r, using default %d", raw, default
        )
        return default


def _require(env: Mapping[str, str], name: str) -> str:
    value = env.get(name)
    if not value:
        raise ConfigurationError(f"{name} environment variable not set")
    return value


class TransitConfig(BaseModel):
    """Validated transit decryption parameters."""

    key_length: int = Field(default=TRANSIT_KEY_LENGTH)
    time_bucket: int = Field(default=TRANSIT_TIME_BUCKET, ge=1)
    previous_bucket_grace: bool = Field(default=False)

    model_config = {"frozen": True}

    @field_validator("key_length")
    @classmethod
    def validate_key_length(cls, v: int) -> int:
        """Key length selects the AES-GCM variant; only AES sizes are valid."""
        if v not in SUPPORTED_KEY_LENGTHS:
            raise ValueError(
                f"Unsupported transit key length: {v} "
                f"(expected one of {SUPPORTED_KEY_LENGTHS})"
            )
        return v

    @classmethod
    def from_env(
        cls, environ: Optional[Mapping[str, str]] = None
    ) -> "TransitConfig":
        """Create TransitConfig from environment values.

        Unparseable numbers fall back to the defaults; parseable but
        unsupported values are rejected.

        Args:
            environ: Mapping to read from. Defaults to ``os.environ``.

        Returns:
            Populated TransitConfig instance.

        Raises:
            ConfigurationError: If a value fails validation.
        """
        env = os.environ if environ is None else environ
        raw_length = env.get("TRANSIT_KEY_LENGTH", env.get("TRANSMIT_KEY_LENGTH"))
        grace = env.get("TRANSIT_PREVIOUS_BUCKET", "").strip().lower()
        try:
            return cls(
                key_length=_int_or_default(raw_length, TRANSIT_KEY_LENGTH),
                time_bucket=_int_or_default(
                    env.get("TRANSIT_TIME_BUCKET"), TRANSIT_TIME_BUCKET
                ),
                previous_bucket_grace=grace in _TRUTHY,
            )
        except ValidationError as err:
            raise ConfigurationError(str(err)) from err


class ClientConfig(BaseModel):
    """Validated settings for talking to a VaultAPI server."""

    vault_server: AnyHttpUrl
    apikey: SecretStr
    timeout: float = Field(default=REQUEST_TIMEOUT, gt=0)
    transit: TransitConfig = Field(default_factory=TransitConfig)

    model_config = {"frozen": True}

    @field_validator("apikey")
    @classmethod
    def validate_apikey(cls, v: SecretStr) -> SecretStr:
        """Reject an empty API key."""
        if not v.get_secret_value():
            raise ValueError("apikey cannot be empty")
        return v

    @property
    def server_url(self) -> str:
        """Base server URL as a plain string."""
        return str(self.vault_server)

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        env_file: Optional[str] = None,
    ) -> "ClientConfig":
        """Create ClientConfig by loading values from environment.

        When reading the process environment, the dotenv file is loaded
        first (see ``load_env_file``).

        Args:
            environ: Mapping to read from. Defaults to ``os.environ``.
            env_file: Dotenv file to load before reading ``os.environ``.

        Returns:
            Populated ClientConfig instance.

        Raises:
            ConfigurationError: If a required variable is missing or a
                value fails validation.
        """
        if environ is None:
            load_env_file(env_file)
            environ = os.environ
        apikey = _require(environ, "APIKEY")
        vault_server = _require(environ, "VAULT_SERVER")
        raw_timeout = environ.get("VAULT_TIMEOUT")
        try:
            timeout = float(raw_timeout) if raw_timeout else REQUEST_TIMEOUT
        except ValueError:
            logger.warning(
                "Ignoring non-numeric VAULT_TIMEOUT %r, using default %s",
                raw_timeout, REQUEST_TIMEOUT,
            )
            timeout = REQUEST_TIMEOUT
        transit = TransitConfig.from_env(environ)
        try:
            return cls(
                vault_server=vault_server,
                apikey=apikey,
                timeout=timeout,
                transit=transit,
            )
        except ValidationError as err:
            raise ConfigurationError(str(err)) from err
