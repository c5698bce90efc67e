"""
VaultClient — Async HTTP client for a VaultAPI server.

Every request carries ``Authorization: Bearer <apikey>``. The server wraps
its answer in a ``detail`` field; when that field is a string it is a
transit envelope, decrypted locally with ``transit_decrypt``.

Lookup endpoints:
- ``get_secret(key, table_name)``
- ``get_secrets(keys, table_name)``
- ``get_table(table_name)``
- ``list_tables()``

Mutating endpoints (``put_secret``, ``delete_secret``, ``create_table``)
return the unwrapped ``detail`` as sent by the server.

Security Note:
    Never log the API key, envelopes or decrypted values. Only methods,
    endpoints and status codes are logged.
"""
import asyncio
import logging
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Union

import aiohttp
import orjson

from .config import ClientConfig
from .exceptions import (
    ConfigurationError,
    ResponseFormatError,
    ServerConnectionError,
    ServerResponseError,
)
from .transit import transit_decrypt

logger = logging.getLogger("vaultapi.client")


class Endpoint(str, Enum):
    """VaultAPI server endpoints."""

    HEALTH = "/health"
    GET_SECRET = "/get-secret"
    GET_SECRETS = "/get-secrets"
    GET_TABLE = "/get-table"
    LIST_TABLES = "/list-tables"
    PUT_SECRET = "/put-secret"
    DELETE_SECRET = "/delete-secret"
    CREATE_TABLE = "/create-table"


def urljoin(*parts: str) -> str:
    """Join URL parts with a single slash between each of them."""
    return "/".join(part.strip("/") for part in parts)


def auth_headers(apikey: str) -> dict[str, str]:
    """Build bearer authentication headers."""
    return {
        "Authorization": f"Bearer {apikey}",
        "Accept": "application/json",
    }


class VaultClient:
    """Client for the VaultAPI HTTP interface.

    Use as an async context manager. A session passed in by the caller is
    used as is and left open on exit.

    Example::

        async with VaultClient(ClientConfig.from_env()) as client:
            secret = await client.get_secret("db_password", "production")
    """

    def __init__(
        self,
        config: ClientConfig,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self._config = config
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "VaultClient":
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._config.timeout),
            )
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying session if this client created it."""
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    # ------------------------------------------------------------------
    # Request helpers
    # ------------------------------------------------------------------

    def _url(self, endpoint: Endpoint) -> str:
        return urljoin(self._config.server_url, endpoint.value)

    async def _request(
        self,
        method: str,
        endpoint: Endpoint,
        params: Optional[Mapping[str, str]] = None,
        payload: Optional[Mapping[str, Any]] = None,
        authenticated: bool = True,
    ) -> bytes:
        """Send a request and return the raw body of a successful response.

        Raises:
            ServerConnectionError: If the server cannot be reached.
            ServerResponseError: If the server answers with status >= 400.
        """
        if self._session is None:
            raise RuntimeError("VaultClient is not open, use 'async with'")
        url = self._url(endpoint)
        if authenticated:
            headers = auth_headers(self._config.apikey.get_secret_value())
        else:
            headers = {"Accept": "application/json"}
        try:
            async with self._session.request(
                method,
                url,
                params=params,
                json=payload,
                headers=headers,
            ) as response:
                body = await response.read()
                logger.debug(
                    "%s %s -> %d", method, endpoint.value, response.status,
                )
                if response.status >= 400:
                    raise ServerResponseError(
                        response.status, _error_message(body, response.reason),
                    )
                return body
        except (aiohttp.ClientError, asyncio.TimeoutError) as err:
            raise ServerConnectionError(
                f"Failed to fetch data from {url}: {err!r}"
            ) from err

    @staticmethod
    def _detail(body: bytes) -> Any:
        """Unwrap the ``detail`` field of a JSON response body.

        Returns:
            The ``detail`` value, or None if the field is absent.
        """
        try:
            data = orjson.loads(body)
        except orjson.JSONDecodeError as err:
            raise ResponseFormatError(
                "Failed to parse response as JSON"
            ) from err
        if not isinstance(data, dict):
            raise ResponseFormatError(
                f"Expected a JSON object, got {type(data).__name__}"
            )
        return data.get("detail")

    def decrypt_detail(self, detail: Any) -> Any:
        """Decrypt a ``detail`` value holding a transit envelope.

        Raises:
            ResponseFormatError: If detail is missing or is not a string.
            TransitError: If the envelope cannot be decrypted.
        """
        if detail is None:
            raise ResponseFormatError("No 'detail' key found in the response")
        if not isinstance(detail, str):
            raise ResponseFormatError(
                f"Unexpected detail of type {type(detail).__name__}, "
                "expected an encrypted string"
            )
        return transit_decrypt(
            self._config.apikey.get_secret_value(),
            detail,
            self._config.transit,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def health_check(self) -> bool:
        """Check the server is reachable and healthy.

        Raises:
            ServerConnectionError: If the server cannot be reached.
            ServerResponseError: If the health endpoint reports an error.
        """
        await self._request("GET", Endpoint.HEALTH, authenticated=False)
        return True

    async def get_secret(self, key: str, table_name: str) -> Any:
        """Retrieve and decrypt a single secret from a table."""
        body = await self._request(
            "GET",
            Endpoint.GET_SECRET,
            params={"table_name": table_name, "key": key},
        )
        return self.decrypt_detail(self._detail(body))

    async def get_secrets(
        self, keys: Union[str, Iterable[str]], table_name: str
    ) -> Any:
        """Retrieve and decrypt several secrets from a table.

        Args:
            keys: Comma separated string or iterable of secret names.
            table_name: Table where the secrets are stored.
        """
        if not isinstance(keys, str):
            keys = ",".join(keys)
        body = await self._request(
            "GET",
            Endpoint.GET_SECRETS,
            params={"table_name": table_name, "keys": keys},
        )
        return self.decrypt_detail(self._detail(body))

    async def get_table(self, table_name: str) -> Any:
        """Retrieve and decrypt every secret stored in a table."""
        body = await self._request(
            "GET", Endpoint.GET_TABLE, params={"table_name": table_name},
        )
        return self.decrypt_detail(self._detail(body))

    async def list_tables(self) -> list[str]:
        """List table names available on the server.

        Raises:
            ResponseFormatError: If detail is not a list of names.
        """
        body = await self._request("GET", Endpoint.LIST_TABLES)
        detail = self._detail(body)
        if not isinstance(detail, list):
            raise ResponseFormatError(f"Unexpected value returned: {detail!r}")
        names: list[str] = []
        for value in detail:
            if isinstance(value, bool) or not isinstance(value, (str, int, float)):
                raise ResponseFormatError(
                    f"Unknown value received for table name: {value!r}"
                )
            names.append(str(value))
        return names

    async def put_secret(
        self, secrets: Mapping[str, str], table_name: str
    ) -> Any:
        """Create or update secrets in a table."""
        body = await self._request(
            "PUT",
            Endpoint.PUT_SECRET,
            payload={"secrets": dict(secrets), "table_name": table_name},
        )
        logger.info(
            "Stored %d secret(s) in table %s", len(secrets), table_name,
        )
        return self._detail(body)

    async def delete_secret(self, key: str, table_name: str) -> Any:
        """Delete a secret from a table."""
        body = await self._request(
            "DELETE",
            Endpoint.DELETE_SECRET,
            payload={"key": key, "table_name": table_name},
        )
        logger.info("Deleted secret %s from table %s", key, table_name)
        return self._detail(body)

    async def create_table(self, table_name: str) -> Any:
        """Create a new table."""
        body = await self._request(
            "POST", Endpoint.CREATE_TABLE, params={"table_name": table_name},
        )
        logger.info("Created table %s", table_name)
        return self._detail(body)


def _error_message(body: bytes, reason: Optional[str]) -> str:
    """Pick the most useful message out of an error response."""
    try:
        data = orjson.loads(body)
    except orjson.JSONDecodeError:
        return reason or ""
    if isinstance(data, dict) and isinstance(data.get("detail"), str):
        return data["detail"]
    return reason or ""


async def fetch_secret(
    config: ClientConfig,
    table_name: Optional[str],
    key: Optional[str] = None,
    keys: Optional[Union[str, Iterable[str]]] = None,
    session: Optional[aiohttp.ClientSession] = None,
) -> Any:
    """Health-check the server and fetch secret(s) from a table.

    ``keys`` takes precedence over ``key``; with neither, the whole table
    is returned.

    Raises:
        ConfigurationError: If no table name is given.
        ClientError: If the request fails.
        TransitError: If the response cannot be decrypted.
    """
    if not table_name:
        raise ConfigurationError("Table name is mandatory to retrieve the secret")
    async with VaultClient(config, session=session) as client:
        await client.health_check()
        if keys:
            return await client.get_secrets(keys, table_name)
        if key:
            return await client.get_secret(key, table_name)
        return await client.get_table(table_name)
