"""
Tests for VaultClient against an in-process fake VaultAPI server.

The fake server seals every secret lookup as a transit envelope for the
current time bucket, the way the real server does.
"""
import aiohttp
import pytest
from aiohttp import web

from vaultapi_client.client import (
    Endpoint,
    VaultClient,
    auth_headers,
    fetch_secret,
    urljoin,
)
from vaultapi_client.config import ClientConfig, TransitConfig
from vaultapi_client.exceptions import (
    AuthenticationError,
    ConfigurationError,
    ResponseFormatError,
    ServerConnectionError,
    ServerResponseError,
)

BUCKET_WIDTH = 3600
TABLES = web.AppKey("tables", dict)
CALLS = web.AppKey("calls", list)


def make_app(apikey, sealer):
    """Build a fake VaultAPI application."""
    tables = {
        "production": {"db_password": "hunter2", "token": "abc123"},
        "staging": {"db_password": "staging-pass"},
    }
    calls = []

    def authorize(request):
        calls.append((request.method, request.path))
        if request.headers.get("Authorization") != f"Bearer {apikey}":
            raise web.HTTPUnauthorized(
                text='{"detail": "Unauthorized"}',
                content_type="application/json",
            )

    def table(name):
        if name not in tables:
            raise web.HTTPNotFound(
                text='{"detail": "Table not found"}',
                content_type="application/json",
            )
        return tables[name]

    def sealed(payload):
        return web.json_response(
            {"detail": sealer(payload, apikey=apikey, bucket_width=BUCKET_WIDTH)}
        )

    async def health(request):
        calls.append((request.method, request.path))
        return web.json_response({"detail": "OK"})

    async def get_secret(request):
        authorize(request)
        secrets = table(request.query["table_name"])
        key = request.query["key"]
        return sealed({key: secrets[key]})

    async def get_secrets(request):
        authorize(request)
        secrets = table(request.query["table_name"])
        keys = request.query["keys"].split(",")
        return sealed({key: secrets[key] for key in keys})

    async def get_table(request):
        authorize(request)
        return sealed(table(request.query["table_name"]))

    async def list_tables(request):
        authorize(request)
        return web.json_response({"detail": list(tables)})

    async def put_secret(request):
        authorize(request)
        body = await request.json()
        table(body["table_name"]).update(body["secrets"])
        return web.json_response({"detail": "Success"})

    async def delete_secret(request):
        authorize(request)
        body = await request.json()
        del table(body["table_name"])[body["key"]]
        return web.json_response({"detail": "Success"})

    async def create_table(request):
        authorize(request)
        tables.setdefault(request.query["table_name"], {})
        return web.json_response({"detail": "Success"})

    app = web.Application()
    app[TABLES] = tables
    app[CALLS] = calls
    app.router.add_get(Endpoint.HEALTH.value, health)
    app.router.add_get(Endpoint.GET_SECRET.value, get_secret)
    app.router.add_get(Endpoint.GET_SECRETS.value, get_secrets)
    app.router.add_get(Endpoint.GET_TABLE.value, get_table)
    app.router.add_get(Endpoint.LIST_TABLES.value, list_tables)
    app.router.add_put(Endpoint.PUT_SECRET.value, put_secret)
    app.router.add_delete(Endpoint.DELETE_SECRET.value, delete_secret)
    app.router.add_post(Endpoint.CREATE_TABLE.value, create_table)
    return app


def client_config(server, apikey, **transit):
    transit.setdefault("time_bucket", BUCKET_WIDTH)
    transit.setdefault("previous_bucket_grace", True)
    return ClientConfig(
        vault_server=str(server.make_url("/")),
        apikey=apikey,
        transit=TransitConfig(**transit),
    )


@pytest.fixture
async def server(aiohttp_server, apikey, sealer):
    return await aiohttp_server(make_app(apikey, sealer))


@pytest.fixture
async def client(server, apikey):
    async with VaultClient(client_config(server, apikey)) as vault:
        yield vault


# --- Helpers ---

class TestHelpers:

    @pytest.mark.parametrize("parts, expected", [
        (("http://host:8080/", "/health"), "http://host:8080/health"),
        (("http://host:8080", "health"), "http://host:8080/health"),
        (("http://host/api/", "/get-secret/"), "http://host/api/get-secret"),
    ])
    def test_urljoin(self, parts, expected):
        assert urljoin(*parts) == expected

    def test_auth_headers(self):
        assert auth_headers("s3cr3t") == {
            "Authorization": "Bearer s3cr3t",
            "Accept": "application/json",
        }

    def test_endpoint_paths(self):
        assert {e.value for e in Endpoint} == {
            "/health", "/get-secret", "/get-secrets", "/get-table",
            "/list-tables", "/put-secret", "/delete-secret", "/create-table",
        }


# --- Lookups ---

class TestLookups:

    async def test_health_check(self, client):
        assert await client.health_check() is True

    async def test_get_secret(self, client):
        assert await client.get_secret("db_password", "production") == {
            "db_password": "hunter2",
        }

    async def test_get_secrets_from_list(self, client):
        result = await client.get_secrets(["db_password", "token"], "production")
        assert result == {"db_password": "hunter2", "token": "abc123"}

    async def test_get_secrets_from_string(self, client):
        result = await client.get_secrets("token", "production")
        assert result == {"token": "abc123"}

    async def test_get_table(self, client):
        assert await client.get_table("staging") == {
            "db_password": "staging-pass",
        }

    async def test_list_tables(self, client):
        assert await client.list_tables() == ["production", "staging"]

    async def test_wrong_apikey_is_rejected(self, server):
        config = client_config(server, "wrong-key")
        async with VaultClient(config) as vault:
            with pytest.raises(ServerResponseError) as exc_info:
                await vault.get_table("production")
        assert exc_info.value.status == 401
        assert exc_info.value.message == "Unauthorized"

    async def test_missing_table(self, client):
        with pytest.raises(ServerResponseError) as exc_info:
            await client.get_table("nope")
        assert exc_info.value.status == 404

    async def test_transit_mismatch(self, server, apikey):
        # a 16 byte key cannot open envelopes sealed with a 32 byte key
        config = client_config(server, apikey, key_length=16)
        async with VaultClient(config) as vault:
            with pytest.raises(AuthenticationError):
                await vault.get_table("production")


# --- Mutations ---

class TestMutations:

    async def test_put_secret(self, client, server):
        detail = await client.put_secret({"api_token": "xyz"}, "production")
        assert detail == "Success"
        assert server.app[TABLES]["production"]["api_token"] == "xyz"
        assert await client.get_secret("api_token", "production") == {
            "api_token": "xyz",
        }

    async def test_delete_secret(self, client, server):
        assert await client.delete_secret("token", "production") == "Success"
        assert "token" not in server.app[TABLES]["production"]

    async def test_create_table(self, client, server):
        assert await client.create_table("qa") == "Success"
        assert "qa" in await client.list_tables()
        assert ("POST", "/create-table") in server.app[CALLS]


# --- Response handling ---

class TestResponseHandling:

    def test_decrypt_detail_missing(self, apikey):
        vault = VaultClient(ClientConfig(vault_server="http://h", apikey=apikey))
        with pytest.raises(ResponseFormatError, match="detail"):
            vault.decrypt_detail(None)

    def test_decrypt_detail_object(self, apikey):
        vault = VaultClient(ClientConfig(vault_server="http://h", apikey=apikey))
        with pytest.raises(ResponseFormatError):
            vault.decrypt_detail({"db_password": "plain"})

    def test_decrypt_detail_string(self, apikey, sealer):
        config = ClientConfig(
            vault_server="http://h",
            apikey=apikey,
            transit=TransitConfig(previous_bucket_grace=True),
        )
        assert VaultClient(config).decrypt_detail(sealer({"x": 1})) == {"x": 1}

    @pytest.mark.parametrize("body", [b"not json", b"[1, 2]"])
    def test_detail_requires_json_object(self, body):
        with pytest.raises(ResponseFormatError):
            VaultClient._detail(body)

    def test_detail_absent(self):
        assert VaultClient._detail(b'{"message": "hi"}') is None

    async def test_list_tables_rejects_objects(self, aiohttp_server, apikey):
        async def list_tables(request):
            return web.json_response({"detail": ["ok", {"bad": 1}]})

        app = web.Application()
        app.router.add_get(Endpoint.LIST_TABLES.value, list_tables)
        server = await aiohttp_server(app)
        async with VaultClient(client_config(server, apikey)) as vault:
            with pytest.raises(ResponseFormatError):
                await vault.list_tables()

    async def test_list_tables_numeric_names(self, aiohttp_server, apikey):
        async def list_tables(request):
            return web.json_response({"detail": ["users", 2024]})

        app = web.Application()
        app.router.add_get(Endpoint.LIST_TABLES.value, list_tables)
        server = await aiohttp_server(app)
        async with VaultClient(client_config(server, apikey)) as vault:
            assert await vault.list_tables() == ["users", "2024"]

    async def test_connection_refused(self, apikey):
        config = ClientConfig(vault_server="http://127.0.0.1:1", apikey=apikey)
        async with VaultClient(config) as vault:
            with pytest.raises(ServerConnectionError):
                await vault.health_check()

    async def test_client_must_be_opened(self, apikey):
        vault = VaultClient(ClientConfig(vault_server="http://h", apikey=apikey))
        with pytest.raises(RuntimeError):
            await vault.health_check()


# --- fetch_secret ---

class TestFetchSecret:

    async def test_single_key(self, server, apikey):
        config = client_config(server, apikey)
        result = await fetch_secret(config, "production", key="token")
        assert result == {"token": "abc123"}
        assert server.app[CALLS][0] == ("GET", "/health")

    async def test_many_keys(self, server, apikey):
        config = client_config(server, apikey)
        result = await fetch_secret(
            config, "production", key="ignored", keys="db_password,token",
        )
        assert result == {"db_password": "hunter2", "token": "abc123"}

    async def test_whole_table(self, server, apikey):
        config = client_config(server, apikey)
        assert await fetch_secret(config, "staging") == {
            "db_password": "staging-pass",
        }

    async def test_table_is_mandatory(self, server, apikey):
        config = client_config(server, apikey)
        with pytest.raises(ConfigurationError):
            await fetch_secret(config, "", key="token")
        assert server.app[CALLS] == []

    async def test_shared_session_is_left_open(self, server, apikey):
        config = client_config(server, apikey)
        async with aiohttp.ClientSession() as session:
            await fetch_secret(config, "staging", session=session)
            assert not session.closed
