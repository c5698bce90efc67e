"""CLI entry point for VaultAPI Client.

Usage::

    python -m vaultapi_client --cipher <base64 envelope>
    python -m vaultapi_client --table production --get-secret db_password
    python -m vaultapi_client --get-table production
    python -m vaultapi_client --list-tables

Settings (``APIKEY``, ``VAULT_SERVER``, ``TRANSIT_*``) are read from the
environment after loading ``--env_file`` (default ``.env``).
"""
import os
import sys
import asyncio
import logging
import argparse
from typing import Any, Optional

import orjson

from .client import VaultClient, fetch_secret
from .config import ClientConfig, TransitConfig, default_env_file, load_env_file
from .exceptions import ConfigurationError, VaultAPIError
from .transit import transit_decrypt
from .version import __title__, __version__

logger = logging.getLogger("vaultapi.cli")


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="vaultapi",
        description="Retrieve and decrypt secrets from a VaultAPI server.",
    )
    parser.add_argument(
        "-v", "-V", "--version",
        action="version",
        version=f"{__title__} {__version__}",
    )
    parser.add_argument(
        "--env_file", "--env-file",
        dest="env_file",
        default=None,
        help="Custom filename to load the environment variables "
             "(default: $env_file, $ENV_FILE or '.env').",
    )
    parser.add_argument(
        "--cipher",
        default="",
        help="Cipher text to decrypt locally, without contacting the server.",
    )
    parser.add_argument(
        "--table",
        default="",
        help="Table name where the secret(s) are stored.",
    )
    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        "--get-secret",
        default="",
        help="Secret key to retrieve.",
    )
    group.add_argument(
        "--get-secrets",
        default="",
        help="Comma separated secret keys to retrieve.",
    )
    group.add_argument(
        "--get-table",
        default="",
        help="Table name to retrieve in full.",
    )
    group.add_argument(
        "--list-tables",
        action="store_true",
        default=False,
        help="List all table names on the server.",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: WARNING).",
    )
    return parser.parse_args(argv)


async def _list_tables(config: ClientConfig) -> list[str]:
    async with VaultClient(config) as client:
        await client.health_check()
        return await client.list_tables()


def run(args: argparse.Namespace) -> Any:
    """Execute the command described by parsed arguments.

    Raises:
        VaultAPIError: On configuration, transport or decryption failure.
    """
    load_env_file(args.env_file or default_env_file())
    if args.cipher:
        apikey = os.environ.get("APIKEY")
        if not apikey:
            raise ConfigurationError("APIKEY environment variable not set")
        return transit_decrypt(apikey, args.cipher, TransitConfig.from_env())

    config = ClientConfig.from_env(os.environ)
    if args.list_tables:
        return asyncio.run(_list_tables(config))
    if not (args.get_secret or args.get_secrets or args.get_table):
        raise ConfigurationError(
            "Required parameters unfilled: use --cipher, --get-secret, "
            "--get-secrets, --get-table or --list-tables"
        )
    return asyncio.run(
        fetch_secret(
            config,
            args.table or args.get_table,
            key=args.get_secret or None,
            keys=args.get_secrets or None,
        )
    )


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        value = run(args)
    except VaultAPIError as err:
        logger.debug("Command failed", exc_info=True)
        print(f"{type(err).__name__}: {err}", file=sys.stderr)
        return 1
    sys.stdout.write(orjson.dumps(value, option=orjson.OPT_INDENT_2).decode())
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
