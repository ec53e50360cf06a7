"""Command line tools for the service clients. Use --help for usage."""

import argparse
import asyncio
import logging
import sys
import uuid
from datetime import UTC, datetime, timedelta
from pathlib import Path

from dotenv import load_dotenv

from clients.eventhubs import EventHubConsumerClient, EventHubConsumerClientOptions
from clients.keyvault import SecretClient
from clients.storage import (
    AccountSasBuilder,
    AccountSasResourceTypes,
    AccountSasServices,
    SasIPRange,
    SasProtocol,
    StorageSharedKeyCredential,
    check_sas_url,
)
from config import ClientConfig, load_config
from core.auth.credentials import get_default_credential
from core.logging.context import set_log_context
from core.logging.setup import setup_logging

# Project root directory (where .env file is located)
PROJECT_ROOT = Path(__file__).parent.parent.parent

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="python -m clients",
        description="Inspect Event Hubs, read Key Vault secrets and issue storage SAS tokens",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Show the configured Event Hub and its partitions
    python -m clients eventhub-info

    # Read a secret from the configured vault
    python -m clients secret-get db-password

    # Issue a read/list account SAS valid for two hours
    python -m clients account-sas --permissions rl --hours 2

    # Check whether a SAS URL has expired
    python -m clients sas-check "https://acct.blob.core.windows.net/c/b?sv=...&se=...&sig=..."
        """,
    )
    parser.add_argument("--config", type=Path, default=None, help="Path to a YAML config file")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Override the configured log level",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("eventhub-info", help="Show Event Hub and partition properties")

    secret = subparsers.add_parser("secret-get", help="Print a secret's value")
    secret.add_argument("name")
    secret.add_argument("--version", default=None)

    sas = subparsers.add_parser("account-sas", help="Generate an account SAS token")
    sas.add_argument("--permissions", default="rl", help="Permission codes, e.g. 'rwdl'")
    sas.add_argument("--services", default="b", help="Service codes from 'bqf'")
    sas.add_argument("--resource-types", default="sco", help="Resource type codes from 'sco'")
    sas.add_argument("--hours", type=float, default=1.0, help="Lifetime in hours")
    sas.add_argument("--ip-range", default=None, help="Allowed IP or range, e.g. '10.0.0.1-10.0.0.9'")
    sas.add_argument("--https-only", action="store_true")

    check = subparsers.add_parser("sas-check", help="Report a SAS URL's validity window")
    check.add_argument("url")

    return parser.parse_args(argv)


async def eventhub_info(config: ClientConfig) -> int:
    settings = config.eventhub
    if not settings.is_configured:
        print("Event Hubs is not configured (set EVENTHUB_CONNECTION_STRING)", file=sys.stderr)
        return 2

    options = EventHubConsumerClientOptions(
        connection_options=settings.to_connection_options(),
        retry_options=settings.to_retry_options(),
    )
    if settings.connection_string:
        client = EventHubConsumerClient.from_connection_string(
            settings.consumer_group,
            settings.connection_string,
            settings.eventhub_name or None,
            options=options,
        )
    else:
        client = EventHubConsumerClient.from_namespace(
            settings.consumer_group,
            settings.fully_qualified_namespace,
            settings.eventhub_name,
            get_default_credential(),
            options=options,
        )

    async with client:
        properties = await client.get_event_hub_properties()
        print(f"Event Hub: {properties.name} ({client.fully_qualified_namespace})")
        print(f"Created:   {properties.created_on}")
        for partition_id in properties.partition_ids:
            partition = await client.get_partition_properties(partition_id)
            state = "empty" if partition.is_empty else (
                f"seq {partition.beginning_sequence_number}..{partition.last_enqueued_sequence_number}"
            )
            print(f"  partition {partition.id}: {state}, last enqueued {partition.last_enqueued_time}")
    return 0


async def secret_get(config: ClientConfig, name: str, version: str | None) -> int:
    if not config.keyvault.vault_url:
        print("Key Vault is not configured (set AZURE_KEYVAULT_URL)", file=sys.stderr)
        return 2

    credential = get_default_credential()
    try:
        async with SecretClient.from_settings(config.keyvault, credential) as client:
            secret = await client.get_secret(name, version)
    finally:
        await credential.close()
    print(secret.value)
    return 0


def account_sas(config: ClientConfig, args: argparse.Namespace) -> int:
    settings = config.storage
    if not settings.account_name or not settings.account_key:
        print(
            "Storage is not configured (set AZURE_STORAGE_ACCOUNT_NAME and AZURE_STORAGE_ACCOUNT_KEY)",
            file=sys.stderr,
        )
        return 2

    builder = AccountSasBuilder(
        expires_on=datetime.now(UTC) + timedelta(hours=args.hours),
        services=AccountSasServices.parse(args.services),
        resource_types=AccountSasResourceTypes.parse(args.resource_types),
        ip_range=SasIPRange.parse(args.ip_range),
        protocol=SasProtocol.HTTPS if args.https_only else SasProtocol.NONE,
        version=settings.sas_version,
    )
    builder.set_permissions(args.permissions)
    credential = StorageSharedKeyCredential(settings.account_name, settings.account_key)
    print(builder.to_sas_query_parameters(credential))
    return 0


def sas_check(url: str) -> int:
    info = check_sas_url(url)
    if info.parse_error:
        print(f"Could not read SAS: {info.parse_error}", file=sys.stderr)
        return 1
    if not info.is_sas:
        print("URL carries no shared access signature")
        return 0
    print(f"Starts:  {info.starts_on}")
    print(f"Expires: {info.expires_on}")
    print(f"Permissions: {info.permissions or '-'}")
    print("Status:  " + ("EXPIRED" if info.is_expired else f"valid for {info.time_remaining}"))
    return 1 if info.is_expired else 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    load_dotenv(PROJECT_ROOT / ".env")

    try:
        config = load_config(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    setup_logging(
        level=args.log_level or config.logging.level,
        json_format=config.logging.json_format,
        log_file=config.logging.log_file,
    )
    set_log_context(trace_id=uuid.uuid4().hex, client="cli", operation=args.command)

    if args.command == "eventhub-info":
        return asyncio.run(eventhub_info(config))
    if args.command == "secret-get":
        return asyncio.run(secret_get(config, args.name, args.version))
    if args.command == "account-sas":
        return account_sas(config, args)
    return sas_check(args.url)


if __name__ == "__main__":
    sys.exit(main())
