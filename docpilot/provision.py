"""
docpilot-setup: create or update the DocPilot database on Appwrite.

Usage:
    docpilot-setup
    docpilot-setup --endpoint https://cloud.appwrite.io/v1 --project-id <id> --api-key <key>
    docpilot-setup --schema schema.json --no-wait

Missing connection values are read from APPWRITE_ENDPOINT, APPWRITE_PROJECT_ID
and APPWRITE_API_KEY, then prompted for. Exit codes: 0 success, 1 provisioning
failed, 2 bad configuration.
"""

import argparse
import sys
from typing import Callable, List, Optional

from rich.console import Console
from rich.prompt import Prompt

from docpilot.config import DEFAULT_APPWRITE_ENDPOINT, settings
from docpilot.core.errors import ProvisioningError, SchemaDeclarationError
from docpilot.core.logging import audit_logger, get_logger, setup_logging
from docpilot.core.reporting import ConsoleReporter
from docpilot.core.security import security_manager
from docpilot.models.schema import SchemaDeclaration
from docpilot.schema import DOCPILOT_SCHEMA, load_schema
from docpilot.services.appwrite_gateway import AppwriteDatabaseGateway, DatabaseGateway, build_client
from docpilot.services.provisioner import Provisioner

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docpilot-setup",
        description="Create the DocPilot database, collections, attributes and relationships on Appwrite.",
    )
    parser.add_argument("--endpoint", help="Appwrite endpoint (env: APPWRITE_ENDPOINT)")
    parser.add_argument("--project-id", help="Appwrite project ID (env: APPWRITE_PROJECT_ID)")
    parser.add_argument("--api-key", help="Appwrite API key (env: APPWRITE_API_KEY)")
    parser.add_argument("--schema", help="JSON schema declaration to use instead of the built-in one")
    parser.add_argument(
        "--no-wait",
        action="store_true",
        help="Do not wait for attributes to become available before creating relationships",
    )
    return parser


def ask(console: Console, message: str, default: Optional[str] = None, password: bool = False) -> str:
    """Prompt until a non-empty answer is given."""
    while True:
        answer = Prompt.ask(message, console=console, default=default, password=password)
        if answer and answer.strip():
            return answer.strip()
        console.print("[red]A value is required[/red]")


def resolve_connection(args: argparse.Namespace, console: Console, interactive: bool):
    """Return (endpoint, project_id, api_key) or None when a value is missing."""
    endpoint = args.endpoint or settings.appwrite_endpoint
    project_id = args.project_id or settings.appwrite_project_id
    api_key = args.api_key or settings.appwrite_api_key

    if interactive:
        if not endpoint:
            endpoint = ask(console, "Enter your Appwrite endpoint", default=DEFAULT_APPWRITE_ENDPOINT)
        if not project_id:
            project_id = ask(console, "Enter your Appwrite project ID")
        if not api_key:
            api_key = ask(
                console,
                "Enter your Appwrite API key (with permissions to create databases and collections)",
                password=True,
            )

    endpoint = endpoint or DEFAULT_APPWRITE_ENDPOINT
    if not (project_id and api_key):
        return None
    return endpoint.strip(), project_id.strip(), api_key.strip()


def main(
    argv: Optional[List[str]] = None,
    gateway_factory: Optional[Callable[[str, str, str], DatabaseGateway]] = None,
    console: Optional[Console] = None,
    interactive: Optional[bool] = None,
) -> int:
    setup_logging()
    args = build_parser().parse_args(argv)
    console = console or Console()
    if interactive is None:
        interactive = sys.stdin.isatty()

    console.print("[blue]+--------------------------------------------+[/blue]")
    console.print("[blue]| 📝 Appwrite Setup Script for DocPilot      |[/blue]")
    console.print("[blue]+--------------------------------------------+[/blue]\n")

    try:
        schema: SchemaDeclaration = load_schema(args.schema) if args.schema else DOCPILOT_SCHEMA
    except SchemaDeclarationError as e:
        console.print(f"[bold red]❌ {e}[/bold red]")
        return EXIT_CONFIG

    connection = resolve_connection(args, console, interactive)
    if connection is None:
        console.print("[bold red]❌ Endpoint, project ID and API key are required[/bold red]")
        return EXIT_CONFIG
    endpoint, project_id, api_key = connection

    if gateway_factory is None:
        gateway_factory = lambda e, p, k: AppwriteDatabaseGateway(build_client(e, p, k))  # noqa: E731
    gateway = gateway_factory(endpoint, project_id, api_key)

    provisioner = Provisioner(
        gateway,
        reporter=ConsoleReporter(console),
        wait_for_attributes=not args.no_wait,
        poll_interval=settings.attribute_poll_interval,
        poll_timeout=settings.attribute_poll_timeout,
    )

    succeeded = False
    try:
        provisioner.run(schema)
        succeeded = True
    except ProvisioningError as e:
        logger.error(f"Provisioning of {schema.database_id} failed at {e.step}: {e.cause}")
        console.print(f"\n[bold red]❌ Setup failed at {e.step}: {e.cause}[/bold red]")
        response = getattr(e.cause, "response", None)
        if response:
            console.print(f"[red]Response: {response}[/red]")
        return EXIT_FAILED
    finally:
        audit_logger.log_provisioning_run(
            endpoint=endpoint,
            project_id=project_id,
            database_id=schema.database_id,
            api_key_hash=security_manager.hash_api_key(api_key),
            succeeded=succeeded,
        )

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
