"""
ACME Account Keeper — CLI entry point.

Usage:
  python main.py --provision                         # Register or validate the account
  python main.py --provision --email ops@example.com # Override the contact email
  python main.py --provision --key-type ec --key-size 256
"""
from __future__ import annotations

import argparse
import logging
import sys

import structlog

# ── Logging setup ─────────────────────────────────────────────────────────────

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
)
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
log = logging.getLogger(__name__)


# ── Runner ────────────────────────────────────────────────────────────────────


def apply_overrides(args: argparse.Namespace) -> None:
    """
    Re-validate the settings singleton with the CLI overrides applied.

    Raises pydantic.ValidationError when an override is rejected; unsupported
    EC sizes warn exactly as they do when read from the environment.
    """
    from config import Settings, settings

    overrides: dict = {}
    if args.email:
        overrides["ACME_EMAIL"] = args.email
    if args.key_type:
        overrides["ACME_KEY_TYPE"] = args.key_type
    if args.key_size:
        overrides["ACME_KEY_SIZE"] = args.key_size
    if args.directory:
        overrides["CA_PROVIDER"] = "custom"
        overrides["ACME_DIRECTORY_URL"] = args.directory
    if args.store:
        overrides["ACCOUNT_STORE_PATH"] = args.store
    if not overrides:
        return

    validated = Settings(**{**settings.model_dump(), **overrides})
    for name in Settings.model_fields:
        setattr(settings, name, getattr(validated, name))


def run_provision():
    """Provision the ACME account once and return the ProvisionedAccount."""
    from acme_client.client import make_client
    from config import settings
    from provisioning.provisioner import AccountProvisioner
    from storage.account_store import FileAccountStore

    if not settings.contact_email():
        log.error("No contact email configured. Set ACME_EMAIL in .env or pass --email.")
        sys.exit(1)

    log.info("Provisioning ACME account at %s (store: %s)",
             settings.directory_url(), settings.ACCOUNT_STORE_PATH)

    provisioner = AccountProvisioner(
        store=FileAccountStore(settings.ACCOUNT_STORE_PATH),
        client=make_client(),
        config=settings,
    )
    account = provisioner.provision()

    log.info(
        "Account ready: uri %s | created: %s | contact updated: %s",
        account.record.uri, account.created, account.contact_updated,
    )
    return account


# ── CLI ───────────────────────────────────────────────────────────────────────


def main() -> None:
    from pydantic import ValidationError

    from provisioning.errors import AccountError

    parser = argparse.ArgumentParser(
        description="ACME Account Keeper",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --provision
  python main.py --provision --email ops@example.com
  python main.py --provision --directory https://localhost:14000/dir --store ./pebble-account.json
        """,
    )
    parser.add_argument(
        "--provision",
        action="store_true",
        help="Register a new ACME account, or validate the stored one, and exit",
    )
    parser.add_argument("--email", metavar="ADDRESS", help="Contact email (overrides ACME_EMAIL)")
    parser.add_argument(
        "--key-type",
        choices=["rsa", "ec"],
        help="Key type for a newly generated account key (overrides ACME_KEY_TYPE)",
    )
    parser.add_argument(
        "--key-size",
        type=int,
        metavar="BITS",
        help="RSA bit length, or EC size 224/256/384/521 (overrides ACME_KEY_SIZE)",
    )
    parser.add_argument("--directory", metavar="URL", help="ACME directory URL (implies CA_PROVIDER=custom)")
    parser.add_argument("--store", metavar="PATH", help="Account store file (overrides ACCOUNT_STORE_PATH)")

    args = parser.parse_args()

    if not args.provision:
        parser.print_help()
        sys.exit(1)

    try:
        apply_overrides(args)
    except ValidationError as exc:
        log.error("Invalid option: %s", exc)
        sys.exit(1)

    try:
        account = run_provision()
    except AccountError as exc:
        log.error("%s", exc)
        sys.exit(1)

    print(account.record.uri)


if __name__ == "__main__":
    main()
