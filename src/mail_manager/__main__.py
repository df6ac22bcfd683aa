# Main Entry Point - Account Management CLI
#
# Manage the encrypted account configuration from a shell:
#
#   mcp-mail-manager list
#   mcp-mail-manager add --email user@gmail.com          (prompts for password)
#   mcp-mail-manager show user-gmail-com
#   mcp-mail-manager remove user-gmail-com --confirm
#   mcp-mail-manager paths
#
# Also runnable as `python -m mail_manager`.

import argparse
import getpass
import json
import sys
from typing import List, Optional

from . import __version__
from .accounts import AccountRecord, CredentialStore
from .config import VaultConfig
from .core import AuditLogger, EventSeverity, EventType
from .vault import VaultError

EXIT_OK = 0
EXIT_USER_ERROR = 1
EXIT_VAULT_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mcp-mail-manager",
        description="Manage mail accounts with credentials encrypted at rest",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"mcp-mail-manager v{__version__}"
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="List configured accounts")

    show = sub.add_parser("show", help="Show one account (secrets masked)")
    show.add_argument("account_id")

    add = sub.add_parser("add", help="Add or update a password account")
    add.add_argument("--email", required=True, help="Email address")
    add.add_argument("--password", help="Password or app password (prompted if omitted)")
    add.add_argument("--name", help="Display name (default: local part of the address)")
    add.add_argument("--provider", help="Provider preset (auto-detected if omitted)")
    add.add_argument("--imap-host", default="", help="Custom IMAP host")
    add.add_argument("--imap-port", type=int, help="Custom IMAP port (default: 993)")
    add.add_argument("--smtp-host", default="", help="Custom SMTP host")
    add.add_argument("--smtp-port", type=int, help="Custom SMTP port (default: 587)")

    remove = sub.add_parser("remove", help="Remove an account")
    remove.add_argument("account_id")
    remove.add_argument("--confirm", action="store_true", help="Confirm deletion (required)")

    sub.add_parser("paths", help="Show where configuration is stored")

    return parser


def cmd_list(store: CredentialStore, args: argparse.Namespace) -> int:
    accounts = store.list_accounts()
    print(json.dumps([a.summary() for a in accounts], indent=2))
    return EXIT_OK


def cmd_show(store: CredentialStore, args: argparse.Namespace) -> int:
    account = store.get_account(args.account_id)
    if account is None:
        print(f"Account not found: {args.account_id}", file=sys.stderr)
        return EXIT_USER_ERROR

    data = account.masked_dict()
    if account.auth.unreadable_fields:
        data["unreadable_fields"] = account.auth.unreadable_fields
    print(json.dumps(data, indent=2))
    return EXIT_OK


def cmd_add(store: CredentialStore, args: argparse.Namespace) -> int:
    password = args.password
    if password is None:
        password = getpass.getpass(f"Password for {args.email}: ")
    if not password:
        print("A password is required", file=sys.stderr)
        return EXIT_USER_ERROR

    record = AccountRecord.for_email(
        args.email,
        password=password,
        name=args.name,
        provider=args.provider,
        imap_host=args.imap_host,
        imap_port=args.imap_port,
        smtp_host=args.smtp_host,
        smtp_port=args.smtp_port,
    )
    saved = store.upsert_account(record)
    print(json.dumps({
        "success": True,
        "account": {"id": saved.id, "email": saved.email, "provider": saved.provider},
        "message": f"Account saved. Provider: {saved.provider}",
    }, indent=2))
    return EXIT_OK


def cmd_remove(store: CredentialStore, args: argparse.Namespace) -> int:
    if not args.confirm:
        print("Deletion not confirmed. Pass --confirm to proceed.", file=sys.stderr)
        return EXIT_USER_ERROR

    if not store.remove_account(args.account_id):
        print(f"Account not found: {args.account_id}", file=sys.stderr)
        return EXIT_USER_ERROR

    print(f"Account removed: {args.account_id}")
    return EXIT_OK


def cmd_paths(store: CredentialStore, args: argparse.Namespace) -> int:
    config = store.config
    print(f"Config:    {config.config_dir}")
    print(f"Accounts:  {config.accounts_file}")
    print(f"Key file:  {config.key_file}")
    print(f"Logs:      {config.log_dir}")
    return EXIT_OK


COMMANDS = {
    "list": cmd_list,
    "show": cmd_show,
    "add": cmd_add,
    "remove": cmd_remove,
    "paths": cmd_paths,
}


def main(argv: Optional[List[str]] = None, config: Optional[VaultConfig] = None) -> int:
    """
    Main entry point for mcp-mail-manager.

    Returns the process exit status: 0 on success, 1 for bad input or a
    missing account, 2 when the vault itself fails (unreadable key file,
    corrupt accounts document).
    """
    args = build_parser().parse_args(argv)
    config = config or VaultConfig.from_env()
    config.ensure_config_dir()
    audit = AuditLogger(config.log_dir)
    store = CredentialStore(config, audit_logger=audit)

    audit.log_event(
        event_type=EventType.SYSTEM_START,
        severity=EventSeverity.INFO,
        message="mcp-mail-manager starting",
        details={"version": __version__, "command": args.command}
    )

    try:
        return COMMANDS[args.command](store, args)
    except VaultError as e:
        print(f"Vault error: {e}", file=sys.stderr)
        return EXIT_VAULT_ERROR
    finally:
        audit.close()


if __name__ == "__main__":
    sys.exit(main())
