#!/usr/bin/env python3
"""List the torrents of every server stored in the vault."""

import argparse
import getpass
import logging
import sys

from config_manager import ConfigManager
from client_factory import ClientFactory
from errors import TorrentControlError, VaultError
from logging_setup import setup_logging
from models import TaskStatus
from poller import TorrentPoller
from storage import JsonFileStore, MemoryStore
from vault import VaultService

logger = logging.getLogger(__name__)

STATUS_LABELS = {
    TaskStatus.DOWNLOADING: "Downloading",
    TaskStatus.SEEDING: "Seeding",
    TaskStatus.PAUSED: "Paused",
    TaskStatus.QUEUED: "Queued",
    TaskStatus.CHECKING: "Checking",
    TaskStatus.COMPLETED: "Completed",
    TaskStatus.ERROR: "Error",
    TaskStatus.UNKNOWN: "Unknown",
}


def format_size(bytes_size):
    """Format bytes to human readable."""
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if bytes_size < 1024.0:
            return f"{bytes_size:.2f} {unit}"
        bytes_size /= 1024.0
    return f"{bytes_size:.2f} PB"


def format_time(seconds):
    """Format seconds to time string."""
    if seconds < 0 or seconds == 8640000:  # unknown / qBit infinite
        return "∞"
    days = seconds // 86400
    hours = (seconds % 86400) // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60
    if days > 0:
        return f"{days}d {hours}h {minutes}m"
    elif hours > 0:
        return f"{hours}h {minutes}m {secs}s"
    elif minutes > 0:
        return f"{minutes}m {secs}s"
    else:
        return f"{secs}s"


def format_status(status):
    return STATUS_LABELS.get(TaskStatus.coerce(status), "Unknown")


def print_tasks(tasks):
    print("Name | Size | Status | Downloaded % | Time Left | Category")
    print("-" * 80)
    for t in tasks:
        print(f"{t.name[:50]} | {format_size(t.size)} | {format_status(t.status)} | "
              f"{t.progress:.1f}% | {format_time(t.eta)} | {t.category or ''}")


def build_parser():
    parser = argparse.ArgumentParser(prog="torrent-control-list", description=__doc__)
    parser.add_argument("--server", help="only poll the server with this name")
    parser.add_argument("--migrate", action="store_true",
                        help="move plaintext servers from the legacy options into a new vault")
    parser.add_argument("--storage", help="path of the storage JSON file")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    store = JsonFileStore(args.storage) if args.storage else JsonFileStore()
    config = ConfigManager(store)
    setup_logging(config.get("log_level"))

    vault = VaultService(store, MemoryStore())
    try:
        if args.migrate:
            if not vault.has_legacy_data():
                print("No legacy servers to migrate.")
                return 0
            passphrase = getpass.getpass("New vault passphrase: ")
            moved = vault.migrate_legacy_data(passphrase)
            print(f"Migrated {moved} server(s) into the vault.")
            return 0

        if not vault.is_initialized():
            print("Vault not initialized. Run with --migrate or add servers first.")
            return 1

        with vault.session(getpass.getpass("Vault passphrase: ")):
            servers = vault.get_servers()
    except VaultError as e:
        print(f"Error: {e}")
        return 1

    if args.server:
        servers = [s for s in servers if s.name == args.server]
    if not servers:
        print("No servers configured.")
        return 1

    poller = TorrentPoller(ClientFactory(retry=config.retry_policy()), max_workers=int(config.get("max_poll_workers")))
    try:
        results = poller.poll(servers)
    finally:
        poller.close()

    status = 0
    for name, result in results.items():
        print(f"\n== {name} ==")
        if result.error is not None:
            print(f"Error: {result.error}")
            status = 1
            continue
        print(f"Found {len(result.tasks)} torrents")
        print_tasks(result.tasks)
    return status


if __name__ == "__main__":
    try:
        sys.exit(main())
    except TorrentControlError as e:
        logger.error("%s", e)
        sys.exit(1)
