"""Operator command line for the netplan side of haproxy-configurator.

Usage::

    haproxy-configurator --config /etc/haproxy-configurator.yaml status
    haproxy-configurator --config ... pending
    haproxy-configurator --config ... show <transaction-id>
    haproxy-configurator --config ... commit <transaction-id>
    haproxy-configurator --config ... discard <transaction-id>

``commit`` re-runs the netplan commit for a transaction whose HAProxy side
already committed, e.g. after a crash between the two commits.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Sequence

from haproxy_configurator.config.settings import load_settings
from haproxy_configurator.errors import HAProxyConfiguratorError
from haproxy_configurator.logging_setup import configure_logging
from haproxy_configurator.netplan.coordinator import NetplanCoordinator

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH: str = "/etc/haproxy-configurator/config.yaml"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="haproxy-configurator",
        description="Inspect and reconcile netplan transactions staged for HAProxy binds.",
    )
    parser.add_argument(
        "--config", default=DEFAULT_CONFIG_PATH, help="unified configuration file"
    )
    parser.add_argument(
        "--development", action="store_true", help="debug-level, human-readable logging"
    )
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("status", help="show netplan integration status")
    sub.add_parser("pending", help="list pending journal transactions")
    for name, text in (
        ("show", "print a journal transaction"),
        ("commit", "apply a pending journal transaction"),
        ("discard", "mark a pending journal transaction failed"),
    ):
        cmd = sub.add_parser(name, help=text)
        cmd.add_argument("transaction_id")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.development)

    try:
        settings = load_settings(args.config)
        if not settings.has_netplan_integration():
            if args.command == "status":
                _print({"enabled": False, "message": "Netplan integration disabled"})
                return 0
            logger.error("Netplan integration is not configured in %s", args.config)
            return 1
        coordinator = NetplanCoordinator.from_settings(settings.netplan)
        return _run(coordinator, args)
    except HAProxyConfiguratorError as exc:
        logger.error("%s", exc)
        return 1


def _run(coordinator: NetplanCoordinator, args: argparse.Namespace) -> int:
    if args.command == "status":
        _print(coordinator.status())
    elif args.command == "pending":
        for transaction_id in coordinator.journal.list_pending():
            print(transaction_id)
    elif args.command == "show":
        _print(coordinator.journal.load(args.transaction_id).to_dict())
    elif args.command == "commit":
        result = coordinator.commit(args.transaction_id)
        print(f"committed {result.transaction_id}: {result.changes_applied} change(s) applied")
    elif args.command == "discard":
        if not coordinator.discard(args.transaction_id):
            logger.error("No pending transaction %s", args.transaction_id)
            return 1
        print(f"discarded {args.transaction_id}")
    return 0


def _print(data: object) -> None:
    json.dump(data, sys.stdout, indent=2, sort_keys=True)
    sys.stdout.write("\n")


if __name__ == "__main__":
    sys.exit(main())
