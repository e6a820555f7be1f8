#!/usr/bin/env python3
"""Example: add a bind inside an HAProxy transaction and sync its address to netplan.

The bind address is staged into the netplan journal under the HAProxy
transaction id. On commit, HAProxy is committed first and the staged address
is then written to the netplan document and applied.

Usage (dry run, default; the transaction is closed instead of committed):

    CONFIG=/etc/haproxy-configurator/config.yaml python examples/create_bind.py

Usage (live commit):

    APPLY=1 CONFIG=... python examples/create_bind.py

Environment variables:
    CONFIG        Unified configuration file (required).
    FRONTEND      Frontend to add the bind to (default: fe_main).
    BIND_NAME     Bind name (default: example).
    BIND_ADDRESS  Address to listen on (default: 192.168.1.100).
    BIND_PORT     Port to listen on (default: 443).
    APPLY         Set to "1" to commit (default: dry-run).
"""

from __future__ import annotations

import json
import os
import sys

from haproxy_configurator.config.settings import load_settings
from haproxy_configurator.logging_setup import configure_logging
from haproxy_configurator.model.haproxy import Bind
from haproxy_configurator.service.manager import HAProxyManagerService

config_path = os.environ.get("CONFIG", "")
if not config_path:
    print("ERROR: CONFIG environment variable is required.", file=sys.stderr)
    sys.exit(1)

frontend = os.environ.get("FRONTEND", "fe_main")
bind = Bind(
    name=os.environ.get("BIND_NAME", "example"),
    address=os.environ.get("BIND_ADDRESS", "192.168.1.100"),
    port=int(os.environ.get("BIND_PORT", "443")),
)
apply_changes = os.environ.get("APPLY", "0") == "1"

configure_logging(development=True)
service = HAProxyManagerService.from_settings(load_settings(config_path))

print(f"Frontend      : {frontend}")
print(f"Bind          : {bind.name} {bind.address}:{bind.port}")
print(f"Apply changes : {apply_changes}")
print()

transaction = service.create_transaction(service.get_version())
print(f"Opened transaction {transaction.id}")

service.create_bind(frontend, bind, transaction.id)

if apply_changes:
    outcome = service.commit_transaction(transaction.id)
    print(f"HAProxy transaction status: {outcome.transaction.status}")
    if outcome.netplan_error:
        print(f"Netplan NOT updated: {outcome.netplan_error}")
else:
    print(service.close_transaction(transaction.id))

print()
print(json.dumps(service.netplan_status(), indent=2))
