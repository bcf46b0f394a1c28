"""``zklock`` command-line entry point."""

from __future__ import annotations

import argparse
import json
import logging
import subprocess
import sys
from dataclasses import replace

from zklock.cli.parser import parse_arguments
from zklock.core.config import LockConfig, StoreConfig
from zklock.core.constants import EXIT_CONFIG_ERROR, EXIT_LOCK_UNAVAILABLE, EXIT_STORE_ERROR
from zklock.core.exceptions import (
    AcquireCancelled,
    ConfigurationError,
    LockContended,
    StoreError,
    WaitTimeout,
    ZKLockError,
)
from zklock.core.logging import flush_logging_handlers, setup_logging
from zklock.locks.lock import Lock
from zklock.store import CoordinationStore, create_store

logger = logging.getLogger(__name__)


def build_lock_config(args: argparse.Namespace) -> LockConfig:
    """Merge CLI flags over environment defaults."""
    return LockConfig.from_env(
        args.lock_name,
        namespace_root=args.namespace_root,
        create_namespace=args.create_namespace,
        wait_timeout_ms=getattr(args, "timeout_ms", None),
        non_blocking=True if getattr(args, "nonblocking", False) else None,
    )


def build_store_config(args: argparse.Namespace) -> StoreConfig:
    config = StoreConfig.from_env()
    if args.hosts:
        config = replace(config, hosts=args.hosts)
    if args.read_only:
        config = replace(config, read_only=True)
    return config


def open_store(args: argparse.Namespace) -> CoordinationStore:
    return create_store(args.store, build_store_config(args))


def cmd_run(args: argparse.Namespace, store: CoordinationStore, config: LockConfig) -> int:
    lock = Lock(store, config=config, identifier=args.identifier)
    try:
        lock.acquire()
    except (LockContended, WaitTimeout, AcquireCancelled) as e:
        logger.warning("%s", e)
        return EXIT_LOCK_UNAVAILABLE

    try:
        flush_logging_handlers()
        try:
            completed = subprocess.run(args.cmd, check=False)
        except OSError as e:
            logger.error("Cannot run %s: %s", args.cmd[0], e)
            return 127
        returncode = completed.returncode
        # Killed by a signal: report it the way a shell would.
        return 128 - returncode if returncode < 0 else returncode
    finally:
        lock.release()


def cmd_queue(args: argparse.Namespace, store: CoordinationStore, config: LockConfig) -> int:
    lock = Lock(store, config=config)
    entries = []
    for position, (node, info) in enumerate(lock.contenders()):
        entry = {"position": position, "node": node.name, "sequence": node.sequence}
        if info is not None:
            entry.update(identifier=info.identifier, host=info.host, pid=info.pid, since=info.created_at)
        entries.append(entry)

    if args.json:
        print(json.dumps({"lock": lock.path, "contenders": entries}, indent=2))
        return 0

    if not entries:
        print(f"{lock.path}: free")
        return 0
    print(f"{lock.path}: {len(entries)} contender(s)")
    for entry in entries:
        role = "holder" if entry["position"] == 0 else "waiting"
        who = entry.get("identifier", "?")
        print(f"  {entry['position']:>3}  {entry['node']}  {role:<7}  {who}")
    return 0


COMMANDS = {"run": cmd_run, "queue": cmd_queue}


def main(argv: list[str] | None = None) -> int:
    """Main entry point; returns the process exit code."""
    args = parse_arguments(argv)
    setup_logging(args.log_level, args.log_format)

    try:
        config = build_lock_config(args)
        store = open_store(args)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    except StoreError as e:
        logger.error("%s", e)
        return EXIT_STORE_ERROR

    try:
        return COMMANDS[args.command](args, store, config)
    except ZKLockError as e:
        # Store failures, lost invariants and failed candidate creation alike.
        logger.error("%s", e)
        return EXIT_STORE_ERROR
    finally:
        store.close()


def run() -> None:
    """Console-script wrapper."""
    sys.exit(main())
