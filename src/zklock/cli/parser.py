"""CLI argument parsing for zklock."""

import argparse

from zklock.core.constants import DEFAULT_NAMESPACE_ROOT
from zklock.core.version import __version__


def build_parser() -> argparse.ArgumentParser:
    """Build the ``zklock`` argument parser."""
    parser = argparse.ArgumentParser(
        prog="zklock",
        description="Run commands under a ZooKeeper-backed distributed lock",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run a job while holding the "nightly" lock, waiting up to 10 minutes
  zklock run --timeout-ms 600000 nightly -- ./nightly-job.sh

  # Give up immediately if someone else holds it
  zklock run --nonblocking nightly -- ./nightly-job.sh

  # Show who holds and who waits for the lock
  zklock queue --hosts zk1:2181,zk2:2181 nightly

Environment:
  ZKLOCK_HOSTS, ZKLOCK_SESSION_TIMEOUT, ZKLOCK_CONNECT_TIMEOUT, ZKLOCK_READ_ONLY,
  ZKLOCK_NAMESPACE_ROOT, ZKLOCK_WAIT_TIMEOUT_MS, ZKLOCK_CREATE_NAMESPACE,
  ZKLOCK_NON_BLOCKING, ZKLOCK_STORE_BACKEND, LOG_LEVEL
  (a .env file in the working directory is loaded first)
""",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--hosts", help="ZooKeeper connect string (default: $ZKLOCK_HOSTS or 127.0.0.1:2181)")
    common.add_argument(
        "--root",
        dest="namespace_root",
        help=f"Namespace root holding the lock queue (default: {DEFAULT_NAMESPACE_ROOT})",
    )
    common.add_argument(
        "--no-create-namespace",
        dest="create_namespace",
        action="store_false",
        default=None,
        help="Fail instead of creating the namespace root",
    )
    common.add_argument("--store", choices=["kazoo", "memory"], help="Store backend (default: kazoo)")
    common.add_argument(
        "--read-only",
        action="store_true",
        help="Allow connecting to read-only ZooKeeper servers (default: $ZKLOCK_READ_ONLY or off)",
    )
    common.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: $LOG_LEVEL or INFO)",
    )
    common.add_argument("--log-format", choices=["text", "json"], default="text", help="Log output format")

    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", parents=[common], help="Run a command while holding the lock")
    run.add_argument("lock_name", help="Name of the lock")
    run.add_argument("--nonblocking", action="store_true", help="Exit immediately if the lock is taken")
    run.add_argument("--timeout-ms", type=int, help="Give up after this many milliseconds")
    run.add_argument("--identifier", help="Identifier recorded in the queue (default: host:pid)")
    run.add_argument("cmd", nargs=argparse.REMAINDER, help="Command to run; options go before the lock name")

    queue = subparsers.add_parser("queue", parents=[common], help="List the contention queue of a lock")
    queue.add_argument("lock_name", help="Name of the lock")
    queue.add_argument("--json", action="store_true", help="Print the queue as JSON")

    return parser


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "run":
        if args.cmd and args.cmd[0] == "--":
            args.cmd = args.cmd[1:]
        if not args.cmd:
            parser.error("run: a command is required after --")
        if args.timeout_ms is not None and args.timeout_ms < 0:
            parser.error("--timeout-ms cannot be negative")
    return args
