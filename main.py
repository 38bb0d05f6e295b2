"""Command-line interface for the repository rule cache warmer."""

from __future__ import annotations
import argparse
import logging
import sys
from pathlib import Path
from typing import NoReturn, Sequence

from rulewarmer.config import (
    DEFAULT_PORT,
    DEFAULT_THREADS,
    DEFAULT_URL,
    ConfigurationError,
    WarmerConfig,
    build_config,
    resolve_config_path,
)

logger = logging.getLogger("rulewarmer.main")

_EXAMPLES = """\
Defaults: <url>                        - https://localhost
          <user principle name suffix> - None
          <port>                       - 4242
          <threads>                    - 2
          <certs>                      - load from store instead of file
Example:  %(prog)s -u https://my.server.url -p 4242 -c C:\\Tmp\\Certs C:\\Tmp\\Users.txt
          %(prog)s C:\\Tmp\\Users.txt
"""


class _UsageParser(argparse.ArgumentParser):
    """Argument parser that reports usage errors with exit status 1."""

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stdout)
        self.exit(1, f"{self.prog}: error: {message}\n")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = _UsageParser(
        description="Warm the repository security rule cache for a list of users",
        epilog=_EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-u", dest="url", default=None, help=f"Repository URL (default: {DEFAULT_URL})")
    parser.add_argument(
        "-n",
        dest="upn_suffix",
        default=None,
        help="User principal name suffix appended to the upper-cased user id",
    )
    parser.add_argument("-p", dest="port", type=int, default=None, help=f"Port (default: {DEFAULT_PORT})")
    parser.add_argument(
        "-t",
        dest="threads",
        type=int,
        default=None,
        help=f"Number of concurrent workers (default: {DEFAULT_THREADS})",
    )
    parser.add_argument(
        "-c",
        dest="certificates",
        default=None,
        help="Directory holding client.pem, client_key.pem and root.pem",
    )
    parser.add_argument(
        "-d",
        dest="clear_cache",
        action="store_const",
        const=True,
        default=None,
        help="Reset the security rule cache before warming it",
    )
    parser.add_argument(
        "--count-only",
        dest="app_table",
        action="store_const",
        const=False,
        default=None,
        help="Only request the app count for each user",
    )
    parser.add_argument(
        "--verify-certificates",
        dest="verify_certificates",
        action="store_const",
        const=True,
        default=None,
        help="Validate the server certificate against root.pem",
    )
    parser.add_argument("--timeout", type=float, default=None, help="Per-request timeout in seconds")
    parser.add_argument(
        "--deadline",
        type=float,
        default=None,
        help="Abort the batch after this many seconds",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="YAML configuration file (default: $RULEWARMER_CONFIG)",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("users", nargs="?", default=None, help="File with one <domain>\\<user> per line")

    args_list = list(argv) if argv is not None else sys.argv[1:]
    return parser.parse_args(args_list)


def _print_usage_and_exit(message: str) -> NoReturn:
    print(message)
    print(
        "Usage:    main.py [-u <url>] [-n <user principle name suffix>] [-p <port>] "
        "[-t <threads>] [-c <path to certs>] [-d] <path to users>"
    )
    raise SystemExit(1)


def _load_config(args: argparse.Namespace) -> WarmerConfig:
    overrides = {
        "url": args.url,
        "upn_suffix": args.upn_suffix,
        "port": args.port,
        "threads": args.threads,
        "certificates": Path(args.certificates) if args.certificates else None,
        "clear_cache": args.clear_cache,
        "app_table": args.app_table,
        "verify_certificates": args.verify_certificates,
        "timeout": args.timeout,
        "deadline": args.deadline,
        "users": Path(args.users) if args.users else None,
    }
    return build_config(overrides, config_path=resolve_config_path(args.config))


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for CLI usage."""

    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    try:
        config = _load_config(args)
    except ConfigurationError as exc:
        _print_usage_and_exit(str(exc))

    for line in config.describe():
        print(line)

    from rulewarmer.runner import run

    summary = run(config)
    if not summary.succeeded:
        logger.error(
            "Batch finished with %d failed job(s)%s",
            summary.failed,
            " after the deadline expired" if summary.timed_out else "",
        )
        raise SystemExit(1)


if __name__ == "__main__":
    main()
