"""
CLI interface for devtoolbox.

Runs scanners against a host application and prints the result envelope as
JSON.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import yaml

from devtoolbox import __version__
from devtoolbox.config import get_config_template, load_config
from devtoolbox.errors import ApplicationLoadError, DevtoolboxError, InvalidScanOptions
from devtoolbox.manager import Manager
from devtoolbox.runtime.base import Application
from devtoolbox.runtime.memory import InMemoryApplication
from devtoolbox.scanners.base import now_iso
from devtoolbox.serialization import safe_json_dumps
from devtoolbox.utils import import_string

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="devtoolbox",
        description="Introspect a running application: routes, models, bindings, SQL and more",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
QUICK START
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
  devtoolbox --list                              # Available scanners
  devtoolbox --app myapp.devtools:app routes     # Scan routes
  devtoolbox --app myapp.devtools:app all -o report.json

━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
SCANNER OPTIONS
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
Values are parsed as YAML, so numbers, booleans and lists work:
  devtoolbox --app app:app routes --option detect_unused=true
  devtoolbox --app app:app sql-analysis --option url=/users --option threshold=3
  devtoolbox --app app:app security --option "exclude_patterns=[api/*, health]"

━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
DISCLAIMER
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
Several findings are heuristic (unused routes, N+1 queries, security score,
column usage) and provider boot times are estimated, not measured. Results
marked "heuristic": true carry a confidence and the evidence behind them.
        """,
    )

    parser.add_argument(
        "types",
        nargs="*",
        metavar="TYPE",
        help="Scanner types to run, or 'all' (default: all)",
    )
    parser.add_argument(
        "--app",
        metavar="MODULE:ATTR",
        help="Application object or factory to introspect "
             "(default: an empty application rooted at the current directory)",
    )
    parser.add_argument(
        "--option",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Scanner option; may be repeated",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        metavar="SECONDS",
        help="Abort the scan after this many seconds",
    )
    parser.add_argument(
        "-o", "--output",
        help="Output file (default: stdout)",
    )
    parser.add_argument(
        "--list",
        action="store_true",
        help="List available scanners and exit",
    )

    config_group = parser.add_argument_group("Configuration")
    config_group.add_argument(
        "--config",
        metavar="FILE",
        help="Load config from YAML file",
    )
    config_group.add_argument(
        "--init-config",
        action="store_true",
        help="Print a starter config file",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser


def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
    )


def parse_options(pairs: list[str]) -> dict[str, Any]:
    """
    Parse ``KEY=VALUE`` pairs; values are read as YAML.

    Raises:
        InvalidScanOptions: If a pair has no ``=`` or an unreadable value.
    """
    options: dict[str, Any] = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        key = key.strip()
        if not sep or not key:
            raise InvalidScanOptions(f"Option '{pair}' must be written as KEY=VALUE")
        try:
            options[key] = yaml.safe_load(raw) if raw.strip() else None
        except yaml.YAMLError as e:
            raise InvalidScanOptions(f"Could not parse value of option '{key}': {e}") from e
    return options


def load_application(reference: str | None) -> Application:
    """
    Import the application named by ``module:attr``.

    The attribute may be an ``Application`` or a callable returning one.
    Without a reference an empty application rooted at the current
    directory is used.

    Raises:
        ApplicationLoadError: If the reference cannot be imported or does
            not produce an Application.
    """
    if not reference:
        return InMemoryApplication(base_path=Path.cwd())

    # Applications are usually importable from the project root
    cwd = os.getcwd()
    if cwd not in sys.path:
        sys.path.insert(0, cwd)

    try:
        obj = import_string(reference)
    except ImportError as e:
        raise ApplicationLoadError(f"Could not import application '{reference}': {e}") from e

    if not isinstance(obj, Application) and callable(obj):
        try:
            obj = obj()
        except Exception as e:
            raise ApplicationLoadError(f"Application factory '{reference}' failed: {e}") from e
    if not isinstance(obj, Application):
        raise ApplicationLoadError(
            f"'{reference}' is a {type(obj).__name__}, not a devtoolbox Application"
        )
    return obj


def run_scan(manager: Manager, types: list[str], options: dict[str, Any], timeout: float | None) -> dict[str, Any]:
    if not types or types == ["all"]:
        return manager.scan_all(options, timeout=timeout)
    if len(types) == 1:
        return manager.scan(types[0], options, timeout=timeout)
    return manager.scan_multiple(types, options, timeout=timeout)


def error_envelope(types: list[str], message: str) -> dict[str, Any]:
    return {
        "type": types[0] if len(types) == 1 else (types or ["all"]),
        "timestamp": now_iso(),
        "error": message,
    }


def write_output(text: str, output: str | None, verbose: bool) -> None:
    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(text)
        if verbose:
            print(f"Output written to: {output}", file=sys.stderr)
    else:
        print(text)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verbose)

    # Handle --init-config: just output the template and exit
    if args.init_config:
        print(get_config_template())
        return

    config = None
    if args.config:
        config_path = Path(args.config)
        if not config_path.exists():
            print(f"Error: Config file '{config_path}' does not exist", file=sys.stderr)
            sys.exit(1)
        try:
            config = load_config(config_path)
        except yaml.YAMLError as e:
            print(f"Error: Could not parse config file '{config_path}': {e}", file=sys.stderr)
            sys.exit(1)
        if args.verbose:
            print(f"Loaded config: {config_path}", file=sys.stderr)

    types = list(args.types)
    try:
        app = load_application(args.app)
        manager = Manager(app, config=config)

        if args.list:
            for name, scanner in manager.registry.scanners().items():
                print(f"{name:<22} {scanner.get_description()}")
            return

        options = parse_options(args.option)
        result = run_scan(manager, types, options, args.timeout)
    except DevtoolboxError as e:
        logger.debug("Scan failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        write_output(safe_json_dumps(error_envelope(types, str(e))), args.output, args.verbose)
        sys.exit(1)

    write_output(safe_json_dumps(result, command=" ".join(types) or "all"), args.output, args.verbose)
