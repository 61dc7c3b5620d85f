from __future__ import annotations

import argparse
import logging
import os
import re
import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

from hip import __version__
from hip.lib.config_parser import load_config
from hip.lib.context import RunContext
from hip.lib.dispatcher import DispatchOptions, Dispatcher
from hip.lib.errors import HipError
from hip.lib.provisioner import DEFAULT_KEY, Provisioner

VERBS = ("ls", "run", "compose", "ktl", "provision", "version")

RUN_VAR_REGEX = re.compile(r"\A(?P<key>[A-Za-z_][A-Za-z0-9_]*)=(?P<value>.*)\Z", re.DOTALL)

# Global options that take a value.
VALUE_OPTIONS = ("--config", "-c")


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Configure logging.

    Args:
        verbose: Enable debug logging
        quiet: Suppress info logging
    """
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )


def split_run_vars(argv: List[str]) -> Tuple[Dict[str, str], List[str]]:
    """Split leading ``KEY=value`` tokens off the command line.

    Example:
        >>> split_run_vars(["RAILS_ENV=test", "rspec", "spec/models"])
        ({'RAILS_ENV': 'test'}, ['rspec', 'spec/models'])
    """
    run_vars: Dict[str, str] = {}
    index = 0
    while index < len(argv):
        match = RUN_VAR_REGEX.match(argv[index])
        if not match:
            break
        run_vars[match.group("key")] = match.group("value")
        index += 1
    return run_vars, argv[index:]


def insert_default_verb(argv: List[str]) -> List[str]:
    """Insert ``run`` when the first positional token is a catalog command.

    ``hip rails console`` is shorthand for ``hip run rails console``.
    """
    index = 0
    while index < len(argv):
        token = argv[index]
        if token in VALUE_OPTIONS:
            index += 2
            continue
        if token.startswith("-"):
            index += 1
            continue
        if token in VERBS:
            return argv
        return argv[:index] + ["run"] + argv[index:]
    return argv


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hip",
        description="Run project commands defined in hip.yml through "
                    "Docker Compose, kubectl or the local shell",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    general = parser.add_argument_group('General Options')
    general.add_argument(
        '--config', '-c',
        type=Path,
        default=None,
        help='Path to hip.yml (default: search upwards from the current directory)'
    )
    general.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose (debug) logging'
    )
    general.add_argument(
        '--quiet', '-q',
        action='store_true',
        help='Suppress informational output'
    )

    verbs = parser.add_subparsers(dest='verb', metavar='COMMAND')

    verbs.add_parser('ls', help='List available run commands')
    verbs.add_parser('version', help='Show hip version')

    run = verbs.add_parser(
        'run',
        help='Run configured command (the run prefix may be omitted)'
    )
    run.add_argument(
        '--publish', '-p',
        action='append',
        default=[],
        metavar='PORT',
        help='Publish a container port to the host (compose run only, repeatable)'
    )
    run.add_argument(
        '--explain', '-e',
        action='store_true',
        help='Show the execution plan without running the command'
    )
    run.add_argument('command', help='Command name from the interaction catalog')
    run.add_argument('args', nargs=argparse.REMAINDER, help='Subcommands and arguments')

    compose = verbs.add_parser('compose', help='Run docker compose with the project settings')
    compose.add_argument('args', nargs=argparse.REMAINDER)

    ktl = verbs.add_parser('ktl', help='Run kubectl with the project settings')
    ktl.add_argument('args', nargs=argparse.REMAINDER)

    provision = verbs.add_parser('provision', help='Run the steps of a provision section')
    provision.add_argument(
        'key',
        nargs='?',
        default=DEFAULT_KEY,
        help=f'Provision section to run (default: {DEFAULT_KEY})'
    )

    return parser


def list_commands(context: RunContext) -> str:
    """Format every catalog command with its description."""
    tree = context.tree.list()
    if not tree:
        return ""

    longest_name = max(len(name) for name in tree)
    lines = []
    for name, command in tree.items():
        description = f" {command.description}" if command.description else ""
        lines.append(f"{name.ljust(longest_name)}  #{description}")
    return "\n".join(lines)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point.

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    argv = list(sys.argv[1:] if argv is None else argv)
    run_vars, argv = split_run_vars(argv)

    parser = build_parser()
    args = parser.parse_args(insert_default_verb(argv))

    setup_logging(
        verbose=args.verbose or os.environ.get("HIP_ENV") == "debug",
        quiet=args.quiet
    )

    if args.verb == "version":
        print(__version__)
        return 0

    if args.verb is None:
        parser.print_help()
        return 1

    environ = dict(os.environ)
    if args.config:
        environ["HIP_FILE"] = str(args.config)

    try:
        config_parser = load_config(environ=environ)
        context = RunContext.build(
            config_parser.config,
            config_parser.base_path,
            environ=environ,
            run_vars=run_vars
        )

        if args.verb == "ls":
            listing = list_commands(context)
            if listing:
                print(listing)
            return 0

        if args.verb == "compose":
            return context.compose.execute(args.args, shell=False)

        if args.verb == "ktl":
            return context.kubectl.execute(args.args, shell=False)

        if args.verb == "provision":
            return Provisioner(context).run(args.key)

        dispatcher = Dispatcher(context)
        resolution = dispatcher.resolve([args.command, *args.args])
        options = DispatchOptions(publish=args.publish)

        if args.explain:
            print(dispatcher.explain(resolution.command, resolution.argv, options))
            return 0

        return dispatcher.dispatch(resolution.command, resolution.argv, options)

    except HipError as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
