"""Command line interface for shell-bundler."""

import argparse
import getpass
import logging
import os
import pathlib
import sys
from typing import NoReturn

from shell_bundler.archive import ArchiveError, ensure_tool
from shell_bundler.builder import BuildError, assemble_bundle, validate_build
from shell_bundler.commands import CommandSpec, CommandSpecError, parse_command_pairs
from shell_bundler.config import BundleOptions, ConfigError, resolve_bundle_options
from shell_bundler.listing import manifest_is_encrypted, read_bundle_commands
from shell_bundler.manifest import ManifestError


_EPILOG: str = """\
examples:
  # Create a bundle from a set of bash scripts
  $ shell-bundler build -s speak:speak.sh,quack:quack.sh,moo:moo.sh -o babel.sh

  # Execute bundle
  $ ./babel.sh speak 'Hello, world!'
  Hello, world!

  # Create a password protected bundle
  $ shell-bundler build -s speak:speak.sh,quack:quack.sh,moo:moo.sh -o babel.sh -p
  Password: xxx

  # Execute password protected bundle (interactive password prompt)
  $ ./babel.sh quack 'Hello, world!'
  Password: xxx
  Quack! Quack!
  Moo! Moo!

  # Execute password protected bundle (supply password via environment variable)
  $ TOKEN=xxx ./babel.sh moo 'Hello, world!'
  Moo! Moo!
"""


class _ArgumentParser(argparse.ArgumentParser):
    """Argument parser that reports usage errors with exit code 1."""

    def error(self, message: str) -> NoReturn:
        """Print usage and exit.

        :param message: Error description from argparse.
        """

        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def _configure_logging(*, verbose: int, quiet: int) -> logging.Logger:
    """Configure the shell-bundler logger.

    :param verbose: Verbosity count (0+).
    :param quiet: Quietness count (0+).
    :returns: Configured logger.
    """

    level: int = logging.INFO
    if quiet >= 2:
        level = logging.ERROR
    elif quiet >= 1:
        level = logging.WARNING
    elif verbose >= 1:
        level = logging.DEBUG

    logger: logging.Logger = logging.getLogger("shell_bundler")
    logger.setLevel(level)
    logger.propagate = False

    handler: logging.Handler = logging.StreamHandler(stream=sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))

    logger.handlers.clear()
    logger.addHandler(handler)
    return logger


def _add_logging_flags(parser: argparse.ArgumentParser) -> None:
    """Add the shared -v/-q flags.

    :param parser: Parser or subparser to extend.
    """

    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Enable verbose logging. Pass multiple times for more detail.",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="count",
        default=0,
        help="Reduce logging. Pass multiple times to suppress more output.",
    )


def _build_parser() -> argparse.ArgumentParser:
    """Create the argument parser.

    :returns: Parser with ``build`` and ``list`` subcommands.
    """

    parser: argparse.ArgumentParser = _ArgumentParser(
        prog="shell-bundler",
        description="Bundle multiple shell scripts into a single executable.",
        epilog=_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_build = subparsers.add_parser(
        "build",
        help="Build a bundle from command:script pairs.",
        epilog=_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p_build.add_argument(
        "-s",
        "--scripts",
        action="append",
        required=True,
        metavar="COMMAND:SCRIPT_PATH,...",
        help=(
            "Comma-separated list of command:script_path pairs to include in the bundle. "
            "May be given more than once."
        ),
    )
    p_build.add_argument(
        "-o",
        "--output",
        type=pathlib.Path,
        required=True,
        help="Filename for the generated executable bundle.",
    )
    p_build.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Force overwriting the output file if it already exists.",
    )
    p_build.add_argument(
        "-p",
        "--password",
        action="store_true",
        help="Prompt for a password that will be used to encrypt the bundled scripts.",
    )
    p_build.add_argument(
        "--token-var",
        type=str,
        default=None,
        help=(
            "Environment variable the bundle reads its password from at run time "
            "(default: $SHELL_BUNDLER_TOKEN_VAR or TOKEN)."
        ),
    )
    p_build.add_argument(
        "--compresslevel",
        type=int,
        default=None,
        help="Deflate compression level 0-9 (default: $SHELL_BUNDLER_COMPRESSLEVEL or 6).",
    )
    _add_logging_flags(p_build)

    p_list = subparsers.add_parser(
        "list",
        help="List the commands packaged in an existing bundle.",
    )
    p_list.add_argument(
        "bundle",
        type=pathlib.Path,
        help="Path to a bundle built by shell-bundler.",
    )
    p_list.add_argument(
        "--token-var",
        type=str,
        default=None,
        help="Environment variable holding the bundle password (default: TOKEN).",
    )
    _add_logging_flags(p_list)
    return parser


def _prompt_password() -> str:
    """Read a password from the terminal without echo.

    :returns: Entered password (possibly empty).
    """

    return getpass.getpass("Password: ")


def _run_build(ns: argparse.Namespace, logger: logging.Logger) -> int:
    """Handle ``shell-bundler build``.

    :param ns: Parsed arguments.
    :param logger: Configured logger.
    :returns: Exit code.
    """

    commands: CommandSpec = parse_command_pairs(ns.scripts)
    options: BundleOptions = resolve_bundle_options(
        token_var_override=ns.token_var,
        compresslevel_override=ns.compresslevel,
    )

    # Fail on bad inputs or a missing zip before asking for a password.
    validate_build(commands, ns.output, force=ns.force)
    password: str | None = None
    if ns.password is True:
        ensure_tool("zip")
        password = _prompt_password()

    output: pathlib.Path = assemble_bundle(
        commands=commands,
        output_path=ns.output,
        password=password,
        force=ns.force,
        options=options,
        logger=logger,
    )
    logger.info(f"Bundling complete. Run your scripts with {output} <command> [arguments]")
    return 0


def _run_list(ns: argparse.Namespace, logger: logging.Logger) -> int:
    """Handle ``shell-bundler list``.

    :param ns: Parsed arguments.
    :param logger: Configured logger.
    :returns: Exit code.
    """

    bundle: pathlib.Path = ns.bundle
    if bundle.is_file() is False:
        raise BuildError(f"Bundle '{bundle}' does not exist.")

    options: BundleOptions = resolve_bundle_options(token_var_override=ns.token_var)
    password: str | None = None
    if manifest_is_encrypted(bundle) is True:
        password = os.environ.get(options.token_var)
        if password is None or len(password) == 0:
            password = _prompt_password()
        logger.debug(f"shell-bundler: {bundle} is password-protected")

    for command, member in read_bundle_commands(bundle, password=password):
        sys.stdout.write(f"{command}\t{member}\n")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Run the shell-bundler CLI.

    :param argv: Optional argv list (excluding program name).
    :returns: Exit code.
    """

    parser: argparse.ArgumentParser = _build_parser()
    ns = parser.parse_args(argv)
    logger: logging.Logger = _configure_logging(verbose=ns.verbose, quiet=ns.quiet)

    try:
        if ns.command == "build":
            return _run_build(ns, logger)
        if ns.command == "list":
            return _run_list(ns, logger)
    except (BuildError, ArchiveError, CommandSpecError, ConfigError, ManifestError, OSError) as exc:
        logger.error(f"shell-bundler: error: {exc}")
        return 1
    except EOFError:
        logger.error("shell-bundler: error: no password entered")
        return 1
    except KeyboardInterrupt:
        logger.error("shell-bundler: error: interrupted")
        return 1

    raise AssertionError(f"Unhandled command: {ns.command}")
