import argparse
import logging
import sys
import textwrap
from typing import List
from typing import Optional

from memray import set_log_level
from rich.logging import RichHandler

from allocviewer._errors import AllocViewerCommandError
from allocviewer._errors import AllocViewerError
from allocviewer._version import __version__

from .filter import FilterCommand
from .protocol import Command
from .run import RunCommand

_COMMANDS: List[Command] = [
    RunCommand(),
    FilterCommand(),
]

_EXAMPLES = [
    "$ python3 -m allocviewer run my_script.py",
    "$ python3 -m allocviewer run -f '\"@mypkg\" && !PYMALLOC' -m mypkg",
    "$ python3 -m allocviewer filter '\"myfile.py\":10:20 || :iterate'",
]

_EPILOG = textwrap.dedent(
    """\
    Frame filters combine allocator names (MALLOC, PYMALLOC, ...), package
    names ("@mypkg"), file names ("file.py", "file.py":10:20), regular
    expressions (r"tests/.*"), function names (:name) and allocation sizes
    with &&, || and !.
    """
)

_DESCRIPTION = """\
Browse the memory allocations of Python applications

Run `allocviewer run` to track the allocations of a program and explore
them, grouped by source location, in a foldable menu.

    Example:

    """ + """
    """.join(
    _EXAMPLES
)


def get_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=_DESCRIPTION,
        prog="allocviewer",
        formatter_class=argparse.RawTextHelpFormatter,
        epilog=_EPILOG,
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity. Option is additive and can be specified up to 3 times",
    )
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=__version__,
        help="Displays the current version of allocviewer",
    )

    subparsers = parser.add_subparsers(
        help="Mode of operation",
        dest="command",
        required=True,
    )

    for command in _COMMANDS:
        # Extract the CLI command name from the classes' names
        assert command.__class__.__name__.endswith("Command")
        name = command.__class__.__name__[: -len("Command")].lower()

        # Add the subcommand
        command_parser = subparsers.add_parser(
            name, help=command.__doc__, description=command.__doc__, epilog=_EPILOG
        )
        command_parser.set_defaults(entrypoint=command.run)
        command.prepare_parser(command_parser)

    return parser


def determine_logging_level_from_verbosity(
    verbose_level: int,
) -> int:  # pragma: no cover
    if verbose_level == 0:
        return logging.WARNING
    elif verbose_level == 1:
        return logging.INFO
    else:
        return logging.DEBUG


def configure_logging(level: int) -> None:
    logger = logging.getLogger("allocviewer")
    logger.setLevel(level)
    if not logger.handlers:
        logger.addHandler(RichHandler(show_path=False))
    set_log_level(level)


def main(args: Optional[List[str]] = None) -> int:
    if args is None:
        args = sys.argv[1:]

    parser = get_argument_parser()
    arg_values = parser.parse_args(args=args)
    configure_logging(determine_logging_level_from_verbosity(arg_values.verbose))

    try:
        arg_values.entrypoint(arg_values, parser)
    except AllocViewerCommandError as e:
        print(e, file=sys.stderr)
        return e.exit_code
    except AllocViewerError as e:
        print(e, file=sys.stderr)
        return 1
    else:
        return 0
