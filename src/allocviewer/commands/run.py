import argparse
import ast
import contextlib
import os
import pathlib
import runpy
import sys
from typing import Callable

from allocviewer._errors import AllocViewerCommandError
from allocviewer._errors import FilterSyntaxError
from allocviewer._tracking import TrackingOptions
from allocviewer._tracking import track_allocations
from allocviewer.filters import framefilter


def _should_modify_sys_path() -> bool:
    isolated_mode = sys.flags.isolated
    safe_path_mode = getattr(sys.flags, "safe_path", False)  # New in Python 3.11
    return not isolated_mode and not safe_path_mode


def _script_runner(args: argparse.Namespace) -> Callable[[], None]:
    def run() -> None:
        if args.run_as_module:
            if _should_modify_sys_path():
                sys.path[0] = os.getcwd()
            # run_module will replace argv[0] with the script's path
            sys.argv = ["", *args.script_args]
            runpy.run_module(args.script, run_name="__main__", alter_sys=True)
        elif args.run_as_cmd:
            if _should_modify_sys_path():
                sys.path[0] = ""
            sys.argv = ["-c", *args.script_args]
            exec(args.script, {"__name__": "__main__"})
        else:
            if _should_modify_sys_path():
                sys.path[0] = str(pathlib.Path(args.script).resolve().parent.absolute())
            sys.argv = [args.script, *args.script_args]
            runpy.run_path(args.script, run_name="__main__")

    return run


class RunCommand:
    """Run the specified application and browse the allocations it makes"""

    def prepare_parser(self, parser: argparse.ArgumentParser) -> None:
        parser.usage = "%(prog)s [-f FILTER] [-m module | -c cmd | file] [args]"
        parser.add_argument(
            "-f",
            "--filter",
            help="Frame filter selecting the stack frames shown for each allocation",
            dest="display_filter",
            default=None,
        )
        parser.add_argument(
            "--sample-rate",
            help="Probability of recording each allocation (default: 1.0)",
            type=float,
            default=1.0,
        )
        parser.add_argument(
            "--pagesize",
            help="Maximum height of the menu (default: fit the terminal)",
            type=int,
            default=None,
        )
        parser.add_argument(
            "--warmup",
            help="Run the application once without tracking before tracking it",
            action="store_true",
            default=False,
        )
        parser.add_argument(
            "-c",
            help="Program passed in as string",
            action="store_true",
            dest="run_as_cmd",
            default=False,
        )
        parser.add_argument(
            "-m",
            help="Run library module as a script (terminates option list)",
            action="store_true",
            dest="run_as_module",
        )
        parser.add_argument("script", help=argparse.SUPPRESS, metavar="file")
        parser.add_argument(
            "script_args",
            help=argparse.SUPPRESS,
            nargs=argparse.REMAINDER,
            metavar="module",
        )

    def validate_target_file(self, args: argparse.Namespace) -> None:
        """Ensure we are running a Python file"""
        if args.run_as_module:
            return
        try:
            if args.run_as_cmd:
                source = bytes(args.script, "UTF-8")
            else:
                source = pathlib.Path(args.script).read_bytes()
            ast.parse(source)
        except (SyntaxError, ValueError, OSError):
            raise AllocViewerCommandError(
                "Only valid Python files or commands can be executed under allocviewer",
                exit_code=1,
            )

    def run(self, args: argparse.Namespace, parser: argparse.ArgumentParser) -> None:
        with contextlib.suppress(OSError):
            if args.run_as_cmd and pathlib.Path(args.script).exists():
                parser.error("remove the option -c to run a file")

        self.validate_target_file(args)

        try:
            TrackingOptions(
                sample_rate=args.sample_rate,
                pagesize=args.pagesize,
                warmup=args.warmup,
            )
            display_filter = framefilter(args.display_filter)
        except FilterSyntaxError as error:
            raise AllocViewerCommandError(
                f"Invalid frame filter: {error}", exit_code=1
            )
        except ValueError as error:
            raise AllocViewerCommandError(str(error), exit_code=1)

        track_allocations(
            _script_runner(args),
            display_filter,
            sample_rate=args.sample_rate,
            pagesize=args.pagesize,
            warmup=args.warmup,
        )
