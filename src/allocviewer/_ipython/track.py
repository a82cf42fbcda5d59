import argparse
import shlex

from IPython.core.error import UsageError
from IPython.core.magic import Magics
from IPython.core.magic import cell_magic
from IPython.core.magic import magics_class

from allocviewer._tracking import TrackingOptions
from allocviewer._tracking import track_allocations
from allocviewer.filters import framefilter


def argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="%%track_allocs")
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
        "--no-warmup",
        help="Do not run the cell once without tracking before tracking it",
        action="store_false",
        dest="warmup",
        default=True,
    )
    return parser


@magics_class
class TrackAllocationsMagics(Magics):
    @cell_magic  # type: ignore
    def track_allocs(self, line: str, cell: str) -> None:
        """Track the allocations made by the cell and browse them in a menu."""
        if self.shell is None:
            raise UsageError("Cannot track allocations when not in a shell")

        try:
            options = argument_parser().parse_args(shlex.split(line))
        except SystemExit:
            # argparse wants to bail if the options aren't valid.
            # It already printed a message, just return control to IPython.
            return

        try:
            TrackingOptions(
                sample_rate=options.sample_rate,
                pagesize=options.pagesize,
                warmup=options.warmup,
            )
            display_filter = framefilter(options.display_filter)
        except ValueError as error:
            raise UsageError(str(error))

        track_allocations(
            self.shell.transform_cell(cell),
            display_filter,
            namespace=self.shell.user_ns,
            sample_rate=options.sample_rate,
            pagesize=options.pagesize,
            warmup=options.warmup,
        )


assert TrackAllocationsMagics.track_allocs.__doc__ is not None
TrackAllocationsMagics.track_allocs.__doc__ += "\n\n" + argument_parser().format_help()
