import argparse

from rich import print as pprint

from allocviewer._errors import AllocViewerCommandError
from allocviewer._errors import FilterSyntaxError
from allocviewer._filter_syntax import parse


class FilterCommand:
    """Check a frame filter expression and show how it is understood"""

    def prepare_parser(self, parser: argparse.ArgumentParser) -> None:
        parser.add_argument(
            "expression",
            help='Frame filter expression, e.g. \'"@mypkg" && !PYMALLOC\'',
        )

    def run(self, args: argparse.Namespace, parser: argparse.ArgumentParser) -> None:
        try:
            expression = parse(args.expression)
        except FilterSyntaxError as error:
            raise AllocViewerCommandError(
                f"Invalid frame filter: {error}", exit_code=1
            )
        pprint(expression)
