from allocviewer._errors import AllocViewerError
from allocviewer._errors import FilterSyntaxError
from allocviewer._ipython import load_ipython_extension
from allocviewer._records import Allocation
from allocviewer._records import SourceLocation
from allocviewer._records import StackFrame
from allocviewer._sources import SourceLocator
from allocviewer._tracking import collect_allocations
from allocviewer._tracking import track_allocations
from allocviewer._version import __version__
from allocviewer.filters import framefilter
from allocviewer.reporters.tree import AllocationTreeReporter
from allocviewer.reporters.tree import build_tree

__all__ = [
    "Allocation",
    "AllocationTreeReporter",
    "AllocViewerError",
    "FilterSyntaxError",
    "SourceLocation",
    "SourceLocator",
    "StackFrame",
    "__version__",
    "build_tree",
    "collect_allocations",
    "framefilter",
    "load_ipython_extension",
    "track_allocations",
]
