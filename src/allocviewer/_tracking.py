import logging
import random
import tempfile
from dataclasses import dataclass
from dataclasses import fields
from pathlib import Path
from types import CodeType
from typing import Any
from typing import Callable
from typing import Dict
from typing import Iterable
from typing import List
from typing import Optional
from typing import Union

from memray import FileFormat
from memray import FileReader
from memray import Tracker

from allocviewer._records import Allocation
from allocviewer._records import is_allocation
from allocviewer.filters import framefilter
from allocviewer.reporters import BaseReporter
from allocviewer.reporters.tree import AllocationTreeReporter
from allocviewer.reporters.tree import default_pagesize

logger = logging.getLogger(__name__)

TRACKED_CODE_FILENAME = "<tracked code>"


@dataclass(frozen=True)
class TrackingOptions:
    sample_rate: float = 1.0
    pagesize: Optional[int] = None
    warmup: bool = True

    def __post_init__(self) -> None:
        if not 0.0 <= self.sample_rate <= 1.0:
            raise ValueError(
                f"sample_rate must be between 0 and 1, not {self.sample_rate}"
            )
        if self.pagesize is not None and self.pagesize < 1:
            raise ValueError(f"pagesize must be positive, not {self.pagesize}")

    @classmethod
    def from_kwargs(cls, options: Dict[str, Any]) -> "TrackingOptions":
        known = {field.name for field in fields(cls)}
        for name in options:
            if name not in known:
                raise TypeError(f"unknown keyword argument {name!r}")
        return cls(**options)


def sample_allocations(
    records: Iterable[Any],
    sample_rate: float = 1.0,
    rng: Optional[random.Random] = None,
) -> List[Allocation]:
    """Keep each allocation record with probability ``sample_rate``."""
    rng = rng or random.Random()
    allocations = []
    n_records = 0
    for record in records:
        if not is_allocation(record):
            continue
        n_records += 1
        if sample_rate < 1.0 and rng.random() >= sample_rate:
            continue
        allocations.append(Allocation.from_record(record))
    logger.debug("Sampled %d of %d allocations", len(allocations), n_records)
    return allocations


def collect_allocations(
    func: Callable[[], Any],
    *,
    sample_rate: float = 1.0,
    rng: Optional[random.Random] = None,
) -> List[Allocation]:
    """Call ``func`` with memray tracking every allocation it makes."""
    with tempfile.TemporaryDirectory(prefix="allocviewer-") as tmpdir:
        capture = Path(tmpdir) / "allocations.bin"
        with Tracker(
            capture,
            trace_python_allocators=True,
            file_format=FileFormat.ALL_ALLOCATIONS,
        ):
            func()
        with FileReader(capture) as reader:
            return sample_allocations(
                reader.get_allocation_records(), sample_rate, rng
            )


def _as_callable(
    code: Union[str, Callable[[], Any]], namespace: Optional[Dict[str, Any]]
) -> Callable[[], Any]:
    if callable(code):
        return code
    compiled: CodeType = compile(code, TRACKED_CODE_FILENAME, "exec")
    if namespace is None:
        namespace = {"__name__": "__main__"}

    def run() -> None:
        exec(compiled, namespace)

    return run


def track_allocations(
    code: Union[str, Callable[[], Any]],
    display_filter: Any = None,
    *,
    namespace: Optional[Dict[str, Any]] = None,
    **options: Any,
) -> None:
    """Track the allocations made by ``code`` and browse them in a foldable menu.

    ``code`` is a callable taking no arguments or a string of Python source,
    executed in ``namespace``. ``display_filter`` selects the frames shown
    below every allocation, see :py:func:`allocviewer.framefilter`.

    Options:

    - ``sample_rate``: the probability of keeping each allocation (default 1.0)
    - ``pagesize``: the maximum height of the menu (default: fit the terminal)
    - ``warmup``: run ``code`` once without tracking first (default ``True``)

    Keybindings: the cursor keys move, space folds and unfolds, ``e`` opens
    an editor at the current allocation or frame, ``f`` shows the frames of
    an allocation selected by ``display_filter``, ``r`` shows the frames
    selected by the default filter, ``R`` shows all frames and ``q`` quits.
    """
    settings = TrackingOptions.from_kwargs(options)
    predicate = framefilter(display_filter)
    func = _as_callable(code, namespace)

    if settings.warmup:
        func()

    allocations = collect_allocations(func, sample_rate=settings.sample_rate)
    if settings.pagesize is not None:
        pagesize = settings.pagesize
    elif isinstance(code, str):
        pagesize = default_pagesize(len(code.splitlines()) or 1)
    else:
        pagesize = default_pagesize()
    reporter: BaseReporter = AllocationTreeReporter.from_snapshot(
        allocations, display_filter=predicate, pagesize=pagesize
    )
    reporter.render()
