"""Utilities / Helpers for writing tests."""
import asyncio
import os
import sys
from dataclasses import dataclass
from typing import List
from typing import Optional
from typing import Tuple

from memray import AllocatorType

from allocviewer._records import Allocation
from allocviewer._records import StackFrame
from allocviewer._sources import SELF_DIR
from allocviewer._sources import SourceLocator

PROJECT_ROOT = "/proj"
SITE_PACKAGES = "/usr/lib/python3.11/site-packages"
STDLIB_ROOT = "/usr/lib/python3.11"

INSTRUMENTATION_FRAMES = [
    ("collect_allocations", os.path.join(SELF_DIR, "_tracking.py"), 88),
    ("track_allocations", os.path.join(SELF_DIR, "_tracking.py"), 141),
]


def make_locator() -> SourceLocator:
    return SourceLocator(
        search_path=[PROJECT_ROOT, SITE_PACKAGES], stdlib_dir=STDLIB_ROOT
    )


@dataclass
class MockAllocationRecord:
    """Mimics :py:class:`memray._memray.AllocationRecord`."""

    size: int
    allocator: AllocatorType
    _stack: Optional[List[Tuple[str, str, int]]] = None
    tid: int = 1
    address: int = 0x1000000
    stack_id: int = 1
    n_allocations: int = 1
    thread_name: str = ""

    def stack_trace(self, max_stacks=0):
        if self._stack is None:
            raise AssertionError("did not expect a call to `stack_trace`")
        if max_stacks == 0:
            return self._stack
        return self._stack[:max_stacks]


def make_allocation(size, allocator=AllocatorType.MALLOC, stack=()):
    return Allocation(
        size=size,
        allocator=allocator,
        stack=tuple(StackFrame(*frame) for frame in stack),
    )


def async_run(coro):
    # This technique shamelessly cribbed from Textual itself...
    # `asyncio.get_event_loop()` is deprecated since Python 3.10:
    asyncio_get_event_loop_is_deprecated = sys.version_info >= (3, 10, 0)

    if asyncio_get_event_loop_is_deprecated:
        # N.B. This doesn't work with Python<3.10, as we end up with 2 event loops:
        return asyncio.run(coro)
    else:
        # pragma: no cover
        # However, this works with Python<3.10:
        event_loop = asyncio.get_event_loop()
        return event_loop.run_until_complete(coro)
