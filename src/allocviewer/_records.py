"""Allocation records and stack frames, as seen by the viewer."""
from dataclasses import dataclass
from typing import Any
from typing import Dict
from typing import FrozenSet
from typing import NamedTuple
from typing import Tuple

from memray import AllocatorType


class StackFrame(NamedTuple):
    """A frame of a captured call stack.

    The field order matches the ``(function, file, lineno)`` tuples that
    memray returns from ``AllocationRecord.stack_trace()``.
    """

    function: str
    file: str
    lineno: int


@dataclass(frozen=True)
class SourceLocation:
    file: str
    lineno: int


@dataclass(frozen=True, eq=False)
class Allocation:
    """A single sampled allocation.

    ``stack`` is ordered innermost frame first: ``stack[0]`` is the frame
    that was executing when the allocation happened.
    """

    size: int
    allocator: AllocatorType
    stack: Tuple[StackFrame, ...]

    @classmethod
    def from_record(cls, record: Any) -> "Allocation":
        return cls(
            size=record.size,
            allocator=AllocatorType(record.allocator),
            stack=tuple(StackFrame(*element) for element in record.stack_trace()),
        )


DEALLOCATORS = frozenset(
    {AllocatorType.FREE, AllocatorType.MUNMAP, AllocatorType.PYMALLOC_FREE}
)

_ALIGNED = frozenset(
    {
        AllocatorType.POSIX_MEMALIGN,
        AllocatorType.ALIGNED_ALLOC,
        AllocatorType.MEMALIGN,
        AllocatorType.VALLOC,
        AllocatorType.PVALLOC,
    }
)
_PYMALLOC = frozenset(
    {
        AllocatorType.PYMALLOC_MALLOC,
        AllocatorType.PYMALLOC_CALLOC,
        AllocatorType.PYMALLOC_REALLOC,
    }
)
_SYSTEM = (
    frozenset({AllocatorType.MALLOC, AllocatorType.CALLOC, AllocatorType.REALLOC})
    | _ALIGNED
)

# Each family lists the allocators it covers. A single allocator is its own
# family, so "MALLOC" and "SYSTEM" are both valid allocation types.
ALLOCATOR_FAMILIES: Dict[str, FrozenSet[AllocatorType]] = {
    "ANY": frozenset(AllocatorType) - DEALLOCATORS,
    "SYSTEM": _SYSTEM,
    "ALIGNED": _ALIGNED,
    "PYMALLOC": _PYMALLOC,
    **{
        allocator.name: frozenset({allocator})
        for allocator in AllocatorType
        if allocator not in DEALLOCATORS
    },
}


def is_allocation(record: Any) -> bool:
    return AllocatorType(record.allocator) not in DEALLOCATORS


@dataclass(frozen=True)
class Header:
    """Totals shown on the first line of the tree."""

    n_allocations: int
    n_bytes: int
    n_locations: int
    n_unattributed: int = 0
    unattributed_bytes: int = 0


@dataclass(frozen=True)
class GroupEntry:
    """The allocations attributed to one source location."""

    location: SourceLocation
    n_allocations: int
    n_bytes: int
