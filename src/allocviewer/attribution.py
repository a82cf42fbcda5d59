"""Locate the frame an allocation is attributed to."""
from typing import NamedTuple
from typing import Optional
from typing import Tuple

from allocviewer._records import Allocation
from allocviewer._records import StackFrame
from allocviewer.filters import Predicate
from allocviewer.filters import show_all


class Attribution(NamedTuple):
    """The attributing frame of an allocation and the frames to display.

    ``display`` always starts at ``index``.
    """

    index: int
    display: range


def attribute(
    predicate: Predicate, allocation: Allocation, bottom: Predicate
) -> Optional[Attribution]:
    """Find the first frame of ``allocation`` matching ``predicate``.

    The frames shown for the allocation go from that frame up to, but not
    including, the next frame matching ``bottom``: the frames of the viewer's
    own instrumentation, which end every tracked stack. Returns ``None`` when
    no frame matches, or when the matching frame is itself a ``bottom`` frame.
    """
    stack = allocation.stack
    for index, frame in enumerate(stack):
        if predicate(allocation, frame):
            break
    else:
        return None

    if predicate is show_all:
        return Attribution(index, range(index, len(stack)))

    if bottom(allocation, stack[index]):
        return None

    stop = next(
        (
            position
            for position in range(index + 1, len(stack))
            if bottom(allocation, stack[position])
        ),
        len(stack),
    )
    return Attribution(index, range(index, stop))


def frames_for(
    predicate: Predicate, allocation: Allocation, bottom: Predicate
) -> Tuple[StackFrame, ...]:
    attribution = attribute(predicate, allocation, bottom)
    if attribution is None:
        return ()
    display = attribution.display
    return allocation.stack[display.start : display.stop]
