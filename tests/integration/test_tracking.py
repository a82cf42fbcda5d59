import random

from allocviewer._records import SourceLocation
from allocviewer._records import StackFrame
from allocviewer._sources import SELF_PACKAGE
from allocviewer._sources import SourceLocator
from allocviewer._tracking import TRACKED_CODE_FILENAME
from allocviewer._tracking import _as_callable
from allocviewer._tracking import collect_allocations
from allocviewer.reporters.tree import build_tree

ALLOCATING_CODE = "x = [str(i) * 10 for i in range(2000)]"


def test_tracked_code_is_its_own_group():
    # GIVEN
    namespace = {"__name__": "__main__"}
    locator = SourceLocator()

    # WHEN
    allocations = collect_allocations(_as_callable(ALLOCATING_CODE, namespace))
    tree = build_tree(allocations, locator=locator)

    # THEN
    assert len(namespace["x"]) == 2000
    arena = tree.arena
    groups = arena.payloads(arena[tree.root].children)
    assert [group.location for group in groups] == [
        SourceLocation(TRACKED_CODE_FILENAME, 1)
    ]
    (group,) = groups
    assert group.n_allocations >= 2000
    assert tree.header.n_allocations == group.n_allocations

    (group_id,) = arena[tree.root].children
    for allocation_id in arena[group_id].children:
        frames = arena.payloads(arena[allocation_id].children)
        assert frames
        assert all(isinstance(frame, StackFrame) for frame in frames)
        assert all(locator.package(frame.file) != SELF_PACKAGE for frame in frames)


def test_every_stack_ends_in_the_viewer_frames():
    # GIVEN
    locator = SourceLocator()

    # WHEN
    allocations = collect_allocations(_as_callable(ALLOCATING_CODE, None))

    # THEN
    assert allocations
    tracked = [
        allocation
        for allocation in allocations
        if any(frame.file == TRACKED_CODE_FILENAME for frame in allocation.stack)
    ]
    assert len(tracked) >= 2000
    for allocation in tracked:
        packages = [locator.package(frame.file) for frame in allocation.stack]
        assert SELF_PACKAGE in packages
        first_own_frame = packages.index(SELF_PACKAGE)
        files = [frame.file for frame in allocation.stack[:first_own_frame]]
        assert TRACKED_CODE_FILENAME in files


def test_sampling_drops_allocations():
    allocations = collect_allocations(
        _as_callable(ALLOCATING_CODE, None), sample_rate=0.0, rng=random.Random(0)
    )

    assert allocations == []
