from unittest.mock import ANY
from unittest.mock import MagicMock
from unittest.mock import patch

import pytest

from memray import AllocatorType
from memray import FileFormat

from allocviewer._errors import FilterSyntaxError
from allocviewer._records import StackFrame
from allocviewer._tracking import TRACKED_CODE_FILENAME
from allocviewer._tracking import TrackingOptions
from allocviewer._tracking import collect_allocations
from allocviewer._tracking import sample_allocations
from allocviewer._tracking import track_allocations
from tests.utils import MockAllocationRecord

STACK = [("f", "/proj/a.py", 3)]


class FakeRandom:
    def __init__(self, values):
        self._values = iter(values)

    def random(self):
        return next(self._values)


@pytest.fixture
def tracker_mock():
    with patch("allocviewer._tracking.Tracker") as mock:
        yield mock


@pytest.fixture
def reader_mock():
    with patch("allocviewer._tracking.FileReader") as mock:
        reader = mock.return_value.__enter__.return_value
        reader.get_allocation_records.return_value = [
            MockAllocationRecord(32, AllocatorType.MALLOC, STACK),
            MockAllocationRecord(32, AllocatorType.FREE, STACK),
            MockAllocationRecord(64, AllocatorType.PYMALLOC_MALLOC, STACK),
        ]
        yield mock


@pytest.fixture
def reporter_mock():
    with patch("allocviewer._tracking.AllocationTreeReporter") as mock:
        yield mock


class TestTrackingOptions:
    def test_defaults(self):
        options = TrackingOptions.from_kwargs({})

        assert options == TrackingOptions(sample_rate=1.0, pagesize=None, warmup=True)

    @pytest.mark.parametrize(
        "options",
        [{"sample_rate": 1.5}, {"sample_rate": -0.1}, {"pagesize": 0}],
    )
    def test_invalid_values(self, options):
        with pytest.raises(ValueError):
            TrackingOptions.from_kwargs(options)

    def test_unknown_option(self):
        with pytest.raises(TypeError, match="unknown keyword argument 'page_size'"):
            TrackingOptions.from_kwargs({"page_size": 10})


class TestSampleAllocations:
    def test_deallocations_are_dropped(self):
        # GIVEN
        records = [
            MockAllocationRecord(32, AllocatorType.MALLOC, STACK),
            MockAllocationRecord(32, AllocatorType.FREE, STACK),
            MockAllocationRecord(4096, AllocatorType.MUNMAP),
            MockAllocationRecord(8, AllocatorType.PYMALLOC_FREE),
        ]

        # WHEN
        allocations = sample_allocations(records)

        # THEN
        assert [allocation.allocator for allocation in allocations] == [
            AllocatorType.MALLOC
        ]
        assert allocations[0].stack == (StackFrame("f", "/proj/a.py", 3),)

    def test_sampling(self):
        # GIVEN
        records = [
            MockAllocationRecord(size, AllocatorType.MALLOC, STACK)
            for size in (1, 2, 3, 4)
        ]

        # WHEN
        allocations = sample_allocations(
            records, sample_rate=0.5, rng=FakeRandom([0.1, 0.9, 0.5, 0.49])
        )

        # THEN
        assert [allocation.size for allocation in allocations] == [1, 4]

    def test_zero_sample_rate_keeps_nothing(self):
        records = [MockAllocationRecord(1, AllocatorType.MALLOC, STACK)]

        assert sample_allocations(records, sample_rate=0.0, rng=FakeRandom([0.0])) == []


class TestCollectAllocations:
    def test_runs_the_function_under_the_tracker(self, tracker_mock, reader_mock):
        # GIVEN
        func = MagicMock()

        # WHEN
        allocations = collect_allocations(func)

        # THEN
        func.assert_called_once_with()
        tracker_mock.assert_called_once_with(
            ANY, trace_python_allocators=True, file_format=FileFormat.ALL_ALLOCATIONS
        )
        capture = tracker_mock.call_args[0][0]
        reader_mock.assert_called_once_with(capture)
        assert [allocation.size for allocation in allocations] == [32, 64]


class TestTrackAllocations:
    def test_unknown_option_fails_before_tracking(self, tracker_mock, reporter_mock):
        func = MagicMock()

        with pytest.raises(TypeError):
            track_allocations(func, sample_size=3)

        func.assert_not_called()
        tracker_mock.assert_not_called()

    def test_invalid_filter_fails_before_tracking(self, tracker_mock, reporter_mock):
        func = MagicMock()

        with pytest.raises(FilterSyntaxError):
            track_allocations(func, '"a.py" &&')

        func.assert_not_called()
        tracker_mock.assert_not_called()

    @pytest.mark.parametrize("warmup, expected_calls", [(True, 2), (False, 1)])
    def test_warmup(
        self, tracker_mock, reader_mock, reporter_mock, warmup, expected_calls
    ):
        func = MagicMock()

        track_allocations(func, warmup=warmup)

        assert func.call_count == expected_calls

    def test_builds_and_renders_the_tree(
        self, tracker_mock, reader_mock, reporter_mock
    ):
        # GIVEN
        func = MagicMock()

        # WHEN
        track_allocations(func, ":f", pagesize=15)

        # THEN
        reporter_mock.from_snapshot.assert_called_once_with(
            ANY, display_filter=ANY, pagesize=15
        )
        allocations = reporter_mock.from_snapshot.call_args[0][0]
        assert [allocation.size for allocation in allocations] == [32, 64]
        display_filter = reporter_mock.from_snapshot.call_args[1]["display_filter"]
        assert display_filter(allocations[0], StackFrame("f", "/proj/a.py", 3))
        assert not display_filter(allocations[0], StackFrame("g", "/proj/a.py", 3))
        reporter_mock.from_snapshot.return_value.render.assert_called_once_with()

    def test_string_code_runs_in_namespace(
        self, tracker_mock, reader_mock, reporter_mock
    ):
        namespace = {"base": 41}

        track_allocations("answer = base + 1", namespace=namespace, warmup=False)

        assert namespace["answer"] == 42

    def test_string_code_is_compiled_as_tracked_code(
        self, tracker_mock, reader_mock, reporter_mock
    ):
        namespace = {}

        track_allocations(
            "import sys\nframe = sys._getframe()",
            namespace=namespace,
            warmup=False,
        )

        assert namespace["frame"].f_code.co_filename == TRACKED_CODE_FILENAME

    def test_default_pagesize_accounts_for_the_code(
        self, tracker_mock, reader_mock, reporter_mock
    ):
        with patch("allocviewer._tracking.default_pagesize") as pagesize_mock:
            pagesize_mock.return_value = 17
            track_allocations("a = 1\nb = 2\nc = 3", warmup=False)

        pagesize_mock.assert_called_once_with(3)
        assert reporter_mock.from_snapshot.call_args[1]["pagesize"] == 17
