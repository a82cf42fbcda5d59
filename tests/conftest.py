import pytest

from allocviewer._sources import SourceLocator
from tests.utils import make_locator


@pytest.fixture
def locator() -> SourceLocator:
    return make_locator()
