import itertools
from typing import Any
from typing import Dict
from typing import Iterator
from typing import Optional

from memray import AllocatorType
from rich.text import Text

from allocviewer._records import Allocation
from allocviewer._records import GroupEntry
from allocviewer._records import Header
from allocviewer._records import StackFrame
from allocviewer._sources import DEFAULT_LOCATOR
from allocviewer._sources import NATIVE_CODE
from allocviewer._sources import PYTHON_INTERNALS
from allocviewer._sources import SELF_PACKAGE
from allocviewer._sources import SourceLocator

COLORS = ("blue", "cyan", "green", "red", "magenta")

FIXED_PACKAGE_STYLES = {
    PYTHON_INTERNALS: "dim",
    NATIVE_CODE: "dim",
    SELF_PACKAGE: "bold red",
}


class Palette:
    """Colours assigned to packages and allocators on first use.

    Assignments are never forgotten, so the same package keeps its colour
    for as long as the palette lives.
    """

    def __init__(self) -> None:
        self._package_styles: Dict[str, str] = dict(FIXED_PACKAGE_STYLES)
        self._package_colors: Iterator[str] = itertools.cycle(COLORS)
        self._allocator_styles: Dict[AllocatorType, str] = {}
        self._allocator_colors: Iterator[str] = itertools.cycle(COLORS)

    def package(self, name: str) -> str:
        if name not in self._package_styles:
            self._package_styles[name] = next(self._package_colors)
        return self._package_styles[name]

    def allocator(self, allocator: AllocatorType) -> str:
        if allocator not in self._allocator_styles:
            self._allocator_styles[allocator] = next(self._allocator_colors)
        return self._allocator_styles[allocator]


DEFAULT_PALETTE = Palette()


class PayloadRenderer:
    """Render every kind of tree payload as a single line of styled text."""

    def __init__(
        self,
        locator: Optional[SourceLocator] = None,
        palette: Optional[Palette] = None,
    ) -> None:
        self.locator = locator or DEFAULT_LOCATOR
        self.palette = palette or DEFAULT_PALETTE

    def location(self, file: str, lineno: int) -> Text:
        _, package, relative_path = self.locator.resolve(file)
        text = Text()
        if package:
            text.append(package, style=self.palette.package(package))
        text.append(f"{relative_path}:{lineno}")
        return text

    def header(self, header: Header) -> Text:
        text = Text(
            f"{header.n_allocations} allocs: {header.n_bytes} bytes"
            f" at {header.n_locations} source locations"
        )
        if header.n_unattributed:
            text.append(
                f" (ignoring {header.n_unattributed} allocs:"
                f" {header.unattributed_bytes} bytes)",
                style="dim",
            )
        return text

    def group(self, group: GroupEntry) -> Text:
        text = Text(f"{group.n_allocations} allocs: {group.n_bytes} bytes at ")
        text.append_text(self.location(group.location.file, group.location.lineno))
        return text

    def allocation(self, allocation: Allocation) -> Text:
        text = Text(f"{allocation.size} bytes for ")
        text.append(
            allocation.allocator.name,
            style=self.palette.allocator(allocation.allocator),
        )
        return text

    def frame(self, frame: StackFrame) -> Text:
        text = self.location(frame.file, frame.lineno)
        text.append(f" {frame.function}", style="bold")
        return text

    def __call__(self, payload: Any) -> Text:
        if isinstance(payload, Header):
            return self.header(payload)
        if isinstance(payload, GroupEntry):
            return self.group(payload)
        if isinstance(payload, Allocation):
            return self.allocation(payload)
        if isinstance(payload, StackFrame):
            return self.frame(payload)
        raise TypeError(f"cannot render {payload!r}")
