import logging
import shutil
from dataclasses import dataclass
from typing import Any
from typing import Callable
from typing import Dict
from typing import Iterable
from typing import List
from typing import NamedTuple
from typing import Optional

from textual import log
from textual.app import App
from textual.app import ComposeResult
from textual.app import SuspendNotSupported
from textual.binding import Binding
from textual.screen import Screen
from textual.widgets import Footer
from textual.widgets import Tree
from textual.widgets.tree import TreeNode

from allocviewer._editor import open_in_editor
from allocviewer._errors import AllocViewerError
from allocviewer._records import Allocation
from allocviewer._records import GroupEntry
from allocviewer._records import Header
from allocviewer._records import SourceLocation
from allocviewer._records import StackFrame
from allocviewer._sources import DEFAULT_LOCATOR
from allocviewer._sources import SourceLocator
from allocviewer.attribution import attribute
from allocviewer.attribution import frames_for
from allocviewer.filters import Predicate
from allocviewer.filters import framefilter
from allocviewer.filters import in_project
from allocviewer.filters import instrumentation
from allocviewer.filters import show_all
from allocviewer.reporters.arena import NodeArena
from allocviewer.reporters.render import PayloadRenderer

logger = logging.getLogger(__name__)

Editor = Callable[[str, int], None]


class EditRequest(NamedTuple):
    """Returned by the app when it exits to let an editor use the terminal."""

    path: str
    lineno: int
    cursor_line: int


@dataclass
class AllocationTree:
    """Allocations grouped by source location, ready to be browsed."""

    arena: NodeArena
    root: int
    header: Header
    locator: SourceLocator
    default: Predicate
    bottom: Predicate
    display: Predicate


def build_tree(
    allocations: Iterable[Allocation],
    display_filter: Any = None,
    *,
    locator: Optional[SourceLocator] = None,
) -> AllocationTree:
    """Group allocations by the first in-project frame of their stacks.

    The tree has a :py:class:`Header` root, one :py:class:`GroupEntry` per
    source location, the allocations of each location below it, and below
    each allocation the frames selected by ``display_filter``. Allocations
    without any in-project frame are only counted in the header.
    """
    locator = locator or DEFAULT_LOCATOR
    locator.clear()
    default = in_project(locator)
    bottom = instrumentation(locator)
    display = framefilter(display_filter, locator=locator)

    groups: Dict[SourceLocation, List[Allocation]] = {}
    n_unattributed = unattributed_bytes = 0
    for allocation in allocations:
        attribution = attribute(default, allocation, bottom)
        if attribution is None:
            n_unattributed += 1
            unattributed_bytes += allocation.size
            continue
        frame = allocation.stack[attribution.index]
        location = SourceLocation(frame.file, frame.lineno)
        groups.setdefault(location, []).append(allocation)

    arena = NodeArena()
    root = arena.add(None)
    n_allocations = n_bytes = 0
    for location, members in groups.items():
        size = sum(allocation.size for allocation in members)
        n_allocations += len(members)
        n_bytes += size
        group_id = arena.add(GroupEntry(location, len(members), size), root)
        for allocation in members:
            allocation_id = arena.add(allocation, group_id)
            arena.replace_children(
                allocation_id, frames_for(display, allocation, bottom)
            )
            arena[allocation_id].folded = True
        arena[group_id].folded = True

    header = Header(
        n_allocations=n_allocations,
        n_bytes=n_bytes,
        n_locations=len(groups),
        n_unattributed=n_unattributed,
        unattributed_bytes=unattributed_bytes,
    )
    arena[root].payload = header
    logger.debug(
        "Grouped %d allocations into %d source locations, ignored %d",
        n_allocations,
        len(groups),
        n_unattributed,
    )
    return AllocationTree(
        arena=arena,
        root=root,
        header=header,
        locator=locator,
        default=default,
        bottom=bottom,
        display=display,
    )




class AllocationMenu(Tree[int]):
    """The allocation tree, with the allocation specific commands.

    Every tree node holds the id of its :py:class:`NodeArena` node as data.
    Cursor movement, folding and scrolling are the ones of textual's
    :py:class:`Tree`, and the widget is never taller than ``maxsize`` lines
    or than its visible lines.

    - ``e`` opens the source of the current group or frame in an editor
    - ``f`` shows the frames of the current allocation selected by the filter
    - ``r`` shows the frames selected by the default filter
    - ``R`` shows every frame of the current allocation
    """

    BINDINGS = [
        Binding("e", "edit", "Edit source"),
        Binding("f", "show_frames('display')", "Filtered frames"),
        Binding("r", "show_frames('default')", "Default frames"),
        Binding("R,shift+r", "show_frames('all')", "All frames"),
    ]

    DEFAULT_CSS = """
    AllocationMenu {
        width: 100%;
    }
    """

    def __init__(
        self,
        tree: AllocationTree,
        *,
        maxsize: int,
        editor: Editor = open_in_editor,
        cursor_line: int = 1,
        render: Optional[Callable[[Any], Any]] = None,
    ) -> None:
        self.allocation_tree = tree
        self.arena = tree.arena
        self.editor = editor
        self.maxsize = max(1, maxsize)
        self.pagesize = self.maxsize
        self.initial_cursor_line = cursor_line
        self.render_payload = render or PayloadRenderer(tree.locator)
        super().__init__(self.render_payload(tree.header), data=tree.root)

    def on_mount(self) -> None:
        for child_id in self.arena[self.allocation_tree.root].children:
            self.add_node(self.root, child_id)
        self.root.expand()
        # The first line is the header: start on the first group
        self.cursor_line = self.initial_cursor_line
        self.update_pagesize()

    def add_node(self, parent: TreeNode[int], node_id: int) -> None:
        node = self.arena[node_id]
        label = self.render_payload(node.payload)
        if isinstance(node.payload, StackFrame):
            parent.add_leaf(label, data=node_id)
            return
        child = parent.add(
            label,
            data=node_id,
            expand=not node.folded,
            allow_expand=bool(node.children),
        )
        for grandchild_id in node.children:
            self.add_node(child, grandchild_id)

    def update_pagesize(self) -> None:
        self.pagesize = max(1, min(self.maxsize, self.last_line + 1))
        self.styles.height = self.pagesize

    def on_tree_node_expanded(self, event: Tree.NodeExpanded[int]) -> None:
        if event.node.data is not None:
            self.arena[event.node.data].folded = False
        self.update_pagesize()

    def on_tree_node_collapsed(self, event: Tree.NodeCollapsed[int]) -> None:
        if event.node.data is not None:
            self.arena[event.node.data].folded = True
        self.update_pagesize()

    def source_location(self, node_id: int) -> Optional[SourceLocation]:
        """The source location the ``e`` command opens for a node.

        The header has no location. An allocation opens the location of its
        group, a group its own location and a stack frame its file and line.
        Any other payload is a programming error and fails an assertion.
        """
        node = self.arena[node_id]
        payload = node.payload
        if isinstance(payload, Header):
            return None
        if isinstance(payload, Allocation):
            assert node.parent is not None
            payload = self.arena[node.parent].payload
        if isinstance(payload, GroupEntry):
            return payload.location
        assert isinstance(payload, StackFrame), f"unexpected tree node {payload!r}"
        return SourceLocation(payload.file, payload.lineno)

    def edit(self, node_id: int) -> None:
        location = self.source_location(node_id)
        if location is None or location.lineno <= 0:
            return
        path = self.allocation_tree.locator.full_path(location.file)
        if not path:
            return
        self.editor(path, location.lineno)

    def show_frames(self, node: TreeNode[int], predicate: Predicate) -> None:
        node_id = node.data
        assert node_id is not None
        allocation = self.arena[node_id].payload
        self.arena.replace_children(
            node_id, frames_for(predicate, allocation, self.allocation_tree.bottom)
        )
        node.remove_children()
        for child_id in self.arena[node_id].children:
            label = self.render_payload(self.arena[child_id].payload)
            node.add_leaf(label, data=child_id)
        node.allow_expand = bool(self.arena[node_id].children)
        self.update_pagesize()

    def action_edit(self) -> None:
        node = self.cursor_node
        if node is None or node.data is None:
            return
        log(f"edit requested on line {self.cursor_line}")
        try:
            self.edit(node.data)
        except AllocViewerError as error:
            self.notify(str(error), severity="error")

    def action_show_frames(self, which: str) -> None:
        node = self.cursor_node
        if node is None or node.data is None:
            return
        if not isinstance(self.arena[node.data].payload, Allocation):
            return
        predicates = {
            "display": self.allocation_tree.display,
            "default": self.allocation_tree.default,
            "all": show_all,
        }
        log(f"showing {which} frames on line {self.cursor_line}")
        self.show_frames(node, predicates[which])


class AllocationMenuScreen(Screen[None]):
    BINDINGS = [
        Binding("q", "app.quit", "Quit"),
        Binding("escape", "app.quit", show=False),
    ]

    def __init__(
        self,
        tree: AllocationTree,
        *,
        maxsize: int,
        editor: Editor,
        cursor_line: int = 1,
    ) -> None:
        super().__init__()
        self.allocation_tree = tree
        self.maxsize = maxsize
        self.editor = editor
        self.cursor_line = cursor_line

    def compose(self) -> ComposeResult:
        yield AllocationMenu(
            self.allocation_tree,
            maxsize=self.maxsize,
            editor=self.editor,
            cursor_line=self.cursor_line,
        )
        yield Footer()

    def on_mount(self) -> None:
        self.query_one(AllocationMenu).focus()


class AllocationViewerApp(App[EditRequest]):
    def __init__(
        self,
        tree: AllocationTree,
        *,
        maxsize: int,
        editor: Optional[Editor] = None,
        cursor_line: int = 1,
    ) -> None:
        super().__init__()
        self.menu_screen = AllocationMenuScreen(
            tree,
            maxsize=maxsize,
            editor=editor or self.run_editor,
            cursor_line=cursor_line,
        )

    def on_mount(self) -> None:
        self.push_screen(self.menu_screen)

    @property
    def menu(self) -> AllocationMenu:
        return self.menu_screen.query_one(AllocationMenu)

    def run_editor(self, path: str, lineno: int) -> None:
        try:
            with self.suspend():
                open_in_editor(path, lineno)
        except SuspendNotSupported:
            # Inline drivers cannot give the terminal away: exit and let the
            # reporter run the editor and show the tree again.
            logger.debug("Cannot suspend the app, exiting to run the editor")
            self.exit(EditRequest(path, lineno, self.menu.cursor_line))


def default_pagesize(command_lines: int = 1) -> int:
    """Fit the menu and its footer below a command of ``command_lines`` lines."""
    height = shutil.get_terminal_size().lines
    return max(height - command_lines - 1, int(0.75 * height))


class AllocationTreeReporter:
    def __init__(self, tree: AllocationTree, *, pagesize: int) -> None:
        super().__init__()
        self.tree = tree
        self.pagesize = pagesize

    @classmethod
    def from_snapshot(
        cls,
        allocations: Iterable[Allocation],
        *,
        display_filter: Any = None,
        pagesize: Optional[int] = None,
        locator: Optional[SourceLocator] = None,
    ) -> "AllocationTreeReporter":
        tree = build_tree(allocations, display_filter, locator=locator)
        return cls(tree, pagesize=pagesize or default_pagesize())

    def get_app(
        self, editor: Optional[Editor] = None, cursor_line: int = 1
    ) -> AllocationViewerApp:
        return AllocationViewerApp(
            self.tree, maxsize=self.pagesize, editor=editor, cursor_line=cursor_line
        )

    def render(self, *, inline: bool = True) -> None:
        cursor_line = 1
        while True:
            request = self.get_app(cursor_line=cursor_line).run(inline=inline)
            if request is None:
                return
            try:
                open_in_editor(request.path, request.lineno)
            except AllocViewerError as error:
                logger.error("%s", error)
            cursor_line = request.cursor_line
