"""Tree nodes addressed by integer ids, independent of what they contain."""
from dataclasses import dataclass
from dataclasses import field
from typing import Any
from typing import Iterable
from typing import List
from typing import Optional


@dataclass
class Node:
    payload: Any
    parent: Optional[int]
    children: List[int] = field(default_factory=list)
    folded: bool = False


class NodeArena:
    """Tree nodes addressed by integer ids.

    Children are owned by their parent's ``children`` list. Nodes only refer
    to their parent by id, and ids of removed nodes are reused. The ``folded``
    flag of a node survives the widget showing it, so a tree can be shown
    again in the state it was left in.
    """

    def __init__(self) -> None:
        self._nodes: List[Optional[Node]] = []
        self._free: List[int] = []

    def __getitem__(self, node_id: int) -> Node:
        node = self._nodes[node_id]
        if node is None:
            raise KeyError(f"node {node_id} was removed")
        return node

    def __len__(self) -> int:
        return len(self._nodes) - len(self._free)

    def add(self, payload: Any, parent: Optional[int] = None) -> int:
        node = Node(payload=payload, parent=parent)
        if self._free:
            node_id = self._free.pop()
            self._nodes[node_id] = node
        else:
            node_id = len(self._nodes)
            self._nodes.append(node)
        if parent is not None:
            self[parent].children.append(node_id)
        return node_id

    def _release(self, node_id: int) -> None:
        for child in self[node_id].children:
            self._release(child)
        self._nodes[node_id] = None
        self._free.append(node_id)

    def replace_children(self, node_id: int, payloads: Iterable[Any]) -> None:
        node = self[node_id]
        for child in node.children:
            self._release(child)
        node.children = []
        for payload in payloads:
            self.add(payload, node_id)

    def payloads(self, node_ids: Iterable[int]) -> List[Any]:
        return [self[node_id].payload for node_id in node_ids]
