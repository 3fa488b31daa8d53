"""Branching move tree stored as an id-indexed arena of nodes."""

import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field

from ..errors import NodeNotFound, TreeEditError

# Move-quality symbols; a node carries at most one of them.
PRINCIPAL_SYMBOLS = frozenset({"!!", "!", "!?", "?!", "?", "??"})


def new_node_id() -> str:
    return str(uuid.uuid4())


@dataclass
class AnalysisNode:
    """One position in the tree. Links to other nodes are ids only."""

    id: str
    fen: str
    parent_id: str | None = None
    san: str | None = None
    uci: str | None = None
    comment: str = ""
    nags: list[str] = field(default_factory=list)
    children: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class NodeRecord:
    """Flat, persistable form of a node; ``sort_index`` orders siblings."""

    id: str
    parent_id: str | None
    fen: str
    san: str | None
    uci: str | None
    comment: str
    nags: list[str]
    sort_index: int


class MoveTree:
    """Mainline plus variations rooted at ``root_id``.

    Children are only added through ``add_child``, so the structure cannot
    contain cycles. Walks still guard against revisiting a node so that
    corrupted records loaded from disk cannot loop forever.
    """

    def __init__(self, root_fen: str, root_id: str | None = None):
        self.root_id = root_id or new_node_id()
        self.nodes: dict[str, AnalysisNode] = {
            self.root_id: AnalysisNode(id=self.root_id, fen=root_fen)
        }

    def __contains__(self, node_id: str) -> bool:
        return node_id in self.nodes

    def __len__(self) -> int:
        return len(self.nodes)

    def get(self, node_id: str) -> AnalysisNode:
        try:
            return self.nodes[node_id]
        except KeyError:
            raise NodeNotFound(node_id) from None

    @property
    def root(self) -> AnalysisNode:
        return self.nodes[self.root_id]

    def add_child(
        self,
        parent_id: str,
        fen: str,
        san: str | None = None,
        uci: str | None = None,
        node_id: str | None = None,
    ) -> AnalysisNode:
        parent = self.get(parent_id)
        child = AnalysisNode(
            id=node_id or new_node_id(),
            fen=fen,
            parent_id=parent_id,
            san=san,
            uci=uci,
        )
        self.nodes[child.id] = child
        parent.children.append(child.id)
        return child

    def find_child_by_uci(self, parent_id: str, uci: str) -> AnalysisNode | None:
        wanted = uci.strip().lower()
        for child_id in self.get(parent_id).children:
            child = self.nodes.get(child_id)
            if child is not None and child.uci is not None and child.uci.lower() == wanted:
                return child
        return None

    def subtree_ids(self, node_id: str) -> set[str]:
        visited: set[str] = set()
        stack = [node_id]
        while stack:
            current = stack.pop()
            if current in visited:
                continue
            visited.add(current)
            node = self.nodes.get(current)
            if node is not None:
                stack.extend(node.children)
        return visited

    def delete_subtree(self, node_id: str, protected: Iterable[str] = ()) -> set[str]:
        """Remove ``node_id`` and its descendants; returns the removed ids."""
        node = self.get(node_id)
        if node_id == self.root_id:
            raise TreeEditError("Cannot delete the analysis root.")
        if node_id in set(protected):
            raise TreeEditError("Replay mainline moves cannot be deleted.")

        removed = self.subtree_ids(node_id)
        for removed_id in removed:
            self.nodes.pop(removed_id, None)

        parent = self.nodes.get(node.parent_id) if node.parent_id else None
        if parent is not None:
            parent.children = [c for c in parent.children if c not in removed]
        return removed

    def mainline_ids(self) -> list[str]:
        """Root followed by first children to the end."""
        return self._follow_first_children([self.root_id])

    def explored_path(self, selected_id: str) -> list[str]:
        """Root to ``selected_id``, then onward along first children."""
        ancestors: list[str] = []
        visited: set[str] = set()
        cursor: str | None = selected_id if selected_id in self.nodes else self.root_id
        while cursor is not None and cursor not in visited:
            visited.add(cursor)
            ancestors.append(cursor)
            if cursor == self.root_id:
                break
            node = self.nodes.get(cursor)
            cursor = node.parent_id if node is not None else None

        ancestors.reverse()
        if not ancestors or ancestors[0] != self.root_id:
            ancestors.insert(0, self.root_id)
        return self._follow_first_children(ancestors)

    def _follow_first_children(self, path: list[str]) -> list[str]:
        path = list(path)
        seen = set(path)
        tail = self.nodes.get(path[-1])
        while tail is not None and tail.children:
            next_id = tail.children[0]
            if next_id in seen or next_id not in self.nodes:
                break
            seen.add(next_id)
            path.append(next_id)
            tail = self.nodes[next_id]
        return path

    def set_comment(self, node_id: str, comment: str) -> bool:
        """Returns False when the comment was already ``comment``."""
        node = self.get(node_id)
        if node.comment == comment:
            return False
        node.comment = comment
        return True

    def toggle_nag(self, node_id: str, nag: str) -> None:
        node = self.get(node_id)
        if nag in node.nags:
            node.nags.remove(nag)
        else:
            node.nags.append(nag)

    def apply_annotation_symbol(self, node_id: str, symbol: str) -> None:
        """Toggle ``symbol``; move-quality symbols replace each other."""
        node = self.get(node_id)
        if symbol in PRINCIPAL_SYMBOLS and symbol not in node.nags:
            node.nags = [nag for nag in node.nags if nag not in PRINCIPAL_SYMBOLS]
            node.nags.append(symbol)
        else:
            self.toggle_nag(node_id, symbol)

    def to_records(self) -> list[NodeRecord]:
        """Depth-first, parents before children."""
        records: list[NodeRecord] = []
        visited: set[str] = set()
        stack: list[tuple[str, int]] = [(self.root_id, 0)]
        while stack:
            node_id, sort_index = stack.pop()
            if node_id in visited or node_id not in self.nodes:
                continue
            visited.add(node_id)
            node = self.nodes[node_id]
            records.append(
                NodeRecord(
                    id=node.id,
                    parent_id=node.parent_id,
                    fen=node.fen,
                    san=node.san,
                    uci=node.uci,
                    comment=node.comment,
                    nags=list(node.nags),
                    sort_index=sort_index,
                )
            )
            stack.extend(
                (child_id, index) for index, child_id in reversed(list(enumerate(node.children)))
            )
        return records

    @classmethod
    def from_records(cls, records: list[NodeRecord], root_id: str | None = None) -> "MoveTree":
        """Rebuild a tree; falls back to the first parentless record as root."""
        if not records:
            raise TreeEditError("Saved analysis has no nodes.")

        by_id = {record.id: record for record in records}
        if root_id not in by_id:
            root_id = next((r.id for r in records if r.parent_id is None), records[0].id)

        root = by_id[root_id]
        tree = cls(root.fen, root_id=root_id)
        tree.root.comment = root.comment
        tree.root.nags = list(root.nags)

        for record in records:
            if record.id == root_id:
                continue
            tree.nodes[record.id] = AnalysisNode(
                id=record.id,
                fen=record.fen,
                parent_id=record.parent_id,
                san=record.san,
                uci=record.uci,
                comment=record.comment,
                nags=list(record.nags),
            )

        siblings: dict[str, list[NodeRecord]] = {}
        for record in records:
            if record.parent_id is not None and record.id != root_id:
                siblings.setdefault(record.parent_id, []).append(record)
        for parent_id, children in siblings.items():
            parent = tree.nodes.get(parent_id)
            if parent is None:
                continue
            children.sort(key=lambda r: (r.sort_index, r.id))
            parent.children = [child.id for child in children]

        reachable = tree.subtree_ids(root_id)
        tree.nodes = {node_id: node for node_id, node in tree.nodes.items() if node_id in reachable}
        return tree
