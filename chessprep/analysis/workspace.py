"""The interactive analysis context: tree, selection, engine options."""

from dataclasses import dataclass

import structlog

from ..engine.base import PositionAnalyzer
from ..engine.models import EngineAnalysis, EngineRequestSignature
from ..errors import InvalidInput, TreeEditError
from .moves import apply_move, validate_fen
from .path_graph import DEFAULT_MAX_PLIES, PathEvaluationCache
from .scheduler import RequestScheduler
from .store import WorkspaceStore, WorkspaceSummary
from .tree import AnalysisNode, MoveTree

logger = structlog.get_logger(__name__)


@dataclass
class EngineOptions:
    engine_path: str = ""
    depth: int = 18
    top_lines: int = 1
    auto_analyze: bool = True


class AnalysisWorkspace:
    """Ties the move tree to the scheduler and the path graph.

    Every navigation (select, add, delete) clears the shown analysis,
    schedules a debounced analysis of the new node and re-plans the path
    graph. Must be used from inside a running event loop.
    """

    def __init__(
        self,
        analyzer: PositionAnalyzer,
        *,
        options: EngineOptions | None = None,
        store: WorkspaceStore | None = None,
        debounce_seconds: float = 0.3,
        max_plies: int = DEFAULT_MAX_PLIES,
        max_multipv: int = 3,
    ):
        self.options = options or EngineOptions()
        self.store = store
        self.max_multipv = max_multipv
        self.scheduler = RequestScheduler(analyzer, debounce_seconds=debounce_seconds)
        self.path_graph = PathEvaluationCache(analyzer, max_plies=max_plies)

        self.tree: MoveTree | None = None
        self.current_id: str | None = None
        self.mainline_ids: list[str] = []
        self.loaded_workspace_id: str | None = None
        self.loaded_workspace_name: str | None = None
        self.is_dirty = False

    # Tree lifecycle

    def load_mainline(self, start_fen: str, ucis: list[str] | None = None) -> MoveTree:
        """Start a fresh tree whose first-child chain is the given game."""
        fen = start_fen.strip()
        if not fen:
            raise InvalidInput("FEN is required.")
        validate_fen(fen)
        tree = MoveTree(fen)
        parent = tree.root
        for uci in ucis or []:
            applied = apply_move(parent.fen, uci)
            parent = tree.add_child(parent.id, applied.fen, san=applied.san, uci=applied.uci)

        self.tree = tree
        self.mainline_ids = tree.mainline_ids()
        self.current_id = tree.root_id
        self.loaded_workspace_id = None
        self.loaded_workspace_name = None
        self.is_dirty = False
        self.request_refresh()
        return tree

    def _require_tree(self) -> MoveTree:
        if self.tree is None:
            raise TreeEditError("No analysis tree is loaded.")
        return self.tree

    @property
    def current_node(self) -> AnalysisNode | None:
        if self.tree is None or self.current_id is None:
            return None
        return self.tree.nodes.get(self.current_id)

    # Navigation and edits

    def select_node(self, node_id: str) -> AnalysisNode:
        node = self._require_tree().get(node_id)
        self.current_id = node.id
        self.request_refresh()
        return node

    def add_move(self, uci: str) -> AnalysisNode:
        """Play ``uci`` at the current node; an existing child is reused."""
        tree = self._require_tree()
        uci = uci.strip()
        if not uci:
            raise InvalidInput("UCI move is required.")
        current = self.current_node
        if current is None:
            raise TreeEditError("No active analysis node.")

        child = tree.find_child_by_uci(current.id, uci)
        if child is None:
            applied = apply_move(current.fen, uci)
            child = tree.add_child(current.id, applied.fen, san=applied.san, uci=applied.uci)
            self._mark_dirty()
            logger.debug("Added analysis move", uci=applied.uci, san=applied.san)

        self.current_id = child.id
        self.request_refresh()
        return child

    def delete_node(self, node_id: str) -> set[str]:
        tree = self._require_tree()
        parent_id = tree.get(node_id).parent_id
        removed = tree.delete_subtree(node_id, protected=self.mainline_ids)
        if self.current_id in removed:
            self.current_id = parent_id if parent_id in tree else tree.root_id
        self._mark_dirty()
        self.request_refresh()
        return removed

    def update_comment(self, node_id: str, comment: str) -> None:
        if self._require_tree().set_comment(node_id, comment):
            self._mark_dirty()

    def toggle_nag(self, node_id: str, nag: str) -> None:
        self._require_tree().toggle_nag(node_id, nag)
        self._mark_dirty()

    def apply_annotation_symbol(self, node_id: str, symbol: str) -> None:
        self._require_tree().apply_annotation_symbol(node_id, symbol)
        self._mark_dirty()

    def _mark_dirty(self) -> None:
        if self.loaded_workspace_id is not None:
            self.is_dirty = True

    # Engine

    def set_engine_options(
        self,
        engine_path: str | None = None,
        depth: int | None = None,
        top_lines: int | None = None,
        auto_analyze: bool | None = None,
        clear_cache: bool = False,
    ) -> EngineOptions:
        """Update options; engine or depth changes re-plan the path graph."""
        previous = (self.options.engine_path, self.options.depth)
        if engine_path is not None:
            self.options.engine_path = engine_path.strip()
        if depth is not None:
            self.options.depth = max(depth, 1)
        if top_lines is not None:
            self.options.top_lines = max(1, min(top_lines, self.max_multipv))
        if auto_analyze is not None:
            self.options.auto_analyze = auto_analyze

        if clear_cache or previous != (self.options.engine_path, self.options.depth):
            self.path_graph.clear(clear_memo=clear_cache)
        self.request_refresh()
        return self.options

    def request_signature(self, fen: str | None = None) -> EngineRequestSignature | None:
        if fen is None:
            node = self.current_node
            fen = node.fen if node is not None else None
        if fen is None or not fen.strip() or not self.options.engine_path:
            return None
        return EngineRequestSignature(
            fen=fen.strip(),
            engine_path=self.options.engine_path,
            depth=max(self.options.depth, 1),
            multipv=max(1, min(self.options.top_lines, self.max_multipv)),
        )

    async def analyze_current(self) -> EngineAnalysis | None:
        """Forced analysis of the selected node."""
        if self.current_node is None:
            raise InvalidInput("No position selected.")
        if not self.options.engine_path:
            raise InvalidInput("Select an engine first.")
        return await self.scheduler.analyze(self.request_signature(), force=True)

    def request_refresh(self) -> None:
        """Clear the shown analysis and re-plan both engine consumers."""
        if self.tree is None:
            self.scheduler.clear_output()
            self.path_graph.clear()
            return

        signature = self.request_signature()
        self.scheduler.clear_output(keep=signature)
        if signature is not None and self.options.auto_analyze:
            self.scheduler.schedule_debounced(signature)
        self.path_graph.schedule(
            self.tree, self.current_id, self.options.engine_path, self.options.depth
        )

    # Persistence

    def _require_store(self) -> WorkspaceStore:
        if self.store is None:
            raise InvalidInput("No workspace store is configured.")
        return self.store

    def save(self, name: str | None = None, as_new: bool = False) -> WorkspaceSummary:
        tree = self._require_tree()
        target_id = None if as_new else self.loaded_workspace_id
        summary = self._require_store().save(
            name or self.loaded_workspace_name or "Analysis",
            tree,
            self.current_id,
            workspace_id=target_id,
        )
        self.loaded_workspace_id = summary.id
        self.loaded_workspace_name = summary.name
        self.is_dirty = False
        return summary

    def load(self, workspace_id: str) -> MoveTree:
        stored, tree = self._require_store().load(workspace_id)
        self.tree = tree
        self.mainline_ids = tree.mainline_ids()
        current = stored.current_node_id
        self.current_id = current if current in tree else tree.root_id
        self.loaded_workspace_id = stored.id
        self.loaded_workspace_name = stored.name
        self.is_dirty = False
        self.request_refresh()
        return tree

    def list_saved(self) -> list[WorkspaceSummary]:
        return self._require_store().list_workspaces()

    def rename_saved(self, workspace_id: str, name: str) -> WorkspaceSummary:
        summary = self._require_store().rename(workspace_id, name)
        if workspace_id == self.loaded_workspace_id:
            self.loaded_workspace_name = summary.name
        return summary

    def delete_saved(self, workspace_id: str) -> None:
        self._require_store().delete(workspace_id)
        if workspace_id == self.loaded_workspace_id:
            self.loaded_workspace_id = None
            self.loaded_workspace_name = None
            self.is_dirty = False

    async def close(self) -> None:
        self.path_graph.clear()
        await self.scheduler.close()
        await self.path_graph.wait()
