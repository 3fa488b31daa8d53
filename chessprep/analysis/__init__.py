"""Analysis module - move tree, request scheduling and path evaluation."""

from .moves import AppliedMove, apply_move, legal_moves, validate_fen
from .path_graph import PathEvaluationCache, PathGraphCacheKey, PathGraphPoint
from .scheduler import RequestScheduler
from .store import WorkspaceStore, WorkspaceSummary
from .tree import AnalysisNode, MoveTree
from .workspace import AnalysisWorkspace, EngineOptions

__all__ = [
    "AnalysisNode",
    "AnalysisWorkspace",
    "AppliedMove",
    "EngineOptions",
    "MoveTree",
    "PathEvaluationCache",
    "PathGraphCacheKey",
    "PathGraphPoint",
    "RequestScheduler",
    "WorkspaceStore",
    "WorkspaceSummary",
    "apply_move",
    "legal_moves",
    "validate_fen",
]
