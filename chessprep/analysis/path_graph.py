"""Scores every position on the explored path of the move tree."""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field

import structlog

from ..engine.base import PositionAnalyzer
from ..errors import ChessPrepError
from .tree import MoveTree

logger = structlog.get_logger(__name__)

DEFAULT_MAX_PLIES = 120


@dataclass(frozen=True)
class PathGraphCacheKey:
    engine_path: str
    depth: int
    fen: str


@dataclass(frozen=True)
class CachedScore:
    score_cp: int | None
    score_mate: int | None


@dataclass
class PathGraphPoint:
    node_id: str
    ply: int
    score_cp: int | None = None
    score_mate: int | None = None
    is_evaluated: bool = False


@dataclass(frozen=True)
class PathNodeInput:
    node_id: str
    ply: int
    fen: str


@dataclass(frozen=True)
class PathGraphRequest:
    inputs: tuple[PathNodeInput, ...]
    engine_path: str
    depth: int
    is_truncated: bool = False

    @property
    def signature(self) -> tuple:
        return (tuple(i.node_id for i in self.inputs), self.engine_path, self.depth)


@dataclass
class _Walk:
    request: PathGraphRequest
    cancelled: bool = False
    task: asyncio.Task | None = field(default=None, repr=False)


ProgressCallback = Callable[[int, int], None]


class PathEvaluationCache:
    """Memoized, cancellable walk over the explored path.

    Positions are evaluated one at a time, front to back, through the shared
    analyzer. Scores are memoized per (engine, depth, fen) for the life of
    the object and survive superseded walks.
    """

    def __init__(
        self,
        analyzer: PositionAnalyzer,
        max_plies: int = DEFAULT_MAX_PLIES,
        on_progress: ProgressCallback | None = None,
    ):
        self.analyzer = analyzer
        self.max_plies = max_plies
        self.on_progress = on_progress
        self.memo: dict[PathGraphCacheKey, CachedScore] = {}

        self.points: list[PathGraphPoint] = []
        self.is_loading = False
        self.is_truncated = False
        self.progress_text: str | None = None
        self.error: str | None = None
        self.completed = 0

        self._walk: _Walk | None = None
        self._latest_task: asyncio.Task | None = None
        self._last_signature: tuple | None = None

    def build_request(
        self, tree: MoveTree, selected_id: str | None, engine_path: str, depth: int
    ) -> PathGraphRequest | None:
        engine_path = engine_path.strip()
        if not engine_path:
            return None

        selected = selected_id if selected_id in tree else tree.root_id
        path = tree.explored_path(selected)
        inputs = tuple(
            PathNodeInput(node_id=node_id, ply=ply, fen=tree.nodes[node_id].fen)
            for ply, node_id in enumerate(path[: self.max_plies])
        )
        if not inputs:
            return None
        return PathGraphRequest(
            inputs=inputs,
            engine_path=engine_path,
            depth=max(depth, 1),
            is_truncated=len(path) > self.max_plies,
        )

    def schedule(
        self, tree: MoveTree, selected_id: str | None, engine_path: str, depth: int
    ) -> asyncio.Task | None:
        """Start evaluating the explored path, superseding any running walk.

        Returns the walk's task, or None when there is nothing to do.
        """
        request = self.build_request(tree, selected_id, engine_path, depth)
        if request is None:
            self.clear()
            return None

        if self._already_resolved(request):
            self.is_truncated = request.is_truncated
            return None

        self._cancel_walk()
        previous = self._latest_task
        self.points = [PathGraphPoint(node_id=i.node_id, ply=i.ply) for i in request.inputs]
        self.completed = 0
        self.error = None
        self.progress_text = f"Evaluating 0/{len(request.inputs)}"
        self.is_truncated = request.is_truncated
        self.is_loading = True
        self._last_signature = request.signature

        walk = _Walk(request=request)
        walk.task = asyncio.create_task(self._run(walk, previous))
        self._walk = walk
        self._latest_task = walk.task
        return walk.task

    def _already_resolved(self, request: PathGraphRequest) -> bool:
        return (
            request.signature == self._last_signature
            and self.error is None
            and len(self.points) == len(request.inputs)
            and all(point.is_evaluated for point in self.points)
        )

    def _cancel_walk(self) -> None:
        walk, self._walk = self._walk, None
        if walk is not None:
            walk.cancelled = True

    async def _run(self, walk: _Walk, previous: asyncio.Task | None) -> None:
        # Let a superseded walk reach its checkpoint so only one walk at a
        # time talks to the engine.
        if previous is not None and not previous.done():
            await asyncio.gather(previous, return_exceptions=True)

        request = walk.request
        total = len(request.inputs)
        for index, node in enumerate(request.inputs):
            if walk.cancelled:
                return
            key = PathGraphCacheKey(request.engine_path, request.depth, node.fen)
            score = self.memo.get(key)
            if score is None:
                try:
                    analysis = await self.analyzer.analyze_position(
                        request.engine_path, node.fen, request.depth, 1
                    )
                except ChessPrepError as e:
                    if walk.cancelled:
                        return
                    logger.warning("Path evaluation failed", ply=node.ply, error=str(e))
                    self.error = str(e)
                    self.progress_text = None
                    self.is_loading = False
                    return
                score = CachedScore(analysis.score_cp, analysis.score_mate)
                self.memo[key] = score

            if walk.cancelled:
                return
            point = self.points[index]
            point.score_cp = score.score_cp
            point.score_mate = score.score_mate
            point.is_evaluated = True
            self.completed = index + 1
            self.progress_text = f"Evaluating {self.completed}/{total}" if self.completed < total else None
            if self.on_progress is not None:
                self.on_progress(self.completed, total)

        self.is_loading = False

    def clear(self, clear_memo: bool = False) -> None:
        """Drop the graph state; the memo too when ``clear_memo``."""
        self._cancel_walk()
        self.points = []
        self.completed = 0
        self.is_loading = False
        self.is_truncated = False
        self.progress_text = None
        self.error = None
        self._last_signature = None
        if clear_memo:
            self.memo.clear()

    async def wait(self) -> None:
        """Wait for the most recent walk, cancelled or not, to finish."""
        if self._latest_task is not None:
            await asyncio.gather(self._latest_task, return_exceptions=True)
