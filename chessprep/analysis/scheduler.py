"""Debounced, single-flight analysis of the position the user is looking at."""

import asyncio
from collections.abc import Coroutine
from typing import Any

import structlog

from ..engine.base import PositionAnalyzer
from ..engine.models import EngineAnalysis, EngineRequestSignature
from ..errors import ChessPrepError

logger = structlog.get_logger(__name__)


class RequestScheduler:
    """Collapses bursts of navigation into at most one engine call at a time.

    A request arriving while a call is in flight goes into a single pending
    slot, replacing whatever was there; when the flight lands the pending
    request runs if it differs from the last completed one.
    """

    def __init__(self, analyzer: PositionAnalyzer, debounce_seconds: float = 0.3):
        self.analyzer = analyzer
        self.debounce_seconds = debounce_seconds

        self.analysis: EngineAnalysis | None = None
        self.analysis_signature: EngineRequestSignature | None = None
        self.error: str | None = None
        self.is_analyzing = False
        self.last_completed: EngineRequestSignature | None = None
        self.pending: EngineRequestSignature | None = None
        self.in_flight: EngineRequestSignature | None = None

        self._debounce_task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()
        # Bumped by clear_output(); flights started before it are discarded.
        self._generation = 0

    def schedule_debounced(self, signature: EngineRequestSignature) -> None:
        """(Re)start the debounce timer for ``signature``."""
        self.cancel_debounce()
        self._debounce_task = self._spawn(self._fire_after_delay(signature))

    def cancel_debounce(self) -> None:
        if self._debounce_task is not None:
            self._debounce_task.cancel()
            self._debounce_task = None

    async def _fire_after_delay(self, signature: EngineRequestSignature) -> None:
        await asyncio.sleep(self.debounce_seconds)
        self._debounce_task = None
        # Own task: cancelling a later timer must not interrupt this flight.
        self._spawn(self.analyze(signature, force=False))

    async def analyze(
        self, signature: EngineRequestSignature, force: bool = False
    ) -> EngineAnalysis | None:
        """Analyze ``signature`` unless it is redundant or the engine is busy.

        Returns the analysis when this call produced or reused one, None when
        the request was parked, refused as busy, or failed (see ``error``).
        """
        if not force and signature == self.last_completed and self.analysis is not None:
            return self.analysis

        if self.is_analyzing:
            if not force:
                self.pending = signature
            return None

        self.is_analyzing = True
        self.in_flight = signature
        self.analysis = None
        self.analysis_signature = None
        self.error = None
        generation = self._generation

        try:
            analysis = await self.analyzer.analyze_position(
                signature.engine_path, signature.fen, signature.depth, signature.multipv
            )
            return self._record(signature, analysis, generation)
        except ChessPrepError as e:
            logger.warning("Engine analysis failed", fen=signature.fen, error=str(e))
            if generation == self._generation:
                self.error = str(e)
            return None
        finally:
            self.is_analyzing = False
            self.in_flight = None
            self._after_flight()

    def _record(
        self, signature: EngineRequestSignature, analysis: EngineAnalysis, generation: int
    ) -> EngineAnalysis | None:
        if generation != self._generation:
            logger.debug("Discarding superseded analysis", fen=signature.fen)
            return None
        self.analysis = analysis
        self.analysis_signature = signature
        self.last_completed = signature
        return analysis

    def _after_flight(self) -> None:
        pending, self.pending = self.pending, None
        if pending is not None and pending != self.last_completed:
            self._spawn(self.analyze(pending, force=False))

    def clear_output(self, keep: EngineRequestSignature | None = None) -> None:
        """Forget the displayed result; an in-flight call will be discarded.

        When ``keep`` is the signature in flight, that call's result is still
        accepted.
        """
        self.cancel_debounce()
        self.pending = None
        if keep is not None and keep == self.in_flight:
            self.error = None
            return
        self.analysis = None
        self.analysis_signature = None
        self.error = None
        self._generation += 1

    async def join(self) -> None:
        """Wait until no timer or flight spawned by this scheduler is left."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        self.cancel_debounce()
        self.pending = None
        await self.join()

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
