"""Routes analysis requests to the persistent session or a one-shot run."""

from pathlib import Path

import structlog

from ..analysis.moves import validate_fen
from ..errors import EngineError, EngineTimeout, InvalidInput
from .base import PositionAnalyzer
from .binary import AnalysisBinary
from .mode import SessionMode
from .models import EngineAnalysis, SessionKey
from .oneshot import OneShotRunner
from .registry import SessionRegistry

logger = structlog.get_logger(__name__)


def normalize_engine_path(engine_path: str) -> str:
    return str(Path(engine_path.strip()).expanduser()) if engine_path.strip() else ""


class EngineRouter(PositionAnalyzer):
    """Validates input, then tries the persistent session before one-shot.

    A timeout on the persistent path trips ``mode`` for good; any other
    persistent failure gets a single one-shot retry without tripping it.
    """

    def __init__(
        self,
        binary: AnalysisBinary,
        registry: SessionRegistry,
        one_shot: OneShotRunner,
        mode: SessionMode,
        max_multipv: int = 3,
    ):
        self.binary = binary
        self.registry = registry
        self.one_shot = one_shot
        self.mode = mode
        self.max_multipv = max_multipv

    async def analyze_position(
        self,
        engine_path: str,
        fen: str,
        depth: int,
        multipv: int = 1,
    ) -> EngineAnalysis:
        engine_path = normalize_engine_path(engine_path)
        fen = fen.strip()
        if not engine_path:
            raise InvalidInput("Engine path is required.")
        if not fen:
            raise InvalidInput("FEN is required.")
        validate_fen(fen)
        if not Path(engine_path).is_file():
            raise InvalidInput(f"Engine binary does not exist at '{engine_path}'.")

        depth = max(depth, 1)
        multipv = max(1, min(multipv, self.max_multipv))
        binary_path = await self.binary.ensure()

        if self.mode.persistent_enabled:
            key = SessionKey(binary_path=str(binary_path), engine_path=engine_path)
            try:
                return await self.registry.analyze(key, fen, depth, multipv)
            except EngineTimeout as e:
                self.mode.disable_persistent_session(str(e))
            except EngineError as e:
                logger.warning(
                    "Persistent analysis failed, retrying one-shot",
                    error=str(e),
                    error_type=type(e).__name__,
                )

        return await self.one_shot.analyze(binary_path, engine_path, fen, depth, multipv)
