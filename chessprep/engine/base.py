"""Base interfaces for engine analysis."""

from abc import ABC, abstractmethod
from enum import Enum

from .models import EngineAnalysis


class SessionState(str, Enum):
    """Lifecycle of a persistent engine session."""

    STARTING = "starting"
    READY = "ready"
    ANALYZING = "analyzing"
    TERMINATED = "terminated"


class AnalysisMode(str, Enum):
    """How analysis requests reach the binary."""

    PERSISTENT = "persistent"  # Long-lived session, one-shot as fallback
    ONE_SHOT = "one_shot"      # Fresh process per request


class PositionAnalyzer(ABC):
    """Anything that can turn a position into an EngineAnalysis."""

    @abstractmethod
    async def analyze_position(
        self,
        engine_path: str,
        fen: str,
        depth: int,
        multipv: int = 1,
    ) -> EngineAnalysis:
        """
        Analyze a chess position.

        Args:
            engine_path: Path of the UCI engine the binary should drive
            fen: Position in FEN notation
            depth: Search depth
            multipv: Number of ranked lines to return

        Returns:
            EngineAnalysis with White-positive scores
        """
        pass
