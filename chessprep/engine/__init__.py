"""Engine module - persistent session, one-shot fallback and routing."""

from .base import AnalysisMode, PositionAnalyzer, SessionState
from .binary import AnalysisBinary
from .channel import LineChannel
from .mode import SessionMode
from .models import (
    EngineAnalysis,
    EngineLine,
    EngineRequestSignature,
    SessionKey,
    normalize_score,
    perspective_factor,
)
from .oneshot import OneShotRunner
from .registry import SessionRegistry, session_factory
from .router import EngineRouter
from .session import EngineSession

__all__ = [
    # Base
    "AnalysisMode",
    "PositionAnalyzer",
    "SessionState",
    # Data classes
    "EngineAnalysis",
    "EngineLine",
    "EngineRequestSignature",
    "SessionKey",
    "normalize_score",
    "perspective_factor",
    # Transport
    "AnalysisBinary",
    "LineChannel",
    "EngineSession",
    "SessionRegistry",
    "session_factory",
    "SessionMode",
    "OneShotRunner",
    "EngineRouter",
]
