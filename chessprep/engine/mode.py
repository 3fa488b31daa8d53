"""One-way switch from persistent sessions to one-shot processes."""

import structlog

from .base import AnalysisMode

logger = structlog.get_logger(__name__)


class SessionMode:
    """Circuit breaker for the persistent-session path.

    Starts in PERSISTENT mode. ``disable_persistent_session`` moves it to
    ONE_SHOT and there is no way back for the life of the object; share one
    instance per process.
    """

    def __init__(self) -> None:
        self._mode = AnalysisMode.PERSISTENT
        self.reason: str | None = None

    @property
    def mode(self) -> AnalysisMode:
        return self._mode

    @property
    def persistent_enabled(self) -> bool:
        return self._mode is AnalysisMode.PERSISTENT

    def disable_persistent_session(self, reason: str | None = None) -> None:
        if self._mode is AnalysisMode.ONE_SHOT:
            return
        self._mode = AnalysisMode.ONE_SHOT
        self.reason = reason
        logger.warning("Persistent engine session disabled", reason=reason)
