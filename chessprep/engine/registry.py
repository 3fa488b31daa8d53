"""Keeps at most one live EngineSession and serializes access to it."""

import asyncio
from collections.abc import Callable
from pathlib import Path

import structlog

from ..errors import EngineCrashed, EngineTimeout, StreamDesync
from .base import SessionState
from .models import EngineAnalysis, SessionKey
from .session import EngineSession

logger = structlog.get_logger(__name__)

SessionFactory = Callable[[SessionKey], EngineSession]


class SessionRegistry:
    """Owner of the persistent session.

    Every call holds ``_lock`` for its whole duration: the line protocol is
    stateful, so two readers or writers on one session would corrupt it.
    """

    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory
        self._lock = asyncio.Lock()
        self._key: SessionKey | None = None
        self._session: EngineSession | None = None

    @property
    def key(self) -> SessionKey | None:
        return self._key

    @property
    def state(self) -> SessionState | None:
        return self._session.state if self._session is not None else None

    async def analyze(
        self, key: SessionKey, fen: str, depth: int, multipv: int = 1
    ) -> EngineAnalysis:
        async with self._lock:
            if self._key != key or self._session is None:
                await self._discard()
                session = self._session_factory(key)
                try:
                    await session.start()
                except asyncio.CancelledError:
                    await session.shutdown()
                    raise
                self._session = session
                self._key = key

            session = self._session
            try:
                return await session.analyze(fen, depth, multipv)
            except (EngineTimeout, EngineCrashed, StreamDesync):
                logger.warning("Discarding engine session", engine=key.engine_path)
                await self._discard()
                raise
            except asyncio.CancelledError:
                # Rows of the abandoned exchange are still in the pipe.
                await self._discard()
                raise
            except Exception:
                if not session.is_running:
                    await self._discard()
                raise

    async def close(self) -> None:
        """Shut down the stored session, if any."""
        async with self._lock:
            await self._discard()

    async def _discard(self) -> None:
        session, self._session, self._key = self._session, None, None
        if session is not None:
            await session.shutdown()


def session_factory(
    *,
    subcommand: str | None = "engine-session",
    startup_timeout: float = 3.0,
    read_timeout: float = 10.0,
    shutdown_timeout: float = 5.0,
) -> SessionFactory:
    """Build a factory that creates sessions for a SessionKey."""

    def create(key: SessionKey) -> EngineSession:
        return EngineSession(
            Path(key.binary_path),
            key.engine_path,
            subcommand=subcommand,
            startup_timeout=startup_timeout,
            read_timeout=read_timeout,
            shutdown_timeout=shutdown_timeout,
        )

    return create
