"""Persistent engine session over the line protocol."""

import asyncio
from pathlib import Path

import structlog

from ..errors import (
    EngineCrashed,
    EngineReportedError,
    EngineTimeout,
    MalformedOutput,
    ProcessStartupFailure,
    ProtocolFailure,
    SessionStartupTimeout,
)
from .base import SessionState
from .channel import STREAM_LIMIT, LineChannel
from .models import EngineAnalysis, EngineLine, finalize_analysis, perspective_factor
from .protocol import (
    DONE_MARKER,
    ERROR_TAG,
    LEGACY_TAG,
    LINE_TAG,
    READY_MARKER,
    SUMMARY_TAG,
    error_message,
    has_tag,
    parse_line_row,
    parse_summary_row,
)

logger = structlog.get_logger(__name__)

MIN_MULTIPV = 1
MAX_MULTIPV = 10
# Only the tail of the engine's stderr is kept for error messages.
MAX_DIAGNOSTIC_BYTES = 64 * 1024


class EngineSession:
    """One long-lived ``engine-session`` subprocess.

    ``STARTING -> READY -> ANALYZING -> READY ... -> TERMINATED``. Use as an
    async context manager, or call ``shutdown()`` yourself; it is idempotent.
    """

    def __init__(
        self,
        binary_path: Path,
        engine_path: str,
        *,
        subcommand: str | None = "engine-session",
        startup_timeout: float = 3.0,
        read_timeout: float = 10.0,
        shutdown_timeout: float = 5.0,
    ):
        self.binary_path = Path(binary_path)
        self.engine_path = engine_path
        self.subcommand = subcommand
        self.startup_timeout = startup_timeout
        self.read_timeout = read_timeout
        self.shutdown_timeout = shutdown_timeout
        self.state = SessionState.STARTING
        self._process: asyncio.subprocess.Process | None = None
        self._channel: LineChannel | None = None
        self._stderr_task: asyncio.Task | None = None
        self._stderr_tail = bytearray()

    async def __aenter__(self) -> "EngineSession":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.shutdown()

    @property
    def is_running(self) -> bool:
        """True while the subprocess has not exited."""
        return self._process is not None and self._process.returncode is None

    async def start(self) -> None:
        """Spawn the subprocess and wait for its ``ready`` line."""
        args = [self.subcommand, self.engine_path] if self.subcommand else [self.engine_path]
        logger.info("Starting engine session", binary=str(self.binary_path), engine=self.engine_path)

        try:
            self._process = await asyncio.create_subprocess_exec(
                str(self.binary_path),
                *args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STREAM_LIMIT,
            )
        except OSError as e:
            self.state = SessionState.TERMINATED
            raise ProcessStartupFailure(f"Failed to start engine session: {e}") from e

        self._channel = LineChannel(self._process.stdout, self._process.stdin, name=self.engine_path)
        self._stderr_task = asyncio.create_task(self._drain_stderr(self._process.stderr))

        try:
            first_line = await self._channel.read_line(self.startup_timeout)
        except EngineTimeout as e:
            await self.shutdown()
            raise SessionStartupTimeout(str(e)) from e

        if first_line is None:
            await self.shutdown()
            diagnostic = await self._read_diagnostics()
            raise ProcessStartupFailure(
                diagnostic or "Engine session exited before signaling readiness."
            )

        if first_line != READY_MARKER:
            await self.shutdown()
            if has_tag(first_line, ERROR_TAG):
                raise ProcessStartupFailure(error_message(first_line))
            raise ProcessStartupFailure(f"Unexpected engine session startup output: {first_line}")

        self.state = SessionState.READY
        logger.info("Engine session ready", engine=self.engine_path, pid=self._process.pid)

    async def analyze(self, fen: str, depth: int, multipv: int = 1) -> EngineAnalysis:
        """Run one ``analyze-multipv`` exchange.

        Raises EngineTimeout when a row does not arrive in time,
        EngineCrashed when the process closes its output and StreamDesync
        when a row is too long to read; the caller owns the decision to
        discard the session.
        """
        if self.state != SessionState.READY or self._channel is None:
            raise ProtocolFailure(f"Engine session is not ready ({self.state.value})")

        safe_multipv = max(MIN_MULTIPV, min(multipv, MAX_MULTIPV))
        factor = perspective_factor(fen)

        self.state = SessionState.ANALYZING
        try:
            await self._channel.write_line(f"analyze-multipv\t{depth}\t{safe_multipv}\t{fen}")
            return await self._collect(factor)
        finally:
            self.state = SessionState.READY if self.is_running else SessionState.TERMINATED

    async def _collect(self, factor: int) -> EngineAnalysis:
        summary: EngineAnalysis | None = None
        lines: list[EngineLine] = []
        bad_row: MalformedOutput | None = None

        while True:
            row = await self._channel.read_line(self.read_timeout)
            if row is None:
                break
            if not row.strip():
                continue

            if has_tag(row, SUMMARY_TAG) or has_tag(row, LINE_TAG):
                # A bad row is reported only after ``done`` so the stream
                # stays aligned for the next request.
                try:
                    if has_tag(row, SUMMARY_TAG):
                        summary = parse_summary_row(row)
                    else:
                        lines.append(parse_line_row(row))
                except MalformedOutput as e:
                    bad_row = bad_row or e
            elif row == DONE_MARKER:
                if bad_row is not None:
                    raise bad_row
                if summary is None:
                    raise MalformedOutput("Engine returned malformed MultiPV output.")
                return finalize_analysis(summary, lines, factor)
            elif has_tag(row, LEGACY_TAG):
                # Older binaries answer with a single row and no terminator.
                return finalize_analysis(parse_summary_row(row), [], factor)
            elif has_tag(row, ERROR_TAG):
                raise EngineReportedError(error_message(row))

        await self._reap()
        diagnostic = await self._read_diagnostics()
        raise EngineCrashed(diagnostic or "Engine session terminated unexpectedly.")

    async def shutdown(self) -> None:
        """Send ``quit``, wait for exit, and close stdin."""
        process = self._process
        if process is None:
            self.state = SessionState.TERMINATED
            return

        if process.returncode is None:
            logger.info("Stopping engine session", engine=self.engine_path, pid=process.pid)
            try:
                await self._channel.write_line("quit")
            except ProtocolFailure:
                pass

            try:
                await asyncio.wait_for(process.wait(), timeout=self.shutdown_timeout)
            except asyncio.TimeoutError:
                logger.warning("Engine session did not exit, killing", pid=process.pid)
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                await process.wait()

        await self._channel.close()
        await self._finish_stderr()
        self.state = SessionState.TERMINATED

    async def _reap(self) -> None:
        """Wait briefly for an exiting process so ``is_running`` is accurate."""
        try:
            await asyncio.wait_for(self._process.wait(), timeout=self.shutdown_timeout)
        except asyncio.TimeoutError:
            logger.warning("Engine closed its output but is still running", pid=self._process.pid)

    async def _drain_stderr(self, stream: asyncio.StreamReader) -> None:
        """Keep reading stderr so a chatty engine never blocks on a full pipe."""
        while True:
            chunk = await stream.read(4096)
            if not chunk:
                return
            self._stderr_tail += chunk
            del self._stderr_tail[:-MAX_DIAGNOSTIC_BYTES]

    async def _finish_stderr(self) -> None:
        """Give the drain task a moment to reach EOF, then stop it."""
        task = self._stderr_task
        if task is None or task.done():
            return
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=1.0)
        except asyncio.TimeoutError:
            task.cancel()

    async def _read_diagnostics(self) -> str:
        """The tail of what the subprocess wrote to stderr, trimmed."""
        await self._finish_stderr()
        return self._stderr_tail.decode("utf-8", errors="replace").strip()
