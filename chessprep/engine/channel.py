"""Timeout-bounded line I/O over a subprocess's standard streams."""

import asyncio

import structlog

from ..errors import EngineTimeout, ProtocolEncodingFailure, StreamDesync

logger = structlog.get_logger(__name__)

# Engine rows carry full PVs; the asyncio default of 64 KiB is too tight.
STREAM_LIMIT = 1024 * 1024


class LineChannel:
    """Reads newline-delimited rows and writes command lines.

    ``read_line`` suspends the calling task until a full line, the deadline,
    or end-of-stream. A timeout leaves any partially received data buffered
    in the reader. Every call starts a fresh deadline.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter | None = None,
        name: str = "engine",
    ):
        self._reader = reader
        self._writer = writer
        self._name = name

    async def read_line(self, timeout: float) -> str | None:
        """Return the next line without its terminator, or None at EOF.

        Partial data buffered when the stream ends is returned once as a
        final line.
        """
        try:
            raw = await asyncio.wait_for(self._reader.readline(), timeout=timeout)
        except asyncio.TimeoutError:
            raise EngineTimeout(
                f"No response from {self._name} within {timeout:g}s"
            ) from None
        except ValueError as e:
            raise StreamDesync(f"Oversized line from {self._name}: {e}") from e

        if not raw:
            return None

        line = raw.decode("utf-8", errors="replace").rstrip("\n").strip("\r")
        logger.debug("session <<", engine=self._name, response=line)
        return line

    async def write_line(self, command: str) -> None:
        """Write ``command`` followed by a single newline and drain."""
        if self._writer is None or self._writer.is_closing():
            raise ProtocolEncodingFailure(f"{self._name} input is closed")

        try:
            data = f"{command}\n".encode("utf-8")
        except UnicodeEncodeError as e:
            raise ProtocolEncodingFailure(f"Could not encode engine command: {e}") from e

        logger.debug("session >>", engine=self._name, command=command)
        try:
            self._writer.write(data)
            await self._writer.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise ProtocolEncodingFailure(f"Could not write engine command: {e}") from e

    async def close(self) -> None:
        """Close the write side. Safe to call more than once."""
        if self._writer is None or self._writer.is_closing():
            return
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except (BrokenPipeError, ConnectionResetError):
            pass
