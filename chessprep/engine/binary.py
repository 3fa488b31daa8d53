"""Locates the analysis binary, building it once if allowed."""

import asyncio
import os
import shlex
from pathlib import Path

import structlog

from ..errors import InvalidInput

logger = structlog.get_logger(__name__)


class AnalysisBinary:
    """The executable that speaks the session protocol and the one-shot CLI."""

    def __init__(self, path: Path, build_command: str | None = None):
        self.path = Path(path).expanduser()
        self.build_command = build_command
        self._build_lock = asyncio.Lock()

    def exists(self) -> bool:
        return self.path.is_file() and os.access(self.path, os.X_OK)

    async def ensure(self) -> Path:
        """Return the binary path, running the build command if it is missing."""
        if self.exists():
            return self.path

        if not self.build_command:
            raise InvalidInput(f"Analysis binary does not exist at '{self.path}'.")

        async with self._build_lock:
            if not self.exists():
                await self._build()

        if not self.exists():
            raise InvalidInput(f"Analysis binary is still missing after build: '{self.path}'.")
        return self.path

    async def _build(self) -> None:
        logger.info("Building analysis binary", command=self.build_command)
        process = await asyncio.create_subprocess_exec(
            *shlex.split(self.build_command),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        _, stderr = await process.communicate()
        if process.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            logger.error("Analysis binary build failed", returncode=process.returncode)
            raise InvalidInput(message or f"Build command failed: {self.build_command}")
