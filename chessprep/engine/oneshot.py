"""Fresh-process-per-request analysis, the fallback path."""

import asyncio
from pathlib import Path

import structlog

from ..errors import EngineReportedError, EngineTimeout, ProcessStartupFailure
from .models import EngineAnalysis
from .protocol import parse_one_shot_output

logger = structlog.get_logger(__name__)


class OneShotRunner:
    """Runs ``<binary> analyze-multipv <engine> <fen> --depth N --multipv N``.

    Holds no state between calls, so concurrent calls are independent.
    """

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout

    @staticmethod
    def build_args(engine_path: str, fen: str, depth: int, multipv: int) -> list[str]:
        return [
            "analyze-multipv",
            engine_path,
            fen,
            "--depth",
            str(depth),
            "--multipv",
            str(multipv),
        ]

    async def analyze(
        self,
        binary_path: Path,
        engine_path: str,
        fen: str,
        depth: int,
        multipv: int = 1,
    ) -> EngineAnalysis:
        args = self.build_args(engine_path, fen, depth, multipv)
        logger.debug("One-shot analysis", binary=str(binary_path), args=args)

        try:
            process = await asyncio.create_subprocess_exec(
                str(binary_path),
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ProcessStartupFailure(f"Failed to run analysis binary: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise EngineTimeout(f"One-shot analysis exceeded {self.timeout:g}s") from None
        except asyncio.CancelledError:
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise

        if process.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            raise EngineReportedError(message or f"Analysis command failed: {' '.join(args)}")

        return parse_one_shot_output(stdout.decode("utf-8", errors="replace"), fen)
