import asyncio
import stat
import sys
from dataclasses import dataclass
from pathlib import Path

import pytest

from chessprep.engine.base import PositionAnalyzer
from chessprep.engine.models import EngineAnalysis, EngineLine
from chessprep.errors import EngineReportedError

START_FEN = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"
BLACK_FEN = "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq - 0 1"

# A stand-in for the analysis binary. It speaks the persistent session
# protocol (``engine-session <engine>``) and the one-shot CLI
# (``analyze-multipv <engine> <fen> --depth N --multipv N``). The basename of
# the engine path selects how the persistent session misbehaves; the one-shot
# CLI answers normally except for the ``legacy`` and ``oneshot-*`` engines.
FAKE_BINARY = r'''#!__PYTHON__
import os
import sys
import time

LOG_PATH = __LOG__
PVS = ["e2e4 e7e5", "d2d4 d7d5", "g1f3 g8f6", "c2c4 c7c5"]


def log(text):
    with open(LOG_PATH, "a", encoding="utf-8") as handle:
        handle.write(text + "\n")


def emit(text):
    sys.stdout.write(text + "\n")
    sys.stdout.flush()


def fake_score(fen):
    return sum(ord(c) for c in fen) % 500


def line_rows(fen, depth, multipv):
    score = fake_score(fen)
    rows = []
    for rank in range(multipv, 0, -1):
        pv = PVS[(rank - 1) % len(PVS)]
        row = "line\t%d\t%d\t%d\t\t%s" % (rank, depth, score - 10 * (rank - 1), pv)
        if rank == 1:
            row += "\te4 e5"
        rows.append(row)
    return rows


def summary_row(tag, fen, depth):
    return "%s\t_\t%d\t%d\t\te2e4\te2e4 e7e5" % (tag, depth, fake_score(fen))


def one_shot(argv):
    engine, fen = argv[2], argv[3]
    depth = int(argv[argv.index("--depth") + 1])
    multipv = int(argv[argv.index("--multipv") + 1])
    mode = os.path.basename(engine)
    log("oneshot\t%d\t%d\t%s" % (depth, multipv, fen))
    if mode == "oneshot-fail":
        sys.stderr.write("one-shot analysis failed\n")
        sys.exit(2)
    if mode == "oneshot-hang":
        time.sleep(60)
    if mode == "legacy":
        emit("%d\t%d\t\te2e4\te2e4 e7e5" % (depth, fake_score(fen)))
        return
    for row in line_rows(fen, depth, multipv):
        emit(row)
    emit(summary_row("summary", fen, depth))


def session(engine):
    mode = os.path.basename(engine)
    log("session-start\t" + mode)
    if mode == "hang-start":
        time.sleep(60)
        return
    if mode == "silent-exit":
        sys.stderr.write("cannot open engine\n")
        sys.exit(1)
    if mode == "bad-start":
        emit("hello")
    elif mode == "err-start":
        emit("err\tengine binary is not executable")
    else:
        emit("ready")

    while True:
        command = sys.stdin.readline()
        if not command:
            return
        command = command.rstrip("\n")
        log("session\t" + command)
        if command == "quit":
            return
        _, depth, multipv, fen = command.split("\t", 3)
        depth, multipv = int(depth), int(multipv)

        if mode in ("hang", "oneshot-fail"):
            time.sleep(60)
        elif mode == "crash":
            sys.stderr.write("segmentation fault\n")
            sys.stderr.flush()
            sys.exit(3)
        elif mode == "error":
            emit("err\tengine exploded")
        elif mode == "legacy":
            emit(summary_row("ok", fen, depth))
        elif mode == "malformed" and "malformed-sent" not in log_text():
            log("malformed-sent")
            emit("info string noise")
            emit("ok-multipv\tgarbage")
            emit("done")
        elif mode == "oversized" and "oversized-sent" not in log_text():
            log("oversized-sent")
            emit("line\t1\t5\t111\t\t" + "e2e4 " * (2 * 1024 * 1024 // 5))
            emit("ok-multipv\t_\t5\t111\t\te2e4\te2e4")
            emit("done")
        elif mode == "summary-only":
            emit("")
            emit(summary_row("ok-multipv", fen, depth))
            emit("done")
        else:
            if mode == "noisy":
                sys.stderr.write(("search progress " * 64 + "\n") * 256)
                sys.stderr.flush()
            emit("info depth 1")
            for row in line_rows(fen, depth, multipv):
                emit(row)
            emit(summary_row("ok-multipv", fen, depth - 1))
            emit(summary_row("ok-multipv", fen, depth))
            emit("done")


def log_text():
    with open(LOG_PATH, encoding="utf-8") as handle:
        return handle.read()


if __name__ == "__main__":
    if sys.argv[1] == "engine-session":
        session(sys.argv[2])
    elif sys.argv[1] == "analyze-multipv":
        one_shot(sys.argv)
    else:
        sys.stderr.write("unknown command\n")
        sys.exit(64)
'''


def fake_score(fen: str) -> int:
    """Mover-perspective centipawns the fake binary reports for ``fen``."""
    return sum(ord(c) for c in fen) % 500


@dataclass
class FakeBinary:
    path: Path
    log_path: Path
    engines_dir: Path

    def engine(self, mode: str = "normal") -> str:
        """Path of an (empty) engine file whose name selects the behavior."""
        engine = self.engines_dir / mode
        engine.touch()
        return str(engine)

    def calls(self, prefix: str | None = None) -> list[str]:
        if not self.log_path.exists():
            return []
        rows = self.log_path.read_text(encoding="utf-8").splitlines()
        if prefix is None:
            return rows
        return [row for row in rows if row.split("\t", 1)[0] == prefix]


@pytest.fixture()
def fake_binary(tmp_path) -> FakeBinary:
    log_path = tmp_path / "calls.log"
    log_path.touch()
    script = FAKE_BINARY.replace("__PYTHON__", sys.executable).replace(
        "__LOG__", repr(str(log_path))
    )
    path = tmp_path / "chess-prep"
    path.write_text(script, encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    engines_dir = tmp_path / "engines"
    engines_dir.mkdir()
    return FakeBinary(path=path, log_path=log_path, engines_dir=engines_dir)


class RecordingAnalyzer(PositionAnalyzer):
    """In-memory analyzer; ``gate`` lets a test hold calls in flight."""

    def __init__(self, delay: float = 0.0, fail_on: set[str] | None = None):
        self.delay = delay
        self.fail_on = fail_on or set()
        self.calls: list[tuple[str, str, int, int]] = []
        self.gate = None

    async def analyze_position(self, engine_path, fen, depth, multipv=1):
        self.calls.append((engine_path, fen, depth, multipv))
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if fen in self.fail_on:
            raise EngineReportedError(f"cannot analyze {fen}")
        score = fake_score(fen)
        return EngineAnalysis(
            depth=depth,
            score_cp=score,
            best_move="e2e4",
            pv=["e2e4"],
            lines=[EngineLine(rank=1, depth=depth, score_cp=score, pv=["e2e4"], san_pv=["e4"])],
        )


@pytest.fixture()
def recording_analyzer() -> RecordingAnalyzer:
    return RecordingAnalyzer()


@pytest.fixture()
def engine_file(tmp_path) -> str:
    engine = tmp_path / "stockfish"
    engine.touch()
    return str(engine)

