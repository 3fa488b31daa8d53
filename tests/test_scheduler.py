"""RequestScheduler debounce, coalescing and single-flight behavior."""

import asyncio

import pytest

from chessprep.analysis.scheduler import RequestScheduler
from chessprep.engine.models import EngineRequestSignature

from conftest import RecordingAnalyzer, START_FEN

FENS = [f"8/8/8/8/8/8/8/K6k w - - 0 {n}" for n in range(1, 8)]


def signature(fen: str, depth: int = 12, multipv: int = 1) -> EngineRequestSignature:
    return EngineRequestSignature(fen=fen, engine_path="/engines/sf", depth=depth, multipv=multipv)


async def start_held_flight(scheduler, analyzer, sig) -> asyncio.Task:
    analyzer.gate = asyncio.Event()
    flight = asyncio.create_task(scheduler.analyze(sig))
    while not analyzer.calls:
        await asyncio.sleep(0)
    assert scheduler.is_analyzing
    return flight


@pytest.mark.asyncio
async def test_burst_during_flight_runs_only_the_latest(recording_analyzer):
    scheduler = RequestScheduler(recording_analyzer, debounce_seconds=0.02)
    flight = await start_held_flight(scheduler, recording_analyzer, signature(FENS[0]))

    for fen in FENS[1:6]:
        scheduler.schedule_debounced(signature(fen))
        await asyncio.sleep(0.001)
    await asyncio.sleep(0.08)
    assert scheduler.pending == signature(FENS[5])

    recording_analyzer.gate.set()
    assert (await flight).score_cp is not None
    await scheduler.join()

    assert [call[1] for call in recording_analyzer.calls] == [FENS[0], FENS[5]]
    assert scheduler.analysis_signature == signature(FENS[5])
    assert scheduler.pending is None


@pytest.mark.asyncio
async def test_pending_slot_keeps_only_the_newest(recording_analyzer):
    scheduler = RequestScheduler(recording_analyzer, debounce_seconds=0.0)
    flight = await start_held_flight(scheduler, recording_analyzer, signature(FENS[0]))

    # Each timer fires on its own; every request lands in the one pending slot.
    for fen in FENS[1:4]:
        scheduler.schedule_debounced(signature(fen))
        await asyncio.sleep(0.02)
    assert scheduler.pending == signature(FENS[3])

    recording_analyzer.gate.set()
    await flight
    await scheduler.join()

    assert [call[1] for call in recording_analyzer.calls] == [FENS[0], FENS[3]]


@pytest.mark.asyncio
async def test_unchanged_signature_is_not_reanalyzed(recording_analyzer):
    scheduler = RequestScheduler(recording_analyzer)
    sig = signature(START_FEN)

    first = await scheduler.analyze(sig)
    second = await scheduler.analyze(sig)
    third = await scheduler.analyze(sig)

    assert first is second is third
    assert len(recording_analyzer.calls) == 1


@pytest.mark.asyncio
async def test_force_reanalyzes(recording_analyzer):
    scheduler = RequestScheduler(recording_analyzer)
    sig = signature(START_FEN)

    await scheduler.analyze(sig)
    assert await scheduler.analyze(sig, force=True) is not None
    assert len(recording_analyzer.calls) == 2


@pytest.mark.asyncio
async def test_forced_request_while_busy_is_refused(recording_analyzer):
    scheduler = RequestScheduler(recording_analyzer)
    flight = await start_held_flight(scheduler, recording_analyzer, signature(FENS[0]))

    assert await scheduler.analyze(signature(FENS[1]), force=True) is None
    assert scheduler.pending is None

    recording_analyzer.gate.set()
    await flight
    await scheduler.join()
    assert len(recording_analyzer.calls) == 1


@pytest.mark.asyncio
async def test_pending_equal_to_completed_is_dropped(recording_analyzer):
    scheduler = RequestScheduler(recording_analyzer)
    sig = signature(FENS[0])
    flight = await start_held_flight(scheduler, recording_analyzer, sig)

    assert await scheduler.analyze(sig) is None
    assert scheduler.pending == sig

    recording_analyzer.gate.set()
    await flight
    await scheduler.join()
    assert len(recording_analyzer.calls) == 1


@pytest.mark.asyncio
async def test_clear_output_discards_in_flight_result(recording_analyzer):
    scheduler = RequestScheduler(recording_analyzer)
    flight = await start_held_flight(scheduler, recording_analyzer, signature(FENS[0]))

    scheduler.clear_output()
    recording_analyzer.gate.set()

    assert await flight is None
    assert scheduler.analysis is None
    assert scheduler.last_completed is None
    assert not scheduler.is_analyzing


@pytest.mark.asyncio
async def test_reselecting_the_position_in_flight_keeps_its_result(recording_analyzer):
    scheduler = RequestScheduler(recording_analyzer, debounce_seconds=0.01)
    sig = signature(FENS[0])
    flight = await start_held_flight(scheduler, recording_analyzer, sig)

    scheduler.clear_output(keep=sig)
    scheduler.schedule_debounced(sig)
    await asyncio.sleep(0.03)
    assert scheduler.pending == sig

    recording_analyzer.gate.set()
    assert await flight is not None
    await scheduler.join()

    assert len(recording_analyzer.calls) == 1
    assert scheduler.analysis_signature == sig
    assert scheduler.pending is None


@pytest.mark.asyncio
async def test_failure_is_reported_and_not_cached():
    analyzer = RecordingAnalyzer(fail_on={FENS[2]})
    scheduler = RequestScheduler(analyzer)

    assert await scheduler.analyze(signature(FENS[2])) is None
    assert "cannot analyze" in scheduler.error
    assert scheduler.analysis is None

    assert await scheduler.analyze(signature(FENS[2])) is None
    assert len(analyzer.calls) == 2

    assert await scheduler.analyze(signature(FENS[3])) is not None
    assert scheduler.error is None


@pytest.mark.asyncio
async def test_close_cancels_debounce(recording_analyzer):
    scheduler = RequestScheduler(recording_analyzer, debounce_seconds=0.05)
    scheduler.schedule_debounced(signature(START_FEN))
    await scheduler.close()
    await asyncio.sleep(0.08)

    assert recording_analyzer.calls == []


@pytest.mark.asyncio
async def test_debounce_restarts_timer(recording_analyzer):
    scheduler = RequestScheduler(recording_analyzer, debounce_seconds=0.05)
    scheduler.schedule_debounced(signature(FENS[0]))
    await asyncio.sleep(0.03)
    scheduler.schedule_debounced(signature(FENS[1]))
    await asyncio.sleep(0.03)
    assert recording_analyzer.calls == []

    await asyncio.sleep(0.05)
    await scheduler.join()
    assert [call[1] for call in recording_analyzer.calls] == [FENS[1]]
