"""Row parsing for the analysis binary's tab-separated output.

Both the persistent session and the one-shot CLI emit the same row shapes:

    line\t<rank>\t<depth>\t<cp>\t<mate>\t<uci-pv>[\t<san-pv>]
    ok-multipv\t<unused>\t<depth>\t<cp>\t<mate>\t<best-move>\t<uci-pv>
    summary\t<unused>\t<depth>\t<cp>\t<mate>\t<best-move>\t<uci-pv>
    ok\t<unused>\t<depth>\t<cp>\t<mate>\t<best-move>\t<uci-pv>

Summary-style rows are read from their last five columns, so binaries that
omit the unused column are accepted too.
"""

from ..errors import EngineReportedError, MalformedOutput
from .models import EngineAnalysis, EngineLine, finalize_analysis, perspective_factor

LINE_TAG = "line"
SUMMARY_TAG = "ok-multipv"
ONE_SHOT_SUMMARY_TAG = "summary"
LEGACY_TAG = "ok"
ERROR_TAG = "err"
DONE_MARKER = "done"
READY_MARKER = "ready"


def split_row(row: str) -> list[str]:
    return row.split("\t")


def has_tag(row: str, tag: str) -> bool:
    return row.startswith(f"{tag}\t")


def error_message(row: str) -> str:
    """Text following the ``err`` tag."""
    return row[len(ERROR_TAG) + 1:]


def _optional_int(value: str) -> int | None:
    try:
        return int(value.strip())
    except ValueError:
        return None


def _moves(value: str) -> list[str]:
    return value.split()


def parse_summary_row(row: str) -> EngineAnalysis:
    """Parse an ``ok-multipv``, ``summary`` or legacy ``ok`` row."""
    columns = split_row(row)
    if len(columns) not in (6, 7):
        raise MalformedOutput(f"Unexpected engine output format: {row}")

    depth_text, cp_text, mate_text, best_text, pv_text = columns[-5:]
    depth = _optional_int(depth_text)
    if depth is None:
        raise MalformedOutput(f"Unexpected engine output format: {row}")

    best_move = best_text.strip()
    return EngineAnalysis(
        depth=depth,
        score_cp=_optional_int(cp_text),
        score_mate=_optional_int(mate_text),
        best_move=best_move or None,
        pv=_moves(pv_text),
    )


def parse_line_row(row: str) -> EngineLine:
    """Parse a ``line`` row; SAN falls back to the UCI text when absent."""
    columns = split_row(row)
    if len(columns) < 6:
        raise MalformedOutput(f"Unexpected engine line format: {row}")

    rank = _optional_int(columns[1])
    depth = _optional_int(columns[2])
    if rank is None or depth is None:
        raise MalformedOutput(f"Unexpected engine line format: {row}")

    pv = _moves(columns[5])
    san_pv = _moves(columns[6]) if len(columns) >= 7 else list(pv)
    return EngineLine(
        rank=rank,
        depth=depth,
        score_cp=_optional_int(columns[3]),
        score_mate=_optional_int(columns[4]),
        pv=pv,
        san_pv=san_pv,
    )


def parse_legacy_one_shot_row(row: str) -> EngineAnalysis:
    """Parse the old ``depth\\tcp\\tmate\\tbestmove\\tpv`` one-shot output."""
    columns = split_row(row)
    if len(columns) != 5:
        raise MalformedOutput(f"Unexpected engine output format: {row}")
    depth = _optional_int(columns[0])
    if depth is None:
        raise MalformedOutput(f"Unexpected engine output format: {row}")

    best_move = columns[3].strip()
    return EngineAnalysis(
        depth=depth,
        score_cp=_optional_int(columns[1]),
        score_mate=_optional_int(columns[2]),
        best_move=best_move or None,
        pv=_moves(columns[4]),
    )


def parse_one_shot_output(output: str, fen: str) -> EngineAnalysis:
    """Parse the complete stdout of a one-shot ``analyze-multipv`` run."""
    factor = perspective_factor(fen)
    rows = [row.strip("\r") for row in output.splitlines()]
    rows = [row for row in rows if row.strip()]
    if not rows:
        raise MalformedOutput("Engine did not return analysis output.")

    summary: EngineAnalysis | None = None
    lines: list[EngineLine] = []
    for row in rows:
        if has_tag(row, ONE_SHOT_SUMMARY_TAG):
            summary = parse_summary_row(row)
        elif has_tag(row, LINE_TAG):
            lines.append(parse_line_row(row))
        elif has_tag(row, ERROR_TAG):
            raise EngineReportedError(error_message(row))

    if summary is not None:
        return finalize_analysis(summary, lines, factor)

    return finalize_analysis(parse_legacy_one_shot_row(rows[-1]), [], factor)

