"""Data classes for engine analysis results."""

from dataclasses import dataclass, field, replace


@dataclass(frozen=True)
class EngineLine:
    """A single ranked principal variation."""

    rank: int
    depth: int
    score_cp: int | None = None
    score_mate: int | None = None
    pv: list[str] = field(default_factory=list)
    san_pv: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class EngineAnalysis:
    """Normalized analysis of one position, scores White-positive."""

    depth: int
    score_cp: int | None = None
    score_mate: int | None = None
    best_move: str | None = None
    pv: list[str] = field(default_factory=list)
    lines: list[EngineLine] = field(default_factory=list)


@dataclass(frozen=True)
class EngineRequestSignature:
    """Identity of an analysis request, used for deduplication."""

    fen: str
    engine_path: str
    depth: int
    multipv: int


@dataclass(frozen=True)
class SessionKey:
    """Which persistent session is valid: analysis binary plus UCI engine."""

    binary_path: str
    engine_path: str


def perspective_factor(fen: str) -> int:
    """-1 when Black is to move, else +1.

    The binary reports scores from the mover's point of view.
    """
    fields = fen.split()
    if len(fields) > 1 and fields[1] == "b":
        return -1
    return 1


def normalize_score(value: int | None, factor: int) -> int | None:
    if value is None:
        return None
    return value * factor


def normalize_line(line: EngineLine, factor: int) -> EngineLine:
    return replace(
        line,
        score_cp=normalize_score(line.score_cp, factor),
        score_mate=normalize_score(line.score_mate, factor),
    )


def order_lines(lines: list[EngineLine]) -> list[EngineLine]:
    """Rank ascending, deeper line first on equal rank."""
    return sorted(lines, key=lambda line: (line.rank, -line.depth))


def finalize_analysis(
    summary: EngineAnalysis, lines: list[EngineLine], factor: int
) -> EngineAnalysis:
    """Apply perspective normalization and fill in ``lines``.

    When the engine emitted no ``line`` rows a single rank-1 line is built
    from the summary, using the UCI moves as the SAN display fallback.
    """
    normalized = replace(
        summary,
        score_cp=normalize_score(summary.score_cp, factor),
        score_mate=normalize_score(summary.score_mate, factor),
        lines=[],
    )
    ordered = order_lines([normalize_line(line, factor) for line in lines])
    if not ordered:
        ordered = [
            EngineLine(
                rank=1,
                depth=normalized.depth,
                score_cp=normalized.score_cp,
                score_mate=normalized.score_mate,
                pv=list(normalized.pv),
                san_pv=list(normalized.pv),
            )
        ]
    return replace(normalized, lines=ordered)
