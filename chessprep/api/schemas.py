"""Pydantic schemas for API requests and responses."""

from datetime import datetime

from pydantic import BaseModel, Field

from ..engine.models import EngineAnalysis

START_FEN = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"


class AnalyzeRequest(BaseModel):
    """Request body for /analyze endpoint."""

    fen: str = Field(
        ...,
        description="Chess position in FEN notation",
        examples=[START_FEN],
    )
    engine_path: str | None = Field(
        default=None,
        description="UCI engine binary; defaults to the configured engine",
    )
    depth: int = Field(
        default=18,
        ge=1,
        le=99,
        description="Search depth",
    )
    multipv: int = Field(
        default=1,
        ge=1,
        le=10,
        description="Number of principal variations (capped by the server)",
    )


class EngineLineResponse(BaseModel):
    """A single ranked principal variation."""

    rank: int = Field(..., description="Rank of the line (1 = best)")
    depth: int = Field(..., description="Depth the line was searched to")
    score_cp: int | None = Field(default=None, description="Centipawns, White-positive")
    score_mate: int | None = Field(default=None, description="Mate in N, White-positive")
    pv: list[str] = Field(default_factory=list, description="Moves in UCI notation")
    san_pv: list[str] = Field(default_factory=list, description="Moves in SAN notation")

    class Config:
        json_schema_extra = {
            "example": {
                "rank": 1,
                "depth": 18,
                "score_cp": 31,
                "score_mate": None,
                "pv": ["e2e4", "e7e5"],
                "san_pv": ["e4", "e5"],
            }
        }


class AnalyzeResponse(BaseModel):
    """Response body for /analyze endpoint."""

    fen: str = Field(..., description="The analyzed position")
    depth: int = Field(..., description="Search depth reached")
    score_cp: int | None = Field(default=None, description="Evaluation in centipawns, White-positive")
    score_mate: int | None = Field(default=None, description="Mate in N, White-positive")
    best_move: str | None = Field(default=None, description="Best move in UCI notation")
    pv: list[str] = Field(default_factory=list, description="Principal variation (UCI)")
    lines: list[EngineLineResponse] = Field(
        default_factory=list, description="Ranked lines, best first"
    )

    @classmethod
    def from_analysis(cls, fen: str, analysis: EngineAnalysis) -> "AnalyzeResponse":
        return cls(
            fen=fen,
            depth=analysis.depth,
            score_cp=analysis.score_cp,
            score_mate=analysis.score_mate,
            best_move=analysis.best_move,
            pv=list(analysis.pv),
            lines=[
                EngineLineResponse(
                    rank=line.rank,
                    depth=line.depth,
                    score_cp=line.score_cp,
                    score_mate=line.score_mate,
                    pv=list(line.pv),
                    san_pv=list(line.san_pv),
                )
                for line in analysis.lines
            ],
        )

    class Config:
        json_schema_extra = {
            "example": {
                "fen": START_FEN,
                "depth": 18,
                "score_cp": 31,
                "score_mate": None,
                "best_move": "e2e4",
                "pv": ["e2e4", "e7e5"],
                "lines": [
                    {
                        "rank": 1,
                        "depth": 18,
                        "score_cp": 31,
                        "score_mate": None,
                        "pv": ["e2e4", "e7e5"],
                        "san_pv": ["e4", "e5"],
                    }
                ],
            }
        }


class HealthResponse(BaseModel):
    """Response for health check endpoint."""

    status: str = Field(..., description="Service status")
    mode: str = Field(..., description="persistent or one_shot")
    mode_reason: str | None = Field(default=None, description="Why the persistent session was disabled")
    session_state: str | None = Field(default=None, description="State of the live engine session")
    binary_available: bool = Field(..., description="Whether the analysis binary is present")
    workspace_loaded: bool = Field(..., description="Whether a move tree is loaded")

    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "mode": "persistent",
                "mode_reason": None,
                "session_state": "ready",
                "binary_available": True,
                "workspace_loaded": True,
            }
        }


# Workspace


class NewWorkspaceRequest(BaseModel):
    fen: str = Field(default=START_FEN, description="Start position of the tree")
    moves: list[str] = Field(
        default_factory=list,
        description="Replay mainline in UCI notation; these nodes cannot be deleted",
        examples=[["e2e4", "e7e5", "g1f3"]],
    )


class NodeResponse(BaseModel):
    id: str
    parent_id: str | None = None
    fen: str
    san: str | None = None
    uci: str | None = None
    comment: str = ""
    nags: list[str] = Field(default_factory=list)
    children: list[str] = Field(default_factory=list)


class WorkspaceResponse(BaseModel):
    """The move tree plus selection."""

    root_id: str
    current_id: str | None = None
    mainline_ids: list[str] = Field(default_factory=list)
    nodes: list[NodeResponse] = Field(default_factory=list)
    workspace_id: str | None = Field(default=None, description="Saved workspace this tree came from")
    workspace_name: str | None = None
    is_dirty: bool = False


class MoveRequest(BaseModel):
    uci: str = Field(..., description="Move in UCI notation", examples=["e2e4"])


class CommentRequest(BaseModel):
    comment: str = Field(default="", description="Free-text comment for the node")


class AnnotationRequest(BaseModel):
    symbol: str = Field(
        ...,
        description="Annotation symbol; !! ! !? ?! ? ?? replace each other",
        examples=["!?"],
    )


class EngineOptionsRequest(BaseModel):
    engine_path: str | None = Field(default=None, description="UCI engine binary")
    depth: int | None = Field(default=None, ge=1, le=99)
    top_lines: int | None = Field(default=None, ge=1, le=10)
    auto_analyze: bool | None = None
    clear_cache: bool = Field(default=False, description="Also drop the path-graph memo")


class EngineOptionsResponse(BaseModel):
    engine_path: str
    depth: int
    top_lines: int
    auto_analyze: bool


class EngineStateResponse(BaseModel):
    """What the scheduler shows for the selected node."""

    options: EngineOptionsResponse
    is_analyzing: bool
    error: str | None = None
    analysis: AnalyzeResponse | None = None


class PathGraphPointResponse(BaseModel):
    node_id: str
    ply: int
    score_cp: int | None = None
    score_mate: int | None = None
    is_evaluated: bool = False


class PathGraphResponse(BaseModel):
    points: list[PathGraphPointResponse] = Field(default_factory=list)
    is_loading: bool = False
    is_truncated: bool = False
    progress_text: str | None = Field(default=None, examples=["Evaluating 3/12"])
    error: str | None = None


# Persistence


class SaveWorkspaceRequest(BaseModel):
    name: str | None = Field(default=None, description="Defaults to the loaded name")
    as_new: bool = Field(default=False, description="Save a copy instead of overwriting")


class RenameWorkspaceRequest(BaseModel):
    name: str


class WorkspaceSummaryResponse(BaseModel):
    id: str
    name: str
    node_count: int
    updated_at: datetime
