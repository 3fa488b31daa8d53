"""API routes for ChessPrep analysis service."""

from fastapi import APIRouter, HTTPException

from ..analysis import AnalysisWorkspace
from ..engine import EngineRouter
from ..errors import (
    ChessPrepError,
    InvalidInput,
    NodeNotFound,
    TreeEditError,
    WorkspaceNotFound,
)
from .schemas import (
    AnalyzeRequest,
    AnalyzeResponse,
    AnnotationRequest,
    CommentRequest,
    EngineOptionsRequest,
    EngineOptionsResponse,
    EngineStateResponse,
    HealthResponse,
    MoveRequest,
    NewWorkspaceRequest,
    NodeResponse,
    PathGraphPointResponse,
    PathGraphResponse,
    RenameWorkspaceRequest,
    SaveWorkspaceRequest,
    WorkspaceResponse,
    WorkspaceSummaryResponse,
)

router = APIRouter()

# Service instances (set by main.py on startup)
_services: dict[str, object] = {}


def register_services(engine_router: EngineRouter, workspace: AnalysisWorkspace) -> None:
    """Register the shared engine router and analysis workspace."""
    _services["engine"] = engine_router
    _services["workspace"] = workspace


def clear_services() -> None:
    _services.clear()


def get_engine_router() -> EngineRouter:
    if "engine" not in _services:
        raise HTTPException(status_code=503, detail="Engine router not available")
    return _services["engine"]


def get_workspace() -> AnalysisWorkspace:
    if "workspace" not in _services:
        raise HTTPException(status_code=503, detail="Analysis workspace not available")
    return _services["workspace"]


def _http_error(e: ChessPrepError) -> HTTPException:
    """Map a service error onto an HTTP status."""
    if isinstance(e, (NodeNotFound, WorkspaceNotFound)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, TreeEditError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, InvalidInput):
        return HTTPException(status_code=422, detail=str(e))
    return HTTPException(status_code=502, detail=f"Analysis failed: {e}")


def _workspace_response(workspace: AnalysisWorkspace) -> WorkspaceResponse:
    tree = workspace.tree
    if tree is None:
        raise HTTPException(status_code=404, detail="No analysis tree is loaded")
    return WorkspaceResponse(
        root_id=tree.root_id,
        current_id=workspace.current_id,
        mainline_ids=list(workspace.mainline_ids),
        nodes=[
            NodeResponse(
                id=node.id,
                parent_id=node.parent_id,
                fen=node.fen,
                san=node.san,
                uci=node.uci,
                comment=node.comment,
                nags=list(node.nags),
                children=list(node.children),
            )
            for node in tree.nodes.values()
        ],
        workspace_id=workspace.loaded_workspace_id,
        workspace_name=workspace.loaded_workspace_name,
        is_dirty=workspace.is_dirty,
    )


def _options_response(workspace: AnalysisWorkspace) -> EngineOptionsResponse:
    options = workspace.options
    return EngineOptionsResponse(
        engine_path=options.engine_path,
        depth=options.depth,
        top_lines=options.top_lines,
        auto_analyze=options.auto_analyze,
    )


def _engine_state(workspace: AnalysisWorkspace) -> EngineStateResponse:
    scheduler = workspace.scheduler
    analysis = None
    if scheduler.analysis is not None and scheduler.analysis_signature is not None:
        analysis = AnalyzeResponse.from_analysis(
            scheduler.analysis_signature.fen, scheduler.analysis
        )
    return EngineStateResponse(
        options=_options_response(workspace),
        is_analyzing=scheduler.is_analyzing,
        error=scheduler.error,
        analysis=analysis,
    )


@router.post("/analyze", response_model=AnalyzeResponse)
async def analyze_position(request: AnalyzeRequest) -> AnalyzeResponse:
    """
    Analyze a chess position once, outside the workspace.

    Runs on the persistent engine session when it is healthy and falls back
    to a one-shot process otherwise.
    """
    from ..config import settings

    engine_router = get_engine_router()
    try:
        analysis = await engine_router.analyze_position(
            engine_path=request.engine_path or settings.engine_path,
            fen=request.fen,
            depth=request.depth,
            multipv=request.multipv,
        )
    except ChessPrepError as e:
        raise _http_error(e)
    return AnalyzeResponse.from_analysis(request.fen.strip(), analysis)


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Check service health, breaker mode and session state."""
    engine_router = get_engine_router()
    workspace = _services.get("workspace")

    state = engine_router.registry.state
    binary_available = engine_router.binary.exists()
    persistent = engine_router.mode.persistent_enabled
    status = "healthy" if binary_available and persistent else "degraded"

    return HealthResponse(
        status=status,
        mode=engine_router.mode.mode.value,
        mode_reason=engine_router.mode.reason,
        session_state=state.value if state is not None else None,
        binary_available=binary_available,
        workspace_loaded=workspace is not None and workspace.tree is not None,
    )


# Move tree


@router.post("/workspace", response_model=WorkspaceResponse)
async def new_workspace(request: NewWorkspaceRequest) -> WorkspaceResponse:
    """Start a fresh tree; ``moves`` become the protected replay mainline."""
    workspace = get_workspace()
    try:
        workspace.load_mainline(request.fen, request.moves)
    except ChessPrepError as e:
        raise _http_error(e)
    return _workspace_response(workspace)


@router.get("/workspace", response_model=WorkspaceResponse)
async def get_tree() -> WorkspaceResponse:
    return _workspace_response(get_workspace())


@router.post("/workspace/moves", response_model=WorkspaceResponse)
async def add_move(request: MoveRequest) -> WorkspaceResponse:
    """Play a move at the selected node and select the resulting node."""
    workspace = get_workspace()
    try:
        workspace.add_move(request.uci)
    except ChessPrepError as e:
        raise _http_error(e)
    return _workspace_response(workspace)


@router.post("/workspace/select/{node_id}", response_model=WorkspaceResponse)
async def select_node(node_id: str) -> WorkspaceResponse:
    workspace = get_workspace()
    try:
        workspace.select_node(node_id)
    except ChessPrepError as e:
        raise _http_error(e)
    return _workspace_response(workspace)


@router.delete("/workspace/nodes/{node_id}", response_model=WorkspaceResponse)
async def delete_node(node_id: str) -> WorkspaceResponse:
    workspace = get_workspace()
    try:
        workspace.delete_node(node_id)
    except ChessPrepError as e:
        raise _http_error(e)
    return _workspace_response(workspace)


@router.put("/workspace/nodes/{node_id}/comment", response_model=WorkspaceResponse)
async def update_comment(node_id: str, request: CommentRequest) -> WorkspaceResponse:
    workspace = get_workspace()
    try:
        workspace.update_comment(node_id, request.comment)
    except ChessPrepError as e:
        raise _http_error(e)
    return _workspace_response(workspace)


@router.post("/workspace/nodes/{node_id}/annotations", response_model=WorkspaceResponse)
async def annotate_node(node_id: str, request: AnnotationRequest) -> WorkspaceResponse:
    workspace = get_workspace()
    try:
        workspace.apply_annotation_symbol(node_id, request.symbol)
    except ChessPrepError as e:
        raise _http_error(e)
    return _workspace_response(workspace)


# Engine


@router.put("/workspace/engine", response_model=EngineOptionsResponse)
async def set_engine_options(request: EngineOptionsRequest) -> EngineOptionsResponse:
    workspace = get_workspace()
    workspace.set_engine_options(
        engine_path=request.engine_path,
        depth=request.depth,
        top_lines=request.top_lines,
        auto_analyze=request.auto_analyze,
        clear_cache=request.clear_cache,
    )
    return _options_response(workspace)


@router.get("/workspace/engine", response_model=EngineStateResponse)
async def engine_state() -> EngineStateResponse:
    return _engine_state(get_workspace())


@router.post("/workspace/analyze", response_model=EngineStateResponse)
async def analyze_current() -> EngineStateResponse:
    """Forced analysis of the selected node."""
    workspace = get_workspace()
    try:
        analysis = await workspace.analyze_current()
    except ChessPrepError as e:
        raise _http_error(e)

    if analysis is None:
        if workspace.scheduler.error is not None:
            raise HTTPException(
                status_code=502, detail=f"Analysis failed: {workspace.scheduler.error}"
            )
        raise HTTPException(status_code=409, detail="Engine is busy")
    return _engine_state(workspace)


@router.get("/workspace/path-graph", response_model=PathGraphResponse)
async def path_graph() -> PathGraphResponse:
    graph = get_workspace().path_graph
    return PathGraphResponse(
        points=[
            PathGraphPointResponse(
                node_id=point.node_id,
                ply=point.ply,
                score_cp=point.score_cp,
                score_mate=point.score_mate,
                is_evaluated=point.is_evaluated,
            )
            for point in graph.points
        ],
        is_loading=graph.is_loading,
        is_truncated=graph.is_truncated,
        progress_text=graph.progress_text,
        error=graph.error,
    )


# Persistence


@router.get("/workspaces", response_model=list[WorkspaceSummaryResponse])
async def list_workspaces() -> list[WorkspaceSummaryResponse]:
    workspace = get_workspace()
    try:
        summaries = workspace.list_saved()
    except ChessPrepError as e:
        raise _http_error(e)
    return [WorkspaceSummaryResponse(**summary.model_dump()) for summary in summaries]


@router.post("/workspaces", response_model=WorkspaceSummaryResponse)
async def save_workspace(request: SaveWorkspaceRequest) -> WorkspaceSummaryResponse:
    workspace = get_workspace()
    try:
        summary = workspace.save(name=request.name, as_new=request.as_new)
    except ChessPrepError as e:
        raise _http_error(e)
    return WorkspaceSummaryResponse(**summary.model_dump())


@router.post("/workspaces/{workspace_id}/load", response_model=WorkspaceResponse)
async def load_workspace(workspace_id: str) -> WorkspaceResponse:
    workspace = get_workspace()
    try:
        workspace.load(workspace_id)
    except ChessPrepError as e:
        raise _http_error(e)
    return _workspace_response(workspace)


@router.patch("/workspaces/{workspace_id}", response_model=WorkspaceSummaryResponse)
async def rename_workspace(
    workspace_id: str, request: RenameWorkspaceRequest
) -> WorkspaceSummaryResponse:
    workspace = get_workspace()
    try:
        summary = workspace.rename_saved(workspace_id, request.name)
    except ChessPrepError as e:
        raise _http_error(e)
    return WorkspaceSummaryResponse(**summary.model_dump())


@router.delete("/workspaces/{workspace_id}", status_code=204)
async def delete_workspace(workspace_id: str) -> None:
    workspace = get_workspace()
    try:
        workspace.delete_saved(workspace_id)
    except ChessPrepError as e:
        raise _http_error(e)
