"""Saved move trees, one JSON document per workspace."""

import uuid
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path

import structlog
from pydantic import BaseModel, Field, ValidationError

from ..errors import InvalidInput, WorkspaceNotFound
from .tree import MoveTree, NodeRecord

logger = structlog.get_logger(__name__)


class StoredNode(BaseModel):
    id: str
    parent_id: str | None = None
    fen: str
    san: str | None = None
    uci: str | None = None
    comment: str = ""
    nags: list[str] = Field(default_factory=list)
    sort_index: int = 0


class StoredWorkspace(BaseModel):
    id: str
    name: str
    root_node_id: str
    current_node_id: str | None = None
    updated_at: datetime
    nodes: list[StoredNode]


class WorkspaceSummary(BaseModel):
    id: str
    name: str
    node_count: int
    updated_at: datetime


class WorkspaceStore:
    """Load/save of a node set plus root and current pointers."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def _path(self, workspace_id: str) -> Path:
        # Ids are generated here; anything else is a lookup miss.
        try:
            uuid.UUID(workspace_id)
        except ValueError:
            raise WorkspaceNotFound(workspace_id) from None
        return self.directory / f"{workspace_id}.json"

    def save(
        self,
        name: str,
        tree: MoveTree,
        current_node_id: str | None,
        workspace_id: str | None = None,
    ) -> WorkspaceSummary:
        name = name.strip()
        if not name:
            raise InvalidInput("Workspace name is required.")

        self.directory.mkdir(parents=True, exist_ok=True)
        stored = StoredWorkspace(
            id=workspace_id or str(uuid.uuid4()),
            name=name,
            root_node_id=tree.root_id,
            current_node_id=current_node_id,
            updated_at=datetime.now(timezone.utc),
            nodes=[StoredNode(**asdict(record)) for record in tree.to_records()],
        )
        self._path(stored.id).write_text(stored.model_dump_json(indent=2), encoding="utf-8")
        logger.info("Saved analysis workspace", workspace_id=stored.id, nodes=len(stored.nodes))
        return self._summary(stored)

    def load(self, workspace_id: str) -> tuple[StoredWorkspace, MoveTree]:
        stored = self._read(self._path(workspace_id))
        records = [NodeRecord(**node.model_dump()) for node in stored.nodes]
        return stored, MoveTree.from_records(records, root_id=stored.root_node_id)

    def list_workspaces(self) -> list[WorkspaceSummary]:
        if not self.directory.is_dir():
            return []
        summaries = []
        for path in self.directory.glob("*.json"):
            try:
                summaries.append(self._summary(self._read(path)))
            except InvalidInput as e:
                logger.warning("Skipping unreadable workspace", path=str(path), error=str(e))
        return sorted(summaries, key=lambda s: s.updated_at, reverse=True)

    def rename(self, workspace_id: str, name: str) -> WorkspaceSummary:
        name = name.strip()
        if not name:
            raise InvalidInput("Workspace name is required.")
        path = self._path(workspace_id)
        stored = self._read(path).model_copy(
            update={"name": name, "updated_at": datetime.now(timezone.utc)}
        )
        path.write_text(stored.model_dump_json(indent=2), encoding="utf-8")
        return self._summary(stored)

    def delete(self, workspace_id: str) -> None:
        path = self._path(workspace_id)
        if not path.exists():
            raise WorkspaceNotFound(workspace_id)
        path.unlink()

    def _read(self, path: Path) -> StoredWorkspace:
        if not path.exists():
            raise WorkspaceNotFound(path.stem)
        try:
            return StoredWorkspace.model_validate_json(path.read_text(encoding="utf-8"))
        except ValidationError as e:
            raise InvalidInput(f"Corrupt workspace file {path.name}: {e}") from e

    @staticmethod
    def _summary(stored: StoredWorkspace) -> WorkspaceSummary:
        return WorkspaceSummary(
            id=stored.id,
            name=stored.name,
            node_count=len(stored.nodes),
            updated_at=stored.updated_at,
        )
