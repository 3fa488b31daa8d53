"""Configuration for ChessPrep analysis service."""

import os
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Server
    host: str = "0.0.0.0"
    port: int = 8002
    debug: bool = False

    # Analysis binary (speaks the session protocol and the one-shot CLI)
    session_binary: Path = Path(os.getenv("CHESSPREP_SESSION_BINARY", "/opt/chessprep/chess-prep"))
    session_subcommand: str = "engine-session"
    build_command: str | None = None  # Run once when the binary is missing

    # UCI engine handed to the binary
    engine_path: str = os.getenv("CHESSPREP_ENGINE_PATH", "")

    # Analysis parameters
    default_depth: int = 18
    default_multipv: int = 1
    max_multipv: int = 3

    # Timeouts (seconds)
    startup_timeout: float = 3.0
    read_timeout: float = 10.0
    shutdown_timeout: float = 5.0
    one_shot_timeout: float = 120.0

    # Navigation
    debounce_seconds: float = 0.3
    path_graph_max_plies: int = 120

    # Saved move trees
    workspace_dir: Path = Path(os.getenv("CHESSPREP_WORKSPACE_DIR", "~/.chessprep/workspaces"))

    class Config:
        env_prefix = "CHESSPREP_"
        case_sensitive = False

    @property
    def workspace_path(self) -> Path:
        """Workspace directory with ``~`` expanded."""
        return self.workspace_dir.expanduser()


settings = Settings()
