"""Error taxonomy for ChessPrep."""


class ChessPrepError(Exception):
    """Base class for all ChessPrep errors."""


class InvalidInput(ChessPrepError):
    """Input rejected before any engine process is touched."""


class InvalidFen(InvalidInput):
    def __init__(self, fen: str):
        super().__init__(f"Invalid FEN: {fen}")
        self.fen = fen


class InvalidUci(InvalidInput):
    def __init__(self, uci: str):
        super().__init__(f"Invalid UCI move: {uci}")
        self.uci = uci


class IllegalMove(InvalidInput):
    def __init__(self, uci: str):
        super().__init__(f"Illegal move: {uci}")
        self.uci = uci


class TreeEditError(InvalidInput):
    """A move-tree edit that the tree refuses (protected node, unknown id)."""


class NodeNotFound(TreeEditError):
    def __init__(self, node_id: str):
        super().__init__(f"Unknown analysis node: {node_id}")
        self.node_id = node_id


class WorkspaceNotFound(InvalidInput):
    def __init__(self, workspace_id: str):
        super().__init__(f"Analysis workspace not found: {workspace_id}")
        self.workspace_id = workspace_id


class EngineError(ChessPrepError):
    """Base class for failures while talking to the analysis binary."""


class ProcessStartupFailure(EngineError):
    """The engine session did not reach the ready state."""


class ProtocolFailure(EngineError):
    """Malformed or out-of-sequence response rows."""


class MalformedOutput(ProtocolFailure):
    pass


class ProtocolEncodingFailure(ProtocolFailure):
    """A command line could not be encoded or written to the engine."""


class StreamDesync(ProtocolFailure):
    """A reply row could not be read whole; later rows no longer line up."""


class EngineTimeout(EngineError):
    """No response within the read deadline. Trips the session breaker."""


class SessionStartupTimeout(ProcessStartupFailure, EngineTimeout):
    """No readiness line within the startup deadline."""


class EngineCrashed(EngineError):
    """The engine process closed its output or exited mid-exchange."""


class EngineReportedError(EngineError):
    """Explicit ``err`` row, carrying the engine's own text."""
