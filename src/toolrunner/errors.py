"""Exception hierarchy for toolrunner.

Tool-level errors are recovered locally and turned into tool result turns.
Model call errors and orchestration aborts are handled by the session layer.
Session errors are surfaced directly to the caller.
"""


class ToolRunnerError(Exception):
    """Base class for all toolrunner errors."""


class ToolValidationError(ToolRunnerError):
    """Tool arguments did not match the tool's input schema."""


class ToolExecutionError(ToolRunnerError):
    """A tool handler raised while executing."""

    def __init__(self, tool_name: str, message: str) -> None:
        super().__init__(f"Tool '{tool_name}' failed: {message}")
        self.tool_name = tool_name
        self.message = message


class ModelCallError(ToolRunnerError):
    """The model collaborator failed to produce a usable response."""


class ModelHTTPError(ModelCallError):
    """The model server answered with an error status or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ModelTimeoutError(ModelCallError):
    """The model call did not complete within the configured timeout."""

    def __init__(self, timeout: float) -> None:
        super().__init__(f"Model request timed out after {timeout:g}s")
        self.timeout = timeout


class ModelResponseError(ModelCallError):
    """The model server returned a body that could not be interpreted."""


class OrchestrationAborted(ToolRunnerError):
    """The tool-calling loop was stopped by a guard.

    Attributes:
        reason: One of "loop_detected", "error_budget", "iteration_cap"
        message: Human-readable explanation suitable for the assistant turn
    """

    LOOP_DETECTED = "loop_detected"
    ERROR_BUDGET = "error_budget"
    ITERATION_CAP = "iteration_cap"

    def __init__(self, reason: str, message: str) -> None:
        super().__init__(message)
        self.reason = reason
        self.message = message


class SessionError(ToolRunnerError):
    """Base class for session management errors."""


class CapacityExceededError(SessionError):
    """The maximum number of sessions has been reached."""

    def __init__(self, max_sessions: int) -> None:
        super().__init__(f"Maximum number of sessions ({max_sessions}) reached")
        self.max_sessions = max_sessions


class SessionNotFoundError(SessionError):
    """No session exists with the given ID."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class SessionNotActiveError(SessionError):
    """The session exists but has not been started (or was stopped)."""

    def __init__(self, session_id: str, name: str) -> None:
        super().__init__(f"Session is not active: {name}")
        self.session_id = session_id
        self.name = name


class AutonomousAlreadyRunningError(SessionError):
    """The session's autonomous agent is already running."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Autonomous agent already running for session: {session_id}")
        self.session_id = session_id
