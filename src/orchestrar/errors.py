"""Error taxonomy for the orchestrator.

Every error here is fatal to the current run. The CLI catches
OrchestratorError at the top level, prints a one-line diagnostic and exits
non-zero. Re-running resumes from the checklist's own [x]/[ ] state.
"""


class OrchestratorError(Exception):
    """Base class for all orchestrator failures."""


class ConfigurationError(OrchestratorError):
    """A required document is missing or a setting is invalid."""


class ProviderError(OrchestratorError):
    """The session provider returned an error payload or could not be reached."""


class MalformedResponse(OrchestratorError):
    """A provider response did not contain a usable session id."""


class SessionMissing(OrchestratorError):
    """The status map does not list the session being waited on."""

    def __init__(self, session_id: str, known_sessions: list[str]):
        self.session_id = session_id
        self.known_sessions = known_sessions
        known = ", ".join(known_sessions) if known_sessions else "none"
        super().__init__(f"Session status missing for {session_id}. Known sessions: {known}.")


class SessionTimeout(OrchestratorError):
    """A session did not reach idle before the deadline."""

    def __init__(self, session_id: str, timeout_ms: int):
        self.session_id = session_id
        self.timeout_ms = timeout_ms
        super().__init__(
            f"Timed out waiting for session {session_id} to go idle (after {timeout_ms} ms)."
        )


class EmptyOutput(OrchestratorError):
    """The review command produced no usable output."""


class ParseFailure(OrchestratorError):
    """No findings-bearing JSON object could be extracted from review output."""


class ReviewLoopExceeded(OrchestratorError):
    """The review/fix loop hit its iteration cap without a clean review."""

    def __init__(self, max_iterations: int):
        self.max_iterations = max_iterations
        super().__init__(
            f"Review loop exceeded {max_iterations} iterations without clean results."
        )
