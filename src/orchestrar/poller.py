"""Wait for an agent session to go idle by polling the provider's status map."""

import time

from orchestrar.config import DEFAULT_SESSION_TIMEOUT_MS, DEFAULT_STATUS_POLL_INTERVAL_MS
from orchestrar.errors import SessionMissing, SessionTimeout
from orchestrar.session import SessionProvider

IDLE_STATE = "idle"


def session_state(entry: object) -> str | None:
    """Return the lifecycle state of one status-map entry.

    Entries are normally objects like {"type": "idle"}; a bare string is
    accepted as the state itself.
    """
    if isinstance(entry, dict):
        state = entry.get("type")
        return state if isinstance(state, str) else None
    if isinstance(entry, str):
        return entry
    return None


def wait_until_idle(
    provider: SessionProvider,
    session_id: str,
    directory: str,
    timeout_ms: int = DEFAULT_SESSION_TIMEOUT_MS,
    poll_interval_ms: int = DEFAULT_STATUS_POLL_INTERVAL_MS,
) -> None:
    """Block until *session_id* reports idle.

    Raises SessionMissing as soon as the status map lacks the session (a
    protocol violation, never retried) and SessionTimeout once *timeout_ms*
    elapses without observing idle.
    """
    start = time.monotonic()
    deadline = start + timeout_ms / 1000
    while time.monotonic() < deadline:
        status_map = provider.status(directory) or {}
        if session_id not in status_map:
            raise SessionMissing(session_id, list(status_map))
        if session_state(status_map[session_id]) == IDLE_STATE:
            return
        time.sleep(poll_interval_ms / 1000)

    raise SessionTimeout(session_id, timeout_ms)
