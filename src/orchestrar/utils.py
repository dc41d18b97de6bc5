"""Core utility functions: console logging and diagnostic formatting."""

import json
import os

from rich.console import Console

console = Console()
err_console = Console(stderr=True)

_LOGS_DIR_NAME = "logs"

# Root directory whose logs/ folder receives mirrored log lines.
# Set once by the orchestrator when a run starts; None means console only.
_log_root: str | None = None


def set_log_root(root: str | None) -> None:
    """Direct mirrored log lines to <root>/logs/. Pass None to disable."""
    global _log_root
    _log_root = root


def resolve_logs_dir(root: str) -> str:
    """Return <root>/logs, creating it if needed."""
    logs_dir = os.path.join(root, _LOGS_DIR_NAME)
    os.makedirs(logs_dir, exist_ok=True)
    return logs_dir


def log(agent_name: str, message: str, style: str = "") -> None:
    """Write a message to the console (with optional style) and the agent log file."""
    if style:
        console.print(message, style=style, markup=False, highlight=False)
    else:
        console.print(message, markup=False, highlight=False)

    if _log_root is None:
        return
    try:
        log_file = os.path.join(resolve_logs_dir(_log_root), f"{agent_name}.log")
        with open(log_file, "a", encoding="utf-8") as f:
            f.write(message + "\n")
    except OSError:
        pass  # Never break the workflow over logging


def log_step(message: str, style: str = "") -> None:
    """Log an orchestrator step with the [orchestrator] component tag."""
    log("orchestrator", f"[orchestrator] {message}", style=style)


def safe_stringify(value: object, max_length: int = 1000) -> str:
    """Serialize *value* to JSON for diagnostics, truncated to *max_length* chars.

    Falls back to str() when the value is not JSON-serializable.
    """
    try:
        text = json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    if len(text) > max_length:
        return text[:max_length] + "..."
    return text


def format_error(error: object) -> str:
    """Return a human-readable message for an exception or error payload."""
    if error is None:
        return "Unknown error"
    if isinstance(error, BaseException):
        return str(error) or error.__class__.__name__
    if isinstance(error, str):
        return error
    try:
        return json.dumps(error)
    except (TypeError, ValueError):
        return str(error)
