"""Agent prompt templates.

Each constant is a format string. Use .format() to interpolate variables
before sending it to a session.

Prompts are organized by session role: builder.py for the work session,
committer.py for the commit session.
"""

from orchestrar.prompts.builder import (
    FINDINGS_PROMPT,
    MARK_TASKS_PROMPT,
    MILESTONE_PROMPT,
)
from orchestrar.prompts.committer import COMMIT_PROMPT

__all__ = [
    "COMMIT_PROMPT",
    "FINDINGS_PROMPT",
    "MARK_TASKS_PROMPT",
    "MILESTONE_PROMPT",
]
