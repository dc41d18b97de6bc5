"""Turn free-form review command output into a structured findings object.

Review commands tend to print commentary before their JSON verdict, so the
parser looks for the last JSON object in the text that carries a 'findings'
key. This is a best-effort heuristic: an earlier, complete findings object
embedded in commentary is only picked if nothing after it parses.
"""

import json

from orchestrar.errors import EmptyOutput, ParseFailure


def collect_command_output(parts: object) -> str:
    """Flatten response parts into text.

    Pure function. Text parts contribute their text. Tool parts contribute
    their output when completed, or their error when they failed, so tool
    failures stay visible to the parser. Everything else is skipped.
    Fragments are joined with newlines.
    """
    if not isinstance(parts, list):
        return ""

    chunks = []
    for part in parts:
        if not isinstance(part, dict):
            continue
        part_type = part.get("type")
        if part_type == "text" and isinstance(part.get("text"), str):
            chunks.append(part["text"])
            continue
        state = part.get("state")
        if part_type == "tool" and isinstance(state, dict):
            if state.get("status") == "completed" and isinstance(state.get("output"), str):
                chunks.append(state["output"])
            elif state.get("status") == "error" and isinstance(state.get("error"), str):
                chunks.append(state["error"])
    return "\n".join(chunks)


def extract_review_json(output: str) -> dict:
    """Return the right-most JSON object in *output* that has a 'findings' key.

    Scans '{' positions from right to left and parses each suffix. Raises
    EmptyOutput for blank input and ParseFailure when no suffix qualifies.
    """
    trimmed = output.strip()
    if not trimmed:
        raise EmptyOutput("Review command produced no output.")

    index = trimmed.rfind("{")
    while index != -1:
        candidate = trimmed[index:].strip()
        try:
            parsed = json.loads(candidate)
        except ValueError:
            parsed = None
        if isinstance(parsed, dict) and "findings" in parsed:
            return parsed
        index = trimmed.rfind("{", 0, index)

    raise ParseFailure("Failed to parse review JSON from command output.")


def is_findings_empty(review: object) -> bool:
    """Return True only when review['findings'] is an empty list.

    Raises ParseFailure when *review* is not an object or lacks a findings
    list; a missing list is never read as 'no findings'.
    """
    if not isinstance(review, dict):
        raise ParseFailure("Review JSON was not an object.")
    findings = review.get("findings")
    if not isinstance(findings, list):
        raise ParseFailure("Review JSON is missing a findings array.")
    return len(findings) == 0
