"""Checklist parsing and project document resolution."""

import os
import re
from dataclasses import dataclass

from orchestrar.errors import ConfigurationError

PRD_FILE = "PRD.md"
SPEC_FILE = "SPEC.md"
PLAN_FILE = "PLAN.md"

_DOCS_SUBDIR = "docs"

# A bullet (-, * or +), whitespace, then a bracket pair holding only whitespace.
# Checked tasks may use any non-whitespace marker; only the unchecked form is matched.
_UNCHECKED_TASK_RE = re.compile(r"^\s*[-*+]\s+\[\s\]", re.MULTILINE)
# Any task line, checked or not; group 1 is the bracket marker.
TASK_LINE_RE = re.compile(r"^\s*[-*+]\s+\[(.)\]", re.MULTILINE)


@dataclass(frozen=True)
class ProjectDocs:
    """Absolute paths of the three documents that drive a run."""

    prd: str
    spec: str
    plan: str

    def relative_to(self, root: str) -> dict[str, str]:
        """Return the paths as shown in prompts: relative to *root*."""
        return {
            "prd": os.path.relpath(self.prd, root),
            "spec": os.path.relpath(self.spec, root),
            "plan": os.path.relpath(self.plan, root),
        }


def has_unfinished_tasks_in_text(content: str) -> bool:
    """Return True if at least one line is an unchecked task.

    Pure function: '- [ ] task' and '  * [ ] nested' count; '- [x] task' does not.
    """
    return _UNCHECKED_TASK_RE.search(content) is not None


def has_unfinished_tasks(plan_path: str) -> bool:
    """I/O wrapper for has_unfinished_tasks_in_text. Re-reads the file on every call."""
    with open(plan_path, "r", encoding="utf-8") as f:
        return has_unfinished_tasks_in_text(f.read())


def count_tasks(content: str) -> dict:
    """Count checklist task lines in markdown content.

    Pure function. Returns {"done": int, "total": int}. A task is done when its
    bracket holds any non-whitespace marker.
    """
    done = 0
    total = 0
    for marker in TASK_LINE_RE.findall(content):
        total += 1
        if not marker.isspace():
            done += 1
    return {"done": done, "total": total}


def get_plan_progress(plan_path: str) -> dict:
    """I/O wrapper for count_tasks. Returns zero counts if the file is missing."""
    if not os.path.exists(plan_path):
        return {"done": 0, "total": 0}
    with open(plan_path, "r", encoding="utf-8") as f:
        return count_tasks(f.read())


def parse_milestones_from_text(content: str) -> list[dict]:
    """Parse markdown text and return every milestone with its task counts.

    Pure function: returns a list of dicts in document order:
        [{"name": str, "done": int, "total": int}, ...]

    A milestone section starts with a level 1-3 heading beginning with
    'Milestone', e.g. '## Milestone 1: Scaffolding'. Headings without tasks
    are skipped.
    """
    milestones = []
    current_name = None
    total = 0
    done = 0

    for line in content.split("\n"):
        heading_match = re.match(r"^#{1,3}\s+(Milestone\b.*)$", line, re.IGNORECASE)
        if heading_match:
            if current_name and total > 0:
                milestones.append({"name": current_name, "done": done, "total": total})
            current_name = heading_match.group(1).strip()
            total = 0
            done = 0
            continue

        if current_name:
            counts = count_tasks(line)
            total += counts["total"]
            done += counts["done"]

    if current_name and total > 0:
        milestones.append({"name": current_name, "done": done, "total": total})

    return milestones


def get_next_milestone(plan_path: str) -> dict | None:
    """Return the first milestone that still has unchecked tasks, or None."""
    if not os.path.exists(plan_path):
        return None
    with open(plan_path, "r", encoding="utf-8") as f:
        milestones = parse_milestones_from_text(f.read())
    for ms in milestones:
        if ms["done"] < ms["total"]:
            return ms
    return None


def resolve_doc_path(root: str, file_name: str) -> str:
    """Find *file_name* directly under *root*, then under <root>/docs/.

    First match wins. Raises ConfigurationError naming both checked paths
    when neither exists.
    """
    root_path = os.path.join(root, file_name)
    if os.path.isfile(root_path):
        return root_path

    docs_path = os.path.join(root, _DOCS_SUBDIR, file_name)
    if os.path.isfile(docs_path):
        return docs_path

    raise ConfigurationError(
        f"Required file not found: {file_name} (checked {root_path} and {docs_path})."
    )


def resolve_docs(root: str) -> ProjectDocs:
    """Resolve PRD.md, SPEC.md and PLAN.md for the project at *root*."""
    return ProjectDocs(
        prd=resolve_doc_path(root, PRD_FILE),
        spec=resolve_doc_path(root, SPEC_FILE),
        plan=resolve_doc_path(root, PLAN_FILE),
    )
