"""Work-session prompt templates: implement, fix findings, mark tasks."""

MILESTONE_PROMPT = (
    "Read the product documents and implement the next unchecked milestone.\n"
    "\n"
    "Docs:\n"
    "- PRD: {prd}\n"
    "- SPEC: {spec}\n"
    "- PLAN: {plan}\n"
    "\n"
    "Requirements:\n"
    "- Implement one unchecked milestone and its tasks from {plan}.\n"
    "- Do not update {plan} checkboxes yet.\n"
    "- Do not commit or push.\n"
    "- When finished, briefly confirm completion."
)

FINDINGS_PROMPT = (
    "The review command reported issues. Address the findings below.\n"
    "\n"
    "{review_json}\n"
    "\n"
    "After fixing the issues, wait for the next instruction."
)

MARK_TASKS_PROMPT = (
    "Update {plan} by marking completed tasks with [x].\n"
    "Leave incomplete tasks unchecked.\n"
    "Do not commit or push yet.\n"
    "When done, confirm the {plan} updates."
)
