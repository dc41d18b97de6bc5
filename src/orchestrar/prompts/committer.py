"""Commit-session prompt template."""

COMMIT_PROMPT = (
    "Commit the changes with an appropriate commit message and git push.\n"
    "After pushing, confirm completion."
)
