"""Version information with git commit tracking.

Reports the installed package version plus the source commit when running
from a git checkout (editable installs). Git commands run against this
file's repo, not the caller's cwd, since the orchestrator itself is usually
run inside some other project.
"""

import os
import subprocess
from importlib import metadata

PACKAGE_NAME = "orchestrar"
FALLBACK_VERSION = "0.1.0"

_REPO_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def _package_version() -> str:
    try:
        return metadata.version(PACKAGE_NAME)
    except metadata.PackageNotFoundError:
        return FALLBACK_VERSION


def _source_commit() -> str | None:
    """Return 'g<short-sha>' for the source checkout, or None outside git."""
    try:
        result = subprocess.run(
            ["git", "-C", _REPO_DIR, "rev-parse", "--short", "HEAD"],
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return None
    if result.returncode != 0 or not result.stdout.strip():
        return None
    return f"g{result.stdout.strip()}"


def get_version() -> str:
    """Return '0.1.0' or '0.1.0 (g3a7f2c1)' when running from a checkout."""
    commit = _source_commit()
    version = _package_version()
    return f"{version} ({commit})" if commit else version
