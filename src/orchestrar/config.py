"""Runtime configuration for the orchestrator.

All settings are read once from the environment by OrchestratorConfig.from_env()
and passed down explicitly. Nothing below the CLI reads os.environ.
"""

import os
from dataclasses import dataclass, replace

from orchestrar.errors import ConfigurationError

# ---------------------------------------------------------------------------
# Models and agents
# ---------------------------------------------------------------------------

DEFAULT_MODEL = "github-copilot/gpt-5.2-codex"
DEFAULT_AGENT = "build-gpt-5.2-codex"

# The commit phase is mechanical, so it runs on a cheaper model.
COMMIT_MODEL = "github-copilot/gpt-5-mini"
COMMIT_AGENT = "build"

# ---------------------------------------------------------------------------
# Review command and timing
# ---------------------------------------------------------------------------

DEFAULT_REVIEW_COMMAND_NAME = "review-uncommited"
DEFAULT_REVIEW_COMMAND_ARGUMENTS = ""
DEFAULT_REVIEW_TIMEOUT_MS = 60 * 60 * 1000
DEFAULT_SESSION_TIMEOUT_MS = 2 * 60 * 60 * 1000
DEFAULT_STATUS_POLL_INTERVAL_MS = 2000
DEFAULT_MAX_REVIEW_ITERATIONS = 20

DEFAULT_OPENCODE_BIN = "opencode"

# Permissions granted to every spawned instance.
INSTANCE_PERMISSIONS = {
    "edit": "allow",
    "bash": "allow",
    "webfetch": "allow",
}

_ENV_PREFIX = "ORCHESTRATOR_"


@dataclass(frozen=True)
class ModelSpec:
    """A (provider, model) pair such as ('github-copilot', 'gpt-5.2-codex')."""

    provider_id: str
    model_id: str

    def as_payload(self) -> dict[str, str]:
        return {"providerID": self.provider_id, "modelID": self.model_id}

    def __str__(self) -> str:
        return f"{self.provider_id}/{self.model_id}"


def parse_model_spec(spec: str) -> ModelSpec:
    """Split 'provider/model-id' on the first '/'.

    Pure function. Raises ConfigurationError when there is no separator or
    either side is empty after stripping whitespace.
    """
    provider, sep, model = spec.partition("/")
    provider = provider.strip()
    model = model.strip()
    if not sep or not provider or not model:
        raise ConfigurationError(f"Invalid model spec: {spec}")
    return ModelSpec(provider, model)


def build_instance_config(model: str) -> dict:
    """Return the opencode config handed to a freshly spawned instance."""
    return {"model": model, "permission": dict(INSTANCE_PERMISSIONS)}


@dataclass(frozen=True)
class OrchestratorConfig:
    """Everything the milestone loop needs to know, constructed once at startup."""

    review_command: str = DEFAULT_REVIEW_COMMAND_NAME
    review_arguments: str = DEFAULT_REVIEW_COMMAND_ARGUMENTS
    review_timeout_ms: int = DEFAULT_REVIEW_TIMEOUT_MS
    session_timeout_ms: int = DEFAULT_SESSION_TIMEOUT_MS
    status_poll_interval_ms: int = DEFAULT_STATUS_POLL_INTERVAL_MS
    max_review_iterations: int = DEFAULT_MAX_REVIEW_ITERATIONS
    model: str = DEFAULT_MODEL
    agent: str = DEFAULT_AGENT
    commit_model: str = COMMIT_MODEL
    commit_agent: str = COMMIT_AGENT
    server_url: str | None = None
    opencode_bin: str = DEFAULT_OPENCODE_BIN

    def __post_init__(self) -> None:
        parse_model_spec(self.model)
        parse_model_spec(self.commit_model)

    @property
    def model_spec(self) -> ModelSpec:
        return parse_model_spec(self.model)

    @property
    def commit_model_spec(self) -> ModelSpec:
        return parse_model_spec(self.commit_model)

    def with_overrides(self, **overrides: object) -> "OrchestratorConfig":
        """Return a copy with every non-None override applied."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes) if changes else self

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "OrchestratorConfig":
        """Build the configuration from ORCHESTRATOR_* environment variables.

        Integer settings that are missing, unparsable or not positive fall
        back to their defaults. Empty strings count as unset.
        """
        env = os.environ if environ is None else environ

        def get(name: str) -> str | None:
            return _to_optional_string(env.get(_ENV_PREFIX + name))

        return cls(
            review_command=get("REVIEW_COMMAND") or DEFAULT_REVIEW_COMMAND_NAME,
            # Passed through verbatim; surrounding whitespace may be meaningful.
            review_arguments=(
                env.get(_ENV_PREFIX + "REVIEW_ARGUMENTS") or DEFAULT_REVIEW_COMMAND_ARGUMENTS
            ),
            review_timeout_ms=_to_positive_int(
                get("REVIEW_TIMEOUT_MS"), default=DEFAULT_REVIEW_TIMEOUT_MS
            ),
            session_timeout_ms=_to_positive_int(
                get("SESSION_TIMEOUT_MS"), default=DEFAULT_SESSION_TIMEOUT_MS
            ),
            status_poll_interval_ms=_to_positive_int(
                get("STATUS_POLL_INTERVAL_MS"), default=DEFAULT_STATUS_POLL_INTERVAL_MS
            ),
            max_review_iterations=_to_positive_int(
                get("MAX_REVIEW_ITERATIONS"), default=DEFAULT_MAX_REVIEW_ITERATIONS
            ),
            model=get("MODEL") or DEFAULT_MODEL,
            agent=get("AGENT") or DEFAULT_AGENT,
            commit_model=get("COMMIT_MODEL") or COMMIT_MODEL,
            commit_agent=get("COMMIT_AGENT") or COMMIT_AGENT,
            server_url=get("SERVER_URL"),
            opencode_bin=get("OPENCODE_BIN") or DEFAULT_OPENCODE_BIN,
        )


def _to_optional_string(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _to_positive_int(value: str | None, *, default: int) -> int:
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default
