"""Review/fix convergence: review the working tree, feed findings back, repeat."""

import json

from orchestrar.config import OrchestratorConfig
from orchestrar.errors import EmptyOutput, ReviewLoopExceeded
from orchestrar.poller import wait_until_idle
from orchestrar.prompts import FINDINGS_PROMPT
from orchestrar.review_parser import collect_command_output, extract_review_json, is_findings_empty
from orchestrar.session import InstanceFactory, SessionProvider, open_instance
from orchestrar.utils import log_step

REVIEW_SESSION_TITLE = "Review"


def select_review_parts(command_result: dict, message: dict | None) -> list:
    """Choose which parts hold the review output.

    Pure function: the re-fetched final message wins when it has parts, since
    the immediate command response can be truncated.
    """
    parts = command_result.get("parts") or []
    if message and message.get("parts"):
        parts = message["parts"]
    return parts


def _message_id(command_result: dict) -> str | None:
    info = command_result.get("info")
    if isinstance(info, dict) and isinstance(info.get("id"), str) and info["id"]:
        return info["id"]
    return None


def run_review_command(
    config: OrchestratorConfig, root: str, instance_factory: InstanceFactory,
) -> dict:
    """Run the review command in a fresh instance and return the parsed review JSON.

    Raises EmptyOutput when the command printed nothing usable and
    ParseFailure when no findings object can be extracted. The instance is
    released whatever happens.
    """
    with open_instance(instance_factory, root, config.model) as provider:
        session_id = provider.create_session(root, REVIEW_SESSION_TITLE)
        command_result = provider.run_command(
            session_id,
            root,
            config.review_command,
            config.review_arguments,
            config.agent,
            config.model,
        )

        wait_until_idle(
            provider, session_id, root,
            timeout_ms=config.review_timeout_ms,
            poll_interval_ms=config.status_poll_interval_ms,
        )

        message = None
        message_id = _message_id(command_result)
        if message_id:
            message = provider.fetch_message(session_id, message_id, root)

        output = collect_command_output(select_review_parts(command_result, message))
        if not output.strip():
            raise EmptyOutput("Review command produced no output.")
        return extract_review_json(output)


def build_findings_prompt(review: dict) -> str:
    """Render the fix request carrying the full review result as indented JSON."""
    return FINDINGS_PROMPT.format(review_json=json.dumps(review, indent=2))


def run_review_loop(
    provider: SessionProvider,
    session_id: str,
    config: OrchestratorConfig,
    root: str,
    instance_factory: InstanceFactory,
) -> int:
    """Review until clean, sending findings to the work session between rounds.

    Returns the iteration on which the review came back clean. Raises
    ReviewLoopExceeded once config.max_review_iterations reviews all had
    findings; that is fatal for the whole run.
    """
    max_iterations = config.max_review_iterations

    for iteration in range(1, max_iterations + 1):
        log_step(f"Running review ({iteration}/{max_iterations})", style="cyan")
        review = run_review_command(config, root, instance_factory)
        if is_findings_empty(review):
            log_step("Review clean; no findings.", style="green")
            return iteration

        log_step(
            f"Review found {len(review['findings'])} issues; requesting fixes.",
            style="yellow",
        )
        provider.prompt(
            session_id, root, config.model_spec, config.agent, build_findings_prompt(review),
        )
        wait_until_idle(
            provider, session_id, root,
            timeout_ms=config.session_timeout_ms,
            poll_interval_ms=config.status_poll_interval_ms,
        )

    raise ReviewLoopExceeded(max_iterations)
