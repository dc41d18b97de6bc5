"""Orchestrator: the milestone loop that drives work, review and commit sessions.

One cycle per unchecked milestone in PLAN.md:

    work session:   implement -> review/fix loop -> mark tasks [x]
    commit session: commit and push

The loop stops when PLAN.md has no unchecked tasks left. Any failure aborts
the run; the checklist's own [x]/[ ] state lets a re-run pick up where it
stopped.
"""

import os
from dataclasses import dataclass, field
from typing import Annotated

import typer

from orchestrar.config import OrchestratorConfig
from orchestrar.milestone import (
    ProjectDocs,
    get_next_milestone,
    get_plan_progress,
    has_unfinished_tasks,
    resolve_docs,
)
from orchestrar.poller import wait_until_idle
from orchestrar.prompts import COMMIT_PROMPT, MARK_TASKS_PROMPT, MILESTONE_PROMPT
from orchestrar.review import run_review_loop
from orchestrar.session import (
    InstanceFactory,
    SessionProvider,
    open_instance,
    opencode_instance_factory,
)
from orchestrar.utils import err_console, format_error, log_step, set_log_root

WORK_SESSION_TITLE = "Milestone Orchestrator"
COMMIT_SESSION_TITLE = "Commit & Push"

# Cycle phases, in order. Reviewing may repeat up to max_review_iterations times.
PHASE_IDLE = "idle"
PHASE_WORK_PROMPT_SENT = "work_prompt_sent"
PHASE_WORK_IDLE = "work_idle"
PHASE_REVIEWING = "reviewing"
PHASE_MARK_TASKS_SENT = "mark_tasks_sent"
PHASE_MARK_TASKS_IDLE = "mark_tasks_idle"
PHASE_COMMIT_PROMPT_SENT = "commit_prompt_sent"
PHASE_COMMIT_IDLE = "commit_idle"
PHASE_CYCLE_COMPLETE = "cycle_complete"


@dataclass
class CycleState:
    """Mutable state for one milestone cycle. Diagnostic only; never persisted."""

    milestone: int
    phase: str = PHASE_IDLE
    review_iterations: int = 0
    history: list[str] = field(default_factory=list)

    def advance(self, phase: str) -> None:
        self.phase = phase
        self.history.append(phase)
        log_step(f"Milestone {self.milestone}: {phase.replace('_', ' ')}", style="dim")


# ============================================
# Phases
# ============================================


def run_work_instance(
    state: CycleState,
    docs: ProjectDocs,
    root: str,
    config: OrchestratorConfig,
    instance_factory: InstanceFactory,
) -> None:
    """Implement one milestone, converge its review, then have the agent tick tasks."""
    paths = docs.relative_to(root)
    with open_instance(instance_factory, root, config.model) as provider:
        session_id = provider.create_session(root, WORK_SESSION_TITLE)

        provider.prompt(
            session_id, root, config.model_spec, config.agent,
            MILESTONE_PROMPT.format(**paths),
        )
        state.advance(PHASE_WORK_PROMPT_SENT)
        _wait(provider, session_id, root, config)
        state.advance(PHASE_WORK_IDLE)

        state.advance(PHASE_REVIEWING)
        state.review_iterations = run_review_loop(
            provider, session_id, config, root, instance_factory,
        )

        provider.prompt(
            session_id, root, config.model_spec, config.agent,
            MARK_TASKS_PROMPT.format(plan=paths["plan"]),
        )
        state.advance(PHASE_MARK_TASKS_SENT)
        _wait(provider, session_id, root, config)
        state.advance(PHASE_MARK_TASKS_IDLE)


def run_commit_instance(
    state: CycleState,
    root: str,
    config: OrchestratorConfig,
    instance_factory: InstanceFactory,
) -> None:
    """Commit and push the milestone in a separate, cheaper session."""
    with open_instance(instance_factory, root, config.commit_model) as provider:
        session_id = provider.create_session(root, COMMIT_SESSION_TITLE)
        provider.prompt(
            session_id, root, config.commit_model_spec, config.commit_agent, COMMIT_PROMPT,
        )
        state.advance(PHASE_COMMIT_PROMPT_SENT)
        _wait(provider, session_id, root, config)
        state.advance(PHASE_COMMIT_IDLE)


def _wait(provider: SessionProvider, session_id: str, root: str, config: OrchestratorConfig) -> None:
    wait_until_idle(
        provider, session_id, root,
        timeout_ms=config.session_timeout_ms,
        poll_interval_ms=config.status_poll_interval_ms,
    )


def run_milestone_cycle(
    milestone: int,
    docs: ProjectDocs,
    root: str,
    config: OrchestratorConfig,
    instance_factory: InstanceFactory,
) -> CycleState:
    """Run work then commit for one milestone and return the finished state."""
    state = CycleState(milestone=milestone)
    run_work_instance(state, docs, root, config, instance_factory)
    run_commit_instance(state, root, config, instance_factory)
    state.advance(PHASE_CYCLE_COMPLETE)
    return state


def _describe_progress(plan_path: str) -> str:
    progress = get_plan_progress(plan_path)
    text = f"{progress['done']}/{progress['total']} tasks done"
    next_ms = get_next_milestone(plan_path)
    if next_ms:
        text += f", next: {next_ms['name']}"
    return text


def run_orchestrator(
    config: OrchestratorConfig, root: str, instance_factory: InstanceFactory,
) -> int:
    """Run milestone cycles until PLAN.md has no unchecked tasks.

    Returns the number of cycles run. Raises the first OrchestratorError
    encountered; no cycle is retried.
    """
    docs = resolve_docs(root)

    milestone = 0
    while has_unfinished_tasks(docs.plan):
        milestone += 1
        log_step(f"Starting milestone {milestone} ({_describe_progress(docs.plan)})", style="bold cyan")
        state = run_milestone_cycle(milestone, docs, root, config, instance_factory)
        log_step(
            f"Milestone {milestone} complete after {state.review_iterations} review(s).",
            style="bold green",
        )

    log_step("All milestones completed.", style="bold green")
    return milestone


# ============================================
# CLI command
# ============================================


def register(app: typer.Typer) -> None:
    """Register orchestrator commands on the shared app."""
    app.command()(run)


def run(
    directory: Annotated[
        str, typer.Option("--directory", "-d", help="Project root containing PRD.md, SPEC.md and PLAN.md")
    ] = ".",
    review_command: Annotated[
        str | None, typer.Option(help="Review command to run (env ORCHESTRATOR_REVIEW_COMMAND)")
    ] = None,
    review_arguments: Annotated[
        str | None, typer.Option(help="Arguments for the review command (env ORCHESTRATOR_REVIEW_ARGUMENTS)")
    ] = None,
    review_timeout_ms: Annotated[
        int | None, typer.Option(min=1, help="Deadline for one review command (env ORCHESTRATOR_REVIEW_TIMEOUT_MS)")
    ] = None,
    session_timeout_ms: Annotated[
        int | None, typer.Option(min=1, help="Deadline for one agent turn (env ORCHESTRATOR_SESSION_TIMEOUT_MS)")
    ] = None,
    status_poll_interval_ms: Annotated[
        int | None, typer.Option(min=1, help="Delay between status polls (env ORCHESTRATOR_STATUS_POLL_INTERVAL_MS)")
    ] = None,
    max_review_iterations: Annotated[
        int | None, typer.Option(min=1, help="Cap on review/fix rounds per milestone (env ORCHESTRATOR_MAX_REVIEW_ITERATIONS)")
    ] = None,
    model: Annotated[
        str | None, typer.Option(help="provider/model for work and review sessions (env ORCHESTRATOR_MODEL)")
    ] = None,
    agent: Annotated[
        str | None, typer.Option(help="Agent for work and review sessions (env ORCHESTRATOR_AGENT)")
    ] = None,
    commit_model: Annotated[
        str | None, typer.Option(help="provider/model for the commit session (env ORCHESTRATOR_COMMIT_MODEL)")
    ] = None,
    commit_agent: Annotated[
        str | None, typer.Option(help="Agent for the commit session (env ORCHESTRATOR_COMMIT_AGENT)")
    ] = None,
    server_url: Annotated[
        str | None, typer.Option(help="Attach to a running opencode server instead of spawning one (env ORCHESTRATOR_SERVER_URL)")
    ] = None,
    opencode_bin: Annotated[
        str | None, typer.Option(help="opencode executable used to spawn servers (env ORCHESTRATOR_OPENCODE_BIN)")
    ] = None,
) -> None:
    """Implement, review, and commit every unchecked milestone in PLAN.md.

    Each milestone runs a work session (implement, review until clean, mark
    tasks) and a commit session. Stops when no unchecked tasks remain.
    """
    root = os.path.abspath(os.path.expanduser(directory))
    set_log_root(root)

    try:
        config = OrchestratorConfig.from_env().with_overrides(
            review_command=review_command,
            review_arguments=review_arguments,
            review_timeout_ms=review_timeout_ms,
            session_timeout_ms=session_timeout_ms,
            status_poll_interval_ms=status_poll_interval_ms,
            max_review_iterations=max_review_iterations,
            model=model,
            agent=agent,
            commit_model=commit_model,
            commit_agent=commit_agent,
            server_url=server_url,
            opencode_bin=opencode_bin,
        )
        factory = opencode_instance_factory(
            server_url=config.server_url,
            opencode_bin=config.opencode_bin,
            # Prompts and review commands both block until their turn ends.
            command_timeout_ms=max(config.review_timeout_ms, config.session_timeout_ms),
        )
        run_orchestrator(config, root, factory)
    except KeyboardInterrupt:
        err_console.print("[orchestrator] Interrupted.", style="bold red", markup=False)
        raise typer.Exit(code=130)
    except Exception as exc:
        err_console.print(f"[orchestrator] Failed: {format_error(exc)}", style="bold red", markup=False)
        raise typer.Exit(code=1)
