"""Shared fixtures: an in-memory session provider that scripts an opencode server."""

import json

import pytest

from orchestrar.config import OrchestratorConfig
from orchestrar.errors import ProviderError


class FakeWorld:
    """State shared by every fake instance in one test.

    review_results: consumed one per review command; dicts are rendered as
        JSON after some prose, strings are used as-is.
    busy_polls: session title -> number of 'busy' status reads before 'idle'.
    on_prompt: optional callback(world, session_title, text) run per prompt.
    """

    def __init__(self, review_results=None, busy_polls=None, on_prompt=None, fail_dispose=False):
        self.review_results = list(review_results or [])
        self.busy_polls = dict(busy_polls or {})
        self.on_prompt = on_prompt
        self.fail_dispose = fail_dispose
        self.sessions = {}  # id -> {"title", "model", "polls"}
        self.instances = []
        self.prompts = []  # (session_title, text, model_spec, agent)
        self.commands = []  # (name, arguments, agent, model)
        self.disposed = []
        self.closed = []

    def factory(self, model):
        provider = FakeProvider(self, model)
        self.instances.append(provider)
        return provider

    def prompts_for(self, title):
        return [text for (t, text, _, _) in self.prompts if t == title]


class FakeProvider:
    def __init__(self, world, model):
        self.world = world
        self.model = model

    def create_session(self, directory, title):
        session_id = f"ses_{len(self.world.sessions) + 1}"
        self.world.sessions[session_id] = {"title": title, "model": self.model, "polls": 0}
        return session_id

    def prompt(self, session_id, directory, model, agent, text):
        title = self.world.sessions[session_id]["title"]
        self.world.sessions[session_id]["polls"] = 0
        self.world.prompts.append((title, text, model, agent))
        if self.world.on_prompt:
            self.world.on_prompt(self.world, title, text)

    def run_command(self, session_id, directory, name, arguments, agent, model):
        self.world.commands.append((name, arguments, agent, model))
        result = self.world.review_results.pop(0)
        if isinstance(result, dict):
            text = "Reviewed the uncommitted changes.\n" + json.dumps(result)
        else:
            text = result
        message_id = f"msg_{len(self.world.commands)}"
        self.world.sessions[session_id]["message"] = {"parts": [{"type": "text", "text": text}]}
        # The immediate response is truncated; the full output lives in the message.
        return {"info": {"id": message_id}, "parts": []}

    def fetch_message(self, session_id, message_id, directory):
        return self.world.sessions[session_id]["message"]

    def status(self, directory):
        result = {}
        for session_id, session in self.world.sessions.items():
            busy = self.world.busy_polls.get(session["title"], 0)
            session["polls"] += 1
            state = "busy" if session["polls"] <= busy else "idle"
            result[session_id] = {"type": state}
        return result

    def dispose(self, directory):
        self.world.disposed.append(self.model)
        if self.world.fail_dispose:
            raise ProviderError("instance.dispose failed: HTTP 500: boom")

    def close(self):
        self.world.closed.append(self.model)


def check_all_tasks(world, title, text):
    """on_prompt callback: the mark-tasks prompt ticks every task in PLAN.md."""
    if not text.startswith("Update "):
        return
    plan = world.plan_path
    with open(plan, "r", encoding="utf-8") as f:
        content = f.read()
    with open(plan, "w", encoding="utf-8") as f:
        f.write(content.replace("[ ]", "[x]"))


@pytest.fixture
def project(tmp_path):
    """A project root with PRD.md and SPEC.md at the top and PLAN.md under docs/."""
    (tmp_path / "PRD.md").write_text("# PRD\nA todo app.\n", encoding="utf-8")
    (tmp_path / "SPEC.md").write_text("# SPEC\nREST API.\n", encoding="utf-8")
    docs = tmp_path / "docs"
    docs.mkdir()
    (docs / "PLAN.md").write_text(
        "# Plan\n\n"
        "## Milestone 1: Scaffolding\n"
        "- [ ] Create project layout\n"
        "- [ ] Add health endpoint\n",
        encoding="utf-8",
    )
    return tmp_path


@pytest.fixture
def fast_config():
    return OrchestratorConfig(status_poll_interval_ms=1, session_timeout_ms=5000, review_timeout_ms=5000)
