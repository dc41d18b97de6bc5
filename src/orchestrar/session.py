"""Session provider adapter: the opencode server HTTP API behind a small interface.

The orchestrator only ever talks to a SessionProvider. OpencodeClient is the
real implementation; tests substitute an in-memory fake. Each phase of a
milestone cycle opens its own instance (server process + client) through
open_instance(), which guarantees dispose/close even when the phase fails.
"""

import contextlib
import json
import os
import re
import subprocess
import threading
from collections.abc import Callable, Generator
from typing import Protocol

import httpx

from orchestrar.config import ModelSpec, build_instance_config
from orchestrar.errors import MalformedResponse, ProviderError
from orchestrar.utils import format_error, log_step, safe_stringify


class SessionProvider(Protocol):
    """Capability interface consumed by the poller, review loop and controller."""

    def create_session(self, directory: str, title: str) -> str: ...

    def prompt(
        self, session_id: str, directory: str, model: ModelSpec, agent: str, text: str,
    ) -> None: ...

    def run_command(
        self, session_id: str, directory: str, name: str, arguments: str, agent: str, model: str,
    ) -> dict: ...

    def fetch_message(self, session_id: str, message_id: str, directory: str) -> dict: ...

    def status(self, directory: str) -> dict: ...

    def dispose(self, directory: str) -> None: ...

    def close(self) -> None: ...


# Builds a provider bound to a fresh instance running the given model.
InstanceFactory = Callable[[str], SessionProvider]


# ============================================
# Response normalization
# ============================================

# Where a session id may live in a create-session response, highest priority first.
# Provider response drift is fixed here and nowhere else.
SESSION_ID_PATHS: tuple[tuple[str, ...], ...] = (
    ("id",),
    ("sessionID",),
    ("info", "id"),
    ("info", "sessionID"),
    ("properties", "id"),
    ("properties", "sessionID"),
    ("properties", "info", "id"),
    ("properties", "info", "sessionID"),
    ("slug",),
)


def _lookup(payload: dict, path: tuple[str, ...]) -> object:
    value: object = payload
    for key in path:
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def extract_session_id(payload: object, context: str) -> str:
    """Return the first non-empty string found along SESSION_ID_PATHS.

    Pure function. Raises MalformedResponse, including a truncated dump of
    the payload, when the payload is not an object or no path matches.
    """
    if not isinstance(payload, dict):
        raise MalformedResponse(
            f"{context} did not return a session object. Response: {safe_stringify(payload)}"
        )
    for path in SESSION_ID_PATHS:
        candidate = _lookup(payload, path)
        if isinstance(candidate, str) and candidate.strip():
            return candidate
    raise MalformedResponse(
        f"{context} returned a session without an id. Response: {safe_stringify(payload)}"
    )


def _error_message(response: httpx.Response) -> str:
    """Pull the most specific message out of an error response body."""
    try:
        payload = response.json()
    except ValueError:
        return response.text.strip() or f"HTTP {response.status_code}"

    if isinstance(payload, dict):
        data = payload.get("data")
        if isinstance(data, dict) and isinstance(data.get("message"), str):
            return data["message"]
        if isinstance(payload.get("message"), str):
            return payload["message"]
        error = payload.get("error")
        if isinstance(error, str):
            return error
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
    return safe_stringify(payload)


def unwrap_response(response: httpx.Response, label: str) -> object:
    """Return the decoded body of a successful response or raise ProviderError.

    An empty success body decodes to None.
    """
    if response.is_error:
        raise ProviderError(
            f"{label} failed: HTTP {response.status_code}: {_error_message(response)}"
        )
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


# ============================================
# opencode server process
# ============================================

_LISTENING_RE = re.compile(r"opencode server listening on\s+(\S+)")
_SERVER_START_TIMEOUT = 10.0
_SERVER_STOP_GRACE = 5.0


class OpencodeServer:
    """One `opencode serve` child process, configured through OPENCODE_CONFIG_CONTENT."""

    def __init__(self, proc: subprocess.Popen, url: str):
        self.proc = proc
        self.url = url

    @classmethod
    def start(
        cls,
        model: str,
        opencode_bin: str = "opencode",
        hostname: str = "127.0.0.1",
        port: int = 0,
        start_timeout: float = _SERVER_START_TIMEOUT,
    ) -> "OpencodeServer":
        """Spawn the server and block until it reports its listening URL.

        Port 0 lets the OS pick a free port, so the work and review instances
        can run side by side.
        """
        env = os.environ.copy()
        env["OPENCODE_CONFIG_CONTENT"] = json.dumps(build_instance_config(model))
        cmd = [opencode_bin, "serve", f"--hostname={hostname}", f"--port={port}"]
        try:
            proc = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                bufsize=1,
                env=env,
            )
        except OSError as exc:
            raise ProviderError(f"Failed to start {opencode_bin}: {exc}") from exc

        found = threading.Event()
        result: dict[str, str] = {}
        output: list[str] = []

        def _reader() -> None:
            # Keeps draining stdout after startup so the child never blocks on a full pipe.
            try:
                for line in proc.stdout:
                    if not found.is_set():
                        output.append(line.rstrip())
                        m = _LISTENING_RE.search(line)
                        if m:
                            result["url"] = m.group(1)
                            found.set()
            except (OSError, ValueError):
                pass
            finally:
                found.set()

        threading.Thread(target=_reader, daemon=True).start()

        if not found.wait(timeout=start_timeout) or "url" not in result:
            _stop_process(proc)
            tail = "\n".join(output[-20:]) or "no output"
            raise ProviderError(
                f"opencode server did not report a listening URL within "
                f"{start_timeout:.0f}s. Output:\n{tail}"
            )
        return cls(proc, result["url"])

    def close(self) -> None:
        _stop_process(self.proc)


def _stop_process(proc: subprocess.Popen) -> None:
    if proc.poll() is not None:
        return
    proc.terminate()
    try:
        proc.wait(timeout=_SERVER_STOP_GRACE)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.wait()


# ============================================
# HTTP client
# ============================================

_DEFAULT_HTTP_TIMEOUT = 30.0


class OpencodeClient:
    """SessionProvider backed by the opencode server HTTP API."""

    def __init__(
        self,
        base_url: str,
        server: OpencodeServer | None = None,
        command_timeout_ms: int | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = httpx.Client(
            base_url=base_url, timeout=_DEFAULT_HTTP_TIMEOUT, transport=transport,
        )
        self._server = server
        # session.prompt and session.command only answer once the turn has finished.
        if command_timeout_ms is None:
            self._command_timeout = httpx.Timeout(_DEFAULT_HTTP_TIMEOUT, read=None)
        else:
            self._command_timeout = httpx.Timeout(
                _DEFAULT_HTTP_TIMEOUT, read=command_timeout_ms / 1000,
            )

    def _request(self, method: str, path: str, label: str, **kwargs) -> object:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise ProviderError(f"{label} failed: {format_error(exc)}") from exc
        return unwrap_response(response, label)

    def create_session(self, directory: str, title: str) -> str:
        payload = self._request(
            "POST", "/session", "session.create",
            params={"directory": directory},
            json={"title": title},
        )
        return extract_session_id(payload, f"session.create ({title})")

    def prompt(
        self, session_id: str, directory: str, model: ModelSpec, agent: str, text: str,
    ) -> None:
        # Answers once the agent turn has ended, so the next idle poll is not stale.
        self._request(
            "POST", f"/session/{session_id}/message", "session.prompt",
            params={"directory": directory},
            json={
                "agent": agent,
                "model": model.as_payload(),
                "parts": [{"type": "text", "text": text}],
            },
            timeout=self._command_timeout,
        )

    def run_command(
        self, session_id: str, directory: str, name: str, arguments: str, agent: str, model: str,
    ) -> dict:
        payload = self._request(
            "POST", f"/session/{session_id}/command", "session.command",
            params={"directory": directory},
            json={"command": name, "arguments": arguments, "agent": agent, "model": model},
            timeout=self._command_timeout,
        )
        return payload if isinstance(payload, dict) else {}

    def fetch_message(self, session_id: str, message_id: str, directory: str) -> dict:
        payload = self._request(
            "GET", f"/session/{session_id}/message/{message_id}", "session.message",
            params={"directory": directory},
        )
        return payload if isinstance(payload, dict) else {}

    def status(self, directory: str) -> dict:
        payload = self._request(
            "GET", "/session/status", "session.status",
            params={"directory": directory},
        )
        return payload if isinstance(payload, dict) else {}

    def dispose(self, directory: str) -> None:
        self._request(
            "POST", "/instance/dispose", "instance.dispose",
            params={"directory": directory},
        )

    def close(self) -> None:
        self._client.close()
        if self._server is not None:
            self._server.close()


def opencode_instance_factory(
    server_url: str | None = None,
    opencode_bin: str = "opencode",
    command_timeout_ms: int | None = None,
) -> InstanceFactory:
    """Return a factory that yields an OpencodeClient per instance.

    With *server_url* every instance attaches to that server. Otherwise each
    call spawns its own `opencode serve` process running the requested model.
    """

    def factory(model: str) -> SessionProvider:
        if server_url:
            return OpencodeClient(server_url, command_timeout_ms=command_timeout_ms)
        server = OpencodeServer.start(model, opencode_bin=opencode_bin)
        return OpencodeClient(server.url, server=server, command_timeout_ms=command_timeout_ms)

    return factory


# ============================================
# Scoped instances
# ============================================


def release_instance(provider: SessionProvider, directory: str) -> None:
    """Dispose the instance and close the provider. Never raises.

    Cleanup failures are logged only, so they cannot mask the error that
    ended the phase.
    """
    try:
        provider.dispose(directory)
    except Exception as exc:
        log_step(f"Instance dispose failed: {format_error(exc)}", style="yellow")
    try:
        provider.close()
    except Exception as exc:
        log_step(f"Instance close failed: {format_error(exc)}", style="yellow")


@contextlib.contextmanager
def open_instance(
    factory: InstanceFactory, directory: str, model: str,
) -> Generator[SessionProvider, None, None]:
    """Acquire an instance for one phase and release it on exit, success or not."""
    provider = factory(model)
    try:
        yield provider
    finally:
        release_instance(provider, directory)
