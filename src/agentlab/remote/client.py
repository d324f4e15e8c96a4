"""Remote execution client.

Session-scoped streaming generation against a remote agent-serving
backend. Only the narrow contract the console relies on is modelled.
"""

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from types import TracebackType
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError

from agentlab.exceptions import ConfigurationError, RemoteExecutionError
from agentlab.models.config import ConnectionSettings

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[str], None]
CompleteCallback = Callable[[str, dict[str, Any] | None], None]
ErrorCallback = Callable[[Exception], None]

CONTENT_EVENTS = {"RunContent", "RunResponseContent", "RunResponse"}
COMPLETED_EVENTS = {"RunCompleted"}
ERROR_EVENTS = {"RunError"}

T = TypeVar("T")


class RemoteAgent(BaseModel):
    """Agent as listed by the backend."""

    model_config = ConfigDict(extra="allow")

    agent_id: str
    name: str | None = None


class RemoteSession(BaseModel):
    """Session created on the backend."""

    model_config = ConfigDict(extra="allow")

    session_id: str


_AGENTS_ADAPTER = TypeAdapter(list[RemoteAgent])
_SESSION_ADAPTER = TypeAdapter(RemoteSession)


class RemoteExecutionClient(ABC):
    """Interface to the remote agent-serving backend."""

    @abstractmethod
    async def list_agents(self) -> list[RemoteAgent]:
        """List agents served by the backend."""
        ...

    @abstractmethod
    async def create_session(self, agent_id: str, title: str) -> RemoteSession:
        """Open a session scoped to an agent."""
        ...

    @abstractmethod
    async def delete_session(self, session_id: str) -> None:
        """Delete a session."""
        ...

    @abstractmethod
    async def create_agent_run_stream(
        self,
        agent_id: str,
        session_id: str,
        input_text: str,
        on_chunk: ChunkCallback,
        on_complete: CompleteCallback,
        on_error: ErrorCallback,
    ) -> None:
        """Run the agent on ``input_text`` and push the output to callbacks.

        ``on_chunk`` receives the cumulative text so far, zero or more times.
        Exactly one of ``on_complete`` or ``on_error`` fires before this
        coroutine returns.
        """
        ...

    async def aclose(self) -> None:  # noqa: B027 - Default impl is intentionally empty
        """Release network resources."""


class HttpRemoteClient(RemoteExecutionClient):
    """``httpx`` implementation of the remote execution contract."""

    def __init__(
        self,
        settings: ConnectionSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            settings: Backend URL and optional credential.
            transport: Optional transport override (used by tests).

        Raises:
            ConfigurationError: If no backend URL is configured.
        """
        if not settings.base_url:
            msg = "Remote service URL not configured."
            raise ConfigurationError(msg)

        headers: dict[str, str] = {}
        if settings.api_key:
            headers["Authorization"] = f"Bearer {settings.api_key.get_secret_value()}"

        self._client = httpx.AsyncClient(
            base_url=settings.base_url.rstrip("/"),
            headers=headers,
            timeout=settings.timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "HttpRemoteClient":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as e:
            msg = f"{method} {url} failed: {e}"
            raise RemoteExecutionError(msg) from e
        return response

    @staticmethod
    def _decode(response: httpx.Response, adapter: TypeAdapter[T]) -> T:
        try:
            return adapter.validate_json(response.content)
        except ValidationError as e:
            msg = f"Malformed response from {response.request.method} {response.url.path}: {e}"
            raise RemoteExecutionError(msg) from e

    async def list_agents(self) -> list[RemoteAgent]:
        """List agents served by the backend.

        Raises:
            RemoteExecutionError: If the request fails or the body is malformed.
        """
        response = await self._request("GET", "/agents")
        return self._decode(response, _AGENTS_ADAPTER)

    async def create_session(self, agent_id: str, title: str) -> RemoteSession:
        """Open a session scoped to an agent.

        Raises:
            RemoteExecutionError: If the request fails or the body is malformed.
        """
        response = await self._request(
            "POST",
            "/sessions",
            json={"agent_id": agent_id, "session_name": title},
        )
        return self._decode(response, _SESSION_ADAPTER)

    async def delete_session(self, session_id: str) -> None:
        """Delete a session.

        Raises:
            RemoteExecutionError: If the request fails.
        """
        await self._request("DELETE", f"/sessions/{session_id}")

    async def create_agent_run_stream(
        self,
        agent_id: str,
        session_id: str,
        input_text: str,
        on_chunk: ChunkCallback,
        on_complete: CompleteCallback,
        on_error: ErrorCallback,
    ) -> None:
        """Stream an agent run, delivering cumulative text to ``on_chunk``."""
        text = ""
        metrics: dict[str, Any] | None = None
        form = {"message": input_text, "stream": "true", "session_id": session_id}

        try:
            async with self._client.stream(
                "POST", f"/agents/{agent_id}/runs", data=form
            ) as response:
                response.raise_for_status()
                async for line in response.aiter_lines():
                    event = _parse_event_line(line)
                    if event is None:
                        continue
                    event_type = event.get("event")
                    content = event.get("content")
                    if event_type in ERROR_EVENTS:
                        raise RemoteExecutionError(str(content or "Agent run failed"))
                    if event_type in COMPLETED_EVENTS:
                        if isinstance(content, str) and content:
                            text = content
                        metrics = event.get("metrics")
                    elif event_type in CONTENT_EVENTS and isinstance(content, str):
                        text += content
                        on_chunk(text)
        except RemoteExecutionError as e:
            on_error(e)
            return
        except httpx.HTTPError as e:
            on_error(RemoteExecutionError(f"Agent run failed: {e}"))
            return

        on_complete(text, metrics)


def _parse_event_line(line: str) -> dict[str, Any] | None:
    """Decode one server-sent-event ``data:`` line or bare JSON line."""
    line = line.strip()
    if line.startswith("data:"):
        line = line[len("data:"):].strip()
    if not line.startswith("{"):
        return None
    try:
        event = json.loads(line)
    except json.JSONDecodeError:
        logger.debug("Skipping undecodable stream line: %s", line)
        return None
    return event if isinstance(event, dict) else None


def create_remote_client(settings: ConnectionSettings) -> HttpRemoteClient | None:
    """Build an HTTP client when a backend URL is configured, else None."""
    if not settings.is_configured:
        return None
    return HttpRemoteClient(settings)
