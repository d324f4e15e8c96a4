"""Remote agent-execution backend client."""

from agentlab.remote.client import (
    HttpRemoteClient,
    RemoteAgent,
    RemoteExecutionClient,
    RemoteSession,
    create_remote_client,
)

__all__ = [
    "HttpRemoteClient",
    "RemoteAgent",
    "RemoteExecutionClient",
    "RemoteSession",
    "create_remote_client",
]
