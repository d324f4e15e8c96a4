"""Configuration file support for agentlab."""

from agentlab.config.loader import (
    CLIOverrides,
    ConfigLoader,
    FileConfig,
    RemoteOverrides,
    load_config,
)

__all__ = [
    "CLIOverrides",
    "ConfigLoader",
    "FileConfig",
    "RemoteOverrides",
    "load_config",
]
