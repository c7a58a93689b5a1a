"""
Engine exceptions.

Only configuration problems propagate to the caller. Transport, parse
and classification failures are absorbed where they happen.
"""


class ConfigurationError(ValueError):
    """Missing or invalid target input. Raised before any dispatch."""


class ToolBusyError(RuntimeError):
    """A run of the same tool is still in progress."""

    def __init__(self, tool: str):
        super().__init__(f"A scan is already running for tool '{tool}'")
        self.tool = tool


class UnknownToolError(KeyError):
    """No tool is registered under the requested id."""
