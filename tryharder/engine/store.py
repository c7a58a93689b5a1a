"""
Result store keyed by tool id.

Holds the most recent ToolRun per tool and enforces single-flight: a tool
that has a non-terminal run cannot start another one. The store is
injected into the engine; there is no module-level instance.
"""

from typing import Dict, List, Optional
import logging

from tryharder.engine.errors import ToolBusyError
from tryharder.engine.models import ToolRun

logger = logging.getLogger(__name__)


class ResultStore:
    """Per-tool run registry."""

    def __init__(self):
        self._runs: Dict[str, ToolRun] = {}

    def begin(self, tool: str, target: str) -> ToolRun:
        """Register a new running ToolRun, refusing if one is still active."""
        current = self._runs.get(tool)
        if current is not None and not current.is_terminal:
            raise ToolBusyError(tool)
        run = ToolRun(tool=tool, target=target)
        self._runs[tool] = run
        return run

    def is_running(self, tool: str) -> bool:
        run = self._runs.get(tool)
        return run is not None and not run.is_terminal

    def latest(self, tool: str) -> Optional[ToolRun]:
        return self._runs.get(tool)

    def all(self) -> List[ToolRun]:
        return list(self._runs.values())

    def reset(self, tool: Optional[str] = None):
        """Forget finished results, for one tool or all. Active runs are kept."""
        tools = [tool] if tool else list(self._runs)
        for name in tools:
            run = self._runs.get(name)
            if run is not None and run.is_terminal:
                del self._runs[name]
        logger.info(f"Results reset: {', '.join(tools) if tools else 'none'}")
