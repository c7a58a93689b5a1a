"""
TryHarder Tools

Registry of every reconnaissance tool, keyed by tool id.
"""

from typing import Dict, List, Type

from tryharder.engine.errors import UnknownToolError
from tryharder.tools.apirecon import APIRecon
from tryharder.tools.authbypass import AuthBypass
from tryharder.tools.base import BaseTool, RunContext
from tryharder.tools.cachepoison import CachePoison
from tryharder.tools.certwatch import CertWatch
from tryharder.tools.dnstracer import DNSTracer
from tryharder.tools.gitleaks import GitLeaks
from tryharder.tools.headeraudit import HeaderAudit
from tryharder.tools.jshunter import JSHunter
from tryharder.tools.paramfuzz import ParamFuzz
from tryharder.tools.portrush import PortRush
from tryharder.tools.protodetect import ProtoDetect
from tryharder.tools.sqlidetect import SQLiDetect
from tryharder.tools.subrecon import SubRecon
from tryharder.tools.wayback import Wayback
from tryharder.tools.webtechfp import WebTechFP

TOOLS: Dict[str, Type[BaseTool]] = {
    tool.name: tool
    for tool in (
        JSHunter, APIRecon, SubRecon, ParamFuzz, AuthBypass,
        SQLiDetect, WebTechFP, HeaderAudit, GitLeaks, PortRush,
        ProtoDetect, CachePoison, Wayback, CertWatch, DNSTracer,
    )
}


def get_tool(tool_id: str) -> BaseTool:
    """Instantiate a tool by id."""
    try:
        return TOOLS[tool_id]()
    except KeyError:
        raise UnknownToolError(tool_id) from None


def available_tools() -> List[Dict[str, str]]:
    """Id, title, description and target option of every tool."""
    return [
        {
            'id': tool.name,
            'title': tool.title,
            'description': tool.description,
            'target': tool.target_option,
        }
        for tool in TOOLS.values()
    ]


__all__ = ['TOOLS', 'BaseTool', 'RunContext', 'get_tool', 'available_tools']
