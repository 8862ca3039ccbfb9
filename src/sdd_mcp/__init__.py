"""sdd-mcp: phase-gated spec-driven development workflow over MCP."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("sdd-mcp")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from sdd_mcp.dispatcher import ProtocolDispatcher
from sdd_mcp.registry import ToolDescriptor, ToolRegistry
from sdd_mcp.sessions import SessionManager

__all__ = ["ProtocolDispatcher", "SessionManager", "ToolDescriptor", "ToolRegistry", "__version__"]
