"""CLI for the sdd-mcp server.

Convention-based: discovers .sdd/ by walking up from cwd.

Usage:
    sdd-mcp init                       # Initialize .sdd/ in cwd
    sdd-mcp serve                      # Run the MCP server over stdio
    sdd-mcp tools                      # List registered tools
    sdd-mcp tool-doc sdd-design        # Show one tool's documentation
    sdd-mcp stats                      # Tool registry statistics
"""

from __future__ import annotations

import asyncio
import json as json_mod
import sys
from pathlib import Path

import click

from sdd_mcp import __version__
from sdd_mcp.config import SDD_DIR_NAME, ServerConfig, find_sdd_root, read_config, write_config
from sdd_mcp.dispatcher import ProtocolDispatcher
from sdd_mcp.mcp_server import _run, build_dispatcher


def _load_config() -> ServerConfig:
    """Config from the nearest .sdd/, or defaults outside a project."""
    try:
        return read_config(find_sdd_root())
    except FileNotFoundError:
        return ServerConfig()


def _dispatcher() -> ProtocolDispatcher:
    return build_dispatcher(_load_config())


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="sdd-mcp")
def cli() -> None:
    """sdd-mcp: phase-gated spec-driven development over MCP."""


@cli.command()
@click.option("--session-timeout", default=None, type=click.FloatRange(min=0), help="Idle session timeout in seconds (default 1800)")
def init(session_timeout: float | None) -> None:
    """Initialize .sdd/ in the current directory."""
    cwd = Path.cwd()
    sdd_dir = cwd / SDD_DIR_NAME

    if sdd_dir.exists():
        click.echo(f"{SDD_DIR_NAME}/ already exists in {cwd}")
        return

    sdd_dir.mkdir()
    config = ServerConfig() if session_timeout is None else ServerConfig(session_timeout=session_timeout)
    write_config(sdd_dir, config)

    click.echo(f"Initialized {SDD_DIR_NAME}/ in {cwd}")
    click.echo(f"  Session timeout: {config.session_timeout:g}s")
    click.echo("\nNext: sdd-mcp serve")


@cli.command()
@click.option("--project", type=click.Path(file_okay=False, path_type=Path), default=None, help="Project root (auto-discovers .sdd/ if omitted)")
def serve(project: Path | None) -> None:
    """Run the MCP server over stdio."""
    asyncio.run(_run(project))


@cli.command("tools")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def list_tools_cmd(as_json: bool) -> None:
    """List registered tools."""
    tools = _dispatcher().registry.list_tools()
    if as_json:
        data = [t.model_dump(mode="json", by_alias=True, exclude_none=True) for t in tools]
        click.echo(json_mod.dumps(data, indent=2, default=str))
        return
    for tool in tools:
        click.echo(f"{tool.name:<18} {tool.description}")


@cli.command("tool-doc")
@click.argument("name")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def tool_doc(name: str, as_json: bool) -> None:
    """Show documentation for one tool."""
    doc = _dispatcher().registry.get_tool_documentation(name)
    if doc is None:
        if as_json:
            click.echo(json_mod.dumps({"error": f"Unknown tool: {name}"}))
        else:
            click.echo(f"Unknown tool: {name}", err=True)
        sys.exit(1)
    if as_json:
        click.echo(json_mod.dumps(doc, indent=2, default=str))
        return
    click.echo(f"{doc['name']}  [{doc['category']}]")
    click.echo(f"  {doc['description']}")
    if doc["parameters"]:
        click.echo("\nParameters:")
        for param in doc["parameters"]:
            marker = " (required)" if param["required"] else ""
            desc = f" - {param['description']}" if param["description"] else ""
            click.echo(f"  {param['name']}: {param['type']}{marker}{desc}")
    if doc["examples"]:
        click.echo("\nExamples:")
        for example in doc["examples"]:
            click.echo(f"  {example['description']}")
            click.echo(f"    {json_mod.dumps(example['arguments'])}")


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def stats(as_json: bool) -> None:
    """Show tool registry statistics."""
    data = _dispatcher().registry.get_tool_stats()
    if as_json:
        click.echo(json_mod.dumps(data, indent=2, default=str))
        return
    click.echo(f"Tools: {data['totalTools']}")
    for category, names in data["toolsByCategory"].items():
        click.echo(f"  {category}: {', '.join(names)}")


if __name__ == "__main__":
    cli()
