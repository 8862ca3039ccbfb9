"""Capability negotiation between client and server.

The server declaration is fixed. The negotiated feature flags depend only on
which capability objects the client declared: presence, not content, enables a
feature. Tool support is unconditional.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, TypedDict

from mcp.types import ServerCapabilities

logger = logging.getLogger(__name__)

_SERVER_CAPABILITIES: dict[str, Any] = {
    "tools": {"listChanged": True},
    "resources": {"subscribe": True, "listChanged": True},
    "prompts": {"listChanged": True},
    "logging": {},
}

_OPTIONAL_FEATURES: tuple[str, ...] = ("resources", "prompts", "logging", "roots")


class FeatureFlags(TypedDict):
    tools: bool
    resources: bool
    prompts: bool
    logging: bool
    roots: bool


@dataclass(frozen=True)
class NegotiatedCapabilities:
    """Outcome of a negotiation: both declarations plus the derived features."""

    server: dict[str, Any]
    client: dict[str, Any]
    features: FeatureFlags

    def to_dict(self) -> dict[str, Any]:
        return {"server": copy.deepcopy(self.server), "client": copy.deepcopy(self.client), "features": dict(self.features)}


def server_capabilities() -> dict[str, Any]:
    """Return a fresh copy of the fixed server capability declaration."""
    return copy.deepcopy(_SERVER_CAPABILITIES)


def tool_capabilities() -> dict[str, Any]:
    return dict(_SERVER_CAPABILITIES["tools"])


def resource_capabilities() -> dict[str, Any]:
    return dict(_SERVER_CAPABILITIES["resources"])


def prompt_capabilities() -> dict[str, Any]:
    return dict(_SERVER_CAPABILITIES["prompts"])


def server_capabilities_model() -> ServerCapabilities:
    """The server declaration as the MCP SDK model, for initialization options."""
    return ServerCapabilities.model_validate(_SERVER_CAPABILITIES)


def negotiate(client_capabilities: Mapping[str, Any] | None = None) -> NegotiatedCapabilities:
    """Intersect the client's declared capabilities with the server's.

    ``client_capabilities`` may be ``None`` or any partial mapping; a key whose
    value is ``None`` counts as absent.
    """
    client = dict(client_capabilities or {})
    features = FeatureFlags(
        tools=True,
        resources=client.get("resources") is not None,
        prompts=client.get("prompts") is not None,
        logging=client.get("logging") is not None,
        roots=client.get("roots") is not None,
    )
    result = NegotiatedCapabilities(server=server_capabilities(), client=client, features=features)
    logger.info(
        "capabilities_negotiated",
        extra={"data": {"client": sorted(k for k in _OPTIONAL_FEATURES if client.get(k) is not None), "features": dict(features)}},
    )
    return result
