# registry.py
# Tool registry and per-run allow-list validation.
#
# The registry is built once per process and only read while runs execute.
# The allow-list is the subset of tools one agent configuration may call.

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Protocol

from tool_loop.errors import ToolNotAllowedError
from tool_loop.models import StepType, ToolCall, ToolContext, ToolParameter, ToolResult

logger = logging.getLogger(__name__)


class Tool(Protocol):
    """Capability contract every tool implements."""

    def __call__(self, params: dict[str, Any], context: ToolContext) -> ToolResult: ...


@dataclass(frozen=True)
class ToolDescriptor:
    name: str
    description: str
    category: str
    execute: Tool
    parameters: dict[str, ToolParameter] = field(default_factory=dict)
    step_type: StepType | None = None

    def describe(self) -> dict[str, Any]:
        """The only surface the model sees: no execution internals."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": [
                {
                    "name": name,
                    "type": param.type,
                    "required": param.required,
                    "description": param.description,
                }
                for name, param in self.parameters.items()
            ],
        }


class ToolRegistry:
    """Name → ToolDescriptor map."""

    def __init__(self, tools: Iterable[ToolDescriptor] = ()) -> None:
        self._tools: dict[str, ToolDescriptor] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: ToolDescriptor) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool {tool.name!r} is already registered.")
        self._tools[tool.name] = tool

    def lookup(self, name: str) -> ToolDescriptor | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def resolve(self, names: str | Iterable[str] | None) -> list[ToolDescriptor]:
        """
        Turn an agent's tool configuration into its allow-list.

        Accepts a list of names or a JSON array string as stored with the
        agent. Unknown names are skipped; malformed JSON yields no tools.
        """
        if not names:
            return []
        if isinstance(names, str):
            try:
                names = json.loads(names)
            except json.JSONDecodeError:
                logger.warning("Ignoring malformed tool configuration: %r", names)
                return []
            if not isinstance(names, list):
                return []

        resolved: list[ToolDescriptor] = []
        for name in names:
            tool = self._tools.get(name) if isinstance(name, str) else None
            if tool is None:
                logger.warning("Skipping unknown tool %r in agent configuration", name)
                continue
            resolved.append(tool)
        return resolved

    def validate(self, call: ToolCall, allowed: list[ToolDescriptor]) -> ToolDescriptor:
        """
        Return the descriptor for `call` if it is registered AND allowed.
        Raises ToolNotAllowedError otherwise.
        """
        allowed_names = [tool.name for tool in allowed]
        tool = self._tools.get(call.tool)
        if tool is None or call.tool not in allowed_names:
            raise ToolNotAllowedError(call.tool, allowed_names)
        return tool
