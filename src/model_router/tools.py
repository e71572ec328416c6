"""
model-router: Tool-calling bridge.

Adapters that support function calling can hand the model a small set of
file-system tools. The tools themselves are provided by the host through an
injected ``ToolBridge``; this module only describes them to the model and
dispatches the calls it makes.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

# Round trips allowed between the model and the bridge for one call
MAX_TOOL_ITERATIONS = 10


@runtime_checkable
class ToolBridge(Protocol):
    """File-system capabilities exposed to a model.

    Every method returns a textual summary suitable for feeding back to the
    model as a tool result.
    """

    async def read_file(self, path: str) -> str:
        ...

    async def list_directory(self, path: str = ".") -> str:
        ...

    async def grep(self, pattern: str, options: dict[str, Any] | None = None) -> str:
        ...

    async def glob(self, pattern: str, base_path: str = ".") -> str:
        ...


def _function(name: str, description: str, properties: dict[str, Any], required: list[str]) -> dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required,
            },
        },
    }


TOOL_DEFINITIONS: list[dict[str, Any]] = [
    _function(
        "read_file",
        "Read a file and return its contents with line numbers.",
        {"path": {"type": "string", "description": "File path, relative to the working directory"}},
        ["path"],
    ),
    _function(
        "list_directory",
        "List the entries of a directory.",
        {"path": {"type": "string", "description": "Directory path", "default": "."}},
        [],
    ),
    _function(
        "grep",
        "Search files for a text pattern.",
        {
            "pattern": {"type": "string", "description": "Pattern to search for"},
            "path": {"type": "string", "description": "Directory or file to search"},
            "case_sensitive": {"type": "boolean", "default": False},
        },
        ["pattern"],
    ),
    _function(
        "glob",
        "Find files whose names match a glob pattern.",
        {
            "pattern": {"type": "string", "description": "Glob pattern, e.g. *.py"},
            "base_path": {"type": "string", "description": "Directory to search from"},
        },
        ["pattern"],
    ),
]


async def dispatch_tool_call(bridge: ToolBridge, name: str, arguments: str | dict[str, Any]) -> str:
    """Execute one tool call requested by the model.

    Failures are returned as text so the model can react to them instead of
    aborting the whole call.
    """
    try:
        args = json.loads(arguments) if isinstance(arguments, str) else dict(arguments or {})
    except json.JSONDecodeError as e:
        return f"Error: invalid arguments for {name}: {e}"

    logger.debug(f"Tool call {name}({args})")
    try:
        if name == "read_file":
            return await bridge.read_file(args["path"])
        if name == "list_directory":
            return await bridge.list_directory(args.get("path", "."))
        if name == "grep":
            options = {k: v for k, v in args.items() if k != "pattern"}
            return await bridge.grep(args["pattern"], options)
        if name == "glob":
            return await bridge.glob(args["pattern"], args.get("base_path", "."))
    except KeyError as e:
        return f"Error: missing argument {e} for {name}"
    except Exception as e:
        logger.warning(f"Tool '{name}' failed: {e}")
        return f"Error: {name} failed: {e}"

    return f"Error: unknown tool '{name}'"
