# prompts.py
# Every string the loop sends to the model lives here.

import json
from typing import Any

from tool_loop.codec import TOOL_CALL_CLOSE, TOOL_CALL_OPEN
from tool_loop.models import ToolResult
from tool_loop.registry import ToolDescriptor

FORCED_FINAL_PROMPT = (
    "You have used all available tool calls. No more tools are available. "
    "Provide your final answer now using the data you have gathered."
)

# Preferred call order when an agent has these tools. Only tools in the
# allow-list are mentioned.
RECOMMENDED_ORDER: list[tuple[str, str]] = [
    ("rag_query", "search the knowledge base for relevant context"),
    ("data_validation", "validate key data points from the input"),
    ("regulatory_lookup", "check applicable regulations"),
    ("calculate", "compute any required numerical analysis"),
    ("document_analysis", "inspect uploaded documents, if any"),
]


def _param_line(param: dict[str, Any]) -> str:
    req = "required" if param["required"] else "optional"
    return f'    - "{param["name"]}" ({param["type"]}, {req}): {param["description"]}'


def build_tool_instructions(tools: list[ToolDescriptor]) -> str:
    """
    Build the tool block appended to an agent's system prompt.

    Returns "" when the agent has no tools.
    """
    if not tools:
        return ""

    docs: list[str] = []
    for tool in tools:
        surface = tool.describe()
        lines = [f"  {surface['name']}: {surface['description']}", "  Parameters:"]
        lines.extend(_param_line(p) for p in surface["parameters"])
        docs.append("\n".join(lines))

    names = {tool.name for tool in tools}
    workflow = [
        f"Step {i}: Call `{name}` to {purpose}"
        for i, (name, purpose) in enumerate(
            ((n, p) for n, p in RECOMMENDED_ORDER if n in names), start=1
        )
    ]

    sections = [
        "=== TOOL-CALLING WORKFLOW ===",
        "",
        "You have access to the tools below. Use them to gather and verify data "
        "before writing your final answer. Never fabricate data.",
        "",
        "Rules:",
        "1. Call ONE tool at a time using the exact format below, then WAIT for the result.",
        "2. After each result, reason about it, then call the next tool or answer.",
        "3. When you have enough information, answer WITHOUT a tool-call block.",
        "",
        "Available tools:",
        "\n\n".join(docs),
        "",
        "Tool calling format (use this EXACT syntax):",
        TOOL_CALL_OPEN,
        '{"tool": "<tool_name>", "params": {<parameters>}}',
        TOOL_CALL_CLOSE,
    ]
    if workflow:
        sections += ["", "Recommended workflow:", *workflow]
    sections.append("=== END TOOL-CALLING WORKFLOW ===")
    return "\n".join(sections)


def tool_unavailable_message(tool: str, allowed: list[str]) -> str:
    return (
        f'Tool "{tool}" is not available. Available tools: {", ".join(allowed)}. '
        "Please use an available tool or provide your final analysis."
    )


def tool_result_message(tool: str, result: ToolResult) -> str:
    data = json.dumps(result.data, indent=2, default=str, ensure_ascii=False)
    return (
        f"Tool result for {tool}:\n{data}\n\n"
        f"Summary: {result.summary}\n\n"
        "Continue your analysis. You may call another tool or provide your final response."
    )
