# codec.py
# Tool-call wire protocol embedded in model output.
#
#   <free text>
#   |||TOOL_CALL|||
#   {"tool": "<name>", "params": {...}}
#   |||END_TOOL_CALL|||
#   <free text>
#
# Model output is untrusted. Decoding is total: anything malformed degrades to
# "no tool call" and the text is treated as a final answer.

import json

from tool_loop.models import DecodedResponse, ToolCall

TOOL_CALL_OPEN = "|||TOOL_CALL|||"
TOOL_CALL_CLOSE = "|||END_TOOL_CALL|||"


def _plain(text: str) -> DecodedResponse:
    return DecodedResponse(tool_call=None, text_before=text, text_after="")


def decode_tool_call(text: str) -> DecodedResponse:
    """
    Extract the first tool-call block from `text`.

    Only the first block is considered (one call per turn). Never raises.
    """
    open_idx = text.find(TOOL_CALL_OPEN)
    if open_idx == -1:
        return _plain(text)

    payload_start = open_idx + len(TOOL_CALL_OPEN)
    close_idx = text.find(TOOL_CALL_CLOSE, payload_start)
    if close_idx == -1:
        return _plain(text)

    payload = text[payload_start:close_idx].strip()
    try:
        parsed = json.loads(payload)
    except (ValueError, RecursionError):
        return _plain(text)

    if not isinstance(parsed, dict):
        return _plain(text)

    tool = parsed.get("tool")
    if not isinstance(tool, str) or not tool:
        return _plain(text)

    params = parsed.get("params")
    if not isinstance(params, dict):
        params = {}

    return DecodedResponse(
        tool_call=ToolCall(tool=tool, params=params),
        text_before=text[:open_idx].strip(),
        text_after=text[close_idx + len(TOOL_CALL_CLOSE):].strip(),
    )


def encode_tool_call(call: ToolCall) -> str:
    """Render `call` as a canonical tool-call block."""
    body = json.dumps({"tool": call.tool, "params": call.params}, ensure_ascii=False)
    return f"{TOOL_CALL_OPEN}\n{body}\n{TOOL_CALL_CLOSE}"
