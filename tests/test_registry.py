import pytest
from unittest.mock import MagicMock

from tool_loop.errors import ToolNotAllowedError
from tool_loop.models import ToolCall, ToolParameter
from tool_loop.prompts import build_tool_instructions, tool_unavailable_message
from tool_loop.registry import ToolDescriptor, ToolRegistry
from tool_loop.tools import default_registry


def _descriptor(name: str) -> ToolDescriptor:
    return ToolDescriptor(
        name=name,
        description=f"The {name} tool.",
        category="calculation",
        execute=MagicMock(),
        parameters={
            "query": ToolParameter(type="string", description="What to look for", required=True),
            "limit": ToolParameter(type="number", description="Max results"),
        },
    )


# ---------------------------------------------------------------------------
# Lookup and registration
# ---------------------------------------------------------------------------


def test_lookup_known_and_unknown():
    registry = ToolRegistry([_descriptor("alpha")])
    assert registry.lookup("alpha").name == "alpha"
    assert registry.lookup("beta") is None
    assert "alpha" in registry
    assert len(registry) == 1


def test_duplicate_registration_rejected():
    registry = ToolRegistry([_descriptor("alpha")])
    with pytest.raises(ValueError, match="already registered"):
        registry.register(_descriptor("alpha"))


def test_default_registry_has_builtin_tools():
    assert default_registry().names() == [
        "calculate",
        "data_validation",
        "document_analysis",
        "regulatory_lookup",
    ]


# ---------------------------------------------------------------------------
# Agent configuration
# ---------------------------------------------------------------------------


def test_resolve_list_skips_unknown_names():
    registry = ToolRegistry([_descriptor("alpha"), _descriptor("beta")])
    assert [t.name for t in registry.resolve(["beta", "ghost", "alpha"])] == ["beta", "alpha"]


def test_resolve_json_string():
    registry = ToolRegistry([_descriptor("alpha")])
    assert [t.name for t in registry.resolve('["alpha"]')] == ["alpha"]


@pytest.mark.parametrize("config", [None, "", "not json", '{"alpha": true}', []])
def test_resolve_empty_or_malformed(config):
    registry = ToolRegistry([_descriptor("alpha")])
    assert registry.resolve(config) == []


# ---------------------------------------------------------------------------
# Allow-list validation
# ---------------------------------------------------------------------------


def test_validate_allowed_tool():
    alpha = _descriptor("alpha")
    registry = ToolRegistry([alpha])
    assert registry.validate(ToolCall(tool="alpha"), [alpha]) is alpha


def test_validate_unregistered_tool():
    alpha = _descriptor("alpha")
    registry = ToolRegistry([alpha])
    with pytest.raises(ToolNotAllowedError) as exc_info:
        registry.validate(ToolCall(tool="ghost"), [alpha])
    assert exc_info.value.tool == "ghost"
    assert exc_info.value.allowed == ["alpha"]


def test_validate_registered_but_not_allowed():
    alpha, beta = _descriptor("alpha"), _descriptor("beta")
    registry = ToolRegistry([alpha, beta])
    with pytest.raises(ToolNotAllowedError, match="'beta' is not available"):
        registry.validate(ToolCall(tool="beta"), [alpha])


def test_allowed_but_unregistered_is_still_rejected():
    alpha = _descriptor("alpha")
    with pytest.raises(ToolNotAllowedError):
        ToolRegistry().validate(ToolCall(tool="alpha"), [alpha])


# ---------------------------------------------------------------------------
# Model-facing surface
# ---------------------------------------------------------------------------


def test_describe_flattens_parameters():
    surface = _descriptor("alpha").describe()
    assert surface["name"] == "alpha"
    assert surface["description"] == "The alpha tool."
    assert surface["parameters"] == [
        {"name": "query", "type": "string", "required": True, "description": "What to look for"},
        {"name": "limit", "type": "number", "required": False, "description": "Max results"},
    ]
    assert "execute" not in surface


def test_tool_instructions_list_tools_and_format():
    registry = default_registry()
    text = build_tool_instructions(registry.resolve(["calculate", "regulatory_lookup"]))
    assert "calculate: Perform arithmetic" in text
    assert '"expression" (string, required)' in text
    assert "|||TOOL_CALL|||" in text and "|||END_TOOL_CALL|||" in text
    assert "Call `regulatory_lookup`" in text
    assert "document_analysis" not in text


def test_tool_instructions_empty_without_tools():
    assert build_tool_instructions([]) == ""


def test_unavailable_message_names_allowed_tools():
    message = tool_unavailable_message("ghost", ["alpha", "beta"])
    assert message.startswith('Tool "ghost" is not available.')
    assert "Available tools: alpha, beta." in message
