import sys

import pytest

from tool_loop.codec import TOOL_CALL_CLOSE, TOOL_CALL_OPEN, decode_tool_call, encode_tool_call
from tool_loop.models import FinalAnswer, ToolCall, ToolInvocation

# ---------------------------------------------------------------------------
# Well-formed blocks
# ---------------------------------------------------------------------------


def test_decode_bare_block():
    text = '|||TOOL_CALL|||{"tool":"calculate","params":{"expression":"2+2"}}|||END_TOOL_CALL|||'
    decoded = decode_tool_call(text)
    assert decoded.tool_call == ToolCall(tool="calculate", params={"expression": "2+2"})
    assert decoded.text_before == ""
    assert decoded.text_after == ""


def test_decode_splits_surrounding_text():
    text = (
        "I need the total. Let me use calculate.\n\n"
        f"{TOOL_CALL_OPEN}\n"
        '{"tool": "calculate", "params": {"expression": "10 * 3"}}\n'
        f"{TOOL_CALL_CLOSE}\n\nWaiting for result."
    )
    decoded = decode_tool_call(text)
    assert decoded.tool_call.tool == "calculate"
    assert decoded.text_before == "I need the total. Let me use calculate."
    assert decoded.text_after == "Waiting for result."


def test_missing_params_default_to_empty():
    decoded = decode_tool_call(f'{TOOL_CALL_OPEN}{{"tool": "document_analysis"}}{TOOL_CALL_CLOSE}')
    assert decoded.tool_call == ToolCall(tool="document_analysis", params={})


def test_only_first_block_is_used():
    first = encode_tool_call(ToolCall(tool="a", params={"n": 1}))
    second = encode_tool_call(ToolCall(tool="b", params={"n": 2}))
    decoded = decode_tool_call(f"{first}\n{second}")
    assert decoded.tool_call.tool == "a"
    assert decoded.text_after == second


def test_encode_round_trips_through_decode():
    call = ToolCall(tool="regulatory_lookup", params={"jurisdiction": "EU", "topic": "PSD2 SCA"})
    assert decode_tool_call(encode_tool_call(call)).tool_call == call


# ---------------------------------------------------------------------------
# Tolerant degrade
# ---------------------------------------------------------------------------


def test_plain_text_is_final_answer():
    decoded = decode_tool_call("The risk is low.")
    assert decoded.tool_call is None
    assert decoded.text_before == "The risk is low."
    assert decoded.outcome == FinalAnswer(text="The risk is low.")


def test_open_without_close_is_plain_text():
    text = 'Checking now |||TOOL_CALL||| {"tool": "calculate", "params": {}}'
    decoded = decode_tool_call(text)
    assert decoded.tool_call is None
    assert decoded.text_before == text
    assert decoded.text_after == ""


@pytest.mark.parametrize(
    "payload",
    [
        "{broken json}",
        '{"params": {"x": 1}}',
        '{"tool": "", "params": {}}',
        '{"tool": 42}',
        '["calculate"]',
        "",
    ],
)
def test_bad_payload_degrades_to_plain_text(payload):
    text = f"before {TOOL_CALL_OPEN}{payload}{TOOL_CALL_CLOSE} after"
    decoded = decode_tool_call(text)
    assert decoded.tool_call is None
    assert decoded.text_before == text


def test_non_object_params_become_empty():
    decoded = decode_tool_call(f'{TOOL_CALL_OPEN}{{"tool": "calculate", "params": "2+2"}}{TOOL_CALL_CLOSE}')
    assert decoded.tool_call.params == {}


def test_close_before_open_is_ignored():
    text = f'{TOOL_CALL_CLOSE} stray {TOOL_CALL_OPEN}{{"tool": "x"}}'
    assert decode_tool_call(text).tool_call is None


HUGE_INT_CALL = TOOL_CALL_OPEN + '{"tool": "calculate", "params": {"n": ' + "9" * 5000 + "}}" + TOOL_CALL_CLOSE
int_digit_limit = pytest.mark.skipif(
    not 0 < getattr(sys, "get_int_max_str_digits", lambda: 0)() < 5000,
    reason="interpreter parses 5000-digit integers",
)


@pytest.mark.parametrize(
    "text",
    [
        "",
        TOOL_CALL_OPEN,
        TOOL_CALL_CLOSE,
        TOOL_CALL_OPEN + TOOL_CALL_CLOSE,
        "[" * 5000,
        "\x00|||",
        HUGE_INT_CALL,
    ],
)
def test_decode_never_raises(text):
    decoded = decode_tool_call(text)
    assert isinstance(decoded.text_before, str)
    assert isinstance(decoded.text_after, str)


@int_digit_limit
def test_integer_too_long_to_parse_degrades_to_plain_text():
    decoded = decode_tool_call(HUGE_INT_CALL)
    assert decoded.tool_call is None
    assert decoded.text_before == HUGE_INT_CALL


def test_outcome_is_tool_invocation_when_call_present():
    decoded = decode_tool_call(encode_tool_call(ToolCall(tool="calculate")))
    assert isinstance(decoded.outcome, ToolInvocation)
    assert decoded.outcome.call.tool == "calculate"
