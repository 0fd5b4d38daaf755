import pytest
from rich.console import Console

from tool_loop import display
from tool_loop.models import StreamEvent


@pytest.fixture
def console(monkeypatch):
    recording = Console(record=True, width=120)
    monkeypatch.setattr(display, "console", recording)
    return recording


def _step(**overrides):
    data = {"step_type": "tool_call", "tool": "calculate", "label": "Calculating: 2+2", "step": 2, "maxSteps": 11}
    data.update(overrides)
    return StreamEvent(event="step", data=data)


def test_running_and_completed_steps(console):
    display.render(_step(status="running", input_data={"expression": "2+2"}))
    display.render(_step(status="completed", summary="2+2 = 4", duration_ms=3))
    text = console.export_text()
    assert "STEP [2/11]" in text
    assert "Calculating: 2+2" in text
    assert "2+2 = 4" in text
    assert "3 ms" in text


def test_error_step(console):
    display.render(_step(status="error", error_message="Tool error: boom", duration_ms=1))
    assert "Tool error: boom" in console.export_text()


def test_final_answer_error_and_done(console):
    display.render(StreamEvent(event="token", data={"text": "Risk is [low]."}))
    display.render(
        StreamEvent(
            event="steps_complete",
            data={"steps": [{}], "tool_calls": [{"tool": "calculate", "summary": "2+2 = 4", "duration_ms": 3}]},
        )
    )
    display.render(StreamEvent(event="error", data={"error": "Request timed out"}))
    display.render(StreamEvent(event="done", data={"provider": "mock", "model": "m"}))
    text = console.export_text()
    assert "Risk is [low]." in text
    assert "TOOL CALLS" in text
    assert "Request timed out" in text
    assert "done · mock · m" in text
