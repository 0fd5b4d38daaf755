# stream.py
# Single-consumer event stream between the loop and the transport.
#
# The loop is a generator: pulling the next event resumes it up to its next
# suspension point. Closing the stream stops the run there; no further model
# or tool call is issued.

import json
from dataclasses import dataclass, field
from typing import Any, Generator, Iterator

from tool_loop.models import StreamEvent


def format_sse(event: StreamEvent) -> str:
    """Frame one event as a Server-Sent Events record."""
    return f"event: {event.event}\ndata: {json.dumps(event.data, default=str)}\n\n"


@dataclass
class RunOutcome:
    """Everything a non-streaming caller needs from a finished run."""

    answer: str | None = None
    error: str | None = None
    steps: list[dict[str, Any]] = field(default_factory=list)
    tool_calls: list[dict[str, Any]] = field(default_factory=list)
    provider: str | None = None
    model: str | None = None
    events: list[StreamEvent] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None


class EventStream:
    """
    Iterable wrapper around a run.

    Usage:
        stream = controller.run(messages, tools, context, params)
        for event in stream:
            ...
        # or, for HTTP
        for chunk in stream.sse():
            response.write(chunk)
    """

    def __init__(self, source: Generator[StreamEvent, None, None]) -> None:
        self._source = source
        self._consumed = False

    def __iter__(self) -> Iterator[StreamEvent]:
        if self._consumed:
            raise RuntimeError("EventStream supports a single consumer.")
        self._consumed = True
        return self._source

    def close(self) -> None:
        """Detach the consumer. The run stops at its current suspension point."""
        self._source.close()

    def __enter__(self) -> "EventStream":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def sse(self) -> Iterator[str]:
        for event in self:
            yield format_sse(event)

    def collect(self) -> RunOutcome:
        """Drain the stream into a RunOutcome."""
        outcome = RunOutcome()
        for event in self:
            outcome.events.append(event)
            if event.event == "token":
                outcome.answer = (outcome.answer or "") + event.data.get("text", "")
            elif event.event == "steps_complete":
                outcome.steps = event.data.get("steps", [])
                outcome.tool_calls = event.data.get("tool_calls", [])
            elif event.event == "error":
                outcome.error = event.data.get("error") or "Unknown error"
            elif event.event == "done":
                outcome.provider = event.data.get("provider")
                outcome.model = event.data.get("model")
        return outcome
