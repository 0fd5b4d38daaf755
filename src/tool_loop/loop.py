# loop.py
# Bounded tool-calling conversation loop.
#
# The controller owns all control flow and state for a run. The model only
# proposes: one tool call per turn, or a final answer. Nothing it writes is
# executed without passing the registry and the agent's allow-list.
#
# Per iteration:
#   reasoning step → model call → decode
#     → final answer            → decision step → token → DONE
#     → rejected tool           → corrective turn → next iteration
#     → allowed tool            → tool step → result turn → next iteration
#   budget exhausted            → forced-final model call → token → DONE
#   DONE                        → steps_complete → done
#
# Provider failures end the run with error → done. Tool failures never do.

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Generator, Iterable

from tool_loop.codec import decode_tool_call
from tool_loop.errors import ProviderError, ToolNotAllowedError
from tool_loop.models import (
    ChatMessage,
    ChatRequest,
    ChatResponse,
    FinalAnswer,
    ModelParams,
    StepEvent,
    StepType,
    StreamEvent,
    ToolCallRecord,
    ToolContext,
    ToolInvocation,
    ToolResult,
)
from tool_loop.prompts import FORCED_FINAL_PROMPT, tool_result_message, tool_unavailable_message
from tool_loop.provider import ChatProvider
from tool_loop.registry import ToolDescriptor, ToolRegistry
from tool_loop.steps import StepRecorder, step_budget, step_type_for, tool_label
from tool_loop.stream import EventStream

logger = logging.getLogger(__name__)

MAX_ITERATIONS = 5
ANSWER_PREVIEW_CHARS = 200
LLM_STEP_TOOL = "llm"

Events = Generator[StreamEvent, None, Any]


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def _preview(text: str) -> str:
    text = text.strip()
    if len(text) > ANSWER_PREVIEW_CHARS:
        return text[:ANSWER_PREVIEW_CHARS] + "..."
    return text


# ---------------------------------------------------------------------------
# Run state
# ---------------------------------------------------------------------------


@dataclass
class RunState:
    """Mutable state of one run. Created per request, owned by that run only."""

    conversation_messages: list[ChatMessage]
    recorder: StepRecorder
    iteration: int = 0
    tool_calls: list[ToolCallRecord] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------


class LoopController:
    """
    Drives runs of the tool-calling loop.

    The controller holds only read-only collaborators, so one instance can
    serve any number of independent runs.

    Example:
        controller = LoopController(provider, default_registry(), max_iterations=5)
        stream = controller.run(messages, tools, context, ModelParams(model="..."))
        for event in stream:
            send(event)
    """

    def __init__(
        self,
        provider: ChatProvider,
        registry: ToolRegistry,
        max_iterations: int = MAX_ITERATIONS,
    ) -> None:
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1.")
        self._provider = provider
        self._registry = registry
        self.max_iterations = max_iterations

    @property
    def provider_name(self) -> str:
        return getattr(self._provider, "name", "unknown")

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def run(
        self,
        messages: Iterable[ChatMessage | dict[str, str]],
        tools: list[ToolDescriptor],
        tool_context: ToolContext,
        model_params: ModelParams,
    ) -> EventStream:
        """
        Start a run. Nothing happens until the returned stream is iterated.

        `tools` is this run's allow-list.
        """
        state = RunState(
            conversation_messages=[
                m if isinstance(m, ChatMessage) else ChatMessage.model_validate(m)
                for m in messages
            ],
            recorder=StepRecorder(step_budget(self.max_iterations)),
        )
        return EventStream(self._drive(state, list(tools), tool_context, model_params))

    def _drive(
        self,
        state: RunState,
        tools: list[ToolDescriptor],
        context: ToolContext,
        params: ModelParams,
    ) -> Events:
        try:
            answered = False
            while state.iteration < self.max_iterations:
                state.iteration += 1
                logger.debug(
                    "Iteration %d/%d for agent %s",
                    state.iteration,
                    self.max_iterations,
                    context.agent_slug,
                )

                raw, outcome = yield from self._reason(state, params)

                if isinstance(outcome, FinalAnswer):
                    yield from self._final_answer(state, outcome.text)
                    answered = True
                    break

                tool = self._validate(state, tools, outcome, raw)
                if tool is not None:
                    yield from self._execute(state, tool, outcome, raw, context)

            if not answered:
                yield from self._forced_final(state, params)

            yield StreamEvent(
                event="steps_complete",
                data={
                    "steps": state.recorder.payload(),
                    "tool_calls": [
                        {
                            "tool": record.tool,
                            "summary": record.result.summary,
                            "duration_ms": record.duration_ms,
                        }
                        for record in state.tool_calls
                    ],
                },
            )
        except GeneratorExit:
            logger.info(
                "Run for agent %s cancelled by consumer after step %d",
                context.agent_slug,
                state.recorder.counter,
            )
            raise
        except Exception as exc:
            if isinstance(exc, ProviderError):
                logger.error("Run for agent %s failed: %s", context.agent_slug, exc)
            else:
                logger.exception("Run for agent %s failed unexpectedly", context.agent_slug)
            yield StreamEvent(event="error", data={"error": str(exc) or "Tool loop failed"})

        yield StreamEvent(
            event="done",
            data={"provider": self.provider_name, "model": params.model},
        )

    # ------------------------------------------------------------------
    # Model calls
    # ------------------------------------------------------------------

    def _call_model(
        self,
        state: RunState,
        running: StepEvent,
        messages: list[ChatMessage],
        params: ModelParams,
    ) -> Generator[StreamEvent, None, tuple[ChatResponse, int]]:
        """
        One non-streaming provider call on behalf of `running`.

        On failure the step is closed as an error and ProviderError is raised.
        """
        started = time.perf_counter()
        try:
            response = self._provider.chat(
                ChatRequest(
                    model=params.model,
                    messages=messages,
                    max_tokens=params.max_tokens,
                    temperature=params.temperature,
                )
            )
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            yield StreamEvent.step(
                state.recorder.finish(
                    running,
                    ok=False,
                    duration_ms=_elapsed_ms(started),
                    summary="Model call failed",
                    error_message=message,
                )
            )
            if isinstance(exc, ProviderError):
                raise
            raise ProviderError(message) from exc
        return response, _elapsed_ms(started)

    def _reason(
        self, state: RunState, params: ModelParams
    ) -> Generator[StreamEvent, None, tuple[str, FinalAnswer | ToolInvocation]]:
        running = state.recorder.begin(
            StepType.LLM_REASONING,
            LLM_STEP_TOOL,
            f"Reasoning (iteration {state.iteration}/{self.max_iterations})",
        )
        yield StreamEvent.step(running)

        response, duration = yield from self._call_model(
            state, running, state.conversation_messages, params
        )
        outcome = decode_tool_call(response.content).outcome

        if isinstance(outcome, ToolInvocation):
            summary = f"Selected tool: {outcome.call.tool}"
            reasoning = outcome.text_before or None
        else:
            summary = "Produced final answer"
            reasoning = None

        yield StreamEvent.step(
            state.recorder.finish(
                running,
                duration_ms=duration,
                summary=summary,
                output_data={"reasoning": reasoning} if reasoning else None,
            )
        )
        return response.content, outcome

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _final_answer(self, state: RunState, answer: str) -> Events:
        yield StreamEvent.step(
            state.recorder.atomic(
                StepType.DECISION,
                LLM_STEP_TOOL,
                "Final answer",
                summary=_preview(answer),
            )
        )
        yield StreamEvent(event="token", data={"text": answer})

    def _validate(
        self,
        state: RunState,
        tools: list[ToolDescriptor],
        invocation: ToolInvocation,
        raw: str,
    ) -> ToolDescriptor | None:
        """Allow-list gate. A rejected call becomes a corrective turn, not a failure."""
        try:
            return self._registry.validate(invocation.call, tools)
        except ToolNotAllowedError as exc:
            logger.warning("Rejected tool call on iteration %d: %s", state.iteration, exc)
            state.conversation_messages += [
                ChatMessage(role="assistant", content=raw),
                ChatMessage(role="user", content=tool_unavailable_message(exc.tool, exc.allowed)),
            ]
            return None

    def _invoke(self, tool: ToolDescriptor, invocation: ToolInvocation, context: ToolContext) -> ToolResult:
        try:
            return ToolResult.model_validate(tool.execute(invocation.call.params, context))
        except Exception as exc:
            logger.warning("Tool %s raised: %s", tool.name, exc, exc_info=True)
            return ToolResult(
                success=False,
                data=None,
                summary=f"Tool error: {str(exc) or type(exc).__name__}",
            )

    def _execute(
        self,
        state: RunState,
        tool: ToolDescriptor,
        invocation: ToolInvocation,
        raw: str,
        context: ToolContext,
    ) -> Events:
        call = invocation.call
        running = state.recorder.begin(
            step_type_for(tool.category, tool.step_type),
            tool.name,
            tool_label(call.tool, call.params),
            input_data=call.params,
        )
        yield StreamEvent.step(running)

        started = time.perf_counter()
        result = self._invoke(tool, invocation, context)
        duration = _elapsed_ms(started)

        if not result.success:
            logger.warning("Tool %s failed: %s", tool.name, result.summary)

        state.tool_calls.append(
            ToolCallRecord(tool=tool.name, params=call.params, result=result, duration_ms=duration)
        )
        yield StreamEvent.step(
            state.recorder.finish(
                running,
                ok=result.success,
                duration_ms=duration,
                summary=result.summary,
                output_data=result.data,
                error_message=None if result.success else result.summary,
            )
        )

        state.conversation_messages += [
            ChatMessage(role="assistant", content=raw),
            ChatMessage(role="user", content=tool_result_message(tool.name, result)),
        ]

    def _forced_final(self, state: RunState, params: ModelParams) -> Events:
        """Budget exhausted: one last call, with no tools on offer."""
        logger.info(
            "Iteration budget of %d exhausted; forcing a final answer", self.max_iterations
        )
        running = state.recorder.begin(StepType.DECISION, LLM_STEP_TOOL, "Forced final answer")
        yield StreamEvent.step(running)

        messages = [
            *state.conversation_messages,
            ChatMessage(role="user", content=FORCED_FINAL_PROMPT),
        ]
        response, duration = yield from self._call_model(state, running, messages, params)

        yield StreamEvent.step(
            state.recorder.finish(running, duration_ms=duration, summary=_preview(response.content))
        )
        yield StreamEvent(event="token", data={"text": response.content})
