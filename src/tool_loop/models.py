# models.py
# Data contracts for the tool loop.
# No business logic lives here: pure schema and validation.

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------


class ChatMessage(BaseModel):
    """One turn of the conversation sent to the model."""

    role: Literal["system", "user", "assistant"]
    content: str


class ModelParams(BaseModel):
    """Per-run model settings forwarded on every provider call."""

    model: str
    max_tokens: int = Field(default=2048, gt=0)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)


class ChatRequest(BaseModel):
    model: str
    messages: list[ChatMessage]
    max_tokens: int = 2048
    temperature: float = 0.7


class Usage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0


class ChatResponse(BaseModel):
    content: str
    model: str
    provider: str
    usage: Usage = Field(default_factory=Usage)


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


class ToolParameter(BaseModel):
    """Schema entry for one tool parameter, as shown to the model."""

    type: Literal["string", "number", "boolean", "object", "array"]
    description: str
    required: bool = False


class ToolCall(BaseModel):
    """A tool invocation decoded from model output."""

    tool: str = Field(..., min_length=1)
    params: dict[str, Any] = Field(default_factory=dict)


class ToolResult(BaseModel):
    """
    Outcome of a tool capability.

    success=False is a normal business outcome, not an exception, and must
    still carry a readable summary.
    """

    success: bool
    data: Any = None
    summary: str = Field(..., min_length=1)


class ToolContext(BaseModel):
    """Read-only runtime context handed to every tool."""

    model_config = ConfigDict(frozen=True)

    agent_id: str
    agent_slug: str
    document_context: str | None = None


class ToolCallRecord(BaseModel):
    """Audit entry for one executed tool call."""

    tool: str
    params: dict[str, Any]
    result: ToolResult
    duration_ms: int


# ---------------------------------------------------------------------------
# Decode variants
# ---------------------------------------------------------------------------


class FinalAnswer(BaseModel):
    """Model output with no tool-call block: the answer itself."""

    text: str


class ToolInvocation(BaseModel):
    """Model output carrying exactly one tool-call block."""

    call: ToolCall
    text_before: str = ""
    text_after: str = ""


class DecodedResponse(BaseModel):
    """The codec's total result triple for one model response."""

    tool_call: ToolCall | None
    text_before: str
    text_after: str = ""

    @property
    def outcome(self) -> FinalAnswer | ToolInvocation:
        if self.tool_call is None:
            return FinalAnswer(text=self.text_before)
        return ToolInvocation(
            call=self.tool_call,
            text_before=self.text_before,
            text_after=self.text_after,
        )


# ---------------------------------------------------------------------------
# Step events
# ---------------------------------------------------------------------------


class StepType(str, Enum):
    LLM_REASONING = "llm_reasoning"
    TOOL_CALL = "tool_call"
    DATA_FETCH = "data_fetch"
    RULE_CHECK = "rule_check"
    DECISION = "decision"


class StepStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class StepEvent(BaseModel):
    """One observable transition of the loop, streamed to the client."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    step_type: StepType
    tool: str
    label: str
    status: StepStatus
    step: int = Field(..., ge=1)
    max_steps: int = Field(..., alias="maxSteps", ge=1)
    duration_ms: int | None = None
    summary: str | None = None
    input_data: Any = None
    output_data: Any = None
    error_message: str | None = None

    def to_payload(self) -> dict[str, Any]:
        """Wire form: camelCase maxSteps, enum values, unset fields dropped."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Stream events
# ---------------------------------------------------------------------------

EventType = Literal["step", "token", "steps_complete", "done", "error"]


class StreamEvent(BaseModel):
    """A typed event on the run's output stream."""

    event: EventType
    data: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def step(cls, step: StepEvent) -> "StreamEvent":
        return cls(event="step", data=step.to_payload())
