# steps.py
# Step event construction for the tool loop.
#
# StepRecorder owns the run's step counter. Every transition goes through it,
# so step numbers are 1-based, strictly increasing and bounded by the budget.
# Payloads are sanitized here, independent of which tool produced them.

from typing import Any

from tool_loop.errors import StepBudgetExceeded
from tool_loop.models import StepEvent, StepStatus, StepType

MAX_STRING_CHARS = 500
MAX_SEQUENCE_ITEMS = 10
ELLIPSIS = "..."

CATEGORY_STEP_TYPES: dict[str, StepType] = {
    "data": StepType.DATA_FETCH,
    "retrieval": StepType.DATA_FETCH,
    "knowledge": StepType.DATA_FETCH,
    "documents": StepType.DATA_FETCH,
    "validation": StepType.RULE_CHECK,
    "compliance": StepType.RULE_CHECK,
    "regulatory": StepType.RULE_CHECK,
}


# ---------------------------------------------------------------------------
# Payload helpers
# ---------------------------------------------------------------------------


def sanitize(value: Any) -> Any:
    """Bound a payload for inclusion in a step event."""
    if isinstance(value, str):
        if len(value) > MAX_STRING_CHARS:
            return value[:MAX_STRING_CHARS] + ELLIPSIS
        return value
    if isinstance(value, dict):
        return {
            key if isinstance(key, str) else str(key): sanitize(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        items = [sanitize(item) for item in value[:MAX_SEQUENCE_ITEMS]]
        if len(value) > MAX_SEQUENCE_ITEMS:
            items.append(f"{ELLIPSIS} +{len(value) - MAX_SEQUENCE_ITEMS} more")
        return items
    if value is None or isinstance(value, (bool, int, float)):
        return value
    # Non-JSON values are rendered with str(), as in the tool-result turn.
    return sanitize(str(value))


def _clip(value: Any, limit: int) -> str:
    if not isinstance(value, str) or not value:
        return ELLIPSIS
    return value[:limit]


def tool_label(tool: str, params: dict[str, Any]) -> str:
    """Human-readable label for a tool step, derived from its parameters."""
    if tool == "rag_query":
        return f'Searching knowledge base: "{_clip(params.get("query"), 60)}"'
    if tool == "calculate":
        return f"Calculating: {_clip(params.get('expression') or params.get('operation'), 60)}"
    if tool == "data_validation":
        return f"Validating {params.get('validation_type') or 'data'}"
    if tool == "document_analysis":
        return f"Analyzing documents: {params.get('action') or 'search'}"
    if tool == "regulatory_lookup":
        jurisdiction = params.get("jurisdiction") or ""
        return f"Looking up {jurisdiction} regulations: {_clip(params.get('topic'), 40)}"
    return f"Running {tool}"


def step_type_for(category: str, override: StepType | None = None) -> StepType:
    if override is not None:
        return override
    return CATEGORY_STEP_TYPES.get(category.lower(), StepType.TOOL_CALL)


def step_budget(max_iterations: int) -> int:
    """One reasoning and one action step per iteration, plus the terminal step."""
    return 2 * max_iterations + 1


# ---------------------------------------------------------------------------
# Recorder
# ---------------------------------------------------------------------------


class StepRecorder:
    """
    Allocates step numbers and keeps the terminal event of every step.

    begin()  → running event with a fresh number
    finish() → completed/error event reusing that number
    atomic() → completed event with a fresh number, no running counterpart
    """

    def __init__(self, max_steps: int) -> None:
        self.max_steps = max_steps
        self.counter = 0
        self.all_steps: list[StepEvent] = []

    def _next(self) -> int:
        if self.counter >= self.max_steps:
            raise StepBudgetExceeded(
                f"Step {self.counter + 1} exceeds the budget of {self.max_steps}."
            )
        self.counter += 1
        return self.counter

    def begin(
        self,
        step_type: StepType,
        tool: str,
        label: str,
        input_data: Any = None,
    ) -> StepEvent:
        return StepEvent(
            step_type=step_type,
            tool=tool,
            label=label,
            status=StepStatus.RUNNING,
            step=self._next(),
            max_steps=self.max_steps,
            input_data=sanitize(input_data),
        )

    def finish(
        self,
        running: StepEvent,
        *,
        ok: bool = True,
        label: str | None = None,
        duration_ms: int | None = None,
        summary: str | None = None,
        output_data: Any = None,
        error_message: str | None = None,
    ) -> StepEvent:
        event = running.model_copy(
            update={
                "status": StepStatus.COMPLETED if ok else StepStatus.ERROR,
                "label": label or running.label,
                "duration_ms": duration_ms,
                "summary": summary,
                "output_data": sanitize(output_data),
                "error_message": None if ok else (error_message or summary or "Step failed"),
            }
        )
        self.all_steps.append(event)
        return event

    def atomic(
        self,
        step_type: StepType,
        tool: str,
        label: str,
        summary: str | None = None,
        output_data: Any = None,
    ) -> StepEvent:
        event = StepEvent(
            step_type=step_type,
            tool=tool,
            label=label,
            status=StepStatus.COMPLETED,
            step=self._next(),
            max_steps=self.max_steps,
            summary=summary,
            output_data=sanitize(output_data),
        )
        self.all_steps.append(event)
        return event

    def payload(self) -> list[dict[str, Any]]:
        return [event.to_payload() for event in self.all_steps]
