# errors.py
# Exception types for the tool loop.
#
# Only policy and provider failures are exceptions. Malformed model output and
# failing tools are ordinary outcomes and never raise past the controller.


class ToolLoopError(Exception):
    """Base class for every error raised by tool_loop."""


class ToolNotAllowedError(ToolLoopError):
    """Raised when a tool call names a tool outside the registry or allow-list."""

    def __init__(self, tool: str, allowed: list[str]) -> None:
        self.tool = tool
        self.allowed = allowed
        super().__init__(
            f"Tool {tool!r} is not available. Allowed: {', '.join(allowed) or 'none'}."
        )


class StepBudgetExceeded(ToolLoopError):
    """Raised when a run tries to emit more steps than its budget allows. Always a bug."""


class ProviderError(ToolLoopError):
    """Raised when the model provider call fails or times out."""
