# run.py
# Entry point. Config and wiring only, no logic lives here.
#
# Set OPENROUTER_API_KEY (or a .env file) and optionally TOOL_LOOP_MODEL.
# https://openrouter.ai/models

import logging
import sys

from rich.logging import RichHandler

from tool_loop import display
from tool_loop.config import LoopSettings
from tool_loop.loop import LoopController
from tool_loop.models import ChatMessage, ModelParams, ToolContext
from tool_loop.prompts import build_tool_instructions
from tool_loop.provider import OpenAIChatProvider
from tool_loop.tools import default_registry

AGENT_ID = "demo"
AGENT_SLUG = "transaction-monitor"
AGENT_TOOLS = ["data_validation", "regulatory_lookup", "calculate"]

SYSTEM_PROMPT = (
    "You are a transaction monitoring analyst. Assess the transaction the user "
    "describes for AML risk and give a clear recommendation."
)

# Demo prompt: should trigger validation, a regulatory lookup and a calculation.
PROMPT = (
    "A customer sent a $9,800 wire transfer in the US, their third near-threshold "
    "transfer this week. Score the risk: weight threshold proximity at 0.6 and "
    "frequency at 0.4."
)


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=display.console, show_path=False)],
    )

    settings = LoopSettings.from_env()
    registry = default_registry()
    tools = registry.resolve(AGENT_TOOLS)

    provider = OpenAIChatProvider(
        api_key=settings.api_key,
        base_url=settings.base_url,
        timeout=settings.request_timeout,
    )
    controller = LoopController(provider, registry, max_iterations=settings.max_iterations)

    prompt = " ".join(sys.argv[1:]) or PROMPT
    display.banner(settings.model, settings.max_iterations, [t.name for t in tools])
    display.prompt_received(prompt)

    stream = controller.run(
        messages=[
            ChatMessage(role="system", content=f"{SYSTEM_PROMPT}\n\n{build_tool_instructions(tools)}"),
            ChatMessage(role="user", content=prompt),
        ],
        tools=tools,
        tool_context=ToolContext(agent_id=AGENT_ID, agent_slug=AGENT_SLUG),
        model_params=ModelParams(
            model=settings.model,
            max_tokens=settings.max_tokens,
            temperature=settings.temperature,
        ),
    )
    with stream:
        for event in stream:
            display.render(event)


if __name__ == "__main__":
    main()
