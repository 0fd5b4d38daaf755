# display.py
# Terminal rendering of a run's event stream.
#
# This module owns presentation entirely. loop.py never formats strings for
# the terminal. run.py feeds each StreamEvent to render().
#
# Colour language:
#   cyan: requests and routing
#   blue: model reasoning
#   magenta: tool steps
#   yellow: decisions
#   green: success / final answer
#   red: failures

import json
from typing import Any

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from tool_loop.models import StreamEvent

console = Console()

STEP_COLORS = {
    "llm_reasoning": "blue",
    "tool_call": "magenta",
    "data_fetch": "magenta",
    "rule_check": "magenta",
    "decision": "yellow",
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _mono(value: Any, max_len: int = 120) -> str:
    if not isinstance(value, str):
        value = json.dumps(value, default=str)
    if len(value) > max_len:
        return value[:max_len] + "…"
    return value


# ---------------------------------------------------------------------------
# Run lifecycle
# ---------------------------------------------------------------------------


def banner(model: str, max_iterations: int, tools: list[str]) -> None:
    console.print()
    console.print(
        Panel.fit(
            "[bold cyan]Tool Loop[/bold cyan]\n"
            "[dim]Bounded tool-calling orchestration with streamed step events[/dim]\n\n"
            f"[dim]Model      :[/dim] [white]{model}[/white]\n"
            f"[dim]Iterations :[/dim] [white]{max_iterations}[/white]\n"
            f"[dim]Tools      :[/dim] [white]{', '.join(tools) or 'none'}[/white]",
            border_style="cyan",
            padding=(1, 4),
        )
    )


def prompt_received(prompt: str) -> None:
    console.print()
    console.print(Rule("[cyan]NEW REQUEST[/cyan]", style="cyan"))
    console.print(
        Panel(
            f"[white]{escape(prompt)}[/white]",
            title=_label("USER PROMPT", "cyan"),
            border_style="cyan",
            padding=(0, 2),
        )
    )


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


def step(data: dict[str, Any]) -> None:
    color = STEP_COLORS.get(data.get("step_type", ""), "white")
    counter = f"[{data['step']}/{data['maxSteps']}]"
    status = data.get("status")

    if status == "running":
        console.print()
        console.print(
            f"[bold {color}]  STEP {counter}[/bold {color}]  [white]{escape(data['label'])}[/white]"
        )
        if data.get("input_data"):
            console.print(f"  [dim]↳ input[/dim]   [dim]{escape(_mono(data['input_data']))}[/dim]")
        return

    duration = f"  [dim]{data['duration_ms']} ms[/dim]" if "duration_ms" in data else ""
    if status == "error":
        console.print(
            f"  [bold red]✗ {escape(data.get('error_message', 'failed'))}[/bold red]{duration}"
        )
        return

    if data.get("step_type") == "decision" and "duration_ms" not in data:
        console.print()
        console.print(f"[bold {color}]  STEP {counter}[/bold {color}]  [white]{escape(data['label'])}[/white]")
    console.print(f"  [bold green]✓ {escape(data.get('summary', data['label']))}[/bold green]{duration}")
    if data.get("output_data"):
        console.print(f"  [dim]↳ output[/dim]  [dim]{escape(_mono(data['output_data'], 140))}[/dim]")


def steps_complete(data: dict[str, Any]) -> None:
    calls = data.get("tool_calls", [])
    if not calls:
        return
    console.print()
    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="dim",
        show_header=True,
        header_style="bold dim",
        padding=(0, 1),
    )
    table.add_column("#", justify="center", width=4)
    table.add_column("Tool", width=18)
    table.add_column("Duration", justify="right", width=10)
    table.add_column("Summary", style="dim white")

    for i, call in enumerate(calls, start=1):
        table.add_row(str(i), call["tool"], f"{call['duration_ms']} ms", _mono(call["summary"], 60))

    console.print(
        Panel(
            table,
            title=f"[dim]TOOL CALLS · {len(data.get('steps', []))} step(s) recorded[/dim]",
            border_style="dim",
            padding=(0, 1),
        )
    )


def final_result(text: str) -> None:
    console.print()
    console.print(
        Panel(
            Text(text, style="white"),
            title=_label("RESULT", "green"),
            border_style="green",
            padding=(1, 2),
        )
    )


def error(message: str) -> None:
    console.print()
    console.print(
        Panel(
            f"[bold white]{escape(message)}[/bold white]",
            title=_label("ERROR", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )


def done(data: dict[str, Any]) -> None:
    console.print(f"[dim]  done · {data.get('provider')} · {data.get('model')}[/dim]")
    console.print()


def render(event: StreamEvent) -> None:
    """Dispatch one stream event to its renderer."""
    if event.event == "step":
        step(event.data)
    elif event.event == "token":
        final_result(event.data.get("text", ""))
    elif event.event == "steps_complete":
        steps_complete(event.data)
    elif event.event == "error":
        error(event.data.get("error", "Unknown error"))
    elif event.event == "done":
        done(event.data)
