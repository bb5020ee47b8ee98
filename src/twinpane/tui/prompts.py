"""prompt_toolkit-backed UI delegates for the ContextBridge."""

from __future__ import annotations

from typing import TYPE_CHECKING

from prompt_toolkit import PromptSession
from prompt_toolkit.shortcuts import create_confirm_session
from rich.console import Console

if TYPE_CHECKING:
    from ..bridge import ContextBridge

console = Console()


async def show_message(title: str, message: str) -> None:
    console.print(f"[bold]{title}[/bold]  {message}")


async def show_confirmation(title: str, message: str) -> bool:
    console.print(f"[bold]{title}[/bold]")
    try:
        return await create_confirm_session(message).prompt_async()
    except (EOFError, KeyboardInterrupt):
        return False


async def show_input(title: str, prompt: str, default: str = "") -> str | None:
    console.print(f"[bold]{title}[/bold]")
    session: PromptSession = PromptSession()
    try:
        text = await session.prompt_async(f"{prompt} ", default=default)
    except (EOFError, KeyboardInterrupt):
        return None
    return text


def wire_prompts(bridge: ContextBridge, interactive: bool = True) -> None:
    """Install the console delegates; non-interactive sessions only get messages."""
    bridge.set_message_handler(show_message)
    if interactive:
        bridge.set_confirmation_handler(show_confirmation)
        bridge.set_input_handler(show_input)
