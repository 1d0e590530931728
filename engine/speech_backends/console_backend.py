"""Speech output that prints prompts to the terminal."""
from __future__ import annotations

import typer


class ConsoleSpeechOutput:
    def __init__(self, prefix: str = "coach") -> None:
        self.prefix = prefix

    async def speak(self, text: str) -> None:
        typer.secho(f"{self.prefix}> {text}", fg=typer.colors.BLUE)

    async def stop(self) -> None:
        # printing is instantaneous; nothing to interrupt
        return None
