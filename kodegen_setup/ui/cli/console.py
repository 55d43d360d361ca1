"""
Console — the click-backed ``Interaction`` used by the CLI.

Progress goes to stdout with ▸ ⚠ ✗ ✓ markers; diagnostics go through
``logging`` (stderr) instead.
"""

from __future__ import annotations

import sys

import click

from kodegen_setup.adapters.base import Interaction


def _stream_is_tty(stream) -> bool:
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


class ClickInteraction(Interaction):
    """Interaction over click.

    Args:
        quiet: Only warnings, errors and the final result are printed.
        interactive: Override terminal detection (defaults to stdin and
            stdout both being a TTY).
    """

    def __init__(self, *, quiet: bool = False, interactive: bool | None = None) -> None:
        self.quiet = quiet
        if interactive is None:
            interactive = _stream_is_tty(sys.stdin) and _stream_is_tty(sys.stdout)
        self._interactive = interactive

    @property
    def interactive(self) -> bool:
        return self._interactive

    def step(self, message: str) -> None:
        if not self.quiet:
            click.secho(f"▸ {message}", fg="cyan")

    def info(self, message: str) -> None:
        if not self.quiet:
            click.echo(f"  {message}")

    def warn(self, message: str) -> None:
        click.secho(f"⚠ {message}", fg="yellow")

    def error(self, message: str) -> None:
        click.secho(f"✗ {message}", fg="red", err=True)

    def success(self, message: str) -> None:
        click.secho(f"✓ {message}", fg="green")

    def confirm(self, question: str, *, default: bool = False) -> bool:
        if not self._interactive:
            return default
        return click.confirm(question, default=default)

    def password(self, prompt: str) -> str:
        if not self._interactive:
            return ""
        return click.prompt(prompt, hide_input=True, default="", show_default=False)
