"""Output formatting utilities for the CLI."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterable

import questionary
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

from nomadops.cli.common.tui_style import QUESTIONARY_STYLE_CONFIRM

_THEME = Theme(
    {
        "ok": "bold green",
        "warn": "yellow",
        "err": "bold red",
        "title": "bold cyan",
        "meta": "dim",
    }
)

console = Console(theme=_THEME)


@dataclass(frozen=True)
class Out:
    """Output formatter for CLI messages, tables and plan reports."""

    def _q_try(self, fn, *args, **kwargs):
        """Call questionary prompts and drop unsupported kwargs on older versions."""
        try:
            return fn(*args, **kwargs)
        except TypeError:
            for k in ("auto_enter",):
                kwargs.pop(k, None)
            return fn(*args, **kwargs)

    def _q(self, message: str) -> str:
        """Prefix a prompt message with the tool name."""
        return f"[nomadops] {message}"

    def info(self, msg: str) -> None:
        """Print an informational message."""
        console.print(f"[title]›[/] {escape(msg)}")

    @contextmanager
    def status(self, msg: str):
        """Show a transient status spinner while work is in progress."""
        with console.status(msg, spinner="dots"):
            yield

    def success(self, msg: str) -> None:
        """Print a success message."""
        console.print(f"[ok]✓[/] {escape(msg)}")

    def warn(self, msg: str) -> None:
        """Print a warning message."""
        console.print(f"[warn]⚠[/] {escape(msg)}")

    def error(self, msg: str) -> None:
        """Print an error message."""
        console.print(f"[err]✗[/] {escape(msg)}")

    def plan(self, markup: str, *, no_color: bool = False) -> None:
        """
        Print a rendered plan report.

        With `no_color`, styles are stripped and the plain text is printed,
        which is also what redirected output gets.
        """
        if no_color:
            console.print(Text.from_markup(markup).plain, markup=False, highlight=False)
        else:
            console.print(markup, highlight=False)

    def confirm(self, message: str, *, default: bool = False) -> bool:
        """
        Ask the user for a yes/no confirmation.

        Args:
            message: Confirmation question shown to the user.
            default: Default answer if the user just presses enter.

        Returns:
            True if the user confirms, False otherwise (including Ctrl-C).
        """
        console.print("[meta]Use y/n then Enter[/]")

        prompt = self._q_try(
            questionary.confirm,
            self._q(message),
            default=default,
            style=QUESTIONARY_STYLE_CONFIRM,
            qmark="✦",
            auto_enter=False,
        )
        return bool(prompt.ask())

    def groups_table(self, groups: Iterable[Any], title: str = "Task groups") -> None:
        """
        Expects objects with .name .count .meta (like nomadops.core.jobs.TaskGroup)
        """
        t = Table(title=title, show_lines=False)
        t.add_column("Group", style="ok", no_wrap=True)
        t.add_column("Count", justify="right")
        t.add_column("Meta", style="meta")

        for g in groups:
            meta = ", ".join(f"{k}={v}" for k, v in (getattr(g, "meta", None) or {}).items())
            t.add_row(g.name, str(g.count), meta)

        console.print(t)

    def nodes_table(self, nodes: Iterable[Any], title: str = "Nodes") -> None:
        """
        Expects objects with .id .name .datacenter .status .drain
        (like nomadops.core.nodes.Node)
        """
        t = Table(title=title, show_lines=False)
        t.add_column("Node ID", style="ok", no_wrap=True)
        t.add_column("Name")
        t.add_column("Datacenter", style="meta")
        t.add_column("Status")
        t.add_column("Drain")

        for n in nodes:
            style = "ok" if n.status == "ready" else "err"
            t.add_row(
                n.id[:8],
                n.name,
                n.datacenter,
                f"[{style}]{n.status}[/{style}]",
                "yes" if n.drain else "no",
            )

        console.print(t)


out = Out()
