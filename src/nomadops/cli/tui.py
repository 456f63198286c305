"""Terminal UI utilities for nomadops."""

from __future__ import annotations

import questionary

from nomadops.cli.common.tui_style import QUESTIONARY_STYLE_SELECT
from nomadops.core.jobs import REDEPLOY_META_KEY, TaskGroup

_MAX_GROUP_NAME_WIDTH = 64


def _truncate(text: str, max_len: int) -> str:
    """Return text capped at max_len characters using an ASCII ellipsis."""
    if max_len <= 3 or len(text) <= max_len:
        return text[:max_len]
    return f"{text[: max_len - 3]}..."


def _group_choice_title(group: TaskGroup, *, name_width: int) -> str:
    """Format one group as `<name>  count=<n>  redeployed=<marker>` with aligned columns."""
    short_name = _truncate(group.name, _MAX_GROUP_NAME_WIDTH)
    title = f"{short_name.ljust(name_width)}  count={group.count}"
    marker = (group.meta or {}).get(REDEPLOY_META_KEY)
    if marker:
        title += f"  redeployed={marker}"
    return title


def select_groups(groups: list[TaskGroup]) -> list[str]:
    """Display a checkbox prompt to pick task groups.

    Args:
        groups: Task groups of the job.

    Returns:
        Names of the selected groups, or an empty list if none selected.
    """
    shown_names = [_truncate(g.name, _MAX_GROUP_NAME_WIDTH) for g in groups]
    name_width = max((len(name) for name in shown_names), default=0)

    choices = [
        questionary.Choice(
            title=_group_choice_title(group, name_width=name_width),
            value=group.name,
        )
        for group in groups
    ]

    return (
        questionary.checkbox(
            "Select task groups to redeploy:",
            choices=choices,
            style=QUESTIONARY_STYLE_SELECT,
        ).ask()
        or []
    )
