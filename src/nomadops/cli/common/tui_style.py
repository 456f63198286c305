"""Questionary / prompt_toolkit theme for nomadops prompts.

Questionary uses prompt_toolkit under the hood. One central style keeps
the confirmation and group-selection prompts consistent.
"""

from __future__ import annotations

from prompt_toolkit.styles import Style

QUESTIONARY_STYLE_SELECT = Style.from_dict(
    {
        "question": "bold ansibrightgreen",
        "answer": "bold ansibrightcyan",
        "pointer": "bold ansibrightcyan",
        "highlighted": "bold ansibrightcyan",
        "selected": "bold ansibrightcyan",
        "checkbox": "ansibrightblack",
        "checkbox-selected": "bold ansibrightcyan",
        "instruction": "ansibrightblack",
        "error": "bold ansired",
    }
)

QUESTIONARY_STYLE_CONFIRM = Style.from_dict(
    {
        "question": "bold ansibrightyellow",
        "answer": "bold ansibrightyellow",
        "instruction": "ansibrightblack",
        "error": "bold ansired",
    }
)
