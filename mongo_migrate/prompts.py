"""Interactive yes/no prompts. Anything but an explicit yes means no."""

from __future__ import annotations


def confirm(prompt: str) -> bool:
    try:
        return input(prompt).strip().lower() in {"y", "yes"}
    except (EOFError, KeyboardInterrupt):
        return False


def confirm_exact(prompt: str, token: str = "YES") -> bool:
    """Require the operator to type ``token`` exactly (case-sensitive)."""
    try:
        return input(prompt).strip() == token
    except (EOFError, KeyboardInterrupt):
        return False
