"""Default classes and props for the NiceGUI elements nicecrop builds."""

from __future__ import annotations

from nicegui import ui

from nicecrop.utils.logging import get_logger

logger = get_logger(__name__)

# tailwind text size -> quasar size
_QUASAR_SIZE = {
    "text-xs": "xs",
    "text-sm": "sm",
    "text-base": "md",
    "text-lg": "lg",
}


def set_up_gui_defaults(text_size: str = "text-sm") -> None:
    """Apply default classes/props to labels, buttons and cards.

    Args:
        text_size: Tailwind CSS text size class (``text-xs`` .. ``text-lg``).

    Raises:
        ValueError: unknown ``text_size``.
    """
    if text_size not in _QUASAR_SIZE:
        raise ValueError(f"text_size must be one of {sorted(_QUASAR_SIZE)}, got {text_size!r}")

    logger.debug(f'using classes text_size:"{text_size}" quasar size:{_QUASAR_SIZE[text_size]}')

    ui.label.default_classes(f"{text_size} select-text")  # select-text allows double-click selection
    ui.button.default_classes(text_size)
    ui.button.default_props("no-caps")
    ui.card.default_props("flat bordered")
