"""Structural rules every generated diagram must satisfy.

The same rules are stated to the model in the system prompt and checked
against its output by the structural phase.
"""

from dataclasses import dataclass

TAILWIND_SCRIPT = "https://cdn.tailwindcss.com"
LUCIDE_SCRIPT = "https://unpkg.com/lucide@latest"
ICON_LIBRARY_MARKER = "lucide"
ICON_INIT_CALL = "lucide.createIcons()"


@dataclass(frozen=True)
class ValidationRules:
    """Rule set for the structural validation phase.

    Attributes:
        required_scripts: Script URLs that must appear in the document.
        required_structure: Root tags that must be present (matched as ``<tag``).
        forbidden_elements: Literal markup that must not appear.
        icon_library: Marker indicating the icon library is referenced.
        icon_init_call: Call that must accompany the icon library.
    """

    required_scripts: tuple[str, ...] = (TAILWIND_SCRIPT, LUCIDE_SCRIPT)
    required_structure: tuple[str, ...] = ("html", "head", "body")
    forbidden_elements: tuple[str, ...] = ("<style>", '<link rel="stylesheet"')
    icon_library: str = ICON_LIBRARY_MARKER
    icon_init_call: str = ICON_INIT_CALL


DEFAULT_RULES = ValidationRules()


__all__ = [
    "DEFAULT_RULES",
    "ICON_INIT_CALL",
    "LUCIDE_SCRIPT",
    "TAILWIND_SCRIPT",
    "ValidationRules",
]
