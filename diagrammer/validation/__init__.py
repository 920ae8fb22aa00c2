"""Validation of generated HTML diagrams.

Provides the multi-phase ValidationEngine together with its structural,
browser-rendered and visual phases.
"""

from .browser import (
    DEFAULT_VIEWPORTS,
    BrowserCheckResult,
    BrowserValidator,
    Viewport,
)
from .lib import ValidationConfig, ValidationEngine
from .rules import DEFAULT_RULES, ValidationRules
from .structural import check_structure
from .visual import (
    VisionCapability,
    VisualJudgment,
    VisualValidator,
    build_visual_prompt,
    parse_judgment,
)

__all__ = [
    "DEFAULT_RULES",
    "DEFAULT_VIEWPORTS",
    "BrowserCheckResult",
    "BrowserValidator",
    "ValidationConfig",
    "ValidationEngine",
    "ValidationRules",
    "Viewport",
    "VisionCapability",
    "VisualJudgment",
    "VisualValidator",
    "build_visual_prompt",
    "check_structure",
    "parse_judgment",
]
