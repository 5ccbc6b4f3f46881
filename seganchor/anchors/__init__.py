"""World-anchored masks and distance-based render modes."""

from .manager import AnchoredMask, AnchorManager
from .render_mode import RenderMode, RenderModeState, select_render_mode

__all__ = [
    "AnchoredMask",
    "AnchorManager",
    "RenderMode",
    "RenderModeState",
    "select_render_mode",
]
