"""
Pan/Zoom Synchronizer

Keeps scale and translation aligned across the two viewports. Each side's
cumulative manual/registration offset (dx, dy) is preserved: the offset of
the source side is removed before propagation and the target side's offset
is re-applied.

Inputs:
    - Render notifications naming the side whose viewport changed

Outputs:
    - Updated ViewportTransform on the other side (only when it differs)

Requirements:
    - core.coordinate_mapper for the pixel-spacing ratio
"""

import math
from typing import Dict

from core.compare_models import other_side
from core.coordinate_mapper import calculate_scale_ratio
from core.renderer_interface import ElementNotEnabledError, RenderingCollaborator
from core.viewport_state import ViewportState
from utils.debug_log import sync_debug

# Relative tolerance for "same viewport"; a plain == never settles after a
# divide/multiply round trip through the spacing ratio.
_REL_TOL = 1e-9
_ABS_TOL = 1e-9


def _close(a: float, b: float) -> bool:
    return math.isclose(a, b, rel_tol=_REL_TOL, abs_tol=_ABS_TOL)


class PanZoomSynchronizer:
    """Propagates pan/zoom from the rendered side to the other side."""

    def __init__(self, renderer: RenderingCollaborator, states: Dict[str, ViewportState]):
        """
        Initialize the synchronizer.

        Args:
            renderer: Rendering collaborator owning both viewports
            states: Side -> ViewportState map
        """
        self.renderer = renderer
        self.states = states

    def on_viewport_rendered(self, source_side: str) -> bool:
        """
        Align the other side to the viewport that was just rendered.

        Args:
            source_side: Side whose render event fired

        Returns:
            True if the target viewport was changed
        """
        target_side = other_side(source_side)
        try:
            source_viewport = self.renderer.get_viewport_transform(source_side)
            target_viewport = self.renderer.get_viewport_transform(target_side)
        except ElementNotEnabledError:
            return False

        source_state = self.states[source_side]
        target_state = self.states[target_side]
        ratio = calculate_scale_ratio(source_viewport, target_viewport)

        new_scale = source_viewport.scale * ratio
        new_x = (source_viewport.translation_x - source_state.dx) / ratio + target_state.dx
        new_y = (source_viewport.translation_y - source_state.dy) / ratio + target_state.dy

        # Propagating an unchanged viewport would re-fire the render event forever
        if (_close(target_viewport.scale, new_scale)
                and _close(target_viewport.translation_x, new_x)
                and _close(target_viewport.translation_y, new_y)):
            return False

        updated = target_viewport.copy()
        updated.scale = new_scale
        updated.translation_x = new_x
        updated.translation_y = new_y
        sync_debug(
            f"pan/zoom {source_side}->{target_side}: scale={new_scale:.4f} "
            f"translation=({new_x:.2f}, {new_y:.2f})"
        )
        self.renderer.set_viewport_transform(target_side, updated)
        return True
