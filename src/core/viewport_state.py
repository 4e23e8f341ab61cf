"""
Viewport State

This module tracks the per-side state of one comparison viewport: display
flags, the cumulative manual/registration offset layered on the native
viewport transform, and the ROI records stored per slice.

Inputs:
    - Annotation snapshots from the drawing tool
    - Manual translate/rotate nudges and registration results
    - Histogram region scopes for queries and clears

Outputs:
    - ROI records filtered by scope
    - Change flags that drive redraws

Requirements:
    - core.compare_models for records and scope constants
    - core.renderer_interface for the rendering collaborator
"""

from typing import Collection, Dict, List, Optional

from core.compare_models import (
    LEFT,
    REGION_LAST_ROI,
    REGION_STACK_POSITION,
    REGION_VOLUME,
    RoiRecord,
)
from core.renderer_interface import AnnotationData, ElementNotEnabledError, RenderingCollaborator
from utils.debug_log import sync_debug


class ViewportState:
    """
    Mutable record for one side of the comparison.

    roi_by_stack is sparse: slice index -> {uuid: RoiRecord}.
    """

    def __init__(self, side: str, renderer: RenderingCollaborator, opacity: float = 0.7,
                 colormap: str = "hotIron"):
        """
        Initialize viewport state.

        Args:
            side: "left" or "right"
            renderer: Rendering collaborator owning the displayed element
            opacity: Initial difference overlay opacity
            colormap: Initial difference overlay colormap name
        """
        self.side = side
        self.renderer = renderer
        self.loading = False
        self.loaded = False
        self.visible = True
        self.opacity = opacity
        self.colormap = colormap
        self.angle = 0.0
        self.dx = 0.0
        self.dy = 0.0
        self.image_id: Optional[str] = None
        self.roi_by_stack: Dict[int, Dict[str, RoiRecord]] = {}

    @property
    def is_left(self) -> bool:
        return self.side == LEFT

    def current_stack_index(self) -> Optional[int]:
        """
        Get the displayed slice index.

        Returns:
            Slice index, or None while no stack is loaded (indeterminate)
        """
        try:
            return self.renderer.get_current_slice_index(self.side)
        except ElementNotEnabledError:
            return None

    @property
    def stack_position(self) -> Optional[int]:
        return self.current_stack_index()

    @property
    def stack_size(self) -> Optional[int]:
        try:
            return self.renderer.get_stack_size(self.side)
        except ElementNotEnabledError:
            return None

    def translate_or_rotate(self, x: Optional[float] = None, y: Optional[float] = None,
                            angle: Optional[float] = None) -> bool:
        """
        Nudge the displayed image and accumulate the manual offset.

        Args:
            x: Horizontal shift in image pixels (added to dx)
            y: Vertical shift in image pixels (added to dy)
            angle: Absolute rotation in degrees; keeps the current rotation when None

        Returns:
            False if the side is not enabled yet (nothing changed)
        """
        try:
            viewport = self.renderer.get_viewport_transform(self.side)
        except ElementNotEnabledError:
            print(f"Warning: cannot translate {self.side} viewport before it is enabled")
            return False

        self.angle = viewport.rotation if angle is None else angle
        self.dx += x or 0.0
        self.dy += y or 0.0

        viewport = viewport.copy()
        viewport.rotation = self.angle
        viewport.translation_x += x or 0.0
        viewport.translation_y += y or 0.0
        self.renderer.set_viewport_transform(self.side, viewport)
        self.renderer.request_redraw(self.side)
        return True

    def current_stack_points(self, stack_index: Optional[int] = None) -> Optional[Dict[str, RoiRecord]]:
        """
        Get the ROI map for a slice.

        Args:
            stack_index: Slice index; the displayed slice when None

        Returns:
            uuid -> RoiRecord map, or None if the slice has no map or is indeterminate
        """
        if stack_index is None:
            stack_index = self.current_stack_index()
            if stack_index is None:
                return None
        return self.roi_by_stack.get(stack_index)

    def set_points(self, stack_index: int, data: AnnotationData) -> RoiRecord:
        """
        Upsert a ROI record by uuid with a deep copy of points and stats.

        Args:
            stack_index: Slice the ROI belongs to
            data: Annotation snapshot from the drawing tool

        Returns:
            The stored record
        """
        roi_map = self.roi_by_stack.setdefault(stack_index, {})
        record = RoiRecord(data.uuid, data.points, data.stats())
        roi_map[data.uuid] = record
        return record

    def find_record(self, uuid: str) -> Optional[RoiRecord]:
        for roi_map in self.roi_by_stack.values():
            if uuid in roi_map:
                return roi_map[uuid]
        return None

    def get_data(self, region: str, last_roi_uuids: Collection[str] = ()) -> List[RoiRecord]:
        """
        Get stored records with diff data inside a scope.

        Args:
            region: "last_roi", "stack_position" or "volume"
            last_roi_uuids: uuids of the last edited ROI and its cross-side copy

        Returns:
            Records whose diff data has been computed
        """
        if region == REGION_LAST_ROI:
            wanted = set(last_roi_uuids)

            def include(record: RoiRecord) -> bool:
                return record.uuid in wanted
        elif region == REGION_STACK_POSITION:
            current = self.current_stack_points()

            def include(record: RoiRecord) -> bool:
                return current is not None and record.uuid in current
        elif region == REGION_VOLUME:
            def include(record: RoiRecord) -> bool:
                return True
        else:
            raise ValueError(f"Unknown histogram region: {region!r}")

        return [
            record
            for index in sorted(self.roi_by_stack)
            for record in self.roi_by_stack[index].values()
            if record.has_diff_data() and include(record)
        ]

    def remove_data(self, region: str, last_roi_uuids: Collection[str] = ()) -> bool:
        """
        Clear stored ROIs by scope.

        Args:
            region: "last_roi", "stack_position" or "volume"
            last_roi_uuids: uuids removed in the "last_roi" scope

        Returns:
            True if anything was removed (a redraw was requested)
        """
        if not self.loaded:
            return False

        did_change = False
        if region == REGION_LAST_ROI:
            for uuid in last_roi_uuids:
                for roi_map in self.roi_by_stack.values():
                    if uuid in roi_map:
                        del roi_map[uuid]
                        did_change = True
            if did_change:
                for uuid in last_roi_uuids:
                    self.renderer.remove_annotation(self.side, uuid)
        elif region == REGION_STACK_POSITION:
            index = self.current_stack_index()
            if index is None:
                return False
            did_change = bool(self.roi_by_stack.get(index))
            self.roi_by_stack[index] = {}
            if did_change:
                self.renderer.clear_annotations(self.side)
        elif region == REGION_VOLUME:
            did_change = any(self.roi_by_stack.values())
            self.roi_by_stack = {}
            if did_change:
                self.renderer.clear_annotations(self.side)
        else:
            raise ValueError(f"Unknown histogram region: {region!r}")

        if did_change:
            sync_debug(f"{self.side}: cleared ROIs in scope {region}")
            self.renderer.request_redraw(self.side)
        return did_change
