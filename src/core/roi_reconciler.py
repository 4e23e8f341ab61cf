"""
ROI Reconciler

This module mirrors freehand ROI polygons between the two viewports. Each
invocation looks at the ROI set of the side whose annotation event fired
(the driving side) and the other side's set (the passive side), and applies
at most one structural change.

Cross-side copies are distinct annotations with their own uuids; the
reconciler owns the correlation table linking each ROI to its copy, and the
point snapshots used to decide whether a ROI changed since the last pass.

Inputs:
    - Annotation snapshots of both sides from the rendering collaborator
    - Both sides' ViewportState offsets and viewport transforms

Outputs:
    - Added/removed annotations on the passive side
    - "update completed" notifications for ROIs that are complete enough to measure
    - Outcome string: "none", "notified", "copied" or "updated"

Requirements:
    - core.coordinate_mapper for the cross-side point transform
    - core.geometry for point comparisons
"""

import uuid as uuid_module
from typing import Callable, Dict, List, Optional, Tuple

from core.compare_models import SyncConfig, other_side
from core.coordinate_mapper import build_translate_points
from core.geometry import Point, copy_points, points_equal
from core.renderer_interface import AnnotationData, ElementNotEnabledError, RenderingCollaborator
from core.viewport_state import ViewportState
from utils.debug_log import debug_log, sync_debug

OUTCOME_NONE = "none"
OUTCOME_NOTIFIED = "notified"
OUTCOME_COPIED = "copied"
OUTCOME_UPDATED = "updated"

UpdateCompletedFn = Callable[[str, AnnotationData], None]
ChangePredicate = Callable[[str, AnnotationData], bool]


def new_roi_uuid() -> str:
    return uuid_module.uuid4().hex


class RoiReconciler:
    """
    Bidirectional merge of the two sides' ROI sets.

    Cases, in order:
    - sync disabled: notify qualifying driving-side ROIs, never touch the passive side
    - both sets empty: nothing
    - one set empty: copy every ROI across to the empty side
    - both populated: re-copy the first driving ROI that changed, then stop
    """

    def __init__(self, renderer: RenderingCollaborator, states: Dict[str, ViewportState],
                 sync_config: SyncConfig, area_epsilon: float = 0.1,
                 on_update_completed: Optional[UpdateCompletedFn] = None,
                 did_change: Optional[ChangePredicate] = None,
                 id_factory: Callable[[], str] = new_roi_uuid):
        """
        Initialize the reconciler.

        Args:
            renderer: Rendering collaborator owning both annotation sets
            states: Side -> ViewportState map
            sync_config: Shared synchronization toggles
            area_epsilon: Area below which a ROI is still being drawn
            on_update_completed: Called with (side, annotation) for qualifying ROIs
            did_change: Predicate (side, annotation) -> changed; defaults to a
                point-wise comparison against the last reconciled snapshot
            id_factory: Generates uuids for cross-side copies
        """
        self.renderer = renderer
        self.states = states
        self.sync_config = sync_config
        self.area_epsilon = area_epsilon
        self.on_update_completed = on_update_completed
        self.did_change = did_change if did_change is not None else self._changed_since_snapshot
        self.id_factory = id_factory

        # uuid <-> counterpart uuid, stored in both directions
        self._links: Dict[str, str] = {}
        # (side, uuid) -> points as of the last reconciliation
        self._snapshots: Dict[Tuple[str, str], List[Point]] = {}

    # Correlation bookkeeping

    def counterpart(self, roi_uuid: str) -> Optional[str]:
        """Return the uuid of a ROI's cross-side copy, if any."""
        return self._links.get(roi_uuid)

    def link(self, first_uuid: str, second_uuid: str) -> None:
        self._links[first_uuid] = second_uuid
        self._links[second_uuid] = first_uuid

    def forget(self, side: str, roi_uuid: str) -> None:
        """Drop a removed ROI from the link table and snapshots."""
        self._snapshots.pop((side, roi_uuid), None)
        partner = self._links.pop(roi_uuid, None)
        if partner is not None and self._links.get(partner) == roi_uuid:
            del self._links[partner]

    def forget_side(self, side: str) -> None:
        """Drop every snapshot and link of one side (after a scope clear)."""
        for key in [key for key in self._snapshots if key[0] == side]:
            self.forget(side, key[1])

    def snapshot(self, side: str, data: AnnotationData) -> None:
        self._snapshots[(side, data.uuid)] = copy_points(data.points)

    def _changed_since_snapshot(self, side: str, data: AnnotationData) -> bool:
        return not points_equal(self._snapshots.get((side, data.uuid)), data.points)

    # Reconciliation

    def reconcile(self, driving_side: str) -> str:
        """
        Reconcile after an annotation event on one side.

        Args:
            driving_side: Side whose annotation event fired

        Returns:
            Outcome: "none", "notified", "copied" or "updated"
        """
        passive_side = other_side(driving_side)
        try:
            driving_rois = self.renderer.get_annotation_set(driving_side) or []
        except ElementNotEnabledError:
            sync_debug(f"ROI sync skipped: {driving_side} viewport not enabled")
            return OUTCOME_NONE

        if not self.sync_config.roi_sync_enabled:
            notified = 0
            for data in driving_rois:
                if data.qualifies(self.area_epsilon):
                    self._notify(driving_side, data)
                    notified += 1
            return OUTCOME_NOTIFIED if notified else OUTCOME_NONE

        try:
            passive_rois = self.renderer.get_annotation_set(passive_side) or []
        except ElementNotEnabledError:
            sync_debug(f"ROI sync skipped: {passive_side} viewport not enabled")
            return OUTCOME_NONE

        if not driving_rois and not passive_rois:
            return OUTCOME_NONE

        try:
            translators = self._build_translators(driving_side, passive_side)
        except ElementNotEnabledError:
            sync_debug(f"ROI sync skipped: {driving_side}/{passive_side} viewport not enabled")
            return OUTCOME_NONE

        if not passive_rois:
            self._copy_all(driving_side, passive_side, driving_rois, translators[driving_side])
            outcome = OUTCOME_COPIED
        elif not driving_rois:
            self._copy_all(passive_side, driving_side, passive_rois, translators[passive_side])
            outcome = OUTCOME_COPIED
        else:
            outcome = self._update_first_changed(
                driving_side, passive_side, driving_rois, passive_rois, translators[driving_side]
            )
            if outcome == OUTCOME_NONE:
                return outcome

        self.renderer.sync_cursor_handle(driving_side, passive_side)
        self.renderer.request_redraw(driving_side)
        self.renderer.request_redraw(passive_side)
        return outcome

    def _build_translators(self, driving_side: str,
                           passive_side: str) -> Dict[str, Callable[[Point], Point]]:
        """Point transforms keyed by the side the points come from."""
        driving_viewport = self.renderer.get_viewport_transform(driving_side)
        passive_viewport = self.renderer.get_viewport_transform(passive_side)
        driving_state = self.states[driving_side]
        passive_state = self.states[passive_side]
        return {
            driving_side: build_translate_points(
                driving_state, passive_state, driving_viewport, passive_viewport
            ),
            passive_side: build_translate_points(
                passive_state, driving_state, passive_viewport, driving_viewport
            ),
        }

    def _make_copy(self, data: AnnotationData, copy_uuid: str, receiving_side: str,
                   translate: Callable[[Point], Point]) -> AnnotationData:
        # Shapes still being drawn stay visible regardless of the side's toggle
        visible = data.area < self.area_epsilon or self.states[receiving_side].visible
        points = [translate(p) for p in data.points]
        return data.copy_with(copy_uuid, points, visible)

    def _copy_all(self, from_side: str, to_side: str, rois: List[AnnotationData],
                  translate: Callable[[Point], Point]) -> None:
        sync_debug(f"ROI sync: copying {len(rois)} ROI(s) {from_side}->{to_side}")
        debug_log(
            "roi_reconciler.py:_copy_all",
            "asymmetric copy",
            {"from": from_side, "to": to_side, "count": len(rois)},
            hypothesis_id="roi-sync",
        )
        for data in rois:
            copy_uuid = self.id_factory()
            new_data = self._make_copy(data, copy_uuid, to_side, translate)
            self.renderer.add_annotation(to_side, new_data)
            self.link(data.uuid, copy_uuid)
            self.snapshot(from_side, data)
            self.snapshot(to_side, new_data)
            if data.qualifies(self.area_epsilon):
                self.renderer.refresh_annotation_stats(to_side, new_data)
                self._notify(to_side, new_data)
                self._notify(from_side, data)

    def _update_first_changed(self, driving_side: str, passive_side: str,
                              driving_rois: List[AnnotationData],
                              passive_rois: List[AnnotationData],
                              translate: Callable[[Point], Point]) -> str:
        passive_uuids = {data.uuid for data in passive_rois}
        for data in driving_rois:
            if not self.did_change(driving_side, data):
                continue

            copy_uuid = self.counterpart(data.uuid)
            if copy_uuid is not None and copy_uuid in passive_uuids:
                self.renderer.remove_annotation(passive_side, copy_uuid)
            else:
                copy_uuid = self.id_factory()

            new_data = self._make_copy(data, copy_uuid, passive_side, translate)
            self.renderer.add_annotation(passive_side, new_data)
            self.link(data.uuid, copy_uuid)
            self.snapshot(driving_side, data)
            self.snapshot(passive_side, new_data)

            if data.qualifies(self.area_epsilon):
                self.renderer.refresh_annotation_stats(passive_side, new_data)
                self._notify(passive_side, new_data)
                self._notify(driving_side, data)
            else:
                self.renderer.set_annotation_visibility(driving_side, data.uuid, True)

            sync_debug(f"ROI sync: updated {data.uuid} {driving_side}->{passive_side} as {copy_uuid}")
            # The drawing tool fires one edit per event
            return OUTCOME_UPDATED
        return OUTCOME_NONE

    def _notify(self, side: str, data: AnnotationData) -> None:
        if self.on_update_completed is not None:
            self.on_update_completed(side, data)
