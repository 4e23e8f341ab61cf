"""
Compare Coordinator

This module coordinates the comparison engine for the UI layer: it wires the
pan/zoom and stack synchronizers, the ROI reconciler, the difference
computer, the statistics aggregator and image registration to one rendering
collaborator, and reports results through Qt signals.

Inputs:
    - UI events: ROI edits, slice scrolls, viewport renders, toggles, clears
    - Rendering collaborator implementing RenderingCollaborator
    - ConfigManager settings

Outputs:
    - Overlay rasters handed to the renderer (and overlay_updated signals)
    - Aggregate statistics (stats_updated signals)
    - ROI completion notifications (roi_update_completed signals)
    - Registration loading state (registration_loading_changed signals)

Requirements:
    - PySide6 for QObject signals and QTimer deferral
    - core comparison engine modules
"""

from typing import Callable, Dict, List, Optional

import numpy as np
from PySide6.QtCore import QObject, QTimer, Signal

from core.compare_models import LEFT, REGION_LAST_ROI, REGION_STACK_POSITION, REGION_VOLUME, RIGHT, SIDES
from core.diff_computer import DiffComputer
from core.image_registration import ImageRegistration, RegistrationClient
from core.image_resampler import ImageResampler
from core.pan_zoom_synchronizer import PanZoomSynchronizer
from core.renderer_interface import AnnotationData, RenderingCollaborator
from core.roi_reconciler import RoiReconciler
from core.stack_index_synchronizer import StackIndexSynchronizer
from core.stats_aggregator import StatsAggregator
from core.viewport_state import ViewportState
from utils.config_manager import ConfigManager
from utils.debug_log import debug_log, sync_debug

ScheduleFn = Callable[[int, Callable[[], None]], None]


def qt_schedule(delay_ms: int, callback: Callable[[], None]) -> None:
    """Run a callback once from the Qt event loop after a delay."""
    QTimer.singleShot(delay_ms, callback)


class CompareCoordinator(QObject):
    """
    UI-facing facade of the comparison engine.

    Responsibilities:
    - Route UI events to the synchronizers and the reconciler
    - Store completed ROIs and refresh difference overlays
    - Defer statistics passes and stack confirmation polls
    - Apply clears and registration results to both sides
    """

    # Signals
    overlay_updated = Signal(str, object)  # side, uint8 raster
    stats_updated = Signal(object)  # stats dict, or None after a clear
    roi_update_completed = Signal(str, str)  # side, ROI uuid
    registration_loading_changed = Signal(bool)

    def __init__(self, renderer: RenderingCollaborator,
                 config_manager: Optional[ConfigManager] = None,
                 registration_client: Optional[RegistrationClient] = None,
                 schedule: Optional[ScheduleFn] = None,
                 parent: Optional[QObject] = None):
        """
        Initialize the coordinator.

        Args:
            renderer: Rendering collaborator owning both viewports
            config_manager: Settings source (per-user config file by default)
            registration_client: Registration service client (built from config by default)
            schedule: Deferred call function (delay_ms, callback); QTimer.singleShot by default
            parent: Optional Qt parent object
        """
        super().__init__(parent)
        self.renderer = renderer
        self.config_manager = config_manager if config_manager is not None else ConfigManager()
        self.schedule = schedule if schedule is not None else qt_schedule
        config = self.config_manager

        self.sync_config = config.build_sync_config()
        self.states: Dict[str, ViewportState] = {
            side: ViewportState(side, renderer, config.get_overlay_opacity(), config.get_overlay_colormap())
            for side in SIDES
        }
        self.resampler = ImageResampler(config.get_resampling_mode(), config.get_interpolation_method())

        self.pan_zoom = PanZoomSynchronizer(renderer, self.states)
        self.stack_sync = StackIndexSynchronizer(
            renderer,
            self.states,
            self.sync_config,
            self.schedule,
            poll_interval_ms=config.get_stack_sync_poll_interval_ms(),
            max_retries=config.get_stack_sync_max_retries(),
        )
        self.reconciler = RoiReconciler(
            renderer,
            self.states,
            self.sync_config,
            area_epsilon=config.get_roi_area_epsilon(),
            on_update_completed=self._on_update_completed,
        )
        self.diff_computer = DiffComputer(
            renderer,
            self.states,
            self.resampler,
            request_stats_update=self._schedule_stats_update,
        )
        self.stats = StatsAggregator(self.states, config.get_default_histogram_region())

        if registration_client is None:
            registration_client = RegistrationClient(
                config.get_registration_url(), config.get_registration_timeout_s()
            )
        self.registration = ImageRegistration(
            renderer,
            self.states,
            registration_client,
            config.get_registration_method(),
            on_loading_changed=self.registration_loading_changed.emit,
        )

        self.last_roi_uuid: Optional[str] = None
        self._stats_pending = False

    # Loading

    def on_stack_loaded(self, side: str) -> None:
        """Mark a side as loaded once the collaborator displays its stack."""
        state = self.states[side]
        state.loading = False
        state.loaded = True
        state.image_id = self.renderer.get_image_identity(side)

    def last_roi_uuids(self) -> List[str]:
        """uuid of the last edited ROI plus its cross-side copy."""
        if self.last_roi_uuid is None:
            return []
        uuids = [self.last_roi_uuid]
        partner = self.reconciler.counterpart(self.last_roi_uuid)
        if partner is not None:
            uuids.append(partner)
        return uuids

    # Synchronization toggles

    def set_synchronize_roi(self, enabled: bool) -> None:
        self.sync_config.synchronize_roi = enabled
        self.config_manager.set_synchronize_roi(enabled)

    def set_synchronize_stack(self, enabled: bool) -> None:
        self.sync_config.synchronize_stack = enabled
        self.config_manager.set_synchronize_stack(enabled)

    # UI events

    def on_roi_edited(self, side: str, annotation: Optional[AnnotationData] = None) -> str:
        """
        Handle an annotation event from the drawing tool.

        Args:
            side: Side whose drawing tool fired
            annotation: Snapshot of the edited ROI, when the event carries one

        Returns:
            Reconciliation outcome ("none", "notified", "copied" or "updated")
        """
        if annotation is not None:
            self.last_roi_uuid = annotation.uuid
        self.stats.set_selected_side(side)
        outcome = self.reconciler.reconcile(side)
        sync_debug(f"ROI edit on {side}: {outcome}")
        return outcome

    def on_viewport_rendered(self, side: str) -> bool:
        return self.pan_zoom.on_viewport_rendered(side)

    def on_slice_scroll(self, side: str, step: int) -> bool:
        """
        Follow a slice scroll on one side with the other side.

        Args:
            side: Side that was scrolled
            step: Signed scroll step

        Returns:
            True if the other side was asked to change slice
        """
        return self.stack_sync.on_slice_scroll(
            side, step, lambda converged: self._on_slice_settled(side, converged)
        )

    def _on_slice_settled(self, side: str, converged: bool) -> None:
        if not converged:
            debug_log(
                "compare_coordinator.py:_on_slice_settled",
                "continuing with unconfirmed slice index",
                {"side": side},
                hypothesis_id="stack-poll",
            )
        for state_side in SIDES:
            state = self.states[state_side]
            state.image_id = self.renderer.get_image_identity(state_side)
        self.reconciler.reconcile(side)
        for state_side in SIDES:
            self.refresh_overlay(state_side)
            self.renderer.request_redraw(state_side)

    def _on_update_completed(self, side: str, data: AnnotationData) -> None:
        """Store a ROI that is complete enough to measure and refresh its overlay."""
        state = self.states[side]
        stack_index = state.current_stack_index()
        if stack_index is None:
            return
        state.set_points(stack_index, data)
        self.roi_update_completed.emit(side, data.uuid)
        self.refresh_overlay(side)

    # Overlay

    def refresh_overlay(self, side: str) -> np.ndarray:
        """
        Recompute (or reuse) the difference overlay for one side and hand it to the renderer.

        Args:
            side: Side to refresh

        Returns:
            uint8 overlay raster
        """
        raster = self.diff_computer.compute_overlay(side)
        state = self.states[side]
        self.renderer.set_overlay(side, raster, state.opacity, state.colormap, state.visible)
        self.overlay_updated.emit(side, raster)
        return raster

    def set_opacity(self, side: str, opacity: float) -> None:
        self.states[side].opacity = min(max(float(opacity), 0.0), 1.0)
        self.refresh_overlay(side)

    def set_colormap(self, side: str, colormap: str) -> None:
        self.states[side].colormap = colormap
        self.refresh_overlay(side)

    def set_visibility(self, side: str, visible: bool) -> None:
        self.states[side].visible = visible
        self.refresh_overlay(side)

    def translate_or_rotate(self, side: str, x: Optional[float] = None, y: Optional[float] = None,
                            angle: Optional[float] = None) -> bool:
        """
        Nudge one side's alignment and recompute both overlays.

        Returns:
            True if the side was enabled and the nudge applied
        """
        if not self.states[side].translate_or_rotate(x, y, angle):
            return False
        self.diff_computer.invalidate()
        for state_side in SIDES:
            self.refresh_overlay(state_side)
        return True

    # Statistics

    def _schedule_stats_update(self) -> None:
        # Several overlays in one event share a single statistics pass
        if self._stats_pending:
            return
        self._stats_pending = True
        self.schedule(self.config_manager.get_stats_update_delay_ms(), self._run_stats_update)

    def _run_stats_update(self) -> None:
        self._stats_pending = False
        stats = self.stats.update_volume_stats(self.last_roi_uuids())
        if stats is not None:
            self.stats_updated.emit(stats)

    def select_histogram_region(self, region: str) -> Optional[dict]:
        """
        Switch the statistics scope.

        Args:
            region: "last_roi", "stack_position" or "volume"

        Returns:
            Recomputed statistics, or None when nothing is in scope yet
        """
        stats = self.stats.update_histogram_region(region, self.last_roi_uuids())
        if stats is not None:
            self.stats_updated.emit(stats)
        return stats

    # Clearing

    def clear_tool(self, region: str, side: str = LEFT) -> bool:
        """
        Remove ROIs in a scope.

        Both sides are cleared while ROI mirroring is active (ROI and stack
        synchronization both on); otherwise only the given side.

        Args:
            region: "last_roi", "stack_position" or "volume"
            side: Side the clear was requested on

        Returns:
            True if anything was removed
        """
        sides = SIDES if self.sync_config.roi_sync_enabled else (side,)
        last_uuids = self.last_roi_uuids()
        did_change = False
        for clear_side in sides:
            state = self.states[clear_side]
            if region == REGION_STACK_POSITION:
                annotations = self.renderer.get_annotation_set(clear_side) or []
                cleared_uuids = [data.uuid for data in annotations]
                cleared_uuids.extend((state.current_stack_points() or {}).keys())
            else:
                cleared_uuids = list(last_uuids)

            if not state.remove_data(region, last_uuids):
                continue
            did_change = True
            if region == REGION_VOLUME:
                self.reconciler.forget_side(clear_side)
            else:
                for roi_uuid in cleared_uuids:
                    self.reconciler.forget(clear_side, roi_uuid)
            self.refresh_overlay(clear_side)

        if did_change:
            if region == REGION_LAST_ROI or region == REGION_VOLUME:
                self.last_roi_uuid = None
            self.stats.reset()
            self.stats_updated.emit(None)
        return did_change

    def reset_stack_position(self) -> bool:
        return self.stack_sync.reset_stack_position()

    # Registration

    def select_registration_method(self, method: str) -> None:
        self.registration.select_method(method)
        self.config_manager.set_registration_method(method)

    def register_images(self) -> bool:
        """
        Align the right image to the left one through the registration service.

        Returns:
            True if a transform or registered image was applied
        """
        if not self.registration.register_images():
            return False
        self.states[RIGHT].image_id = self.renderer.get_image_identity(RIGHT)
        self.diff_computer.invalidate()
        for state_side in SIDES:
            self.refresh_overlay(state_side)
        return True
