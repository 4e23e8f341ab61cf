"""
Stack Index Synchronizer

Keeps the displayed slice of both viewports aligned with a fixed offset
(delta_stack_index = left index - right index, calibrated on demand).
Slice loads are asynchronous, so after requesting a new index on the other
side the synchronizer polls the reported index with a fixed interval and a
bounded retry count, then continues whether or not the index was observed.

Inputs:
    - Scroll events (side and signed step)
    - Calibration requests
    - A schedule(delay_ms, callback) function supplied by the event loop owner

Outputs:
    - Slice index requests to the rendering collaborator
    - on_settled(converged) callbacks once the other side has settled

Requirements:
    - core.compare_models for SyncConfig and side helpers
"""

from typing import Callable, Dict, Optional

from core.compare_models import LEFT, SyncConfig, other_side
from core.renderer_interface import ElementNotEnabledError, RenderingCollaborator
from core.viewport_state import ViewportState
from utils.debug_log import debug_log, sync_debug

ScheduleFn = Callable[[int, Callable[[], None]], None]
SettledFn = Callable[[bool], None]


class StackIndexSynchronizer:
    """
    Drives the passive side's slice index from scroll events on the active side.

    Stack index and size queries are indeterminate (None) until a side is
    enabled; every operation degrades to a no-op in that case.
    """

    def __init__(self, renderer: RenderingCollaborator, states: Dict[str, ViewportState],
                 sync_config: SyncConfig, schedule: ScheduleFn,
                 poll_interval_ms: int = 50, max_retries: int = 10):
        """
        Initialize the synchronizer.

        Args:
            renderer: Rendering collaborator owning both stacks
            states: Side -> ViewportState map
            sync_config: Shared synchronization toggles (delta is written here)
            schedule: Deferred call function, e.g. QTimer.singleShot
            poll_interval_ms: Delay between index confirmation polls
            max_retries: Number of polls before proceeding unconfirmed
        """
        self.renderer = renderer
        self.states = states
        self.sync_config = sync_config
        self.schedule = schedule
        self.poll_interval_ms = poll_interval_ms
        self.max_retries = max_retries

    def reset_stack_position(self) -> bool:
        """
        Calibrate delta_stack_index from the currently displayed slices.

        Returns:
            True if both sides were determinate and the delta was written
        """
        left_index = self.states[LEFT].current_stack_index()
        right_index = self.states[other_side(LEFT)].current_stack_index()
        if left_index is None or right_index is None:
            print("Warning: cannot calibrate stack offset before both stacks are loaded")
            return False
        self.sync_config.delta_stack_index = left_index - right_index
        sync_debug(f"stack offset calibrated: delta={self.sync_config.delta_stack_index}")
        return True

    def compute_target_index(self, source_side: str) -> Optional[int]:
        """
        Slice index the other side should display.

        Args:
            source_side: Side that was scrolled

        Returns:
            Clamped target index, or None when either stack is indeterminate
        """
        target_side = other_side(source_side)
        source_index = self.states[source_side].current_stack_index()
        target_size = self.states[target_side].stack_size
        if source_index is None or not target_size:
            return None

        delta = self.sync_config.delta_stack_index
        if source_side == LEFT:
            target_index = source_index - delta
        else:
            target_index = source_index + delta
        return min(max(target_index, 0), target_size - 1)

    def on_slice_scroll(self, source_side: str, step: int, on_settled: SettledFn) -> bool:
        """
        Follow a scroll on one side with the other side.

        Args:
            source_side: Side that was scrolled (already showing its new slice)
            step: Signed scroll step; zero is ignored
            on_settled: Called once with the convergence flag when the other
                side has settled (immediately when no request is needed)

        Returns:
            True if a slice request was issued on the other side
        """
        if step == 0:
            return False

        if not self.sync_config.synchronize_stack:
            on_settled(True)
            return False

        target_side = other_side(source_side)
        target_index = self.compute_target_index(source_side)
        if target_index is None:
            sync_debug(f"stack sync skipped: {source_side} or {target_side} indeterminate")
            on_settled(True)
            return False

        if self.states[target_side].current_stack_index() == target_index:
            on_settled(True)
            return False

        sync_debug(f"stack sync {source_side}->{target_side}: requesting index {target_index}")
        self.renderer.request_slice_index(target_side, target_index)
        self.schedule(
            self.poll_interval_ms,
            lambda: self._poll(target_side, target_index, 1, on_settled),
        )
        return True

    def _poll(self, target_side: str, expected_index: int, attempt: int,
              on_settled: SettledFn) -> None:
        """Check whether the other side reports the requested index yet."""
        try:
            current = self.renderer.get_current_slice_index(target_side)
        except ElementNotEnabledError:
            current = None

        if current == expected_index:
            sync_debug(f"stack sync {target_side}: index {expected_index} confirmed after {attempt} poll(s)")
            on_settled(True)
            return

        if attempt >= self.max_retries:
            # Proceed anyway; the flag only reaches the log
            debug_log(
                "stack_index_synchronizer.py:_poll",
                "stack index not confirmed within retry bound",
                {"side": target_side, "expected": expected_index, "observed": current,
                 "attempts": attempt},
                hypothesis_id="stack-poll",
            )
            sync_debug(f"stack sync {target_side}: retries exhausted (saw {current}, wanted {expected_index})")
            on_settled(False)
            return

        self.schedule(
            self.poll_interval_ms,
            lambda: self._poll(target_side, expected_index, attempt + 1, on_settled),
        )
