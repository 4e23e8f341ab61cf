"""
Debug Log Utility

Provides optional, safe file-based debug logging for tracing ROI
reconciliation, slice synchronization and difference computation. Logs are
written only when enabled via environment variable; failures are swallowed so
the comparison engine never crashes due to logging.

Inputs:
    - debug_log(location, message, data, hypothesis_id) calls from engine code
    - Environment: ROICOMPARE_DEBUG_LOG (set to 1, true, or yes to enable)
    - Environment: ROICOMPARE_SYNC_DEBUG (console sync tracing)

Outputs:
    - When enabled: appends JSON lines to <project_root>/.roi_compare/debug.log
    - When disabled or on error: no side effects

Requirements:
    - Standard library only: pathlib, os, json, time
"""

import json
import os
import time
from pathlib import Path
from typing import Any, Dict

# src/utils/debug_log.py -> project root is three levels up
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

_ENABLED_VALUES = ("1", "true", "yes")

_DEBUG_ENV = os.getenv("ROICOMPARE_DEBUG_LOG", "0").strip().lower()
DEBUG_LOG_ENABLED = _DEBUG_ENV in _ENABLED_VALUES

# Console tracing of synchronizer decisions; set ROICOMPARE_SYNC_DEBUG=1 to enable.
_SYNC_DEBUG_ENV = os.getenv("ROICOMPARE_SYNC_DEBUG", "0").strip().lower()
SYNC_DEBUG_ENABLED = _SYNC_DEBUG_ENV in _ENABLED_VALUES

LOG_DIR_NAME = ".roi_compare"


def sync_debug(msg: str) -> None:
    """Print a synchronization trace line only when ROICOMPARE_SYNC_DEBUG is set."""
    if SYNC_DEBUG_ENABLED:
        print(f"[SYNC DEBUG] {msg}")


def get_log_path() -> Path:
    return _PROJECT_ROOT / LOG_DIR_NAME / "debug.log"


def debug_log(
    location: str,
    message: str,
    data: Dict[str, Any],
    hypothesis_id: str = "",
) -> None:
    """
    Append one JSON log line to .roi_compare/debug.log when debug logging is enabled.

    Failures (missing dir, permission, disk full, unserializable data) are
    caught and ignored.

    Args:
        location: Call site identifier (e.g. "roi_reconciler.py:120").
        message: Short description of the event.
        data: Arbitrary dict of context (must be JSON-serializable).
        hypothesis_id: Optional tag grouping related events (e.g. "stack-poll").
    """
    if not DEBUG_LOG_ENABLED:
        return
    try:
        log_path = get_log_path()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "sessionId": "roi-compare",
            "hypothesisId": hypothesis_id,
            "location": location,
            "message": message,
            "data": data,
            "timestamp": int(time.time() * 1000),
        }
        with open(log_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(payload) + "\n")
    except Exception:
        pass
