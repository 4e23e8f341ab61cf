"""
Configuration Manager

This module handles persistent storage and retrieval of comparison settings:
synchronization toggles, polling and scheduling delays, overlay display
defaults, registration service parameters and resampling options.
Settings are stored in a JSON file in the user's application data directory.

Inputs:
    - User preferences (sync toggles, overlay opacity/colormap, registration endpoint, etc.)

Outputs:
    - Loaded configuration values
    - Saved configuration file
    - SyncConfig instances built from the stored toggles

Requirements:
    - json module (standard library)
    - pathlib module (standard library)
    - os module (standard library)
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

from core.compare_models import REGIONS, SyncConfig

APP_DIR_NAME = "ROICompare"

RESAMPLING_MODES = ("fast", "high_accuracy")
INTERPOLATION_METHODS = ("linear", "nearest", "bspline")


class ConfigManager:
    """
    Manages comparison configuration and user preferences.

    Handles loading and saving of settings including:
    - ROI and stack synchronization toggles
    - Stack confirmation poll interval and retry bound
    - Difference overlay opacity and colormap
    - Registration service endpoint, method and timeout
    - Resampling backend options
    """

    def __init__(self, config_filename: str = "roi_compare_config.json",
                 config_dir: Optional[Path] = None):
        """
        Initialize the configuration manager.

        Args:
            config_filename: Name of the configuration file to use
            config_dir: Directory override (defaults to the per-user app data directory)
        """
        if config_dir is not None:
            self.config_dir = Path(config_dir)
        elif os.name == 'nt':  # Windows
            app_data = os.getenv('APPDATA', os.path.expanduser('~'))
            self.config_dir = Path(app_data) / APP_DIR_NAME
        else:  # Mac/Linux
            self.config_dir = Path.home() / ".config" / APP_DIR_NAME

        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.config_path = self.config_dir / config_filename

        self.default_config = {
            "synchronize_roi": True,
            "synchronize_stack": True,
            "roi_area_epsilon": 0.1,  # ROIs below this area are still being drawn
            "stack_sync_poll_interval_ms": 50,
            "stack_sync_max_retries": 10,
            "stats_update_delay_ms": 10,
            "overlay_opacity": 0.7,
            "overlay_colormap": "hotIron",
            "registration_url": "http://127.0.0.1:5000/files/registration",
            "registration_method": "4",
            "registration_timeout_s": 30,
            "resampling_mode": "fast",  # fast (PIL) or high_accuracy (SimpleITK)
            "interpolation_method": "linear",
            "default_histogram_region": "last_roi",
        }

        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """
        Load configuration from file, or return defaults if file doesn't exist.

        Returns:
            Dictionary containing configuration values
        """
        if self.config_path.exists():
            try:
                with open(self.config_path, 'r', encoding='utf-8') as f:
                    loaded_config = json.load(f)
                # Merge with defaults to ensure all keys exist
                config = self.default_config.copy()
                config.update(loaded_config)
                return config
            except (json.JSONDecodeError, IOError) as e:
                print(f"Warning: Could not load config file: {e}")
                return self.default_config.copy()
        return self.default_config.copy()

    def save_config(self) -> bool:
        """
        Save current configuration to file.

        Returns:
            True if save was successful, False otherwise
        """
        try:
            with open(self.config_path, 'w', encoding='utf-8') as f:
                json.dump(self.config, f, indent=4, ensure_ascii=False)
            return True
        except IOError as e:
            print(f"Error saving config file: {e}")
            return False

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value.

        Args:
            key: Configuration key to retrieve
            default: Default value if key doesn't exist

        Returns:
            Configuration value or default
        """
        return self.config.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """
        Set a configuration value.

        Args:
            key: Configuration key to set
            value: Value to set
        """
        self.config[key] = value

    # Synchronization

    def get_synchronize_roi(self) -> bool:
        """
        Get whether ROIs are mirrored between the two viewports.

        Returns:
            True if ROI synchronization is enabled (default: True)
        """
        return bool(self.config.get("synchronize_roi", True))

    def set_synchronize_roi(self, enabled: bool) -> None:
        self.config["synchronize_roi"] = bool(enabled)
        self.save_config()

    def get_synchronize_stack(self) -> bool:
        """
        Get whether slice positions move together.

        Returns:
            True if stack synchronization is enabled (default: True)
        """
        return bool(self.config.get("synchronize_stack", True))

    def set_synchronize_stack(self, enabled: bool) -> None:
        self.config["synchronize_stack"] = bool(enabled)
        self.save_config()

    def get_roi_area_epsilon(self) -> float:
        return float(self.config.get("roi_area_epsilon", 0.1))

    def set_roi_area_epsilon(self, epsilon: float) -> None:
        """Set the area below which a ROI counts as still being drawn."""
        if epsilon >= 0:
            self.config["roi_area_epsilon"] = float(epsilon)
            self.save_config()

    def get_stack_sync_poll_interval_ms(self) -> int:
        return int(self.config.get("stack_sync_poll_interval_ms", 50))

    def set_stack_sync_poll_interval_ms(self, interval_ms: int) -> None:
        if interval_ms > 0:
            self.config["stack_sync_poll_interval_ms"] = int(interval_ms)
            self.save_config()

    def get_stack_sync_max_retries(self) -> int:
        return int(self.config.get("stack_sync_max_retries", 10))

    def set_stack_sync_max_retries(self, retries: int) -> None:
        if retries > 0:
            self.config["stack_sync_max_retries"] = int(retries)
            self.save_config()

    def get_stats_update_delay_ms(self) -> int:
        return int(self.config.get("stats_update_delay_ms", 10))

    def set_stats_update_delay_ms(self, delay_ms: int) -> None:
        if delay_ms >= 0:
            self.config["stats_update_delay_ms"] = int(delay_ms)
            self.save_config()

    def build_sync_config(self) -> SyncConfig:
        """
        Create synchronization toggles from the stored settings.

        Returns:
            SyncConfig with delta_stack_index reset to 0 (calibrated at runtime)
        """
        return SyncConfig(
            synchronize_roi=self.get_synchronize_roi(),
            synchronize_stack=self.get_synchronize_stack(),
        )

    # Overlay display

    def get_overlay_opacity(self) -> float:
        """
        Get default difference overlay opacity.

        Returns:
            Opacity in [0, 1] (default: 0.7)
        """
        return float(self.config.get("overlay_opacity", 0.7))

    def set_overlay_opacity(self, opacity: float) -> None:
        """
        Set default difference overlay opacity.

        Args:
            opacity: Value in [0, 1]; out-of-range values are ignored
        """
        if 0.0 <= opacity <= 1.0:
            self.config["overlay_opacity"] = float(opacity)
            self.save_config()

    def get_overlay_colormap(self) -> str:
        return self.config.get("overlay_colormap", "hotIron")

    def set_overlay_colormap(self, colormap: str) -> None:
        if colormap:
            self.config["overlay_colormap"] = colormap
            self.save_config()

    def get_default_histogram_region(self) -> str:
        region = self.config.get("default_histogram_region", "last_roi")
        return region if region in REGIONS else "last_roi"

    def set_default_histogram_region(self, region: str) -> None:
        if region in REGIONS:
            self.config["default_histogram_region"] = region
            self.save_config()

    # Registration service

    def get_registration_url(self) -> str:
        return self.config.get("registration_url", "http://127.0.0.1:5000/files/registration")

    def set_registration_url(self, url: str) -> None:
        self.config["registration_url"] = url
        self.save_config()

    def get_registration_method(self) -> str:
        """
        Get the registration algorithm identifier sent to the service.

        Returns:
            Method identifier string (default: "4")
        """
        return str(self.config.get("registration_method", "4"))

    def set_registration_method(self, method: str) -> None:
        self.config["registration_method"] = str(method)
        self.save_config()

    def get_registration_timeout_s(self) -> float:
        return float(self.config.get("registration_timeout_s", 30))

    def set_registration_timeout_s(self, timeout_s: float) -> None:
        if timeout_s > 0:
            self.config["registration_timeout_s"] = timeout_s
            self.save_config()

    # Resampling

    def get_resampling_mode(self) -> str:
        """
        Get resampling backend mode.

        Returns:
            "fast" (PIL bilinear) or "high_accuracy" (SimpleITK)
        """
        mode = self.config.get("resampling_mode", "fast")
        return mode if mode in RESAMPLING_MODES else "fast"

    def set_resampling_mode(self, mode: str) -> None:
        if mode in RESAMPLING_MODES:
            self.config["resampling_mode"] = mode
            self.save_config()

    def get_interpolation_method(self) -> str:
        method = self.config.get("interpolation_method", "linear")
        return method if method in INTERPOLATION_METHODS else "linear"

    def set_interpolation_method(self, method: str) -> None:
        if method in INTERPOLATION_METHODS:
            self.config["interpolation_method"] = method
            self.save_config()

    # Import / export

    def export_settings(self, file_path: str) -> bool:
        """
        Export comparison settings to a JSON file.

        Args:
            file_path: Path where the settings file should be saved

        Returns:
            True if export was successful, False otherwise
        """
        try:
            export_data = {"version": "1.0", "settings": dict(self.config)}
            with open(file_path, 'w', encoding='utf-8') as f:
                json.dump(export_data, f, indent=4, ensure_ascii=False)
            return True
        except (IOError, TypeError) as e:
            print(f"Error exporting settings: {e}")
            return False

    def import_settings(self, file_path: str) -> bool:
        """
        Import comparison settings from a JSON file.

        Only known keys are imported; values whose type does not match the
        default are skipped.

        Args:
            file_path: Path to the settings file to import

        Returns:
            True if import was successful, False otherwise
        """
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                import_data = json.load(f)
        except (IOError, json.JSONDecodeError) as e:
            print(f"Error importing settings: {e}")
            return False

        settings = import_data.get("settings") if isinstance(import_data, dict) else None
        if not isinstance(settings, dict):
            print("Error importing settings: missing 'settings' section")
            return False

        for key, value in settings.items():
            if key not in self.default_config:
                continue
            default = self.default_config[key]
            if isinstance(default, bool) != isinstance(value, bool):
                continue
            if isinstance(default, (int, float)) and not isinstance(value, (int, float)):
                continue
            if isinstance(default, str) and not isinstance(value, str):
                continue
            self.config[key] = value
        return self.save_config()
