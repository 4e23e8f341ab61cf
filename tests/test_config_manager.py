"""
Tests for ConfigManager comparison settings.

Covers defaults, validated setters, persistence, SyncConfig construction and
settings import/export. Uses a temporary config directory so the user's
config is never touched.
"""

import json
import os
import sys
import tempfile
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from pathlib import Path
from utils.config_manager import ConfigManager


TEST_CONFIG_FILENAME = "roi_compare_config_test.json"


class TestConfigManager(unittest.TestCase):
    """Tests for comparison config keys and getters/setters."""

    def setUp(self):
        """Create a ConfigManager inside a temporary directory."""
        self.temp_dir = tempfile.TemporaryDirectory()
        self.config_dir = Path(self.temp_dir.name)
        self.config = ConfigManager(config_filename=TEST_CONFIG_FILENAME, config_dir=self.config_dir)

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_defaults(self):
        """A fresh manager returns the documented defaults."""
        self.assertTrue(self.config.get_synchronize_roi())
        self.assertTrue(self.config.get_synchronize_stack())
        self.assertEqual(self.config.get_roi_area_epsilon(), 0.1)
        self.assertEqual(self.config.get_stack_sync_poll_interval_ms(), 50)
        self.assertEqual(self.config.get_stack_sync_max_retries(), 10)
        self.assertEqual(self.config.get_overlay_opacity(), 0.7)
        self.assertEqual(self.config.get_overlay_colormap(), "hotIron")
        self.assertEqual(self.config.get_registration_method(), "4")
        self.assertEqual(self.config.get_resampling_mode(), "fast")
        self.assertEqual(self.config.get_default_histogram_region(), "last_roi")

    def test_persists_to_disk(self):
        """Values are written to the config file and reloaded by a new manager."""
        self.config.set_synchronize_roi(False)
        self.config.set_overlay_opacity(0.25)
        self.assertTrue(self.config.config_path.exists(), "Config file should exist after set")

        reloaded = ConfigManager(config_filename=TEST_CONFIG_FILENAME, config_dir=self.config_dir)
        self.assertFalse(reloaded.get_synchronize_roi())
        self.assertEqual(reloaded.get_overlay_opacity(), 0.25)

    def test_invalid_values_are_ignored(self):
        """Out-of-range or unknown values leave the setting unchanged."""
        self.config.set_overlay_opacity(1.5)
        self.config.set_stack_sync_max_retries(0)
        self.config.set_resampling_mode("slow")
        self.config.set_interpolation_method("cubic")
        self.config.set_default_histogram_region("slab")
        self.assertEqual(self.config.get_overlay_opacity(), 0.7)
        self.assertEqual(self.config.get_stack_sync_max_retries(), 10)
        self.assertEqual(self.config.get_resampling_mode(), "fast")
        self.assertEqual(self.config.get_interpolation_method(), "linear")
        self.assertEqual(self.config.get_default_histogram_region(), "last_roi")

    def test_corrupt_file_falls_back_to_defaults(self):
        self.config.config_path.write_text("{not json", encoding="utf-8")
        reloaded = ConfigManager(config_filename=TEST_CONFIG_FILENAME, config_dir=self.config_dir)
        self.assertTrue(reloaded.get_synchronize_stack())

    def test_build_sync_config(self):
        self.config.set_synchronize_stack(False)
        sync_config = self.config.build_sync_config()
        self.assertTrue(sync_config.synchronize_roi)
        self.assertFalse(sync_config.synchronize_stack)
        self.assertFalse(sync_config.roi_sync_enabled)
        self.assertEqual(sync_config.delta_stack_index, 0)

    def test_export_then_import(self):
        """Exported settings restore known keys with matching types only."""
        self.config.set_overlay_colormap("jet")
        export_path = self.config_dir / "exported.json"
        self.assertTrue(self.config.export_settings(str(export_path)))
        exported = json.loads(export_path.read_text(encoding="utf-8"))
        self.assertEqual(exported["version"], "1.0")
        self.assertEqual(exported["settings"]["overlay_colormap"], "jet")

        exported["settings"]["synchronize_roi"] = "yes"
        exported["settings"]["unknown_key"] = 1
        exported["settings"]["stack_sync_max_retries"] = 4
        export_path.write_text(json.dumps(exported), encoding="utf-8")

        other = ConfigManager(config_filename="other.json", config_dir=self.config_dir)
        self.assertTrue(other.import_settings(str(export_path)))
        self.assertEqual(other.get_overlay_colormap(), "jet")
        self.assertEqual(other.get_stack_sync_max_retries(), 4)
        self.assertTrue(other.get_synchronize_roi())
        self.assertIsNone(other.get("unknown_key"))

    def test_import_rejects_missing_section(self):
        path = self.config_dir / "bad.json"
        path.write_text(json.dumps({"version": "1.0"}), encoding="utf-8")
        self.assertFalse(self.config.import_settings(str(path)))


if __name__ == "__main__":
    unittest.main()
