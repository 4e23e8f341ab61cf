"""
Pytest and unittest configuration for ROI Compare tests.

Adds project src/ to sys.path so tests can import from core, gui and utils.
Run tests from project root with:
  - pytest
  - python -m unittest discover -s tests -p "test_*.py"
  - python tests/run_tests.py
"""

import sys
import os

import pytest

# Add src and tests to path so that "from core.xxx" and "from fake_renderer import ..." work
_tests_dir = os.path.dirname(os.path.abspath(__file__))
_project_root = os.path.dirname(_tests_dir)
_src_dir = os.path.join(_project_root, "src")
for _path in (_src_dir, _tests_dir):
    if _path not in sys.path:
        sys.path.insert(0, _path)


def pytest_configure(config):
    config.addinivalue_line("markers", "qt: mark test as requiring a Qt application object (PySide6)")


@pytest.fixture(scope="session")
def qapp():
    """Provide a QCoreApplication for tests that use Qt signals. One per test session."""
    from PySide6.QtCore import QCoreApplication
    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication(sys.argv)
    return app
