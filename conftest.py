"""
Pytest configuration for the CHIP-8 test suite.

    python -m pytest                 # everything that does not need a window
    python -m pytest -m display      # tests that import pygame

pygame is told to use its dummy video driver so that tests touching it
never try to open a real window.
"""

import os

os.environ.setdefault("SDL_VIDEODRIVER", "dummy")
os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers",
        "display: tests that import pygame (skipped when it is not installed)")
