"""Pytest configuration and fixtures."""

import sys
import textwrap
from collections.abc import Callable
from pathlib import Path

import pytest


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="run live integration tests that use real yt-dlp and ffmpeg binaries",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "live: mark test as requiring real yt-dlp/ffmpeg binaries (deselect with '-m \"not live\"')",
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is specified."""
    if config.getoption("--run-live"):
        return

    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


@pytest.fixture
def python_child(tmp_path: Path) -> Callable[[str], list[str]]:
    """Write a small Python program and return the command that runs it."""

    def make(source: str) -> list[str]:
        script = tmp_path / "child.py"
        script.write_text(textwrap.dedent(source))
        return [sys.executable, str(script)]

    return make
