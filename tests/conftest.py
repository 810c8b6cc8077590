"""Pytest fixtures for varnishtest."""

import shutil
from pathlib import Path

import pytest


def pytest_addoption(parser):
    """Add custom command-line options."""
    parser.addoption(
        "--varnishd",
        action="store",
        default=None,
        help="Path to a real varnishd for the live tests (default: search PATH)"
    )


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def fake_varnishd():
    """Path to the scripted varnishd stand-in."""
    return Path(__file__).parent / "fake_varnishd.py"


@pytest.fixture(scope="session")
def fake_varnishadm():
    """Path to the scripted varnishadm stand-in used by the exec transport."""
    return Path(__file__).parent / "fake_varnishadm.py"


@pytest.fixture(scope="session")
def varnishd_binary(request):
    """Path to a real varnishd; skips the test when none is available."""
    configured = request.config.getoption("--varnishd")
    binary = configured or shutil.which("varnishd")
    if not binary:
        pytest.skip("varnishd not installed")
    return binary


@pytest.fixture
def fake_log(tmp_path, monkeypatch):
    """File the fake varnishd appends every received command line to."""
    path = tmp_path / "commands.log"
    monkeypatch.setenv("FAKE_VARNISHD_LOG", str(path))
    return path


