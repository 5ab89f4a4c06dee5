"""Pytest configuration and fixtures."""

import threading
import time

import pytest
from PIL import Image

from postimage.config import ProcessorOptions
from postimage.processor import DeferredProcessor
from postimage.registry import default_registry


class CountingEngine:
    """Stub engine that records calls and writes placeholder bytes."""

    def __init__(self, delay: float = 0.0, fail_on: str | None = None) -> None:
        self.calls = []
        self.delay = delay
        self.fail_on = fail_on
        self._lock = threading.Lock()

    def render(self, descriptor, output_file):
        with self._lock:
            self.calls.append(descriptor)
        if self.delay:
            time.sleep(self.delay)
        if self.fail_on is not None and self.fail_on in descriptor.input_path:
            raise OSError(f"cannot read {descriptor.input_path}")
        output_file.parent.mkdir(parents=True, exist_ok=True)
        output_file.write_bytes(b"stub-image")


@pytest.fixture
def registry():
    """Create a fresh registry with the built-in operations."""
    return default_registry()


@pytest.fixture
def site_dir(tmp_path):
    """Site source directory containing a sample photo."""
    site = tmp_path / "site"
    site.mkdir()
    Image.new("RGB", (120, 80), (200, 30, 30)).save(site / "photo.jpg", "JPEG")
    return site


@pytest.fixture
def options(tmp_path, site_dir):
    """ProcessorOptions writing into a temporary output directory."""
    return ProcessorOptions(
        output_dir=tmp_path / "public" / "assets" / "images",
        url_path="/assets/images",
        input_dir=site_dir,
    )


@pytest.fixture
def engine():
    """A CountingEngine for tests that verify cache behavior."""
    return CountingEngine()


@pytest.fixture
def processor(options, engine):
    """DeferredProcessor backed by the counting engine."""
    return DeferredProcessor(options, engine=engine)


@pytest.fixture
def make_engine():
    """Factory for CountingEngine instances with custom delay or failures."""
    return CountingEngine
