"""Tests for PillowEngine."""

from io import BytesIO
from unittest.mock import MagicMock, patch

import httpx
import pytest
from PIL import Image

from postimage.descriptor import Descriptor
from postimage.engine import PillowEngine, is_remote
from postimage.errors import UnknownOperationError
from postimage.protocol import ImageEngine


@pytest.fixture
def pillow_engine(registry):
    """Create a PillowEngine over the default registry."""
    return PillowEngine(registry)


@pytest.fixture
def photo(site_dir):
    """Path of the sample photo as a string."""
    return str(site_dir / "photo.jpg")


def _png_bytes(size=(10, 6)):
    buffer = BytesIO()
    Image.new("RGB", size, (0, 128, 0)).save(buffer, format="PNG")
    return buffer.getvalue()


class TestIsRemote:
    """Tests for is_remote()."""

    @pytest.mark.parametrize("path", ["http://x.org/a.jpg", "https://x.org/a.jpg", "//cdn.x.org/a.jpg"])
    def test_remote(self, path):
        """Test URLs that are fetched over the network."""
        assert is_remote(path)

    @pytest.mark.parametrize("path", ["a.jpg", "/img/a.jpg", "site/http.jpg"])
    def test_local(self, path):
        """Test paths read from disk."""
        assert not is_remote(path)


class TestPillowEngine:
    """Tests for PillowEngine.render()."""

    def test_satisfies_protocol(self, pillow_engine):
        """Test that PillowEngine is an ImageEngine."""
        assert isinstance(pillow_engine, ImageEngine)

    def test_resize_and_convert(self, pillow_engine, photo, tmp_path):
        """Test applying operations and encoding to the chosen format."""
        out = tmp_path / "out" / "photo-x.webp"
        d = Descriptor(photo).then("resize", {"width": 50, "height": 50}).then("webp", {"quality": 70})

        pillow_engine.render(d, out)

        with Image.open(out) as result:
            assert result.format == "WEBP"
            assert result.size == (50, 50)
        assert not out.with_name(out.name + ".tmp").exists()

    def test_operations_in_order(self, pillow_engine, photo, tmp_path):
        """Test that operations apply in declaration order."""
        out = tmp_path / "p.png"
        d = Descriptor(photo).then("extract", {"left": 0, "top": 0, "width": 100, "height": 40}).then(
            "rotate", 90
        ).then("png")

        pillow_engine.render(d, out)

        with Image.open(out) as result:
            assert result.size == (40, 100)

    def test_format_from_extension(self, pillow_engine, photo, tmp_path):
        """Test that without a format op the output suffix picks the encoder."""
        out = tmp_path / "p.png"
        pillow_engine.render(Descriptor(photo).then("flip"), out)
        with Image.open(out) as result:
            assert result.format == "PNG"

    def test_no_operations_reencodes_source(self, pillow_engine, photo, tmp_path):
        """Test that an empty pipeline writes the source format."""
        out = tmp_path / "copy.jpg"
        pillow_engine.render(Descriptor(photo), out)
        with Image.open(out) as result:
            assert result.format == "JPEG"
            assert result.size == (120, 80)

    def test_alpha_to_jpeg(self, pillow_engine, tmp_path):
        """Test that transparent sources are converted for JPEG output."""
        src = tmp_path / "logo.png"
        Image.new("RGBA", (8, 8), (255, 0, 0, 100)).save(src)
        out = tmp_path / "logo.jpg"

        pillow_engine.render(Descriptor(str(src)).then("jpeg", {"quality": 90}), out)

        with Image.open(out) as result:
            assert result.mode == "RGB"

    def test_missing_input(self, pillow_engine, tmp_path):
        """Test that a missing source raises and leaves nothing behind."""
        out = tmp_path / "x.png"
        with pytest.raises(FileNotFoundError):
            pillow_engine.render(Descriptor(str(tmp_path / "nope.jpg")).then("png"), out)
        assert not out.exists()

    def test_unknown_operation(self, pillow_engine, photo, tmp_path):
        """Test that an unregistered operation raises UnknownOperationError."""
        with pytest.raises(UnknownOperationError):
            pillow_engine.render(Descriptor(photo).then("posterize"), tmp_path / "x.jpg")

    def test_invalid_arguments(self, pillow_engine, photo, tmp_path):
        """Test that bad operation arguments surface as errors."""
        with pytest.raises(ValueError):
            pillow_engine.render(Descriptor(photo).then("resize", -1), tmp_path / "x.jpg")

    def test_remote_input(self, pillow_engine, tmp_path):
        """Test that http inputs are downloaded with httpx."""
        response = MagicMock()
        response.content = _png_bytes()
        out = tmp_path / "remote.png"

        with patch("postimage.engine.httpx.get", return_value=response) as get:
            pillow_engine.render(Descriptor("https://example.com/a.png").then("png"), out)

        get.assert_called_once_with("https://example.com/a.png", timeout=30.0, follow_redirects=True)
        response.raise_for_status.assert_called_once()
        with Image.open(out) as result:
            assert result.size == (10, 6)

    def test_protocol_relative_input(self, registry, tmp_path):
        """Test that //host paths are fetched over https."""
        response = MagicMock()
        response.content = _png_bytes()
        engine = PillowEngine(registry, timeout=5.0)

        with patch("postimage.engine.httpx.get", return_value=response) as get:
            engine.render(Descriptor("//cdn.example.com/a.png"), tmp_path / "a.png")

        get.assert_called_once_with("https://cdn.example.com/a.png", timeout=5.0, follow_redirects=True)

    def test_remote_http_error(self, pillow_engine, tmp_path):
        """Test that HTTP errors propagate."""
        request = httpx.Request("GET", "https://example.com/missing.png")
        response = httpx.Response(404, request=request)

        with patch("postimage.engine.httpx.get", return_value=response):
            with pytest.raises(httpx.HTTPStatusError):
                pillow_engine.render(Descriptor("https://example.com/missing.png"), tmp_path / "m.png")
