"""Tests for the Jinja2 integration."""

import pytest
from jinja2 import DictLoader, Environment, TemplateAssertionError

from postimage.descriptor import Descriptor
from postimage.errors import UnknownOperationError
from postimage.hashing import fingerprint
from postimage.jinja import install
from postimage.placeholder import find_placeholders


@pytest.fixture
def env():
    """Autoescaping environment, the common setup for HTML sites."""
    return Environment(autoescape=True)


def _render(env, source, **context):
    return env.from_string(source).render(**context)


class TestInstall:
    """Tests for install()."""

    def test_registers_filters_and_global(self, env, processor):
        """Test that root filters, op filters and getUrl are installed."""
        assert install(env, processor) is processor
        for name in ("sharp", "image", "resize", "webp", "avif", "grayscale"):
            assert name in env.filters
        assert env.globals["getUrl"] == processor.emit_placeholder

    def test_filter_clash(self, env, processor):
        """Test that overriding existing filters needs overwrite=True."""
        env.filters["resize"] = lambda value: value
        with pytest.raises(ValueError, match="resize"):
            install(env, processor)
        install(env, processor, overwrite=True)
        assert _render(env, "{{ ('a.jpg' | resize(10)).operations[0].name }}") == "resize"

    def test_prefixed_operations(self, env, processor):
        """Test that dotted operation names work as filters."""
        processor.registry.register_package({"sepia": lambda state: state}, prefix="fx")
        install(env, processor)
        out = _render(env, "{{ getUrl('a.jpg' | fx.sepia) }}")
        [found] = find_placeholders(out)
        assert found.descriptor.operations[0].name == "fx.sepia"


class TestTemplates:
    """Tests rendering templates through the installed filters."""

    def test_placeholder_survives_autoescape(self, env, processor):
        """Test that getUrl output is not HTML-escaped."""
        install(env, processor)
        out = _render(env, "<img src=\"{{ getUrl('photo.jpg' | resize(height=50, width=50) | avif) }}\">")

        assert "&lt;" not in out
        [found] = find_placeholders(out)
        expected = Descriptor("photo.jpg").then("resize", {"height": 50, "width": 50}).then("avif")
        assert found.descriptor == expected
        assert found.fingerprint == fingerprint(expected)

    def test_chain_order(self, env, processor):
        """Test that filters record operations in the order written."""
        install(env, processor)
        out = _render(env, "{{ getUrl(src | sharp | flip | grayscale | webp(quality=70)) }}", src="a.jpg")
        [found] = find_placeholders(out)
        assert [op.name for op in found.descriptor.operations] == ["flip", "grayscale", "webp"]
        assert found.descriptor.operations[2].args == ({"quality": 70},)

    def test_positional_arguments(self, env, processor):
        """Test that positional filter arguments are kept positional."""
        install(env, processor)
        out = _render(env, "{{ getUrl('a.jpg' | resize(300, 200)) }}")
        [found] = find_placeholders(out)
        assert found.descriptor.operations[0].args == (300, 200)

    def test_descriptor_interpolates_as_json(self):
        """Test that printing a descriptor without getUrl shows its JSON."""
        d = Descriptor("a.jpg").then("flip")
        assert _render(Environment(), "{{ d }}", d=d) == d.to_json()

    def test_full_page_roundtrip(self, env, processor, engine):
        """Test render followed by the post-render pass."""
        install(env, processor)
        env.loader = DictLoader(
            {"page.html": "<img src=\"{{ getUrl('/photo.jpg' | resize(100) | webp) }}\" alt=\"{{ alt }}\">"}
        )

        html = env.get_template("page.html").render(alt="A & B")
        result = processor.transform(html, "public/index.html")

        [built] = engine.calls
        assert result == f'<img src="{processor.candidate_url(built)}" alt="A &amp; B">'

    def test_unknown_filter(self, env, processor):
        """Test that unknown operations fail when the template compiles."""
        install(env, processor)
        with pytest.raises(TemplateAssertionError, match="posterize"):
            env.from_string("{{ getUrl('a.jpg' | posterize) }}")

    def test_unknown_operation_via_apply(self, processor):
        """Test that the processor rejects names outside its registry."""
        with pytest.raises(UnknownOperationError):
            processor.apply("a.jpg", "posterize")
