"""Example: Rendering a small gallery with deferred image processing.

This example renders two pages from Jinja2 templates. Each page asks for
the same thumbnail and one image of its own. Templates only emit
placeholders; the post-render pass builds each unique image once and
swaps in the final URLs.
"""

import argparse
import asyncio
import tempfile
from pathlib import Path

from jinja2 import DictLoader, Environment
from PIL import Image

from postimage import DeferredProcessor, ProcessorOptions, install

TEMPLATES = {
    "base.html": (
        '<img class="thumb" src="{{ getUrl(\'/photo.jpg\' | resize(height=size, width=size) | webp) }}">\n'
        "{% block body %}{% endblock %}"
    ),
    "index.html": (
        '{% extends "base.html" %}{% block body %}'
        "<img src=\"{{ getUrl('/photo.jpg' | resize(width=2 * size) | grayscale) }}\">"
        "{% endblock %}"
    ),
    "about.html": (
        '{% extends "base.html" %}{% block body %}'
        "<img src=\"{{ getUrl('/photo.jpg' | flop | png) }}\">"
        "{% endblock %}"
    ),
}


async def build(site: Path, size: int) -> DeferredProcessor:
    """Render every page and run the post-render pass concurrently."""
    options = ProcessorOptions(
        output_dir=site / "public" / "assets" / "images",
        url_path="/assets/images",
        input_dir=site / "src",
    )
    env = Environment(loader=DictLoader(TEMPLATES), autoescape=True)
    processor = install(env, DeferredProcessor(options))

    pages = {
        site / "public" / name: env.get_template(name).render(size=size)
        for name in ("index.html", "about.html")
    }
    results = await asyncio.gather(
        *(processor.build_all(html, path) for path, html in pages.items())
    )
    for path, html in zip(pages, results):
        path.write_text(html)
        print(f"--- {path.name}")
        print(html)
    return processor


def main():
    parser = argparse.ArgumentParser(
        description="Render two pages that share a deferred thumbnail"
    )
    parser.add_argument(
        "--size",
        type=int,
        default=64,
        help="Thumbnail edge in pixels (default: 64)",
    )
    args = parser.parse_args()

    with tempfile.TemporaryDirectory() as tmp:
        site = Path(tmp)
        (site / "src").mkdir()
        (site / "public").mkdir()
        Image.new("RGB", (320, 200), (40, 120, 200)).save(site / "src" / "photo.jpg")

        processor = asyncio.run(build(site, args.size))
        built = sorted(p.name for p in processor.output.root.iterdir())

        print("\n" + "=" * 60)
        print(f"Images built: {len(built)}")
        for name in built:
            with Image.open(processor.output.root / name) as image:
                print(f"  {name.split('-')[0]} {image.format} {image.size[0]}x{image.size[1]}")
        stats = processor.store.stats
        print(f"  Hits: {stats.hits}")
        print(f"  Misses: {stats.misses}")
        print(f"  Puts: {stats.puts}")
        print("=" * 60)


if __name__ == "__main__":
    main()
