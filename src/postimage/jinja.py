"""Jinja2 integration: chainable image filters and the getUrl global.

Example::

    env = Environment(loader=FileSystemLoader("templates"), autoescape=True)
    processor = install(env, DeferredProcessor(options))

    html = env.get_template("post.html").render(post=post)
    html = await processor.build_all(html, "public/post/index.html")

with a template such as::

    <img src="{{ getUrl('/images/photo.jpg' | resize(800) | webp(quality=80)) }}">
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from jinja2 import Environment

from postimage.descriptor import Descriptor
from postimage.processor import DeferredProcessor

logger = logging.getLogger(__name__)

ROOT_FILTERS = ("sharp", "image")
URL_GLOBAL = "getUrl"


def _operation_filter(processor: DeferredProcessor, name: str) -> Callable[..., Descriptor]:
    def op_filter(value: Descriptor | str, *args: Any, **kwargs: Any) -> Descriptor:
        return processor.apply(value, name, *args, **kwargs)

    op_filter.__name__ = name
    op_filter.__doc__ = f"Append a '{name}' operation to an image descriptor."
    return op_filter


def install(
    env: Environment,
    processor: DeferredProcessor | None = None,
    overwrite: bool = False,
) -> DeferredProcessor:
    """Register image filters and the ``getUrl`` global on a Jinja2 environment.

    Adds the root filters ``sharp``/``image`` (path -> descriptor), one filter
    per operation in the processor's registry, and ``getUrl`` which emits the
    placeholder. The caller runs ``processor.build_all`` (or ``transform``)
    on each rendered page.

    Args:
        env: The Jinja2 environment to extend.
        processor: Processor to bind to. Defaults to DeferredProcessor().
        overwrite: Replace filters that already exist in the environment.

    Returns:
        The processor the filters are bound to.

    Raises:
        ValueError: If an operation name collides with an existing filter
            and overwrite is False.
    """
    processor = processor or DeferredProcessor()

    filters: dict[str, Callable[..., Any]] = {name: Descriptor.of for name in ROOT_FILTERS}
    for name in processor.registry.names():
        filters[name] = _operation_filter(processor, name)

    if not overwrite:
        clashes = sorted(name for name in filters if name in env.filters)
        if clashes:
            raise ValueError(
                f"Filters already defined in this environment: {', '.join(clashes)}. "
                f"Pass overwrite=True to replace them."
            )

    env.filters.update(filters)
    env.globals[URL_GLOBAL] = processor.emit_placeholder
    logger.debug("Installed %d image filters", len(filters))
    return processor
