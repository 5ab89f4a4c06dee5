"""DeferredProcessor: placeholder emission, post-render builds and the URL cache."""

from __future__ import annotations

import asyncio
import logging
import os
import re
from collections.abc import Awaitable
from pathlib import Path, PurePath, PurePosixPath
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

from markupsafe import Markup

from postimage.config import ProcessorOptions
from postimage.descriptor import Descriptor
from postimage.engine import PillowEngine, is_remote
from postimage.errors import BuildError
from postimage.hashing import fingerprint
from postimage.placeholder import encode_placeholder, find_placeholders, substitute
from postimage.registry import default_registry
from postimage.store.memory import MemoryStore
from postimage.store.output import OutputDirectory

if TYPE_CHECKING:
    from postimage.protocol import ImageEngine
    from postimage.registry import OpRegistry
    from postimage.store.base import UrlStore

logger = logging.getLogger(__name__)

# Operation names that also choose the output file extension
OUTPUT_FORMATS = ("jpg", "jpeg", "png", "webp", "gif", "avif", "tiff")

_UNSAFE_STEM_RE = re.compile(r"[\"'\s<>/\\]+")


class DeferredProcessor:
    """Defers image work from template rendering to a post-render pass.

    Two phases:
    - Render time: templates build Descriptors and ``emit_placeholder`` turns
      each into a placeholder that already carries the final URL.
    - Post-render: ``build_all`` collects the page's placeholders, builds each
      unique fingerprint once (concurrently) and substitutes the URLs.

    Built URLs are cached per processor instance; files found in the output
    directory count as cache hits, so builds survive process restarts.
    """

    def __init__(
        self,
        options: ProcessorOptions | None = None,
        registry: "OpRegistry | None" = None,
        engine: "ImageEngine | None" = None,
        store: "UrlStore | None" = None,
    ) -> None:
        """Initialize DeferredProcessor.

        Args:
            options: ProcessorOptions. Defaults to ProcessorOptions().
            registry: OpRegistry of allowed operations. Defaults to the
                built-in Pillow operations.
            engine: ImageEngine that renders artifacts. Defaults to a
                PillowEngine over ``registry``.
            store: UrlStore for fingerprint -> URL. Defaults to a MemoryStore
                configured from ``options``.
        """
        self.options = options or ProcessorOptions()
        self.registry = registry or default_registry()
        self.engine = engine or PillowEngine(
            self.registry, timeout=self.options.remote_timeout
        )
        self.store = store or MemoryStore(
            cache=self.options.cache, max_size=self.options.cache_size
        )
        self.output = OutputDirectory(self.options.output_dir)
        self._inflight: dict[str, asyncio.Task[str]] = {}
        self.output.ensure()

    # -- Configuration builder -------------------------------------------

    def apply(self, value: Descriptor | str, name: str, *args: Any, **kwargs: Any) -> Descriptor:
        """Append an operation to a descriptor (or a bare path).

        Keyword arguments are collected into one trailing dict argument, so
        ``apply(d, "resize", width=300)`` records ``args=[{"width": 300}]``.

        Raises:
            UnknownOperationError: If name is not a registered operation.
        """
        self.registry.get(name)
        if kwargs:
            args = args + (kwargs,)
        return Descriptor.of(value).then(name, *args)

    def resolve_input_path(self, input_path: str) -> str:
        """Resolve a root-relative path against the site's input directory.

        ``/images/a.jpg`` becomes ``<input_dir>/images/a.jpg``. Remote URLs
        and relative paths are returned unchanged.
        """
        if input_path.startswith("/") and not is_remote(input_path):
            return os.path.join(os.fspath(self.options.input_dir), input_path.lstrip("/"))
        return input_path

    def finalize(self, value: Descriptor | str) -> Descriptor:
        """Return the descriptor as it will be embedded: input path resolved once."""
        descriptor = Descriptor.of(value)
        return descriptor.with_input_path(self.resolve_input_path(descriptor.input_path))

    # -- Naming ------------------------------------------------------------

    def target_extension(self, descriptor: Descriptor) -> str:
        """Extension of the artifact, including the leading dot.

        The last operation named after an output format wins; without one the
        input's own extension is kept.
        """
        for op in reversed(descriptor.operations):
            if op.name in OUTPUT_FORMATS:
                return f".{op.name}"
        return _source_path(descriptor.input_path).suffix

    def artifact_name(self, descriptor: Descriptor, digest: str | None = None) -> str:
        """Filename of the artifact: ``<stem>-<fingerprint><ext>``."""
        digest = digest or fingerprint(descriptor)
        stem = _UNSAFE_STEM_RE.sub("-", _source_path(descriptor.input_path).stem) or "image"
        return f"{stem}-{digest}{self.target_extension(descriptor)}"

    def candidate_url(self, descriptor: Descriptor, digest: str | None = None) -> str:
        """Public URL the artifact for a finalized descriptor will have."""
        return self._public_url(self.artifact_name(descriptor, digest))

    def output_file(self, descriptor: Descriptor, digest: str | None = None) -> Path:
        """Filesystem path the artifact for a finalized descriptor is written to."""
        return self.output.path_for(self.artifact_name(descriptor, digest))

    def _public_url(self, filename: str) -> str:
        url_path = self.options.url_path
        if not url_path:
            return filename
        return f"{url_path.rstrip('/')}/{filename}"

    # -- Render time -------------------------------------------------------

    def emit_placeholder(self, value: Descriptor | str) -> Markup:
        """Return the placeholder text for a descriptor or path.

        Pure: nothing is read, written or built until ``build_all`` runs.
        The result is Markup so an autoescaping template leaves it intact.
        """
        descriptor = self.finalize(value)
        return Markup(encode_placeholder(descriptor, self.candidate_url(descriptor)))

    # -- Post-render -------------------------------------------------------

    def handles(self, output_path: Any) -> bool:
        """Check whether a destination path is processed by ``build_all``."""
        if not isinstance(output_path, (str, os.PathLike)):
            return False
        name = os.fspath(output_path).lower()
        return any(name.endswith(ext) for ext in self.options.output_extensions)

    async def build_all(self, content: str, output_path: Any) -> str:
        """Build every image referenced by a rendered page and substitute URLs.

        Args:
            content: The fully rendered page.
            output_path: Destination of the page. Pages whose path does not
                end with a configured extension are returned untouched.

        Returns:
            The content with every placeholder replaced by its final URL.

        Raises:
            PlaceholderError: If a placeholder was corrupted after rendering.
            BuildError: If building any image failed. Other images from the
                same page that did build stay cached.
        """
        if not self.handles(output_path):
            return content

        placeholders = find_placeholders(content)
        if not placeholders:
            return content

        unique: dict[str, Descriptor] = {}
        for placeholder in placeholders:
            unique.setdefault(placeholder.fingerprint, placeholder.descriptor)

        urls: dict[str, str] = {}
        pending: dict[str, Awaitable[str]] = {}
        for digest, descriptor in unique.items():
            if self.store.exists(digest):
                urls[digest] = self.store.get(digest)
            else:
                pending[digest] = self._schedule(digest, descriptor)
        if urls:
            logger.debug("%d image(s) already cached for %s", len(urls), os.fspath(output_path))

        if pending:
            logger.debug(
                "Building %d image(s) for %s", len(pending), os.fspath(output_path)
            )
            results = await asyncio.gather(*pending.values(), return_exceptions=True)
            failures: list[BaseException] = []
            for digest, result in zip(pending, results):
                if isinstance(result, BaseException):
                    logger.error("%s", result)
                    failures.append(result)
                else:
                    urls[digest] = result
            if failures:
                raise failures[0]

        return substitute(content, urls, placeholders)

    def transform(self, content: str, output_path: Any) -> str:
        """Synchronous ``build_all`` for build tools without an event loop."""
        if not self.handles(output_path):
            return content
        return asyncio.run(self.build_all(content, output_path))

    def _schedule(self, digest: str, descriptor: Descriptor) -> Awaitable[str]:
        """Start (or join) the build for a fingerprint.

        Each caller waits on a shield, so cancelling one page stops that page
        from waiting without cancelling a build other pages share.
        """
        task = self._inflight.get(digest)
        if task is None:
            task = asyncio.ensure_future(self._build(digest, descriptor))
            self._inflight[digest] = task
            task.add_done_callback(lambda done: self._forget(digest, done))
        return asyncio.shield(task)

    def _forget(self, digest: str, task: asyncio.Task[str]) -> None:
        self._inflight.pop(digest, None)
        if not task.cancelled() and task.exception() is not None:
            # Every waiter may have been cancelled; the next page retries
            logger.debug("Build of %s failed: %s", digest, task.exception())

    async def _build(self, digest: str, descriptor: Descriptor) -> str:
        name = self.artifact_name(descriptor, digest)
        output_file = self.output.path_for(name)
        url = self._public_url(name)

        if await asyncio.to_thread(self.output.exists, name):
            logger.debug("Reusing existing %s", output_file)
        else:
            await asyncio.to_thread(self.output.ensure)
            try:
                await asyncio.to_thread(self.engine.render, descriptor, output_file)
            except BuildError:
                raise
            except Exception as exc:
                raise BuildError(descriptor, f"{type(exc).__name__}: {exc}") from exc
            logger.info("Built %s from %s", url, descriptor.input_path)

        self.store.put(digest, url)
        return url

    async def clear_output_dir(self) -> None:
        """Forget every cached URL and empty the output directory.

        Raises:
            OSError: If the directory cannot be removed or recreated.
        """
        self.store.clear()
        await asyncio.to_thread(self.output.clear)


def _source_path(input_path: str) -> PurePath:
    """Path-like view of an input, using only the URL path for remote inputs."""
    if is_remote(input_path):
        return PurePosixPath(urlsplit(input_path).path)
    return PurePath(input_path)
