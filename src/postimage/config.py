"""Processor configuration: pydantic model and YAML loading."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator

DEFAULT_OUTPUT_DIR = "public/assets/images"
DEFAULT_URL_PATH = "/assets/images/"
DEFAULT_OUTPUT_EXTENSIONS = (".html",)
DEFAULT_REMOTE_TIMEOUT = 30.0

_UNSAFE_URL_RE = re.compile(r"[\"'\s<]")


class ProcessorOptions(BaseModel):
    """Options for a DeferredProcessor.

    ``output_dir`` is where artifacts are written; ``url_path`` is the public
    prefix used verbatim (with forward slashes) when composing their URLs.
    ``input_dir`` is the site source root that ``/``-prefixed input paths
    are resolved against.
    """

    output_dir: Path = Path(DEFAULT_OUTPUT_DIR)
    url_path: str = DEFAULT_URL_PATH
    input_dir: Path = Path(".")
    output_extensions: list[str] = Field(
        default_factory=lambda: list(DEFAULT_OUTPUT_EXTENSIONS)
    )
    cache: Literal["unbounded", "lru", "lfu"] = "unbounded"
    cache_size: int | None = None
    remote_timeout: float = Field(default=DEFAULT_REMOTE_TIMEOUT, gt=0)

    @field_validator("url_path")
    @classmethod
    def check_url_path(cls, value: str) -> str:
        if _UNSAFE_URL_RE.search(value):
            raise ValueError("url_path must not contain quotes, whitespace or '<'")
        return value

    @field_validator("output_extensions")
    @classmethod
    def normalize_extensions(cls, value: list[str]) -> list[str]:
        normalized = []
        for ext in value:
            ext = ext.strip().lower()
            if not ext:
                raise ValueError("output_extensions must not contain empty entries")
            normalized.append(ext if ext.startswith(".") else f".{ext}")
        return normalized


def load_options(path: str | Path) -> ProcessorOptions:
    """Load processor options from a YAML file with a top-level 'postimage' key.

    Example::

        postimage:
          output_dir: public/assets/images
          url_path: /assets/images
          input_dir: src
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Options YAML not found: {path}")

    with open(path) as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict) or "postimage" not in raw:
        raise ValueError(f"Invalid options YAML: missing top-level 'postimage' key in {path}")

    section = raw["postimage"] or {}
    if not isinstance(section, dict):
        raise ValueError(f"Expected a mapping under 'postimage' in {path}")
    return ProcessorOptions(**section)
