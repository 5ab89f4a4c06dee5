"""Built-in image operations implemented with Pillow.

Every handler takes the current ImageState followed by the positional
arguments recorded in the descriptor, and returns a new ImageState. Options
use the same names a template author would write (``width``, ``fit``,
``withoutEnlargement``, ``quality``...). Invalid arguments raise ValueError
or TypeError, which the processor reports as a build failure.
"""

from collections.abc import Mapping
from dataclasses import replace
from typing import Any, Callable

from PIL import Image, ImageColor, ImageFilter, ImageOps

from postimage.state import ImageState

RESAMPLE = Image.Resampling.LANCZOS

FIT_MODES = ("cover", "contain", "fill", "inside", "outside")


def _options(value: Any, op_name: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise TypeError(f"{op_name} options must be an object, got {type(value).__name__}")
    return dict(value)


def _dimension(value: Any, name: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ValueError(f"{name} must be a positive number, got {value!r}")
    return int(round(value))


def _color(value: Any, mode: str) -> Any:
    """Translate a CSS-style colour into a pixel value for ``mode``."""
    if value is None or isinstance(value, (int, tuple)):
        return value
    if isinstance(value, list):
        return tuple(value)
    if isinstance(value, str):
        return ImageColor.getcolor(value, mode)
    raise TypeError(f"Unsupported colour value: {value!r}")


def _has_alpha(image: Image.Image) -> bool:
    return image.mode in ("RGBA", "LA", "PA") or (
        image.mode == "P" and "transparency" in image.info
    )


def _preserving_alpha(
    image: Image.Image, fn: Callable[[Image.Image], Image.Image]
) -> Image.Image:
    """Apply an RGB/L-only ImageOps function without losing transparency."""
    if not _has_alpha(image):
        base = image if image.mode in ("L", "RGB") else image.convert("RGB")
        return fn(base)

    rgba = image.convert("LA" if image.mode == "LA" else "RGBA")
    alpha = rgba.getchannel("A")
    result = fn(rgba.convert("L" if rgba.mode == "LA" else "RGB"))
    result.putalpha(alpha)
    return result


def resize(
    state: ImageState,
    width: Any = None,
    height: Any = None,
    options: Any = None,
) -> ImageState:
    """Resize to width and/or height.

    Accepts ``resize(width)``, ``resize(width, height)``,
    ``resize(width, height, {options})`` or a single options object
    ``resize({"width": ..., "height": ..., "fit": ...})``.

    With only one dimension the aspect ratio is kept. With both, ``fit``
    decides how the image meets the box: ``cover`` (default) crops to fill it,
    ``contain`` letterboxes onto ``background``, ``fill`` stretches,
    ``inside`` scales to fit within it and ``outside`` scales to cover it.
    ``withoutEnlargement`` leaves images already smaller than the box alone.
    """
    if isinstance(width, Mapping):
        options, width, height = width, width.get("width"), width.get("height")
    elif isinstance(height, Mapping):
        options, height = height, height.get("height")
    opts = _options(options, "resize")

    target_w = _dimension(width, "width")
    target_h = _dimension(height, "height")
    if target_w is None and target_h is None:
        return state

    image = state.image
    src_w, src_h = image.size
    fit = opts.get("fit", "cover")
    if fit not in FIT_MODES:
        raise ValueError(f"Unknown fit {fit!r}; expected one of {', '.join(FIT_MODES)}")

    if target_w is None or target_h is None:
        # Single dimension: keep aspect ratio
        if target_w is None:
            target_w = max(1, round(src_w * target_h / src_h))
        else:
            target_h = max(1, round(src_h * target_w / src_w))
        fit = "fill"

    if opts.get("withoutEnlargement") and target_w >= src_w and target_h >= src_h:
        return state

    if fit == "cover":
        resized = ImageOps.fit(image, (target_w, target_h), method=RESAMPLE)
    elif fit == "contain":
        resized = ImageOps.pad(
            image,
            (target_w, target_h),
            method=RESAMPLE,
            color=_color(opts.get("background"), image.mode),
        )
    elif fit == "fill":
        resized = image.resize((target_w, target_h), RESAMPLE)
    else:
        pick = min if fit == "inside" else max
        scale = pick(target_w / src_w, target_h / src_h)
        size = (max(1, round(src_w * scale)), max(1, round(src_h * scale)))
        resized = image.resize(size, RESAMPLE)
    return replace(state, image=resized)


def rotate(state: ImageState, angle: Any = None, options: Any = None) -> ImageState:
    """Rotate clockwise by ``angle`` degrees, or auto-orient from EXIF with no angle."""
    if isinstance(angle, Mapping):
        options, angle = angle, None
    opts = _options(options, "rotate")

    if angle is None:
        return replace(state, image=ImageOps.exif_transpose(state.image))
    if isinstance(angle, bool) or not isinstance(angle, (int, float)):
        raise TypeError(f"rotate angle must be a number, got {angle!r}")

    image = state.image
    rotated = image.rotate(
        -angle,
        resample=Image.Resampling.BICUBIC,
        expand=True,
        fillcolor=_color(opts.get("background"), image.mode),
    )
    return replace(state, image=rotated)


def flip(state: ImageState) -> ImageState:
    """Mirror top to bottom."""
    return replace(state, image=ImageOps.flip(state.image))


def flop(state: ImageState) -> ImageState:
    """Mirror left to right."""
    return replace(state, image=ImageOps.mirror(state.image))


def grayscale(state: ImageState) -> ImageState:
    image = state.image
    mode = "LA" if _has_alpha(image) else "L"
    return replace(state, image=image.convert(mode))


def negate(state: ImageState) -> ImageState:
    return replace(state, image=_preserving_alpha(state.image, ImageOps.invert))


def normalize(state: ImageState) -> ImageState:
    """Stretch contrast so the darkest pixel is black and the lightest white."""
    return replace(state, image=_preserving_alpha(state.image, ImageOps.autocontrast))


def blur(state: ImageState, sigma: Any = None) -> ImageState:
    """Fast 3x3 box blur with no argument, Gaussian blur of ``sigma`` otherwise."""
    if sigma is None:
        image_filter: ImageFilter.Filter = ImageFilter.BoxBlur(1)
    else:
        if isinstance(sigma, bool) or not isinstance(sigma, (int, float)) or sigma <= 0:
            raise ValueError(f"blur sigma must be a positive number, got {sigma!r}")
        image_filter = ImageFilter.GaussianBlur(radius=sigma)
    return replace(state, image=state.image.filter(image_filter))


def sharpen(state: ImageState, sigma: Any = None, options: Any = None) -> ImageState:
    """Mild sharpen with no argument, unsharp mask of radius ``sigma`` otherwise."""
    if isinstance(sigma, Mapping):
        options, sigma = sigma, sigma.get("sigma")
    opts = _options(options, "sharpen")

    if sigma is None:
        image_filter: ImageFilter.Filter = ImageFilter.SHARPEN
    else:
        if isinstance(sigma, bool) or not isinstance(sigma, (int, float)) or sigma <= 0:
            raise ValueError(f"sharpen sigma must be a positive number, got {sigma!r}")
        image_filter = ImageFilter.UnsharpMask(
            radius=sigma,
            percent=int(opts.get("percent", 150)),
            threshold=int(opts.get("threshold", 3)),
        )
    return replace(state, image=state.image.filter(image_filter))


def extract(state: ImageState, region: Any) -> ImageState:
    """Crop to ``{"left", "top", "width", "height"}``."""
    box = _options(region, "extract")
    try:
        left, top = int(box["left"]), int(box["top"])
        width, height = int(box["width"]), int(box["height"])
    except KeyError as exc:
        raise ValueError(f"extract region is missing {exc.args[0]!r}") from exc

    src_w, src_h = state.image.size
    if left < 0 or top < 0 or width <= 0 or height <= 0:
        raise ValueError(f"extract region {box!r} is invalid")
    if left + width > src_w or top + height > src_h:
        raise ValueError(f"extract region {box!r} exceeds image size {src_w}x{src_h}")
    return replace(state, image=state.image.crop((left, top, left + width, top + height)))


def flatten(state: ImageState, options: Any = None) -> ImageState:
    """Merge the alpha channel onto a solid ``background`` (default black)."""
    opts = _options(options, "flatten")
    image = state.image
    if not _has_alpha(image):
        return state

    rgba = image.convert("RGBA")
    background = Image.new("RGB", rgba.size, _color(opts.get("background", "#000000"), "RGB"))
    background.paste(rgba, mask=rgba.getchannel("A"))
    return replace(state, image=background)


def tint(state: ImageState, color: Any) -> ImageState:
    """Recolour mid-tones toward ``color`` while keeping black and white."""
    rgb = _color(color, "RGB")
    if rgb is None:
        raise ValueError("tint requires a colour")

    def colorize(base: Image.Image) -> Image.Image:
        return ImageOps.colorize(base.convert("L"), black="black", white="white", mid=rgb)

    return replace(state, image=_preserving_alpha(state.image, colorize))


# Template option name -> Image.save keyword, per output format
SAVE_OPTIONS: dict[str, dict[str, str]] = {
    "JPEG": {"quality": "quality", "progressive": "progressive", "optimize": "optimize"},
    "PNG": {"compressionLevel": "compress_level", "optimize": "optimize"},
    "WEBP": {"quality": "quality", "lossless": "lossless", "effort": "method"},
    "GIF": {"loop": "loop", "optimize": "optimize"},
    "AVIF": {"quality": "quality", "speed": "speed"},
    "TIFF": {"compression": "compression", "quality": "quality"},
}


def _format_op(pil_format: str) -> Callable[..., ImageState]:
    """Build a handler that selects an output format and its encoder options."""
    accepted = SAVE_OPTIONS[pil_format]

    def set_format(state: ImageState, options: Any = None) -> ImageState:
        save_options: dict[str, Any] = {}
        for key, value in _options(options, pil_format.lower()).items():
            if key in accepted:
                save_options[accepted[key]] = value
            elif key in accepted.values():
                save_options[key] = value
            else:
                raise ValueError(
                    f"Unsupported {pil_format} option {key!r}; "
                    f"expected one of {', '.join(sorted(accepted))}"
                )
        return replace(state, format=pil_format, save_options=save_options)

    set_format.__name__ = pil_format.lower()
    return set_format


OPS = {
    "resize": resize,
    "rotate": rotate,
    "flip": flip,
    "flop": flop,
    "grayscale": grayscale,
    "greyscale": grayscale,
    "negate": negate,
    "normalize": normalize,
    "normalise": normalize,
    "blur": blur,
    "sharpen": sharpen,
    "extract": extract,
    "flatten": flatten,
    "tint": tint,
    "jpeg": _format_op("JPEG"),
    "jpg": _format_op("JPEG"),
    "png": _format_op("PNG"),
    "webp": _format_op("WEBP"),
    "gif": _format_op("GIF"),
    "avif": _format_op("AVIF"),
    "tiff": _format_op("TIFF"),
}
