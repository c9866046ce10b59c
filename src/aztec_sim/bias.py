"""
Grayscale bias samples for the final fill.

A sample below 128 forces a horizontal pair, above 192 a vertical pair, and
anything in between is left to a fair coin.
"""

from __future__ import annotations

import io
import os
from typing import Any, Optional

import numpy as np
from PIL import Image, UnidentifiedImageError

from .errors import BiasImageError, ConfigError

HORIZONTAL_BELOW = 128
VERTICAL_ABOVE = 192


def bias_decision(value: int) -> Optional[bool]:
    """``True`` for horizontal, ``False`` for vertical, ``None`` for a coin flip."""
    if value < HORIZONTAL_BELOW:
        return True
    if value <= VERTICAL_ABOVE:
        return None
    return False


def as_bias_array(values: Any, size: int) -> np.ndarray:
    """Validates a ``(size, size)`` grid of samples in ``[0, 255]``."""
    arr = np.asarray(values)
    if arr.ndim != 2 or arr.shape != (size, size):
        raise ConfigError(f"bias must have shape ({size}, {size}), got {arr.shape}")
    if not (np.issubdtype(arr.dtype, np.integer) or np.issubdtype(arr.dtype, np.floating)):
        raise ConfigError(f"bias samples must be numeric, got dtype {arr.dtype}")
    if arr.size and (not np.all(np.isfinite(arr)) or arr.min() < 0 or arr.max() > 255):
        raise ConfigError("bias samples must lie in [0, 255]")
    return arr.astype(np.uint8, copy=False)


def _open_image(source: Any) -> Image.Image:
    if isinstance(source, Image.Image):
        return source
    try:
        if isinstance(source, (bytes, bytearray, memoryview)):
            image = Image.open(io.BytesIO(bytes(source)))
        elif isinstance(source, (str, os.PathLike)):
            image = Image.open(source)
        else:
            raise ConfigError(f"unsupported bias source of type {type(source).__name__}")
        image.load()
    except FileNotFoundError as exc:
        raise BiasImageError(f"bias image not found: {source}") from exc
    except UnidentifiedImageError as exc:
        raise BiasImageError("bias data is not a decodable image") from exc
    except OSError as exc:
        raise BiasImageError(f"could not read bias image: {exc}") from exc
    return image


def load_bias(source: Any, size: int) -> np.ndarray:
    """
    Turns a bias source into a ``(size, size)`` uint8 array.

    ``source`` can be an array (validated as is), an image path, encoded image
    bytes or a PIL image. Images are converted to grayscale and resized with
    nearest-neighbour sampling.
    """
    if isinstance(source, np.ndarray):
        return as_bias_array(source, size)
    image = _open_image(source)
    gray = image.convert("L").resize((size, size), Image.Resampling.NEAREST)
    return np.asarray(gray, dtype=np.uint8)


__all__ = ["bias_decision", "as_bias_array", "load_bias"]
