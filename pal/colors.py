from PIL import Image
import numpy as np
from typing import Iterable, List, Sequence, Tuple

from pal.errors import InvalidParameterError

Sample = Tuple[int, int, int, int]

MAX_CHANNEL = 0xFFFF  # samples carry 16-bit channels


def widen8(values) -> np.ndarray:
    """Widen 8-bit channel values to the 16-bit range (0xAB -> 0xABAB)."""
    return np.asarray(values, dtype=np.int64) * 257


def as_observations(samples) -> np.ndarray:
    """
    Coerce samples into an (N, 4) int64 observation array.

    Args:
        samples: Sequence or array of (R, G, B, A) samples with 16-bit channels.
                 (R, G, B) rows are taken as fully opaque.

    Returns:
        np.ndarray: (N, 4) int64 array. An empty input gives shape (0, 4).

    Raises:
        InvalidParameterError: If the shape is not (N, 3)/(N, 4), the values are not integers,
            or a channel is out of range.
    """
    arr = np.asarray(samples)
    if arr.size == 0:
        return np.empty((0, 4), dtype=np.int64)
    if arr.ndim != 2 or arr.shape[1] not in (3, 4):
        raise InvalidParameterError(f"observations must have shape (N, 3) or (N, 4), got {arr.shape}")
    if not np.issubdtype(arr.dtype, np.integer):
        raise InvalidParameterError(f"channel values must be integers, got dtype {arr.dtype}")
    arr = arr.astype(np.int64)
    if arr.shape[1] == 3:
        arr = np.hstack([arr, np.full((len(arr), 1), MAX_CHANNEL, dtype=np.int64)])
    if arr.min() < 0 or arr.max() > MAX_CHANNEL:
        raise InvalidParameterError(f"channel values must lie in 0-{MAX_CHANNEL}")
    return arr


def get_colors(image: Image.Image) -> np.ndarray:
    """
    Flattens an image into its pixels in row-major order as 16-bit samples.

    Pixels are read as non-premultiplied 8-bit RGBA and reported alpha-premultiplied
    in the 16-bit range, so fully transparent pixels all become (0, 0, 0, 0).

    Returns:
        np.ndarray: (width * height, 4) int64 array.
    """
    rgba = np.asarray(image.convert("RGBA"), dtype=np.int64).reshape(-1, 4)
    alpha = rgba[:, 3:4]
    rgb = widen8(rgba[:, :3]) * alpha // 255
    return np.hstack([rgb, widen8(alpha)])


def to_rgba8_array(samples) -> np.ndarray:
    """Premultiplied 16-bit samples -> non-premultiplied 8-bit RGBA rows (uint8)."""
    arr = as_observations(samples)
    out = np.zeros(arr.shape, dtype=np.int64)
    alpha = arr[:, 3]
    visible = alpha > 0
    out[visible, :3] = (arr[visible, :3] * MAX_CHANNEL // alpha[visible][:, None]) >> 8
    out[:, 3] = alpha >> 8
    return np.clip(out, 0, 255).astype(np.uint8)


def to_rgba8(sample) -> Tuple[int, int, int, int]:
    return tuple(int(c) for c in to_rgba8_array([sample])[0])


def to_rgb8(sample) -> Tuple[int, int, int]:
    return to_rgba8(sample)[:3]


def to_hex(sample) -> str:
    r, g, b = to_rgb8(sample)
    return f"#{r:02X}{g:02X}{b:02X}"


def from_hex(hex_color: str) -> Sample:
    """'#RRGGBB' or '#RRGGBBAA' -> 16-bit sample."""
    value = hex_color.strip().lstrip('#')
    if len(value) not in (6, 8):
        raise InvalidParameterError(f"invalid hex color: '{hex_color}'")
    try:
        channels = [int(value[i:i + 2], 16) for i in range(0, len(value), 2)]
    except ValueError:
        raise InvalidParameterError(f"invalid hex color: '{hex_color}'")
    if len(channels) == 3:
        channels.append(255)
    alpha = channels[3]
    return tuple(int(c) * 257 * alpha // 255 for c in channels[:3]) + (alpha * 257,)


def color_eq(th: int, a, b) -> bool:
    """True if R, G and B of a and b are each within th of each other and alpha matches exactly."""
    a = np.asarray(a, dtype=np.int64)
    b = np.asarray(b, dtype=np.int64)
    return bool(np.all(np.abs(a[:3] - b[:3]) <= th) and a[3] == b[3])


def colors_xor(th: int, src: Iterable[Sequence[int]], space: Iterable[Sequence[int]]) -> List[Sample]:
    """
    Colors from src that have no threshold-equal match in space.

    Near-duplicates within src are reported once, the first one seen wins.
    """
    space = [tuple(int(c) for c in s) for s in space]
    result: List[Sample] = []
    for color in src:
        color = tuple(int(c) for c in color)
        if any(color_eq(th, color, s) for s in space):
            continue
        if any(color_eq(th, color, r) for r in result):
            continue
        result.append(color)
    return result


def colors_to_image(colors) -> Image.Image:
    """One pixel wide image with one row per color, top to bottom."""
    rgba8 = to_rgba8_array(colors)
    if len(rgba8) == 0:
        raise InvalidParameterError("cannot build an image from an empty color list")
    return Image.fromarray(rgba8.reshape(len(rgba8), 1, 4))  # (H, W, 4) uint8 is RGBA
