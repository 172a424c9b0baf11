# tests/test_colors.py
import numpy as np
import pytest
from PIL import Image
from pal import colors
from pal.errors import InvalidParameterError


def test_widen8_maps_full_scale_to_full_scale():
    assert colors.widen8(0) == 0
    assert colors.widen8(0xAB) == 0xABAB
    assert colors.widen8(255) == 65535


def test_as_observations_adds_opaque_alpha_to_rgb_rows():
    obs = colors.as_observations([(1, 2, 3), (4, 5, 6)])
    assert obs.shape == (2, 4)
    assert obs.dtype == np.int64
    assert list(obs[:, 3]) == [65535, 65535]


def test_as_observations_empty_and_invalid():
    assert colors.as_observations([]).shape == (0, 4)
    with pytest.raises(InvalidParameterError):
        colors.as_observations([(1, 2, 3, 4, 5)])
    with pytest.raises(InvalidParameterError):
        colors.as_observations([(-1, 0, 0, 0)])


def test_get_colors_is_row_major():
    img = Image.new("RGB", (2, 2))
    img.putpixel((0, 0), (255, 0, 0))
    img.putpixel((1, 0), (0, 255, 0))
    img.putpixel((0, 1), (0, 0, 255))
    img.putpixel((1, 1), (255, 255, 255))

    samples = colors.get_colors(img)
    assert samples.shape == (4, 4)
    assert [tuple(int(c) for c in s) for s in samples] == [
        (65535, 0, 0, 65535),
        (0, 65535, 0, 65535),
        (0, 0, 65535, 65535),
        (65535, 65535, 65535, 65535),
    ]


def test_get_colors_premultiplies_alpha():
    img = Image.new("RGBA", (1, 1), color=(255, 0, 0, 128))
    sample = tuple(int(c) for c in colors.get_colors(img)[0])
    assert sample == (65535 * 128 // 255, 0, 0, 128 * 257)

    transparent = Image.new("RGBA", (1, 1), color=(200, 100, 50, 0))
    assert tuple(int(c) for c in colors.get_colors(transparent)[0]) == (0, 0, 0, 0)


def test_hex_conversions():
    assert colors.from_hex("#FF0000") == (65535, 0, 0, 65535)
    assert colors.from_hex("00ff00") == (0, 65535, 0, 65535)
    assert colors.to_hex((65535, 0, 0, 65535)) == "#FF0000"
    assert colors.to_hex(colors.from_hex("#12AB9C")) == "#12AB9C"
    assert colors.to_rgb8((0x8080, 0x4040, 0, 65535)) == (0x80, 0x40, 0)
    with pytest.raises(InvalidParameterError):
        colors.from_hex("#12")
    with pytest.raises(InvalidParameterError):
        colors.from_hex("#GGGGGG")


def test_to_rgba8_undoes_premultiplication():
    img = Image.new("RGBA", (1, 1), color=(200, 100, 50, 128))
    sample = colors.get_colors(img)[0]
    r, g, b, a = colors.to_rgba8(sample)
    assert a == 128
    assert abs(r - 200) <= 1 and abs(g - 100) <= 1 and abs(b - 50) <= 1


def test_color_eq_uses_threshold_on_rgb_and_exact_alpha():
    a = (1000, 1000, 1000, 65535)
    assert colors.color_eq(0, a, a)
    assert colors.color_eq(10, a, (1010, 990, 1000, 65535))
    assert not colors.color_eq(10, a, (1011, 1000, 1000, 65535))
    assert not colors.color_eq(10, a, (1000, 1000, 1000, 65534))


def test_colors_xor_drops_matches_and_near_duplicates():
    src = [(0, 0, 0, 65535), (5, 5, 5, 65535), (1000, 0, 0, 65535), (30000, 0, 0, 65535)]
    space = [(1002, 0, 0, 65535)]
    result = colors.colors_xor(10, src, space)
    assert result == [(0, 0, 0, 65535), (30000, 0, 0, 65535)]


def test_colors_to_image_is_one_pixel_wide_column():
    img = colors.colors_to_image([(65535, 0, 0, 65535), (0, 0, 65535, 65535)])
    assert img.mode == "RGBA"
    assert img.size == (1, 2)
    assert img.getpixel((0, 0)) == (255, 0, 0, 255)
    assert img.getpixel((0, 1)) == (0, 0, 255, 255)

    with pytest.raises(InvalidParameterError):
        colors.colors_to_image([])


def test_as_observations_rejects_float_samples():
    with pytest.raises(InvalidParameterError):
        colors.as_observations([(0.7, 1.9, 2.2, 3.9)])
    with pytest.raises(InvalidParameterError):
        colors.as_observations(np.array([[1.0, 2.0, 3.0]]))
    # integer arrays of any width are accepted
    assert colors.as_observations(np.array([[1, 2, 3, 4]], dtype=np.uint16)).dtype == np.int64
