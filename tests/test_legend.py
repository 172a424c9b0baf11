# tests/test_legend.py
from PIL import Image
import numpy as np
from pal import legend
from pal.colors import from_hex
from pal.palette import Palette


def test_create_legend_image_returns_image(tmp_path):
    # Create a dummy palette: 3 RGB colors
    palette = [
        (255, 0, 0),    # red
        (0, 255, 0),    # green
        (0, 0, 255)     # blue
    ]

    legend_image = legend.create_legend_image(palette, font_size=12, swatch_size=20, padding=5)
    assert isinstance(legend_image, Image.Image)

    # Plain color lists get no weight captions
    num_colors = len(palette)
    expected_width = (20 * num_colors) + (5 * (num_colors + 1))
    expected_height = 20 + (2 * 5)
    assert legend_image.size == (expected_width, expected_height)

    outpath = tmp_path / "legend_test_output.png"
    legend_image.save(outpath)
    assert outpath.exists()


def test_create_legend_image_with_empty_palette():
    assert legend.create_legend_image([]) is None
    assert legend.create_legend_image(Palette({})) is None


def test_create_legend_image_handles_numpy_palette():
    palette = np.array([
        [255, 255, 0],
        [0, 255, 255]
    ], dtype=np.uint8)

    img = legend.create_legend_image(palette, font_size=10, swatch_size=15, padding=2)
    assert isinstance(img, Image.Image)
    assert img.size[1] == 15 + (2 * 2)


def test_create_legend_image_for_palette_adds_weight_row():
    palette = Palette({from_hex("#FF0000"): 0.75, from_hex("#000000"): 0.25})
    img = legend.create_legend_image(palette, font_size=10, swatch_size=30, padding=4)

    assert img.size == ((30 * 2) + (4 * 3), 30 + (2 * 4) + (10 + 4))
    # swatches are drawn heaviest first
    assert img.getpixel((4 + 2, 4 + 2)) == (255, 0, 0)
    assert img.getpixel((4 + 30 + 4 + 2, 4 + 2)) == (0, 0, 0)
