# tests/test_palette.py
import numpy as np
import pytest
from PIL import Image, ImageDraw
from loguru import logger
from pal import palette as pal_palette
from pal.colors import from_hex, get_colors
from pal.errors import InsufficientObservationsError, InvalidParameterError

RED = from_hex("#FF0000")
GREEN = from_hex("#00FF00")
BLUE = from_hex("#0000FF")


def three_color_image():
    # 100 pixels: 50 red, 30 green, 20 blue
    img = Image.new("RGB", (10, 10), color=(255, 0, 0))
    draw = ImageDraw.Draw(img)
    draw.rectangle([(0, 5), (9, 7)], fill=(0, 255, 0))
    draw.rectangle([(0, 8), (9, 9)], fill=(0, 0, 255))
    return img


def test_palette_orders_entries_by_weight():
    palette = pal_palette.Palette({GREEN: 0.3, RED: 0.5, BLUE: 0.2}, iterations=3, converged=True)
    assert palette.count == len(palette) == 3
    assert palette.colors == [RED, GREEN, BLUE]
    assert palette.entries[0] == pal_palette.PaletteEntry(RED, 0.5)
    assert palette.weight(GREEN) == 0.3
    assert palette.weight((1, 2, 3, 4)) == 0.0
    assert palette.iterations == 3 and palette.converged


def test_palette_breaks_weight_ties_by_color_value():
    palette = pal_palette.Palette({BLUE: 0.5, RED: 0.5})
    assert palette.colors == [BLUE, RED]


def test_palette_to_dict():
    data = pal_palette.Palette({RED: 0.75, BLUE: 0.25}, iterations=2, converged=False).to_dict()
    assert data["iterations"] == 2
    assert data["converged"] is False
    assert [c["hex"] for c in data["colors"]] == ["#FF0000", "#0000FF"]
    assert data["colors"][0]["rgba16"] == [65535, 0, 0, 65535]
    assert data["colors"][1]["weight"] == 0.25


def test_cluster_colors_recovers_image_colors():
    samples = get_colors(three_color_image())
    palette = pal_palette.cluster_colors(3, 20, samples, init=[RED, GREEN, BLUE])
    assert palette.converged
    assert palette.colors == [RED, GREEN, BLUE]
    assert palette.weight(RED) == pytest.approx(0.5)
    assert palette.weight(GREEN) == pytest.approx(0.3)
    assert palette.weight(BLUE) == pytest.approx(0.2)


def test_extract_is_reproducible_with_a_seed():
    img = three_color_image()
    first = pal_palette.extract(3, 20, img, seed=1234)
    second = pal_palette.extract(3, 20, img, seed=1234)
    assert first.entries == second.entries
    assert first.iterations == second.iterations
    assert sum(w for _, w in first.entries) == pytest.approx(1.0)
    assert set(first.colors) <= {RED, GREEN, BLUE}


def test_extract_single_color_image():
    img = Image.new("RGB", (12, 8), color=(123, 222, 64))
    palette = pal_palette.extract(1, 5, img, seed=0)
    assert palette.colors == [(123 * 257, 222 * 257, 64 * 257, 65535)]
    assert palette.weight(palette.colors[0]) == 1.0


def test_extract_with_resize_keeps_weights_normalised():
    img = Image.new("RGB", (300, 200), color=(10, 20, 30))
    ImageDraw.Draw(img).rectangle([(0, 0), (149, 199)], fill=(200, 100, 0))
    palette = pal_palette.extract(2, 10, img, seed=5, resize=30)
    assert 1 <= palette.count <= 2
    assert sum(w for _, w in palette.entries) == pytest.approx(1.0)


def test_extract_rejects_too_small_image():
    img = Image.new("RGB", (1, 1), color=(0, 0, 0))
    with pytest.raises(InsufficientObservationsError):
        pal_palette.extract(2, 10, img, seed=0)


def test_extract_rejects_non_positive_resize():
    with pytest.raises(InvalidParameterError):
        pal_palette.extract(1, 10, three_color_image(), seed=0, resize=0)


def test_extract_by_centroids_measures_named_references():
    match = pal_palette.extract_by_centroids(
        0x0A0A,
        three_color_image(),
        {"warm": [RED, from_hex("#FFA500")], "cool": [BLUE], "violet": [from_hex("#8000FF")]},
    )
    assert match.names == ["warm", "cool", "violet"]
    assert match.weight("warm") == pytest.approx(0.5)
    assert match.weight("cool") == pytest.approx(0.2)
    assert match.weight("violet") == 0.0
    assert match.weight("missing") == 0.0
    assert match.unmatched == pytest.approx(0.3)
    assert match.entries[0] == ("warm", pytest.approx(0.5))


def test_extract_by_centroids_first_name_wins_and_threshold_applies():
    samples = np.array([(1000, 0, 0, 65535), (1020, 0, 0, 65535), (5000, 0, 0, 65535)])
    refs = {"a": [(1000, 0, 0, 65535)], "b": [(1010, 0, 0, 65535)]}
    match = pal_palette.extract_by_centroids(10, samples, refs)
    # the first sample is within range of both, the second only of "b"
    assert match.weight("a") == pytest.approx(1 / 3)
    assert match.weight("b") == pytest.approx(1 / 3)
    assert match.unmatched == pytest.approx(1 / 3)


def test_extract_by_centroids_rejects_bad_input():
    with pytest.raises(InvalidParameterError):
        pal_palette.extract_by_centroids(-1, [RED], {"red": [RED]})
    with pytest.raises(InvalidParameterError):
        pal_palette.extract_by_centroids(0, [], {"red": [RED]})


def test_cluster_colors_warns_when_fewer_colors_than_requested():
    messages = []
    sink_id = logger.add(messages.append, level="WARNING", format="{message}")
    try:
        palette = pal_palette.cluster_colors(2, 10, [RED, RED, BLUE], init=[RED, RED])
    finally:
        logger.remove(sink_id)

    assert palette.count == 1
    assert any("fewer than the 2 requested" in str(m) for m in messages)


def test_cluster_colors_does_not_warn_for_full_palette():
    messages = []
    sink_id = logger.add(messages.append, level="WARNING", format="{message}")
    try:
        pal_palette.cluster_colors(2, 10, [RED, RED, BLUE], init=[RED, BLUE])
    finally:
        logger.remove(sink_id)
    assert messages == []
