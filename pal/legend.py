from PIL import Image, ImageDraw, ImageFont
import os

from pal.colors import to_rgb8
from pal.palette import Palette


def _load_font(font_path, font_size):
    loaded_font = None
    try:
        if font_path and os.path.isfile(font_path):
            loaded_font = ImageFont.truetype(font_path, font_size)
    except IOError:
        pass # Will fall through to default if custom font fails

    if not loaded_font:
        try:
            loaded_font = ImageFont.load_default(size=font_size)
        except TypeError: # Older Pillow versions do not support size for load_default
            loaded_font = ImageFont.load_default()
    return loaded_font


def _centered_text(draw, font, text, box_x, box_y, box_w, box_h, fill=(0, 0, 0)):
    """Draws text centered in the given box, using the glyph bbox for the offset."""
    try: # Modern Pillow (9.2.0+)
        bbox = font.getbbox(text)
    except AttributeError:
        bbox = draw.textbbox((0, 0), text, font=font)
    text_w = bbox[2] - bbox[0]
    text_h = bbox[3] - bbox[1]
    x = box_x + (box_w - text_w) / 2.0 - bbox[0]
    y = box_y + (box_h - text_h) / 2.0 - bbox[1]
    draw.text((x, y), text, fill=fill, font=font)


def create_legend_image(palette, font_path=None, font_size=14, swatch_size=40, padding=10):
    """
    Creates a palette legend PIL Image object.

    Each swatch carries its index; when given a Palette, the weight of each color is
    printed as a percentage below its swatch.

    Args:
        palette (Palette, list or np.ndarray): A Palette, or 8-bit RGB colors as tuples/rows.
        font_path (str, optional): Path to a TTF font file.
        font_size (int): Font size for the index numbers and percentages.
        swatch_size (int): Width/height of each color swatch.
        padding (int): Space around elements and between swatches.

    Returns:
        PIL.Image.Image: The generated legend image, or None if the palette is empty.
    """
    weights = None
    if isinstance(palette, Palette):
        entries = palette.entries
        colors = [to_rgb8(entry.color) for entry in entries]
        weights = [entry.weight for entry in entries]
    else:
        colors = [tuple(int(c) for c in (color.tolist() if hasattr(color, 'tolist') else color))[:3]
                  for color in palette]

    num_colors = len(colors)
    if num_colors == 0:
        return None

    caption_height = (font_size + padding) if weights is not None else 0
    width = (swatch_size * num_colors) + (padding * (num_colors + 1))
    height = swatch_size + (2 * padding) + caption_height

    image = Image.new("RGB", (width, height), color=(255, 255, 255))
    draw = ImageDraw.Draw(image)
    loaded_font = _load_font(font_path, font_size)

    for idx, fill_color in enumerate(colors):
        x_start_swatch = padding + idx * (swatch_size + padding)
        y_start_swatch = padding

        draw.rectangle(
            [x_start_swatch, y_start_swatch, x_start_swatch + swatch_size, y_start_swatch + swatch_size],
            fill=fill_color,
            outline=(0, 0, 0)
        )
        # Index in white on dark swatches
        luma = 0.299 * fill_color[0] + 0.587 * fill_color[1] + 0.114 * fill_color[2]
        index_fill = (255, 255, 255) if luma < 96 else (0, 0, 0)
        _centered_text(draw, loaded_font, str(idx), x_start_swatch, y_start_swatch, swatch_size, swatch_size, fill=index_fill)

        if weights is not None:
            caption = f"{weights[idx] * 100:.1f}%"
            _centered_text(draw, loaded_font, caption,
                           x_start_swatch, y_start_swatch + swatch_size + padding / 2.0,
                           swatch_size, font_size)

    return image
