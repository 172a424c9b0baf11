import json
import re
from pathlib import Path
from typing import Dict, Optional
import xml.etree.ElementTree as ET
from xml.etree.ElementTree import Element, SubElement

from PIL import Image, PngImagePlugin
import svgwrite
from svgwrite.base import BaseElement # For Verbatim tag
from loguru import logger

from pal.colors import to_hex
from pal.palette import Palette

PALGEN_NS_URI = 'https://github.com/palgen/palgen/ns/palgen#'
PNG_METADATA_PREFIX = "palgen:"
SOFTWARE_TAG = "palgen k-means palette extractor"


class Verbatim(BaseElement):
    """svgwrite element that writes a pre-serialized XML block as-is."""

    def __init__(self, xml_string="", elementname="metadata", **kwargs_for_base_element):
        self.elementname = elementname
        super(Verbatim, self).__init__(**kwargs_for_base_element)
        self.xml_string = xml_string

    def write(self, fileobj, indent=0, newline='\n', options={}):
        if self.debug and self.elementname and not options.get('skip_validation', False):
            self.validator._get_element(self.elementname)
        fileobj.write(self.xml_string)

    def get_xml(self):
        # dwg.save(pretty=True) appends the result to an ET tree, so it must be an Element
        try:
            return ET.fromstring(self.xml_string)
        except ET.ParseError as e:
            logger.error(f"Verbatim.get_xml(): cannot parse '{self.xml_string}': {e}")
            raise


def clean_metadata_key(key: str) -> str:
    """Turns an arbitrary label into a safe PNG keyword / XML element name."""
    key_clean = re.sub(r'\s+', '_', key)
    key_clean = re.sub(r'[^a-zA-Z0-9_.-]', '', key_clean)
    if not re.match(r'^[a-zA-Z_]', key_clean): # Must start with letter or underscore
        key_clean = "palgen_" + key_clean
    # PNG tEXt keywords are limited to 79 bytes, leave room for the prefix
    return key_clean[:70]


def read_image(path) -> Image.Image:
    """
    Opens and fully loads an image.

    Raises:
        FileNotFoundError: If the path does not exist.
        PIL.UnidentifiedImageError: If the file is not a readable image.
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Input file not found at {path}")
    with Image.open(path) as img:
        img.load()
        return img.copy()


def save_palette_png(
    image_to_save: Image.Image,
    output_path: Path,
    command_line_invocation: Optional[str] = None,
    additional_metadata: Optional[Dict[str, str]] = None
):
    """
    Saves a PIL Image object as a PNG file, embedding palgen metadata as tEXt chunks.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    png_info = PngImagePlugin.PngInfo()
    if command_line_invocation:
        png_info.add_text(f"{PNG_METADATA_PREFIX}command_line", command_line_invocation)
    png_info.add_text("Software", SOFTWARE_TAG)

    if additional_metadata:
        for key, value in additional_metadata.items():
            png_info.add_text(f"{PNG_METADATA_PREFIX}{clean_metadata_key(key)}", str(value))

    try:
        image_to_save.save(output_path, "PNG", pnginfo=png_info)
    except OSError as e:
        logger.error(f"Error saving PNG to {output_path.resolve()}: {e}")
        raise


def _metadata_block(command_line_invocation, additional_metadata) -> str:
    ET.register_namespace('palgen', PALGEN_NS_URI)

    std_metadata_root_et = Element('metadata')
    std_metadata_root_et.set('id', 'palgenApplicationDataContainer')

    custom_metadata_et = SubElement(std_metadata_root_et, f'{{{PALGEN_NS_URI}}}palgenMetadata')
    custom_metadata_et.set('id', 'palgenApplicationMetadata')

    software_el = SubElement(custom_metadata_et, f'{{{PALGEN_NS_URI}}}Software')
    software_el.text = SOFTWARE_TAG

    if command_line_invocation:
        cli_el = SubElement(custom_metadata_et, f'{{{PALGEN_NS_URI}}}CommandLineInvocation')
        cli_el.text = command_line_invocation

    if additional_metadata:
        for key, value in additional_metadata.items():
            meta_item_el = SubElement(custom_metadata_et, f'{{{PALGEN_NS_URI}}}{clean_metadata_key(key)}')
            meta_item_el.text = str(value)

    return ET.tostring(std_metadata_root_et, encoding='unicode', method='xml')


def save_palette_svg(
    output_path: Path,
    palette: Palette,
    strip_size=(600, 80),
    outline_color_hex: str = "#333333",
    command_line_invocation: Optional[str] = None,
    additional_metadata: Optional[Dict[str, str]] = None
):
    """
    Writes the palette as an SVG strip: one rectangle per color, left to right by
    weight, each as wide as its share of the strip.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    width, height = strip_size

    dwg = svgwrite.Drawing(filename=str(output_path), size=(f"{width}px", f"{height}px"), profile='full')
    dwg.add(Verbatim(
        xml_string=_metadata_block(command_line_invocation, additional_metadata),
        elementname='metadata',
        profile=dwg.profile,
        debug=dwg.debug
    ))

    swatch_group = dwg.g(id="palette-swatches", style=f"stroke:{outline_color_hex}; stroke-width:1px;")
    x = 0.0
    for idx, entry in enumerate(palette.entries):
        swatch_width = entry.weight * width
        rect = dwg.rect(insert=(round(x, 3), 0), size=(round(swatch_width, 3), height), fill=to_hex(entry.color))
        rect.set_desc(title=f"{idx}: {to_hex(entry.color)} {entry.weight * 100:.2f}%")
        swatch_group.add(rect)
        x += swatch_width
    dwg.add(swatch_group)

    try:
        dwg.save(pretty=True)
    except OSError as e:
        logger.error(f"Error saving SVG to {output_path.resolve()}: {e}")
        raise


def save_palette_json(output_path: Path, palette: Palette, additional_metadata: Optional[Dict[str, str]] = None):
    """Writes the palette entries (hex, 16-bit channels, weight) and run info as JSON."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    document = palette.to_dict()
    if additional_metadata:
        document["metadata"] = {str(k): str(v) for k, v in additional_metadata.items()}
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(document, f, indent=2)
