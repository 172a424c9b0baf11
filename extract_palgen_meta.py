#!/usr/bin/env python3
import sys
from pathlib import Path
from PIL import Image
import xml.etree.ElementTree as ET

from pal.file_utils import PALGEN_NS_URI, PNG_METADATA_PREFIX

SVG_NS = 'http://www.w3.org/2000/svg'


def read_png_metadata(filepath: Path) -> dict:
    """palgen tEXt entries of a PNG, with the prefix stripped from the keys."""
    with Image.open(filepath) as img:
        return {key[len(PNG_METADATA_PREFIX):]: value
                for key, value in img.info.items() if key.startswith(PNG_METADATA_PREFIX)}


def read_svg_metadata(filepath: Path) -> dict:
    """Elements of the palgen namespace inside an SVG's <metadata> block."""
    root = ET.parse(filepath).getroot()

    metadata_element = None
    for child in root.iter(f'{{{SVG_NS}}}metadata'):
        metadata_element = child
        break
    if metadata_element is None:
        return {}

    found = {}
    for custom_elem in metadata_element.iter():
        if custom_elem.tag.startswith(f'{{{PALGEN_NS_URI}}}') and len(custom_elem) == 0:
            local_name = custom_elem.tag.split('}', 1)[1]
            found[local_name] = custom_elem.text.strip() if custom_elem.text else ''
    return found


def print_metadata(filepath: Path, metadata: dict):
    print(f"--- palgen Metadata for {filepath.name} ---")
    if not metadata:
        print("  No palgen-specific metadata found.")
    for key, value in metadata.items():
        print(f"  {key}: {value}")
    print("-" * (26 + len(filepath.name)))


def main():
    if len(sys.argv) < 2:
        print("Usage: python extract_palgen_meta.py <filename.png_or_svg>")
        sys.exit(1)

    filepath = Path(sys.argv[1])
    if not filepath.is_file():
        print(f"Error: File not found: {filepath}")
        sys.exit(1)

    file_extension = filepath.suffix.lower()
    try:
        if file_extension == ".png":
            metadata = read_png_metadata(filepath)
        elif file_extension == ".svg":
            metadata = read_svg_metadata(filepath)
        else:
            print(f"Error: Unsupported file type '{file_extension}'. Please provide a .png or .svg file.")
            sys.exit(1)
    except ET.ParseError:
        print(f"Error: Could not parse SVG file (invalid XML): {filepath}")
        sys.exit(1)
    print_metadata(filepath, metadata)


if __name__ == "__main__":
    main()
