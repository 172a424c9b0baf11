import typer
from pal import palette as pal_palette, legend, file_utils
from pal.colors import colors_to_image, from_hex, to_hex
from pal.errors import PaletteError
import json
import sys
from enum import Enum
from pathlib import Path
from typing import Optional, List, Dict

from PIL import UnidentifiedImageError
from loguru import logger
import rich.traceback
from rich.console import Console
from rich.table import Table


class PaletteFile(Enum):
    PALETTE_JSON = "palette_json"
    PALETTE_LEGEND = "palette_legend"
    PALETTE_STRIP = "palette_strip"
    PALETTE_COLUMN = "palette_column"
    REFERENCE_MATCH = "reference_match"

PALETTE_FILE_BASENAMES: Dict[PaletteFile, str] = {
    PaletteFile.PALETTE_JSON: "palette.json",
    PaletteFile.PALETTE_LEGEND: "palette-legend.png",
    PaletteFile.PALETTE_STRIP: "palette-strip.svg",
    PaletteFile.PALETTE_COLUMN: "palette-colors.png",
    PaletteFile.REFERENCE_MATCH: "reference-match.json",
}

PRESETS = {
    "draft": {"num_colors": 5, "max_iterations": 10, "resize": 64},
    "standard": {"num_colors": 8, "max_iterations": 50, "resize": 150},
    "fine": {"num_colors": 16, "max_iterations": 200, "resize": 400},
}
DEFAULT_NUM_COLORS = 8
DEFAULT_MAX_ITERATIONS = 50
DEFAULT_RESIZE = 150
DEFAULT_THRESHOLD = 0x0A0A # 10 steps on the 8-bit scale


def validate_output_dir(
    output_dir: Path, overwrite: bool = False, expect: Optional[List[PaletteFile]] = None,
) -> Dict[PaletteFile, Path]:
    if not overwrite and expect:
        clobbered_files_found = [str(output_dir / PALETTE_FILE_BASENAMES[key]) for key in expect
                                 if (output_dir / PALETTE_FILE_BASENAMES[key]).exists()]
        if clobbered_files_found:
            typer.secho("Error: Files already exist:", fg=typer.colors.RED)
            for path_str in clobbered_files_found: typer.secho(f"  {path_str}", fg=typer.colors.RED)
            typer.secho("Use --yes (-y) to overwrite.", fg=typer.colors.YELLOW); raise typer.Exit(code=1)
    return {key: output_dir / name for key, name in PALETTE_FILE_BASENAMES.items()}


def load_reference_palette(path: Path) -> Dict[str, list]:
    """Reads a JSON object of name -> list of hex colors into name -> 16-bit samples."""
    with open(path, encoding="utf-8") as f:
        raw = json.load(f)
    if not isinstance(raw, dict):
        raise PaletteError(f"Reference palette {path} must be a JSON object of name -> [hex colors].")
    reference = {}
    for name, colors in raw.items():
        if isinstance(colors, str):
            colors = [colors]
        reference[str(name)] = [from_hex(c) for c in colors]
    return reference


def configure_logging(verbose: bool):
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "WARNING")


def print_palette_table(palette: pal_palette.Palette):
    table = Table(title=f"Palette ({palette.count} colors)")
    table.add_column("#", justify="right")
    table.add_column("Swatch")
    table.add_column("Hex")
    table.add_column("Weight", justify="right")
    for idx, entry in enumerate(palette.entries):
        hex_color = to_hex(entry.color)
        table.add_row(str(idx), f"[on {hex_color}]      [/]", hex_color, f"{entry.weight * 100:.2f}%")
    Console().print(table)


def palette_cli(
    input_path: Path = typer.Argument(
        ...,
        help="Input image file (e.g., image.jpg).",
        metavar="INPUT_FILE",
        exists=True, file_okay=True, dir_okay=False, readable=True, resolve_path=True,
    ),
    output_dir: Path = typer.Argument(
        ...,
        help="Directory for output files. Will be created if it doesn't exist.",
        metavar="OUTPUT_DIRECTORY",
        file_okay=False, dir_okay=True, writable=True, resolve_path=True,
    ),
    preset: Optional[str] = typer.Option(
        None, help="Preset effort level: draft, standard, fine."
    ),
    num_colors: Optional[int] = typer.Option(
        None, "--num-colors", "-k", help=f"Number of palette colors (k). Default: {DEFAULT_NUM_COLORS}."
    ),
    max_iterations: Optional[int] = typer.Option(
        None, "--max-iterations", help=f"Upper bound on k-means rounds. Default: {DEFAULT_MAX_ITERATIONS}."
    ),
    seed: Optional[int] = typer.Option(
        None, "--seed", help="Random seed for the initial centroids. Default: a fresh seed each run."
    ),
    resize: Optional[int] = typer.Option(
        None, "--resize", help=f"Thumbnail the image to at most this many pixels per side first (0 disables). Default: {DEFAULT_RESIZE}."
    ),
    reference: Optional[Path] = typer.Option(
        None, "--reference", help="JSON file of name -> [hex colors] to measure the image against.",
        exists=True, file_okay=True, dir_okay=False, readable=True, resolve_path=True,
    ),
    threshold: int = typer.Option(
        DEFAULT_THRESHOLD, "--threshold", min=0, help="Per-channel tolerance (16-bit scale) for --reference matching."
    ),
    swatch_size: int = typer.Option(40, "--swatch-size", min=10, help="Legend swatch size. Default: 40px."),
    skip_legend: bool = typer.Option(False, "--skip-legend", help="Skip generating the palette legend."),
    skip_svg: bool = typer.Option(False, "--skip-svg", help="Skip the SVG palette strip."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Overwrite existing files."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log clustering progress."),
):
    """
    Extracts the dominant color palette of an image with k-means clustering.
    """
    configure_logging(verbose)
    command_line_str = " ".join(sys.argv)

    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        typer.echo(f"Using output directory: {output_dir}")
    except OSError as e:
        typer.secho(f"Error creating output directory {output_dir}: {e}", fg=typer.colors.RED); raise typer.Exit(code=1)

    expected_outputs: List[PaletteFile] = [PaletteFile.PALETTE_JSON, PaletteFile.PALETTE_COLUMN]
    if not skip_legend: expected_outputs.append(PaletteFile.PALETTE_LEGEND)
    if not skip_svg: expected_outputs.append(PaletteFile.PALETTE_STRIP)
    if reference: expected_outputs.append(PaletteFile.REFERENCE_MATCH)
    output_paths = validate_output_dir(output_dir, overwrite=yes, expect=expected_outputs)

    effective_num_colors = num_colors
    effective_max_iterations = max_iterations
    effective_resize = resize
    if preset:
        if preset not in PRESETS:
            typer.secho(f"Error: Unknown preset '{preset}'. Choose from: {', '.join(PRESETS)}.", fg=typer.colors.RED)
            raise typer.Exit(code=1)
        typer.echo(f"Applying preset: '{preset}'")
        preset_values = PRESETS[preset]
        if effective_num_colors is None: effective_num_colors = preset_values["num_colors"]
        if effective_max_iterations is None: effective_max_iterations = preset_values["max_iterations"]
        if effective_resize is None: effective_resize = preset_values["resize"]
    if effective_num_colors is None: effective_num_colors = DEFAULT_NUM_COLORS
    if effective_max_iterations is None: effective_max_iterations = DEFAULT_MAX_ITERATIONS
    if effective_resize is None: effective_resize = DEFAULT_RESIZE
    if effective_resize == 0: effective_resize = None

    try:
        image = file_utils.read_image(input_path)
    except (FileNotFoundError, UnidentifiedImageError) as e:
        typer.secho(f"Error opening image {input_path}: {e}", fg=typer.colors.RED); raise typer.Exit(code=1)

    typer.echo(f"Extracting {effective_num_colors} colors (max {effective_max_iterations} iterations)...")
    try:
        palette = pal_palette.extract(
            effective_num_colors, effective_max_iterations, image,
            seed=seed, resize=effective_resize,
        )
    except PaletteError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED); raise typer.Exit(code=1)

    if palette.converged:
        typer.echo(f"Converged after {palette.iterations} iteration(s).")
    else:
        typer.secho(f"Stopped after {palette.iterations} iteration(s) without converging.", fg=typer.colors.YELLOW)
    if palette.count < effective_num_colors:
        typer.secho(f"Note: found {palette.count} distinct palette colors, fewer than the {effective_num_colors} requested.", fg=typer.colors.BLUE)
    print_palette_table(palette)

    run_metadata = {
        "SourceImage": str(input_path),
        "NumColors": str(effective_num_colors),
        "MaxIterations": str(effective_max_iterations),
        "Seed": "random" if seed is None else str(seed),
        "Iterations": str(palette.iterations),
        "Converged": str(palette.converged),
    }

    file_utils.save_palette_json(output_paths[PaletteFile.PALETTE_JSON], palette, additional_metadata=run_metadata)
    typer.echo(f"Palette JSON saved to: {output_paths[PaletteFile.PALETTE_JSON]}")

    file_utils.save_palette_png(
        colors_to_image(palette.colors),
        output_paths[PaletteFile.PALETTE_COLUMN],
        command_line_invocation=command_line_str,
        additional_metadata={"palgen-FileType": "Palette Colors", **run_metadata},
    )
    typer.echo(f"Palette colors image saved to: {output_paths[PaletteFile.PALETTE_COLUMN]}")

    if not skip_legend:
        legend_image = legend.create_legend_image(palette, swatch_size=swatch_size)
        if legend_image:
            file_utils.save_palette_png(
                legend_image,
                output_paths[PaletteFile.PALETTE_LEGEND],
                command_line_invocation=command_line_str,
                additional_metadata={"palgen-FileType": "Palette Legend", **run_metadata},
            )
            typer.echo(f"Palette legend saved to: {output_paths[PaletteFile.PALETTE_LEGEND]}")
        else:
            typer.secho("Warning: Palette legend could not be generated (empty palette).", fg=typer.colors.YELLOW)

    if not skip_svg:
        file_utils.save_palette_svg(
            output_paths[PaletteFile.PALETTE_STRIP],
            palette,
            command_line_invocation=command_line_str,
            additional_metadata=run_metadata,
        )
        typer.echo(f"SVG palette strip saved to: {output_paths[PaletteFile.PALETTE_STRIP]}")

    if reference:
        try:
            reference_palette = load_reference_palette(reference)
            match = pal_palette.extract_by_centroids(threshold, image, reference_palette)
        except (PaletteError, json.JSONDecodeError) as e:
            typer.secho(f"Error matching reference palette {reference}: {e}", fg=typer.colors.RED); raise typer.Exit(code=1)
        for name, weight in match.entries:
            typer.echo(f"  {name}: {weight * 100:.2f}%")
        typer.echo(f"  (unmatched): {match.unmatched * 100:.2f}%")
        with open(output_paths[PaletteFile.REFERENCE_MATCH], "w", encoding="utf-8") as f:
            json.dump({"threshold": threshold, "weights": match.weights, "unmatched": match.unmatched}, f, indent=2)
        typer.echo(f"Reference match saved to: {output_paths[PaletteFile.REFERENCE_MATCH]}")

    typer.secho("\nProcessing complete!", fg=typer.colors.GREEN)
    typer.echo(f"Outputs in: {output_dir.resolve()}")


def main():
    rich.traceback.install(show_locals=False, suppress=[typer])
    typer.run(palette_cli)


if __name__ == "__main__":
    main()
