from PIL import Image
import numpy as np
from dataclasses import dataclass
from typing import Dict, List, Mapping, NamedTuple, Optional, Sequence, Union
from loguru import logger

from pal import kmeans
from pal.colors import Sample, as_observations, get_colors, to_hex
from pal.errors import InvalidParameterError


class PaletteEntry(NamedTuple):
    color: Sample
    weight: float


class Palette:
    """
    The dominant colors of an image and the fraction of pixels each one covers.

    Colors are ordered by weight, heaviest first; equal weights are ordered by value
    so the order does not depend on how the clustering happened to visit them.
    """

    def __init__(self, color_weights: Mapping[Sample, float], iterations: int = 0, converged: bool = True):
        self._weights: Dict[Sample, float] = {tuple(int(c) for c in k): float(v) for k, v in color_weights.items()}
        self.iterations = iterations
        self.converged = converged

    @property
    def entries(self) -> List[PaletteEntry]:
        ordered = sorted(self._weights.items(), key=lambda item: (-item[1], item[0]))
        return [PaletteEntry(color, weight) for color, weight in ordered]

    @property
    def colors(self) -> List[Sample]:
        return [entry.color for entry in self.entries]

    @property
    def count(self) -> int:
        return len(self._weights)

    def weight(self, color) -> float:
        """Weight of `color` in the palette, 0.0 if it is not one of the palette colors."""
        return self._weights.get(tuple(int(c) for c in color), 0.0)

    def to_dict(self) -> dict:
        return {
            "iterations": self.iterations,
            "converged": self.converged,
            "colors": [
                {"index": idx, "hex": to_hex(entry.color), "rgba16": list(entry.color), "weight": entry.weight}
                for idx, entry in enumerate(self.entries)
            ],
        }

    def __len__(self) -> int:
        return self.count

    def __repr__(self) -> str:
        shown = ", ".join(f"{to_hex(e.color)}:{e.weight:.3f}" for e in self.entries)
        return f"Palette([{shown}], iterations={self.iterations}, converged={self.converged})"


def cluster_colors(k: int, max_iterations: int, observations, rng=None, init=None) -> Palette:
    """
    Finds the k most dominant colors among `observations` and returns them as a Palette.

    See pal.kmeans.fit for the parameters and the errors raised.
    """
    result = kmeans.fit(k, max_iterations, observations, rng=rng, init=init)
    palette = Palette(result.weights(), iterations=result.iterations, converged=result.converged)
    if palette.count < k:
        logger.warning(f"Found {palette.count} palette colors, fewer than the {k} requested")
    return palette


def extract(
    k: int,
    max_iterations: int,
    image: Image.Image,
    seed: Union[None, int, np.random.Generator] = None,
    resize: Optional[int] = None,
) -> Palette:
    """
    Extracts a k color palette from an image, running up to max_iterations rounds of k-means.

    Args:
        k (int): Number of palette colors to look for.
        max_iterations (int): Upper bound on clustering rounds.
        image (PIL.Image.Image): Source image.
        seed (int or np.random.Generator, optional): Seed or generator for the initial
            centroids. None draws a fresh seed, so results vary between runs.
        resize (int, optional): If set, the image is thumbnailed so that neither side
            exceeds this many pixels before sampling.

    Returns:
        Palette: Up to k colors with their weights.
    """
    if resize is not None:
        if resize < 1:
            raise InvalidParameterError(f"resize must be positive, got {resize}")
        image = image.copy()
        image.thumbnail((resize, resize))  # Downsample for speed
    samples = get_colors(image)
    logger.debug(f"Sampled {len(samples)} pixels from {image.size[0]}x{image.size[1]} image")
    return cluster_colors(k, max_iterations, samples, rng=kmeans.resolve_rng(seed))


@dataclass
class PaletteCentroid:
    """
    Fractions of an image matched to each named reference color group.

    Attributes:
        weights (dict): Name -> fraction of observations matched to that group.
        unmatched (float): Fraction of observations matching no group.
    """
    weights: Dict[str, float]
    unmatched: float

    @property
    def names(self) -> List[str]:
        return list(self.weights.keys())

    @property
    def entries(self) -> List[tuple]:
        return sorted(self.weights.items(), key=lambda item: -item[1])

    def weight(self, name: str) -> float:
        return self.weights.get(name, 0.0)


def extract_by_centroids(
    th: int,
    source: Union[Image.Image, np.ndarray, Sequence],
    centroids: Mapping[str, Sequence[Sequence[int]]],
) -> PaletteCentroid:
    """
    Measures how much of an image falls into each of a set of named reference colors.

    Every observation is credited to the first name, in mapping order, that has a
    reference color within `th` of it on R, G and B with an identical alpha. Observations
    matching no reference color are counted as unmatched.

    Args:
        th (int): Per-channel tolerance in the 16-bit range.
        source: PIL image, or observations as accepted by pal.colors.as_observations.
        centroids (Mapping[str, Sequence]): Name -> reference colors (16-bit samples).

    Returns:
        PaletteCentroid: Weight per name (every name present, possibly 0.0) and the unmatched weight.
    """
    if th < 0:
        raise InvalidParameterError(f"threshold must not be negative, got {th}")
    obs = get_colors(source) if isinstance(source, Image.Image) else as_observations(source)
    if len(obs) == 0:
        raise InvalidParameterError("no observations to match")

    unassigned = np.ones(len(obs), dtype=bool)
    weights: Dict[str, float] = {}
    for name, refs in centroids.items():
        refs = as_observations(refs)
        matched = np.zeros(len(obs), dtype=bool)
        for ref in refs:
            close = np.all(np.abs(obs[:, :3] - ref[:3]) <= th, axis=1) & (obs[:, 3] == ref[3])
            matched |= close
        matched &= unassigned
        unassigned &= ~matched
        weights[name] = float(np.count_nonzero(matched)) / len(obs)
        logger.debug(f"Reference '{name}': {np.count_nonzero(matched)} of {len(obs)} observations")

    return PaletteCentroid(weights=weights, unmatched=float(np.count_nonzero(unassigned)) / len(obs))
