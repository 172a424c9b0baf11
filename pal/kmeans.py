import numpy as np
from dataclasses import dataclass
from typing import Dict, Union
from loguru import logger

from pal.colors import Sample, as_observations
from pal.errors import InsufficientObservationsError, InvalidParameterError

# Rows of observations compared against all centroids at once during assignment.
ASSIGN_CHUNK_SIZE = 65536


@dataclass(frozen=True)
class Clustering:
    """
    Final state of one clustering run.

    Attributes:
        centroids (np.ndarray): (k, 4) centroids that produced the final partition, by slot.
        labels (np.ndarray): (N,) slot index assigned to each observation.
        iterations (int): Number of assign/update rounds that ran.
        converged (bool): False when the run stopped at max_iterations.
    """
    centroids: np.ndarray
    labels: np.ndarray
    iterations: int
    converged: bool

    @property
    def counts(self) -> np.ndarray:
        return np.bincount(self.labels, minlength=len(self.centroids))

    def weights(self) -> Dict[Sample, float]:
        return cluster_weights(self.centroids, self.labels, len(self.labels))


def resolve_rng(seed: Union[None, int, np.random.Generator] = None) -> np.random.Generator:
    """
    Returns a random Generator for `seed`. Passing None yields a freshly seeded one,
    so only call this where a caller has not supplied its own random source.
    """
    if isinstance(seed, np.random.Generator):
        return seed
    return np.random.default_rng(seed)


def distances(needle, haystack) -> np.ndarray:
    """Squared RGB distances from one sample to every row of `haystack` (alpha ignored)."""
    needle_rgb = np.asarray(needle, dtype=np.int64)[:3]
    haystack_rgb = as_observations(haystack)[:, :3]
    diff = haystack_rgb - needle_rgb
    return np.einsum("ij,ij->i", diff, diff)


def distance(a, b) -> int:
    """
    Square of the Euclidean distance between two samples over R, G and B.

    The alpha channel does not contribute. Arithmetic is done in 64 bits so that
    16-bit channel differences cannot overflow.
    """
    return int(distances(a, [b])[0])


def nearest_index(needle, haystack) -> int:
    """Index of the haystack row closest to needle. The first of several equally close rows wins."""
    haystack = as_observations(haystack)
    if len(haystack) == 0:
        raise InvalidParameterError("nearest() needs a non-empty haystack")
    # argmin returns the first occurrence of the minimum
    return int(np.argmin(distances(needle, haystack)))


def nearest(needle, haystack) -> Sample:
    """Returns the haystack sample to which the needle is closest."""
    haystack = as_observations(haystack)
    index = nearest_index(needle, haystack)
    return tuple(int(c) for c in haystack[index])


def find_centroid(cluster) -> Sample:
    """
    Finds the member of `cluster` closest to the cluster's mean.

    The mean of R, G, B and A is computed with truncating integer division and is
    then snapped to the nearest real member, so a centroid is always an observed
    color and never an interpolated one.

    Args:
        cluster: (M, 4) samples assigned to one centroid. Must not be empty.

    Returns:
        tuple: The member sample nearest to the mean point.
    """
    members = as_observations(cluster)
    if len(members) == 0:
        raise InvalidParameterError("cannot find the centroid of an empty cluster")
    center = members.sum(axis=0) // len(members)
    return nearest(center, members)


def forgy_init(k: int, observations, rng) -> np.ndarray:
    """
    Chooses k initial centroids by drawing observation indices uniformly with replacement.

    Duplicate draws are kept as they are.

    Args:
        k (int): Number of centroids.
        observations: (N, 4) observation set.
        rng: Random source exposing `integers(low, high, size)`, e.g. np.random.Generator.

    Returns:
        np.ndarray: (k, 4) int64 array of initial centroids.
    """
    observations = np.asarray(observations, dtype=np.int64)
    indices = np.asarray(rng.integers(0, len(observations), size=k))
    return observations[indices].copy()


def assign(observations: np.ndarray, centroids: np.ndarray) -> np.ndarray:
    """Slot of the nearest centroid for every observation; lower slots win ties."""
    labels = np.empty(len(observations), dtype=np.intp)
    centroid_rgb = centroids[:, :3]
    for start in range(0, len(observations), ASSIGN_CHUNK_SIZE):
        chunk = observations[start:start + ASSIGN_CHUNK_SIZE, :3]
        diff = chunk[:, None, :] - centroid_rgb[None, :, :]
        dists = np.einsum("ijk,ijk->ij", diff, diff)
        labels[start:start + len(chunk)] = np.argmin(dists, axis=1)
    return labels


def cluster_weights(centroids, labels, n: int) -> Dict[Sample, float]:
    """
    Converts a final partition into centroid -> fraction of all observations.

    Empty slots are left out. Slots whose centroids have the same value share a
    key and their weights are added together.
    """
    if n <= 0:
        raise InvalidParameterError(f"observation count must be positive, got {n}")
    centroids = np.asarray(centroids)
    counts = np.bincount(np.asarray(labels), minlength=len(centroids))
    weights: Dict[Sample, float] = {}
    for slot, count in enumerate(counts):
        if count == 0:
            continue
        key = tuple(int(c) for c in centroids[slot])
        weights[key] = weights.get(key, 0.0) + float(count) / float(n)
    return weights


def _validate(k: int, max_iterations: int, observations: np.ndarray) -> None:
    if k <= 0:
        raise InvalidParameterError(f"k must be positive, got {k}")
    if max_iterations <= 0:
        raise InvalidParameterError(f"max_iterations must be positive, got {max_iterations}")
    if len(observations) == 0:
        raise InvalidParameterError("no observations to cluster")
    if len(observations) < k:
        raise InsufficientObservationsError(len(observations), k)


def fit(
    k: int,
    max_iterations: int,
    observations,
    rng=None,
    init=None,
) -> Clustering:
    """
    Runs k-means with medoid centroids over the observation set.

    Each round assigns every observation to its nearest centroid slot, then moves
    each non-empty slot to the member nearest its cluster mean. The run stops once
    no slot moves, or after max_iterations rounds; both count as success. Slots left
    empty keep their centroid and may pick up members again later.

    Args:
        k (int): Number of clusters, at least 1.
        max_iterations (int): Upper bound on rounds, at least 1.
        observations: (N, 4) samples in the 16-bit channel range, or (N, 3) opaque ones.
        rng: Random source for Forgy initialization. Required unless `init` is given.
        init: Optional (k, 4) starting centroids used instead of random initialization.

    Returns:
        Clustering: Final centroids, labels, iteration count and convergence flag.

    Raises:
        InvalidParameterError: On non-positive k or max_iterations, empty or malformed
            observations, a malformed `init`, or when neither rng nor init is given.
        InsufficientObservationsError: When there are fewer observations than k.
    """
    obs = as_observations(observations)
    _validate(k, max_iterations, obs)

    if init is not None:
        centroids = as_observations(init)
        if centroids.shape != (k, 4):
            raise InvalidParameterError(f"init must hold exactly {k} centroids, got {len(centroids)}")
        centroids = centroids.copy()
    elif rng is None:
        raise InvalidParameterError("a random source (rng) or explicit init centroids are required")
    else:
        centroids = forgy_init(k, obs, rng)

    labels = np.zeros(len(obs), dtype=np.intp)
    converged = False
    iterations = 0
    while iterations < max_iterations:
        iterations += 1
        labels = assign(obs, centroids)

        new_centroids = centroids.copy()
        moved = 0
        for slot in range(k):
            members = obs[labels == slot]
            if len(members) == 0:
                continue
            new_centroids[slot] = find_centroid(members)
            if not np.array_equal(new_centroids[slot], centroids[slot]):
                moved += 1
        logger.debug(f"k-means iteration {iterations}: {moved}/{k} centroids moved")

        if moved == 0:
            converged = True
            break
        # The partition stays keyed by the centroids that produced it.
        if iterations < max_iterations:
            centroids = new_centroids

    if converged:
        logger.info(f"k-means converged after {iterations} iteration(s) (k={k}, n={len(obs)})")
    else:
        logger.info(f"k-means stopped at max_iterations={max_iterations} without converging (k={k}, n={len(obs)})")
    return Clustering(centroids=centroids, labels=labels, iterations=iterations, converged=converged)


def cluster(k: int, max_iterations: int, observations, rng=None, init=None) -> Dict[Sample, float]:
    """
    Finds k clusters in the observations and maps each cluster centroid to its weight,
    the cluster's size relative to the number of observations, in the range [0, 1].
    """
    return fit(k, max_iterations, observations, rng=rng, init=init).weights()
