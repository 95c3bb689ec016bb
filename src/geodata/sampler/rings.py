# src/geodata/sampler/rings.py

import numpy as np

from utils.utils_geo import DEFAULT_RINGS_KM, TWO_PI, destination_point


def default_rings() -> list[float]:
    """
    Ring radii in kilometers, largest first.

    Far rings are the slowest to route, so they are scheduled first and the
    tail of the run is made of cheap short-range units.
    """
    return sorted(DEFAULT_RINGS_KM, reverse=True)


def validate_rings(rings) -> list[float]:
    """Returns `rings` as floats, refusing empty sets and non-positive or infinite radii."""
    rings = [float(r) for r in rings]
    if not rings:
        raise ValueError("At least one ring distance is required")
    bad = [r for r in rings if not (r > 0.0 and np.isfinite(r))]
    if bad:
        raise ValueError(f"Ring distances must be positive and finite, got {bad}")
    return rings


def ring_points(
    center_lat: float,
    center_lon: float,
    radius_km: float,
    count: int,
    phase: float = 0.0,
) -> tuple[np.ndarray, np.ndarray]:
    '''
    Points evenly spaced in bearing on a geodesic circle.

    Bearing i is `phase + i * 2π / count`; each point is the destination of the
    direct geodesic problem from the center with angular distance
    `radius_km / R_EARTH_KM`.

    Parameters
    ----------
    center_lat, center_lon : float
        Ring center in degrees.
    radius_km : float
        Great-circle radius of the ring.
    count : int
        Number of points, >= 1.
    phase : float
        Bearing of the first point, radians from north.

    Returns
    -------
    lat, lon : ndarray
        Degrees, float64, shape (count,).
    '''
    if count < 1:
        raise ValueError(f"count must be >= 1, got {count}")
    bearings = phase + np.arange(count, dtype=np.float64) * (TWO_PI / count)
    return destination_point(center_lat, center_lon, bearings, radius_km)


class RingSampler:
    """
    Generates the sample query points of one (address, ring) unit.

    Parameters
    ----------
    count : int
        Samples per ring (the neighbor count).
    random_phase : bool
        If True, every call draws a fresh phase uniformly in [0, 2π) from `rng`;
        otherwise all rings start at bearing 0 (north).
    rng : np.random.Generator or None
        Source for random phases. A Generator is not thread-safe: give every
        worker its own.
    """

    def __init__(self, count: int, random_phase: bool = True, rng: np.random.Generator | None = None):
        if count < 1:
            raise ValueError(f"count must be >= 1, got {count}")
        self.count = int(count)
        self.random_phase = bool(random_phase)
        self.rng = rng if rng is not None else np.random.default_rng()

    def next_phase(self) -> float:
        if self.random_phase:
            return float(self.rng.random() * TWO_PI)
        return 0.0

    def samples(self, center_lat: float, center_lon: float, radius_km: float):
        return ring_points(center_lat, center_lon, radius_km, self.count, self.next_phase())
