# src/utils/utils_geo.py
import numpy as np

from .utils import _safe_norm, _safe_div

# ------------------------- CONSTANTS --------------------------

R_EARTH_KM = 6371.0088 # mean Earth radius
TWO_PI = 2.0 * np.pi

# Ring radii (km) used to cast samples around every address.
DEFAULT_RINGS_KM = (
    1.0, 2.0, 3.0, 5.0,
    10.0, 20.0, 30.0, 40.0, 50.0, 60.0, 70.0, 80.0, 90.0, 100.0,
    150.0, 200.0, 250.0, 300.0,
)

# --------------------------- CONFIG ---------------------------

NEIGHBORS = 4               # samples per (address, ring)
TRIPLET_CANDIDATES = 4      # top-K distinct neighbors queried per triplet anchor
ANN_EPS = 0.1               # KDTree approximation factor (0 = exact)
BATCH_SIZE = 100_000        # rows per flush / parquet row group
LOG_EVERY = 100_000         # processed samples between progress lines
CHUNK_SIZE = 1024           # addresses per worker task

# -----------------------------
# Math helpers
# -----------------------------
def normalize_vec(v: np.ndarray, axis=1):
    """
    Normalizes vectors to unit length, robustly.

    Parameters
    ----------
    v : ndarray
        Input array of shape (..., 3).

    Returns
    -------
    v_u : ndarray
        Unit vectors of the same shape, with safe handling of very small norms.
    """
    return _safe_div(v, _safe_norm(v, axis=axis))

def latlon_to_unitvec(lat_deg, lon_deg, dtype=np.float64) -> np.ndarray:
    """
    Converts lat/lon in degrees to unit vectors on the sphere.

    Accepts scalars or arrays; returns shape (..., 3). The embedding is
    (cos(lat)cos(lon), cos(lat)sin(lon), sin(lat)), so Euclidean distance
    between two embedded points is the chord length of their great circle.

    Parameters
    ----------
    lat_deg, lon_deg : array-like or scalar
        Latitudes and longitudes in degrees.
    dtype : data-type, optional
        Output dtype for the vectors (default float64). Inputs are promoted
        to float64 first so float32 coordinates embed identically wherever
        they come from.

    Returns
    -------
    v : ndarray
        Array of unit vectors in R^3, shape (..., 3).
    """
    lat = np.radians(np.asarray(lat_deg, dtype=np.float64))
    lon = np.radians(np.asarray(lon_deg, dtype=np.float64))
    cl  = np.cos(lat)

    v = np.stack([cl * np.cos(lon),
                  cl * np.sin(lon),
                  np.sin(lat)], axis=-1)
    v = normalize_vec(v, axis=-1)

    return v.astype(dtype)

def wrap_lon(lon_deg):
    """Wraps longitudes into [-180, 180)."""
    return (np.asarray(lon_deg) + 180.0) % 360.0 - 180.0

def chord_to_km(chord):
    """
    Converts a chord length on the unit sphere to great-circle kilometers.

    For unit vectors, chord distance d and angular distance α relate via:
        d = 2 * sin(α / 2).
    """
    chord = np.clip(np.asarray(chord, dtype=np.float64), 0.0, 2.0)
    return R_EARTH_KM * 2.0 * np.arcsin(chord / 2.0)

# ---------------------------------------------------------------------
# Great-circle distance and destination
# ---------------------------------------------------------------------
def haversine_km(lat1, lon1, lat2, lon2):
    """
    Great-circle distance in kilometers between (lat1, lon1) and (lat2, lon2).

    Accepts scalars or broadcastable arrays, degrees in, kilometers out.
    """
    p1 = np.radians(np.asarray(lat1, dtype=np.float64))
    p2 = np.radians(np.asarray(lat2, dtype=np.float64))
    dp = p2 - p1
    dl = np.radians(np.asarray(lon2, dtype=np.float64) - np.asarray(lon1, dtype=np.float64))

    a = np.sin(dp / 2.0) ** 2 + np.cos(p1) * np.cos(p2) * np.sin(dl / 2.0) ** 2
    return R_EARTH_KM * 2.0 * np.arcsin(np.sqrt(np.clip(a, 0.0, 1.0)))

def destination_point(lat_deg, lon_deg, bearing_rad, distance_km):
    """
    Direct geodesic problem on the sphere.

    Moves from (lat_deg, lon_deg) along `bearing_rad` (radians clockwise from
    north) by `distance_km` on a sphere of radius R_EARTH_KM.

    Parameters
    ----------
    lat_deg, lon_deg : float
        Start point in degrees.
    bearing_rad : array-like
        Bearings in radians, shape (N,).
    distance_km : float
        Great-circle distance to travel.

    Returns
    -------
    lat, lon : ndarray
        Destination latitudes and longitudes in degrees, shape (N,).
        Longitudes are wrapped into [-180, 180); poles are not special-cased.
    """
    phi1 = np.radians(float(lat_deg))
    lam1 = np.radians(float(lon_deg))
    delta = float(distance_km) / R_EARTH_KM
    theta = np.asarray(bearing_rad, dtype=np.float64)

    sin_phi2 = np.sin(phi1) * np.cos(delta) + np.cos(phi1) * np.sin(delta) * np.cos(theta)
    phi2 = np.arcsin(np.clip(sin_phi2, -1.0, 1.0))
    lam2 = lam1 + np.arctan2(
        np.sin(theta) * np.sin(delta) * np.cos(phi1),
        np.cos(delta) - np.sin(phi1) * np.sin(phi2),
    )
    return np.degrees(phi2), wrap_lon(np.degrees(lam2))
