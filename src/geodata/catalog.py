# src/geodata/catalog.py

import time

import numpy as np
import pandas as pd
from scipy.spatial import KDTree

from utils.utils_geo import latlon_to_unitvec

LAT_COL = "lat"
LON_COL = "lon"


class AddressCatalog:
    """
    Immutable in-memory set of known addresses plus a KD-tree over their
    unit-sphere embedding.

    Responsibilities
    ----------------
    - Hold the address coordinates as float32 arrays (`lat`, `lon`); the
      position in these arrays is the address index used everywhere else.
    - Embed every address on the unit sphere (float64, shape (N, 3)).
    - Build a KDTree on the embedding for nearest-address queries.

    The catalog is never mutated after construction, so it can be shared by
    every worker thread without locking.

    Parameters
    ----------
    lat, lon : array-like
        Address coordinates in degrees. Must have the same length.
    """

    def __init__(self, lat, lon):
        lat = np.ascontiguousarray(lat, dtype=np.float32)
        lon = np.ascontiguousarray(lon, dtype=np.float32)
        if lat.shape != lon.shape or lat.ndim != 1:
            raise ValueError(f"lat/lon must be 1D arrays of equal length, got {lat.shape} and {lon.shape}")
        if lat.size == 0:
            raise ValueError("Address catalog is empty")

        self.lat = lat
        self.lon = lon
        self.lat.setflags(write=False)
        self.lon.setflags(write=False)

        self.xyz = latlon_to_unitvec(lat, lon)
        self.xyz.setflags(write=False)
        self.tree = KDTree(self.xyz, balanced_tree=True)

    @classmethod
    def from_csv(
        cls,
        path: str,
        seed: int | None = None,
        shuffle: bool = True,
        sep: str = ";",
    ) -> "AddressCatalog":
        """
        Loads addresses from a delimited file and builds the index.

        Parameters
        ----------
        path : str
            Semicolon-separated file with a header row containing `lat` and `lon`.
        seed : int or None
            Seed for the shuffle. None draws fresh entropy.
        shuffle : bool
            If True, randomly permute the rows before indexing so the tree is
            not correlated with file order.
        sep : str
            Field delimiter.

        Returns
        -------
        AddressCatalog

        Raises
        ------
        OSError
            The file cannot be opened.
        ValueError
            The `lat` or `lon` column is missing, or no row parses to
            finite coordinates.
        """
        t0 = time.perf_counter()
        print(f"Loading addresses from {path}")
        df = pd.read_csv(path, sep=sep, dtype=str, keep_default_na=False, on_bad_lines="skip")

        missing = [c for c in (LAT_COL, LON_COL) if c not in df.columns]
        if missing:
            raise ValueError(f"Column(s) {missing} not found in {path}")

        lat = pd.to_numeric(df[LAT_COL].str.strip(), errors="coerce")
        lon = pd.to_numeric(df[LON_COL].str.strip(), errors="coerce")
        lat = lat.to_numpy(np.float32)
        lon = lon.to_numpy(np.float32)
        # drops NaN, "inf" and values that overflow float32
        ok = np.isfinite(lat) & np.isfinite(lon)
        skipped = int((~ok).sum())

        lat, lon = lat[ok], lon[ok]
        if shuffle:
            perm = np.random.default_rng(seed).permutation(len(lat))
            lat, lon = lat[perm], lon[perm]

        print("Building the k-dimensional tree...")
        catalog = cls(lat, lon)
        print(
            f"Catalog ready: {len(catalog)} addresses ({skipped} unparsable rows skipped) "
            f"in {time.perf_counter() - t0:.3f}s"
        )
        return catalog

    def __len__(self) -> int:
        return int(self.lat.size)

    def coord(self, idx: int) -> tuple[float, float]:
        """(lat, lon) of address `idx` in degrees."""
        return float(self.lat[idx]), float(self.lon[idx])
