# src/geodata/sampler/nearest.py

from dataclasses import dataclass

import numpy as np

from geodata.catalog import AddressCatalog
from utils.utils_geo import ANN_EPS, chord_to_km, latlon_to_unitvec


@dataclass(frozen=True)
class NearestMatch:
    index: int                # catalog index of the resolved address
    squared_distance: float   # squared chord length in the unit-sphere embedding

    @property
    def distance_km(self) -> float:
        return float(chord_to_km(np.sqrt(self.squared_distance)))


class NearestResolver:
    """
    Maps sample points to their nearest catalog address.

    Queries the catalog KDTree with `eps`: the returned address is at most
    (1 + eps) times farther (in chord length) than the true nearest address.
    eps = 0 gives exact answers; larger values prune more of the tree and are
    faster, at the cost of occasionally missing the true nearest address.

    Parameters
    ----------
    catalog : AddressCatalog
        Shared, read-only catalog.
    eps : float
        Approximation factor forwarded to `KDTree.query`.
    exclude_self : bool
        If True, `resolve_many(..., anchor=i)` never returns address `i`;
        the next nearest address is used instead. By default the anchor may
        be returned as its own nearest neighbor.
    """

    def __init__(self, catalog: AddressCatalog, eps: float = ANN_EPS, exclude_self: bool = False):
        if eps < 0.0:
            raise ValueError(f"eps must be >= 0, got {eps}")
        if exclude_self and len(catalog) < 2:
            raise ValueError("exclude_self needs at least two addresses in the catalog")
        self.catalog = catalog
        self.eps = float(eps)
        self.exclude_self = bool(exclude_self)

    def resolve(self, lat: float, lon: float) -> NearestMatch:
        """Nearest address to a single point."""
        return self.resolve_many(np.array([lat]), np.array([lon]))[0]

    def resolve_many(self, lat, lon, anchor: int | None = None) -> list[NearestMatch]:
        """
        Nearest address for every point, in input order.

        Parameters
        ----------
        lat, lon : array-like
            Query points in degrees, shape (N,).
        anchor : int or None
            Catalog index that generated the samples; only used when
            `exclude_self` is set.
        """
        q = latlon_to_unitvec(lat, lon).reshape(-1, 3)
        skip_anchor = self.exclude_self and anchor is not None
        k = 2 if skip_anchor else 1

        d, idx = self.catalog.tree.query(q, k=k, eps=self.eps)
        d = np.asarray(d, dtype=np.float64).reshape(len(q), k)
        idx = np.asarray(idx, dtype=np.int64).reshape(len(q), k)

        col = np.zeros(len(q), dtype=np.int64)
        if skip_anchor:
            col[idx[:, 0] == anchor] = 1

        rows = np.arange(len(q))
        best_d = d[rows, col]
        best_i = idx[rows, col]
        return [NearestMatch(int(i), float(di * di)) for i, di in zip(best_i, best_d)]
