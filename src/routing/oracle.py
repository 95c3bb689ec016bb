# src/routing/oracle.py

from __future__ import annotations

import time

from utils.utils_geo import haversine_km

# Algorithm selectors understood by `build_oracle`.
CH = "CH"                   # contraction hierarchies: long preprocessing, fast queries
MLD = "MLD"                 # multi-level Dijkstra: light preprocessing, slower queries
GREAT_CIRCLE = "GREAT_CIRCLE"
ALGORITHMS = (CH, MLD, GREAT_CIRCLE)


class RouteUnreachable(Exception):
    """
    No route between two points.

    `kind` names the failure so it can be aggregated ("no_route",
    "too_far", "engine_error", ...).
    """

    def __init__(self, kind: str, message: str = ""):
        super().__init__(message or kind)
        self.kind = kind


class OracleInitError(RuntimeError):
    """The routing engine could not be initialized."""


class RouteOracle:
    """
    Travel-time collaborator.

    `duration(a, b)` takes two (lat, lon) tuples in degrees and returns the
    travel time from a to b in seconds, or raises `RouteUnreachable`.
    Implementations must be safe to call from several threads at once.
    """

    name = "oracle"

    def duration(self, a: tuple[float, float], b: tuple[float, float]) -> float:
        raise NotImplementedError


class GreatCircleOracle(RouteOracle):
    """
    Deterministic oracle: great-circle distance at constant speed.

    Useful for dry runs without a routing dataset, and as a stub in tests.

    Parameters
    ----------
    speed_kmh : float
        Constant travel speed.
    max_distance_km : float or None
        If set, pairs farther apart than this are reported unreachable.
    """

    name = "great-circle"

    def __init__(self, speed_kmh: float = 50.0, max_distance_km: float | None = None):
        if speed_kmh <= 0.0:
            raise OracleInitError(f"speed_kmh must be positive, got {speed_kmh}")
        self.speed_kmh = float(speed_kmh)
        self.max_distance_km = max_distance_km

    def seconds_for(self, distance_km: float) -> float:
        return float(distance_km) / self.speed_kmh * 3600.0

    def duration(self, a, b) -> float:
        d_km = float(haversine_km(a[0], a[1], b[0], b[1]))
        if self.max_distance_km is not None and d_km > self.max_distance_km:
            raise RouteUnreachable("too_far", f"{d_km:.3f} km > {self.max_distance_km} km")
        return self.seconds_for(d_km)


class OsrmOracle(RouteOracle):
    """
    Oracle backed by an in-process OSRM engine (python bindings for libosrm).

    Parameters
    ----------
    dataset_path : str
        Prebuilt `.osrm` dataset matching `algorithm`.
    algorithm : {"CH", "MLD"}
        CH needs a contracted dataset and answers fastest; MLD needs a
        partitioned/customized dataset.

    Raises
    ------
    OracleInitError
        The bindings are not installed or the engine refused the dataset.
    """

    name = "osrm"

    def __init__(self, dataset_path: str, algorithm: str = CH):
        if algorithm not in (CH, MLD):
            raise OracleInitError(f"Unsupported OSRM algorithm {algorithm!r}, expected CH or MLD")
        try:
            import osrm
        except ImportError as e:
            raise OracleInitError(
                "OSRM bindings are not installed (pip install 'travel-dataset[osrm]')"
            ) from e

        t0 = time.perf_counter()
        try:
            self._engine = osrm.OSRM(
                storage_config=dataset_path,
                algorithm=algorithm,
                use_shared_memory=False,
            )
        except Exception as e:
            raise OracleInitError(f"Failed to initialize OSRM engine from {dataset_path}: {e}") from e
        self._osrm = osrm
        self.dataset_path = dataset_path
        self.algorithm = algorithm
        print(f"{self.name} engine ({self.algorithm}) ready from {self.dataset_path} in {time.perf_counter() - t0:.3f}s")

    def duration(self, a, b) -> float:
        # OSRM takes (lon, lat)
        params = self._osrm.RouteParameters(
            coordinates=[(float(a[1]), float(a[0])), (float(b[1]), float(b[0]))],
        )
        try:
            res = self._engine.Route(params)
        except RuntimeError as e:
            raise RouteUnreachable("no_route", str(e)) from e
        except Exception as e:
            raise RouteUnreachable("engine_error", f"{type(e).__name__}: {e}") from e

        routes = res.get("routes") if res is not None else None
        if res is None or res.get("code", "Ok") != "Ok" or not routes:
            raise RouteUnreachable("no_route", f"OSRM returned {res.get('code') if res else None}")
        return float(routes[0]["duration"])


def build_oracle(cfg) -> RouteOracle:
    """
    Instantiates the oracle selected by `cfg.routing_algorithm`.

    CH and MLD read their dataset from `cfg.osrm_file_ch` / `cfg.osrm_file_mld`.
    """
    algo = cfg.routing_algorithm
    if algo == CH:
        return OsrmOracle(cfg.osrm_file_ch, CH)
    if algo == MLD:
        return OsrmOracle(cfg.osrm_file_mld, MLD)
    if algo == GREAT_CIRCLE:
        return GreatCircleOracle(cfg.great_circle_speed_kmh)
    raise OracleInitError(f"Unknown routing algorithm {algo!r}, expected one of {ALGORITHMS}")
