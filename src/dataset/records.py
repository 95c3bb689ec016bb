# src/dataset/records.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Sequence

import numpy as np

from geodata.catalog import AddressCatalog
from geodata.sampler.nearest import NearestMatch
from routing.oracle import RouteOracle, RouteUnreachable
from utils.utils_geo import TRIPLET_CANDIDATES

RecordKind = Literal["pair", "triplet"]

# ===================== RECORDS =====================


@dataclass(frozen=True)
class Coord:
    lat: float
    lon: float

    @classmethod
    def of(cls, catalog: AddressCatalog, idx: int) -> "Coord":
        return cls(*catalog.coord(idx))

    def as_tuple(self) -> tuple[float, float]:
        return (self.lat, self.lon)

    def to_dict(self) -> dict:
        return {"lat": self.lat, "lon": self.lon}


@dataclass(frozen=True)
class PairRecord:
    """Travel time from a resolved neighbor (source) to its anchor (destination)."""
    source: Coord
    destination: Coord
    time: float

    def to_dict(self) -> dict:
        return {
            "source": self.source.to_dict(),
            "destination": self.destination.to_dict(),
            "time": self.time,
        }


@dataclass(frozen=True)
class TripletRecord:
    """
    Metric-learning example around one anchor.

    `positive` is the candidate with the shortest travel time to the anchor,
    `negative` the one with the longest, so positive_time <= negative_time.
    """
    anchor: Coord
    positive: Coord
    negative: Coord
    positive_time: float
    negative_time: float

    def to_dict(self) -> dict:
        return {
            "anchor": self.anchor.to_dict(),
            "positive": self.positive.to_dict(),
            "negative": self.negative.to_dict(),
            "positive_time": self.positive_time,
            "negative_time": self.negative_time,
        }


@dataclass
class Outcome:
    """
    Queue message from a worker to the sink.

    Carries at most one record plus the per-sample tally of the work that
    produced it: every dispatched sample lands in exactly one counter.
    """
    record: PairRecord | TripletRecord | None = None
    successes: int = 0
    errors: int = 0
    skipped: int = 0
    error_kinds: dict[str, int] = field(default_factory=dict)

    @property
    def samples(self) -> int:
        return self.successes + self.errors + self.skipped


def _f32(x: float) -> float:
    return float(np.float32(x))

# ===================== POLICIES =====================


class PairPolicy:
    """One PairRecord per routable sample; failures are only counted."""

    kind: RecordKind = "pair"

    def __init__(self, catalog: AddressCatalog, oracle: RouteOracle):
        self.catalog = catalog
        self.oracle = oracle

    def build(self, anchor: int, matches: Sequence[NearestMatch]) -> list[Outcome]:
        destination = Coord.of(self.catalog, anchor)
        out = []
        for m in matches:
            source = Coord.of(self.catalog, m.index)
            try:
                seconds = self.oracle.duration(source.as_tuple(), destination.as_tuple())
            except RouteUnreachable as e:
                out.append(Outcome(errors=1, error_kinds={e.kind: 1}))
                continue
            out.append(Outcome(PairRecord(source, destination, _f32(seconds)), successes=1))
        return out


class TripletPolicy:
    """
    One TripletRecord per anchor from its closest distinct neighbors.

    Matches are ranked by embedding distance, deduplicated on address index
    (first occurrence wins) and truncated to `k`; only those candidates are
    routed. Samples dropped before routing are counted as skipped.

    Parameters
    ----------
    catalog : AddressCatalog
    oracle : RouteOracle
    k : int
        Maximum number of distinct candidates routed per anchor.
    """

    kind: RecordKind = "triplet"

    def __init__(self, catalog: AddressCatalog, oracle: RouteOracle, k: int = TRIPLET_CANDIDATES):
        if k < 1:
            raise ValueError(f"k must be >= 1, got {k}")
        self.catalog = catalog
        self.oracle = oracle
        self.k = int(k)

    def candidates(self, matches: Sequence[NearestMatch]) -> list[NearestMatch]:
        ranked = sorted(matches, key=lambda m: m.squared_distance)  # stable
        seen, picked = set(), []
        for m in ranked:
            if m.index in seen:
                continue
            seen.add(m.index)
            picked.append(m)
            if len(picked) == self.k:
                break
        return picked

    def build(self, anchor: int, matches: Sequence[NearestMatch]) -> list[Outcome]:
        anchor_c = Coord.of(self.catalog, anchor)
        picked = self.candidates(matches)
        outcome = Outcome(skipped=len(matches) - len(picked))

        timed = []  # (seconds, rank, coord)
        for rank, m in enumerate(picked):
            coord = Coord.of(self.catalog, m.index)
            try:
                seconds = self.oracle.duration(coord.as_tuple(), anchor_c.as_tuple())
            except RouteUnreachable as e:
                outcome.errors += 1
                outcome.error_kinds[e.kind] = outcome.error_kinds.get(e.kind, 0) + 1
                continue
            outcome.successes += 1
            timed.append((_f32(seconds), rank, coord))

        if timed:
            timed.sort(key=lambda t: (t[0], t[1]))
            pos = timed[0]
            # a single success is both positive and negative
            neg = timed[-1] if len(timed) > 1 else pos
            outcome.record = TripletRecord(
                anchor=anchor_c,
                positive=pos[2],
                negative=neg[2],
                positive_time=pos[0],
                negative_time=neg[0],
            )
        return [outcome]


def make_policy(kind: RecordKind, catalog: AddressCatalog, oracle: RouteOracle, k: int = TRIPLET_CANDIDATES):
    if kind == "pair":
        return PairPolicy(catalog, oracle)
    if kind == "triplet":
        return TripletPolicy(catalog, oracle, k=k)
    raise ValueError(f"Unknown record kind {kind!r}, expected 'pair' or 'triplet'")
