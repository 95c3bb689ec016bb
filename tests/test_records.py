# tests/test_records.py
import numpy as np
import pytest

from conftest import ConstantOracle, TableOracle
from dataset.records import (
    Coord,
    PairPolicy,
    PairRecord,
    TripletPolicy,
    TripletRecord,
    make_policy,
)
from geodata.sampler.nearest import NearestMatch
from routing.oracle import GreatCircleOracle
from utils.utils_geo import haversine_km


def _coord(cat, i):
    return Coord(*cat.coord(i))


def test_pair_record_goes_from_neighbor_to_anchor(two_points, speed_oracle):
    policy = PairPolicy(two_points, speed_oracle)
    (out,) = policy.build(0, [NearestMatch(1, 1e-4)])

    assert out.successes == 1 and out.errors == 0 and out.skipped == 0
    rec = out.record
    assert isinstance(rec, PairRecord)
    assert rec.source == _coord(two_points, 1)
    assert rec.destination == _coord(two_points, 0)
    expected = speed_oracle.seconds_for(float(haversine_km(0.0, 1.0, 0.0, 0.0)))
    assert rec.time == float(np.float32(expected))


def test_pair_failures_are_counted_not_emitted(two_points):
    oracle = GreatCircleOracle(speed_kmh=60.0, max_distance_km=50.0)
    outs = PairPolicy(two_points, oracle).build(0, [NearestMatch(1, 1e-4), NearestMatch(0, 1e-6)])

    assert [o.record is None for o in outs] == [True, False]
    assert outs[0].errors == 1 and outs[0].error_kinds == {"too_far": 1}
    assert outs[1].successes == 1
    assert outs[1].record.time == 0.0


def test_pair_record_dict_schema(two_points, speed_oracle):
    (out,) = PairPolicy(two_points, speed_oracle).build(1, [NearestMatch(0, 0.0)])
    d = out.record.to_dict()
    assert set(d) == {"source", "destination", "time"}
    assert d["source"] == {"lat": 0.0, "lon": 0.0}
    assert d["destination"] == {"lat": 0.0, "lon": 1.0}


def test_triplet_candidates_rank_dedup_and_truncate(equator_catalog, speed_oracle):
    policy = TripletPolicy(equator_catalog, speed_oracle, k=3)
    matches = [
        NearestMatch(4, 0.40),
        NearestMatch(2, 0.20),
        NearestMatch(2, 0.25),
        NearestMatch(1, 0.10),
        NearestMatch(5, 0.50),
        NearestMatch(3, 0.30),
    ]
    assert [m.index for m in policy.candidates(matches)] == [1, 2, 3]


def test_triplet_positive_is_fastest_negative_is_slowest(equator_catalog, speed_oracle):
    policy = TripletPolicy(equator_catalog, speed_oracle, k=4)
    matches = [NearestMatch(i, 0.01 * i) for i in (3, 1, 5, 2, 1, 4)]
    (out,) = policy.build(0, matches)

    rec = out.record
    assert isinstance(rec, TripletRecord)
    assert rec.anchor == _coord(equator_catalog, 0)
    # candidates are 1, 2, 3, 4 -> the closest routes fastest
    assert rec.positive == _coord(equator_catalog, 1)
    assert rec.negative == _coord(equator_catalog, 4)
    assert rec.positive_time <= rec.negative_time
    assert out.successes == 4 and out.errors == 0 and out.skipped == 2
    assert out.samples == len(matches)


def test_triplet_ties_still_pick_distinct_addresses(equator_catalog):
    policy = TripletPolicy(equator_catalog, ConstantOracle(42.0), k=4)
    (out,) = policy.build(0, [NearestMatch(2, 0.1), NearestMatch(3, 0.2)])
    rec = out.record
    assert rec.positive != rec.negative
    assert rec.positive_time == rec.negative_time == 42.0


def test_triplet_single_success_repeats_the_neighbor(equator_catalog):
    oracle = TableOracle({equator_catalog.coord(3): 120.0})
    (out,) = TripletPolicy(equator_catalog, oracle, k=4).build(0, [NearestMatch(1, 0.1), NearestMatch(3, 0.2)])
    rec = out.record
    assert rec.positive == rec.negative == _coord(equator_catalog, 3)
    assert rec.positive_time == rec.negative_time == 120.0
    assert out.successes == 1 and out.errors == 1
    assert out.error_kinds == {"no_route": 1}


def test_triplet_without_success_emits_nothing(equator_catalog):
    (out,) = TripletPolicy(equator_catalog, TableOracle({}), k=2).build(
        0, [NearestMatch(1, 0.1), NearestMatch(2, 0.2), NearestMatch(3, 0.3)]
    )
    assert out.record is None
    assert out.errors == 2 and out.skipped == 1 and out.successes == 0


def test_triplet_dict_schema(equator_catalog, speed_oracle):
    (out,) = TripletPolicy(equator_catalog, speed_oracle).build(0, [NearestMatch(1, 0.1), NearestMatch(2, 0.2)])
    assert set(out.record.to_dict()) == {"anchor", "positive", "negative", "positive_time", "negative_time"}


def test_make_policy(two_points, speed_oracle):
    assert isinstance(make_policy("pair", two_points, speed_oracle), PairPolicy)
    trip = make_policy("triplet", two_points, speed_oracle, k=2)
    assert isinstance(trip, TripletPolicy) and trip.k == 2
    with pytest.raises(ValueError):
        make_policy("quad", two_points, speed_oracle)
    with pytest.raises(ValueError):
        TripletPolicy(two_points, speed_oracle, k=0)
