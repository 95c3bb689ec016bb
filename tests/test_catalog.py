# tests/test_catalog.py
import numpy as np
import pytest

from conftest import write_addresses
from geodata.catalog import AddressCatalog
from utils.utils_geo import latlon_to_unitvec


def test_loads_and_skips_unparsable_rows(tmp_path):
    path = write_addresses(tmp_path / "addr.csv", [
        "1;48.85;2.35",
        "2;abc;2.0",
        "3;45.0;",
        "4;43.6;1.44",
        "5;-33.9;151.2",
    ])
    cat = AddressCatalog.from_csv(path, seed=0)
    assert len(cat) == 3
    got = sorted(cat.coord(i) for i in range(len(cat)))
    want = sorted((float(np.float32(a)), float(np.float32(b))) for a, b in [(48.85, 2.35), (43.6, 1.44), (-33.9, 151.2)])
    assert got == want
    assert cat.lat.dtype == np.float32 and cat.lon.dtype == np.float32


def test_non_finite_rows_are_skipped(tmp_path, capsys):
    path = write_addresses(tmp_path / "addr.csv", [
        "1;48.85;2.35",
        "2;inf;2.0",
        "3;45.0;-inf",
        "4;1e999;3.0",
        "5;43.6;1.44",
        "6;nan;1.0",
    ])
    cat = AddressCatalog.from_csv(path, seed=0)
    assert len(cat) == 2
    assert np.isfinite(cat.xyz).all()
    assert "4 unparsable rows skipped" in capsys.readouterr().out


def test_only_non_finite_rows_is_fatal(tmp_path):
    path = write_addresses(tmp_path / "addr.csv", ["1;inf;2.0", "2;45.0;-inf"])
    with pytest.raises(ValueError, match="empty"):
        AddressCatalog.from_csv(path)


def test_column_order_does_not_matter(tmp_path):
    path = write_addresses(tmp_path / "addr.csv", ["2.35;x;48.85"], header="lon;name;lat")
    cat = AddressCatalog.from_csv(path, shuffle=False)
    assert cat.coord(0) == pytest.approx((48.85, 2.35), abs=1e-5)


def test_missing_column_is_fatal(tmp_path):
    path = write_addresses(tmp_path / "addr.csv", ["1;48.85;2.35"], header="id;Lat;lon")
    with pytest.raises(ValueError, match="lat"):
        AddressCatalog.from_csv(path)


def test_unreadable_file_is_fatal(tmp_path):
    with pytest.raises(OSError):
        AddressCatalog.from_csv(str(tmp_path / "nope.csv"))


def test_no_valid_rows_is_fatal(tmp_path):
    path = write_addresses(tmp_path / "addr.csv", ["1;x;y"])
    with pytest.raises(ValueError):
        AddressCatalog.from_csv(path)


def test_shuffle_is_seeded(tmp_path):
    rows = [f"{i};{i * 0.5};{i * 0.25}" for i in range(50)]
    path = write_addresses(tmp_path / "addr.csv", rows)
    a = AddressCatalog.from_csv(path, seed=3)
    b = AddressCatalog.from_csv(path, seed=3)
    plain = AddressCatalog.from_csv(path, shuffle=False)
    np.testing.assert_array_equal(a.lat, b.lat)
    assert not np.array_equal(a.lat, plain.lat)
    assert sorted(a.lat.tolist()) == sorted(plain.lat.tolist())


def test_embedding_is_on_unit_sphere():
    cat = AddressCatalog([0.0, 90.0, -45.0], [0.0, 0.0, 90.0])
    np.testing.assert_allclose(np.linalg.norm(cat.xyz, axis=1), 1.0, atol=1e-12)
    np.testing.assert_allclose(cat.xyz[0], [1.0, 0.0, 0.0], atol=1e-12)
    np.testing.assert_allclose(cat.xyz[1], [0.0, 0.0, 1.0], atol=1e-12)
    np.testing.assert_allclose(cat.xyz, latlon_to_unitvec(cat.lat, cat.lon))


def test_catalog_is_read_only():
    cat = AddressCatalog([1.0], [2.0])
    with pytest.raises(ValueError):
        cat.lat[0] = 5.0


def test_mismatched_arrays():
    with pytest.raises(ValueError):
        AddressCatalog([1.0, 2.0], [1.0])
