# tests/conftest.py
import pytest

from geodata.catalog import AddressCatalog
from routing.oracle import GreatCircleOracle, RouteOracle, RouteUnreachable


class ConstantOracle(RouteOracle):
    """Every route takes `seconds`."""

    def __init__(self, seconds: float = 10.0):
        self.seconds = seconds

    def duration(self, a, b) -> float:
        return self.seconds


class TableOracle(RouteOracle):
    """Durations looked up by source coordinate; unknown sources are unreachable."""

    def __init__(self, by_source: dict):
        self.by_source = by_source

    def duration(self, a, b) -> float:
        try:
            return self.by_source[(a[0], a[1])]
        except KeyError:
            raise RouteUnreachable("no_route") from None


class BrokenOracle(RouteOracle):
    """Raises something that is not a routing failure."""

    def duration(self, a, b) -> float:
        raise ZeroDivisionError("boom")


@pytest.fixture
def two_points():
    # (0, 0) and (0, 1): ~111 km apart on the equator
    return AddressCatalog([0.0, 0.0], [0.0, 1.0])


@pytest.fixture
def equator_catalog():
    # six addresses 0.1 degrees apart along the equator
    return AddressCatalog([0.0] * 6, [0.0, 0.1, 0.2, 0.3, 0.4, 0.5])


@pytest.fixture
def speed_oracle():
    return GreatCircleOracle(speed_kmh=60.0)


def write_addresses(path, rows, header="id;lat;lon"):
    path.write_text(header + "\n" + "\n".join(rows) + "\n", encoding="utf-8")
    return str(path)
