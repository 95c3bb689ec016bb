# tests/test_build_dataset.py
import json

import pyarrow.parquet as pq
import pytest

import build_dataset
from config import GeneratorConfig
from conftest import ConstantOracle, write_addresses

ENV_KEYS = (
    "OUTPUT_FILE", "INPUT_ADDRESS_FILE", "OSRM_FILE_MLD", "OSRM_FILE_CH",
    "ROUTING_ALGORITHM", "RINGS_KM", "NEIGHBORS", "SEED", "SUMMARY_FILE", "RECORD_KIND", "BATCH_SIZE",
)


@pytest.fixture
def addresses(tmp_path):
    rows = [f"{i};{45.0 + 0.01 * i};{4.0 + 0.013 * (i % 7)}" for i in range(20)]
    rows.append("bad;north;east")
    return write_addresses(tmp_path / "addresses.csv", rows)


@pytest.fixture
def clean_env(tmp_path, monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    return monkeypatch


def _env(tmp_path, addresses, **extra):
    env = {
        "OUTPUT_FILE": str(tmp_path / "out" / "records.jsonl"),
        "INPUT_ADDRESS_FILE": addresses,
        "OSRM_FILE_MLD": "unused.osrm",
        "OSRM_FILE_CH": "unused.osrm",
        "ROUTING_ALGORITHM": "GREAT_CIRCLE",
        "RINGS_KM": "2,0.5",
        "NEIGHBORS": "3",
        "SEED": "5",
    }
    env.update(extra)
    return env


def test_create_dataset_with_injected_oracle(tmp_path, addresses):
    env = _env(tmp_path, addresses, RECORD_KIND="triplet", SUMMARY_FILE=str(tmp_path / "summary.json"))
    cfg = GeneratorConfig.from_env(env)
    summary = build_dataset.create_dataset(cfg, oracle=ConstantOracle(15.0))

    assert summary.expected == summary.dispatched == 20 * 2 * 3
    assert summary.successes + summary.errors + summary.skipped == summary.dispatched
    with open(cfg.output_file, encoding="utf-8") as f:
        rows = [json.loads(line) for line in f]
    assert len(rows) == summary.records == 40
    assert all(r["positive_time"] == r["negative_time"] == 15.0 for r in rows)

    saved = json.loads((tmp_path / "summary.json").read_text(encoding="utf-8"))
    assert saved["records"] == 40 and saved["dispatched"] == 120


def test_create_parquet_pairs(tmp_path, addresses):
    env = _env(tmp_path, addresses, OUTPUT_FILE=str(tmp_path / "pairs.parquet"), BATCH_SIZE="50")
    cfg = GeneratorConfig.from_env(env)
    summary = build_dataset.create_dataset(cfg)

    assert summary.successes == summary.dispatched == 120 and summary.errors == 0
    pf = pq.ParquetFile(cfg.output_file)
    assert pf.metadata.num_rows == 120
    assert pf.metadata.num_row_groups == 3


def test_main_succeeds(tmp_path, addresses, clean_env):
    for k, v in _env(tmp_path, addresses).items():
        clean_env.setenv(k, v)
    assert build_dataset.main() == 0
    assert (tmp_path / "out" / "records.jsonl").exists()


def test_main_missing_config_exits_non_zero(clean_env, capsys):
    assert build_dataset.main() == 1
    assert "Missing required configuration" in capsys.readouterr().err


def test_main_unreadable_catalog_exits_non_zero(tmp_path, clean_env, capsys):
    for k, v in _env(tmp_path, str(tmp_path / "nope.csv")).items():
        clean_env.setenv(k, v)
    assert build_dataset.main() == 1
    assert "Fatal" in capsys.readouterr().err
    assert not (tmp_path / "out" / "records.jsonl").exists()


def test_main_routing_init_failure_exits_non_zero(tmp_path, addresses, clean_env, capsys):
    for k, v in _env(tmp_path, addresses, ROUTING_ALGORITHM="CH").items():
        clean_env.setenv(k, v)
    assert build_dataset.main() == 1
    assert "Fatal" in capsys.readouterr().err
