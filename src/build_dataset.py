# src/build_dataset.py

import sys
import time

from config import ConfigError, GeneratorConfig
from dataset.pipeline import RecordPipeline, RunSummary
from dataset.records import make_policy
from dataset.sink import ProgressReporter, open_sink
from geodata.catalog import AddressCatalog
from geodata.sampler.nearest import NearestResolver
from routing.oracle import OracleInitError, RouteOracle, build_oracle
from utils.utils import human_int, write_json

# -----------------------------
# Pipeline assembly
# -----------------------------

def build_pipeline(cfg: GeneratorConfig, oracle: RouteOracle | None = None) -> RecordPipeline:
    """
    Loads the catalog, starts the routing engine and opens the output.

    Everything here is fatal on failure and happens before any work is
    dispatched. `oracle` overrides the engine selected by the config.
    """
    catalog = AddressCatalog.from_csv(cfg.input_address_file, seed=cfg.seed)
    if oracle is None:
        oracle = build_oracle(cfg)
    print(f"Routing with the {oracle.name} oracle")

    rings = list(cfg.rings_km)
    resolver = NearestResolver(catalog, eps=cfg.ann_eps, exclude_self=cfg.exclude_self)
    policy = make_policy(cfg.record_kind, catalog, oracle, k=cfg.triplet_candidates)

    # output last: nothing below can fail once the file exists
    reporter = ProgressReporter(len(catalog) * len(rings) * cfg.neighbors, every=cfg.log_every)
    sink = open_sink(
        cfg.output_format,
        cfg.output_file,
        batch_size=cfg.batch_size,
        reporter=reporter,
        compression=cfg.compression,
    )
    return RecordPipeline(
        catalog=catalog,
        rings=rings,
        resolver=resolver,
        policy=policy,
        sink=sink,
        neighbors=cfg.neighbors,
        random_phase=cfg.random_phase,
        max_workers=cfg.max_workers,
        chunk_size=cfg.chunk_size,
        queue_maxsize=cfg.queue_maxsize,
        seed=cfg.seed,
    )

# -----------------------------
# Dataset creation
# -----------------------------

def create_dataset(cfg: GeneratorConfig, oracle: RouteOracle | None = None) -> RunSummary:
    t0 = time.perf_counter()
    pipeline = build_pipeline(cfg, oracle)
    summary = pipeline.run()
    if cfg.summary_file:
        write_json(cfg.summary_file, summary.to_dict(), name="run summary")
    dt = time.perf_counter() - t0
    print(
        f"Wrote {human_int(summary.records)} {cfg.record_kind} records to {cfg.output_file}. "
        f"Total time Elapsed: {dt:.3f}s"
    )
    return summary


def main() -> int:
    try:
        cfg = GeneratorConfig.from_env()
        create_dataset(cfg)
    except (ConfigError, OracleInitError, OSError, ValueError, RuntimeError) as e:
        print(f"Fatal: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
