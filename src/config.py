# src/config.py
import os
from dataclasses import dataclass, field
from typing import Mapping

from dotenv import find_dotenv, load_dotenv

from geodata.sampler.rings import default_rings, validate_rings
from routing.oracle import ALGORITHMS, CH
from utils.utils import parse_bool, parse_float_list
from utils.utils_geo import (
    ANN_EPS,
    BATCH_SIZE,
    CHUNK_SIZE,
    LOG_EVERY,
    NEIGHBORS,
    TRIPLET_CANDIDATES,
)

REQUIRED_KEYS = ("OUTPUT_FILE", "INPUT_ADDRESS_FILE", "OSRM_FILE_MLD", "OSRM_FILE_CH")
RECORD_KINDS = ("pair", "triplet")
OUTPUT_FORMATS = ("parquet", "jsonl")


class ConfigError(ValueError):
    """Missing or invalid configuration."""


@dataclass(frozen=True)
class GeneratorConfig:
    """
    Run configuration, built once at process entry and passed to every component.
    """
    output_file: str
    input_address_file: str
    osrm_file_mld: str
    osrm_file_ch: str

    routing_algorithm: str = CH
    record_kind: str = "pair"
    output_format: str = "parquet"
    neighbors: int = NEIGHBORS
    triplet_candidates: int = TRIPLET_CANDIDATES
    rings_km: tuple = field(default_factory=lambda: tuple(default_rings()))
    random_phase: bool = True
    ann_eps: float = ANN_EPS
    exclude_self: bool = False
    batch_size: int = BATCH_SIZE
    log_every: int = LOG_EVERY
    max_workers: int | None = None
    chunk_size: int = CHUNK_SIZE
    queue_maxsize: int = 0
    compression: str = "zstd"
    great_circle_speed_kmh: float = 50.0
    seed: int | None = None
    summary_file: str | None = None

    def __post_init__(self):
        if self.routing_algorithm not in ALGORITHMS:
            raise ConfigError(f"ROUTING_ALGORITHM must be one of {ALGORITHMS}, got {self.routing_algorithm!r}")
        if self.record_kind not in RECORD_KINDS:
            raise ConfigError(f"RECORD_KIND must be one of {RECORD_KINDS}, got {self.record_kind!r}")
        if self.output_format not in OUTPUT_FORMATS:
            raise ConfigError(f"OUTPUT_FORMAT must be one of {OUTPUT_FORMATS}, got {self.output_format!r}")
        if self.record_kind == "triplet" and self.output_format == "parquet":
            raise ConfigError("Triplet records can only be written as jsonl")
        for name in ("neighbors", "triplet_candidates", "batch_size", "log_every", "chunk_size"):
            if getattr(self, name) < 1:
                raise ConfigError(f"{name.upper()} must be >= 1, got {getattr(self, name)}")
        if self.queue_maxsize < 0:
            raise ConfigError(f"QUEUE_MAXSIZE must be >= 0, got {self.queue_maxsize}")
        if self.ann_eps < 0.0:
            raise ConfigError(f"ANN_EPS must be >= 0, got {self.ann_eps}")
        if self.max_workers is not None and self.max_workers < 1:
            raise ConfigError(f"MAX_WORKERS must be >= 1, got {self.max_workers}")
        try:
            validate_rings(self.rings_km)
        except ValueError as e:
            raise ConfigError(f"RINGS_KM: {e}") from e

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, dotenv: bool = True) -> "GeneratorConfig":
        """
        Reads the configuration from environment variables.

        Parameters
        ----------
        environ : mapping or None
            Variables to read. None means `os.environ`, after loading a `.env`
            file from the working directory if `dotenv` is True (existing
            variables win over the file).

        Raises
        ------
        ConfigError
            A required key is missing or a value does not parse.
        """
        if environ is None:
            if dotenv:
                load_dotenv(find_dotenv(usecwd=True), override=False)
            environ = os.environ

        missing = [k for k in REQUIRED_KEYS if not environ.get(k)]
        if missing:
            raise ConfigError(f"Missing required configuration: {', '.join(missing)}")

        def get(key, parse, default=None):
            raw = environ.get(key)
            if raw is None or raw.strip() == "":
                return default
            try:
                return parse(raw.strip())
            except ValueError as e:
                raise ConfigError(f"Invalid value for {key}: {raw!r} ({e})") from e

        output_file = environ["OUTPUT_FILE"]
        default_format = "parquet" if output_file.lower().endswith(".parquet") else "jsonl"
        rings = get("RINGS_KM", parse_float_list)

        kwargs = dict(
            output_file=output_file,
            input_address_file=environ["INPUT_ADDRESS_FILE"],
            osrm_file_mld=environ["OSRM_FILE_MLD"],
            osrm_file_ch=environ["OSRM_FILE_CH"],
            routing_algorithm=get("ROUTING_ALGORITHM", str.upper, CH),
            record_kind=get("RECORD_KIND", str.lower, "pair"),
            output_format=get("OUTPUT_FORMAT", str.lower, default_format),
            neighbors=get("NEIGHBORS", int, NEIGHBORS),
            triplet_candidates=get("TRIPLET_CANDIDATES", int, TRIPLET_CANDIDATES),
            random_phase=get("RANDOM_PHASE", parse_bool, True),
            ann_eps=get("ANN_EPS", float, ANN_EPS),
            exclude_self=get("EXCLUDE_SELF", parse_bool, False),
            batch_size=get("BATCH_SIZE", int, BATCH_SIZE),
            log_every=get("LOG_EVERY", int, LOG_EVERY),
            max_workers=get("MAX_WORKERS", int),
            chunk_size=get("CHUNK_SIZE", int, CHUNK_SIZE),
            queue_maxsize=get("QUEUE_MAXSIZE", int, 0),
            compression=get("COMPRESSION", str.lower, "zstd"),
            great_circle_speed_kmh=get("GREAT_CIRCLE_SPEED_KMH", float, 50.0),
            seed=get("SEED", int),
            summary_file=get("SUMMARY_FILE", str),
        )
        if rings is not None:
            kwargs["rings_km"] = tuple(rings)
        return cls(**kwargs)
