# src/dataset/sink.py

from __future__ import annotations

import json
import os
import time
from collections import Counter

import numpy as np
import pyarrow as pa
import pyarrow.parquet as pq

from utils.utils_geo import BATCH_SIZE, LOG_EVERY
from .records import Outcome, PairRecord, TripletRecord

# --------------------------- schema ---------------------------

PAIR_SCHEMA = pa.schema([
    pa.field("source_lat", pa.float32(), nullable=False),
    pa.field("source_lon", pa.float32(), nullable=False),
    pa.field("dest_lat", pa.float32(), nullable=False),
    pa.field("dest_lon", pa.float32(), nullable=False),
    pa.field("time", pa.float32(), nullable=False),
])

# --------------------------- telemetry ---------------------------


class ProgressReporter:
    """
    Prints cumulative progress every `every` processed samples.

    A line is emitted each time the processed count crosses a multiple of
    `every`; the throughput is measured since the previous line.
    """

    def __init__(self, total_expected: int, every: int = LOG_EVERY, clock=time.perf_counter):
        self.total_expected = max(0, int(total_expected))
        self.every = max(1, int(every))
        self.clock = clock
        self.lines = 0
        self._last_total = 0
        self._last_t = clock()

    def update(self, total: int, successes: int, errors: int):
        if total // self.every <= self._last_total // self.every:
            return
        now = self.clock()
        elapsed = now - self._last_t
        rps = (total - self._last_total) / elapsed if elapsed > 0 else float("inf")
        progress = 100.0 * total / self.total_expected if self.total_expected else 100.0
        print(
            f"Progress: {progress:.2f}% ({total}/{self.total_expected}) - "
            f"Success: {successes} - Errors: {errors} - {rps:.2f} RPS"
        )
        self.lines += 1
        self._last_total = total
        self._last_t = now

# --------------------------- sinks ---------------------------


class RecordSink:
    """
    Single-owner batched writer.

    Only the consumer thread touches a sink. `accept` tallies the outcome,
    buffers its record and flushes once `batch_size` records are pending;
    `close` flushes the partial batch and finalizes the output.

    Subclasses implement `_buffer(record)`, `_pending()`, `_write_batch()`
    and `_finalize()`.
    """

    def __init__(self, path: str, batch_size: int = BATCH_SIZE, reporter: ProgressReporter | None = None):
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self.path = path
        self.batch_size = int(batch_size)
        self.reporter = reporter

        self.successes = 0
        self.errors = 0
        self.skipped = 0
        self.error_kinds: Counter = Counter()
        self.records_written = 0
        self.batches_written = 0
        self.closed = False

        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)

    # ---- tallies

    @property
    def processed(self) -> int:
        return self.successes + self.errors + self.skipped

    def accept(self, outcome: Outcome):
        self.successes += outcome.successes
        self.errors += outcome.errors
        self.skipped += outcome.skipped
        self.error_kinds.update(outcome.error_kinds)

        if outcome.record is not None:
            self._buffer(outcome.record)
            if self._pending() >= self.batch_size:
                self.flush()

        if self.reporter is not None:
            self.reporter.update(self.processed, self.successes, self.errors)

    def flush(self):
        n = self._pending()
        if n == 0:
            return
        self._write_batch()
        self.records_written += n
        self.batches_written += 1

    def close(self):
        if self.closed:
            return
        try:
            self.flush()
        finally:
            self._finalize()
            self.closed = True
        print(
            f"Final: Success: {self.successes} - Errors: {self.errors} - "
            f"Skipped: {self.skipped} - Total: {self.processed}"
        )

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # ---- format hooks

    def _buffer(self, record):
        raise NotImplementedError

    def _pending(self) -> int:
        raise NotImplementedError

    def _write_batch(self):
        raise NotImplementedError

    def _finalize(self):
        raise NotImplementedError


class ParquetPairSink(RecordSink):
    """
    Columnar output for pair records.

    Buffers one float32 column per field and writes each batch as a single
    row group with column statistics. Closing the writer writes the footer;
    a file that was never closed is not readable.

    Parameters
    ----------
    path : str
        Output Parquet path (created or truncated).
    batch_size : int
        Rows per row group.
    compression : str
        Parquet codec ("zstd", "snappy", "gzip", ...).
    """

    def __init__(
        self,
        path: str,
        batch_size: int = BATCH_SIZE,
        reporter: ProgressReporter | None = None,
        compression: str = "zstd",
    ):
        super().__init__(path, batch_size, reporter)
        self._cols = {name: [] for name in PAIR_SCHEMA.names}
        self._writer = pq.ParquetWriter(
            path,
            PAIR_SCHEMA,
            compression=compression,
            write_statistics=True,
        )

    def _buffer(self, record):
        if not isinstance(record, PairRecord):
            raise TypeError(f"{type(self).__name__} only stores PairRecord, got {type(record).__name__}")
        c = self._cols
        c["source_lat"].append(record.source.lat)
        c["source_lon"].append(record.source.lon)
        c["dest_lat"].append(record.destination.lat)
        c["dest_lon"].append(record.destination.lon)
        c["time"].append(record.time)

    def _pending(self) -> int:
        return len(self._cols["time"])

    def _write_batch(self):
        arrays = [pa.array(np.asarray(self._cols[name], dtype=np.float32)) for name in PAIR_SCHEMA.names]
        table = pa.Table.from_arrays(arrays, schema=PAIR_SCHEMA)
        self._writer.write_table(table, row_group_size=self.batch_size)
        for v in self._cols.values():
            v.clear()

    def _finalize(self):
        self._writer.close()


class JsonLinesSink(RecordSink):
    """Row output: one UTF-8 JSON object per record, newline-terminated."""

    def __init__(self, path: str, batch_size: int = BATCH_SIZE, reporter: ProgressReporter | None = None):
        super().__init__(path, batch_size, reporter)
        self._lines: list[str] = []
        self._fh = open(path, "w", encoding="utf-8", newline="\n")

    def _buffer(self, record):
        if not isinstance(record, (PairRecord, TripletRecord)):
            raise TypeError(f"Unsupported record type {type(record).__name__}")
        self._lines.append(json.dumps(record.to_dict(), ensure_ascii=False))

    def _pending(self) -> int:
        return len(self._lines)

    def _write_batch(self):
        self._fh.write("\n".join(self._lines))
        self._fh.write("\n")
        self._fh.flush()
        self._lines.clear()

    def _finalize(self):
        self._fh.close()


def open_sink(
    fmt: str,
    path: str,
    batch_size: int = BATCH_SIZE,
    reporter: ProgressReporter | None = None,
    compression: str = "zstd",
) -> RecordSink:
    """Opens the sink for `fmt` ("parquet" or "jsonl"); raises OSError if the file cannot be created."""
    if fmt == "parquet":
        return ParquetPairSink(path, batch_size, reporter, compression=compression)
    if fmt == "jsonl":
        return JsonLinesSink(path, batch_size, reporter)
    raise ValueError(f"Unknown output format {fmt!r}, expected 'parquet' or 'jsonl'")
