# src/dataset/pipeline.py

from __future__ import annotations

import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, asdict, field

import numpy as np

from geodata.catalog import AddressCatalog
from geodata.sampler.nearest import NearestResolver
from geodata.sampler.rings import RingSampler, validate_rings
from utils.utils import default_workers
from utils.utils_geo import CHUNK_SIZE, NEIGHBORS
from .records import Outcome, PairPolicy, TripletPolicy
from .sink import RecordSink

# End-of-stream marker, sent once every producer is done.
_DONE = object()


@dataclass
class RunSummary:
    expected: int
    dispatched: int
    successes: int
    errors: int
    skipped: int
    records: int
    batches: int
    elapsed_s: float
    error_kinds: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


class RecordPipeline:
    """
    Fans (ring × address) units out to a thread pool and funnels outcomes to
    a single sink thread.

    Per unit, on the worker: sample the ring, resolve every sample to its
    nearest address, route, build records, enqueue outcomes. No stage is
    retried; a failed route is just a counted outcome.

    Shutdown sequence of `run()`:
      1) wait for every task future,
      2) enqueue the end-of-stream marker,
      3) the sink thread flushes its partial batch and closes the output,
      4) join the sink thread.
    The marker is enqueued even when a task raised; that error is re-raised
    after the join. Output order is whatever the workers produce.

    Parameters
    ----------
    catalog : AddressCatalog
        Shared read-only addresses + index.
    rings : list[float]
        Ring radii in km, in scheduling order.
    resolver : NearestResolver
    policy : PairPolicy or TripletPolicy
    sink : RecordSink
        Owned by the consumer thread for the duration of `run()`.
    neighbors : int
        Samples per (address, ring).
    random_phase : bool
        Randomize the bearing of the first sample on every ring.
    max_workers : int or None
        Worker threads. If None, uses (cpu_count - 1).
    chunk_size : int
        Addresses handled by one task (same ring).
    queue_maxsize : int
        0 for an unbounded queue; otherwise producers block while the queue
        holds this many outcomes.
    seed : int or None
        Root seed for per-task phase generators.
    """

    def __init__(
        self,
        catalog: AddressCatalog,
        rings,
        resolver: NearestResolver,
        policy: PairPolicy | TripletPolicy,
        sink: RecordSink,
        neighbors: int = NEIGHBORS,
        random_phase: bool = True,
        max_workers: int | None = None,
        chunk_size: int = CHUNK_SIZE,
        queue_maxsize: int = 0,
        seed: int | None = None,
    ):
        if neighbors < 1:
            raise ValueError(f"neighbors must be >= 1, got {neighbors}")
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
        if queue_maxsize < 0:
            raise ValueError(f"queue_maxsize must be >= 0, got {queue_maxsize}")

        self.catalog = catalog
        self.rings = validate_rings(rings)
        self.resolver = resolver
        self.policy = policy
        self.sink = sink
        self.neighbors = int(neighbors)
        self.random_phase = bool(random_phase)
        self.max_workers = max_workers or default_workers()
        self.chunk_size = int(chunk_size)
        self.queue_maxsize = int(queue_maxsize)
        self.seed = seed

    @property
    def expected(self) -> int:
        return len(self.catalog) * len(self.rings) * self.neighbors

    # ---- tasks

    def _tasks(self):
        n = len(self.catalog)
        for ring in self.rings:
            for lo in range(0, n, self.chunk_size):
                yield ring, lo, min(lo + self.chunk_size, n)

    def _run_task(self, ring: float, lo: int, hi: int, rng: np.random.Generator, out: queue.Queue) -> int:
        """Processes addresses [lo, hi) on one ring; returns the number of samples dispatched."""
        sampler = RingSampler(self.neighbors, self.random_phase, rng)
        lat, lon = self.catalog.lat, self.catalog.lon
        dispatched = 0
        for anchor in range(lo, hi):
            s_lat, s_lon = sampler.samples(float(lat[anchor]), float(lon[anchor]), ring)
            matches = self.resolver.resolve_many(s_lat, s_lon, anchor=anchor)
            dispatched += len(matches)
            for outcome in self.policy.build(anchor, matches):
                out.put(outcome)
        return dispatched

    # ---- consumer

    def _drain(self, q: queue.Queue, failure: list):
        try:
            while True:
                item = q.get()
                if item is _DONE:
                    break
                self.sink.accept(item)
        except Exception as e:
            failure.append(e)
            # keep draining so blocked producers can finish
            while q.get() is not _DONE:
                pass
        try:
            self.sink.close()
        except Exception as e:
            failure.append(e)

    # ---- entry point

    def run(self) -> RunSummary:
        t0 = time.perf_counter()
        tasks = list(self._tasks())
        seeds = np.random.SeedSequence(self.seed).spawn(len(tasks))
        print(
            f"Dispatching {len(self.catalog)} addresses x {len(self.rings)} rings x "
            f"{self.neighbors} neighbors = {self.expected} samples "
            f"({len(tasks)} tasks, {self.max_workers} workers, {self.policy.kind} records)"
        )

        q: queue.Queue = queue.Queue(maxsize=self.queue_maxsize)
        sink_failure: list = []
        consumer = threading.Thread(target=self._drain, args=(q, sink_failure), name="record-sink")
        consumer.start()

        dispatched = 0
        task_error: BaseException | None = None
        try:
            with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="ring-worker") as ex:
                futures = [
                    ex.submit(self._run_task, ring, lo, hi, np.random.default_rng(ss), q)
                    for (ring, lo, hi), ss in zip(tasks, seeds)
                ]
                for f in as_completed(futures):
                    try:
                        dispatched += f.result()
                    except Exception as e:
                        if task_error is None:
                            task_error = e
        finally:
            q.put(_DONE)
            consumer.join()

        if task_error is not None:
            raise RuntimeError(f"Worker failed: {task_error}") from task_error
        if sink_failure:
            raise RuntimeError(f"Sink failed: {sink_failure[0]}") from sink_failure[0]

        sink = self.sink
        summary = RunSummary(
            expected=self.expected,
            dispatched=dispatched,
            successes=sink.successes,
            errors=sink.errors,
            skipped=sink.skipped,
            records=sink.records_written,
            batches=sink.batches_written,
            elapsed_s=time.perf_counter() - t0,
            error_kinds=dict(sink.error_kinds),
        )
        print(f"Pipeline finished in {summary.elapsed_s:.3f}s: {summary.records} records written")
        return summary
