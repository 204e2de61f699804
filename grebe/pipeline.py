#!/usr/bin/env python3
"""
grebe, pipeline.py - Drive paired-end trimming from input streams to outputs.
=============================================================================

Purpose
-------

Read the two mate streams in lockstep, trim and filter every pair with a
``PairProcessor`` and write the survivors in input order. With more than one
thread, batches of pairs are processed in a process pool while reading and
writing stay in the calling process.

"""

from __future__ import annotations

import json
import sys
import time
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import Future, ProcessPoolExecutor
from contextlib import ExitStack
from dataclasses import dataclass, field
from itertools import islice, zip_longest
from pathlib import Path
from typing import BinaryIO

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from grebe.core.constants import DEFAULT_BATCH_SIZE
from grebe.core.exceptions import PairMismatchError
from grebe.core.fastq_io import FastqReader, FastqWriter
from grebe.core.logging_config import get_logger
from grebe.core.pair_processor import PairOutcome, PairProcessor, TrimCounters
from grebe.core.records import FastqRecord, MatePair
from grebe.core.streams import open_input, open_output
from grebe.models.models import TrimRunConfig
from grebe.version import __version__

logger = get_logger(__name__)

# Progress goes to stderr so that "-" can be used for FASTQ output
console = Console(stderr=True)

_MISSING = object()

# Set in each worker process by _init_worker
_worker_processor: PairProcessor | None = None


def iter_mate_pairs(reader_a: Iterable[FastqRecord], reader_b: Iterable[FastqRecord] | None = None) -> Iterator[MatePair]:
    """Pull one record from each stream per iteration.

    Args:
        reader_a: Forward (R1) records.
        reader_b: Reverse (R2) records, or None for single-end data.

    Yields:
        MatePair objects indexed by their position in the input.

    Raises:
        PairMismatchError: If one stream ends before the other.
    """
    if reader_b is None:
        for index, record in enumerate(reader_a):
            yield MatePair(index=index, forward=record)
        return

    for index, (forward, reverse) in enumerate(zip_longest(reader_a, reader_b, fillvalue=_MISSING)):
        if forward is _MISSING or reverse is _MISSING:
            shorter, longer = (reader_a, reader_b) if forward is _MISSING else (reader_b, reader_a)
            raise PairMismatchError(
                f"{_source(shorter)} ended after {index} records while {_source(longer)} has more; "
                "mate files must contain the same number of records"
            )
        yield MatePair(index=index, forward=forward, reverse=reverse)  # type: ignore[arg-type]


def _source(reader: Iterable[FastqRecord]) -> str:
    return getattr(reader, "source", "<stream>")


def _batched(pairs: Iterable[MatePair], size: int) -> Iterator[list[MatePair]]:
    iterator = iter(pairs)
    while batch := list(islice(iterator, size)):
        yield batch


def _init_worker(processor: PairProcessor) -> None:
    global _worker_processor
    _worker_processor = processor


def _process_batch_in_worker(batch: list[MatePair]) -> tuple[list[PairOutcome], TrimCounters]:
    """Wrapper for PairProcessor.process_batch to work with ProcessPoolExecutor."""
    if _worker_processor is None:
        raise RuntimeError("worker process was started without a pair processor")
    return _worker_processor.process_batch(batch)


def _write_outcomes(
    outcomes: list[PairOutcome],
    forward_writer: FastqWriter,
    reverse_writer: FastqWriter | None,
    unpaired_writer: FastqWriter | None,
) -> None:
    for outcome in outcomes:
        if outcome.kept:
            forward_writer.write(outcome.forward)  # type: ignore[arg-type]
            if reverse_writer is not None and outcome.reverse is not None:
                reverse_writer.write(outcome.reverse)
        elif outcome.singleton is not None and unpaired_writer is not None:
            unpaired_writer.write(outcome.singleton)


def trim_streams(
    forward_reader: Iterable[FastqRecord],
    reverse_reader: Iterable[FastqRecord] | None,
    forward_writer: FastqWriter,
    reverse_writer: FastqWriter | None,
    processor: PairProcessor,
    unpaired_writer: FastqWriter | None = None,
    threads: int = 1,
    batch_size: int = DEFAULT_BATCH_SIZE,
    progress_callback: Callable[[int], None] | None = None,
) -> TrimCounters:
    """Trim every pair from the readers and write the survivors in input order.

    Args:
        forward_reader: R1 records.
        reverse_reader: R2 records, or None for single-end data.
        forward_writer: Destination of surviving R1 records.
        reverse_writer: Destination of surviving R2 records.
        processor: Configured pair processor.
        unpaired_writer: Destination of lone surviving mates (singleton policy).
        threads: Worker processes; 1 processes batches in this process.
        batch_size: Pairs per batch.
        progress_callback: Called with the number of pairs after each written batch.

    Returns:
        Counters accumulated over the whole input.

    Raises:
        ValueError: If the processor keeps singletons of paired input but no
            unpaired writer is given.
    """
    if processor.pair_policy == "singletons" and reverse_reader is not None and unpaired_writer is None:
        raise ValueError("an unpaired writer is required when singletons are kept")

    batches = _batched(iter_mate_pairs(forward_reader, reverse_reader), batch_size)
    totals = TrimCounters()

    def consume(outcomes: list[PairOutcome], counters: TrimCounters) -> None:
        nonlocal totals
        _write_outcomes(outcomes, forward_writer, reverse_writer, unpaired_writer)
        totals += counters
        logger.debug(f"Wrote batch of {len(outcomes)} pairs ({totals.pairs_total} so far)")
        if progress_callback is not None:
            progress_callback(len(outcomes))

    if threads <= 1:
        for batch in batches:
            consume(*processor.process_batch(batch))
        return totals

    _trim_parallel(batches, processor, threads, consume)
    return totals


def _trim_parallel(
    batches: Iterator[list[MatePair]],
    processor: PairProcessor,
    threads: int,
    consume: Callable[[list[PairOutcome], TrimCounters], None],
) -> None:
    """Process batches in a pool, consuming results strictly in batch order.

    Pending futures are keyed by batch index, so batches finishing out of order
    wait until every earlier batch has been written. At most ``2 * threads``
    batches are read ahead of the writer.
    """
    max_in_flight = 2 * threads
    pending: dict[int, Future] = {}
    next_submit = 0
    next_write = 0
    exhausted = False

    executor = ProcessPoolExecutor(max_workers=threads, initializer=_init_worker, initargs=(processor,))
    try:
        while True:
            while not exhausted and len(pending) < max_in_flight:
                batch = next(batches, None)
                if batch is None:
                    exhausted = True
                    break
                pending[next_submit] = executor.submit(_process_batch_in_worker, batch)
                next_submit += 1

            if not pending:
                break
            consume(*pending.pop(next_write).result())
            next_write += 1
    except BaseException:
        for future in pending.values():
            future.cancel()
        raise
    finally:
        executor.shutdown(wait=True, cancel_futures=True)


@dataclass
class TrimSummary:
    """Outcome of one trimming run."""

    sample_name: str
    mode: str
    counters: TrimCounters
    inputs: dict[str, str] = field(default_factory=dict)
    outputs: dict[str, str] = field(default_factory=dict)
    elapsed_seconds: float = 0.0

    @property
    def fraction_kept(self) -> float:
        if self.counters.pairs_total == 0:
            return 0.0
        return self.counters.pairs_kept / self.counters.pairs_total

    def as_dict(self) -> dict[str, object]:
        return {
            "version": __version__,
            "sample_name": self.sample_name,
            "mode": self.mode,
            **self.inputs,
            **self.outputs,
            **self.counters.as_dict(),
            "pairs_dropped": self.counters.pairs_dropped,
            "fraction_kept": round(self.fraction_kept, 4),
            "elapsed_seconds": round(self.elapsed_seconds, 3),
        }


def write_summary(summary: TrimSummary, path: Path) -> None:
    """Write the run summary as JSON (for a .json path) or as a two-column TSV."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = summary.as_dict()
    with path.open("w") as f:
        if path.suffix.lower() == ".json":
            json.dump(data, f, indent=2)
            f.write("\n")
        else:
            f.write("metric\tvalue\n")
            for key, value in data.items():
                f.write(f"{key}\t{value}\n")
    logger.debug(f"Summary written to {path}")


def _enter_stream(stack: ExitStack, handle: BinaryIO) -> BinaryIO:
    """Register a stream for cleanup; standard streams are flushed but never closed."""
    if handle is getattr(sys.stdin, "buffer", None):
        return handle
    if handle is getattr(sys.stdout, "buffer", None):
        stack.callback(handle.flush)
        return handle
    return stack.enter_context(handle)


def run_trimming(config: TrimRunConfig, show_progress: bool = False) -> TrimSummary:
    """Run the complete trimming workflow for one sample.

    Args:
        config: Validated run configuration.
        show_progress: Display a progress spinner on stderr.

    Returns:
        TrimSummary with the final counters.
    """
    started = time.perf_counter()
    processor = config.trim.build_processor()
    encoding = config.trim.encoding()
    logger.info(f"Trimming {config.mode}-end reads of sample {config.sample_name}")
    logger.debug(f"Adapters: {', '.join(f'{a.name}={a.sequence}' for a in processor.matcher.adapters)}")

    with ExitStack() as stack:
        forward_reader = FastqReader(_enter_stream(stack, open_input(config.read1)), encoding, source=str(config.read1))
        reverse_reader = None
        if config.read2 is not None:
            reverse_reader = FastqReader(
                _enter_stream(stack, open_input(config.read2)), encoding, source=str(config.read2)
            )

        def writer(path: Path | None) -> FastqWriter | None:
            if path is None:
                return None
            return stack.enter_context(FastqWriter(_enter_stream(stack, open_output(path)), encoding))

        forward_writer = writer(config.out1)
        reverse_writer = writer(config.out2)
        unpaired_writer = writer(config.unpaired)

        progress_callback = None
        if show_progress:
            progress = stack.enter_context(
                Progress(
                    SpinnerColumn(),
                    TextColumn("[progress.description]{task.description}"),
                    TextColumn("{task.completed:,} pairs"),
                    TimeElapsedColumn(),
                    console=console,
                    transient=True,
                )
            )
            task = progress.add_task("[cyan]Trimming reads...", total=None)

            def progress_callback(n: int) -> None:
                progress.update(task, advance=n)

        counters = trim_streams(
            forward_reader,
            reverse_reader,
            forward_writer,  # type: ignore[arg-type]
            reverse_writer,
            processor,
            unpaired_writer=unpaired_writer,
            threads=config.threads,
            batch_size=config.batch_size,
            progress_callback=progress_callback,
        )

    summary = TrimSummary(
        sample_name=config.sample_name or "",
        mode=config.mode,
        counters=counters,
        inputs={"read1": str(config.read1), "read2": str(config.read2 or "")},
        outputs={
            "out1": str(config.out1 or ""),
            "out2": str(config.out2 or ""),
            "unpaired": str(config.unpaired or ""),
        },
        elapsed_seconds=time.perf_counter() - started,
    )
    if config.summary is not None:
        write_summary(summary, config.summary)

    logger.info(
        f"Processed {counters.pairs_total} pairs: kept {counters.pairs_kept}, "
        f"dropped {counters.pairs_dropped} "
        f"(adapter {counters.pairs_dropped_adapter_only}, short {counters.pairs_dropped_short}, "
        f"quality {counters.pairs_dropped_quality})"
    )
    return summary
