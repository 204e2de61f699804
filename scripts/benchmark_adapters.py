#!/usr/bin/env python3
"""Benchmark script for adapter matching and end-to-end trimming throughput.

Run with: python scripts/benchmark_adapters.py
"""

import io
import random
import time

from grebe.core.adapters import Adapter, AdapterMatcher, resolve_adapters
from grebe.core.constants import ADAPTER_PRESETS
from grebe.core.fastq_io import FastqReader, FastqWriter
from grebe.models.models import TrimConfig
from grebe.pipeline import trim_streams

# Configuration
READ_LENGTH = 150
NUM_READS = 20_000
ADAPTER_FRACTION = 0.3
NUCLEOTIDES = "ACGT"


def generate_read(length: int = READ_LENGTH) -> str:
    """Generate a random read, with an Illumina adapter in a fraction of reads."""
    read = "".join(random.choice(NUCLEOTIDES) for _ in range(length))
    if random.random() < ADAPTER_FRACTION:
        insert = random.randint(20, length - 20)
        read = (read[:insert] + ADAPTER_PRESETS["illumina"] + read)[:length]
    return read


def generate_fastq(reads: list[str]) -> bytes:
    """Serialize reads with a declining quality profile."""
    lines = []
    for i, read in enumerate(reads):
        qualities = "".join(chr(33 + max(2, 40 - j // 5)) for j in range(len(read)))
        lines.append(f"@read{i}\n{read}\n+\n{qualities}\n")
    return "".join(lines).encode()


def benchmark_matcher(matcher: AdapterMatcher, reads: list[str]) -> tuple[float, int]:
    """Time find_trim_point over all reads and count hits."""
    start = time.perf_counter()
    hits = sum(matcher.find_trim_point(read) is not None for read in reads)
    return time.perf_counter() - start, hits


def benchmark_pipeline(r1: bytes, r2: bytes, threads: int) -> float:
    """Time trim_streams on in-memory FASTQ data."""
    config = TrimConfig()
    start = time.perf_counter()
    trim_streams(
        FastqReader(io.BytesIO(r1)),
        FastqReader(io.BytesIO(r2)),
        FastqWriter(io.BytesIO()),
        FastqWriter(io.BytesIO()),
        config.build_processor(),
        threads=threads,
        batch_size=1000,
    )
    return time.perf_counter() - start


def main() -> None:
    print("=" * 60)
    print("Adapter Matching Benchmark")
    print("=" * 60)
    print(f"Read length: {READ_LENGTH} bp")
    print(f"Number of reads: {NUM_READS:,}")
    print(f"Reads with adapter: {ADAPTER_FRACTION:.0%}")
    print()

    print("Generating test data...")
    random.seed(42)  # Reproducible results
    reads = [generate_read() for _ in range(NUM_READS)]
    mates = [generate_read() for _ in range(NUM_READS)]
    print()

    matchers = [
        ("Plain, error rate 0.1", AdapterMatcher(resolve_adapters(["illumina"]))),
        ("Plain, fixed budget k=2", AdapterMatcher(resolve_adapters(["illumina"]), error_rate=None)),
        ("IUPAC adapter", AdapterMatcher([Adapter("iupac", "AGATCGGAAGAGCNNNNN")])),
        ("Three presets", AdapterMatcher(resolve_adapters(list(ADAPTER_PRESETS)))),
    ]

    print("Running matcher benchmarks...")
    print("-" * 60)
    for name, matcher in matchers:
        elapsed, hits = benchmark_matcher(matcher, reads)
        print(f"{name:28s} {elapsed:8.3f}s  {NUM_READS / elapsed:10,.0f} reads/s  {hits:,} hits")
    print("-" * 60)
    print()

    print("Running pipeline benchmarks...")
    print("-" * 60)
    r1, r2 = generate_fastq(reads), generate_fastq(mates)
    baseline = None
    for threads in (1, 2, 4):
        elapsed = benchmark_pipeline(r1, r2, threads)
        baseline = baseline or elapsed
        print(f"threads={threads:<21d} {elapsed:8.3f}s  {baseline / elapsed:6.2f}x  {NUM_READS / elapsed:,.0f} pairs/s")
    print("-" * 60)


if __name__ == "__main__":
    main()
